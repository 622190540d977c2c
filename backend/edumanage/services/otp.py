from __future__ import annotations

from datetime import datetime, timedelta, timezone
import hashlib
import logging
import secrets

from sqlalchemy import select
from sqlalchemy.orm import Session

from edumanage.core.config import get_settings
from edumanage.core.exceptions import OtpIssueError
from edumanage.models.otp_challenge import OtpChallenge
from edumanage.services import email as email_service
from edumanage.services.email import EmailDeliveryError

logger = logging.getLogger(__name__)

DELIVERY_ERROR_MESSAGES = {
    "SMTP is not configured": "Email service not configured. Set SMTP settings in backend/.env and restart backend.",
    "SMTP authentication failed": "Email authentication failed. Verify SMTP username/password and try again.",
    "SMTP connection failed": "Cannot connect to SMTP server. Verify SMTP host/port and TLS/SSL settings.",
    "SMTP sender rate limited": "Email sending limit reached. Try again later.",
    "SMTP recipient rejected": "Recipient email was rejected by the SMTP provider.",
    "SMTP sender rejected": "Sender email was rejected by the SMTP provider. Verify SMTP_FROM_EMAIL.",
}


def hash_otp(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def normalize_dt(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EmailOtpService:
    """Issues six-digit codes by e-mail and checks them.

    Only the most recently issued, unexpired, unused code for an address can
    match; issuing a new code retires the previous ones.
    """

    def __init__(self, db: Session) -> None:
        self._db = db
        self._settings = get_settings()

    def send(self, email: str) -> None:
        email = email.strip().lower()
        now = datetime.now(timezone.utc)
        pending = self._db.execute(
            select(OtpChallenge).where(OtpChallenge.email == email, OtpChallenge.used_at.is_(None))
        ).scalars()
        for row in pending:
            row.used_at = now

        code = f"{secrets.randbelow(1_000_000):06d}"
        challenge = OtpChallenge(
            email=email,
            code_hash=hash_otp(code),
            expires_at=now + timedelta(minutes=self._settings.otp_expire_minutes),
            max_attempts=self._settings.otp_max_attempts,
        )
        self._db.add(challenge)
        self._db.flush()
        if self._settings.otp_log_to_terminal:
            logger.warning(
                "LOGIN OTP | email=%s | challenge_id=%s | otp=%s | expires_in_min=%s",
                email,
                challenge.id,
                code,
                self._settings.otp_expire_minutes,
            )

        message = (
            f"Your EduManage verification code is: {code}\n"
            f"This code will expire in {self._settings.otp_expire_minutes} minutes.\n\n"
            "If you did not request this, please ignore this email."
        )
        try:
            email_service.send_email(
                to_email=email,
                subject="Your EduManage Verification Code",
                text_content=message,
            )
        except EmailDeliveryError as exc:
            logger.exception("Failed to send verification code email for %s", email)
            if self._settings.otp_log_to_terminal and self._settings.otp_allow_terminal_fallback:
                self._db.commit()
                return
            self._db.rollback()
            detail = DELIVERY_ERROR_MESSAGES.get(str(exc), "Unable to send verification email. Please try again later.")
            raise OtpIssueError(detail) from exc

        self._db.commit()

    def verify(self, email: str, code: str) -> bool:
        email = email.strip().lower()
        challenge = self._db.execute(
            select(OtpChallenge)
            .where(OtpChallenge.email == email, OtpChallenge.used_at.is_(None))
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.expires_at.desc())
        ).scalars().first()
        if challenge is None:
            return False

        now = datetime.now(timezone.utc)
        expires_at = normalize_dt(challenge.expires_at)
        if expires_at is None or expires_at < now:
            return False
        if challenge.attempt_count >= challenge.max_attempts:
            return False

        challenge.attempt_count += 1
        if not secrets.compare_digest(hash_otp(code.strip()), challenge.code_hash):
            self._db.commit()
            return False

        challenge.used_at = now
        self._db.commit()
        return True
