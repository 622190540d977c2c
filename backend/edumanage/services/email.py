from __future__ import annotations

from email.message import EmailMessage
import smtplib
import ssl
import time

from edumanage.core.config import get_settings


class EmailDeliveryError(RuntimeError):
    pass


def _classify_smtp_data_error(exc: smtplib.SMTPDataError) -> str:
    smtp_error = exc.smtp_error
    if isinstance(smtp_error, bytes):
        message = smtp_error.decode("utf-8", errors="ignore").lower()
    else:
        message = str(smtp_error).lower()

    if "sending limit" in message or "quota" in message or "rate limit" in message:
        return "SMTP sender rate limited"
    if "recipient" in message:
        return "SMTP recipient rejected"
    if "sender" in message:
        return "SMTP sender rejected"
    return "SMTP data rejected"


def _resolve_smtp_password(host: str, raw_password: str | None) -> str:
    password = raw_password or ""
    if host.lower() == "smtp.gmail.com":
        # Gmail app-passwords are often copied with spaces.
        return "".join(password.split())
    return password


def _build_message(*, to_email: str, subject: str, text_content: str, html_content: str | None) -> EmailMessage:
    settings = get_settings()
    message = EmailMessage()
    if settings.smtp_from_name:
        message["From"] = f"{settings.smtp_from_name} <{settings.smtp_from_email}>"
    else:
        message["From"] = settings.smtp_from_email
    message["To"] = to_email
    message["Subject"] = subject
    message.set_content(text_content)
    if html_content:
        message.add_alternative(html_content, subtype="html")
    return message


def _deliver(message: EmailMessage) -> None:
    settings = get_settings()
    host = settings.smtp_host
    timeout = max(1, settings.smtp_timeout_seconds)
    password = _resolve_smtp_password(host, settings.smtp_password)
    if settings.smtp_use_ssl:
        with smtplib.SMTP_SSL(host, settings.smtp_port, timeout=timeout) as smtp:
            if settings.smtp_username:
                smtp.login(settings.smtp_username, password)
            smtp.send_message(message)
        return
    with smtplib.SMTP(host, settings.smtp_port, timeout=timeout) as smtp:
        if settings.smtp_use_tls:
            smtp.starttls(context=ssl.create_default_context())
        if settings.smtp_username:
            smtp.login(settings.smtp_username, password)
        smtp.send_message(message)


def send_email(*, to_email: str, subject: str, text_content: str, html_content: str | None = None) -> None:
    settings = get_settings()
    if not settings.smtp_host or not settings.smtp_from_email:
        raise EmailDeliveryError("SMTP is not configured")

    retry_attempts = max(1, settings.smtp_retry_attempts)
    retry_backoff_seconds = max(0.0, settings.smtp_retry_backoff_seconds)
    message = _build_message(
        to_email=to_email,
        subject=subject,
        text_content=text_content,
        html_content=html_content,
    )

    last_error: Exception | None = None
    for attempt in range(1, retry_attempts + 1):
        try:
            _deliver(message)
            return
        except smtplib.SMTPAuthenticationError as exc:  # pragma: no cover - transport-specific behavior
            raise EmailDeliveryError("SMTP authentication failed") from exc
        except smtplib.SMTPDataError as exc:  # pragma: no cover - transport-specific behavior
            raise EmailDeliveryError(_classify_smtp_data_error(exc)) from exc
        except smtplib.SMTPRecipientsRefused as exc:  # pragma: no cover - transport-specific behavior
            raise EmailDeliveryError("SMTP recipient rejected") from exc
        except smtplib.SMTPSenderRefused as exc:  # pragma: no cover - transport-specific behavior
            raise EmailDeliveryError("SMTP sender rejected") from exc
        except (smtplib.SMTPException, OSError) as exc:  # pragma: no cover - transport-specific behavior
            last_error = exc
            if attempt < retry_attempts and retry_backoff_seconds > 0:
                time.sleep(retry_backoff_seconds * attempt)

    raise EmailDeliveryError("SMTP connection failed") from last_error
