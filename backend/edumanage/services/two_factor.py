from __future__ import annotations

from enum import Enum
import logging

from pydantic import BaseModel, ValidationError

from edumanage.core.exceptions import EnrollmentStateError, OtpMismatchError
from edumanage.services.device_state import VerificationFlag
from edumanage.services.ports import DeviceStorage, OtpService, Principal, SettingsRepository

logger = logging.getLogger(__name__)

ENROLLMENT_KEY = "two_factor_enrollment"


class EnrollmentState(str, Enum):
    idle = "idle"
    awaiting_code = "awaiting_code"
    verifying = "verifying"


class PendingEnrollment(BaseModel):
    profile_id: str
    email: str


class EnrollmentStatus(BaseModel):
    two_factor_enabled: bool
    state: EnrollmentState


class TwoFactorEnrollment:
    """Turns the second-factor requirement on or off for one principal.

    Enabling is two-phase: `set_enabled(True)` only challenges the principal's
    e-mail and records a pending intent; the setting is persisted by a
    matching `verify_code`, which also counts as this device clearing the
    second factor so the current session is not locked out. Disabling is
    persisted immediately.
    """

    def __init__(
        self,
        *,
        principal: Principal,
        profile_id: str,
        settings: SettingsRepository,
        otp: OtpService,
        storage: DeviceStorage,
        flag: VerificationFlag | None = None,
    ) -> None:
        self._principal = principal
        self._profile_id = profile_id
        self._settings = settings
        self._otp = otp
        self._storage = storage
        self._flag = flag
        self._state = EnrollmentState.awaiting_code if self._pending() is not None else EnrollmentState.idle

    def _pending(self) -> PendingEnrollment | None:
        raw = self._storage.get(ENROLLMENT_KEY)
        if not raw:
            return None
        try:
            pending = PendingEnrollment.model_validate_json(raw)
        except ValidationError:
            return None
        # Intent left behind by another principal on this device does not apply.
        if pending.profile_id != self._profile_id:
            return None
        return pending

    def _enabled(self) -> bool:
        record = self._settings.get_by_profile(self._profile_id)
        return bool(record and record.two_factor_enabled)

    def status(self) -> EnrollmentStatus:
        return EnrollmentStatus(two_factor_enabled=self._enabled(), state=self._state)

    def set_enabled(self, enabled: bool) -> EnrollmentStatus:
        if not enabled:
            self._storage.remove(ENROLLMENT_KEY)
            self._state = EnrollmentState.idle
            self._settings.update(self._profile_id, two_factor_enabled=False)
            logger.info("Two-factor disabled for profile %s", self._profile_id)
            return self.status()

        pending = PendingEnrollment(profile_id=self._profile_id, email=self._principal.email)
        self._storage.set(ENROLLMENT_KEY, pending.model_dump_json())
        self._state = EnrollmentState.awaiting_code
        # Issue failure propagates; the intent stays pending so the code can be resent.
        self._otp.send(pending.email)
        return self.status()

    def resend_code(self) -> EnrollmentStatus:
        pending = self._pending()
        if pending is None:
            raise EnrollmentStateError()
        self._otp.send(pending.email)
        return self.status()

    def verify_code(self, code: str) -> EnrollmentStatus:
        if not code or not code.strip():
            raise OtpMismatchError("Enter the verification code sent to your email")
        pending = self._pending()
        if pending is None:
            raise EnrollmentStateError()
        self._state = EnrollmentState.verifying
        try:
            matched = self._otp.verify(pending.email, code.strip())
        finally:
            self._state = EnrollmentState.awaiting_code
        if not matched:
            raise OtpMismatchError()
        self._settings.update(self._profile_id, two_factor_enabled=True)
        self._storage.remove(ENROLLMENT_KEY)
        if self._flag is not None:
            self._flag.mark_verified(self._principal.user_id)
        self._state = EnrollmentState.idle
        logger.info("Two-factor enabled for profile %s", self._profile_id)
        return self.status()

    def cancel(self) -> EnrollmentStatus:
        self._storage.remove(ENROLLMENT_KEY)
        self._state = EnrollmentState.idle
        return self.status()
