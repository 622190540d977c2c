"""Second-factor gate between credential sign-in and the protected screens.

The gate is an explicit state machine::

    unauthenticated -> authenticated_unchecked -> cleared
                                              \\-> awaiting_code <-> verifying -> cleared

`step()` is driven by `GateEvent.mount` (page load / reload),
`GateEvent.sign_in_succeeded` and `GateEvent.code_verified`. The snapshot is
kept in device storage so a device resumes where it left off between
requests. The verification flag is injected and bound to the user who
cleared it; a flag set for the current principal short-circuits `mount`
straight to `cleared`.
"""
from __future__ import annotations

from enum import Enum
import logging

from pydantic import BaseModel, ValidationError

from edumanage.core.exceptions import (
    CredentialError,
    DuplicateProfileError,
    GateStateError,
    OtpIssueError,
    OtpMismatchError,
    ProfileProvisionError,
)
from edumanage.services.device_state import VerificationFlag
from edumanage.services.landing import Destination, Role, resolve_landing
from edumanage.services.ports import (
    CredentialStore,
    DeviceStorage,
    OtpService,
    ProfileRecord,
    ProfileRepository,
    SettingsRepository,
    SignInResult,
)

logger = logging.getLogger(__name__)

GATE_SNAPSHOT_KEY = "auth_gate"
DEFAULT_PROFILE_ROLE = Role.student.value


class GateState(str, Enum):
    unauthenticated = "unauthenticated"
    authenticated_unchecked = "authenticated_unchecked"
    awaiting_code = "awaiting_code"
    verifying = "verifying"
    cleared = "cleared"


class GateEvent(str, Enum):
    mount = "mount"
    sign_in_succeeded = "sign_in_succeeded"
    code_verified = "code_verified"


class GateSnapshot(BaseModel):
    state: GateState = GateState.unauthenticated
    user_id: str | None = None
    email: str | None = None
    profile_id: str | None = None
    role: str | None = None
    deep_link: str | None = None
    landing: str | None = None
    notice: str | None = None

    @property
    def otp_required(self) -> bool:
        return self.state in (GateState.awaiting_code, GateState.verifying)


class AuthGate:
    def __init__(
        self,
        *,
        credentials: CredentialStore,
        profiles: ProfileRepository,
        settings: SettingsRepository,
        otp: OtpService,
        flag: VerificationFlag,
        storage: DeviceStorage,
    ) -> None:
        self._credentials = credentials
        self._profiles = profiles
        self._settings = settings
        self._otp = otp
        self._flag = flag
        self._storage = storage
        self.snapshot = self._load()

    @property
    def state(self) -> GateState:
        return self.snapshot.state

    def _load(self) -> GateSnapshot:
        raw = self._storage.get(GATE_SNAPSHOT_KEY)
        if not raw:
            return GateSnapshot()
        try:
            return GateSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable gate snapshot")
            return GateSnapshot()

    def _save(self) -> None:
        self._storage.set(GATE_SNAPSHOT_KEY, self.snapshot.model_dump_json())

    def _transition(self, state: GateState) -> None:
        if self.snapshot.state != state:
            logger.info("Auth gate %s -> %s (user=%s)", self.snapshot.state.value, state.value, self.snapshot.user_id)
        self.snapshot.state = state

    def _clear(self, *, landing: str | None = None) -> None:
        self._transition(GateState.cleared)
        self.snapshot.landing = landing or resolve_landing(self.snapshot.role, self.snapshot.deep_link)

    def sign_in(self, email: str, password: str, *, deep_link: str | None = None) -> SignInResult:
        # A new attempt must never inherit an earlier clearance.
        self._flag.clear()
        self.snapshot = GateSnapshot(deep_link=deep_link)
        try:
            result = self._credentials.sign_in(email, password)
        except CredentialError:
            self._save()
            raise
        self.snapshot.user_id = result.principal.user_id
        self.snapshot.email = result.principal.email
        self._transition(GateState.authenticated_unchecked)
        self.step(GateEvent.sign_in_succeeded)
        return result

    def step(self, event: GateEvent) -> GateSnapshot:
        if event is GateEvent.mount:
            self._on_mount()
        elif event is GateEvent.sign_in_succeeded:
            self._check_principal()
        elif event is GateEvent.code_verified:
            self._flag.mark_verified(self.snapshot.user_id, self.snapshot.role)
            self.snapshot.notice = None
            self._clear()
        self._save()
        return self.snapshot

    def _on_mount(self) -> None:
        principal = self._credentials.get_current_user()
        if principal is None:
            self.snapshot = GateSnapshot(deep_link=self.snapshot.deep_link)
            return
        verified = self._flag.is_verified(principal.user_id)
        if self.snapshot.user_id != principal.user_id:
            self.snapshot = GateSnapshot(deep_link=self.snapshot.deep_link)
            if not verified:
                # Clearance earned by someone else on this device does not carry over.
                self._flag.clear()
        self.snapshot.user_id = principal.user_id
        self.snapshot.email = principal.email
        if verified:
            self.snapshot.role = self.snapshot.role or self._flag.verified_role(principal.user_id)
            self.snapshot.notice = None
            self._clear()
            return
        if self.snapshot.otp_required:
            # Code already issued for this login; resend is explicit.
            self._transition(GateState.awaiting_code)
            return
        self._transition(GateState.authenticated_unchecked)
        self._check_principal()

    def _check_principal(self) -> None:
        try:
            profile = self.resolve_profile(self.snapshot.user_id)
        except ProfileProvisionError as exc:
            logger.warning("Profile provisioning failed for %s; landing on root", self.snapshot.user_id)
            self.snapshot.notice = exc.message
            self._clear(landing=Destination.root_home.value)
            return
        self.snapshot.profile_id = profile.profile_id
        self.snapshot.role = profile.role
        self.check_two_factor(profile.profile_id)

    def resolve_profile(self, user_id: str) -> ProfileRecord:
        """Get-or-create the profile for `user_id`. New profiles are students with empty names."""
        existing = self._profiles.get_by_user(user_id)
        if existing is not None:
            return existing
        try:
            created = self._profiles.create(user_id, "", "", DEFAULT_PROFILE_ROLE)
        except DuplicateProfileError:
            existing = self._profiles.get_by_user(user_id)
            if existing is None:
                raise ProfileProvisionError()
            return existing
        logger.info("Provisioned student profile %s for user %s", created.profile_id, user_id)
        return created

    def check_two_factor(self, profile_id: str) -> GateSnapshot:
        settings = self._settings.get_by_profile(profile_id)
        # Missing settings rows are provisioned lazily and mean "no second factor".
        if settings is None or not settings.two_factor_enabled:
            self._clear()
            return self.snapshot
        self._transition(GateState.awaiting_code)
        self.request_code(self.snapshot.email)
        return self.snapshot

    def request_code(self, email: str) -> bool:
        try:
            self._otp.send(email)
        except OtpIssueError as exc:
            logger.warning("Verification code could not be issued for %s: %s", email, exc.message)
            self.snapshot.notice = exc.message
            return False
        self.snapshot.notice = None
        return True

    def resend_code(self) -> GateSnapshot:
        self._require(GateState.awaiting_code, "No verification code is pending")
        try:
            self._otp.send(self.snapshot.email)
        except OtpIssueError as exc:
            self.snapshot.notice = exc.message
            self._save()
            raise
        self.snapshot.notice = None
        self._save()
        return self.snapshot

    def verify_code(self, code: str) -> GateSnapshot:
        if not code or not code.strip():
            raise OtpMismatchError("Enter the verification code sent to your email")
        self._require(GateState.awaiting_code, "No verification code is pending")
        self._transition(GateState.verifying)
        try:
            matched = self._otp.verify(self.snapshot.email, code.strip())
        except Exception:
            self._transition(GateState.awaiting_code)
            self._save()
            raise
        if not matched:
            self._transition(GateState.awaiting_code)
            self._save()
            raise OtpMismatchError()
        return self.step(GateEvent.code_verified)

    def sign_out(self) -> None:
        self._flag.clear()
        self._storage.remove(GATE_SNAPSHOT_KEY)
        self.snapshot = GateSnapshot()

    def _require(self, state: GateState, message: str) -> None:
        if self.snapshot.state != state:
            raise GateStateError(message, self.snapshot.state.value)
