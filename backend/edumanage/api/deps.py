from collections.abc import Callable, Generator
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from edumanage.core.exceptions import VerificationRequiredError
from edumanage.db.session import SessionLocal
from edumanage.services.auth_gate import AuthGate
from edumanage.services.credentials import SqlCredentialStore
from edumanage.services.device_state import SqlDeviceStorage, VerificationFlag
from edumanage.services.landing import Role
from edumanage.services.otp import EmailOtpService
from edumanage.services.ports import Principal
from edumanage.services.repositories import SqlProfileRepository, SqlSettingsRepository

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_device_id(x_device_id: str = Header(min_length=8, max_length=64)) -> str:
    return x_device_id


def get_bearer_token(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> str | None:
    return credentials.credentials if credentials is not None else None


def get_device_storage(device_id: str = Depends(get_device_id), db: Session = Depends(get_db)) -> SqlDeviceStorage:
    return SqlDeviceStorage(db, device_id)


def get_auth_gate(
    token: str | None = Depends(get_bearer_token),
    storage: SqlDeviceStorage = Depends(get_device_storage),
    db: Session = Depends(get_db),
) -> AuthGate:
    return AuthGate(
        credentials=SqlCredentialStore(db, token),
        profiles=SqlProfileRepository(db),
        settings=SqlSettingsRepository(db),
        otp=EmailOtpService(db),
        flag=VerificationFlag(storage),
        storage=storage,
    )


@dataclass(frozen=True)
class ClearedPrincipal:
    principal: Principal
    profile_id: str | None
    role: Role


def get_current_principal(
    token: str | None = Depends(get_bearer_token),
    db: Session = Depends(get_db),
) -> Principal:
    principal = SqlCredentialStore(db, token).get_current_user()
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def get_cleared_principal(
    principal: Principal = Depends(get_current_principal),
    storage: SqlDeviceStorage = Depends(get_device_storage),
    db: Session = Depends(get_db),
) -> ClearedPrincipal:
    """Admit only a signed-in principal whose second factor is off or already verified on this device."""
    profile = SqlProfileRepository(db).get_by_user(principal.user_id)
    if profile is None:
        return ClearedPrincipal(principal=principal, profile_id=None, role=Role.unknown)
    if not VerificationFlag(storage).is_verified(principal.user_id):
        settings = SqlSettingsRepository(db).get_by_profile(profile.profile_id)
        if settings is not None and settings.two_factor_enabled:
            raise VerificationRequiredError()
    return ClearedPrincipal(principal=principal, profile_id=profile.profile_id, role=Role.parse(profile.role))


def require_roles(*roles: Role) -> Callable[[ClearedPrincipal], ClearedPrincipal]:
    allowed_roles = set(roles)

    def role_checker(current: ClearedPrincipal = Depends(get_cleared_principal)) -> ClearedPrincipal:
        if current.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current

    return role_checker
