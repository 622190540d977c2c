from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from edumanage.api.deps import ClearedPrincipal, get_cleared_principal, get_db, get_device_storage
from edumanage.models.user_settings import ThemeMode
from edumanage.schemas.settings import SettingsOut, ThemeUpdate, TwoFactorStatusOut, TwoFactorToggle
from edumanage.schemas.auth import OtpCodeIn
from edumanage.services.device_state import SqlDeviceStorage, VerificationFlag
from edumanage.services.otp import EmailOtpService
from edumanage.services.repositories import SqlSettingsRepository
from edumanage.services.two_factor import EnrollmentState, EnrollmentStatus, TwoFactorEnrollment

router = APIRouter()


def _profile_id(current: ClearedPrincipal) -> str:
    if current.profile_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return current.profile_id


def get_enrollment(
    current: ClearedPrincipal = Depends(get_cleared_principal),
    storage: SqlDeviceStorage = Depends(get_device_storage),
    db: Session = Depends(get_db),
) -> TwoFactorEnrollment:
    return TwoFactorEnrollment(
        principal=current.principal,
        profile_id=_profile_id(current),
        settings=SqlSettingsRepository(db),
        otp=EmailOtpService(db),
        storage=storage,
        flag=VerificationFlag(storage),
    )


def _status_out(result: EnrollmentStatus, message: str | None = None) -> TwoFactorStatusOut:
    return TwoFactorStatusOut(two_factor_enabled=result.two_factor_enabled, state=result.state, message=message)


@router.get("/settings", response_model=SettingsOut)
def read_settings(
    current: ClearedPrincipal = Depends(get_cleared_principal),
    db: Session = Depends(get_db),
) -> SettingsOut:
    record = SqlSettingsRepository(db).get_by_profile(_profile_id(current))
    if record is None:
        return SettingsOut(two_factor_enabled=False, theme=ThemeMode.system)
    return SettingsOut(two_factor_enabled=record.two_factor_enabled, theme=ThemeMode(record.theme))


@router.put("/settings/theme", response_model=SettingsOut)
def update_theme(
    payload: ThemeUpdate,
    current: ClearedPrincipal = Depends(get_cleared_principal),
    db: Session = Depends(get_db),
) -> SettingsOut:
    record = SqlSettingsRepository(db).update(_profile_id(current), theme=payload.theme.value)
    return SettingsOut(two_factor_enabled=record.two_factor_enabled, theme=ThemeMode(record.theme))


@router.get("/settings/two-factor", response_model=TwoFactorStatusOut)
def two_factor_status(enrollment: TwoFactorEnrollment = Depends(get_enrollment)) -> TwoFactorStatusOut:
    return _status_out(enrollment.status())


@router.post("/settings/two-factor", response_model=TwoFactorStatusOut)
def toggle_two_factor(
    payload: TwoFactorToggle,
    enrollment: TwoFactorEnrollment = Depends(get_enrollment),
) -> TwoFactorStatusOut:
    result = enrollment.set_enabled(payload.enabled)
    if result.state == EnrollmentState.awaiting_code:
        return _status_out(result, "Verification code sent to your email.")
    return _status_out(result, "Two-factor authentication disabled.")


@router.post("/settings/two-factor/resend", response_model=TwoFactorStatusOut)
def resend_two_factor_code(enrollment: TwoFactorEnrollment = Depends(get_enrollment)) -> TwoFactorStatusOut:
    return _status_out(enrollment.resend_code(), "Verification code sent to your email.")


@router.post("/settings/two-factor/verify", response_model=TwoFactorStatusOut)
def verify_two_factor_code(
    payload: OtpCodeIn,
    enrollment: TwoFactorEnrollment = Depends(get_enrollment),
) -> TwoFactorStatusOut:
    return _status_out(enrollment.verify_code(payload.code), "Two-factor authentication enabled.")


@router.post("/settings/two-factor/cancel", response_model=TwoFactorStatusOut)
def cancel_two_factor(enrollment: TwoFactorEnrollment = Depends(get_enrollment)) -> TwoFactorStatusOut:
    return _status_out(enrollment.cancel())
