import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from edumanage.api.deps import (
    ClearedPrincipal,
    get_auth_gate,
    get_cleared_principal,
    get_db,
    get_device_id,
    get_device_storage,
)
from edumanage.core.config import get_settings
from edumanage.schemas.auth import (
    CurrentUserOut,
    GateStatusOut,
    LandingOut,
    OtpCodeIn,
    SignInRequest,
    SignUpRequest,
    UserOut,
)
from edumanage.services.auth_gate import AuthGate, GateEvent, GateSnapshot
from edumanage.services.credentials import SqlCredentialStore
from edumanage.services.device_state import SqlDeviceStorage
from edumanage.services.landing import resolve_root_landing
from edumanage.services.rate_limit import enforce_rate_limit
from edumanage.services.two_factor import ENROLLMENT_KEY

settings = get_settings()
router = APIRouter()
logger = logging.getLogger(__name__)


def gate_status(snapshot: GateSnapshot, *, access_token: str | None = None) -> GateStatusOut:
    return GateStatusOut(
        state=snapshot.state,
        otp_required=snapshot.otp_required,
        email=snapshot.email,
        role=snapshot.role,
        landing=snapshot.landing,
        notice=snapshot.notice,
        access_token=access_token,
        token_type="bearer" if access_token else None,
    )


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register(payload: SignUpRequest, request: Request, db: Session = Depends(get_db)) -> UserOut:
    enforce_rate_limit(
        request,
        scope="auth.register",
        limit=settings.auth_rate_limit_register_max_requests,
        identity=payload.email,
    )
    return SqlCredentialStore(db).register(
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )


@router.post("/sign-in", response_model=GateStatusOut)
def sign_in(
    payload: SignInRequest,
    request: Request,
    device_id: str = Depends(get_device_id),
    gate: AuthGate = Depends(get_auth_gate),
) -> GateStatusOut:
    enforce_rate_limit(
        request,
        scope="auth.sign_in",
        limit=settings.auth_rate_limit_sign_in_max_requests,
        identity=payload.email,
    )
    result = gate.sign_in(payload.email, payload.password, deep_link=payload.redirect_to)
    logger.info("Sign-in for %s on device %s ended in %s", payload.email, device_id, gate.state.value)
    return gate_status(gate.snapshot, access_token=result.access_token)


@router.get("/gate", response_model=GateStatusOut)
def mount_gate(gate: AuthGate = Depends(get_auth_gate)) -> GateStatusOut:
    return gate_status(gate.step(GateEvent.mount))


@router.post("/otp/resend", response_model=GateStatusOut)
def resend_code(
    request: Request,
    device_id: str = Depends(get_device_id),
    gate: AuthGate = Depends(get_auth_gate),
) -> GateStatusOut:
    enforce_rate_limit(
        request,
        scope="auth.otp.resend",
        limit=settings.auth_rate_limit_otp_resend_max_requests,
        identity=device_id,
    )
    return gate_status(gate.resend_code())


@router.post("/otp/verify", response_model=GateStatusOut)
def verify_code(
    payload: OtpCodeIn,
    request: Request,
    device_id: str = Depends(get_device_id),
    gate: AuthGate = Depends(get_auth_gate),
) -> GateStatusOut:
    enforce_rate_limit(
        request,
        scope="auth.otp.verify",
        limit=settings.auth_rate_limit_otp_verify_max_requests,
        identity=device_id,
    )
    return gate_status(gate.verify_code(payload.code))


@router.post("/sign-out")
def sign_out(
    gate: AuthGate = Depends(get_auth_gate),
    storage: SqlDeviceStorage = Depends(get_device_storage),
) -> dict:
    gate.sign_out()
    storage.remove(ENROLLMENT_KEY)
    return {"success": True}


@router.get("/me", response_model=CurrentUserOut)
def me(current: ClearedPrincipal = Depends(get_cleared_principal)) -> CurrentUserOut:
    return CurrentUserOut(
        user_id=current.principal.user_id,
        email=current.principal.email,
        profile_id=current.profile_id,
        role=current.role.value,
    )


@router.get("/landing", response_model=LandingOut)
def root_landing(current: ClearedPrincipal = Depends(get_cleared_principal)) -> LandingOut:
    return LandingOut(role=current.role.value, landing=resolve_root_landing(current.role))
