from pydantic import BaseModel, EmailStr, Field, field_validator

from edumanage.services.auth_gate import GateState


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("first_name", "last_name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Name cannot be empty")
        return trimmed


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    redirect_to: str | None = Field(default=None, max_length=500)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("redirect_to")
    @classmethod
    def validate_redirect(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        # Only in-app paths; never an absolute or protocol-relative URL.
        if not value.startswith("/") or value.startswith("//"):
            raise ValueError("redirect_to must be an application path")
        return value


class OtpCodeIn(BaseModel):
    # Empty input is accepted here and rejected by the gate without a network call.
    code: str = Field(default="", max_length=12)


class UserOut(BaseModel):
    id: str
    email: EmailStr
    first_name: str
    last_name: str

    model_config = {"from_attributes": True}


class GateStatusOut(BaseModel):
    state: GateState
    otp_required: bool
    email: str | None = None
    role: str | None = None
    landing: str | None = None
    notice: str | None = None
    access_token: str | None = None
    token_type: str | None = None


class CurrentUserOut(BaseModel):
    user_id: str
    email: EmailStr
    profile_id: str | None = None
    role: str


class LandingOut(BaseModel):
    role: str
    landing: str
