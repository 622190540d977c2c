from pydantic import BaseModel

from edumanage.models.user_settings import ThemeMode
from edumanage.services.two_factor import EnrollmentState


class SettingsOut(BaseModel):
    two_factor_enabled: bool
    theme: ThemeMode


class ThemeUpdate(BaseModel):
    theme: ThemeMode


class TwoFactorToggle(BaseModel):
    enabled: bool


class TwoFactorStatusOut(BaseModel):
    two_factor_enabled: bool
    state: EnrollmentState
    message: str | None = None
