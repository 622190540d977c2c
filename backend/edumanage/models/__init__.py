from edumanage.models.class_session import ClassSession  # noqa: F401
from edumanage.models.device_state import DeviceState  # noqa: F401
from edumanage.models.otp_challenge import OtpChallenge  # noqa: F401
from edumanage.models.profile import Profile  # noqa: F401
from edumanage.models.user import User  # noqa: F401
from edumanage.models.user_settings import ThemeMode, UserSettings  # noqa: F401
