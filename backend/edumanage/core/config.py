from functools import lru_cache
import json
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKEND_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


class Settings(BaseSettings):
    # Resolve to backend/.env so `uvicorn --app-dir backend` works from any cwd.
    model_config = SettingsConfigDict(env_file=str(BACKEND_ENV_FILE), env_file_encoding="utf-8")

    project_name: str = "EduManage API"
    api_prefix: str = "/api"

    database_url: str = "sqlite+pysqlite:///./edumanage.db"
    db_auto_create: bool = True

    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    bcrypt_rounds: int = 12

    otp_expire_minutes: int = 10
    otp_max_attempts: int = 5
    otp_log_to_terminal: bool = False
    otp_allow_terminal_fallback: bool = False

    auth_rate_limit_window_seconds: int = 300
    auth_rate_limit_register_max_requests: int = 8
    auth_rate_limit_sign_in_max_requests: int = 12
    auth_rate_limit_otp_resend_max_requests: int = 8
    auth_rate_limit_otp_verify_max_requests: int = 15

    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_from_email: str | None = None
    smtp_from_name: str = "EduManage"
    smtp_use_tls: bool = True
    smtp_use_ssl: bool = False
    smtp_retry_attempts: int = 2
    smtp_retry_backoff_seconds: float = 1.0
    smtp_timeout_seconds: int = 15

    max_request_size_bytes: int = 1_000_000
    security_enable_hsts: bool = False
    security_hsts_max_age_seconds: int = 31536000

    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:8080",
        "http://127.0.0.1:8080",
    ]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_cors_origins(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.startswith("["):
                try:
                    parsed = json.loads(stripped)
                    if isinstance(parsed, list):
                        return [str(item).strip() for item in parsed if str(item).strip()]
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
