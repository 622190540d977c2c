from __future__ import annotations

import logging

from sqlalchemy import inspect

from edumanage.core.config import get_settings
from edumanage.db.base import Base
from edumanage.db.session import engine
import edumanage.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "users": {"id", "email", "hashed_password"},
    "profiles": {"id", "user_id", "role"},
    "user_settings": {"id", "profile_id", "two_factor_enabled"},
    "otp_challenges": {"id", "email", "code_hash", "expires_at"},
    "device_state": {"device_id", "key", "value"},
    "classes": {"id", "start_time", "end_time", "classroom_id", "day_of_week"},
}


def missing_schema_items() -> tuple[list[str], dict[str, list[str]]]:
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        missing_tables = sorted(name for name in REQUIRED_COLUMNS if name not in table_names)
        missing_columns: dict[str, list[str]] = {}
        for table_name, required in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(required - existing)
            if missing:
                missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_runtime_schema() -> None:
    if not get_settings().db_auto_create:
        return
    try:
        Base.metadata.create_all(bind=engine)
        missing_tables, missing_columns = missing_schema_items()
    except Exception as exc:  # pragma: no cover - runtime environment dependent
        logger.exception("Runtime schema bootstrap failed")
        raise RuntimeError("Runtime schema bootstrap failed") from exc
    if missing_tables or missing_columns:
        raise RuntimeError(
            f"Database schema is outdated (tables={missing_tables}, columns={missing_columns}). "
            "Run `alembic upgrade head` and restart backend."
        )
