from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from edumanage.core.exceptions import (
    DuplicateProfileError,
    ProfileProvisionError,
    ScheduleWriteError,
    SettingsUnavailableError,
)
from edumanage.models.class_session import ClassSession
from edumanage.models.profile import Profile
from edumanage.models.user_settings import ThemeMode, UserSettings
from edumanage.services.ports import ProfileRecord, ScheduleRecord, SettingsRecord

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = {"two_factor_enabled", "theme"}

# Schedule record field -> ClassSession column.
SCHEDULE_COLUMNS = {
    "start_time": "start_time",
    "end_time": "end_time",
    "room_id": "classroom_id",
    "day_of_week": "day_of_week",
}


class SqlProfileRepository:
    def __init__(self, db: Session) -> None:
        self._db = db

    def get_by_user(self, user_id: str) -> ProfileRecord | None:
        try:
            profile = self._db.execute(select(Profile).where(Profile.user_id == user_id)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("Profile lookup failed for user %s", user_id)
            raise ProfileProvisionError() from exc
        if profile is None:
            return None
        return ProfileRecord(profile_id=profile.id, role=profile.role)

    def create(self, user_id: str, first_name: str, last_name: str, role: str) -> ProfileRecord:
        profile = Profile(user_id=user_id, first_name=first_name, last_name=last_name, role=role)
        self._db.add(profile)
        try:
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise DuplicateProfileError(user_id) from exc
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("Profile creation failed for user %s", user_id)
            raise ProfileProvisionError() from exc
        self._db.refresh(profile)
        return ProfileRecord(profile_id=profile.id, role=profile.role)


def _settings_record(row: UserSettings) -> SettingsRecord:
    theme = row.theme.value if isinstance(row.theme, ThemeMode) else str(row.theme)
    return SettingsRecord(two_factor_enabled=bool(row.two_factor_enabled), theme=theme)


class SqlSettingsRepository:
    def __init__(self, db: Session) -> None:
        self._db = db

    def _row(self, profile_id: str) -> UserSettings | None:
        return self._db.execute(
            select(UserSettings).where(UserSettings.profile_id == profile_id)
        ).scalar_one_or_none()

    def get_by_profile(self, profile_id: str) -> SettingsRecord | None:
        try:
            row = self._row(profile_id)
        except SQLAlchemyError as exc:
            logger.exception("Settings lookup failed for profile %s", profile_id)
            raise SettingsUnavailableError() from exc
        return _settings_record(row) if row is not None else None

    def update(self, profile_id: str, **partial) -> SettingsRecord:
        unknown = set(partial) - SETTINGS_FIELDS
        if unknown:
            raise ValueError(f"Unknown settings fields: {', '.join(sorted(unknown))}")
        try:
            row = self._row(profile_id)
            if row is None:
                row = UserSettings(profile_id=profile_id, two_factor_enabled=False, theme=ThemeMode.system)
                self._db.add(row)
            if "two_factor_enabled" in partial:
                row.two_factor_enabled = bool(partial["two_factor_enabled"])
            if "theme" in partial:
                row.theme = ThemeMode(partial["theme"])
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("Settings update failed for profile %s", profile_id)
            raise SettingsUnavailableError() from exc
        self._db.refresh(row)
        return _settings_record(row)


def _schedule_record(row: ClassSession) -> ScheduleRecord:
    return ScheduleRecord(
        id=row.id,
        start_time=row.start_time,
        end_time=row.end_time,
        room_id=row.classroom_id,
        day_of_week=row.day_of_week,
    )


class SqlScheduleStore:
    """Single-record writes against `classes`; each update is its own commit."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, record_id: str) -> ScheduleRecord | None:
        row = self._db.get(ClassSession, record_id)
        return _schedule_record(row) if row is not None else None

    def update(self, record_id: str, values: dict[str, str]) -> ScheduleRecord:
        row = self._db.get(ClassSession, record_id)
        if row is None:
            raise ScheduleWriteError(record_id, "Class not found:")
        for field, value in values.items():
            setattr(row, SCHEDULE_COLUMNS[field], value)
        try:
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            raise ScheduleWriteError(record_id) from exc
        self._db.refresh(row)
        return _schedule_record(row)
