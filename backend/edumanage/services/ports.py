"""Collaborator contracts consumed by the auth gate, enrollment and swap services.

The SQL-backed implementations live in `repositories`, `credentials`,
`otp` and `device_state`; tests substitute in-memory doubles.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str


@dataclass(frozen=True)
class SignInResult:
    access_token: str
    principal: Principal


@dataclass(frozen=True)
class ProfileRecord:
    profile_id: str
    role: str


@dataclass(frozen=True)
class SettingsRecord:
    two_factor_enabled: bool
    theme: str = "system"


@dataclass(frozen=True)
class ScheduleRecord:
    id: str
    start_time: str
    end_time: str
    room_id: str
    day_of_week: str


class CredentialStore(Protocol):
    def sign_in(self, email: str, password: str) -> SignInResult: ...

    def get_current_user(self) -> Principal | None: ...


class ProfileRepository(Protocol):
    def get_by_user(self, user_id: str) -> ProfileRecord | None: ...

    def create(self, user_id: str, first_name: str, last_name: str, role: str) -> ProfileRecord: ...


class SettingsRepository(Protocol):
    def get_by_profile(self, profile_id: str) -> SettingsRecord | None: ...

    def update(self, profile_id: str, **partial) -> SettingsRecord: ...


class OtpService(Protocol):
    def send(self, email: str) -> None: ...

    def verify(self, email: str, code: str) -> bool: ...


class DeviceStorage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class ScheduleStore(Protocol):
    def get(self, record_id: str) -> ScheduleRecord | None: ...

    def update(self, record_id: str, values: dict[str, str]) -> ScheduleRecord: ...
