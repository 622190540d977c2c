import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from dataclasses import replace  # noqa: E402
import re  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, select  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from edumanage.api.deps import get_db  # noqa: E402
from edumanage.core.exceptions import CredentialError, DuplicateProfileError, OtpIssueError  # noqa: E402
from edumanage.db.base import Base  # noqa: E402
from edumanage.main import app  # noqa: E402
from edumanage.models.profile import Profile  # noqa: E402
from edumanage.models.user import User  # noqa: E402
from edumanage.services.ports import (  # noqa: E402
    Principal,
    ProfileRecord,
    ScheduleRecord,
    SettingsRecord,
    SignInResult,
)
from edumanage.services.rate_limit import clear_rate_limiter  # noqa: E402

DEVICE_ID = "device-0001"


@pytest.fixture()
def session_factory():
    clear_rate_limiter()  # previous tests must not eat into the auth limits
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    yield factory
    engine.dispose()
    clear_rate_limiter()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def outbox(monkeypatch):
    """Captures verification e-mails instead of talking to SMTP."""
    sent: list[dict[str, str]] = []

    def fake_send_email(*, to_email: str, subject: str, text_content: str, html_content=None):
        sent.append({"to": to_email, "subject": subject, "body": text_content})

    monkeypatch.setattr("edumanage.services.email.send_email", fake_send_email)
    return sent


def latest_code(outbox: list[dict[str, str]], email: str) -> str:
    for message in reversed(outbox):
        if message["to"] == email:
            match = re.search(r"\b(\d{6})\b", message["body"])
            assert match is not None
            return match.group(1)
    raise AssertionError(f"no verification e-mail sent to {email}")


class FakeCredentials:
    def __init__(self, accounts: dict[str, tuple[str, str]]):
        self.accounts = accounts
        self.current: Principal | None = None
        self.on_sign_in = None

    def sign_in(self, email: str, password: str) -> SignInResult:
        if self.on_sign_in is not None:
            self.on_sign_in()
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise CredentialError()
        self.current = Principal(user_id=account[1], email=email)
        return SignInResult(access_token=f"token-{account[1]}", principal=self.current)

    def get_current_user(self) -> Principal | None:
        return self.current


class FakeProfiles:
    def __init__(self, rows: dict[str, ProfileRecord] | None = None):
        self.rows = dict(rows or {})
        self.lookups = 0
        self.creates = 0
        self.on_lookup = None

    def get_by_user(self, user_id: str) -> ProfileRecord | None:
        self.lookups += 1
        if self.on_lookup is not None:
            self.on_lookup()
        return self.rows.get(user_id)

    def create(self, user_id: str, first_name: str, last_name: str, role: str) -> ProfileRecord:
        self.creates += 1
        if user_id in self.rows:
            raise DuplicateProfileError(user_id)
        record = ProfileRecord(profile_id=f"profile-{user_id}", role=role)
        self.rows[user_id] = record
        return record


class FakeSettings:
    def __init__(self, rows: dict[str, SettingsRecord] | None = None):
        self.rows = dict(rows or {})
        self.reads = 0
        self.writes: list[tuple[str, dict]] = []

    def get_by_profile(self, profile_id: str) -> SettingsRecord | None:
        self.reads += 1
        return self.rows.get(profile_id)

    def update(self, profile_id: str, **partial) -> SettingsRecord:
        self.writes.append((profile_id, partial))
        current = self.rows.get(profile_id, SettingsRecord(two_factor_enabled=False))
        record = SettingsRecord(
            two_factor_enabled=partial.get("two_factor_enabled", current.two_factor_enabled),
            theme=partial.get("theme", current.theme),
        )
        self.rows[profile_id] = record
        return record


class FakeOtp:
    def __init__(self):
        self.sent: list[str] = []
        self.codes: dict[str, str] = {}
        self.verify_calls: list[tuple[str, str]] = []
        self.fail_send = False

    def send(self, email: str) -> None:
        if self.fail_send:
            raise OtpIssueError("Email service not configured.")
        self.sent.append(email)
        self.codes[email] = f"{123456 + len(self.sent):06d}"

    def verify(self, email: str, code: str) -> bool:
        self.verify_calls.append((email, code))
        return self.codes.get(email) == code


class FakeScheduleStore:
    def __init__(self, records: list[ScheduleRecord]):
        self.records = {record.id: record for record in records}
        self.writes: list[tuple[str, dict[str, str]]] = []
        # Write number (1-based) -> exception to raise instead of writing.
        self.failures: dict[int, Exception] = {}

    def get(self, record_id: str) -> ScheduleRecord | None:
        return self.records.get(record_id)

    def update(self, record_id: str, values: dict[str, str]) -> ScheduleRecord:
        self.writes.append((record_id, dict(values)))
        failure = self.failures.get(len(self.writes))
        if failure is not None:
            raise failure
        updated = replace(self.records[record_id], **values)
        self.records[record_id] = updated
        return updated


PASSWORD = "password123"


def register_user(client, email: str, first_name: str = "Ada", last_name: str = "Lovelace") -> dict:
    response = client.post(
        "/api/auth/register",
        json={"email": email, "password": PASSWORD, "first_name": first_name, "last_name": last_name},
    )
    assert response.status_code == 201
    return response.json()


def sign_in(client, email: str, password: str = PASSWORD, device_id: str = DEVICE_ID, **extra):
    return client.post(
        "/api/auth/sign-in",
        json={"email": email, "password": password, **extra},
        headers={"X-Device-Id": device_id},
    )


def auth_headers(token: str, device_id: str = DEVICE_ID) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}", "X-Device-Id": device_id}


def profile_for(db, email: str):
    db.expire_all()
    user = db.execute(select(User).where(User.email == email)).scalar_one()
    return db.execute(select(Profile).where(Profile.user_id == user.id)).scalar_one()
