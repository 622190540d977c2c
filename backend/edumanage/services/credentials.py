from __future__ import annotations

import logging

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from edumanage.core.exceptions import AppError, CredentialError
from edumanage.core.security import create_access_token, decode_token, get_password_hash, verify_password
from edumanage.models.profile import Profile
from edumanage.models.user import User
from edumanage.services.ports import Principal, SignInResult

logger = logging.getLogger(__name__)


class SqlCredentialStore:
    """Credential store over the `users` table.

    `token` is the bearer token of the current request, if any; it backs
    `get_current_user`.
    """

    def __init__(self, db: Session, token: str | None = None) -> None:
        self._db = db
        self._token = token

    def _user_by_email(self, email: str) -> User | None:
        return self._db.execute(select(User).where(User.email == email.strip().lower())).scalar_one_or_none()

    def sign_in(self, email: str, password: str) -> SignInResult:
        user = self._user_by_email(email)
        if user is None or not verify_password(password, user.hashed_password):
            raise CredentialError()
        if not user.is_active:
            raise CredentialError("User account is inactive")
        token = create_access_token(user.id, email=user.email)
        self._token = token
        return SignInResult(access_token=token, principal=Principal(user_id=user.id, email=user.email))

    def get_current_user(self) -> Principal | None:
        if not self._token:
            return None
        try:
            payload = decode_token(self._token)
        except JWTError:
            return None
        user_id = payload.get("sub")
        if user_id is None:
            return None
        user = self._db.get(User, user_id)
        if user is None or not user.is_active:
            return None
        return Principal(user_id=user.id, email=user.email)

    def register(self, *, email: str, password: str, first_name: str, last_name: str) -> User:
        """Create a credential record plus its student profile."""
        if self._user_by_email(email) is not None:
            raise AppError("Email already registered", status_code=409)
        user = User(
            email=email.strip().lower(),
            hashed_password=get_password_hash(password),
            first_name=first_name,
            last_name=last_name,
        )
        self._db.add(user)
        self._db.flush()
        self._db.add(Profile(user_id=user.id, first_name=first_name, last_name=last_name, role="student"))
        try:
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise AppError("Email already registered", status_code=409) from exc
        self._db.refresh(user)
        logger.info("Registered user %s", user.email)
        return user
