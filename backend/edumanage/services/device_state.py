from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from edumanage.core.exceptions import DeviceStateError
from edumanage.models.device_state import DeviceState
from edumanage.services.ports import DeviceStorage

logger = logging.getLogger(__name__)

OTP_VERIFIED_KEY = "otp_verified"
OTP_VERIFIED_USER_KEY = "otp_verified_user"
OTP_VERIFIED_ROLE_KEY = "otp_verified_role"


class SqlDeviceStorage:
    """Device-scoped key/value storage persisted in `device_state`.

    Every write commits on its own so the value survives the request even if
    a later step of the same action fails.
    """

    def __init__(self, db: Session, device_id: str) -> None:
        self._db = db
        self._device_id = device_id

    def get(self, key: str) -> str | None:
        try:
            row = self._db.get(DeviceState, (self._device_id, key))
        except SQLAlchemyError as exc:
            logger.exception("Device state read failed for %s/%s", self._device_id, key)
            raise DeviceStateError() from exc
        return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        try:
            row = self._db.get(DeviceState, (self._device_id, key))
            if row is None:
                self._db.add(DeviceState(device_id=self._device_id, key=key, value=value))
            else:
                row.value = value
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("Device state write failed for %s/%s", self._device_id, key)
            raise DeviceStateError() from exc

    def remove(self, key: str) -> None:
        try:
            row = self._db.get(DeviceState, (self._device_id, key))
            if row is None:
                return
            self._db.delete(row)
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception("Device state delete failed for %s/%s", self._device_id, key)
            raise DeviceStateError() from exc


class MemoryDeviceStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


class VerificationFlag:
    """Marks that this device already cleared the second factor for the current login.

    The flag is bound to the user who cleared it; another principal presenting
    a token on the same device does not inherit it. The role at clearance time
    is kept so the reload shortcut can still land by role without a lookup.
    """

    def __init__(self, storage: DeviceStorage) -> None:
        self._storage = storage

    def is_verified(self, user_id: str | None) -> bool:
        if not user_id or self._storage.get(OTP_VERIFIED_KEY) != "true":
            return False
        return self._storage.get(OTP_VERIFIED_USER_KEY) == user_id

    def verified_role(self, user_id: str | None) -> str | None:
        if not self.is_verified(user_id):
            return None
        return self._storage.get(OTP_VERIFIED_ROLE_KEY)

    def mark_verified(self, user_id: str, role: str | None = None) -> None:
        if role is not None:
            self._storage.set(OTP_VERIFIED_ROLE_KEY, role)
        elif self._storage.get(OTP_VERIFIED_USER_KEY) != user_id:
            self._storage.remove(OTP_VERIFIED_ROLE_KEY)
        self._storage.set(OTP_VERIFIED_USER_KEY, user_id)
        self._storage.set(OTP_VERIFIED_KEY, "true")

    def clear(self) -> None:
        self._storage.remove(OTP_VERIFIED_KEY)
        self._storage.remove(OTP_VERIFIED_USER_KEY)
        self._storage.remove(OTP_VERIFIED_ROLE_KEY)
