"""Typed access to the persisted collections.

Every collection lives under one fixed key as a JSON array. Reads parse the
whole array and default missing fields through the record models; writes
serialize the entire collection (last write wins).
"""
import json
from typing import Iterable, List, Optional, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from clinic_booking import config
from clinic_booking.errors import StorageError
from clinic_booking.logging_config import get_logger
from clinic_booking.models import Appointment, Doctor, Notification, Record, User
from clinic_booking.storage.store import KeyValueStore

logger = get_logger(__name__)

R = TypeVar("R", bound=Record)


def patient_notifications_key(email: str) -> str:
    """Key of a patient's notification list."""
    return f"{config.PATIENT_NOTIFICATIONS_PREFIX}{email.strip().lower()}"


class Collections:
    """
    Repository over a KeyValueStore.

    Any failure of the underlying store, and any stored value that cannot be
    decoded into records, surfaces as StorageError.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_raw(self, key: str) -> Optional[str]:
        """Read the serialized value under key."""
        try:
            return await self.store.get(key)
        except Exception as e:
            logger.error("storage_read_failed", key=key, error=str(e))
            raise StorageError(f"Failed to read '{key}'") from e

    async def set_raw(self, key: str, value: str) -> None:
        """Write a serialized value under key."""
        try:
            await self.store.set(key, value)
        except Exception as e:
            logger.error("storage_write_failed", key=key, error=str(e))
            raise StorageError(f"Failed to write '{key}'") from e

    async def restore_raw(self, key: str, value: Optional[str]) -> None:
        """Put back a value captured with get_raw (None removes the key)."""
        if value is None:
            await self.remove(key)
        else:
            await self.set_raw(key, value)

    async def remove(self, *keys: str) -> None:
        try:
            await self.store.remove_many(list(keys))
        except Exception as e:
            logger.error("storage_remove_failed", keys=list(keys), error=str(e))
            raise StorageError(f"Failed to remove {list(keys)}") from e

    @staticmethod
    def decode(key: str, raw: Optional[str], model: Type[R]) -> List[R]:
        """
        Parse a serialized collection.

        Args:
            key: Storage key (for error messages)
            raw: Stored JSON text, or None when the key is absent
            model: Record model of the collection

        Returns:
            List of records, empty when the key is absent

        Raises:
            StorageError: If the value is not a JSON array of objects
        """
        if raw is None:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt JSON under '{key}'") from e

        if items is None:
            return []
        if not isinstance(items, list):
            raise StorageError(f"Expected a list under '{key}', got {type(items).__name__}")

        records = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise StorageError(f"Corrupt record #{index} under '{key}'")
            try:
                records.append(model.model_validate(item))
            except PydanticValidationError as e:
                raise StorageError(f"Corrupt record #{index} under '{key}'") from e
        return records

    @staticmethod
    def encode(records: Iterable[Record]) -> str:
        return json.dumps([r.to_record() for r in records])

    async def load(self, key: str, model: Type[R]) -> List[R]:
        return self.decode(key, await self.get_raw(key), model)

    async def save(self, key: str, records: Iterable[Record]) -> None:
        await self.set_raw(key, self.encode(records))

    # Named collections

    async def load_users(self) -> List[User]:
        return await self.load(config.USERS_KEY, User)

    async def save_users(self, users: Iterable[User]) -> None:
        await self.save(config.USERS_KEY, users)

    async def load_doctors(self) -> List[Doctor]:
        return await self.load(config.DOCTORS_KEY, Doctor)

    async def save_doctors(self, doctors: Iterable[Doctor]) -> None:
        await self.save(config.DOCTORS_KEY, doctors)

    async def load_appointments(self) -> List[Appointment]:
        return await self.load(config.APPOINTMENTS_KEY, Appointment)

    async def save_appointments(self, appointments: Iterable[Appointment]) -> None:
        await self.save(config.APPOINTMENTS_KEY, appointments)

    async def load_admin_notifications(self) -> List[Notification]:
        return await self.load(config.ADMIN_NOTIFICATIONS_KEY, Notification)

    async def save_admin_notifications(self, notifications: Iterable[Notification]) -> None:
        await self.save(config.ADMIN_NOTIFICATIONS_KEY, notifications)

    async def load_patient_notifications(self, email: str) -> List[Notification]:
        return await self.load(patient_notifications_key(email), Notification)

    async def save_patient_notifications(self, email: str, notifications: Iterable[Notification]) -> None:
        await self.save(patient_notifications_key(email), notifications)

    # Session

    async def load_current_user(self) -> Optional[User]:
        raw = await self.get_raw(config.CURRENT_USER_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt JSON under '{config.CURRENT_USER_KEY}'") from e
        if not isinstance(data, dict):
            return None
        return User.model_validate(data)

    async def save_current_user(self, user: User) -> None:
        await self.set_raw(config.CURRENT_USER_KEY, json.dumps(user.to_record()))
        await self.set_raw(config.USER_ROLE_KEY, user.role.value)

    async def clear_session(self) -> None:
        await self.remove(config.CURRENT_USER_KEY, config.USER_ROLE_KEY)
