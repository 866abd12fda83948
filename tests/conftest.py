"""Shared test fixtures."""
import json
from datetime import datetime

import pytest

from clinic_booking import Clinic
from clinic_booking.models import User
from clinic_booking.storage import InMemoryStore

# Device "now" for every test: dates before 2025-03-01 are in the past
FIXED_NOW = datetime(2025, 3, 1, 9, 0, 0)


class FlakyStore(InMemoryStore):
    """In-memory store that fails reads/writes on selected keys."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail_get = set()
        self.fail_set = set()

    async def get(self, key):
        if key in self.fail_get:
            raise IOError(f"disk error reading {key}")
        return await super().get(key)

    async def set(self, key, value):
        if key in self.fail_set:
            raise IOError(f"disk error writing {key}")
        await super().set(key, value)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def doctor_record():
    """Dr. A: two slots, nothing blocked, nothing booked."""
    return {
        "id": "doc-a",
        "name": "Dr. A",
        "specialty": "Cardiology",
        "bio": "",
        "image": "",
        "timeSlots": ["9:00 AM", "10:00 AM"],
        "unavailableDates": {},
    }


@pytest.fixture
def store(doctor_record):
    """FlakyStore pre-loaded with Dr. A."""
    return FlakyStore({"doctors": json.dumps([doctor_record])})


@pytest.fixture
def clinic(store, clock):
    """Clinic wired to the shared store with a fixed clock."""
    return Clinic(store, clock=clock, bcrypt_rounds=4)


@pytest.fixture
def patient() -> User:
    return User(
        id="usr-1",
        username="jdoe",
        name="John Doe",
        email="john@example.com",
        contact_number="555-1234567",
    )


@pytest.fixture
def other_patient() -> User:
    return User(
        id="usr-2",
        username="asmith",
        name="Ann Smith",
        email="ann@example.com",
        contact_number="555-7654321",
    )


@pytest.fixture
def stored(store):
    """Read a collection straight from the store as plain JSON."""
    def _read(key):
        raw = store.data.get(key)
        return json.loads(raw) if raw is not None else None
    return _read
