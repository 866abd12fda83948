"""Configuration for the clinic booking core.

Business constants live here - modify as needed without touching code.
Environment-driven settings are read through ``load_settings()``.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


# Storage keys (one serialized collection per key)
USERS_KEY = "users"
DOCTORS_KEY = "doctors"
APPOINTMENTS_KEY = "appointments"
ADMIN_NOTIFICATIONS_KEY = "adminNotifications"
PATIENT_NOTIFICATIONS_PREFIX = "notifications_"
CURRENT_USER_KEY = "currentUser"
USER_ROLE_KEY = "userRole"

# Formats
DATE_FORMAT = "%Y-%m-%d"  # ISO format: YYYY-MM-DD
TIME_SLOT_FORMAT = "%I:%M %p"  # 12h format: 9:00 AM

DEFAULT_TIME_SLOTS = [
    "8:00 AM", "9:30 AM", "11:00 AM",
    "1:30 PM", "3:00 PM", "4:30 PM",
]

# Seeded the first time the doctor directory is read from an empty store
DEFAULT_DOCTORS = [
    {
        "id": "1",
        "name": "Dr. Sarah Johnson",
        "specialty": "Ophthalmology",
        "bio": "Specializes in cataract surgery and glaucoma treatment with 10 years of experience.",
        "image": "https://example.com/doctor1.jpg",
        "unavailableDates": {},
        "timeSlots": list(DEFAULT_TIME_SLOTS),
    },
    {
        "id": "2",
        "name": "Dr. Michael Lee",
        "specialty": "Cardiology",
        "bio": "Expert in heart failure management and cardiac imaging.",
        "image": "https://example.com/doctor2.jpg",
        "unavailableDates": {},
        "timeSlots": list(DEFAULT_TIME_SLOTS),
    },
]

# Availability browsing horizon (days from today)
AVAILABILITY_DAYS_RANGE = 14

# Accounts
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72  # bcrypt input limit
DEFAULT_BCRYPT_ROUNDS = 12


@dataclass(frozen=True)
class Settings:
    """Environment-driven settings."""
    database_url: Optional[str] = None
    log_level: str = "INFO"
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS


def load_settings(dotenv: bool = True) -> Settings:
    """
    Read settings from the environment (and a .env file when present).

    Variables:
        CLINIC_DATABASE_URL: SQLAlchemy URL for the persistent store.
            Unset means an in-memory store.
        CLINIC_LOG_LEVEL: DEBUG, INFO, WARNING or ERROR.
        CLINIC_BCRYPT_ROUNDS: bcrypt cost factor.

    Returns:
        Settings instance
    """
    if dotenv:
        load_dotenv()

    return Settings(
        database_url=os.getenv("CLINIC_DATABASE_URL") or None,
        log_level=os.getenv("CLINIC_LOG_LEVEL", "INFO"),
        bcrypt_rounds=int(os.getenv("CLINIC_BCRYPT_ROUNDS", str(DEFAULT_BCRYPT_ROUNDS))),
    )
