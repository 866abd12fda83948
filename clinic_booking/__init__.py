"""Clinic appointment booking core: doctors, availability, bookings and status lifecycle."""
from clinic_booking.clinic import Clinic
from clinic_booking.errors import (
    AuthenticationError,
    BookingError,
    ConflictError,
    DuplicateBookingError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
    StorageError,
    ValidationError,
)
from clinic_booking.models import Appointment, BookingEntry, Doctor, Notification, User, UserRole
from clinic_booking.state import AppointmentStatus

__version__ = "1.0.0"

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AuthenticationError",
    "BookingEntry",
    "BookingError",
    "Clinic",
    "ConflictError",
    "Doctor",
    "DuplicateBookingError",
    "InvalidTransitionError",
    "NotFoundError",
    "Notification",
    "SlotUnavailableError",
    "StorageError",
    "User",
    "UserRole",
    "ValidationError",
]
