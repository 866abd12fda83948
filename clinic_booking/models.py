"""Record schemas for the persisted collections.

The store holds raw semi-structured JSON with no schema enforcement, so
every model:
- keeps the original camelCase keys as aliases
- ignores unknown keys
- defaults any missing (or null) field instead of failing
"""
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Set

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from clinic_booking import config
from clinic_booking.errors import ValidationError
from clinic_booking.state import AppointmentStatus


def generate_id(prefix: str) -> str:
    """Generate record id in format: <prefix>-<12 hex chars>."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def parse_date(value: str) -> date:
    """
    Parse a calendar date string.

    Args:
        value: Date in YYYY-MM-DD format

    Returns:
        date instance

    Raises:
        ValidationError: If the date is missing or malformed
    """
    if not value:
        raise ValidationError("Date is required")
    try:
        return datetime.strptime(value, config.DATE_FORMAT).date()
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD") from e


def normalize_time_slot(value: str) -> str:
    """
    Canonicalize a 12h time-of-day label.

    "09:00 am", "9:00AM" and "9:00 AM" all become "9:00 AM" so slot
    labels compare as plain strings.

    Raises:
        ValidationError: If the label is missing or not a 12h time
    """
    if not value or not value.strip():
        raise ValidationError("Time is required")
    raw = value.strip().upper()
    if len(raw) > 2 and raw[-2:] in ("AM", "PM") and raw[-3] != " ":
        raw = f"{raw[:-2]} {raw[-2:]}"
    try:
        parsed = datetime.strptime(raw, config.TIME_SLOT_FORMAT)
    except ValueError as e:
        raise ValidationError(f"Invalid time '{value}'. Use a 12h time like 9:00 AM") from e

    period = "AM" if parsed.hour < 12 else "PM"
    hour_12 = parsed.hour if parsed.hour <= 12 else parsed.hour - 12
    hour_12 = 12 if hour_12 == 0 else hour_12
    return f"{hour_12}:{parsed.minute:02d} {period}"


def _stored_slot(value: Any) -> Any:
    # Labels saved as typed ("2:15pm") read back canonical; unparseable ones unchanged
    if not isinstance(value, str):
        return value
    try:
        return normalize_time_slot(value)
    except ValidationError:
        return value.strip()


class Record(BaseModel):
    """Base for stored records: alias-aware, lenient on input."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        # null in storage means "use the default"
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the stored (camelCase) shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserRole(str, Enum):
    """User roles."""
    PATIENT = "patient"
    ADMIN = "admin"


class User(Record):
    """Registered user. Unique by username and by email (case-insensitive)."""
    id: str = ""
    username: str = ""
    name: str = ""
    email: str = ""
    password_hash: Optional[str] = Field(None, alias="passwordHash")
    # Plaintext password from older installs; replaced by a hash on next login
    legacy_password: Optional[str] = Field(None, alias="password")
    contact_number: str = Field("", alias="contactNumber")
    address: str = ""
    birthday: str = ""
    registration_date: str = Field("", alias="registrationDate")
    role: UserRole = UserRole.PATIENT

    @field_validator("email", mode="before")
    @classmethod
    def _lower_email(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("role", mode="before")
    @classmethod
    def _default_role(cls, v: Any) -> Any:
        if isinstance(v, str) and v.strip().lower() == "admin":
            return UserRole.ADMIN
        return UserRole.PATIENT


class BookingEntry(Record):
    """Occupant of doctor.bookings[date][time]."""
    patient_name: str = Field("", alias="patientName")
    patient_email: str = Field("", alias="patientEmail")
    patient_phone: str = Field("", alias="patientPhone")
    notes: str = ""
    appointment_id: Optional[str] = Field(None, alias="appointmentId")


class Doctor(Record):
    """
    Doctor with a slot template, blocked dates and the confirmed-booking mirror.

    unavailable_dates is stored as {"2025-03-15": true} like older installs;
    a plain list is accepted on read.
    """
    id: str = ""
    name: str = ""
    specialty: str = ""
    bio: str = ""
    image: str = ""
    time_slots: list[str] = Field(default_factory=list, alias="timeSlots")
    unavailable_dates: Set[str] = Field(default_factory=set, alias="unavailableDates")
    bookings: Dict[str, Dict[str, BookingEntry]] = Field(default_factory=dict)

    @field_validator("time_slots", mode="before")
    @classmethod
    def _coerce_slots(cls, v: Any) -> Any:
        if not isinstance(v, (list, tuple)):
            return []
        slots = []
        for raw in v:
            if not isinstance(raw, str) or not raw.strip():
                continue
            try:
                slot = normalize_time_slot(raw)
            except ValidationError:
                # Not a time, so never bookable
                continue
            if slot not in slots:
                slots.append(slot)
        return slots

    @field_validator("unavailable_dates", mode="before")
    @classmethod
    def _coerce_dates(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {d for d, flagged in v.items() if flagged}
        if isinstance(v, (list, tuple, set)):
            return {d for d in v if isinstance(d, str)}
        return set()

    @field_validator("bookings", mode="before")
    @classmethod
    def _coerce_bookings(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return {}
        return {
            d: {
                _stored_slot(t): entry for t, entry in slots.items()
                if isinstance(entry, (dict, BookingEntry))
            }
            for d, slots in v.items()
            if isinstance(slots, dict)
        }

    @field_serializer("unavailable_dates")
    def _dump_dates(self, dates: Set[str]) -> Dict[str, bool]:
        return {d: True for d in sorted(dates)}


class Appointment(Record):
    """One row per booking attempt."""
    id: str = ""
    user_id: str = Field("", alias="userId")
    doctor_id: str = Field("", alias="doctorId")
    doctor_name: str = Field(
        "",
        validation_alias=AliasChoices("doctorName", "doctor", "doctor_name"),
        serialization_alias="doctorName",
    )
    specialty: str = ""
    date: str = ""
    time: str = ""
    status: AppointmentStatus = AppointmentStatus.PENDING
    patient_name: str = Field("", alias="patientName")
    patient_email: str = Field("", alias="patientEmail")
    patient_phone: str = Field("", alias="patientPhone")
    notes: str = ""
    created_at: str = Field("", alias="createdAt")
    updated_at: str = Field("", alias="updatedAt")

    @field_validator("time", mode="before")
    @classmethod
    def _normalize_time(cls, v: Any) -> Any:
        return _stored_slot(v) if v else v

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v: Any) -> AppointmentStatus:
        return AppointmentStatus.normalize(v)

    @property
    def is_active(self) -> bool:
        """Whether the appointment still holds its (user, doctor, date) claim."""
        return self.status != AppointmentStatus.CANCELED

    def booking_entry(self) -> BookingEntry:
        """Build the mirror entry written into doctor.bookings on approval."""
        return BookingEntry(
            patient_name=self.patient_name,
            patient_email=self.patient_email,
            patient_phone=self.patient_phone,
            notes=self.notes,
            appointment_id=self.id,
        )


class Notification(Record):
    """Admin-facing or patient-facing notification."""
    id: str = ""
    title: str = ""
    message: str = ""
    read: bool = False
    timestamp: str = ""
    appointment_id: Optional[str] = Field(None, alias="appointmentId")
