"""Booking transaction: create a pending appointment.

Flow:
1. Validate date/time input
2. Resolve doctor by id
3. Check slot template, past date, blocked date, occupancy
4. Reject duplicate (user, doctor, date) among non-canceled appointments
5. Write appointments, then the admin notification, as one logical unit
6. Publish the change
"""
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from clinic_booking import config
from clinic_booking.availability import occupied_slots
from clinic_booking.doctors import DoctorDirectory, find_doctor
from clinic_booking.errors import (
    DuplicateBookingError,
    NotFoundError,
    SlotUnavailableError,
    StorageError,
    ValidationError,
)
from clinic_booking.events import ChangeBus
from clinic_booking.logging_config import generate_operation_id, get_logger
from clinic_booking.models import (
    Appointment,
    Doctor,
    User,
    generate_id,
    normalize_time_slot,
    parse_date,
)
from clinic_booking.notifications import NotificationInbox
from clinic_booking.state import AppointmentStatus
from clinic_booking.storage import Collections

logger = get_logger(__name__)


def ensure_bookable(
    doctor: Doctor,
    day: str,
    slot: str,
    appointments: Iterable[Appointment],
    today: date,
    exclude_id: Optional[str] = None
) -> None:
    """
    Check that `slot` on `day` can be claimed.

    Args:
        doctor: Doctor record
        day: Date in YYYY-MM-DD format
        slot: Normalized slot label
        appointments: Current appointment collection
        today: Device local date
        exclude_id: Appointment being moved (its own claim does not count)

    Raises:
        ValidationError: Slot not offered, past date or blocked date
        SlotUnavailableError: Slot occupied by another appointment
    """
    if slot not in doctor.time_slots:
        raise ValidationError(f"{doctor.name} does not offer {slot}")
    if parse_date(day) < today:
        raise ValidationError(f"Date {day} is in the past")
    if day in doctor.unavailable_dates:
        raise ValidationError(f"{doctor.name} is unavailable on {day}")
    if slot in occupied_slots(doctor, day, appointments, exclude_id):
        raise SlotUnavailableError(f"{slot} on {day} is already booked")


def find_duplicate(
    appointments: Iterable[Appointment],
    user_id: str,
    doctor_id: str,
    day: str,
    exclude_id: Optional[str] = None
) -> Optional[Appointment]:
    """Non-canceled appointment holding the same (user, doctor, date), if any."""
    return next(
        (
            apt for apt in appointments
            if apt.is_active
            and apt.id != exclude_id
            and apt.user_id == user_id
            and apt.doctor_id == doctor_id
            and apt.date == day
        ),
        None,
    )


class BookingService:
    """Patient-side creation of appointment requests."""

    def __init__(
        self,
        collections: Collections,
        directory: DoctorDirectory,
        inbox: NotificationInbox,
        bus: ChangeBus,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.collections = collections
        self.directory = directory
        self.inbox = inbox
        self.bus = bus
        self.clock = clock

    async def book(
        self,
        user: User,
        doctor_id: str,
        day: str,
        time: str,
        notes: str = "",
        patient_phone: Optional[str] = None
    ) -> Appointment:
        """
        Create a pending appointment.

        Args:
            user: Patient making the request
            doctor_id: Doctor id
            day: Date in YYYY-MM-DD format
            time: Slot label, e.g. "9:00 AM"
            notes: Free-text notes for the doctor
            patient_phone: Contact number, defaults to the user's

        Returns:
            The stored appointment (status=pending)

        Raises:
            ValidationError: Missing/invalid date or time, slot not offered,
                past or blocked date
            DuplicateBookingError: Active booking with this doctor on this date
            SlotUnavailableError: Slot already confirmed for someone else
            NotFoundError: Unknown doctor
            StorageError: Store failure; nothing is left half-written
        """
        if not day or not time:
            raise ValidationError("Date and time are required")
        if not user.id:
            raise ValidationError("A registered user is required to book")
        parse_date(day)
        slot = normalize_time_slot(time)

        log = logger.bind(
            operation_id=generate_operation_id(),
            user_id=user.id,
            doctor_id=doctor_id,
            date=day,
            time=slot,
        )

        doctor = find_doctor(await self.directory.list_doctors(), doctor_id)
        if doctor is None:
            raise NotFoundError(f"Doctor '{doctor_id}' not found")

        previous = await self.collections.get_raw(config.APPOINTMENTS_KEY)
        appointments = self.collections.decode(config.APPOINTMENTS_KEY, previous, Appointment)

        ensure_bookable(doctor, day, slot, appointments, self.clock().date())

        existing = find_duplicate(appointments, user.id, doctor.id, day)
        if existing is not None:
            log.info("duplicate_booking_rejected", existing_id=existing.id)
            raise DuplicateBookingError(
                f"You already have an appointment with {doctor.name} on {day}",
                existing_id=existing.id,
            )

        now = self.clock().isoformat(timespec="seconds")
        appointment = Appointment(
            id=generate_id("apt"),
            user_id=user.id,
            doctor_id=doctor.id,
            doctor_name=doctor.name,
            specialty=doctor.specialty,
            date=day,
            time=slot,
            status=AppointmentStatus.PENDING,
            patient_name=user.name or user.username,
            patient_email=user.email,
            patient_phone=patient_phone if patient_phone is not None else user.contact_number,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        appointments.append(appointment)
        await self.collections.save_appointments(appointments)

        try:
            await self.inbox.push(
                "New Appointment Request",
                f"{appointment.patient_name} requested {doctor.name} on {day} at {slot}.",
                appointment_id=appointment.id,
                publish=False,
            )
        except StorageError:
            log.error("booking_rolled_back", appointment_id=appointment.id)
            await self.collections.restore_raw(config.APPOINTMENTS_KEY, previous)
            raise

        log.info("appointment_booked", appointment_id=appointment.id)
        self.bus.publish()
        return appointment
