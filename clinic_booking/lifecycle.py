"""Appointment status lifecycle.

State machine (per appointment):
    pending --approve--> confirmed
    pending --decline--> declined
    {pending, confirmed, declined} --cancel--> canceled   (terminal)
    reschedule: self-loop on {pending, confirmed, declined}

The doctor.bookings mirror is kept in lockstep with confirmed appointments:
approve writes the entry, cancel/delete retract it, reschedule moves it.
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from clinic_booking import config
from clinic_booking.availability import occupied_slots
from clinic_booking.booking import ensure_bookable, find_duplicate
from clinic_booking.doctors import DoctorDirectory, find_doctor
from clinic_booking.errors import (
    ConflictError,
    DuplicateBookingError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
    StorageError,
    ValidationError,
)
from clinic_booking.events import ChangeBus
from clinic_booking.logging_config import generate_operation_id, get_logger
from clinic_booking.models import Appointment, Doctor, normalize_time_slot, parse_date
from clinic_booking.notifications import NotificationInbox
from clinic_booking.state import RESCHEDULABLE, AppointmentStatus, validate_transition
from clinic_booking.storage import Collections

logger = get_logger(__name__)


def retract_mirror(doctor: Doctor, appointment: Appointment) -> bool:
    """
    Remove the bookings entry that belongs to `appointment`.

    Entries written before appointment ids were recorded are matched by
    patient email instead.

    Returns:
        True if an entry was removed
    """
    day_bookings = doctor.bookings.get(appointment.date)
    if not day_bookings:
        return False
    entry = day_bookings.get(appointment.time)
    if entry is None:
        return False

    owned = (
        entry.appointment_id == appointment.id
        if entry.appointment_id
        else entry.patient_email == appointment.patient_email
    )
    if not owned:
        return False

    del day_bookings[appointment.time]
    if not day_bookings:
        del doctor.bookings[appointment.date]
    return True


class StatusLifecycle:
    """Admin approve/decline/delete and patient cancel/reschedule."""

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

    # Loading helpers

    async def _load_appointments(self) -> Tuple[Optional[str], List[Appointment]]:
        raw = await self.collections.get_raw(config.APPOINTMENTS_KEY)
        return raw, self.collections.decode(config.APPOINTMENTS_KEY, raw, Appointment)

    async def _load_doctors(self) -> Tuple[Optional[str], List[Doctor]]:
        doctors = await self.directory.list_doctors()
        return await self.collections.get_raw(config.DOCTORS_KEY), doctors

    @staticmethod
    def _find(appointments: List[Appointment], appointment_id: str) -> Appointment:
        appointment = next((a for a in appointments if a.id == appointment_id), None)
        if appointment is None:
            raise NotFoundError(f"Appointment '{appointment_id}' not found")
        return appointment

    @staticmethod
    def _check_transition(appointment: Appointment, intended: AppointmentStatus) -> None:
        if not validate_transition(appointment.status, intended):
            raise InvalidTransitionError(
                f"Cannot change appointment {appointment.id} from "
                f"{appointment.status.value} to {intended.value}",
                current=appointment.status.value,
                intended=intended.value,
            )

    def _touch(self, appointment: Appointment) -> None:
        appointment.updated_at = self.clock().isoformat(timespec="seconds")

    async def _rollback(self, snapshots: Dict[str, Optional[str]]) -> None:
        for key, raw in snapshots.items():
            await self.collections.restore_raw(key, raw)

    async def _notify(
        self,
        snapshots: Dict[str, Optional[str]],
        title: str,
        message: str,
        appointment: Appointment,
        to_patient: bool
    ) -> None:
        """Push the notification that completes a write; undo the writes if it fails."""
        email = appointment.patient_email if to_patient else None
        if to_patient and not email:
            logger.warning("patient_notification_skipped", appointment_id=appointment.id)
            return
        try:
            await self.inbox.push(
                title, message, email=email, appointment_id=appointment.id, publish=False
            )
        except StorageError:
            logger.error("status_change_rolled_back", appointment_id=appointment.id, title=title)
            await self._rollback(snapshots)
            raise

    # Queries

    async def get(self, appointment_id: str) -> Appointment:
        _, appointments = await self._load_appointments()
        return self._find(appointments, appointment_id)

    async def list_all(self, status: Optional[AppointmentStatus] = None) -> List[Appointment]:
        """All appointments, optionally filtered by status."""
        _, appointments = await self._load_appointments()
        if status is None:
            return appointments
        return [a for a in appointments if a.status == status]

    async def list_for_user(
        self,
        user_id: str,
        status: Optional[AppointmentStatus] = None
    ) -> List[Appointment]:
        """A patient's appointment history."""
        return [a for a in await self.list_all(status) if a.user_id == user_id]

    # Transitions

    async def approve(self, appointment_id: str) -> Appointment:
        """
        Confirm a pending appointment and mirror it into doctor.bookings.

        Raises:
            NotFoundError: Unknown appointment or doctor
            InvalidTransitionError: Appointment is not pending
            ConflictError: Date blocked, or slot confirmed for someone else
            StorageError: Store failure (previous state restored)
        """
        log = logger.bind(operation_id=generate_operation_id(), appointment_id=appointment_id)

        appointments_raw, appointments = await self._load_appointments()
        appointment = self._find(appointments, appointment_id)
        self._check_transition(appointment, AppointmentStatus.CONFIRMED)

        doctors_raw, doctors = await self._load_doctors()
        doctor = find_doctor(doctors, appointment.doctor_id, appointment.doctor_name)
        if doctor is None:
            raise NotFoundError(f"Doctor for appointment '{appointment_id}' not found")

        if appointment.date in doctor.unavailable_dates:
            raise ConflictError(f"{doctor.name} is unavailable on {appointment.date}")
        if appointment.time in occupied_slots(doctor, appointment.date, appointments, appointment.id):
            raise SlotUnavailableError(
                f"{appointment.time} on {appointment.date} is already confirmed for another patient"
            )

        appointment.doctor_id = doctor.id
        appointment.status = AppointmentStatus.CONFIRMED
        self._touch(appointment)
        doctor.bookings.setdefault(appointment.date, {})[appointment.time] = appointment.booking_entry()

        snapshots = {config.DOCTORS_KEY: doctors_raw}
        await self.collections.save_doctors(doctors)
        try:
            await self.collections.save_appointments(appointments)
        except StorageError:
            await self._rollback(snapshots)
            raise
        snapshots[config.APPOINTMENTS_KEY] = appointments_raw

        await self._notify(
            snapshots,
            "Appointment Confirmed",
            f"Your appointment with {doctor.name} on {appointment.date} at {appointment.time} is confirmed.",
            appointment,
            to_patient=True,
        )

        log.info("appointment_approved", doctor_id=doctor.id, date=appointment.date, time=appointment.time)
        self.bus.publish()
        return appointment

    async def decline(self, appointment_id: str) -> Appointment:
        """
        Decline a pending appointment. The slot stays free.

        Raises:
            NotFoundError: Unknown appointment
            InvalidTransitionError: Appointment is not pending
        """
        appointments_raw, appointments = await self._load_appointments()
        appointment = self._find(appointments, appointment_id)
        self._check_transition(appointment, AppointmentStatus.DECLINED)

        appointment.status = AppointmentStatus.DECLINED
        self._touch(appointment)
        await self.collections.save_appointments(appointments)

        await self._notify(
            {config.APPOINTMENTS_KEY: appointments_raw},
            "Appointment Declined",
            f"Your request for {appointment.doctor_name} on {appointment.date} "
            f"at {appointment.time} was declined.",
            appointment,
            to_patient=True,
        )

        logger.info("appointment_declined", appointment_id=appointment_id)
        self.bus.publish()
        return appointment

    async def _release_mirror(
        self,
        appointment: Appointment,
        snapshots: Dict[str, Optional[str]]
    ) -> None:
        """Retract the confirmed appointment's mirror entry and save doctors."""
        doctors_raw, doctors = await self._load_doctors()
        doctor = find_doctor(doctors, appointment.doctor_id, appointment.doctor_name)
        if doctor is None:
            logger.warning("mirror_doctor_missing", appointment_id=appointment.id)
            return
        if retract_mirror(doctor, appointment):
            await self.collections.save_doctors(doctors)
            snapshots[config.DOCTORS_KEY] = doctors_raw

    async def cancel(self, appointment_id: str) -> Appointment:
        """
        Cancel an appointment (patient-initiated). canceled is terminal.

        Raises:
            NotFoundError: Unknown appointment
            InvalidTransitionError: Already canceled
        """
        appointments_raw, appointments = await self._load_appointments()
        appointment = self._find(appointments, appointment_id)
        self._check_transition(appointment, AppointmentStatus.CANCELED)
        was_confirmed = appointment.status == AppointmentStatus.CONFIRMED

        snapshots: Dict[str, Optional[str]] = {}
        if was_confirmed:
            await self._release_mirror(appointment, snapshots)

        appointment.status = AppointmentStatus.CANCELED
        self._touch(appointment)
        try:
            await self.collections.save_appointments(appointments)
        except StorageError:
            await self._rollback(snapshots)
            raise
        snapshots[config.APPOINTMENTS_KEY] = appointments_raw

        await self._notify(
            snapshots,
            "Appointment Canceled",
            f"{appointment.patient_name} canceled {appointment.doctor_name} "
            f"on {appointment.date} at {appointment.time}.",
            appointment,
            to_patient=False,
        )

        logger.info("appointment_canceled", appointment_id=appointment_id, was_confirmed=was_confirmed)
        self.bus.publish()
        return appointment

    async def reschedule(self, appointment_id: str, new_date: str, new_time: str) -> Appointment:
        """
        Move an appointment to a new date/time in place.

        The new date is validated like a fresh booking. Id and status are
        unchanged; a confirmed appointment carries its bookings entry to the
        new slot. On any failure nothing is written.

        Raises:
            ValidationError: Missing/invalid input, past or blocked date,
                slot not offered
            SlotUnavailableError: Slot confirmed for someone else
            DuplicateBookingError: Patient already holds that doctor/date
            InvalidTransitionError: Appointment is canceled
            NotFoundError: Unknown appointment or doctor
        """
        if not new_date or not new_time:
            raise ValidationError("Date and time are required")
        parse_date(new_date)
        slot = normalize_time_slot(new_time)

        appointments_raw, appointments = await self._load_appointments()
        appointment = self._find(appointments, appointment_id)
        if appointment.status not in RESCHEDULABLE:
            raise InvalidTransitionError(
                f"Cannot reschedule {appointment.status.value} appointment {appointment_id}",
                current=appointment.status.value,
                intended=appointment.status.value,
            )

        doctors_raw, doctors = await self._load_doctors()
        doctor = find_doctor(doctors, appointment.doctor_id, appointment.doctor_name)
        if doctor is None:
            raise NotFoundError(f"Doctor for appointment '{appointment_id}' not found")

        ensure_bookable(doctor, new_date, slot, appointments, self.clock().date(), exclude_id=appointment.id)
        existing = find_duplicate(
            appointments, appointment.user_id, doctor.id, new_date, exclude_id=appointment.id
        )
        if existing is not None:
            raise DuplicateBookingError(
                f"You already have an appointment with {doctor.name} on {new_date}",
                existing_id=existing.id,
            )

        old_date, old_time = appointment.date, appointment.time
        snapshots: Dict[str, Optional[str]] = {}
        if appointment.status == AppointmentStatus.CONFIRMED:
            retract_mirror(doctor, appointment)
            appointment.date, appointment.time = new_date, slot
            doctor.bookings.setdefault(new_date, {})[slot] = appointment.booking_entry()
            await self.collections.save_doctors(doctors)
            snapshots[config.DOCTORS_KEY] = doctors_raw
        else:
            appointment.date, appointment.time = new_date, slot

        appointment.doctor_id = doctor.id
        self._touch(appointment)
        try:
            await self.collections.save_appointments(appointments)
        except StorageError:
            await self._rollback(snapshots)
            raise
        snapshots[config.APPOINTMENTS_KEY] = appointments_raw

        await self._notify(
            snapshots,
            "Appointment Rescheduled",
            f"{appointment.patient_name} moved {doctor.name} from {old_date} {old_time} "
            f"to {new_date} {slot}.",
            appointment,
            to_patient=False,
        )

        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment_id,
            status=appointment.status.value,
            old_date=old_date,
            new_date=new_date,
        )
        self.bus.publish()
        return appointment

    async def delete(self, appointment_id: str) -> None:
        """
        Admin hard delete. Retracts the bookings entry of a confirmed appointment.

        Raises:
            NotFoundError: Unknown appointment
        """
        appointments_raw, appointments = await self._load_appointments()
        appointment = self._find(appointments, appointment_id)

        snapshots: Dict[str, Optional[str]] = {}
        if appointment.status == AppointmentStatus.CONFIRMED:
            await self._release_mirror(appointment, snapshots)

        remaining = [a for a in appointments if a.id != appointment_id]
        try:
            await self.collections.save_appointments(remaining)
        except StorageError:
            await self._rollback(snapshots)
            raise

        logger.info("appointment_deleted", appointment_id=appointment_id)
        self.bus.publish()
