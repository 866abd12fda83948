"""Availability resolution for doctor time slots.

Bookable slots for (doctor, date) are derived from:
- the doctor's slot template (time_slots)
- blocked dates (unavailable_dates)
- occupied slots: the bookings mirror plus confirmed appointments

Dates before today are never offerable.
"""
from datetime import date, timedelta
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from clinic_booking import config
from clinic_booking.models import Appointment, Doctor, parse_date
from clinic_booking.state import AppointmentStatus


def occupied_slots(
    doctor: Doctor,
    day: str,
    appointments: Iterable[Appointment] = (),
    exclude_id: Optional[str] = None
) -> Set[str]:
    """
    Slots on `day` already taken for this doctor.

    Union of the bookings mirror and confirmed appointments, so a mirror
    that drifted from the appointment collection still blocks double-booking.

    Args:
        doctor: Doctor record
        day: Date in YYYY-MM-DD format
        appointments: Appointment collection (any doctor)
        exclude_id: Appointment whose own claim should be ignored (reschedule)

    Returns:
        Set of slot labels
    """
    taken = {
        slot for slot, entry in doctor.bookings.get(day, {}).items()
        if exclude_id is None or entry.appointment_id != exclude_id
    }
    for apt in appointments:
        if (
            apt.doctor_id == doctor.id
            and apt.date == day
            and apt.status == AppointmentStatus.CONFIRMED
            and apt.id != exclude_id
        ):
            taken.add(apt.time)
    return taken


def available_slots(
    doctor: Doctor,
    day: str,
    appointments: Iterable[Appointment] = (),
    today: Optional[date] = None,
    exclude_id: Optional[str] = None
) -> Iterator[str]:
    """
    Slots bookable on `day`, in template order, as a lazy iterator.

    The date is checked when called; occupancy is computed on first
    iteration.

    Args:
        doctor: Doctor record
        day: Date in YYYY-MM-DD format
        appointments: Appointment collection used for the occupancy view
        today: Device local date (defaults to date.today())
        exclude_id: Appointment being rescheduled

    Raises:
        ValidationError: If `day` is not a valid YYYY-MM-DD date
    """
    requested = parse_date(day)
    return _free_slots(doctor, day, requested, appointments, today or date.today(), exclude_id)


def _free_slots(
    doctor: Doctor,
    day: str,
    requested: date,
    appointments: Iterable[Appointment],
    today: date,
    exclude_id: Optional[str]
) -> Iterator[str]:
    if requested < today:
        return
    if day in doctor.unavailable_dates:
        return

    taken = occupied_slots(doctor, day, appointments, exclude_id)
    for slot in doctor.time_slots:
        if slot not in taken:
            yield slot


def is_slot_available(
    doctor: Doctor,
    day: str,
    slot: str,
    appointments: Iterable[Appointment] = (),
    today: Optional[date] = None,
    exclude_id: Optional[str] = None
) -> bool:
    """Whether `slot` is among the bookable slots on `day`."""
    return slot in available_slots(doctor, day, appointments, today, exclude_id)


def upcoming_availability(
    doctor: Doctor,
    appointments: Iterable[Appointment] = (),
    start: Optional[date] = None,
    days: int = config.AVAILABILITY_DAYS_RANGE,
    today: Optional[date] = None
) -> Iterator[Tuple[str, List[str]]]:
    """
    Yield (date, slots) for the next `days` dates that offer anything.

    Args:
        doctor: Doctor record
        appointments: Appointment collection
        start: First date to consider (defaults to today)
        days: Horizon in days
        today: Device local date
    """
    today = today or date.today()
    current = start or today
    appointments = list(appointments)

    for offset in range(days):
        day = (current + timedelta(days=offset)).strftime(config.DATE_FORMAT)
        slots = list(available_slots(doctor, day, appointments, today))
        if slots:
            yield day, slots


def marked_dates(doctor: Doctor, today: Optional[date] = None) -> Dict[str, str]:
    """
    Calendar markings for a doctor.

    Returns:
        {date: "unavailable"} for blocked dates today or later
    """
    today_str = (today or date.today()).strftime(config.DATE_FORMAT)
    return {d: "unavailable" for d in sorted(doctor.unavailable_dates) if d >= today_str}
