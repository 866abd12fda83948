"""Doctor directory: profiles, slot templates and blocked dates."""
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from clinic_booking import config
from clinic_booking.errors import ConflictError, NotFoundError, ValidationError
from clinic_booking.events import ChangeBus
from clinic_booking.logging_config import get_logger
from clinic_booking.models import Doctor, generate_id, normalize_time_slot, parse_date
from clinic_booking.storage import Collections

logger = get_logger(__name__)

EDITABLE_FIELDS = ("name", "specialty", "bio", "image")


def find_doctor(
    doctors: Iterable[Doctor],
    doctor_id: str,
    doctor_name: Optional[str] = None
) -> Optional[Doctor]:
    """
    Locate a doctor by id.

    The name is only consulted for old appointment rows that never
    recorded a doctorId.
    """
    doctors = list(doctors)
    if doctor_id:
        return next((d for d in doctors if d.id == doctor_id), None)
    if doctor_name:
        return next((d for d in doctors if d.name == doctor_name), None)
    return None


class DoctorDirectory:
    """Admin-side management of the doctors collection."""

    def __init__(
        self,
        collections: Collections,
        bus: ChangeBus,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.collections = collections
        self.bus = bus
        self.clock = clock

    async def list_doctors(self) -> List[Doctor]:
        """
        All doctors. Seeds the default doctors on an empty store.

        Raises:
            StorageError: If the store fails
        """
        raw = await self.collections.get_raw(config.DOCTORS_KEY)
        if raw is None:
            doctors = [Doctor.model_validate(d) for d in config.DEFAULT_DOCTORS]
            await self.collections.save_doctors(doctors)
            logger.info("doctors_seeded", count=len(doctors))
            return doctors
        return self.collections.decode(config.DOCTORS_KEY, raw, Doctor)

    async def get(self, doctor_id: str) -> Doctor:
        """
        Raises:
            NotFoundError: If no doctor has this id
        """
        doctor = find_doctor(await self.list_doctors(), doctor_id)
        if doctor is None:
            raise NotFoundError(f"Doctor '{doctor_id}' not found")
        return doctor

    async def _update(self, doctor_id: str, mutate: Callable[[Doctor], None]) -> Doctor:
        """Load, mutate one doctor in place, save the whole collection, publish."""
        doctors = await self.list_doctors()
        doctor = find_doctor(doctors, doctor_id)
        if doctor is None:
            raise NotFoundError(f"Doctor '{doctor_id}' not found")

        mutate(doctor)
        await self.collections.save_doctors(doctors)
        self.bus.publish()
        return doctor

    async def add_doctor(
        self,
        name: str,
        specialty: str,
        bio: str = "",
        image: str = "",
        time_slots: Optional[Iterable[str]] = None
    ) -> Doctor:
        """
        Add a doctor.

        Args:
            name: Display name (required)
            specialty: Specialty (required)
            bio: Short biography
            image: Image URL
            time_slots: Slot template, defaults to config.DEFAULT_TIME_SLOTS

        Returns:
            The stored doctor
        """
        if not name or not name.strip():
            raise ValidationError("Doctor name is required")
        if not specialty or not specialty.strip():
            raise ValidationError("Specialty is required")

        slots = []
        for raw in (time_slots if time_slots is not None else config.DEFAULT_TIME_SLOTS):
            slot = normalize_time_slot(raw)
            if slot not in slots:
                slots.append(slot)

        doctor = Doctor(
            id=generate_id("doc"),
            name=name.strip(),
            specialty=specialty.strip(),
            bio=bio,
            image=image,
            time_slots=slots,
        )
        doctors = await self.list_doctors()
        doctors.append(doctor)
        await self.collections.save_doctors(doctors)

        logger.info("doctor_added", doctor_id=doctor.id)
        self.bus.publish()
        return doctor

    async def update_doctor(self, doctor_id: str, **fields) -> Doctor:
        """Edit profile fields (name, specialty, bio, image)."""
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot edit fields: {', '.join(sorted(unknown))}")
        for key in ("name", "specialty"):
            if key in fields and not (fields[key] or "").strip():
                raise ValidationError(f"{key.capitalize()} cannot be empty")

        def apply(doctor: Doctor) -> None:
            for key, value in fields.items():
                setattr(doctor, key, value)

        return await self._update(doctor_id, apply)

    async def remove_doctor(self, doctor_id: str) -> None:
        """
        Delete a doctor. Existing appointments keep their recorded doctor name.

        Raises:
            NotFoundError: If no doctor has this id
        """
        doctors = await self.list_doctors()
        remaining = [d for d in doctors if d.id != doctor_id]
        if len(remaining) == len(doctors):
            raise NotFoundError(f"Doctor '{doctor_id}' not found")

        await self.collections.save_doctors(remaining)
        logger.info("doctor_removed", doctor_id=doctor_id)
        self.bus.publish()

    async def toggle_unavailable_date(self, doctor_id: str, day: str) -> bool:
        """
        Block or unblock a date.

        Blocking a date leaves appointments already confirmed on it
        untouched; they are logged so an admin can follow up.

        Args:
            doctor_id: Doctor id
            day: Date in YYYY-MM-DD format

        Returns:
            True if the date is now unavailable

        Raises:
            ValidationError: If the date is malformed or in the past
        """
        if parse_date(day) < self.clock().date():
            raise ValidationError(f"Cannot change availability of past date {day}")

        state = {}

        def toggle(doctor: Doctor) -> None:
            if day in doctor.unavailable_dates:
                doctor.unavailable_dates.discard(day)
                state["blocked"] = False
            else:
                doctor.unavailable_dates.add(day)
                state["blocked"] = True
                if doctor.bookings.get(day):
                    logger.warning(
                        "blocked_date_has_bookings",
                        doctor_id=doctor.id,
                        date=day,
                        slots=sorted(doctor.bookings[day]),
                    )

        await self._update(doctor_id, toggle)
        logger.info("availability_toggled", doctor_id=doctor_id, date=day, unavailable=state["blocked"])
        return state["blocked"]

    async def add_time_slot(self, doctor_id: str, slot: str) -> Doctor:
        """
        Add a slot to the doctor's template.

        Raises:
            ValidationError: If the label is not a 12h time
            ConflictError: If the slot already exists
        """
        label = normalize_time_slot(slot)

        def add(doctor: Doctor) -> None:
            if label in doctor.time_slots:
                raise ConflictError(f"Time slot {label} already exists")
            doctor.time_slots.append(label)

        return await self._update(doctor_id, add)

    async def remove_time_slot(self, doctor_id: str, slot: str) -> Doctor:
        """
        Remove a slot from the template. Appointments already booked on it
        are not revalidated.

        Raises:
            NotFoundError: If the doctor or slot does not exist
        """
        label = normalize_time_slot(slot)

        def remove(doctor: Doctor) -> None:
            if label not in doctor.time_slots:
                raise NotFoundError(f"Time slot {label} not found")
            doctor.time_slots.remove(label)

        return await self._update(doctor_id, remove)
