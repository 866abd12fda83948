"""Status transitions and the doctor.bookings mirror."""
import json
from datetime import date

import pytest

from clinic_booking.availability import available_slots
from clinic_booking.errors import (
    ConflictError,
    DuplicateBookingError,
    InvalidTransitionError,
    NotFoundError,
    SlotUnavailableError,
    StorageError,
    ValidationError,
)
from clinic_booking.state import AppointmentStatus

TODAY = date(2025, 3, 1)


@pytest.fixture
def lifecycle(clinic):
    return clinic.lifecycle


@pytest.fixture
async def pending(clinic, patient):
    """U1 holds a pending 9:00 AM appointment with Dr. A on 2025-03-10."""
    return await clinic.booking.book(patient, "doc-a", "2025-03-10", "9:00 AM", notes="checkup")


@pytest.fixture
def doctor_a(clinic):
    async def _load():
        return await clinic.doctors.get("doc-a")
    return _load


class TestApprove:

    async def test_approve_mirrors_booking(self, lifecycle, pending, doctor_a, stored):
        confirmed = await lifecycle.approve(pending.id)

        assert confirmed.status == AppointmentStatus.CONFIRMED
        entry = stored("doctors")[0]["bookings"]["2025-03-10"]["9:00 AM"]
        assert entry["patientName"] == "John Doe"
        assert entry["patientEmail"] == "john@example.com"
        assert entry["appointmentId"] == pending.id
        assert list(available_slots(await doctor_a(), "2025-03-10", today=TODAY)) == ["10:00 AM"]

    async def test_approve_notifies_patient(self, lifecycle, pending, clinic):
        await lifecycle.approve(pending.id)

        titles = [n.title for n in await clinic.inbox.list("john@example.com")]
        assert titles == ["Appointment Confirmed"]

    async def test_approve_twice_rejected(self, lifecycle, pending):
        await lifecycle.approve(pending.id)
        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.approve(pending.id)
        assert exc_info.value.current == "confirmed"

    async def test_approve_on_blocked_date_rejected(self, lifecycle, pending, clinic, stored):
        await clinic.doctors.toggle_unavailable_date("doc-a", "2025-03-10")

        with pytest.raises(ConflictError):
            await lifecycle.approve(pending.id)

        assert stored("appointments")[0]["status"] == "pending"

    async def test_approve_occupied_slot_rejected(self, lifecycle, pending, clinic, other_patient):
        second = await clinic.booking.book(other_patient, "doc-a", "2025-03-10", "9:00 AM")
        await lifecycle.approve(pending.id)

        with pytest.raises(SlotUnavailableError):
            await lifecycle.approve(second.id)
        assert (await lifecycle.get(second.id)).status == AppointmentStatus.PENDING

    async def test_approve_falls_back_to_doctor_name(self, lifecycle, store, stored):
        """Rows written before doctorId existed are matched by doctor name."""
        store.data["appointments"] = json.dumps([{
            "id": "apt-old", "userId": "usr-1", "doctor": "Dr. A",
            "date": "2025-03-12", "time": "10:00 AM", "status": "pending",
            "patientEmail": "john@example.com",
        }])

        confirmed = await lifecycle.approve("apt-old")

        assert confirmed.doctor_id == "doc-a"
        assert "10:00 AM" in stored("doctors")[0]["bookings"]["2025-03-12"]

    async def test_notification_failure_restores_both_collections(self, lifecycle, pending, store, stored):
        doctors_before = store.data["doctors"]
        store.fail_set.add("notifications_john@example.com")

        with pytest.raises(StorageError):
            await lifecycle.approve(pending.id)

        assert store.data["doctors"] == doctors_before
        assert stored("appointments")[0]["status"] == "pending"


class TestDeclineAndCancel:

    async def test_decline_never_mirrors(self, lifecycle, pending, stored, clinic):
        declined = await lifecycle.decline(pending.id)

        assert declined.status == AppointmentStatus.DECLINED
        assert stored("doctors")[0].get("bookings", {}) == {}
        titles = [n.title for n in await clinic.inbox.list("john@example.com")]
        assert titles == ["Appointment Declined"]

    async def test_decline_confirmed_rejected(self, lifecycle, pending):
        await lifecycle.approve(pending.id)
        with pytest.raises(InvalidTransitionError):
            await lifecycle.decline(pending.id)

    async def test_cancel_pending(self, lifecycle, pending, clinic):
        canceled = await lifecycle.cancel(pending.id)

        assert canceled.status == AppointmentStatus.CANCELED
        titles = [n.title for n in await clinic.inbox.list()]
        assert titles[0] == "Appointment Canceled"

    async def test_cancel_is_terminal(self, lifecycle, pending):
        await lifecycle.cancel(pending.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.cancel(pending.id)
        with pytest.raises(InvalidTransitionError):
            await lifecycle.approve(pending.id)

    async def test_cancel_declined(self, lifecycle, pending):
        await lifecycle.decline(pending.id)
        assert (await lifecycle.cancel(pending.id)).status == AppointmentStatus.CANCELED

    async def test_cancel_confirmed_releases_slot(self, lifecycle, pending, doctor_a, stored):
        await lifecycle.approve(pending.id)

        await lifecycle.cancel(pending.id)

        assert "2025-03-10" not in stored("doctors")[0]["bookings"]
        assert list(available_slots(await doctor_a(), "2025-03-10", today=TODAY)) == ["9:00 AM", "10:00 AM"]

    async def test_cancel_keeps_other_patients_entry(self, lifecycle, clinic, patient, other_patient, stored):
        mine = await clinic.booking.book(patient, "doc-a", "2025-03-10", "9:00 AM")
        theirs = await clinic.booking.book(other_patient, "doc-a", "2025-03-10", "10:00 AM")
        await lifecycle.approve(mine.id)
        await lifecycle.approve(theirs.id)

        await lifecycle.cancel(mine.id)

        assert list(stored("doctors")[0]["bookings"]["2025-03-10"]) == ["10:00 AM"]

    async def test_unknown_appointment(self, lifecycle):
        with pytest.raises(NotFoundError):
            await lifecycle.cancel("apt-missing")


class TestReschedule:

    async def test_reschedule_pending_in_place(self, lifecycle, pending, stored):
        moved = await lifecycle.reschedule(pending.id, "2025-03-11", "10:00 AM")

        assert moved.id == pending.id
        assert moved.status == AppointmentStatus.PENDING
        record = stored("appointments")[0]
        assert (record["date"], record["time"]) == ("2025-03-11", "10:00 AM")
        assert len(stored("appointments")) == 1

    async def test_reschedule_notifies_admin(self, lifecycle, pending, clinic):
        await lifecycle.reschedule(pending.id, "2025-03-11", "10:00 AM")
        assert (await clinic.inbox.list())[0].title == "Appointment Rescheduled"

    async def test_reschedule_confirmed_moves_mirror(self, lifecycle, pending, stored):
        await lifecycle.approve(pending.id)

        moved = await lifecycle.reschedule(pending.id, "2025-03-11", "10:00 AM")

        assert moved.status == AppointmentStatus.CONFIRMED
        bookings = stored("doctors")[0]["bookings"]
        assert "2025-03-10" not in bookings
        assert bookings["2025-03-11"]["10:00 AM"]["appointmentId"] == pending.id

    async def test_reschedule_within_same_day(self, lifecycle, pending):
        await lifecycle.approve(pending.id)
        moved = await lifecycle.reschedule(pending.id, "2025-03-10", "10:00 AM")
        assert moved.time == "10:00 AM"

    @pytest.mark.parametrize("new_date,new_time", [
        ("2025-02-20", "10:00 AM"),
        ("2025-03-11", "11:00 AM"),
        ("", "10:00 AM"),
        ("2025-03-11", "later"),
    ])
    async def test_invalid_target_leaves_appointment_unchanged(
        self, lifecycle, pending, stored, new_date, new_time
    ):
        before = stored("appointments")

        with pytest.raises(ValidationError):
            await lifecycle.reschedule(pending.id, new_date, new_time)

        assert stored("appointments") == before

    async def test_reschedule_to_unavailable_date(self, lifecycle, pending, clinic, stored):
        await clinic.doctors.toggle_unavailable_date("doc-a", "2025-03-15")

        with pytest.raises(ValidationError):
            await lifecycle.reschedule(pending.id, "2025-03-15", "9:00 AM")

        assert stored("appointments")[0]["date"] == "2025-03-10"

    async def test_reschedule_into_occupied_slot(self, lifecycle, pending, clinic, other_patient):
        theirs = await clinic.booking.book(other_patient, "doc-a", "2025-03-11", "10:00 AM")
        await lifecycle.approve(theirs.id)

        with pytest.raises(SlotUnavailableError):
            await lifecycle.reschedule(pending.id, "2025-03-11", "10:00 AM")

    async def test_reschedule_onto_own_other_booking(self, lifecycle, pending, clinic, patient):
        await clinic.booking.book(patient, "doc-a", "2025-03-11", "9:00 AM")

        with pytest.raises(DuplicateBookingError):
            await lifecycle.reschedule(pending.id, "2025-03-11", "10:00 AM")

    async def test_canceled_cannot_be_rescheduled(self, lifecycle, pending):
        await lifecycle.cancel(pending.id)
        with pytest.raises(InvalidTransitionError):
            await lifecycle.reschedule(pending.id, "2025-03-11", "10:00 AM")


class TestDelete:

    async def test_delete_confirmed_retracts_mirror(self, lifecycle, pending, stored):
        await lifecycle.approve(pending.id)

        await lifecycle.delete(pending.id)

        assert stored("appointments") == []
        assert stored("doctors")[0]["bookings"] == {}

    async def test_delete_unknown(self, lifecycle):
        with pytest.raises(NotFoundError):
            await lifecycle.delete("apt-missing")


class TestBlockedDateWindow:

    async def test_blocking_date_keeps_confirmed_appointment(self, lifecycle, pending, clinic, doctor_a):
        """Blocking a date does not touch appointments already confirmed on it."""
        await lifecycle.approve(pending.id)

        await clinic.doctors.toggle_unavailable_date("doc-a", "2025-03-10")

        assert (await lifecycle.get(pending.id)).status == AppointmentStatus.CONFIRMED
        assert "2025-03-10" in (await doctor_a()).bookings
        assert list(available_slots(await doctor_a(), "2025-03-10", today=TODAY)) == []


async def test_list_for_user_filters(lifecycle, pending, clinic, other_patient):
    await clinic.booking.book(other_patient, "doc-a", "2025-03-10", "10:00 AM")
    await lifecycle.approve(pending.id)

    mine = await lifecycle.list_for_user("usr-1")
    confirmed = await lifecycle.list_all(AppointmentStatus.CONFIRMED)

    assert [a.id for a in mine] == [pending.id]
    assert [a.id for a in confirmed] == [pending.id]
