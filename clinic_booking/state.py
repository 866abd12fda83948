"""Appointment status state machine.

- Enum for discrete statuses
- Explicit transition map, one-directional in normal flow
- canceled is terminal
"""
from enum import Enum
from typing import Dict, List


class AppointmentStatus(str, Enum):
    """Discrete appointment statuses."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELED = "canceled"

    @classmethod
    def normalize(cls, value) -> "AppointmentStatus":
        """
        Map a raw stored status to a known status.

        Stored data is semi-structured: "Pending", "cancelled" and missing
        values all occur.

        Example:
            >>> AppointmentStatus.normalize("Cancelled")
            <AppointmentStatus.CANCELED: 'canceled'>
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.PENDING
        raw = value.strip().lower()
        if raw == "cancelled":
            raw = "canceled"
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


# Pattern: current status -> [allowed next statuses]
VALID_TRANSITIONS: Dict[AppointmentStatus, List[AppointmentStatus]] = {
    AppointmentStatus.PENDING: [
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.DECLINED,
        AppointmentStatus.CANCELED,
    ],
    AppointmentStatus.CONFIRMED: [
        AppointmentStatus.CANCELED,
    ],
    AppointmentStatus.DECLINED: [
        AppointmentStatus.CANCELED,
    ],
    AppointmentStatus.CANCELED: [],
}

# Statuses whose date/time may still be changed in place
RESCHEDULABLE = frozenset({
    AppointmentStatus.PENDING,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.DECLINED,
})


def validate_transition(
    current: AppointmentStatus,
    intended: AppointmentStatus
) -> bool:
    """
    Validate status transition.

    Prevents:
    - Leaving canceled
    - Re-approving or declining a decided appointment

    Args:
        current: Current appointment status
        intended: Intended next status

    Returns:
        True if transition is valid

    Example:
        >>> validate_transition(
        ...     AppointmentStatus.PENDING,
        ...     AppointmentStatus.CONFIRMED
        ... )
        True
    """
    allowed = VALID_TRANSITIONS.get(current, [])
    return intended in allowed
