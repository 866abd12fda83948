"""Admin dashboard statistics."""
from collections import Counter
from datetime import date
from typing import Any, Dict, Optional

from clinic_booking import config
from clinic_booking.models import UserRole
from clinic_booking.state import AppointmentStatus
from clinic_booking.storage import Collections


async def dashboard_stats(collections: Collections, today: Optional[date] = None) -> Dict[str, Any]:
    """
    Summary counts for the admin home screen.

    Args:
        collections: Repository to read from
        today: Device local date (defaults to date.today())

    Returns:
        {
            "today_appointments": active appointments dated today,
            "active_doctors": number of doctors,
            "registered_patients": number of patient accounts,
            "by_status": {status: count} for every status,
        }
    """
    today_str = (today or date.today()).strftime(config.DATE_FORMAT)

    appointments = await collections.load_appointments()
    doctors = await collections.load_doctors()
    users = await collections.load_users()

    counts = Counter(a.status for a in appointments)

    return {
        "today_appointments": sum(1 for a in appointments if a.date == today_str and a.is_active),
        "active_doctors": len(doctors),
        "registered_patients": sum(1 for u in users if u.role == UserRole.PATIENT),
        "by_status": {status.value: counts.get(status, 0) for status in AppointmentStatus},
    }
