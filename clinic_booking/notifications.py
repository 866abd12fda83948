"""Admin and patient notification inboxes."""
from datetime import datetime
from typing import Callable, List, Optional

from clinic_booking.errors import NotFoundError
from clinic_booking.events import ChangeBus
from clinic_booking.logging_config import get_logger
from clinic_booking.models import Notification, generate_id
from clinic_booking.storage import Collections

logger = get_logger(__name__)


class NotificationInbox:
    """
    Notification lists kept in the store.

    email=None addresses the shared admin inbox; an email addresses that
    patient's own list.
    """

    def __init__(
        self,
        collections: Collections,
        bus: ChangeBus,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.collections = collections
        self.bus = bus
        self.clock = clock

    async def _load(self, email: Optional[str]) -> List[Notification]:
        if email is None:
            return await self.collections.load_admin_notifications()
        return await self.collections.load_patient_notifications(email)

    async def _save(self, email: Optional[str], items: List[Notification]) -> None:
        if email is None:
            await self.collections.save_admin_notifications(items)
        else:
            await self.collections.save_patient_notifications(email, items)

    async def push(
        self,
        title: str,
        message: str,
        email: Optional[str] = None,
        appointment_id: Optional[str] = None,
        publish: bool = True
    ) -> Notification:
        """
        Append a notification.

        Args:
            title: Short heading
            message: Body text
            email: Patient email, or None for the admin inbox
            appointment_id: Related appointment, if any
            publish: Notify subscribers (False when the caller batches)

        Returns:
            The stored notification

        Raises:
            StorageError: If the inbox cannot be read or written
        """
        notification = Notification(
            id=generate_id("ntf"),
            title=title,
            message=message,
            read=False,
            timestamp=self.clock().isoformat(timespec="seconds"),
            appointment_id=appointment_id,
        )
        items = await self._load(email)
        items.append(notification)
        await self._save(email, items)

        logger.info(
            "notification_pushed",
            inbox="admin" if email is None else "patient",
            notification_id=notification.id,
            appointment_id=appointment_id,
        )
        if publish:
            self.bus.publish()
        return notification

    async def list(self, email: Optional[str] = None) -> List[Notification]:
        """Notifications of an inbox, newest first."""
        items = await self._load(email)
        return sorted(reversed(items), key=lambda n: n.timestamp, reverse=True)

    async def unread_count(self, email: Optional[str] = None) -> int:
        """Badge count."""
        return sum(1 for n in await self._load(email) if not n.read)

    async def mark_read(self, notification_id: str, email: Optional[str] = None) -> Notification:
        """
        Flag one notification as read.

        Raises:
            NotFoundError: If the id is not in this inbox
        """
        items = await self._load(email)
        target = next((n for n in items if n.id == notification_id), None)
        if target is None:
            raise NotFoundError(f"Notification '{notification_id}' not found")

        target.read = True
        await self._save(email, items)
        self.bus.publish()
        return target

    async def mark_all_read(self, email: Optional[str] = None) -> int:
        """Flag every notification as read. Returns how many changed."""
        items = await self._load(email)
        changed = 0
        for n in items:
            if not n.read:
                n.read = True
                changed += 1
        if changed:
            await self._save(email, items)
            self.bus.publish()
        return changed

    async def delete(self, notification_id: str, email: Optional[str] = None) -> None:
        """
        Remove one notification.

        Raises:
            NotFoundError: If the id is not in this inbox
        """
        items = await self._load(email)
        remaining = [n for n in items if n.id != notification_id]
        if len(remaining) == len(items):
            raise NotFoundError(f"Notification '{notification_id}' not found")

        await self._save(email, remaining)
        self.bus.publish()
