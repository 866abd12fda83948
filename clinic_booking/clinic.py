"""Composition root.

Owns the single ChangeBus and wires every service to the same store so
views subscribe in one place.

Usage:
    clinic = Clinic.from_env()
    unsubscribe = clinic.bus.subscribe(view.refresh)
    appointment = await clinic.booking.book(user, "1", "2025-03-10", "9:00 AM")
"""
from datetime import datetime
from typing import Callable, Optional

from clinic_booking import config
from clinic_booking.accounts import AccountService
from clinic_booking.booking import BookingService
from clinic_booking.config import Settings, load_settings
from clinic_booking.dashboard import dashboard_stats
from clinic_booking.doctors import DoctorDirectory
from clinic_booking.events import ChangeBus
from clinic_booking.lifecycle import StatusLifecycle
from clinic_booking.logging_config import get_logger, setup_structured_logging
from clinic_booking.notifications import NotificationInbox
from clinic_booking.storage import Collections, InMemoryStore, KeyValueStore, SQLStore

logger = get_logger(__name__)


class Clinic:
    """All services of one installation, sharing one store and one bus."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], datetime] = datetime.now,
        bcrypt_rounds: Optional[int] = None
    ):
        self.store = store
        self.clock = clock
        self.bus = ChangeBus()
        self.collections = Collections(store)

        self.inbox = NotificationInbox(self.collections, self.bus, clock)
        self.doctors = DoctorDirectory(self.collections, self.bus, clock)
        self.booking = BookingService(self.collections, self.doctors, self.inbox, self.bus, clock)
        self.lifecycle = StatusLifecycle(self.collections, self.doctors, self.inbox, self.bus, clock)
        self.accounts = AccountService(
            self.collections, self.bus, clock, bcrypt_rounds or config.DEFAULT_BCRYPT_ROUNDS
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Clinic":
        """Build from settings: SQLStore when a database URL is set, else in-memory."""
        if settings.database_url:
            store: KeyValueStore = SQLStore(settings.database_url)
        else:
            store = InMemoryStore()
        logger.info("clinic_initialized", store=type(store).__name__)
        return cls(store, bcrypt_rounds=settings.bcrypt_rounds)

    @classmethod
    def from_env(cls) -> "Clinic":
        """Read settings from the environment, configure logging and build."""
        settings = load_settings()
        setup_structured_logging(settings.log_level)
        return cls.from_settings(settings)

    async def stats(self):
        """Admin dashboard numbers."""
        return await dashboard_stats(self.collections, self.clock().date())

    def close(self):
        self.bus.clear()
        if isinstance(self.store, SQLStore):
            self.store.close()
