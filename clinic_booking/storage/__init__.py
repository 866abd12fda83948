"""Persistence layer: store implementations and the collection repository."""
from clinic_booking.storage.collections import Collections, patient_notifications_key
from clinic_booking.storage.sql_store import SQLStore
from clinic_booking.storage.store import InMemoryStore, KeyValueStore

__all__ = [
    "Collections",
    "InMemoryStore",
    "KeyValueStore",
    "SQLStore",
    "patient_notifications_key",
]
