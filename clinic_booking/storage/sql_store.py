"""SQL-backed key-value store.

Pattern: Thin wrapper around SQLAlchemy, one table of key/value rows.
Blocking database calls are pushed to a worker thread so awaiting callers
never stall the event loop.
"""
import asyncio
from datetime import datetime, UTC
from typing import Iterable, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_booking.storage.database_models import Base, KeyValueEntry
from clinic_booking.storage.store import KeyValueStore


def _is_memory_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (
        ":memory:" in database_url or database_url.rstrip("/") == "sqlite:"
    )


class SQLStore(KeyValueStore):
    """Persistent store on any SQLAlchemy database (SQLite, PostgreSQL, ...)."""

    def __init__(self, database_url: str):
        """
        Initialize with database connection.

        Args:
            database_url: SQLAlchemy connection string
        """
        if _is_memory_sqlite(database_url):
            # One shared connection, otherwise each worker thread sees its own empty DB
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        elif database_url.startswith("sqlite"):
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                pool_pre_ping=True,
            )
        else:
            self.engine = create_engine(database_url, pool_pre_ping=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def _get(self, key: str) -> Optional[str]:
        with self.SessionLocal() as db:
            entry = db.get(KeyValueEntry, key)
            return entry.value if entry else None

    def _set(self, key: str, value: str) -> None:
        with self.SessionLocal() as db:
            entry = db.get(KeyValueEntry, key)
            if entry is None:
                db.add(KeyValueEntry(key=key, value=value, updated_at=datetime.now(UTC)))
            else:
                entry.value = value
                entry.updated_at = datetime.now(UTC)
            db.commit()

    def _remove_many(self, keys: list[str]) -> None:
        if not keys:
            return
        with self.SessionLocal() as db:
            db.query(KeyValueEntry).filter(
                KeyValueEntry.key.in_(keys)
            ).delete(synchronize_session=False)
            db.commit()

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def remove_many(self, keys: Iterable[str]) -> None:
        await asyncio.to_thread(self._remove_many, list(keys))

    def close(self):
        """Dispose of pooled connections. Call during application shutdown."""
        self.engine.dispose()
