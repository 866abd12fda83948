"""Key-value store abstraction.

The booking core only needs three asynchronous operations on string keys.
Values are whole serialized collections.
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional


class KeyValueStore(ABC):
    """Asynchronous string-keyed persistent store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    async def remove_many(self, keys: Iterable[str]) -> None:
        """Remove every listed key. Absent keys are ignored."""


class InMemoryStore(KeyValueStore):
    """
    Dict-backed store.

    Good for: tests, throwaway sessions.
    NOT for: anything that must survive a restart (use SQLStore).
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.data.pop(key, None)
