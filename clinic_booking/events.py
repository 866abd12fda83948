"""In-process change notification bus.

Open views subscribe and re-read the store whenever a write is published.
Synchronous, no payload, registration order, memory-only.
"""
import itertools
from contextlib import contextmanager
from typing import Callable, Dict, Iterator

from clinic_booking.logging_config import get_logger

logger = get_logger(__name__)

Callback = Callable[[], None]


class ChangeBus:
    """
    Observer registry keyed by subscription handle.

    Owned by the composition root (see Clinic); views subscribe on mount
    and call the returned function on unmount.
    """

    def __init__(self):
        # {handle: callback}, insertion order == registration order
        self._subscribers: Dict[int, Callback] = {}
        self._handles = itertools.count(1)

    def subscribe(self, callback: Callback) -> Callable[[], None]:
        """
        Register a callback.

        Args:
            callback: Called with no arguments on every publish()

        Returns:
            Function that removes this subscription (safe to call twice)
        """
        handle = next(self._handles)
        self._subscribers[handle] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(handle, None)

        return unsubscribe

    @contextmanager
    def subscription(self, callback: Callback) -> Iterator[None]:
        """Keep `callback` subscribed for the duration of the block."""
        unsubscribe = self.subscribe(callback)
        try:
            yield
        finally:
            unsubscribe()

    def publish(self) -> None:
        """
        Invoke every current subscriber in registration order.

        A subscriber that raises is logged and the remaining subscribers
        still run.
        """
        for handle, callback in list(self._subscribers.items()):
            if handle not in self._subscribers:
                # unsubscribed by an earlier callback in this round
                continue
            try:
                callback()
            except Exception:
                logger.exception("subscriber_failed", handle=handle)

    def clear(self) -> None:
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)
