from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from lesson_corpus.data_models.records import utcnow
from lesson_corpus.errors import RemoteSyncError


@dataclass(frozen=True)
class SyncEvent:
    """Outcome of one remote leg: which operation ran and, on failure, why."""

    operation: str
    ok: bool
    error: Optional[RemoteSyncError] = None
    at: datetime = field(default_factory=utcnow)


Subscriber = Callable[[SyncEvent], None]


class SyncEventBus:
    """
    In-process fan-out of remote sync outcomes.

    The gateway publishes one event per remote leg and subscribers receive them in
    publication order. ``consecutive_failures`` resets on the first success.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []
        self.consecutive_failures = 0
        self.last_event: Optional[SyncEvent] = None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` and return a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: SyncEvent) -> None:
        self.consecutive_failures = 0 if event.ok else self.consecutive_failures + 1
        self.last_event = event
        for callback in list(self._subscribers):
            callback(event)
