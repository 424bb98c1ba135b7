"""In-memory event store for testing/dev."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from threading import Lock

from .models import EventKind, EventRecord

logger = logging.getLogger(__name__)


class InMemoryEventStore:
    """Thread-safe list-backed implementation of EventStorePort."""

    def __init__(self) -> None:
        self._events: list[EventRecord] = []
        self._lock = Lock()

    def append(self, record: EventRecord) -> None:
        """Store an event."""
        with self._lock:
            self._events.append(record)

    def append_many(self, records: Sequence[EventRecord]) -> int:
        """Store events; each one independently of the others."""
        stored = 0
        for record in records:
            if not isinstance(record, EventRecord):
                logger.warning("Skipping non-record in batch: %r", type(record))
                continue
            self.append(record)
            stored += 1
        return stored

    def find(
        self,
        start: datetime,
        end: datetime,
        event_kinds: Iterable[EventKind] | None = None,
    ) -> list[EventRecord]:
        kinds = frozenset(event_kinds) if event_kinds is not None else None
        with self._lock:
            snapshot = list(self._events)
        return [
            e
            for e in snapshot
            if start <= e.timestamp < end and (kinds is None or e.event_kind in kinds)
        ]

    def count(self, start: datetime, end: datetime) -> int:
        with self._lock:
            return sum(1 for e in self._events if start <= e.timestamp < end)

    def ping(self) -> None:
        return None

    def get_all(self) -> list[EventRecord]:
        """Get all stored events (for testing)."""
        with self._lock:
            return list(self._events)
