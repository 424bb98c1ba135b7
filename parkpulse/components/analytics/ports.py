"""
Analytics component port definitions.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Protocol

from ._device import ClientSignature
from .models import BlogSummary, EventKind, EventRecord, UserProfile


class EventStorePort(Protocol):
    """Append-only event log."""

    def append(self, record: EventRecord) -> None:
        """Persist one record."""
        ...

    def append_many(self, records: Sequence[EventRecord]) -> int:
        """
        Persist records independently of each other.

        A record that fails does not roll back its siblings.
        Returns the number of records persisted.
        """
        ...

    def find(
        self,
        start: datetime,
        end: datetime,
        event_kinds: Iterable[EventKind] | None = None,
    ) -> list[EventRecord]:
        """Return records with start <= timestamp < end."""
        ...

    def count(self, start: datetime, end: datetime) -> int:
        """Count records with start <= timestamp < end."""
        ...

    def ping(self) -> None:
        """Raise if the store is unreachable."""
        ...


class SessionStorePort(Protocol):
    """Server-side map from client session token to analytics session id."""

    def get(self, token: str) -> str | None:
        ...

    def save(self, token: str, session_id: str) -> None:
        ...


class DeviceClassifierPort(Protocol):
    """Maps a raw user agent to a coarse client signature."""

    def classify(self, user_agent: str | None) -> ClientSignature:
        ...


class UserDirectoryPort(Protocol):
    """Read-only access to user profiles."""

    def get_profiles(self, user_ids: Iterable[str]) -> dict[str, UserProfile]:
        """Return the profiles that exist, keyed by user id."""
        ...


class BlogDirectoryPort(Protocol):
    """Read-only access to blog post summaries."""

    def get_summaries(self, blog_ids: Iterable[str]) -> dict[str, BlogSummary]:
        """Return the summaries that exist, keyed by blog id."""
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
