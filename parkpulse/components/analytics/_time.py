"""Time helpers for the analytics component."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from threading import Lock

from .ports import TimePort

_TICK = timedelta(microseconds=1)


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


class MonotonicStamp:
    """
    Assigns write-time timestamps that never go backwards.

    If the wall clock steps back (NTP adjustment), stamps continue one
    microsecond after the last one handed out.
    """

    def __init__(self, time_port: TimePort | None = None) -> None:
        self._time = time_port or DefaultTimePort()
        self._last: datetime | None = None
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            now = self._time.now_utc()
            if self._last is not None and now <= self._last:
                now = self._last + _TICK
            self._last = now
            return now


def ensure_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)
