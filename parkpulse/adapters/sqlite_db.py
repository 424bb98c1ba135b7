"""
SQLite adapters for the analytics store and its read-only collaborators.

Timestamps are stored as fixed-width UTC ISO-8601 strings
(``YYYY-MM-DDTHH:MM:SS.ffffff+00:00``) so that string comparison in SQL
matches chronological order.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from parkpulse.components.analytics import (
    BlogSummary,
    BrowserInfo,
    DeviceInfo,
    EventCategory,
    EventKind,
    EventRecord,
    EventValidationError,
    GenericPayload,
    LocationInfo,
    OSInfo,
    UserProfile,
    parse_payload,
)

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string (naive values are taken as UTC)."""
    if not s:
        return None
    dt = datetime.fromisoformat(s)
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def format_ts(dt: datetime) -> str:
    """Fixed-width UTC representation used for stored timestamps."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Analytics Event Store
# -----------------------------------------------------------------------------

_EVENT_COLUMNS = (
    "id",
    "event_kind",
    "event_category",
    "session_id",
    "user_id",
    "timestamp",
    "metadata",
    "park_code",
    "blog_id",
    "event_id",
    "review_id",
    "conversation_id",
    "duration",
    "response_time",
    "error_message",
    "error_stack",
    "error_code",
    "device_type",
    "device_brand",
    "device_model",
    "browser_name",
    "browser_version",
    "os_name",
    "os_version",
    "country",
    "region",
    "city",
    "latitude",
    "longitude",
    "user_agent",
    "ip_address",
    "referrer",
    "page_url",
    "page_title",
)

_INSERT_EVENT = (
    f"INSERT INTO analytics_events ({', '.join(_EVENT_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _EVENT_COLUMNS)})"
)


class SQLiteEventStore(SQLiteRepoBase):
    """SQLite implementation of EventStorePort (append-only)."""

    def append(self, record: EventRecord) -> None:
        conn = self._get_conn()
        try:
            conn.execute(_INSERT_EVENT, self._to_params(record))
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def append_many(self, records: Sequence[EventRecord]) -> int:
        """Insert rows independently; a failing row is logged and skipped."""
        conn = self._get_conn()
        stored = 0
        try:
            for record in records:
                try:
                    conn.execute(_INSERT_EVENT, self._to_params(record))
                    stored += 1
                except (sqlite3.Error, AttributeError) as e:
                    logger.warning(
                        "Skipping analytics event %s: %s",
                        getattr(record, "id", "?"),
                        e,
                    )
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()
        return stored

    def find(
        self,
        start: datetime,
        end: datetime,
        event_kinds: Iterable[EventKind] | None = None,
    ) -> list[EventRecord]:
        conn = self._get_conn()
        try:
            query = "SELECT * FROM analytics_events WHERE timestamp >= ? AND timestamp < ?"
            params: list[Any] = [format_ts(start), format_ts(end)]

            if event_kinds is not None:
                kinds = sorted({k.value for k in event_kinds})
                if not kinds:
                    return []
                query += f" AND event_kind IN ({', '.join('?' for _ in kinds)})"
                params.extend(kinds)

            query += " ORDER BY timestamp ASC"

            rows = conn.execute(query, params).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def count(self, start: datetime, end: datetime) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM analytics_events WHERE timestamp >= ? AND timestamp < ?",
                (format_ts(start), format_ts(end)),
            ).fetchone()
            return int(row["n"] if isinstance(row, dict) else row[0])
        finally:
            if self._should_close():
                conn.close()

    def ping(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute("SELECT 1 FROM analytics_events LIMIT 1").fetchall()
        finally:
            if self._should_close():
                conn.close()

    def _to_params(self, r: EventRecord) -> tuple[Any, ...]:
        return (
            str(r.id),
            r.event_kind.value,
            r.event_category.value,
            r.session_id,
            r.user_id,
            format_ts(r.timestamp),
            json.dumps(r.metadata.to_wire(), default=str),
            r.park_code,
            r.blog_id,
            r.event_id,
            r.review_id,
            r.conversation_id,
            r.duration,
            r.response_time,
            r.error_message,
            r.error_stack,
            r.error_code,
            r.device.type,
            r.device.brand,
            r.device.model,
            r.browser.name,
            r.browser.version,
            r.os.name,
            r.os.version,
            r.location.country,
            r.location.region,
            r.location.city,
            r.location.latitude,
            r.location.longitude,
            r.user_agent,
            r.ip_address,
            r.referrer,
            r.page_url,
            r.page_title,
        )

    def _map_row(self, row: dict[str, Any]) -> EventRecord:
        kind = EventKind(row["event_kind"])
        raw_meta = json.loads(row["metadata"] or "{}")
        try:
            metadata = parse_payload(kind.value, raw_meta)
        except EventValidationError as e:
            logger.warning("Stored metadata for event %s no longer validates: %s", row["id"], e)
            metadata = GenericPayload(extra=raw_meta)

        return EventRecord(
            id=UUID(row["id"]),
            event_kind=kind,
            event_category=EventCategory(row["event_category"]),
            session_id=row["session_id"],
            user_id=row["user_id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            metadata=metadata,
            park_code=row["park_code"],
            blog_id=row["blog_id"],
            event_id=row["event_id"],
            review_id=row["review_id"],
            conversation_id=row["conversation_id"],
            duration=row["duration"],
            response_time=row["response_time"],
            error_message=row["error_message"],
            error_stack=row["error_stack"],
            error_code=row["error_code"],
            device=DeviceInfo(
                type=row["device_type"], brand=row["device_brand"], model=row["device_model"]
            ),
            browser=BrowserInfo(name=row["browser_name"], version=row["browser_version"]),
            os=OSInfo(name=row["os_name"], version=row["os_version"]),
            location=LocationInfo(
                country=row["country"],
                region=row["region"],
                city=row["city"],
                latitude=row["latitude"],
                longitude=row["longitude"],
            ),
            user_agent=row["user_agent"],
            ip_address=row["ip_address"],
            referrer=row["referrer"],
            page_url=row["page_url"],
            page_title=row["page_title"],
        )


# -----------------------------------------------------------------------------
# Read-only Collaborators
# -----------------------------------------------------------------------------


def _placeholders(ids: list[str]) -> str:
    return ", ".join("?" for _ in ids)


class SQLiteUserDirectory(SQLiteRepoBase):
    """SQLite implementation of UserDirectoryPort (reads ``users``)."""

    def get_profiles(self, user_ids: Iterable[str]) -> dict[str, UserProfile]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}
        conn = self._get_conn()
        try:
            rows = conn.execute(
                f"SELECT id, name, email, role, created_at FROM users WHERE id IN ({_placeholders(ids)})",
                ids,
            ).fetchall()
            return {
                row["id"]: UserProfile(
                    user_id=row["id"],
                    name=row["name"],
                    email=row["email"],
                    role=row["role"],
                    created_at=parse_dt(row["created_at"]),
                )
                for row in rows
            }
        finally:
            if self._should_close():
                conn.close()


class SQLiteBlogDirectory(SQLiteRepoBase):
    """SQLite implementation of BlogDirectoryPort (reads ``blog_posts``)."""

    def get_summaries(self, blog_ids: Iterable[str]) -> dict[str, BlogSummary]:
        ids = list(dict.fromkeys(blog_ids))
        if not ids:
            return {}
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT id, title, slug, category, published_at FROM blog_posts "
                f"WHERE id IN ({_placeholders(ids)})",
                ids,
            ).fetchall()
            return {
                row["id"]: BlogSummary(
                    blog_id=row["id"],
                    title=row["title"],
                    slug=row["slug"],
                    category=row["category"],
                    published_at=parse_dt(row["published_at"]),
                )
                for row in rows
            }
        finally:
            if self._should_close():
                conn.close()
