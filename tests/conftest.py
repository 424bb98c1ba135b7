from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from parkpulse.adapters.directories import InMemoryBlogDirectory, InMemoryUserDirectory
from parkpulse.api.auth_utils import create_access_token
from parkpulse.api.deps import AnalyticsRuntime, Settings, build_runtime
from parkpulse.api.main import create_app
from parkpulse.components.analytics import (
    KIND_DEFAULT_CATEGORY,
    EventCategory,
    EventKind,
    EventRecord,
    InMemoryEventStore,
    parse_payload,
)
from parkpulse.rules.models import AnalyticsRules, ProjectRules, RecorderRules, Rules

TEST_SECRET = "test-secret-key"
NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=UTC)


# --- Mock Time Port ---


class MockTimePort:
    """Mock time provider."""

    def __init__(self, now: datetime | None = None) -> None:
        self._now = now or NOW

    def now_utc(self) -> datetime:
        return self._now

    def set_now(self, now: datetime) -> None:
        self._now = now

    def advance(self, delta: timedelta) -> None:
        self._now = self._now + delta


# --- Core Fixtures ---


@pytest.fixture
def time_port() -> MockTimePort:
    return MockTimePort()


@pytest.fixture
def event_store() -> InMemoryEventStore:
    """Fresh event store."""
    return InMemoryEventStore()


@pytest.fixture
def make_event() -> Callable[..., EventRecord]:
    """Factory for valid event records."""

    def _make(
        kind: str | EventKind = EventKind.PAGE_VIEW,
        timestamp: datetime | None = None,
        user_id: str | None = None,
        session_id: str = "session-1",
        metadata: dict[str, Any] | None = None,
        category: EventCategory | None = None,
        **fields: Any,
    ) -> EventRecord:
        event_kind = EventKind(kind)
        return EventRecord(
            event_kind=event_kind,
            event_category=category or KIND_DEFAULT_CATEGORY[event_kind],
            session_id=session_id,
            timestamp=timestamp or NOW - timedelta(hours=1),
            user_id=user_id,
            metadata=parse_payload(event_kind.value, metadata),
            **fields,
        )

    return _make


# --- Application Fixtures ---


@pytest.fixture
def settings(tmp_path) -> Settings:
    settings = Settings()
    settings.data_dir = tmp_path
    settings.db_path = str(tmp_path / "parkpulse.db")
    settings.store = "memory"
    settings.secret_key = TEST_SECRET
    return settings


@pytest.fixture
def rules() -> Rules:
    return Rules(
        project=ProjectRules(slug="parkpulse", rules_version="test"),
        analytics=AnalyticsRules(recorder=RecorderRules(workers=1, poll_interval_seconds=0.01)),
    )


@pytest.fixture
def users() -> InMemoryUserDirectory:
    return InMemoryUserDirectory()


@pytest.fixture
def blogs() -> InMemoryBlogDirectory:
    return InMemoryBlogDirectory()


@pytest.fixture
def runtime(
    settings: Settings,
    rules: Rules,
    event_store: InMemoryEventStore,
    users: InMemoryUserDirectory,
    blogs: InMemoryBlogDirectory,
    time_port: MockTimePort,
) -> AnalyticsRuntime:
    return build_runtime(
        settings,
        rules,
        event_store=event_store,
        users=users,
        blogs=blogs,
        time_port=time_port,
    )


@pytest.fixture
def app(runtime: AnalyticsRuntime) -> FastAPI:
    return create_app(runtime)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Test client; entering it runs startup, so the recorder is running."""
    with TestClient(app) as c:
        yield c


def make_token(user_id: str, roles: list[str]) -> str:
    return create_access_token(
        {"sub": user_id, "roles": roles},
        expires_delta=timedelta(hours=1),
        secret_key=TEST_SECRET,
    )


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('admin-1', ['admin'])}"}


@pytest.fixture
def member_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('member-1', ['member'])}"}
