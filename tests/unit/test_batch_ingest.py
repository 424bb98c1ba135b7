"""
Tests for BatchIngestionService.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import pytest

from parkpulse.components.analytics import (
    BatchIngestionService,
    BatchRejectedError,
    EventKind,
    EventRecord,
    IngestConfig,
    IngestContext,
    InMemoryEventStore,
    MonotonicStamp,
    run_ingest,
)

CHROME_MOBILE = (
    "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Mobile Safari/537.36"
)


class ExplodingStore(InMemoryEventStore):
    def append_many(self, records: Sequence[EventRecord]) -> int:
        raise OSError("database is locked")


@pytest.fixture
def context() -> IngestContext:
    return IngestContext(
        session_id="server-session",
        user_id=None,
        ip_address="203.0.113.9",
        user_agent=CHROME_MOBILE,
    )


@pytest.fixture
def service(event_store: InMemoryEventStore, time_port: Any) -> BatchIngestionService:
    return BatchIngestionService(event_store, stamp=MonotonicStamp(time_port))


class TestEnvelope:
    @pytest.mark.parametrize(
        "body",
        [None, {}, {"events": []}, {"events": "page_view"}, {"events": {"eventKind": "x"}}, []],
    )
    def test_malformed_envelope_rejected(
        self,
        service: BatchIngestionService,
        context: IngestContext,
        event_store: InMemoryEventStore,
        body: Any,
    ) -> None:
        with pytest.raises(BatchRejectedError, match="Events array is required"):
            service.ingest(body, context)
        assert event_store.get_all() == []

    def test_configured_batch_limit(
        self, event_store: InMemoryEventStore, context: IngestContext
    ) -> None:
        service = BatchIngestionService(event_store, config=IngestConfig(max_batch_size=2))
        body = {"events": [{"eventKind": "page_view"}] * 3}
        with pytest.raises(BatchRejectedError, match="max 2"):
            service.ingest(body, context)

    def test_unbounded_by_default(
        self, service: BatchIngestionService, context: IngestContext
    ) -> None:
        body = {"events": [{"eventKind": "page_view"}] * 600}
        assert service.ingest(body, context).persisted == 600


class TestPartialFailure:
    def test_invalid_events_dropped_individually(
        self,
        service: BatchIngestionService,
        context: IngestContext,
        event_store: InMemoryEventStore,
    ) -> None:
        body = {
            "events": [
                {"eventKind": "page_view", "pageUrl": "/parks/yose"},
                {"eventKind": "not_a_kind"},
                {"eventKind": "search", "metadata": {"searchTerm": "arches"}},
                "garbage",
            ]
        }
        result = service.ingest(body, context)

        assert result.received == 4
        assert result.accepted == 2
        assert result.rejected == 2
        assert result.persisted == 2
        assert [r.event_kind for r in event_store.get_all()] == [
            EventKind.PAGE_VIEW,
            EventKind.SEARCH,
        ]

    def test_store_failure_is_swallowed(self, context: IngestContext) -> None:
        service = BatchIngestionService(ExplodingStore())
        result = service.ingest({"events": [{"eventKind": "page_view"}]}, context)
        assert result.accepted == 1
        assert result.persisted == 0


class TestDefaults:
    def test_request_context_fills_gaps(
        self,
        service: BatchIngestionService,
        context: IngestContext,
        event_store: InMemoryEventStore,
        time_port: Any,
    ) -> None:
        service.ingest({"events": [{"eventKind": "park_view", "parkCode": "yose"}]}, context)

        record = event_store.get_all()[0]
        assert record.session_id == "server-session"
        assert record.user_id is None
        assert record.ip_address == "203.0.113.9"
        assert record.user_agent == CHROME_MOBILE
        assert record.device.type == "mobile"
        assert record.browser.name == "Chrome"
        assert record.timestamp == time_port.now_utc()
        assert record.park_code == "yose"

    def test_envelope_session_and_user_override_context(
        self,
        service: BatchIngestionService,
        event_store: InMemoryEventStore,
    ) -> None:
        context = IngestContext(session_id="server-session", user_id="token-user")
        service.ingest(
            {"events": [{"eventKind": "page_view"}], "sessionId": "client-session", "userId": 77},
            context,
        )
        record = event_store.get_all()[0]
        assert record.session_id == "client-session"
        assert record.user_id == "77"

    def test_event_values_override_envelope(
        self,
        service: BatchIngestionService,
        context: IngestContext,
        event_store: InMemoryEventStore,
    ) -> None:
        service.ingest(
            {
                "sessionId": "client-session",
                "events": [
                    {
                        "eventKind": "page_view",
                        "sessionId": "event-session",
                        "timestamp": "2025-06-10T00:00:00Z",
                        "device": {"type": "desktop"},
                    }
                ],
            },
            context,
        )
        record = event_store.get_all()[0]
        assert record.session_id == "event-session"
        assert record.timestamp == datetime(2025, 6, 10, tzinfo=UTC)
        assert record.device.type == "desktop"

    def test_anonymous_category_defaults_to_kind(
        self,
        service: BatchIngestionService,
        context: IngestContext,
        event_store: InMemoryEventStore,
    ) -> None:
        service.ingest({"events": [{"eventKind": "search"}]}, context)
        assert event_store.get_all()[0].event_category.value == "engagement"


def test_run_ingest_entry_point(context: IngestContext, time_port: Any) -> None:
    store = InMemoryEventStore()
    result = run_ingest(
        {"events": [{"eventKind": "user_signup", "userId": "u1"}]},
        context,
        event_store=store,
        time_port=time_port,
    )
    assert result.persisted == 1
    assert store.get_all()[0].event_kind == EventKind.USER_SIGNUP
