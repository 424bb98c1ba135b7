"""
Tests for the aggregation queries.

Windows are half-open; records missing the grouped field are excluded;
unique users count distinct non-null user ids; ties sort by key.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime, timedelta

import pytest

from parkpulse.components.analytics import (
    AggregationEngine,
    AnalyticsQueryError,
    BrowserInfo,
    ContentDimension,
    DeviceInfo,
    EventKind,
    EventRecord,
    InMemoryEventStore,
    LocationInfo,
)
from parkpulse.components.analytics._aggregate import percentile_nearest_rank

T0 = datetime(2025, 6, 1, 0, 0, 0, tzinfo=UTC)
MakeEvent = Callable[..., EventRecord]


class BrokenStore(InMemoryEventStore):
    def find(
        self,
        start: datetime,
        end: datetime,
        event_kinds: Iterable[EventKind] | None = None,
    ) -> list[EventRecord]:
        raise OSError("connection refused")

    def count(self, start: datetime, end: datetime) -> int:
        raise OSError("connection refused")


def engine_with(records: Sequence[EventRecord]) -> AggregationEngine:
    store = InMemoryEventStore()
    store.append_many(records)
    return AggregationEngine(store)


def window(hours: int = 48) -> tuple[datetime, datetime]:
    return T0, T0 + timedelta(hours=hours)


# --- Event Counts ---


class TestEventCounts:
    def test_three_page_views_one_user(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [make_event(timestamp=T0 + timedelta(minutes=i), user_id="u1") for i in range(3)]
        )
        rows = engine.event_counts(*window())
        assert [(r.event_kind, r.count, r.unique_users) for r in rows] == [("page_view", 3, 1)]

    def test_windowed_scenario(self, make_event: MakeEvent) -> None:
        records = [
            make_event(timestamp=T0 + timedelta(hours=h), user_id="u1", session_id="s1")
            for h in (0, 1, 2)
        ] + [
            make_event(timestamp=T0 + timedelta(hours=24, minutes=m), user_id="u1", session_id="s2")
            for m in (10, 50)
        ]
        engine = engine_with(records)

        first = engine.event_counts(T0, T0 + timedelta(hours=3))
        second = engine.event_counts(T0 + timedelta(hours=24), T0 + timedelta(hours=26))

        assert (first[0].count, first[0].unique_users) == (3, 1)
        assert (second[0].count, second[0].unique_users) == (2, 1)

    def test_window_end_is_exclusive(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [make_event(timestamp=T0), make_event(timestamp=T0 + timedelta(hours=1))]
        )
        rows = engine.event_counts(T0, T0 + timedelta(hours=1))
        assert rows[0].count == 1

    def test_anonymous_events_count_but_not_as_users(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event(timestamp=T0, user_id=None),
                make_event(timestamp=T0, user_id=None),
                make_event(timestamp=T0, user_id="u1"),
            ]
        )
        row = engine.event_counts(*window())[0]
        assert row.count == 3
        assert row.unique_users == 1

    def test_sorted_by_count_then_kind(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("search", timestamp=T0),
                make_event("error", timestamp=T0),
                make_event("page_view", timestamp=T0),
                make_event("page_view", timestamp=T0),
            ]
        )
        assert [r.event_kind for r in engine.event_counts(*window())] == [
            "page_view",
            "error",
            "search",
        ]

    def test_total_events(self, make_event: MakeEvent) -> None:
        engine = engine_with([make_event(timestamp=T0), make_event(timestamp=T0 - timedelta(seconds=1))])
        assert engine.total_events(*window()) == 1


# --- User Engagement ---


class TestUserEngagement:
    def test_engagement_row(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("page_view", timestamp=T0, user_id="u1", session_id="a"),
                make_event("search", timestamp=T0 + timedelta(hours=1, minutes=30), user_id="u1", session_id="b"),
                make_event("page_view", timestamp=T0, user_id="u2"),
                make_event("page_view", timestamp=T0, user_id=None),
            ]
        )
        rows = engine.user_engagement(*window())

        assert [r.user_id for r in rows] == ["u1", "u2"]
        top = rows[0]
        assert top.total_events == 2
        assert top.unique_sessions == 2
        assert top.event_kinds == 2
        assert top.first_activity == T0
        assert top.last_activity == T0 + timedelta(hours=1, minutes=30)
        assert top.session_duration_hours == pytest.approx(1.5)

    def test_filter_by_user(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [make_event(timestamp=T0, user_id="u1"), make_event(timestamp=T0, user_id="u2")]
        )
        rows = engine.user_engagement(*window(), user_id="u2")
        assert [r.user_id for r in rows] == ["u2"]


# --- Popular Content ---


class TestPopularContent:
    def test_blogs_never_include_null_refs(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("blog_view", timestamp=T0, blog_id="b1"),
                make_event("blog_view", timestamp=T0, blog_id=None),
                make_event("page_view", timestamp=T0),
            ]
        )
        rows = engine.popular_content(*window(), ContentDimension.BLOGS)
        assert [r.content_id for r in rows] == ["b1"]

    def test_sorted_desc_and_capped_at_50(self, make_event: MakeEvent) -> None:
        records = []
        for i in range(60):
            views = 1 if i else 5
            records.extend(
                make_event("blog_view", timestamp=T0, blog_id=f"b{i:02d}") for _ in range(views)
            )
        rows = engine_with(records).popular_content(*window(), ContentDimension.BLOGS)

        assert len(rows) == 50
        assert rows[0].content_id == "b00"
        assert rows[0].views == 5
        views = [r.views for r in rows]
        assert views == sorted(views, reverse=True)

    def test_only_view_kinds_count(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("park_view", timestamp=T0, park_code="yose", user_id="u1"),
                make_event("page_view", timestamp=T0, park_code="yose", user_id="u2"),
                make_event("park_save", timestamp=T0, park_code="yose", user_id="u3"),
            ]
        )
        row = engine.popular_content(*window(), ContentDimension.PARKS)[0]
        assert (row.content_id, row.views, row.unique_users) == ("yose", 2, 2)

    def test_limit(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [make_event("event_view", timestamp=T0, event_id=f"e{i}") for i in range(5)]
        )
        assert len(engine.popular_content(*window(), ContentDimension.EVENTS, limit=3)) == 3


# --- Search ---


class TestSearchTerms:
    def test_excludes_searches_without_term(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("search", timestamp=T0, metadata={"searchTerm": "zion"}),
                make_event("search", timestamp=T0, metadata={}),
                make_event("search", timestamp=T0, metadata={"resultCount": 3}),
            ]
        )
        rows = engine.search_terms(*window())
        assert [r.search_term for r in rows] == ["zion"]

    def test_average_results_ignores_missing_counts(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("search", timestamp=T0, user_id="u1", metadata={"searchTerm": "zion", "resultCount": 4}),
                make_event("search", timestamp=T0, user_id="u1", metadata={"searchTerm": "zion", "resultCount": 7}),
                make_event("search", timestamp=T0, metadata={"searchTerm": "zion"}),
                make_event("search", timestamp=T0, metadata={"searchTerm": "acadia"}),
            ]
        )
        rows = engine.search_terms(*window())
        assert rows[0].search_term == "zion"
        assert rows[0].count == 3
        assert rows[0].unique_users == 1
        assert rows[0].avg_results == 6
        assert rows[1].avg_results is None

    def test_no_result_searches(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("search", timestamp=T0, metadata={"searchTerm": "atlantis", "resultCount": 0}),
                make_event("search", timestamp=T0, metadata={"searchTerm": "atlantis", "resultCount": 0}),
                make_event("search", timestamp=T0, metadata={"searchTerm": "zion", "resultCount": 12}),
                make_event("search", timestamp=T0, metadata={"searchTerm": "mu"}),
            ]
        )
        rows = engine.no_result_searches(*window())
        assert [(r.search_term, r.count) for r in rows] == [("atlantis", 2)]

    def test_search_trends_per_day(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("search", timestamp=T0, metadata={"searchTerm": "zion"}),
                make_event("search", timestamp=T0 + timedelta(hours=1), metadata={"searchTerm": "zion"}),
                make_event("search", timestamp=T0 + timedelta(days=1), metadata={"searchTerm": "arches"}),
            ]
        )
        rows = engine.search_trends(*window())
        assert [(r.date, r.total_searches, r.unique_terms) for r in rows] == [
            ("2025-06-01", 2, 1),
            ("2025-06-02", 1, 1),
        ]

    def test_search_trends_skip_searches_without_term(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("search", timestamp=T0, metadata={"searchTerm": "zion"}),
                make_event("search", timestamp=T0, metadata={}),
                make_event("search", timestamp=T0, metadata={"resultCount": 0}),
                make_event("search", timestamp=T0 + timedelta(days=1), metadata={}),
            ]
        )
        rows = engine.search_trends(*window())
        assert [(r.date, r.total_searches, r.unique_terms) for r in rows] == [
            ("2025-06-01", 1, 1),
        ]


# --- Errors ---


class TestErrors:
    def test_grouped_by_code_and_message(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("error", timestamp=T0, error_code="E1", error_message="boom", user_id="u1"),
                make_event("error", timestamp=T0 + timedelta(hours=2), error_code="E1", error_message="boom"),
                make_event("error", timestamp=T0, metadata={"errorCode": "E2", "errorMessage": "bust"}),
                make_event("error", timestamp=T0),
            ]
        )
        rows = engine.errors(*window())

        assert [(r.error_code, r.error_message, r.count) for r in rows] == [
            ("E1", "boom", 2),
            ("E2", "bust", 1),
        ]
        assert rows[0].unique_users == 1
        assert rows[0].last_occurrence == T0 + timedelta(hours=2)

    def test_error_trends(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("error", timestamp=T0, error_code="E1"),
                make_event("error", timestamp=T0, error_code="E2"),
                make_event("error", timestamp=T0, error_message="no code"),
            ]
        )
        rows = engine.error_trends(*window())
        assert [(r.date, r.total_errors, r.unique_error_types) for r in rows] == [
            ("2025-06-01", 3, 2)
        ]


# --- Devices & Locations ---


class TestClientBreakdowns:
    def test_device_stats(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event(timestamp=T0, device=DeviceInfo(type="mobile"), browser=BrowserInfo(name="Safari")),
                make_event(timestamp=T0, device=DeviceInfo(type="mobile"), browser=BrowserInfo(name="Chrome")),
                make_event(timestamp=T0, device=DeviceInfo(type="desktop"), browser=BrowserInfo(name="Chrome")),
                make_event(timestamp=T0),
            ]
        )
        rows = engine.device_stats(*window())
        assert [(r.device_type, r.count, r.browsers) for r in rows] == [
            ("mobile", 2, 2),
            ("desktop", 1, 1),
        ]

    def test_location_stats_with_limit(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event(timestamp=T0, location=LocationInfo(country="US", region="CA")),
                make_event(timestamp=T0, location=LocationInfo(country="US", region="UT")),
                make_event(timestamp=T0, location=LocationInfo(country="CA")),
                make_event(timestamp=T0, location=LocationInfo(country="MX")),
            ]
        )
        rows = engine.location_stats(*window(), limit=2)
        assert [(r.country, r.count, r.regions) for r in rows] == [("US", 2, 2), ("CA", 1, 0)]


# --- Performance ---


class TestPerformance:
    def test_api_performance(self, make_event: MakeEvent) -> None:
        fast = [
            make_event(
                "api_call",
                timestamp=T0,
                metadata={"endpoint": "/api/parks", "responseTime": float(ms)},
            )
            for ms in range(1, 21)
        ]
        slow = [
            make_event(
                "api_call",
                timestamp=T0,
                metadata={"endpoint": "/api/search"},
                response_time=500.0,
            )
        ]
        rows = engine_with(fast + slow).api_performance(*window())

        assert [r.endpoint for r in rows] == ["/api/search", "/api/parks"]
        parks = rows[1]
        assert parks.count == 20
        assert parks.avg_response_time == 10.5
        assert parks.min_response_time == 1.0
        assert parks.max_response_time == 20.0
        assert parks.p95_response_time == 19.0

    def test_page_performance(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event(timestamp=T0, page_url="/parks", duration=1000.0),
                make_event(timestamp=T0, page_url="/parks", metadata={"duration": 4000}),
                make_event(timestamp=T0, page_url="/parks", duration=3000.0),
                make_event(timestamp=T0, page_url="/blog", duration=200.0),
                make_event(timestamp=T0, page_url="/no-timing"),
            ]
        )
        rows = engine.page_performance(*window())

        assert [r.page for r in rows] == ["/parks", "/blog"]
        parks = rows[0]
        assert parks.views == 3
        assert parks.avg_load_time == pytest.approx(2666.67)
        assert parks.slow_pages == 1
        assert parks.slow_page_percentage == pytest.approx(33.33)

    def test_percentile_nearest_rank(self) -> None:
        assert percentile_nearest_rank([5.0], 95) == 5.0
        assert percentile_nearest_rank([1.0, 2.0, 3.0, 4.0], 50) == 2.0


# --- Trends ---


class TestTrends:
    def test_registration_trends(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("user_signup", timestamp=T0 + timedelta(days=1)),
                make_event("user_signup", timestamp=T0),
                make_event("user_signup", timestamp=T0 + timedelta(hours=3)),
                make_event("user_login", timestamp=T0),
            ]
        )
        rows = engine.registration_trends(*window())
        assert [(r.date, r.count) for r in rows] == [("2025-06-01", 2), ("2025-06-02", 1)]

    def test_creation_trends(self, make_event: MakeEvent) -> None:
        engine = engine_with(
            [
                make_event("review_create", timestamp=T0),
                make_event("image_upload", timestamp=T0),
                make_event("image_upload", timestamp=T0),
                make_event("park_view", timestamp=T0),
            ]
        )
        rows = engine.creation_trends(*window())
        assert len(rows) == 1
        assert rows[0].events == {"image_upload": 2, "review_create": 1}


# --- Failures ---


class TestQueryFailures:
    def test_store_failure_wrapped(self) -> None:
        engine = AggregationEngine(BrokenStore())
        with pytest.raises(AnalyticsQueryError):
            engine.event_counts(*window())

    def test_count_failure_wrapped(self) -> None:
        engine = AggregationEngine(BrokenStore())
        with pytest.raises(AnalyticsQueryError):
            engine.total_events(*window())
