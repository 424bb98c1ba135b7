"""
Aggregation queries over the event store.

Each summary is a pure function over the records of a window, so the same
grouping semantics hold for every store adapter. AggregationEngine binds the
functions to a store and turns store failures into AnalyticsQueryError.

Shared rules:
- Windows are half-open: ``start <= timestamp < end``
- A record missing the grouped field is left out of that aggregate
- Unique users count distinct non-null user ids only
- Ties are broken by the group key, ascending
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from typing import TypeVar

from ._errors import AnalyticsQueryError
from ._payloads import ApiCallPayload, ErrorPayload, PageViewPayload, SearchPayload
from .models import (
    CREATION_KINDS,
    VIEW_KINDS,
    ApiPerformanceRow,
    ContentDimension,
    CreationTrendRow,
    DailyCountRow,
    DeviceStatRow,
    ErrorRow,
    ErrorTrendRow,
    EventCountRow,
    EventKind,
    EventRecord,
    LocationStatRow,
    NoResultSearchRow,
    PagePerformanceRow,
    PopularContentRow,
    SearchTermRow,
    SearchTrendRow,
    UserEngagementRow,
)
from .ports import EventStorePort

logger = logging.getLogger(__name__)

POPULAR_CONTENT_CAP = 50
SEARCH_TERMS_CAP = 100
PAGE_PERFORMANCE_CAP = 20
NO_RESULT_SEARCHES_CAP = 20
SLOW_PAGE_THRESHOLD_MS = 3000.0

T = TypeVar("T")


# --- Helpers ---


def _unique_users(records: Iterable[EventRecord]) -> int:
    return len({r.user_id for r in records if r.user_id is not None})


def _group(
    records: Iterable[EventRecord],
    key: Callable[[EventRecord], str | None],
) -> dict[str, list[EventRecord]]:
    groups: dict[str, list[EventRecord]] = defaultdict(list)
    for record in records:
        k = key(record)
        if k is not None:
            groups[k].append(record)
    return groups


def _ranked(rows: Iterable[T], metric: Callable[[T], float], key: Callable[[T], str]) -> list[T]:
    """Sort by metric descending, then key ascending."""
    return sorted(rows, key=lambda row: (-metric(row), key(row)))


def _cap(limit: int | None, ceiling: int) -> int:
    if limit is None:
        return ceiling
    return max(0, min(limit, ceiling))


def day_of(ts: datetime) -> str:
    """UTC calendar day (YYYY-MM-DD) of a timestamp."""
    return ts.strftime("%Y-%m-%d")


def percentile_nearest_rank(values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile of a non-empty sequence."""
    ordered = sorted(values)
    rank = max(1, math.ceil(pct / 100 * len(ordered)))
    return ordered[rank - 1]


def search_term_of(record: EventRecord) -> str | None:
    payload = record.metadata
    if isinstance(payload, SearchPayload):
        return payload.search_term
    return None


def result_count_of(record: EventRecord) -> int | None:
    payload = record.metadata
    if isinstance(payload, SearchPayload):
        return payload.result_count
    return None


def error_code_of(record: EventRecord) -> str | None:
    if record.error_code is not None:
        return record.error_code
    payload = record.metadata
    if isinstance(payload, ErrorPayload):
        return payload.error_code
    return None


def error_message_of(record: EventRecord) -> str | None:
    if record.error_message is not None:
        return record.error_message
    payload = record.metadata
    if isinstance(payload, ErrorPayload):
        return payload.error_message
    return None


def endpoint_of(record: EventRecord) -> str | None:
    payload = record.metadata
    if isinstance(payload, ApiCallPayload):
        return payload.endpoint
    return None


def response_time_of(record: EventRecord) -> float | None:
    if record.response_time is not None:
        return record.response_time
    payload = record.metadata
    if isinstance(payload, ApiCallPayload):
        return payload.response_time_ms
    return None


def load_time_of(record: EventRecord) -> float | None:
    if record.duration is not None:
        return record.duration
    payload = record.metadata
    if isinstance(payload, PageViewPayload):
        return payload.duration_ms
    return None


# --- Core Summaries ---


def event_counts(records: Iterable[EventRecord]) -> list[EventCountRow]:
    """Count events per kind, most frequent first."""
    groups = _group(records, lambda r: r.event_kind.value)
    rows = [
        EventCountRow(event_kind=kind, count=len(items), unique_users=_unique_users(items))
        for kind, items in groups.items()
    ]
    return _ranked(rows, lambda r: r.count, lambda r: r.event_kind)


def user_engagement(
    records: Iterable[EventRecord],
    user_id: str | None = None,
) -> list[UserEngagementRow]:
    """
    Per-user activity, most active first.

    Anonymous events are not attributed to anyone and are left out.
    """
    selected = (r for r in records if user_id is None or r.user_id == user_id)
    groups = _group(selected, lambda r: r.user_id)

    rows = []
    for uid, items in groups.items():
        first = min(r.timestamp for r in items)
        last = max(r.timestamp for r in items)
        rows.append(
            UserEngagementRow(
                user_id=uid,
                total_events=len(items),
                unique_sessions=len({r.session_id for r in items}),
                event_kinds=len({r.event_kind for r in items}),
                first_activity=first,
                last_activity=last,
                session_duration_hours=(last - first).total_seconds() / 3600,
            )
        )
    return _ranked(rows, lambda r: r.total_events, lambda r: r.user_id)


def popular_content(
    records: Iterable[EventRecord],
    dimension: ContentDimension,
    limit: int | None = None,
) -> list[PopularContentRow]:
    """Most viewed parks, blogs or events; capped at 50 rows."""
    views = (r for r in records if r.event_kind in VIEW_KINDS)
    groups = _group(views, lambda r: r.content_ref(dimension))
    rows = [
        PopularContentRow(content_id=ref, views=len(items), unique_users=_unique_users(items))
        for ref, items in groups.items()
    ]
    ranked = _ranked(rows, lambda r: r.views, lambda r: r.content_id)
    return ranked[: _cap(limit, POPULAR_CONTENT_CAP)]


def search_terms(
    records: Iterable[EventRecord],
    limit: int | None = None,
) -> list[SearchTermRow]:
    """Most frequent search terms; capped at 100 rows."""
    searches = (r for r in records if r.event_kind == EventKind.SEARCH)
    groups = _group(searches, search_term_of)

    rows = []
    for term, items in groups.items():
        counts = [c for c in (result_count_of(r) for r in items) if c is not None]
        rows.append(
            SearchTermRow(
                search_term=term,
                count=len(items),
                unique_users=_unique_users(items),
                avg_results=round(sum(counts) / len(counts)) if counts else None,
            )
        )
    ranked = _ranked(rows, lambda r: r.count, lambda r: r.search_term)
    return ranked[: _cap(limit, SEARCH_TERMS_CAP)]


def errors(records: Iterable[EventRecord]) -> list[ErrorRow]:
    """Error events grouped by (code, message), most frequent first."""
    groups: dict[tuple[str | None, str | None], list[EventRecord]] = defaultdict(list)
    for record in records:
        if record.event_kind != EventKind.ERROR:
            continue
        key = (error_code_of(record), error_message_of(record))
        if key == (None, None):
            continue
        groups[key].append(record)

    rows = [
        ErrorRow(
            error_code=code,
            error_message=message,
            count=len(items),
            unique_users=_unique_users(items),
            last_occurrence=max(r.timestamp for r in items),
        )
        for (code, message), items in groups.items()
    ]
    return _ranked(
        rows,
        lambda r: r.count,
        lambda r: f"{r.error_code or ''}\x00{r.error_message or ''}",
    )


def device_stats(records: Iterable[EventRecord]) -> list[DeviceStatRow]:
    """Event counts per device type with the number of distinct browsers."""
    groups = _group(records, lambda r: r.device.type)
    rows = [
        DeviceStatRow(
            device_type=device_type,
            count=len(items),
            browsers=len({r.browser.name for r in items if r.browser.name is not None}),
        )
        for device_type, items in groups.items()
    ]
    return _ranked(rows, lambda r: r.count, lambda r: r.device_type)


def location_stats(
    records: Iterable[EventRecord],
    limit: int | None = None,
) -> list[LocationStatRow]:
    """Event counts per country with the number of distinct regions."""
    groups = _group(records, lambda r: r.location.country)
    rows = [
        LocationStatRow(
            country=country,
            count=len(items),
            regions=len({r.location.region for r in items if r.location.region is not None}),
        )
        for country, items in groups.items()
    ]
    ranked = _ranked(rows, lambda r: r.count, lambda r: r.country)
    return ranked if limit is None else ranked[: max(0, limit)]


# --- Performance ---


def api_performance(records: Iterable[EventRecord]) -> list[ApiPerformanceRow]:
    """Response time statistics per API route template, slowest first."""
    timings: dict[str, list[float]] = defaultdict(list)
    for record in records:
        if record.event_kind != EventKind.API_CALL:
            continue
        endpoint = endpoint_of(record)
        elapsed = response_time_of(record)
        if endpoint is None or elapsed is None:
            continue
        timings[endpoint].append(elapsed)

    rows = [
        ApiPerformanceRow(
            endpoint=endpoint,
            count=len(values),
            avg_response_time=round(sum(values) / len(values), 2),
            min_response_time=min(values),
            max_response_time=max(values),
            p95_response_time=percentile_nearest_rank(values, 95),
        )
        for endpoint, values in timings.items()
    ]
    return _ranked(rows, lambda r: r.avg_response_time, lambda r: r.endpoint)


def page_performance(
    records: Iterable[EventRecord],
    limit: int | None = None,
) -> list[PagePerformanceRow]:
    """Load times per page URL, slowest first; capped at 20 rows."""
    timings: dict[str, list[float]] = defaultdict(list)
    for record in records:
        if record.event_kind != EventKind.PAGE_VIEW or record.page_url is None:
            continue
        load_time = load_time_of(record)
        if load_time is None:
            continue
        timings[record.page_url].append(load_time)

    rows = []
    for page, values in timings.items():
        slow = sum(1 for v in values if v > SLOW_PAGE_THRESHOLD_MS)
        rows.append(
            PagePerformanceRow(
                page=page,
                views=len(values),
                avg_load_time=round(sum(values) / len(values), 2),
                slow_pages=slow,
                slow_page_percentage=round(slow / len(values) * 100, 2),
            )
        )
    ranked = _ranked(rows, lambda r: r.avg_load_time, lambda r: r.page)
    return ranked[: _cap(limit, PAGE_PERFORMANCE_CAP)]


# --- Trends ---


def registration_trends(records: Iterable[EventRecord]) -> list[DailyCountRow]:
    """Sign-ups per UTC day, oldest day first."""
    per_day: dict[str, int] = defaultdict(int)
    for record in records:
        if record.event_kind == EventKind.USER_SIGNUP:
            per_day[day_of(record.timestamp)] += 1
    return [DailyCountRow(date=d, count=per_day[d]) for d in sorted(per_day)]


def search_trends(records: Iterable[EventRecord]) -> list[SearchTrendRow]:
    """Searches carrying a term, and distinct terms, per UTC day."""
    totals: dict[str, int] = defaultdict(int)
    terms: dict[str, set[str]] = defaultdict(set)
    for record in records:
        if record.event_kind != EventKind.SEARCH:
            continue
        term = search_term_of(record)
        if term is None:
            continue
        day = day_of(record.timestamp)
        totals[day] += 1
        terms[day].add(term)
    return [
        SearchTrendRow(date=d, total_searches=totals[d], unique_terms=len(terms[d]))
        for d in sorted(totals)
    ]


def no_result_searches(
    records: Iterable[EventRecord],
    limit: int | None = None,
) -> list[NoResultSearchRow]:
    """Terms whose searches returned nothing; capped at 20 rows."""
    counts: dict[str, int] = defaultdict(int)
    for record in records:
        if record.event_kind != EventKind.SEARCH or result_count_of(record) != 0:
            continue
        term = search_term_of(record)
        if term is not None:
            counts[term] += 1
    rows = [NoResultSearchRow(search_term=t, count=c) for t, c in counts.items()]
    ranked = _ranked(rows, lambda r: r.count, lambda r: r.search_term)
    return ranked[: _cap(limit, NO_RESULT_SEARCHES_CAP)]


def error_trends(records: Iterable[EventRecord]) -> list[ErrorTrendRow]:
    """Errors and distinct error codes per UTC day."""
    totals: dict[str, int] = defaultdict(int)
    codes: dict[str, set[str]] = defaultdict(set)
    for record in records:
        if record.event_kind != EventKind.ERROR:
            continue
        day = day_of(record.timestamp)
        totals[day] += 1
        code = error_code_of(record)
        if code is not None:
            codes[day].add(code)
    return [
        ErrorTrendRow(date=d, total_errors=totals[d], unique_error_types=len(codes[d]))
        for d in sorted(totals)
    ]


def creation_trends(records: Iterable[EventRecord]) -> list[CreationTrendRow]:
    """Content creation events per UTC day, counted per kind."""
    per_day: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for record in records:
        if record.event_kind in CREATION_KINDS:
            per_day[day_of(record.timestamp)][record.event_kind.value] += 1
    return [
        CreationTrendRow(date=d, events=dict(sorted(per_day[d].items())))
        for d in sorted(per_day)
    ]


# --- Engine ---


class AggregationEngine:
    """
    Read-only queries over an event store.

    Every method takes a half-open window ``[start, end)``. Any store failure
    surfaces as AnalyticsQueryError.
    """

    def __init__(self, store: EventStorePort) -> None:
        self._store = store

    def _find(
        self,
        start: datetime,
        end: datetime,
        kinds: Iterable[EventKind] | None = None,
    ) -> list[EventRecord]:
        try:
            return self._store.find(start, end, kinds)
        except Exception as e:
            logger.error("Analytics store query failed for [%s, %s): %s", start, end, e)
            raise AnalyticsQueryError(f"Event store query failed: {e}") from e

    def total_events(self, start: datetime, end: datetime) -> int:
        try:
            return self._store.count(start, end)
        except Exception as e:
            logger.error("Analytics store count failed for [%s, %s): %s", start, end, e)
            raise AnalyticsQueryError(f"Event store count failed: {e}") from e

    def event_counts(self, start: datetime, end: datetime) -> list[EventCountRow]:
        return event_counts(self._find(start, end))

    def user_engagement(
        self,
        start: datetime,
        end: datetime,
        user_id: str | None = None,
    ) -> list[UserEngagementRow]:
        return user_engagement(self._find(start, end), user_id)

    def popular_content(
        self,
        start: datetime,
        end: datetime,
        dimension: ContentDimension,
        limit: int | None = None,
    ) -> list[PopularContentRow]:
        return popular_content(self._find(start, end, VIEW_KINDS), dimension, limit)

    def search_terms(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[SearchTermRow]:
        return search_terms(self._find(start, end, [EventKind.SEARCH]), limit)

    def errors(self, start: datetime, end: datetime) -> list[ErrorRow]:
        return errors(self._find(start, end, [EventKind.ERROR]))

    def device_stats(self, start: datetime, end: datetime) -> list[DeviceStatRow]:
        return device_stats(self._find(start, end))

    def location_stats(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[LocationStatRow]:
        return location_stats(self._find(start, end), limit)

    def api_performance(self, start: datetime, end: datetime) -> list[ApiPerformanceRow]:
        return api_performance(self._find(start, end, [EventKind.API_CALL]))

    def page_performance(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[PagePerformanceRow]:
        return page_performance(self._find(start, end, [EventKind.PAGE_VIEW]), limit)

    def registration_trends(self, start: datetime, end: datetime) -> list[DailyCountRow]:
        return registration_trends(self._find(start, end, [EventKind.USER_SIGNUP]))

    def search_trends(self, start: datetime, end: datetime) -> list[SearchTrendRow]:
        return search_trends(self._find(start, end, [EventKind.SEARCH]))

    def no_result_searches(
        self,
        start: datetime,
        end: datetime,
        limit: int | None = None,
    ) -> list[NoResultSearchRow]:
        return no_result_searches(self._find(start, end, [EventKind.SEARCH]), limit)

    def error_trends(self, start: datetime, end: datetime) -> list[ErrorTrendRow]:
        return error_trends(self._find(start, end, [EventKind.ERROR]))

    def creation_trends(self, start: datetime, end: datetime) -> list[CreationTrendRow]:
        return creation_trends(self._find(start, end, CREATION_KINDS))
