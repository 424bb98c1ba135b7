"""
DashboardService - admin analytics reports.

Assembles the dashboard and the per-area admin reports from the
aggregation engine. Dashboard queries run concurrently on a thread pool;
if any of them fails the whole report fails (there is no partial result).

Growth compares the total event count of the current window against the
equal-length window immediately before it. The two counts are separate
queries and only approximately consistent with each other.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, TypeVar

from ._aggregate import AggregationEngine
from ._errors import AnalyticsQueryError, PeriodError, ReportParameterError
from ._time import DefaultTimePort
from .models import (
    ApiPerformanceRow,
    BlogSummary,
    ContentDimension,
    CreationTrendRow,
    DailyCountRow,
    DeviceStatRow,
    ErrorRow,
    ErrorTrendRow,
    EventCountRow,
    LocationStatRow,
    NoResultSearchRow,
    PagePerformanceRow,
    PopularContentRow,
    SearchTermRow,
    SearchTrendRow,
    UserEngagementRow,
    UserProfile,
)
from .ports import BlogDirectoryPort, TimePort, UserDirectoryPort

logger = logging.getLogger(__name__)

T = TypeVar("T")

# --- Periods ---

DASHBOARD_PERIODS: dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}

MAX_REPORT_PERIOD = timedelta(days=365)

_PERIOD_RE = re.compile(r"^(\d+)([hd])$")

CONTENT_TYPES = ("all", "parks", "blogs", "events")


def parse_dashboard_period(period: str) -> timedelta:
    """Resolve one of the named dashboard periods."""
    try:
        return DASHBOARD_PERIODS[period]
    except KeyError:
        allowed = ", ".join(DASHBOARD_PERIODS)
        raise PeriodError(f"Invalid period '{period}' (expected one of: {allowed})") from None


def parse_period(period: str) -> timedelta:
    """Resolve a ``<N>h`` or ``<N>d`` report period (at most 365 days)."""
    match = _PERIOD_RE.match(period or "")
    if not match:
        raise PeriodError(f"Invalid period '{period}' (expected <N>h or <N>d)")

    amount = int(match.group(1))
    if amount < 1:
        raise PeriodError(f"Invalid period '{period}' (must be at least 1)")

    delta = timedelta(hours=amount) if match.group(2) == "h" else timedelta(days=amount)
    if delta > MAX_REPORT_PERIOD:
        raise PeriodError(f"Invalid period '{period}' (at most 365d)")
    return delta


def growth_rate(current: int, previous: int) -> float:
    """Percentage change from previous to current; 0.0 when previous is 0."""
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 2)


# --- Report Models ---


@dataclass(frozen=True)
class DateRange:
    start_date: datetime
    end_date: datetime


@dataclass(frozen=True)
class Overview:
    total_events: int
    growth_rate: float
    unique_users: int
    average_events_per_user: float


@dataclass(frozen=True)
class EngagedUser:
    """Engagement row joined with the user's profile (None if unknown)."""

    user_id: str
    total_events: int
    unique_sessions: int
    event_kinds: int
    first_activity: datetime
    last_activity: datetime
    session_duration_hours: float
    user: UserProfile | None


@dataclass(frozen=True)
class BlogContentRow:
    """Popular blog row joined with the post summary (None if unknown)."""

    content_id: str
    views: int
    unique_users: int
    details: BlogSummary | None


@dataclass(frozen=True)
class PopularContent:
    parks: list[PopularContentRow]
    blogs: list[PopularContentRow]
    events: list[PopularContentRow]


@dataclass(frozen=True)
class DashboardReport:
    period: str
    date_range: DateRange
    overview: Overview
    event_counts: list[EventCountRow]
    user_engagement: list[EngagedUser]
    popular_content: PopularContent
    search_analytics: list[SearchTermRow]
    error_analytics: list[ErrorRow]
    device_stats: list[DeviceStatRow]
    location_stats: list[LocationStatRow]


@dataclass(frozen=True)
class UserReport:
    period: str
    users: list[EngagedUser]
    total_users: int
    page: int
    pages: int
    registration_trends: list[DailyCountRow]


@dataclass(frozen=True)
class ContentReport:
    period: str
    content_type: str
    parks: list[PopularContentRow] | None
    blogs: list[BlogContentRow] | None
    events: list[PopularContentRow] | None
    creation_trends: list[CreationTrendRow]


@dataclass(frozen=True)
class SearchReport:
    period: str
    top_searches: list[SearchTermRow]
    search_trends: list[SearchTrendRow]
    no_result_searches: list[NoResultSearchRow]


@dataclass(frozen=True)
class ErrorReport:
    period: str
    errors: list[ErrorRow]
    error_trends: list[ErrorTrendRow]


@dataclass(frozen=True)
class PerformanceReport:
    period: str
    api_performance: list[ApiPerformanceRow]
    page_performance: list[PagePerformanceRow]


@dataclass(frozen=True)
class DashboardConfig:
    """Dashboard sizing."""

    max_workers: int = 8
    top_users: int = 20
    top_content: int = 10
    top_searches: int = 20
    top_errors: int = 10
    top_countries: int = 20


# --- Service ---


class DashboardService:
    """Builds admin reports from the aggregation engine."""

    def __init__(
        self,
        engine: AggregationEngine,
        users: UserDirectoryPort | None = None,
        blogs: BlogDirectoryPort | None = None,
        time_port: TimePort | None = None,
        config: DashboardConfig | None = None,
    ) -> None:
        self._engine = engine
        self._users = users
        self._blogs = blogs
        self._time = time_port or DefaultTimePort()
        self._config = config or DashboardConfig()

    def _window(self, delta: timedelta) -> tuple[datetime, datetime]:
        end = self._time.now_utc()
        return end - delta, end

    def build(self, period: str = "7d") -> DashboardReport:
        """
        Build the dashboard for a named period.

        Raises:
            PeriodError: unknown period.
            AnalyticsQueryError: any constituent query failed.
        """
        delta = parse_dashboard_period(period)
        start, end = self._window(delta)
        cfg = self._config
        engine = self._engine

        with ThreadPoolExecutor(
            max_workers=cfg.max_workers, thread_name_prefix="dashboard"
        ) as pool:
            futures: dict[str, Future[Any]] = {
                "event_counts": pool.submit(engine.event_counts, start, end),
                "engagement": pool.submit(engine.user_engagement, start, end),
                "parks": pool.submit(
                    engine.popular_content, start, end, ContentDimension.PARKS
                ),
                "blogs": pool.submit(
                    engine.popular_content, start, end, ContentDimension.BLOGS
                ),
                "events": pool.submit(
                    engine.popular_content, start, end, ContentDimension.EVENTS
                ),
                "search": pool.submit(engine.search_terms, start, end),
                "errors": pool.submit(engine.errors, start, end),
                "devices": pool.submit(engine.device_stats, start, end),
                "locations": pool.submit(
                    engine.location_stats, start, end, cfg.top_countries
                ),
                "previous_total": pool.submit(engine.total_events, start - delta, start),
                "current_total": pool.submit(engine.total_events, start, end),
            }
            results = {name: _result(name, future) for name, future in futures.items()}

        engagement: list[UserEngagementRow] = results["engagement"]
        current_total: int = results["current_total"]
        previous_total: int = results["previous_total"]
        engaged_users = len(engagement)

        overview = Overview(
            total_events=current_total,
            growth_rate=growth_rate(current_total, previous_total),
            unique_users=engaged_users,
            average_events_per_user=(
                round(current_total / engaged_users, 2) if engaged_users else 0.0
            ),
        )

        report = DashboardReport(
            period=period,
            date_range=DateRange(start_date=start, end_date=end),
            overview=overview,
            event_counts=results["event_counts"],
            user_engagement=self._enrich_users(engagement[: cfg.top_users]),
            popular_content=PopularContent(
                parks=results["parks"][: cfg.top_content],
                blogs=results["blogs"][: cfg.top_content],
                events=results["events"][: cfg.top_content],
            ),
            search_analytics=results["search"][: cfg.top_searches],
            error_analytics=results["errors"][: cfg.top_errors],
            device_stats=results["devices"],
            location_stats=results["locations"],
        )
        logger.info(
            "Dashboard built for %s: %d events (previous %d)",
            period,
            current_total,
            previous_total,
        )
        return report

    def user_report(self, period: str = "30d", page: int = 1, limit: int = 50) -> UserReport:
        """Paginated engagement ranking with profiles and sign-up trends."""
        if page < 1 or limit < 1:
            raise ReportParameterError("page and limit must be positive")
        start, end = self._window(parse_period(period))

        engagement = self._engine.user_engagement(start, end)
        offset = (page - 1) * limit
        return UserReport(
            period=period,
            users=self._enrich_users(engagement[offset : offset + limit]),
            total_users=len(engagement),
            page=page,
            pages=math.ceil(len(engagement) / limit),
            registration_trends=self._engine.registration_trends(start, end),
        )

    def content_report(self, period: str = "30d", content_type: str = "all") -> ContentReport:
        """Popular content per dimension, blogs enriched, plus creation trends."""
        if content_type not in CONTENT_TYPES:
            raise ReportParameterError(
                f"Invalid contentType '{content_type}' (expected one of: {', '.join(CONTENT_TYPES)})"
            )
        start, end = self._window(parse_period(period))

        def wanted(name: str) -> bool:
            return content_type in ("all", name)

        parks = (
            self._engine.popular_content(start, end, ContentDimension.PARKS)
            if wanted("parks")
            else None
        )
        blogs = (
            self._enrich_blogs(self._engine.popular_content(start, end, ContentDimension.BLOGS))
            if wanted("blogs")
            else None
        )
        events = (
            self._engine.popular_content(start, end, ContentDimension.EVENTS)
            if wanted("events")
            else None
        )
        return ContentReport(
            period=period,
            content_type=content_type,
            parks=parks,
            blogs=blogs,
            events=events,
            creation_trends=self._engine.creation_trends(start, end),
        )

    def search_report(self, period: str = "30d", limit: int = 50) -> SearchReport:
        start, end = self._window(parse_period(period))
        return SearchReport(
            period=period,
            top_searches=self._engine.search_terms(start, end, limit),
            search_trends=self._engine.search_trends(start, end),
            no_result_searches=self._engine.no_result_searches(start, end),
        )

    def error_report(self, period: str = "7d") -> ErrorReport:
        start, end = self._window(parse_period(period))
        return ErrorReport(
            period=period,
            errors=self._engine.errors(start, end),
            error_trends=self._engine.error_trends(start, end),
        )

    def performance_report(self, period: str = "24h") -> PerformanceReport:
        start, end = self._window(parse_period(period))
        return PerformanceReport(
            period=period,
            api_performance=self._engine.api_performance(start, end),
            page_performance=self._engine.page_performance(start, end),
        )

    # --- Enrichment ---

    def _enrich_users(self, rows: list[UserEngagementRow]) -> list[EngagedUser]:
        profiles = _lookup(self._users.get_profiles if self._users else None, rows, "user_id")
        return [
            EngagedUser(
                user_id=row.user_id,
                total_events=row.total_events,
                unique_sessions=row.unique_sessions,
                event_kinds=row.event_kinds,
                first_activity=row.first_activity,
                last_activity=row.last_activity,
                session_duration_hours=row.session_duration_hours,
                user=profiles.get(row.user_id),
            )
            for row in rows
        ]

    def _enrich_blogs(self, rows: list[PopularContentRow]) -> list[BlogContentRow]:
        summaries = _lookup(self._blogs.get_summaries if self._blogs else None, rows, "content_id")
        return [
            BlogContentRow(
                content_id=row.content_id,
                views=row.views,
                unique_users=row.unique_users,
                details=summaries.get(row.content_id),
            )
            for row in rows
        ]


def _result(name: str, future: Future[T]) -> T:
    try:
        return future.result()
    except AnalyticsQueryError:
        raise
    except Exception as e:
        logger.error("Dashboard query %s failed: %s", name, e)
        raise AnalyticsQueryError(f"Dashboard query '{name}' failed: {e}") from e


def _lookup(
    fetch: Callable[[list[str]], dict[str, T]] | None,
    rows: list[Any],
    attr: str,
) -> dict[str, T]:
    """Fetch collaborator records for the ids in rows."""
    if fetch is None or not rows:
        return {}
    ids = [getattr(row, attr) for row in rows]
    try:
        return fetch(ids)
    except Exception as e:
        logger.error("Collaborator lookup failed for %d ids: %s", len(ids), e)
        raise AnalyticsQueryError(f"Collaborator lookup failed: {e}") from e
