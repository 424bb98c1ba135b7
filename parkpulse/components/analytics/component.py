"""
Analytics component - event tracking and aggregation.

Write path: server-observed events go through the EventRecorder queue,
client batches through BatchIngestionService. Read path: windowed
aggregates from AggregationEngine, assembled by DashboardService.

Invariants:
- Records are append-only; nothing here updates or deletes them
- Telemetry write failures are logged, never raised to the caller
- Read failures surface as AnalyticsQueryError (no partial reports)
- Aggregation windows are half-open [start, end)
"""

from __future__ import annotations

from typing import Any

from ._aggregate import AggregationEngine
from ._dashboard import (
    ContentReport,
    DashboardConfig,
    DashboardReport,
    DashboardService,
    ErrorReport,
    PerformanceReport,
    SearchReport,
    UserReport,
)
from ._ingest import BatchIngestionService, BatchIngestResult, IngestConfig, IngestContext
from ._time import MonotonicStamp
from .ports import (
    BlogDirectoryPort,
    DeviceClassifierPort,
    EventStorePort,
    TimePort,
    UserDirectoryPort,
)


def _dashboard(
    event_store: EventStorePort,
    users: UserDirectoryPort | None,
    blogs: BlogDirectoryPort | None,
    time_port: TimePort | None,
    config: DashboardConfig | None,
) -> DashboardService:
    return DashboardService(
        AggregationEngine(event_store),
        users=users,
        blogs=blogs,
        time_port=time_port,
        config=config,
    )


# --- Component Entry Points ---


def run_ingest(
    body: Any,
    context: IngestContext,
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
    classifier: DeviceClassifierPort | None = None,
    config: IngestConfig | None = None,
) -> BatchIngestResult:
    """
    Ingest a client event batch.

    Args:
        body: Decoded request body ``{events, sessionId?, userId?}``.
        context: Session, identity and client details of the request.
        event_store: Event store port.
        time_port: Optional time port for default timestamps.
        classifier: Optional device classifier.
        config: Optional ingestion configuration.

    Returns:
        BatchIngestResult with received/accepted/persisted counts.

    Raises:
        BatchRejectedError: if the envelope carries no events.
    """
    service = BatchIngestionService(
        event_store,
        stamp=MonotonicStamp(time_port),
        classifier=classifier,
        config=config,
    )
    return service.ingest(body, context)


def run_dashboard(
    period: str = "7d",
    *,
    event_store: EventStorePort,
    users: UserDirectoryPort | None = None,
    time_port: TimePort | None = None,
    config: DashboardConfig | None = None,
) -> DashboardReport:
    """
    Build the admin dashboard for a named period (24h, 7d, 30d, 90d).

    Raises:
        PeriodError: unknown period.
        AnalyticsQueryError: any constituent query failed.
    """
    return _dashboard(event_store, users, None, time_port, config).build(period)


def run_user_report(
    period: str = "30d",
    page: int = 1,
    limit: int = 50,
    *,
    event_store: EventStorePort,
    users: UserDirectoryPort | None = None,
    time_port: TimePort | None = None,
) -> UserReport:
    """Paginated user engagement with profiles and registration trends."""
    return _dashboard(event_store, users, None, time_port, None).user_report(period, page, limit)


def run_content_report(
    period: str = "30d",
    content_type: str = "all",
    *,
    event_store: EventStorePort,
    blogs: BlogDirectoryPort | None = None,
    time_port: TimePort | None = None,
) -> ContentReport:
    """Popular parks, blogs and events plus content creation trends."""
    return _dashboard(event_store, None, blogs, time_port, None).content_report(
        period, content_type
    )


def run_search_report(
    period: str = "30d",
    limit: int = 50,
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
) -> SearchReport:
    return _dashboard(event_store, None, None, time_port, None).search_report(period, limit)


def run_error_report(
    period: str = "7d",
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
) -> ErrorReport:
    return _dashboard(event_store, None, None, time_port, None).error_report(period)


def run_performance_report(
    period: str = "24h",
    *,
    event_store: EventStorePort,
    time_port: TimePort | None = None,
) -> PerformanceReport:
    return _dashboard(event_store, None, None, time_port, None).performance_report(period)
