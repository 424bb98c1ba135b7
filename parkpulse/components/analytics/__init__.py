"""
Analytics component - event tracking and aggregation.
"""

from ._aggregate import AggregationEngine
from ._dashboard import (
    DASHBOARD_PERIODS,
    BlogContentRow,
    ContentReport,
    DashboardConfig,
    DashboardReport,
    DashboardService,
    DateRange,
    EngagedUser,
    ErrorReport,
    Overview,
    PerformanceReport,
    PopularContent,
    SearchReport,
    UserReport,
    growth_rate,
    parse_dashboard_period,
    parse_period,
)
from ._device import (
    DEFAULT_TABLE,
    ClassifierTable,
    ClientSignature,
    TableDeviceClassifier,
    classify_user_agent,
)
from ._errors import (
    AnalyticsQueryError,
    BatchRejectedError,
    EventValidationError,
    PeriodError,
    ReportParameterError,
    ValidationIssue,
)
from ._ingest import BatchIngestionService, BatchIngestResult, IngestConfig, IngestContext
from ._payloads import (
    ApiCallPayload,
    ErrorPayload,
    EventPayload,
    GenericPayload,
    PageViewPayload,
    SearchPayload,
    UserActionPayload,
    parse_payload,
)
from ._record import RecordDefaults, record_from_wire
from ._recorder import DropPolicy, EventRecorder, RecorderConfig, RecorderStats
from ._session import SessionIdentifier, SessionResolution
from ._store import InMemoryEventStore
from ._time import DefaultTimePort, MonotonicStamp
from ._tracker import EventTracker, RequestContext, content_refs
from .component import (
    run_content_report,
    run_dashboard,
    run_error_report,
    run_ingest,
    run_performance_report,
    run_search_report,
    run_user_report,
)
from .models import (
    KIND_DEFAULT_CATEGORY,
    BlogSummary,
    BrowserInfo,
    ContentDimension,
    DeviceInfo,
    EventCategory,
    EventKind,
    EventRecord,
    LocationInfo,
    OSInfo,
    UserProfile,
)
from .ports import (
    BlogDirectoryPort,
    DeviceClassifierPort,
    EventStorePort,
    SessionStorePort,
    TimePort,
    UserDirectoryPort,
)

__all__ = [
    # Entry points
    "run_content_report",
    "run_dashboard",
    "run_error_report",
    "run_ingest",
    "run_performance_report",
    "run_search_report",
    "run_user_report",
    # Records
    "EventCategory",
    "EventKind",
    "EventRecord",
    "DeviceInfo",
    "BrowserInfo",
    "OSInfo",
    "LocationInfo",
    "ContentDimension",
    "KIND_DEFAULT_CATEGORY",
    "UserProfile",
    "BlogSummary",
    # Payloads
    "ApiCallPayload",
    "ErrorPayload",
    "EventPayload",
    "GenericPayload",
    "PageViewPayload",
    "SearchPayload",
    "UserActionPayload",
    "parse_payload",
    "RecordDefaults",
    "record_from_wire",
    # Errors
    "AnalyticsQueryError",
    "BatchRejectedError",
    "EventValidationError",
    "PeriodError",
    "ReportParameterError",
    "ValidationIssue",
    # Write path
    "DropPolicy",
    "EventRecorder",
    "RecorderConfig",
    "RecorderStats",
    "EventTracker",
    "RequestContext",
    "content_refs",
    "BatchIngestionService",
    "BatchIngestResult",
    "IngestConfig",
    "IngestContext",
    "SessionIdentifier",
    "SessionResolution",
    "ClassifierTable",
    "ClientSignature",
    "DEFAULT_TABLE",
    "TableDeviceClassifier",
    "classify_user_agent",
    # Read path
    "AggregationEngine",
    "DashboardService",
    "DashboardConfig",
    "DashboardReport",
    "DateRange",
    "Overview",
    "EngagedUser",
    "BlogContentRow",
    "PopularContent",
    "UserReport",
    "ContentReport",
    "SearchReport",
    "ErrorReport",
    "PerformanceReport",
    "DASHBOARD_PERIODS",
    "growth_rate",
    "parse_dashboard_period",
    "parse_period",
    # Adapters / time
    "InMemoryEventStore",
    "DefaultTimePort",
    "MonotonicStamp",
    # Ports
    "BlogDirectoryPort",
    "DeviceClassifierPort",
    "EventStorePort",
    "SessionStorePort",
    "TimePort",
    "UserDirectoryPort",
]
