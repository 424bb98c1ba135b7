"""
Analytics component models.

Event records, their context value objects and the result rows produced by
the aggregation queries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from ._errors import EventValidationError, ValidationIssue
from ._payloads import EventPayload, GenericPayload

# --- Enums ---


class EventKind(str, Enum):
    """Closed set of trackable event kinds."""

    PAGE_VIEW = "page_view"
    USER_ACTION = "user_action"
    API_CALL = "api_call"
    SEARCH = "search"
    DOWNLOAD = "download"
    PARK_VIEW = "park_view"
    PARK_SAVE = "park_save"
    PARK_VISIT = "park_visit"
    REVIEW_CREATE = "review_create"
    REVIEW_HELPFUL = "review_helpful"
    BLOG_VIEW = "blog_view"
    BLOG_SHARE = "blog_share"
    EVENT_REGISTER = "event_register"
    EVENT_VIEW = "event_view"
    AI_CHAT = "ai_chat"
    CONVERSATION_CREATE = "conversation_create"
    IMAGE_UPLOAD = "image_upload"
    USER_SIGNUP = "user_signup"
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    ERROR = "error"
    PERFORMANCE = "performance"


class EventCategory(str, Enum):
    """Closed set of event categories."""

    USER = "user"
    CONTENT = "content"
    ENGAGEMENT = "engagement"
    TECHNICAL = "technical"
    BUSINESS = "business"


class ContentDimension(str, Enum):
    """Content reference a popularity ranking is grouped by."""

    PARKS = "parks"
    BLOGS = "blogs"
    EVENTS = "events"


# Category used when the caller does not supply one.
KIND_DEFAULT_CATEGORY: dict[EventKind, EventCategory] = {
    EventKind.PAGE_VIEW: EventCategory.CONTENT,
    EventKind.USER_ACTION: EventCategory.ENGAGEMENT,
    EventKind.API_CALL: EventCategory.TECHNICAL,
    EventKind.SEARCH: EventCategory.ENGAGEMENT,
    EventKind.DOWNLOAD: EventCategory.CONTENT,
    EventKind.PARK_VIEW: EventCategory.CONTENT,
    EventKind.PARK_SAVE: EventCategory.ENGAGEMENT,
    EventKind.PARK_VISIT: EventCategory.ENGAGEMENT,
    EventKind.REVIEW_CREATE: EventCategory.ENGAGEMENT,
    EventKind.REVIEW_HELPFUL: EventCategory.ENGAGEMENT,
    EventKind.BLOG_VIEW: EventCategory.CONTENT,
    EventKind.BLOG_SHARE: EventCategory.ENGAGEMENT,
    EventKind.EVENT_REGISTER: EventCategory.BUSINESS,
    EventKind.EVENT_VIEW: EventCategory.CONTENT,
    EventKind.AI_CHAT: EventCategory.ENGAGEMENT,
    EventKind.CONVERSATION_CREATE: EventCategory.ENGAGEMENT,
    EventKind.IMAGE_UPLOAD: EventCategory.CONTENT,
    EventKind.USER_SIGNUP: EventCategory.USER,
    EventKind.USER_LOGIN: EventCategory.USER,
    EventKind.USER_LOGOUT: EventCategory.USER,
    EventKind.ERROR: EventCategory.TECHNICAL,
    EventKind.PERFORMANCE: EventCategory.TECHNICAL,
}

VIEW_KINDS: frozenset[EventKind] = frozenset(
    {
        EventKind.PAGE_VIEW,
        EventKind.PARK_VIEW,
        EventKind.BLOG_VIEW,
        EventKind.EVENT_VIEW,
    }
)

CREATION_KINDS: frozenset[EventKind] = frozenset(
    {
        EventKind.REVIEW_CREATE,
        EventKind.CONVERSATION_CREATE,
        EventKind.IMAGE_UPLOAD,
    }
)


# --- Parsing ---


def parse_event_kind(value: Any) -> EventKind:
    """Parse an event kind, rejecting anything outside the closed set."""
    if isinstance(value, EventKind):
        return value
    if not value:
        raise EventValidationError(
            [ValidationIssue("event_kind_required", "Event kind is required", "eventKind")]
        )
    try:
        return EventKind(value)
    except ValueError:
        raise EventValidationError(
            [
                ValidationIssue(
                    "invalid_event_kind",
                    f"Event kind '{value}' is not allowed",
                    "eventKind",
                )
            ]
        ) from None


def parse_event_category(value: Any, kind: EventKind) -> EventCategory:
    """Parse an event category; a missing one falls back to the kind default."""
    if isinstance(value, EventCategory):
        return value
    if value is None or value == "":
        return KIND_DEFAULT_CATEGORY[kind]
    try:
        return EventCategory(value)
    except ValueError:
        raise EventValidationError(
            [
                ValidationIssue(
                    "invalid_event_category",
                    f"Event category '{value}' is not allowed",
                    "eventCategory",
                )
            ]
        ) from None


# --- Context Value Objects ---


@dataclass(frozen=True)
class DeviceInfo:
    type: str | None = None
    brand: str | None = None
    model: str | None = None


@dataclass(frozen=True)
class BrowserInfo:
    name: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class OSInfo:
    name: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class LocationInfo:
    country: str | None = None
    region: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None


# --- Event Record ---


@dataclass(frozen=True)
class EventRecord:
    """
    One immutable analytics fact.

    Records are append-only: a correction is a new record, never an update.
    """

    event_kind: EventKind
    event_category: EventCategory
    session_id: str
    timestamp: datetime
    user_id: str | None = None
    metadata: EventPayload = field(default_factory=GenericPayload)

    # Content references
    park_code: str | None = None
    blog_id: str | None = None
    event_id: str | None = None
    review_id: str | None = None
    conversation_id: str | None = None

    # Performance (milliseconds)
    duration: float | None = None
    response_time: float | None = None

    # Errors
    error_message: str | None = None
    error_stack: str | None = None
    error_code: str | None = None

    # Client context
    device: DeviceInfo = field(default_factory=DeviceInfo)
    browser: BrowserInfo = field(default_factory=BrowserInfo)
    os: OSInfo = field(default_factory=OSInfo)
    location: LocationInfo = field(default_factory=LocationInfo)
    user_agent: str | None = None
    ip_address: str | None = None
    referrer: str | None = None
    page_url: str | None = None
    page_title: str | None = None

    id: UUID = field(default_factory=uuid4)

    def __post_init__(self) -> None:
        if not self.session_id:
            raise EventValidationError(
                [ValidationIssue("session_required", "Session id is required", "sessionId")]
            )
        if self.timestamp.tzinfo is None:
            raise EventValidationError(
                [
                    ValidationIssue(
                        "naive_timestamp",
                        "Timestamp must be timezone-aware",
                        "timestamp",
                    )
                ]
            )

    def content_ref(self, dimension: ContentDimension) -> str | None:
        """Return the content reference for a popularity dimension."""
        if dimension == ContentDimension.PARKS:
            return self.park_code
        if dimension == ContentDimension.BLOGS:
            return self.blog_id
        return self.event_id


# --- Aggregation Rows ---


@dataclass(frozen=True)
class EventCountRow:
    event_kind: str
    count: int
    unique_users: int


@dataclass(frozen=True)
class UserEngagementRow:
    user_id: str
    total_events: int
    unique_sessions: int
    event_kinds: int
    first_activity: datetime
    last_activity: datetime
    session_duration_hours: float


@dataclass(frozen=True)
class PopularContentRow:
    content_id: str
    views: int
    unique_users: int


@dataclass(frozen=True)
class SearchTermRow:
    search_term: str
    count: int
    unique_users: int
    avg_results: int | None


@dataclass(frozen=True)
class ErrorRow:
    error_code: str | None
    error_message: str | None
    count: int
    unique_users: int
    last_occurrence: datetime


@dataclass(frozen=True)
class DeviceStatRow:
    device_type: str
    count: int
    browsers: int


@dataclass(frozen=True)
class LocationStatRow:
    country: str
    count: int
    regions: int


@dataclass(frozen=True)
class ApiPerformanceRow:
    endpoint: str
    count: int
    avg_response_time: float
    min_response_time: float
    max_response_time: float
    p95_response_time: float


@dataclass(frozen=True)
class PagePerformanceRow:
    page: str
    views: int
    avg_load_time: float
    slow_pages: int
    slow_page_percentage: float


@dataclass(frozen=True)
class DailyCountRow:
    date: str
    count: int


@dataclass(frozen=True)
class SearchTrendRow:
    date: str
    total_searches: int
    unique_terms: int


@dataclass(frozen=True)
class NoResultSearchRow:
    search_term: str
    count: int


@dataclass(frozen=True)
class ErrorTrendRow:
    date: str
    total_errors: int
    unique_error_types: int


@dataclass(frozen=True)
class CreationTrendRow:
    date: str
    events: dict[str, int]


# --- Collaborator Views ---


@dataclass(frozen=True)
class UserProfile:
    """Read-only user fields used to enrich engagement rankings."""

    user_id: str
    name: str | None
    email: str | None
    role: str | None
    created_at: datetime | None


@dataclass(frozen=True)
class BlogSummary:
    """Read-only blog post fields used to enrich content rankings."""

    blog_id: str
    title: str
    slug: str
    category: str | None
    published_at: datetime | None
