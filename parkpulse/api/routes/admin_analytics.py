"""
Admin Analytics API.

Dashboard and per-area reports over the event store. Every route requires
an admin Claims capability. Responses are ``{"success": true, "data": ...}``
with camelCase keys.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Generic, TypeVar

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from parkpulse.api.auth_utils import Claims
from parkpulse.api.deps import get_dashboard_service, require_admin
from parkpulse.components.analytics import (
    AnalyticsQueryError,
    DashboardService,
    ReportParameterError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")


# --- Response Models ---


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T


class EventCountOut(CamelModel):
    event_kind: str
    count: int
    unique_users: int


class UserProfileOut(CamelModel):
    user_id: str
    name: str | None
    email: str | None
    role: str | None
    created_at: datetime | None


class EngagedUserOut(CamelModel):
    user_id: str
    total_events: int
    unique_sessions: int
    event_kinds: int
    first_activity: datetime
    last_activity: datetime
    session_duration_hours: float
    user: UserProfileOut | None


class PopularContentOut(CamelModel):
    content_id: str
    views: int
    unique_users: int


class BlogSummaryOut(CamelModel):
    blog_id: str
    title: str
    slug: str
    category: str | None
    published_at: datetime | None


class BlogContentOut(PopularContentOut):
    details: BlogSummaryOut | None


class SearchTermOut(CamelModel):
    search_term: str
    count: int
    unique_users: int
    avg_results: int | None


class ErrorOut(CamelModel):
    error_code: str | None
    error_message: str | None
    count: int
    unique_users: int
    last_occurrence: datetime


class DeviceStatOut(CamelModel):
    device_type: str
    count: int
    browsers: int


class LocationStatOut(CamelModel):
    country: str
    count: int
    regions: int


class DateRangeOut(CamelModel):
    start_date: datetime
    end_date: datetime


class OverviewOut(CamelModel):
    total_events: int
    growth_rate: float
    unique_users: int
    average_events_per_user: float


class PopularContentGroupOut(CamelModel):
    parks: list[PopularContentOut]
    blogs: list[PopularContentOut]
    events: list[PopularContentOut]


class DashboardOut(CamelModel):
    period: str
    date_range: DateRangeOut
    overview: OverviewOut
    event_counts: list[EventCountOut]
    user_engagement: list[EngagedUserOut]
    popular_content: PopularContentGroupOut
    search_analytics: list[SearchTermOut]
    error_analytics: list[ErrorOut]
    device_stats: list[DeviceStatOut]
    location_stats: list[LocationStatOut]


class DailyCountOut(CamelModel):
    date: str
    count: int


class UserReportOut(CamelModel):
    period: str
    users: list[EngagedUserOut]
    total_users: int
    page: int
    pages: int
    registration_trends: list[DailyCountOut]


class CreationTrendOut(CamelModel):
    date: str
    events: dict[str, int]


class ContentGroupOut(CamelModel):
    parks: list[PopularContentOut] | None = None
    blogs: list[BlogContentOut] | None = None
    events: list[PopularContentOut] | None = None


class ContentReportOut(CamelModel):
    period: str
    content_type: str
    content: ContentGroupOut
    creation_trends: list[CreationTrendOut]


class SearchTrendOut(CamelModel):
    date: str
    total_searches: int
    unique_terms: int


class NoResultSearchOut(CamelModel):
    search_term: str
    count: int


class SearchReportOut(CamelModel):
    period: str
    top_searches: list[SearchTermOut]
    search_trends: list[SearchTrendOut]
    no_result_searches: list[NoResultSearchOut]


class ErrorTrendOut(CamelModel):
    date: str
    total_errors: int
    unique_error_types: int


class ErrorReportOut(CamelModel):
    period: str
    errors: list[ErrorOut]
    error_trends: list[ErrorTrendOut]


class ApiPerformanceOut(CamelModel):
    endpoint: str
    count: int
    avg_response_time: float
    min_response_time: float
    max_response_time: float
    p95_response_time: float


class PagePerformanceOut(CamelModel):
    page: str
    views: int
    avg_load_time: float
    slow_pages: int
    slow_page_percentage: float


class PerformanceReportOut(CamelModel):
    period: str
    api_performance: list[ApiPerformanceOut]
    page_performance: list[PagePerformanceOut]


# --- Exception Handlers ---


def query_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Read-path failures: the admin sees a clear failure, never partial data."""
    logger.error("Analytics query failed for %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Analytics query failed"},
    )


def parameter_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": str(exc)},
    )


EXCEPTION_HANDLERS = {
    AnalyticsQueryError: query_error_handler,
    ReportParameterError: parameter_error_handler,
}


# --- Routes ---


@router.get("/dashboard", response_model=Envelope[DashboardOut])
def get_dashboard(
    period: str = Query("7d", description="One of 24h, 7d, 30d, 90d"),
    _admin: Claims = Depends(require_admin),
    service: DashboardService = Depends(get_dashboard_service),
) -> Envelope[DashboardOut]:
    """Overview, growth and top lists for the period."""
    report = service.build(period)
    return Envelope[DashboardOut](data=DashboardOut.model_validate(report))


@router.get("/users", response_model=Envelope[UserReportOut])
def get_user_analytics(
    period: str = Query("30d", description="<N>h or <N>d"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    _admin: Claims = Depends(require_admin),
    service: DashboardService = Depends(get_dashboard_service),
) -> Envelope[UserReportOut]:
    """Paginated engagement ranking with profiles and registration trends."""
    report = service.user_report(period, page, limit)
    return Envelope[UserReportOut](data=UserReportOut.model_validate(report))


@router.get("/content", response_model=Envelope[ContentReportOut])
def get_content_analytics(
    period: str = Query("30d", description="<N>h or <N>d"),
    content_type: str = Query("all", alias="contentType", description="all, parks, blogs or events"),
    _admin: Claims = Depends(require_admin),
    service: DashboardService = Depends(get_dashboard_service),
) -> Envelope[ContentReportOut]:
    """Popular content per dimension; blogs carry post details."""
    report = service.content_report(period, content_type)
    content = ContentGroupOut(
        parks=(
            [PopularContentOut.model_validate(r) for r in report.parks]
            if report.parks is not None
            else None
        ),
        blogs=(
            [BlogContentOut.model_validate(r) for r in report.blogs]
            if report.blogs is not None
            else None
        ),
        events=(
            [PopularContentOut.model_validate(r) for r in report.events]
            if report.events is not None
            else None
        ),
    )
    return Envelope[ContentReportOut](
        data=ContentReportOut(
            period=report.period,
            content_type=report.content_type,
            content=content,
            creation_trends=[CreationTrendOut.model_validate(r) for r in report.creation_trends],
        )
    )


@router.get("/search", response_model=Envelope[SearchReportOut])
def get_search_analytics(
    period: str = Query("30d", description="<N>h or <N>d"),
    limit: int = Query(50, ge=1, le=100),
    _admin: Claims = Depends(require_admin),
    service: DashboardService = Depends(get_dashboard_service),
) -> Envelope[SearchReportOut]:
    report = service.search_report(period, limit)
    return Envelope[SearchReportOut](data=SearchReportOut.model_validate(report))


@router.get("/errors", response_model=Envelope[ErrorReportOut])
def get_error_analytics(
    period: str = Query("7d", description="<N>h or <N>d"),
    _admin: Claims = Depends(require_admin),
    service: DashboardService = Depends(get_dashboard_service),
) -> Envelope[ErrorReportOut]:
    report = service.error_report(period)
    return Envelope[ErrorReportOut](data=ErrorReportOut.model_validate(report))


@router.get("/performance", response_model=Envelope[PerformanceReportOut])
def get_performance_analytics(
    period: str = Query("24h", description="<N>h or <N>d"),
    _admin: Claims = Depends(require_admin),
    service: DashboardService = Depends(get_dashboard_service),
) -> Envelope[PerformanceReportOut]:
    """API latency per route and page load times."""
    report = service.performance_report(period)
    return Envelope[PerformanceReportOut](data=PerformanceReportOut.model_validate(report))
