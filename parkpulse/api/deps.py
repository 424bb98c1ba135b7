import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from parkpulse.adapters.clock import SystemClock
from parkpulse.adapters.directories import InMemoryBlogDirectory, InMemoryUserDirectory
from parkpulse.adapters.session_store import InMemorySessionStore
from parkpulse.adapters.sqlite_db import (
    SQLiteBlogDirectory,
    SQLiteEventStore,
    SQLiteUserDirectory,
)
from parkpulse.api.auth_utils import Claims, claims_from_token, extract_token
from parkpulse.components.analytics import (
    AggregationEngine,
    BatchIngestionService,
    BlogDirectoryPort,
    DashboardConfig,
    DashboardService,
    DropPolicy,
    EventRecorder,
    EventStorePort,
    EventTracker,
    IngestConfig,
    InMemoryEventStore,
    MonotonicStamp,
    RecorderConfig,
    RequestContext,
    SessionIdentifier,
    TableDeviceClassifier,
    TimePort,
    UserDirectoryPort,
)
from parkpulse.rules.models import Rules

logger = logging.getLogger(__name__)


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("PARKPULSE_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "parkpulse.db")
        self.rules_path = Path(os.environ.get("PARKPULSE_RULES_PATH", self.base_dir / "rules.yaml"))
        self.migrations_dir = Path(
            os.environ.get("PARKPULSE_MIGRATIONS_DIR", self.base_dir / "migrations")
        )
        self.secret_key = os.environ.get("PARKPULSE_SECRET_KEY", "dev-secret-unsafe")
        self.store = os.environ.get("PARKPULSE_STORE", "sqlite")


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Runtime ---
@dataclass
class AnalyticsRuntime:
    """Long-lived analytics objects shared by middleware and routes."""

    settings: Settings
    rules: Rules
    event_store: EventStorePort
    recorder: EventRecorder
    tracker: EventTracker
    sessions: SessionIdentifier
    ingestion: BatchIngestionService
    dashboard: DashboardService
    time_port: TimePort

    def claims_for(self, authorization: str | None, cookie_value: str | None) -> Claims:
        auth = self.rules.auth
        return claims_from_token(
            extract_token(authorization, cookie_value),
            secret_key=self.settings.secret_key,
            algorithm=auth.algorithm,
            admin_roles=auth.admin_roles,
        )


def build_runtime(
    settings: Settings,
    rules: Rules,
    *,
    event_store: EventStorePort | None = None,
    users: UserDirectoryPort | None = None,
    blogs: BlogDirectoryPort | None = None,
    time_port: TimePort | None = None,
) -> AnalyticsRuntime:
    """Wire stores, recorder and services from settings and rules."""
    analytics = rules.analytics
    clock = time_port or SystemClock()

    if event_store is None:
        if settings.store == "memory":
            event_store = InMemoryEventStore()
        else:
            event_store = SQLiteEventStore(settings.db_path)
    if users is None:
        users = (
            InMemoryUserDirectory()
            if settings.store == "memory"
            else SQLiteUserDirectory(settings.db_path)
        )
    if blogs is None:
        blogs = (
            InMemoryBlogDirectory()
            if settings.store == "memory"
            else SQLiteBlogDirectory(settings.db_path)
        )

    rec = analytics.recorder
    recorder = EventRecorder(
        event_store,
        RecorderConfig(
            queue_capacity=rec.queue_capacity,
            workers=rec.workers,
            drop_policy=DropPolicy(rec.drop_policy),
            poll_interval_seconds=rec.poll_interval_seconds,
            shutdown_timeout_seconds=rec.shutdown_timeout_seconds,
        ),
    )
    stamp = MonotonicStamp(clock)
    classifier = TableDeviceClassifier()
    dash = analytics.dashboard

    return AnalyticsRuntime(
        settings=settings,
        rules=rules,
        event_store=event_store,
        recorder=recorder,
        tracker=EventTracker(recorder, classifier, stamp),
        sessions=SessionIdentifier(InMemorySessionStore(analytics.session.max_entries)),
        ingestion=BatchIngestionService(
            event_store,
            stamp=stamp,
            classifier=classifier,
            config=IngestConfig(max_batch_size=analytics.ingest.max_batch_size),
        ),
        dashboard=DashboardService(
            AggregationEngine(event_store),
            users=users,
            blogs=blogs,
            time_port=clock,
            config=DashboardConfig(
                max_workers=dash.max_workers,
                top_users=dash.top_users,
                top_content=dash.top_content,
                top_searches=dash.top_searches,
                top_errors=dash.top_errors,
                top_countries=dash.top_countries,
            ),
        ),
        time_port=clock,
    )


def get_runtime(request: Request) -> AnalyticsRuntime:
    runtime: AnalyticsRuntime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Analytics not initialised",
        )
    return runtime


# --- Services ---
def get_dashboard_service(runtime: AnalyticsRuntime = Depends(get_runtime)) -> DashboardService:
    return runtime.dashboard


def get_ingestion_service(
    runtime: AnalyticsRuntime = Depends(get_runtime),
) -> BatchIngestionService:
    return runtime.ingestion


def get_tracker(runtime: AnalyticsRuntime = Depends(get_runtime)) -> EventTracker:
    return runtime.tracker


# --- Auth ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_claims(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
    runtime: AnalyticsRuntime = Depends(get_runtime),
) -> Claims:
    """Caller identity; anonymous when no valid token is present."""
    cookie_value = request.cookies.get(runtime.rules.auth.cookie_name)
    authorization = f"Bearer {token}" if token else None
    return runtime.claims_for(authorization, cookie_value)


def require_admin(claims: Claims = Depends(get_claims)) -> Claims:
    if not claims.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not claims.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return claims


# --- Request Context ---
def get_client_ip(request: Request) -> str | None:
    """Client address, honouring X-Forwarded-For when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_session_id(
    request: Request,
    runtime: AnalyticsRuntime = Depends(get_runtime),
) -> str:
    """Session id resolved by the analytics middleware for this request."""
    session_id: str | None = getattr(request.state, "analytics_session_id", None)
    if session_id:
        return session_id
    cookie_name = runtime.rules.analytics.session.cookie.name
    return runtime.sessions.resolve(request.cookies.get(cookie_name)).session_id


def get_request_context(
    request: Request,
    claims: Claims = Depends(get_claims),
    session_id: str = Depends(get_session_id),
) -> RequestContext:
    return RequestContext(
        session_id=session_id,
        user_id=claims.user_id,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
        page_url=str(request.url),
        path_params=dict(request.path_params),
    )
