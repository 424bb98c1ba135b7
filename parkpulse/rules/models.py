from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class RecorderRules(BaseModel):
    queue_capacity: int = Field(default=1000, ge=1)
    workers: int = Field(default=2, ge=1, le=32)
    drop_policy: Literal["drop_newest", "drop_oldest"] = "drop_newest"
    poll_interval_seconds: float = Field(default=0.25, gt=0)
    shutdown_timeout_seconds: float = Field(default=5.0, ge=0)


class SessionCookieRules(BaseModel):
    name: str = "pp_session"
    max_age_days: int = Field(default=30, ge=1)
    secure: bool = False
    http_only: bool = True
    same_site: Literal["lax", "strict", "none"] = "lax"


class SessionRules(BaseModel):
    max_entries: int = Field(default=100_000, ge=1)
    cookie: SessionCookieRules = SessionCookieRules()


class TrackingRules(BaseModel):
    enabled: bool = True
    path_prefixes: list[str] = ["/api"]
    exclude_paths: list[str] = ["/api/analytics/track", "/health"]
    search_param: str = "search"


class DashboardRules(BaseModel):
    max_workers: int = Field(default=8, ge=1, le=64)
    top_users: int = Field(default=20, ge=1)
    top_content: int = Field(default=10, ge=1)
    top_searches: int = Field(default=20, ge=1)
    top_errors: int = Field(default=10, ge=1)
    top_countries: int = Field(default=20, ge=1)


class IngestRules(BaseModel):
    max_batch_size: int | None = Field(default=None, ge=1)


class AnalyticsRules(BaseModel):
    recorder: RecorderRules = RecorderRules()
    session: SessionRules = SessionRules()
    tracking: TrackingRules = TrackingRules()
    dashboard: DashboardRules = DashboardRules()
    ingest: IngestRules = IngestRules()


class AuthRules(BaseModel):
    algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"
    admin_roles: list[str] = ["admin", "owner"]
    cookie_name: str = "access_token"


class ApiRules(BaseModel):
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]


class Rules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project: ProjectRules
    analytics: AnalyticsRules = AnalyticsRules()
    auth: AuthRules = AuthRules()
    api: ApiRules = ApiRules()
