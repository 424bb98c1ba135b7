import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from parkpulse import __version__
from parkpulse.adapters.sqlite.migrator import SQLiteMigrator
from parkpulse.api.deps import AnalyticsRuntime, build_runtime, get_settings
from parkpulse.api.middleware import AnalyticsMiddleware, RulesCORSMiddleware
from parkpulse.api.routes import admin_analytics, analytics_track
from parkpulse.rules.loader import load_rules
from parkpulse.shell.http.health import (
    EventStoreCheck,
    HealthCheckRegistry,
    ProcessCheck,
    RecorderCheck,
    StartupTracker,
    create_health_router,
)

logger = logging.getLogger(__name__)


def _bootstrap_runtime() -> AnalyticsRuntime:
    """Load rules (fail-fast), migrate the database and wire the runtime."""
    settings = get_settings()
    try:
        rules = load_rules(settings.rules_path)
    except (FileNotFoundError, ValueError) as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    if settings.store == "sqlite":
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        applied = SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()
        if applied:
            logger.info("Applied migrations: %s", ", ".join(applied))

    return build_runtime(settings, rules)


def create_app(runtime: AnalyticsRuntime | None = None) -> FastAPI:
    """
    Build the API application.

    With ``runtime`` given (tests, embedding) no rules file or database is
    touched; otherwise both are set up on startup.
    """
    registry = HealthCheckRegistry()
    registry.register(ProcessCheck())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        active = app.state.runtime
        if active is None:
            logging.basicConfig(
                level=logging.INFO,
                format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            )
            active = _bootstrap_runtime()
            app.state.runtime = active

        registry.register(EventStoreCheck(active.event_store.ping))
        registry.register(
            RecorderCheck(active.recorder, active.rules.analytics.recorder.queue_capacity)
        )
        if not active.recorder.is_running:
            active.recorder.start()
        StartupTracker.mark_started()
        logger.info("ParkPulse %s started (store=%s)", __version__, active.settings.store)

        yield

        active.recorder.stop(drain=True)
        registry.clear()
        registry.register(ProcessCheck())
        StartupTracker.reset()
        logger.info("ParkPulse stopped; recorder stats %s", active.recorder.stats())

    app = FastAPI(
        title="ParkPulse Analytics API",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.runtime = runtime

    # --- Routers ---
    app.include_router(analytics_track.router, prefix="/api/analytics", tags=["Analytics"])
    app.include_router(admin_analytics.router, prefix="/api/analytics", tags=["Admin Analytics"])
    app.include_router(create_health_router(__version__, registry))

    for exc_class, handler in admin_analytics.EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exc_class, handler)

    # Added last so CORS wraps the analytics middleware
    app.add_middleware(AnalyticsMiddleware)
    app.add_middleware(RulesCORSMiddleware)

    return app


app = create_app()
