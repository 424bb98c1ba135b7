"""
Health endpoints.

Key behaviors:
- /health: overall status from every registered check
- /health/ready: readiness probe (event store reachable, recorder running)
- /health/live: liveness probe (process alive)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from parkpulse.components.analytics import EventRecorder

logger = logging.getLogger(__name__)

# --- Types ---


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    message: str = ""
    latency_ms: float = 0.0
    details: dict[str, Any] = field(default_factory=dict)


class HealthCheck(Protocol):
    name: str

    def check(self) -> CheckResult: ...


# --- Startup Tracker ---


class StartupTracker:
    """Application start time, for uptime."""

    _start_time: float | None = None

    @classmethod
    def mark_started(cls) -> None:
        cls._start_time = time.time()

    @classmethod
    def reset(cls) -> None:
        cls._start_time = None

    @classmethod
    def get_uptime_seconds(cls) -> float:
        if cls._start_time is None:
            return 0.0
        return time.time() - cls._start_time

    @classmethod
    def is_started(cls) -> bool:
        return cls._start_time is not None


# --- Registry ---


class HealthCheckRegistry:
    """Ordered set of checks run on every probe."""

    def __init__(self) -> None:
        self._checks: list[HealthCheck] = []

    def register(self, check: HealthCheck) -> None:
        self._checks.append(check)

    def run_all(self) -> list[CheckResult]:
        return [check.check() for check in self._checks]

    def clear(self) -> None:
        self._checks = []


# --- Built-in Checks ---


class ProcessCheck:
    name = "process"

    def check(self) -> CheckResult:
        return CheckResult(
            name=self.name,
            status=HealthStatus.HEALTHY,
            message="Process is running",
        )


class EventStoreCheck:
    """Event store connectivity via its ``ping``."""

    name = "event_store"

    def __init__(self, ping: Callable[[], Any]) -> None:
        self._ping = ping

    def check(self) -> CheckResult:
        start = time.time()
        try:
            self._ping()
        except Exception as e:
            logger.warning("Event store health check failed: %s", e)
            return CheckResult(
                name=self.name,
                status=HealthStatus.UNHEALTHY,
                message=f"Event store error: {e!s}",
                latency_ms=(time.time() - start) * 1000,
            )
        return CheckResult(
            name=self.name,
            status=HealthStatus.HEALTHY,
            message="Event store reachable",
            latency_ms=(time.time() - start) * 1000,
        )


class RecorderCheck:
    """
    Recorder worker state.

    Unhealthy when the workers are stopped; degraded when the queue is at or
    above ``saturation`` of capacity, since new events are about to be dropped.
    """

    name = "recorder"

    def __init__(
        self,
        recorder: EventRecorder,
        capacity: int,
        saturation: float = 0.9,
    ) -> None:
        self._recorder = recorder
        self._capacity = capacity
        self._saturation = saturation

    def check(self) -> CheckResult:
        stats = self._recorder.stats()
        details = {
            "queued": stats.queued,
            "written": stats.written,
            "failed": stats.failed,
            "dropped": stats.dropped,
        }
        if not stats.running:
            return CheckResult(
                name=self.name,
                status=HealthStatus.UNHEALTHY,
                message="Recorder not running",
                details=details,
            )
        if self._capacity > 0 and stats.queued >= self._capacity * self._saturation:
            return CheckResult(
                name=self.name,
                status=HealthStatus.DEGRADED,
                message="Recorder queue near capacity",
                details=details,
            )
        return CheckResult(
            name=self.name,
            status=HealthStatus.HEALTHY,
            message="Recorder running",
            details=details,
        )


def overall_status(results: list[CheckResult]) -> HealthStatus:
    if all(r.status == HealthStatus.HEALTHY for r in results):
        return HealthStatus.HEALTHY
    if any(r.status == HealthStatus.UNHEALTHY for r in results):
        return HealthStatus.UNHEALTHY
    return HealthStatus.DEGRADED


# --- FastAPI Router ---


def create_health_router(
    version: str,
    registry: HealthCheckRegistry,
) -> APIRouter:
    """
    Create the health router.

    Args:
        version: Application version string
        registry: Checks to run on /health and /health/ready

    Returns:
        FastAPI router with health endpoints
    """
    router = APIRouter(tags=["health"])

    @router.get(
        "/health",
        response_model=None,
        responses={
            200: {"description": "Service is healthy or degraded"},
            503: {"description": "Service is unhealthy"},
        },
    )
    def health_check() -> JSONResponse:
        results = registry.run_all()
        overall = overall_status(results)

        response = {
            "status": overall.value,
            "version": version,
            "uptime_seconds": StartupTracker.get_uptime_seconds(),
            "checks": [
                {
                    "name": r.name,
                    "status": r.status.value,
                    "message": r.message,
                    "latency_ms": r.latency_ms,
                    "details": r.details,
                }
                for r in results
            ],
        }

        status_code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if overall == HealthStatus.UNHEALTHY
            else status.HTTP_200_OK
        )
        return JSONResponse(content=response, status_code=status_code)

    @router.get(
        "/health/ready",
        response_model=None,
        responses={
            200: {"description": "Service is ready to accept traffic"},
            503: {"description": "Service is not ready"},
        },
    )
    def readiness_check() -> JSONResponse:
        """All checks must be healthy to accept traffic."""
        results = registry.run_all()
        is_ready = all(r.status == HealthStatus.HEALTHY for r in results)

        response = {
            "ready": is_ready,
            "checks": [
                {"name": r.name, "status": r.status.value, "message": r.message} for r in results
            ],
        }
        status_code = status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(content=response, status_code=status_code)

    @router.get(
        "/health/live",
        response_model=None,
        responses={200: {"description": "Service process is alive"}},
    )
    def liveness_check() -> JSONResponse:
        return JSONResponse(
            content={"alive": True, "uptime_seconds": StartupTracker.get_uptime_seconds()},
            status_code=status.HTTP_200_OK,
        )

    return router
