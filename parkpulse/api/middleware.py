"""
AnalyticsMiddleware - server-side tracking for every API request.

Pure ASGI middleware. For each HTTP request it:
- resolves the analytics session and exposes it as
  ``request.state.analytics_session_id`` (setting the cookie when minted)
- after the response has been sent, records an ``api_call`` event for
  tracked paths, plus a ``search`` event when a search parameter is present
- records an ``error`` event for unhandled exceptions, then re-raises

Recording only enqueues; request latency does not depend on the store.
"""

from __future__ import annotations

import logging
import time
import traceback
from http.cookies import SimpleCookie
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from parkpulse.api.auth_utils import Claims
from parkpulse.api.deps import AnalyticsRuntime, get_client_ip
from parkpulse.components.analytics import EventKind, RequestContext
from parkpulse.rules.models import ApiRules

logger = logging.getLogger(__name__)


def _session_cookie(runtime: AnalyticsRuntime, token: str) -> str:
    rules = runtime.rules.analytics.session.cookie
    cookie: SimpleCookie = SimpleCookie()
    cookie[rules.name] = token
    morsel = cookie[rules.name]
    morsel["path"] = "/"
    morsel["max-age"] = str(rules.max_age_days * 24 * 3600)
    morsel["samesite"] = rules.same_site
    if rules.http_only:
        morsel["httponly"] = True
    if rules.secure:
        morsel["secure"] = True
    return morsel.OutputString()


def _route_template(scope: Scope) -> str:
    route = scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else scope.get("path", "")


class AnalyticsMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        runtime: AnalyticsRuntime | None = getattr(scope["app"].state, "runtime", None)
        if runtime is None:
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        cookie_name = runtime.rules.analytics.session.cookie.name
        resolution = runtime.sessions.resolve(request.cookies.get(cookie_name))
        scope.setdefault("state", {})["analytics_session_id"] = resolution.session_id

        claims = runtime.claims_for(
            request.headers.get("authorization"),
            request.cookies.get(runtime.rules.auth.cookie_name),
        )
        status_code = 500
        started = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                if resolution.minted:
                    headers = MutableHeaders(scope=message)
                    headers.append("set-cookie", _session_cookie(runtime, resolution.token))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000
            if self._is_tracked(runtime, scope["path"]):
                ctx = self._context(request, scope, resolution.session_id, claims)
                self._record_call(runtime, ctx, scope, 500, elapsed_ms)
                self._record_error(runtime, ctx, exc)
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        if self._is_tracked(runtime, scope["path"]):
            ctx = self._context(request, scope, resolution.session_id, claims)
            self._record_call(runtime, ctx, scope, status_code, elapsed_ms)
            self._record_search(runtime, ctx, request, scope)

    # --- Internals ---

    @staticmethod
    def _is_tracked(runtime: AnalyticsRuntime, path: str) -> bool:
        tracking = runtime.rules.analytics.tracking
        if not tracking.enabled:
            return False
        if any(path == p or path.startswith(p.rstrip("/") + "/") for p in tracking.exclude_paths):
            return False
        return any(path.startswith(p) for p in tracking.path_prefixes)

    @staticmethod
    def _context(
        request: Request,
        scope: Scope,
        session_id: str,
        claims: Claims,
    ) -> RequestContext:
        return RequestContext(
            session_id=session_id,
            user_id=claims.user_id,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            referrer=request.headers.get("referer"),
            page_url=scope.get("path"),
            path_params=dict(scope.get("path_params") or {}),
        )

    @staticmethod
    def _record_call(
        runtime: AnalyticsRuntime,
        ctx: RequestContext,
        scope: Scope,
        status_code: int,
        elapsed_ms: float,
    ) -> None:
        elapsed = round(elapsed_ms, 3)
        runtime.tracker.track(
            ctx,
            EventKind.API_CALL,
            metadata={
                "method": scope.get("method"),
                "endpoint": _route_template(scope),
                "statusCode": status_code,
                "responseTime": elapsed,
            },
            response_time=elapsed,
        )

    @staticmethod
    def _record_error(runtime: AnalyticsRuntime, ctx: RequestContext, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        code = type(exc).__name__
        runtime.tracker.track(
            ctx,
            EventKind.ERROR,
            metadata={"errorMessage": message, "errorCode": code, "statusCode": 500},
            error_message=message,
            error_code=code,
            error_stack="".join(traceback.format_exception(exc)),
        )
        logger.debug("Recorded error event for %s", ctx.page_url)

    @staticmethod
    def _record_search(
        runtime: AnalyticsRuntime,
        ctx: RequestContext,
        request: Request,
        scope: Scope,
    ) -> None:
        param = runtime.rules.analytics.tracking.search_param
        term = request.query_params.get(param)
        if not term:
            return

        state: dict[str, Any] = scope.get("state") or {}
        result_count = state.get("search_result_count")
        metadata: dict[str, Any] = {"searchTerm": term}
        if isinstance(result_count, int) and not isinstance(result_count, bool):
            metadata["resultCount"] = result_count
        metadata["searchType"] = request.query_params.get("type") or "general"
        runtime.tracker.track(ctx, EventKind.SEARCH, metadata=metadata)


class RulesCORSMiddleware:
    """
    CORS with allowed origins taken from the runtime's ``api`` rules.

    The runtime is only wired during startup, after the middleware stack
    exists, so the underlying CORSMiddleware is built on the first request.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app
        self._cors: CORSMiddleware | None = None

    def _build(self, runtime: AnalyticsRuntime | None) -> CORSMiddleware:
        origins = runtime.rules.api.cors_origins if runtime is not None else ApiRules().cors_origins
        logger.info("CORS origins: %s", ", ".join(origins) or "(none)")
        return CORSMiddleware(
            self.app,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        cors = self._cors
        if cors is None:
            runtime: AnalyticsRuntime | None = getattr(scope["app"].state, "runtime", None)
            cors = self._build(runtime)
            # Defaults are not cached; the runtime may still be starting
            if runtime is not None:
                self._cors = cors
        await cors(scope, receive, send)
