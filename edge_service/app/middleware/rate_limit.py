"""Rate limiting middleware for FastAPI."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import JSONResponse

from edge_service.core.settings.ratelimit import RateLimitSettings
from edge_service.infra.metrics.tracking import track_rate_limit_check, track_rate_limit_hit
from edge_service.infra.ratelimit.routes import RouteTable

if TYPE_CHECKING:
    from collections.abc import Callable

    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from edge_service.core.settings.ratelimit import RateLimitRule
    from edge_service.infra.ratelimit.limiter import DistributedRateLimiter, RateLimitResult
    from edge_service.infra.ratelimit.tracker import RateLimitStateTracker

logger = logging.getLogger(__name__)


class RateLimitMiddleware:
    """Pure ASGI middleware applying per-route fixed-window limits.

    Each request is matched against the route table (method + normalized path)
    to pick a named rule, then counted under ``<rule namespace>:<caller>``,
    where the caller is the authenticated user id (``key_by="user"``) or the
    client IP. Over-quota requests get a 429 JSON body
    ``{"success": false, "message": ..., "retryAfter": ...}``.

    When the shared store fails the request is let through (fail-open) and the
    failure is reported to the RateLimitStateTracker.

    The limiter and tracker default to ``app.state.rate_limiter`` and
    ``app.state.rate_limit_tracker``, which the lifespan sets up, so the
    middleware can be registered before the store is connected.

    Example:
        app.add_middleware(
            RateLimitMiddleware,
            settings=get_ratelimit_settings(),
            on_limit_reached=notify_abuse_team,
        )
    """

    def __init__(
        self,
        app: ASGIApp,
        settings: RateLimitSettings | None = None,
        limiter: DistributedRateLimiter | None = None,
        tracker: RateLimitStateTracker | None = None,
        on_limit_reached: Callable[[Request, RateLimitRule, RateLimitResult], Any] | None = None,
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            app: The ASGI application.
            settings: Rule table, exempt paths and proxy trust.
            limiter: Limiter to use instead of ``app.state.rate_limiter``.
            tracker: Tracker to use instead of ``app.state.rate_limit_tracker``.
            on_limit_reached: Called (sync or async) with the request, rule
                and result whenever a request is rejected.
        """
        self.app = app
        self.settings = settings or RateLimitSettings()
        self.enabled = self.settings.enabled
        self.exempt_paths = self.settings.exempt_paths
        self.routes = RouteTable(self.settings.rules, self.settings.default_rule)
        self._limiter = limiter
        self._tracker = tracker
        self.on_limit_reached = on_limit_reached

    def _is_exempt(self, path: str) -> bool:
        return any(path.startswith(exempt_path) for exempt_path in self.exempt_paths)

    def client_ip(self, request: Request) -> str:
        if self.settings.trust_forwarded_for:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def limit_key(self, request: Request, rule: RateLimitRule) -> str:
        """Counter key for this caller under ``rule``."""
        if rule.key_by == "user":
            user_id = getattr(request.state, "user_id", None)
            if user_id:
                return f"{rule.namespace}:{user_id}"
        return f"{rule.namespace}:{self.client_ip(request)}"

    def _resolve(
        self, scope: Scope
    ) -> tuple[DistributedRateLimiter | None, RateLimitStateTracker | None]:
        state = getattr(scope.get("app"), "state", None)
        limiter = self._limiter or getattr(state, "rate_limiter", None)
        tracker = self._tracker or getattr(state, "rate_limit_tracker", None)
        return limiter, tracker

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        if not self.enabled or self._is_exempt(path):
            await self.app(scope, receive, send)
            return

        limiter, tracker = self._resolve(scope)
        if limiter is None:
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        rule = self.routes.match(scope.get("method", "GET"), path)
        limit_key = self.limit_key(request, rule)

        try:
            result = await limiter.check_limit(limit_key, rule.max_requests, rule.window_seconds)
        except Exception as e:
            if tracker is not None:
                tracker.record_failure(str(e))
            logger.error(
                "Rate limit check failed, allowing request (fail-open)",
                extra={"path": path, "limiter": rule.name, "key": limit_key, "error": str(e)},
                exc_info=True,
            )
            await self.app(scope, receive, send)
            return

        if tracker is not None:
            tracker.record_success()
        track_rate_limit_check(rule.name, result.allowed)

        if not result.allowed:
            track_rate_limit_hit(rule.name, rule.key_by)
            logger.info(
                "Rate limit exceeded",
                extra={
                    "path": path,
                    "method": scope.get("method", ""),
                    "limiter": rule.name,
                    "key": limit_key,
                    "limit": result.limit,
                },
            )
            await self._notify(request, rule, result)
            response = JSONResponse(
                {"success": False, "message": rule.message, "retryAfter": result.retry_after},
                status_code=429,
                headers=result.headers(),
            )
            await response(scope, receive, send)
            return

        rate_limit_headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in result.headers().items()
        ]

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.extend(rate_limit_headers)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_with_headers)

    async def _notify(self, request: Request, rule: RateLimitRule, result: RateLimitResult) -> None:
        if self.on_limit_reached is None:
            return
        try:
            outcome = self.on_limit_reached(request, rule, result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("on_limit_reached callback failed", extra={"limiter": rule.name})
