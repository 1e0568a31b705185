"""FastAPI dependencies exposing the objects the lifespan puts on ``app.state``.

Example:
    @router.put("/profiles/{user_id}")
    async def update_profile(
        user_id: str,
        invalidator: Annotated[CacheInvalidator, Depends(get_cache_invalidator)],
    ) -> dict:
        ...
        await invalidator.invalidate("profile", {"user_id": user_id})
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends, Request

from edge_service.infra.cache.invalidation import CacheInvalidator
from edge_service.infra.cache.response import ResponseCache
from edge_service.infra.cache.store import SharedCacheStore
from edge_service.infra.ratelimit.limiter import DistributedRateLimiter, enforce_limit
from edge_service.infra.ratelimit.tracker import RateLimitStateTracker
from edge_service.infra.resilience.circuit_breaker import CircuitBreakerRegistry
from edge_service.utils.background import DetachedTaskRunner


def _state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        msg = f"app.state.{name} is not initialized; is the lifespan running?"
        raise RuntimeError(msg)
    return value


def get_cache_store(request: Request) -> SharedCacheStore:
    return _state(request, "cache_store")


def get_breaker_registry(request: Request) -> CircuitBreakerRegistry:
    return _state(request, "breakers")


def get_rate_limiter(request: Request) -> DistributedRateLimiter:
    return _state(request, "rate_limiter")


def get_rate_limit_tracker(request: Request) -> RateLimitStateTracker:
    return _state(request, "rate_limit_tracker")


def get_response_cache(request: Request) -> ResponseCache:
    return _state(request, "response_cache")


def get_cache_invalidator(request: Request) -> CacheInvalidator:
    return _state(request, "cache_invalidator")


def get_task_runner(request: Request) -> DetachedTaskRunner:
    return _state(request, "task_runner")


def rate_limit(
    name: str,
    limit: int,
    window: int = 60,
    key_func: Callable[[Request], str] | None = None,
    message: str = "Too many requests, please try again later.",
) -> Any:
    """Per-endpoint limit on top of the middleware's route table.

    Over-quota requests raise RateLimitException, which the exception handlers
    render as the same 429 body and headers the middleware sends. A store
    outage lets the request through and is recorded on the protection tracker.

    Args:
        name: Counter namespace for this limit.
        limit: Requests allowed per window.
        window: Window length in seconds.
        key_func: Caller identity; defaults to the user id, else the client IP.
        message: Message returned to over-quota callers.

    Example:
        @router.post("/api/matches/{match_id}/unmatch")
        async def unmatch(
            match_id: str,
            _: Annotated[None, rate_limit("unmatch", limit=5, window=3600)],
        ) -> dict: ...
    """

    async def _rate_limit_dependency(
        request: Request,
        limiter: Annotated[DistributedRateLimiter, Depends(get_rate_limiter)],
    ) -> None:
        if key_func is not None:
            caller = key_func(request)
        else:
            caller = getattr(request.state, "user_id", None) or (
                request.client.host if request.client else "unknown"
            )
        tracker = getattr(request.app.state, "rate_limit_tracker", None)
        result = await enforce_limit(
            limiter, f"{name}:{caller}", limit, window, message, tracker=tracker
        )
        request.state.rate_limit = result

    return Depends(_rate_limit_dependency)
