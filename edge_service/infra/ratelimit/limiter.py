"""Distributed fixed-window rate limiter over the shared cache store.

Each check is a single atomic ``incr`` on ``ratelimit:<key>``; the store sets
the window TTL only when it creates the counter. Every process instance sees
the same counter, so a quota holds across the whole deployment.

The window is fixed, not sliding: a client can spend a full quota at the end
of one window and again at the start of the next. That burst is accepted in
exchange for one round trip and one key per caller.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from edge_service.core.exceptions import RateLimitException
from edge_service.infra.cache.keys import CacheKeyPrefix

if TYPE_CHECKING:
    from collections.abc import Callable

    from edge_service.infra.cache.store import SharedCacheStore
    from edge_service.infra.ratelimit.tracker import RateLimitStateTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate limit check.

    Attributes:
        allowed: Whether the request fits in the current window.
        remaining: Requests left in the window (0 when denied).
        limit: Maximum requests per window.
        reset: Unix timestamp by which the window has ended.
        retry_after: Seconds a denied client should wait (0 when allowed).
    """

    allowed: bool
    remaining: int
    limit: int
    reset: int
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class DistributedRateLimiter:
    """Fixed-window counter limiter.

    Example:
        limiter = DistributedRateLimiter(store)
        result = await limiter.check_limit("swipe:user42", max_requests=50, window_seconds=60)
        if not result.allowed:
            ...
    """

    def __init__(
        self,
        store: SharedCacheStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self._clock = clock

    @staticmethod
    def _make_key(key: str) -> str:
        return f"{CacheKeyPrefix.RATE_LIMIT}{key}"

    async def check_limit(
        self, key: str, max_requests: int, window_seconds: int
    ) -> RateLimitResult:
        """Count one request against ``key``.

        Store errors propagate; callers decide whether to fail open.
        """
        count = await self.store.incr(self._make_key(key), window_seconds)
        reset = int(self._clock()) + window_seconds

        if count > max_requests:
            return RateLimitResult(
                allowed=False,
                remaining=0,
                limit=max_requests,
                reset=reset,
                retry_after=window_seconds,
            )
        return RateLimitResult(
            allowed=True,
            remaining=max_requests - count,
            limit=max_requests,
            reset=reset,
        )

    async def reset_limit(self, key: str) -> bool:
        """Drop the counter for ``key``, starting a fresh window.

        Returns:
            True if the store call succeeded.
        """
        try:
            await self.store.delete(self._make_key(key))
        except Exception:
            logger.error("Failed to reset rate limit", extra={"key": key}, exc_info=True)
            return False
        logger.info("Rate limit reset", extra={"key": key})
        return True


async def enforce_limit(
    limiter: DistributedRateLimiter,
    key: str,
    max_requests: int,
    window_seconds: int,
    message: str = "Too many requests, please try again later.",
    tracker: RateLimitStateTracker | None = None,
) -> RateLimitResult | None:
    """Check a limit inside a handler and raise when it is exceeded.

    Store failures fail open like the middleware: they are logged, recorded
    on ``tracker`` and the request proceeds.

    Returns:
        The check result, or None when the store could not be reached.

    Raises:
        RateLimitException: If the quota for ``key`` is spent.
    """
    try:
        result = await limiter.check_limit(key, max_requests, window_seconds)
    except Exception as e:
        if tracker is not None:
            tracker.record_failure(str(e))
        logger.error(
            "Rate limit check failed, allowing request (fail-open)",
            extra={"key": key, "error": str(e)},
            exc_info=True,
        )
        return None

    if tracker is not None:
        tracker.record_success()
    if not result.allowed:
        logger.info("Rate limit exceeded", extra={"key": key, "limit": result.limit})
        raise RateLimitException(
            detail=message,
            extra={
                "retry_after": result.retry_after,
                "limit": result.limit,
                "remaining": 0,
                "reset": result.reset,
            },
        )
    return result
