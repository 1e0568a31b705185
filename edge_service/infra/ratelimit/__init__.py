"""Distributed rate limiting infrastructure."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from edge_service.infra.ratelimit.limiter import (
    DistributedRateLimiter,
    RateLimitResult,
    enforce_limit,
)
from edge_service.infra.ratelimit.routes import RouteTable, match_pattern, normalize_path
from edge_service.infra.ratelimit.status import (
    RateLimitProtectionState,
    RateLimitProtectionStatus,
)
from edge_service.infra.ratelimit.tracker import RateLimitStateTracker

if TYPE_CHECKING:
    from edge_service.app.middleware.rate_limit import RateLimitMiddleware

__all__ = [
    "DistributedRateLimiter",
    "RateLimitMiddleware",
    "RateLimitProtectionState",
    "RateLimitProtectionStatus",
    "RateLimitResult",
    "RateLimitStateTracker",
    "RouteTable",
    "enforce_limit",
    "match_pattern",
    "normalize_path",
]


def __getattr__(name: str) -> Any:
    """Lazily import middleware to avoid circular imports at runtime."""
    if name == "RateLimitMiddleware":
        from edge_service.app.middleware.rate_limit import RateLimitMiddleware

        return RateLimitMiddleware
    raise AttributeError(name)
