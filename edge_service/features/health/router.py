"""Health check and resilience status endpoints.

- ``GET /health``: liveness plus shared store reachability
- ``GET /health/resilience``: circuit breaker states, rate limit protection
  status and detached task load
- ``POST /health/resilience/breakers/reset``: administrative breaker reset
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from edge_service.app.dependencies import (
    get_breaker_registry,
    get_cache_store,
    get_rate_limit_tracker,
    get_task_runner,
)
from edge_service.core.exceptions import AppException
from edge_service.core.settings import get_app_settings
from edge_service.features.health.schemas import (
    BreakerResetResponse,
    HealthResponse,
    HealthStatus,
    RateLimitProtection,
    ResilienceStatusResponse,
    breaker_statuses,
)
from edge_service.infra.cache.memory import MemoryCache
from edge_service.infra.cache.store import SharedCacheStore  # noqa: TC001
from edge_service.infra.ratelimit.tracker import RateLimitStateTracker  # noqa: TC001
from edge_service.infra.resilience.circuit_breaker import CircuitBreakerRegistry  # noqa: TC001
from edge_service.utils.background import DetachedTaskRunner  # noqa: TC001

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "",
    response_model=HealthResponse,
    summary="Service health",
    description="Reports degraded while the shared store is unreachable",
)
async def health_check(
    store: Annotated[SharedCacheStore, Depends(get_cache_store)],
) -> HealthResponse:
    app = get_app_settings()
    cache_ok = await store.health_check()
    shared = not isinstance(store, MemoryCache)

    overall = HealthStatus.HEALTHY if cache_ok and shared else HealthStatus.DEGRADED

    return HealthResponse(
        status=overall,
        service=app.service_name,
        version=app.version,
        timestamp=datetime.now(UTC),
        checks={"cache": cache_ok, "shared_cache": shared},
    )


@router.get(
    "/resilience",
    response_model=ResilienceStatusResponse,
    summary="Resilience status",
    description="Circuit breakers, rate limit protection and background task load",
)
async def resilience_status(
    breakers: Annotated[CircuitBreakerRegistry, Depends(get_breaker_registry)],
    tracker: Annotated[RateLimitStateTracker, Depends(get_rate_limit_tracker)],
    runner: Annotated[DetachedTaskRunner, Depends(get_task_runner)],
) -> ResilienceStatusResponse:
    state = tracker.get_state()
    return ResilienceStatusResponse(
        timestamp=datetime.now(UTC),
        circuit_breakers=breaker_statuses(breakers.get_all_status()),
        rate_limiter=RateLimitProtection(
            status=state.status.value,
            since=state.since,
            consecutive_failures=state.consecutive_failures,
            last_error=state.last_error,
        ),
        background_tasks=runner.pending,
    )


@router.post(
    "/resilience/breakers/reset",
    response_model=BreakerResetResponse,
    summary="Reset circuit breakers",
    description="Force one breaker (or all) back to CLOSED",
)
async def reset_breakers(
    breakers: Annotated[CircuitBreakerRegistry, Depends(get_breaker_registry)],
    name: Annotated[str | None, Query(description="Breaker to reset; all when omitted")] = None,
) -> BreakerResetResponse:
    if name is None:
        names = list(breakers.get_all_status())
        breakers.reset_all()
    elif breakers.reset(name):
        names = [name]
    else:
        raise AppException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown circuit breaker '{name}'",
            type="circuit-breaker-not-found",
        )

    logger.warning("Circuit breakers reset by operator", extra={"breakers": names})
    return BreakerResetResponse(reset=names)
