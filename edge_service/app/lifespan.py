"""Application lifespan management.

Startup Order:
1. Core (logging, application info metric)
2. Shared cache store (Redis, or the in-process store in degraded mode)
3. Resilience and caching components published on ``app.state``:
   ``cache_store``, ``breakers``, ``rate_limiter``, ``rate_limit_tracker``,
   ``task_runner``, ``response_cache``, ``cache_invalidator``

Shutdown Order: drain detached cache writes and refreshes, then disconnect the
store, then stop logging.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from edge_service.core.settings import (
    get_app_settings,
    get_cache_settings,
    get_logging_settings,
    get_ratelimit_settings,
    get_redis_settings,
    get_resilience_settings,
)
from edge_service.infra.cache.invalidation import CacheInvalidator
from edge_service.infra.cache.memory import MemoryCache
from edge_service.infra.cache.redis import RedisCache
from edge_service.infra.cache.response import ResponseCache
from edge_service.infra.logging.config import setup_logging
from edge_service.infra.logging.config import shutdown as shutdown_logging
from edge_service.infra.metrics.prometheus import application_info, cache_backend_info
from edge_service.infra.ratelimit.limiter import DistributedRateLimiter
from edge_service.infra.ratelimit.tracker import RateLimitStateTracker
from edge_service.infra.resilience.circuit_breaker import CircuitBreakerRegistry
from edge_service.utils.background import DetachedTaskRunner

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

    from edge_service.infra.cache.store import SharedCacheStore

logger = logging.getLogger(__name__)


def _startup_core() -> None:
    """Configure logging and publish the application info metric."""
    app = get_app_settings()
    setup_logging(log_settings=get_logging_settings(), force=True)
    logger.info(
        "Application starting",
        extra={"service": app.service_name, "environment": app.environment},
    )
    application_info.labels(
        version=app.version,
        service=app.service_name,
        environment=app.environment,
    ).set(1)


async def _startup_cache() -> SharedCacheStore:
    """Connect the Redis store, falling back to memory unless Redis is required."""
    redis = get_redis_settings()
    store = RedisCache(redis)

    try:
        await store.connect()
    except (RedisError, OSError) as e:
        return _degraded_cache(redis.startup_require_cache, redis.key_prefix, e)

    cache_backend_info.labels(backend="redis").set(1)
    logger.info("Redis cache initialized")
    return store


def _degraded_cache(required: bool, key_prefix: str, error: Exception) -> SharedCacheStore:
    if required:
        logger.exception(
            "Redis cache required but unavailable, failing startup",
            extra={"startup_require_cache": True},
        )
        raise error
    logger.warning(
        "Redis cache unavailable, continuing with the in-process store",
        extra={"error": str(error), "startup_require_cache": False},
    )
    cache_backend_info.labels(backend="memory").set(1)
    return MemoryCache(key_prefix=key_prefix)


def _init_components(app: FastAPI, store: SharedCacheStore) -> None:
    """Build the resilience and caching components and publish them on app.state."""
    ratelimit = get_ratelimit_settings()

    tracker = RateLimitStateTracker(failure_threshold=ratelimit.failure_threshold)
    if not ratelimit.enabled:
        tracker.mark_disabled()

    runner = DetachedTaskRunner()

    app.state.cache_store = store
    app.state.breakers = CircuitBreakerRegistry.from_settings(get_resilience_settings())
    app.state.rate_limiter = DistributedRateLimiter(store)
    app.state.rate_limit_tracker = tracker
    app.state.task_runner = runner
    app.state.response_cache = ResponseCache(store, runner, get_cache_settings())
    app.state.cache_invalidator = CacheInvalidator(store)

    logger.info(
        "Resilience components initialized",
        extra={
            "rate_limiting_enabled": ratelimit.enabled,
            "rate_limit_rules": len(ratelimit.rules),
            "response_cache_enabled": get_cache_settings().enabled,
        },
    )


async def _shutdown(app: FastAPI) -> None:
    runner: DetachedTaskRunner | None = getattr(app.state, "task_runner", None)
    if runner is not None:
        await runner.close()

    store = getattr(app.state, "cache_store", None)
    if store is not None:
        try:
            await store.disconnect()
        except Exception:
            logger.exception("Error while closing cache store")

    logger.info("Application shutdown complete")
    shutdown_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown."""
    _startup_core()
    store = await _startup_cache()
    _init_components(app, store)

    try:
        yield
    finally:
        await _shutdown(app)
