"""Pytest configuration and shared fixtures.

Organization:
    - Environment: tests never reach Redis or read conf.d overrides
    - Clocks: manually advanced time sources instead of sleeps
    - Stores and components: in-process store, task runner, breaker registry
    - Application: a FastAPI app with app.state populated as the lifespan would
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient

from edge_service.core.settings import CacheSettings, RateLimitSettings, clear_all_caches
from edge_service.infra.cache.invalidation import CacheInvalidator
from edge_service.infra.cache.memory import MemoryCache
from edge_service.infra.cache.response import ResponseCache
from edge_service.infra.ratelimit.limiter import DistributedRateLimiter
from edge_service.infra.ratelimit.tracker import RateLimitStateTracker
from edge_service.infra.resilience.circuit_breaker import CircuitBreakerRegistry
from edge_service.utils.background import DetachedTaskRunner

if TYPE_CHECKING:
    from fastapi import FastAPI

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("REDIS_STARTUP_REQUIRE_CACHE", "false")
os.environ.setdefault("LOG_FILE_ENABLED", "false")


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> None:
    """Give every test freshly loaded settings."""
    clear_all_caches()


# ============================================================================
# Clocks
# ============================================================================


class FakeClock:
    """Callable time source that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Stores and components
# ============================================================================


@pytest.fixture
def memory_store(clock: FakeClock) -> MemoryCache:
    """In-process store whose TTLs follow the fake clock."""
    return MemoryCache(clock=clock)


@pytest.fixture
async def runner() -> AsyncGenerator[DetachedTaskRunner]:
    task_runner = DetachedTaskRunner()
    yield task_runner
    await task_runner.close(timeout=1.0)


@pytest.fixture
def breakers(clock: FakeClock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(
        failure_threshold=3, success_threshold=2, cooldown=30.0, clock=clock
    )


@pytest.fixture
def cache_settings() -> CacheSettings:
    return CacheSettings(enabled=True, stale_seconds=60)


@pytest.fixture
def response_cache(
    memory_store: MemoryCache,
    runner: DetachedTaskRunner,
    cache_settings: CacheSettings,
    clock: FakeClock,
) -> ResponseCache:
    return ResponseCache(memory_store, runner, cache_settings, clock=clock)


# ============================================================================
# Application
# ============================================================================


@pytest.fixture
def app(
    memory_store: MemoryCache,
    runner: DetachedTaskRunner,
    breakers: CircuitBreakerRegistry,
    response_cache: ResponseCache,
    clock: FakeClock,
) -> FastAPI:
    """Application with app.state populated the way the lifespan does it.

    httpx's ASGITransport does not run lifespan events, so the components
    are attached directly.
    """
    from edge_service.app.main import create_app

    application = create_app()
    application.state.cache_store = memory_store
    application.state.breakers = breakers
    application.state.rate_limiter = DistributedRateLimiter(memory_store, clock=clock)
    application.state.rate_limit_tracker = RateLimitStateTracker(
        failure_threshold=RateLimitSettings().failure_threshold
    )
    application.state.task_runner = runner
    application.state.response_cache = response_cache
    application.state.cache_invalidator = CacheInvalidator(memory_store)
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client bound to ``app``."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
