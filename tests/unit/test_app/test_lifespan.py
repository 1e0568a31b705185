"""Tests for startup wiring and the Redis fallback."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from redis.exceptions import ConnectionError as RedisConnectionError

from edge_service.app import lifespan as lifespan_module
from edge_service.infra.cache.memory import MemoryCache
from edge_service.infra.cache.response import ResponseCache
from edge_service.infra.ratelimit import RateLimitProtectionStatus


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    """Keep pytest's log capture in place."""
    monkeypatch.setattr(lifespan_module, "setup_logging", lambda **_: None)
    monkeypatch.setattr(lifespan_module, "shutdown_logging", lambda: None)


@pytest.fixture
def redis_down(monkeypatch):
    connect = AsyncMock(side_effect=RedisConnectionError("Connection refused"))
    monkeypatch.setattr(lifespan_module.RedisCache, "connect", connect)
    return connect


@pytest.mark.asyncio
@pytest.mark.usefixtures("redis_down")
async def test_falls_back_to_memory_store():
    app = FastAPI()

    async with lifespan_module.lifespan(app):
        assert isinstance(app.state.cache_store, MemoryCache)
        assert app.state.cache_store.key_prefix == "edge:"
        assert isinstance(app.state.response_cache, ResponseCache)
        assert app.state.rate_limiter.store is app.state.cache_store
        assert app.state.rate_limit_tracker.status is RateLimitProtectionStatus.ACTIVE
        assert len(app.state.breakers) == 0


@pytest.mark.asyncio
@pytest.mark.usefixtures("redis_down")
async def test_required_cache_fails_startup(monkeypatch):
    monkeypatch.setenv("REDIS_STARTUP_REQUIRE_CACHE", "true")

    with pytest.raises(RedisConnectionError):
        async with lifespan_module.lifespan(FastAPI()):
            pass


@pytest.mark.asyncio
@pytest.mark.usefixtures("redis_down")
async def test_disabled_rate_limiting_is_reported(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
    app = FastAPI()

    async with lifespan_module.lifespan(app):
        assert app.state.rate_limit_tracker.status is RateLimitProtectionStatus.DISABLED


@pytest.mark.asyncio
async def test_connected_redis_is_used(monkeypatch):
    monkeypatch.setattr(lifespan_module.RedisCache, "connect", AsyncMock())
    monkeypatch.setattr(lifespan_module.RedisCache, "disconnect", AsyncMock())
    app = FastAPI()

    async with lifespan_module.lifespan(app):
        assert isinstance(app.state.cache_store, lifespan_module.RedisCache)
