"""Tests for the health, resilience status and metrics endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from edge_service.infra.resilience import CircuitBreakerRegistry, CircuitState


async def fail() -> None:
    msg = "provider down"
    raise ConnectionError(msg)


async def trip(breakers: CircuitBreakerRegistry, name: str) -> None:
    for _ in range(3):
        with pytest.raises(ConnectionError):
            await breakers.execute(name, fail)


class TestHealth:
    @pytest.mark.asyncio
    async def test_in_process_store_reports_degraded(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["service"] == "edge-service"
        assert data["checks"] == {"cache": True, "shared_cache": False}

    @pytest.mark.asyncio
    async def test_reachable_shared_store_is_healthy(self, app, client: AsyncClient):
        store = AsyncMock()
        store.health_check.return_value = True
        app.state.cache_store = store

        data = (await client.get("/health")).json()

        assert data["status"] == "healthy"
        assert data["checks"] == {"cache": True, "shared_cache": True}

    @pytest.mark.asyncio
    async def test_unreachable_shared_store_is_degraded(self, app, client: AsyncClient):
        store = AsyncMock()
        store.health_check.return_value = False
        app.state.cache_store = store

        data = (await client.get("/health")).json()

        assert data["status"] == "degraded"
        assert data["checks"]["cache"] is False

    @pytest.mark.asyncio
    async def test_health_is_not_rate_limited(self, client: AsyncClient):
        response = await client.get("/health")
        assert "x-ratelimit-limit" not in response.headers


class TestResilienceStatus:
    @pytest.mark.asyncio
    async def test_reports_breakers_and_protection(
        self, client: AsyncClient, breakers: CircuitBreakerRegistry, clock
    ):
        await trip(breakers, "payment")
        clock.advance(10)

        data = (await client.get("/health/resilience")).json()

        payment = data["circuit_breakers"]["payment"]
        assert payment["state"] == "open"
        assert payment["failure_count"] == 3
        assert payment["retry_after"] == 20
        assert data["rate_limiter"]["status"] == "active"
        assert data["rate_limiter"]["consecutive_failures"] == 0
        assert data["background_tasks"] == 0

    @pytest.mark.asyncio
    async def test_reports_degraded_protection(self, app, client: AsyncClient):
        tracker = app.state.rate_limit_tracker
        for _ in range(5):
            tracker.record_failure("Connection refused")

        data = (await client.get("/health/resilience")).json()

        assert data["rate_limiter"]["status"] == "degraded"
        assert data["rate_limiter"]["last_error"] == "Connection refused"


class TestBreakerReset:
    @pytest.mark.asyncio
    async def test_reset_one(self, client: AsyncClient, breakers: CircuitBreakerRegistry):
        await trip(breakers, "payment")

        response = await client.post(
            "/health/resilience/breakers/reset", params={"name": "payment"}
        )

        assert response.status_code == 200
        assert response.json() == {"reset": ["payment"]}
        assert breakers.get("payment").state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_reset_all(self, client: AsyncClient, breakers: CircuitBreakerRegistry):
        await trip(breakers, "payment")
        await trip(breakers, "geo")

        response = await client.post("/health/resilience/breakers/reset")

        assert sorted(response.json()["reset"]) == ["geo", "payment"]
        assert breakers.get("geo").state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_unknown_breaker_is_404(self, client: AsyncClient):
        response = await client.post("/health/resilience/breakers/reset", params={"name": "nope"})

        assert response.status_code == 404
        assert response.json()["type"] == "circuit-breaker-not-found"


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient, breakers: CircuitBreakerRegistry):
    breakers.get("payment")

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "circuit_breaker_state" in response.text
