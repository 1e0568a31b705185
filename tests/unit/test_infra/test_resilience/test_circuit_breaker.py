"""Tests for the circuit breaker and its registry.

Tests cover:
- State transitions (CLOSED -> OPEN -> HALF_OPEN -> CLOSED)
- Rejection with retry_after while OPEN
- Probe limits and re-opening from HALF_OPEN
- Exception filtering (expected vs unexpected)
- Registry lookup, status and reset
"""

from __future__ import annotations

import asyncio

import pytest

from edge_service.infra.resilience import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitState,
)


class ServiceError(Exception):
    """Failure of the protected dependency."""


class UnexpectedError(Exception):
    """Exception that should not trip the breaker."""


async def failing() -> None:
    msg = "Service unavailable"
    raise ServiceError(msg)


async def succeeding() -> str:
    return "success"


@pytest.fixture
def breaker(clock) -> CircuitBreaker:
    return CircuitBreaker(
        name="payments",
        failure_threshold=3,
        success_threshold=2,
        cooldown=30.0,
        expected_exception=ServiceError,
        clock=clock,
    )


async def trip(breaker: CircuitBreaker) -> None:
    for _ in range(breaker.failure_threshold):
        with pytest.raises(ServiceError):
            await breaker.execute(failing)


class TestCircuitBreakerInitialization:
    """Constructor validation and defaults."""

    def test_starts_closed(self, breaker: CircuitBreaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.next_attempt_at is None

    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"failure_threshold": 0}, "failure_threshold must be greater than 0"),
            ({"success_threshold": 0}, "success_threshold must be greater than 0"),
            ({"cooldown": 0}, "cooldown must be greater than 0"),
            ({"half_open_max_calls": 0}, "half_open_max_calls must be greater than 0"),
        ],
    )
    def test_rejects_invalid_config(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            CircuitBreaker(name="bad", **kwargs)


class TestClosedState:
    @pytest.mark.asyncio
    async def test_success_passes_result_through(self, breaker: CircuitBreaker):
        assert await breaker.execute(succeeding) == "success"
        assert breaker.total_successes == 1

    @pytest.mark.asyncio
    async def test_errors_propagate_unchanged(self, breaker: CircuitBreaker):
        with pytest.raises(ServiceError, match="Service unavailable"):
            await breaker.execute(failing)
        assert breaker.failure_count == 1
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_success_clears_consecutive_failures(self, breaker: CircuitBreaker):
        for _ in range(2):
            with pytest.raises(ServiceError):
                await breaker.execute(failing)
        await breaker.execute(succeeding)
        assert breaker.failure_count == 0

        with pytest.raises(ServiceError):
            await breaker.execute(failing)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_at_failure_threshold(self, breaker: CircuitBreaker, clock):
        await trip(breaker)
        assert breaker.state == CircuitState.OPEN
        assert breaker.next_attempt_at == clock.now + 30.0

    @pytest.mark.asyncio
    async def test_unexpected_exception_does_not_count(self, breaker: CircuitBreaker):
        async def boom() -> None:
            msg = "not a dependency failure"
            raise UnexpectedError(msg)

        for _ in range(5):
            with pytest.raises(UnexpectedError):
                await breaker.execute(boom)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0


class TestOpenState:
    @pytest.mark.asyncio
    async def test_rejects_without_invoking(self, breaker: CircuitBreaker):
        await trip(breaker)
        calls = 0

        async def counted() -> str:
            nonlocal calls
            calls += 1
            return "ok"

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(counted)

        assert calls == 0
        assert exc_info.value.name == "payments"
        assert exc_info.value.retry_after == pytest.approx(30.0)
        assert breaker.total_rejections == 1

    @pytest.mark.asyncio
    async def test_retry_after_counts_down(self, breaker: CircuitBreaker, clock):
        await trip(breaker)
        clock.advance(12)
        assert breaker.seconds_until_retry() == pytest.approx(18.0)

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(succeeding)
        assert exc_info.value.retry_after == pytest.approx(18.0)


class TestHalfOpenState:
    @pytest.mark.asyncio
    async def test_probe_after_cooldown_then_close(self, breaker: CircuitBreaker, clock):
        await trip(breaker)
        clock.advance(30)

        assert await breaker.execute(succeeding) == "success"
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.success_count == 1

        await breaker.execute(succeeding)
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert breaker.next_attempt_at is None

    @pytest.mark.asyncio
    async def test_probe_failure_reopens_with_fresh_cooldown(self, breaker: CircuitBreaker, clock):
        await trip(breaker)
        clock.advance(31)

        with pytest.raises(ServiceError):
            await breaker.execute(failing)

        assert breaker.state == CircuitState.OPEN
        assert breaker.next_attempt_at == clock.now + 30.0

    @pytest.mark.asyncio
    async def test_only_one_probe_in_flight(self, breaker: CircuitBreaker, clock):
        await trip(breaker)
        clock.advance(30)
        release = asyncio.Event()

        async def slow() -> str:
            await release.wait()
            return "slow"

        probe = asyncio.create_task(breaker.execute(slow))
        await asyncio.sleep(0)

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.execute(succeeding)
        assert exc_info.value.retry_after == 0.0

        release.set()
        assert await probe == "slow"
        assert breaker.state == CircuitState.HALF_OPEN


class TestCallPatterns:
    @pytest.mark.asyncio
    async def test_call_with_arguments(self, breaker: CircuitBreaker):
        async def add(a: int, b: int) -> int:
            return a + b

        assert await breaker.call(add, 2, b=3) == 5

    @pytest.mark.asyncio
    async def test_protected_decorator(self, breaker: CircuitBreaker):
        @breaker.protected
        async def fetch(user_id: str) -> dict:
            return {"id": user_id}

        assert await fetch("u1") == {"id": "u1"}
        assert fetch.__name__ == "fetch"


class TestStatusAndReset:
    @pytest.mark.asyncio
    async def test_status_snapshot(self, breaker: CircuitBreaker, clock):
        await trip(breaker)
        clock.advance(10.5)

        status = breaker.get_status()

        assert status["name"] == "payments"
        assert status["state"] == "open"
        assert status["failure_count"] == 3
        assert status["retry_after"] == 20
        assert status["total_failures"] == 3

    @pytest.mark.asyncio
    async def test_reset_closes_and_clears(self, breaker: CircuitBreaker):
        await trip(breaker)
        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert await breaker.execute(succeeding) == "success"


class TestCircuitBreakerRegistry:
    def test_get_returns_same_breaker(self, breakers: CircuitBreakerRegistry):
        first = breakers.get("profiles")
        assert breakers.get("profiles") is first
        assert "profiles" in breakers
        assert len(breakers) == 1

    def test_overrides_apply_on_creation(self, breakers: CircuitBreakerRegistry):
        breaker = breakers.get("search", failure_threshold=10)
        assert breaker.failure_threshold == 10
        assert breaker.cooldown == 30.0

    @pytest.mark.asyncio
    async def test_execute_by_name(self, breakers: CircuitBreakerRegistry):
        assert await breakers.execute("profiles", succeeding) == "success"
        assert breakers.get_all_status()["profiles"]["total_successes"] == 1

    @pytest.mark.asyncio
    async def test_reset_by_name(self, breakers: CircuitBreakerRegistry):
        for _ in range(3):
            with pytest.raises(ServiceError):
                await breakers.execute("profiles", failing)
        assert breakers.get("profiles").state == CircuitState.OPEN

        assert breakers.reset("profiles") is True
        assert breakers.get("profiles").state == CircuitState.CLOSED
        assert breakers.reset("unknown") is False
