"""Tests for retry with exponential backoff."""

from __future__ import annotations

import pytest

from edge_service.infra.resilience import (
    CircuitBreaker,
    CircuitOpenError,
    RetryAttempt,
    RetryExecutor,
    RetryPolicy,
    retryable,
    with_retry,
)


class TransientError(Exception):
    pass


class PermanentError(Exception):
    pass


class Recorder:
    """Collects requested sleeps instead of sleeping."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def flaky(failures: int, error: type[Exception] = TransientError):
    """Operation that fails ``failures`` times, then returns 'ok'."""
    calls = {"count": 0}

    async def operation() -> str:
        calls["count"] += 1
        if calls["count"] <= failures:
            msg = f"failure {calls['count']}"
            raise error(msg)
        return "ok"

    return operation, calls


@pytest.fixture
def sleeps() -> Recorder:
    return Recorder()


def executor(sleeps: Recorder, **policy) -> RetryExecutor:
    policy.setdefault("jitter", False)
    return RetryExecutor(RetryPolicy(**policy), sleep=sleeps)


class TestRetryPolicy:
    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"max_retries": -1}, "max_retries must be >= 0"),
            ({"base_delay": -0.1}, "retry delays must be >= 0"),
        ],
    )
    def test_validation(self, kwargs, message):
        with pytest.raises(ValueError, match=message):
            RetryPolicy(**kwargs)

    def test_backoff_doubles_and_caps(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
        assert [policy.backoff(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_base_delay_above_max_is_capped(self):
        policy = RetryPolicy(base_delay=10.0, max_delay=1.0)
        assert [policy.backoff(n) for n in range(3)] == [1.0, 1.0, 1.0]


class TestRetryExecutor:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, sleeps: Recorder):
        operation, calls = flaky(2)

        result = await executor(sleeps, max_retries=3, base_delay=0.5).run(operation)

        assert result == "ok"
        assert calls["count"] == 3
        assert sleeps.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self, sleeps: Recorder):
        operation, calls = flaky(10)

        with pytest.raises(TransientError, match="failure 4"):
            await executor(sleeps, max_retries=3, base_delay=1.0).run(operation)

        assert calls["count"] == 4
        assert sleeps.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_zero_retries_is_single_attempt(self, sleeps: Recorder):
        operation, calls = flaky(1)

        with pytest.raises(TransientError):
            await executor(sleeps, max_retries=0).run(operation)

        assert calls["count"] == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_should_retry_veto(self, sleeps: Recorder):
        operation, calls = flaky(5, PermanentError)

        with pytest.raises(PermanentError):
            await executor(sleeps, max_retries=3).run(
                operation, should_retry=lambda exc: not isinstance(exc, PermanentError)
            )

        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_non_matching_exception_not_retried(self, sleeps: Recorder):
        operation, calls = flaky(5, PermanentError)

        with pytest.raises(PermanentError):
            await executor(sleeps, max_retries=3, exceptions=(TransientError,)).run(operation)

        assert calls["count"] == 1

    @pytest.mark.asyncio
    async def test_jitter_scales_delay(self, sleeps: Recorder):
        operation, _ = flaky(1)
        retry = RetryExecutor(
            RetryPolicy(max_retries=1, base_delay=2.0, jitter=True), sleep=sleeps, rand=lambda: 0.5
        )

        await retry.run(operation)

        assert sleeps.delays == [1.5]

    @pytest.mark.asyncio
    async def test_on_retry_receives_attempts(self, sleeps: Recorder):
        operation, _ = flaky(2)
        seen: list[RetryAttempt] = []

        async def record(attempt: RetryAttempt) -> None:
            seen.append(attempt)

        await executor(sleeps, max_retries=3, base_delay=0.1).run(operation, on_retry=record)

        assert [a.attempt_number for a in seen] == [1, 2]
        assert isinstance(seen[0].error, TransientError)

    @pytest.mark.asyncio
    async def test_attempts_go_through_breaker(self, sleeps: Recorder, clock):
        breaker = CircuitBreaker(name="provider", failure_threshold=2, clock=clock)
        operation, calls = flaky(10)

        with pytest.raises(CircuitOpenError):
            await executor(sleeps, max_retries=3).run(operation, circuit_breaker=breaker)

        # Two real failures open the breaker; the remaining attempts are rejected.
        assert calls["count"] == 2
        assert breaker.total_rejections == 2


class TestRetryHelpers:
    @pytest.mark.asyncio
    async def test_with_retry_keyword_overrides(self):
        operation, calls = flaky(1)

        assert await with_retry(operation, max_retries=1, base_delay=0.0, jitter=False) == "ok"
        assert calls["count"] == 2

    @pytest.mark.asyncio
    async def test_retryable_decorator(self):
        attempts = 0

        @retryable(max_retries=2, base_delay=0.0, jitter=False)
        async def load(user_id: str) -> dict:
            nonlocal attempts
            attempts += 1
            if attempts < 2:
                msg = "flaky"
                raise TransientError(msg)
            return {"id": user_id}

        assert await load("u1") == {"id": "u1"}
        assert attempts == 2
        assert load.__name__ == "load"
