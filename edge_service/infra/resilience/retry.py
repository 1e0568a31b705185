"""Retry with exponential backoff and jitter.

Attempts run ``0..max_retries`` inclusive. Between attempts the executor
sleeps ``min(base_delay * 2**attempt, max_delay)`` seconds, scaled by a random
factor in ``[0.5, 1.0)`` when jitter is on. The error from the final attempt
is re-raised unchanged so callers can still catch the dependency's own
exception types.

Example:
    >>> result = await with_retry(
    ...     lambda: payments.charge(order),
    ...     max_retries=3,
    ...     base_delay=0.5,
    ...     circuit_breaker=registry.get("payment"),
    ...     should_retry=lambda exc: not isinstance(exc, PaymentDeclined),
    ... )

    >>> @retryable(max_retries=2, base_delay=0.1)
    ... async def load_profile(user_id: str) -> dict: ...
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from dataclasses import dataclass, replace
from functools import wraps
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from edge_service.infra.metrics.tracking import (
    track_retry_attempt,
    track_retry_exhausted,
    track_retry_success,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from edge_service.core.settings.resilience import ResilienceSettings
    from edge_service.infra.resilience.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry knobs. Delays are in seconds.

    Attributes:
        max_retries: Retries after the first attempt (0 = a single attempt).
        base_delay: Delay before the first retry.
        max_delay: Upper bound for any single delay, base_delay included.
        jitter: Scale each delay by a random factor in [0.5, 1.0).
        exceptions: Exception types eligible for retry; anything else
            propagates on the first occurrence.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True
    exceptions: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = "max_retries must be >= 0"
            raise ValueError(msg)
        if self.base_delay < 0 or self.max_delay < 0:
            msg = "retry delays must be >= 0"
            raise ValueError(msg)

    @classmethod
    def from_settings(cls, settings: ResilienceSettings) -> RetryPolicy:
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )

    def backoff(self, attempt: int) -> float:
        """Pre-jitter delay after the failure of ``attempt`` (0-indexed)."""
        return min(self.base_delay * (2**attempt), self.max_delay)


@dataclass(frozen=True)
class RetryAttempt:
    """A failed attempt that is about to be retried."""

    attempt_number: int
    delay: float
    error: BaseException


class RetryExecutor:
    """Runs operations under a RetryPolicy.

    The sleep function and random source are injectable so tests can observe
    delays without waiting for them.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        rand: Callable[[], float] | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep or asyncio.sleep
        self._rand = rand or random.random

    def compute_delay(self, attempt: int) -> float:
        delay = self.policy.backoff(attempt)
        if self.policy.jitter:
            delay *= 0.5 + self._rand() * 0.5
        return delay

    async def run(
        self,
        operation: Callable[[], Awaitable[R]],
        *,
        circuit_breaker: CircuitBreaker | None = None,
        should_retry: Callable[[BaseException], bool] | None = None,
        on_retry: Callable[[RetryAttempt], Any] | None = None,
        name: str | None = None,
    ) -> R:
        """Run ``operation`` until it succeeds or retries are exhausted.

        Args:
            operation: Zero-argument async callable.
            circuit_breaker: When given, every attempt goes through
                ``circuit_breaker.execute``.
            should_retry: Predicate that can veto a retry; a False result
                re-raises immediately.
            on_retry: Called (sync or async) before each backoff sleep.
            name: Operation name for logs and metrics.

        Returns:
            The operation's result.

        Raises:
            BaseException: The last error, unchanged.
        """
        policy = self.policy
        op_name = name or getattr(operation, "__name__", "operation")

        for attempt in range(policy.max_retries + 1):
            try:
                if circuit_breaker is not None:
                    result = await circuit_breaker.execute(operation)
                else:
                    result = await operation()
            except policy.exceptions as exc:
                if should_retry is not None and not should_retry(exc):
                    logger.info(
                        "Retry vetoed for %s",
                        op_name,
                        extra={"operation": op_name, "attempt": attempt, "error": str(exc)},
                    )
                    raise

                if attempt >= policy.max_retries:
                    if policy.max_retries > 0:
                        track_retry_exhausted(op_name)
                        logger.warning(
                            "All retry attempts exhausted for %s",
                            op_name,
                            extra={
                                "operation": op_name,
                                "attempts": attempt + 1,
                                "error": str(exc),
                            },
                        )
                    raise

                delay = self.compute_delay(attempt)
                track_retry_attempt(op_name, attempt + 1)
                logger.info(
                    "Retrying %s in %.3fs",
                    op_name,
                    delay,
                    extra={
                        "operation": op_name,
                        "attempt": attempt + 1,
                        "max_retries": policy.max_retries,
                        "delay": delay,
                        "error": str(exc),
                    },
                )

                if on_retry is not None:
                    attempt_info = RetryAttempt(attempt_number=attempt + 1, delay=delay, error=exc)
                    outcome = on_retry(attempt_info)
                    if inspect.isawaitable(outcome):
                        await outcome

                # CancelledError from the sleep propagates, aborting the retry loop.
                await self._sleep(delay)
            else:
                if attempt > 0:
                    track_retry_success(op_name, attempt + 1)
                return result

        msg = "Retry loop exited without a result"
        raise RuntimeError(msg)


def _resolve_policy(
    policy: RetryPolicy | None,
    max_retries: int | None,
    base_delay: float | None,
    max_delay: float | None,
    jitter: bool | None,
) -> RetryPolicy:
    base = policy or RetryPolicy()
    overrides: dict[str, Any] = {}
    if max_retries is not None:
        overrides["max_retries"] = max_retries
    if base_delay is not None:
        overrides["base_delay"] = base_delay
    if max_delay is not None:
        overrides["max_delay"] = max_delay
    if jitter is not None:
        overrides["jitter"] = jitter
    return replace(base, **overrides) if overrides else base


async def with_retry(
    operation: Callable[[], Awaitable[R]],
    policy: RetryPolicy | None = None,
    *,
    max_retries: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
    jitter: bool | None = None,
    circuit_breaker: CircuitBreaker | None = None,
    should_retry: Callable[[BaseException], bool] | None = None,
    on_retry: Callable[[RetryAttempt], Any] | None = None,
    name: str | None = None,
) -> R:
    """Run ``operation`` with retries.

    Keyword knobs override the matching fields of ``policy`` (or of the
    default policy when none is given).
    """
    resolved = _resolve_policy(policy, max_retries, base_delay, max_delay, jitter)
    return await RetryExecutor(resolved).run(
        operation,
        circuit_breaker=circuit_breaker,
        should_retry=should_retry,
        on_retry=on_retry,
        name=name,
    )


def retryable(
    policy: RetryPolicy | None = None,
    *,
    max_retries: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
    jitter: bool | None = None,
    exceptions: tuple[type[BaseException], ...] | None = None,
    circuit_breaker: CircuitBreaker | None = None,
    should_retry: Callable[[BaseException], bool] | None = None,
    on_retry: Callable[[RetryAttempt], Any] | None = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator form of with_retry for async functions."""
    resolved = _resolve_policy(policy, max_retries, base_delay, max_delay, jitter)
    if exceptions is not None:
        resolved = replace(resolved, exceptions=exceptions)
    executor = RetryExecutor(resolved)

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            return await executor.run(
                lambda: func(*args, **kwargs),
                circuit_breaker=circuit_breaker,
                should_retry=should_retry,
                on_retry=on_retry,
                name=func.__name__,
            )

        return wrapper

    return decorator
