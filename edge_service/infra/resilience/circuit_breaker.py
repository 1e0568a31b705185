"""Circuit breaker for calls to unreliable dependencies.

States:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Failure threshold reached, calls are rejected without running
    - HALF_OPEN: Cooldown elapsed, a single probe call is let through

Transitions:
    CLOSED -> OPEN: failure_count reaches failure_threshold
    OPEN -> HALF_OPEN: first call at or after next_attempt_at
    HALF_OPEN -> CLOSED: success_count reaches success_threshold
    HALF_OPEN -> OPEN: any failure

Breakers are process-local and are only touched from the event loop thread,
so state changes need no lock: there is no await between reading the state
and updating it.

Example:
    >>> registry = CircuitBreakerRegistry(failure_threshold=5, cooldown=30.0)
    >>> charge = await registry.execute("payment", lambda: provider.charge(order))
    >>>
    >>> breaker = registry.get("search")
    >>> @breaker.protected
    ... async def query(term: str) -> list[dict]: ...
"""

from __future__ import annotations

import logging
import math
import time
from enum import StrEnum
from functools import wraps
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from edge_service.infra.metrics.tracking import (
    track_circuit_breaker_failure,
    track_circuit_breaker_rejected,
    track_circuit_breaker_state_change,
    track_circuit_breaker_success,
    update_circuit_breaker_state,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from edge_service.core.settings.resilience import ResilienceSettings

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised instead of invoking the operation while a breaker is open.

    Callers can tell a rejection apart from a real dependency failure by
    catching this type. ``retry_after`` is the number of seconds until the
    breaker will let a probe through (0 while a probe is already running).
    """

    def __init__(self, name: str, retry_after: float = 0.0, message: str | None = None) -> None:
        self.name = name
        self.retry_after = retry_after
        super().__init__(message or f"Circuit breaker '{name}' is open")


class CircuitBreaker:
    """Per-dependency circuit breaker.

    Attributes:
        name: Dependency name.
        failure_threshold: Consecutive failures that open the circuit.
        success_threshold: Successful HALF_OPEN calls that close it again.
        cooldown: Seconds the circuit stays OPEN before a probe is allowed.
        half_open_max_calls: Probe calls allowed in flight while HALF_OPEN.
        expected_exception: Exception type(s) counted as failures. Anything
            else propagates without touching the state.
    """

    def __init__(
        self,
        *,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        cooldown: float = 30.0,
        half_open_max_calls: int = 1,
        expected_exception: type[BaseException] | tuple[type[BaseException], ...] = Exception,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Unique identifier, used in logs and metric labels.
            failure_threshold: Must be > 0. Default: 5.
            success_threshold: Must be > 0. Default: 2.
            cooldown: Seconds to stay OPEN. Must be > 0. Default: 30.0.
            half_open_max_calls: Must be > 0. Default: 1.
            expected_exception: Exception type(s) that count as failures.
            clock: Monotonic time source in seconds.

        Raises:
            ValueError: If any threshold or the cooldown is not positive.
        """
        if failure_threshold <= 0:
            msg = "failure_threshold must be greater than 0"
            raise ValueError(msg)
        if success_threshold <= 0:
            msg = "success_threshold must be greater than 0"
            raise ValueError(msg)
        if cooldown <= 0:
            msg = "cooldown must be greater than 0"
            raise ValueError(msg)
        if half_open_max_calls <= 0:
            msg = "half_open_max_calls must be greater than 0"
            raise ValueError(msg)

        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.cooldown = cooldown
        self.half_open_max_calls = half_open_max_calls
        self.expected_exception = expected_exception
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_in_flight = 0
        self._next_attempt_at: float | None = None

        self.total_failures = 0
        self.total_successes = 0
        self.total_rejections = 0

        update_circuit_breaker_state(self.name, self._state.value)

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def next_attempt_at(self) -> float | None:
        return self._next_attempt_at

    def seconds_until_retry(self) -> float:
        """Seconds until an OPEN breaker admits a probe (0 when not OPEN)."""
        if self._state != CircuitState.OPEN or self._next_attempt_at is None:
            return 0.0
        return max(0.0, self._next_attempt_at - self._clock())

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection.

        Args:
            operation: Zero-argument async callable.

        Returns:
            The operation's result.

        Raises:
            CircuitOpenError: When OPEN, or when a HALF_OPEN probe is already running.
            Exception: Whatever the operation raised, unchanged.
        """
        self._before_call()
        probing = self._state == CircuitState.HALF_OPEN
        if probing:
            self._half_open_in_flight += 1

        try:
            result = await operation()
        except self.expected_exception as exc:
            if probing:
                self._half_open_in_flight -= 1
            self._on_failure(exc)
            raise
        except BaseException:
            if probing:
                self._half_open_in_flight -= 1
            raise

        if probing:
            self._half_open_in_flight -= 1
        self._on_success()
        return result

    async def call(self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T:
        """Run ``func(*args, **kwargs)`` under breaker protection."""
        return await self.execute(lambda: func(*args, **kwargs))

    def protected(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Decorator that routes every call of ``func`` through this breaker."""

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await self.execute(lambda: func(*args, **kwargs))

        return wrapper

    def _before_call(self) -> None:
        if self._state == CircuitState.OPEN:
            if self._next_attempt_at is not None and self._clock() >= self._next_attempt_at:
                self._transition(CircuitState.HALF_OPEN)
            else:
                self._reject(self.seconds_until_retry())

        if (
            self._state == CircuitState.HALF_OPEN
            and self._half_open_in_flight >= self.half_open_max_calls
        ):
            self._reject(0.0, f"Circuit breaker '{self.name}' is half-open, probe in progress")

    def _reject(self, retry_after: float, message: str | None = None) -> None:
        self.total_rejections += 1
        track_circuit_breaker_rejected(self.name)
        logger.debug(
            "Circuit breaker rejected call",
            extra={
                "circuit_breaker": self.name,
                "state": self._state.value,
                "retry_after": retry_after,
            },
        )
        raise CircuitOpenError(self.name, retry_after, message)

    def _on_success(self) -> None:
        self.total_successes += 1
        track_circuit_breaker_success(self.name)

        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._transition(CircuitState.CLOSED)
        elif self._state == CircuitState.CLOSED:
            self._failure_count = 0

    def _on_failure(self, exc: BaseException) -> None:
        self.total_failures += 1
        self._failure_count += 1
        track_circuit_breaker_failure(self.name)

        logger.debug(
            "Circuit breaker recorded failure",
            extra={
                "circuit_breaker": self.name,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
                "exception_type": type(exc).__name__,
            },
        )

        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.OPEN:
            # A call admitted before the breaker opened has now failed too.
            self._next_attempt_at = self._clock() + self.cooldown

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state

        if new_state == CircuitState.OPEN:
            self._success_count = 0
            self._next_attempt_at = self._clock() + self.cooldown
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_in_flight = 0
        else:
            self._failure_count = 0
            self._success_count = 0
            self._half_open_in_flight = 0
            self._next_attempt_at = None

        track_circuit_breaker_state_change(self.name, old_state.value, new_state.value)
        update_circuit_breaker_state(self.name, new_state.value)

        extra = {
            "circuit_breaker": self.name,
            "old_state": old_state.value,
            "new_state": new_state.value,
            "failure_count": self._failure_count,
        }
        if new_state == CircuitState.OPEN:
            logger.warning(
                "Circuit breaker '%s' opened", self.name, extra={**extra, "cooldown": self.cooldown}
            )
        else:
            logger.info("Circuit breaker '%s' is now %s", self.name, new_state.value, extra=extra)

    def get_status(self) -> dict[str, Any]:
        """Snapshot for the status endpoint."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "failure_threshold": self.failure_threshold,
            "success_threshold": self.success_threshold,
            "cooldown": self.cooldown,
            "retry_after": math.ceil(self.seconds_until_retry()),
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "total_rejections": self.total_rejections,
        }

    def reset(self) -> None:
        """Administrative reset to CLOSED with all counters cleared."""
        if self._state != CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)
        self._failure_count = 0
        self._success_count = 0
        logger.info("Circuit breaker '%s' reset", self.name, extra={"circuit_breaker": self.name})


class CircuitBreakerRegistry:
    """Named circuit breakers sharing one set of defaults.

    Constructed once at startup and injected (``app.state.breakers``), so call
    sites that use the same dependency name share trip state and tests get a
    fresh registry each time.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        cooldown: float = 30.0,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._defaults: dict[str, Any] = {
            "failure_threshold": failure_threshold,
            "success_threshold": success_threshold,
            "cooldown": cooldown,
            "half_open_max_calls": half_open_max_calls,
        }
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    @classmethod
    def from_settings(
        cls, settings: ResilienceSettings, *, clock: Callable[[], float] = time.monotonic
    ) -> CircuitBreakerRegistry:
        return cls(
            failure_threshold=settings.breaker_failure_threshold,
            success_threshold=settings.breaker_success_threshold,
            cooldown=settings.breaker_cooldown,
            half_open_max_calls=settings.breaker_half_open_max_calls,
            clock=clock,
        )

    def get(self, name: str, **overrides: Any) -> CircuitBreaker:
        """Return the breaker for ``name``, creating it on first use.

        ``overrides`` only apply when the breaker is created.
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(
                name=name, clock=self._clock, **{**self._defaults, **overrides}
            )
            self._breakers[name] = breaker
        return breaker

    async def execute(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await self.get(name).execute(operation)

    def __contains__(self, name: object) -> bool:
        return name in self._breakers

    def __len__(self) -> int:
        return len(self._breakers)

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        return {name: breaker.get_status() for name, breaker in self._breakers.items()}

    def reset(self, name: str) -> bool:
        breaker = self._breakers.get(name)
        if breaker is None:
            return False
        breaker.reset()
        return True

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
