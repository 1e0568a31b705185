"""Resilience patterns: circuit breaker and retry with backoff.

Example:
    >>> from edge_service.infra.resilience import CircuitBreakerRegistry, with_retry
    >>>
    >>> registry = CircuitBreakerRegistry()
    >>> result = await with_retry(
    ...     lambda: provider.charge(order),
    ...     max_retries=3,
    ...     circuit_breaker=registry.get("payment"),
    ... )
"""

from __future__ import annotations

from edge_service.infra.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitState,
)
from edge_service.infra.resilience.retry import (
    RetryAttempt,
    RetryExecutor,
    RetryPolicy,
    retryable,
    with_retry,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "RetryAttempt",
    "RetryExecutor",
    "RetryPolicy",
    "retryable",
    "with_retry",
]
