"""Rate limiting, circuit breaker, retry and error metrics."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

from edge_service.infra.metrics.prometheus import REGISTRY

# ============================================================================
# Error and Exception Metrics
# ============================================================================

errors_total = Counter(
    "errors_total",
    "Total number of errors by type and endpoint",
    ["error_type", "endpoint", "status_code"],
    registry=REGISTRY,
)

exceptions_unhandled_total = Counter(
    "exceptions_unhandled_total",
    "Total number of unhandled exceptions",
    ["exception_type", "endpoint"],
    registry=REGISTRY,
)

# ============================================================================
# Rate Limiting Metrics
# ============================================================================

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Total number of times a rate limit was hit",
    ["limiter", "key_by"],
    registry=REGISTRY,
)

rate_limit_checks_total = Counter(
    "rate_limit_checks_total",
    "Total number of rate limit checks performed",
    ["limiter", "result"],  # result: allowed, denied
    registry=REGISTRY,
)

rate_limiter_protection_status = Gauge(
    "rate_limiter_protection_status",
    "Rate limiter protection status (1=active, 0.5=degraded, 0=disabled)",
    registry=REGISTRY,
)

rate_limiter_state_transitions_total = Counter(
    "rate_limiter_state_transitions_total",
    "Total number of rate limiter state transitions",
    ["from_state", "to_state"],
    registry=REGISTRY,
)

rate_limiter_store_errors_total = Counter(
    "rate_limiter_store_errors_total",
    "Total shared store errors during rate limit checks",
    ["error_type"],  # error_type: timeout, connection, other
    registry=REGISTRY,
)

# ============================================================================
# Circuit Breaker Metrics
# ============================================================================

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_failures_total = Counter(
    "circuit_breaker_failures_total",
    "Total number of circuit breaker failures",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_successes_total = Counter(
    "circuit_breaker_successes_total",
    "Total number of circuit breaker successes",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_state_changes_total = Counter(
    "circuit_breaker_state_changes_total",
    "Total number of circuit breaker state changes",
    ["circuit_name", "from_state", "to_state"],
    registry=REGISTRY,
)

circuit_breaker_rejected_total = Counter(
    "circuit_breaker_rejected_total",
    "Total number of calls rejected by a circuit breaker",
    ["circuit_name"],
    registry=REGISTRY,
)

# ============================================================================
# Retry Metrics
# ============================================================================

retry_attempts_total = Counter(
    "retry_attempts_total",
    "Total number of retry attempts",
    ["operation", "attempt_number"],
    registry=REGISTRY,
)

retry_exhausted_total = Counter(
    "retry_exhausted_total",
    "Total number of operations that exhausted all retries",
    ["operation"],
    registry=REGISTRY,
)

retry_success_after_failure_total = Counter(
    "retry_success_after_failure_total",
    "Total number of operations that succeeded after retry",
    ["operation", "attempts_needed"],
    registry=REGISTRY,
)
