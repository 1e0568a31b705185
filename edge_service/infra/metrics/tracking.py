"""Helper functions for tracking operational metrics.

Infrastructure code calls these instead of touching metric objects directly,
so label names and value mappings live in one place.
"""

from __future__ import annotations

from edge_service.infra.metrics import business, prometheus

# ============================================================================
# Error Tracking
# ============================================================================


def track_error(error_type: str, endpoint: str, status_code: int) -> None:
    """Track an error response rendered by an exception handler.

    Args:
        error_type: Problem type (e.g. 'rate-limit-exceeded', 'circuit-breaker-open')
        endpoint: Request path where the error occurred
        status_code: HTTP status code
    """
    business.errors_total.labels(
        error_type=error_type,
        endpoint=endpoint,
        status_code=str(status_code),
    ).inc()


def track_unhandled_exception(exception_type: str, endpoint: str) -> None:
    business.exceptions_unhandled_total.labels(
        exception_type=exception_type,
        endpoint=endpoint,
    ).inc()


# ============================================================================
# Rate Limiting Tracking
# ============================================================================


def track_rate_limit_hit(limiter: str, key_by: str = "ip") -> None:
    """Track when a rate limit is hit.

    Args:
        limiter: Name of the matched rule (e.g. 'auth', 'swipe', 'api')
        key_by: How callers are identified ('ip' or 'user')
    """
    business.rate_limit_hits_total.labels(limiter=limiter, key_by=key_by).inc()


def track_rate_limit_check(limiter: str, allowed: bool) -> None:
    result = "allowed" if allowed else "denied"
    business.rate_limit_checks_total.labels(limiter=limiter, result=result).inc()


def update_rate_limiter_protection_status(status: str) -> None:
    """Update rate limiter protection status gauge.

    Args:
        status: Protection status ('active', 'degraded', 'disabled')
    """
    status_map = {"active": 1.0, "degraded": 0.5, "disabled": 0.0}
    business.rate_limiter_protection_status.set(status_map.get(status, 0.0))


def track_rate_limiter_state_transition(from_state: str, to_state: str) -> None:
    business.rate_limiter_state_transitions_total.labels(
        from_state=from_state,
        to_state=to_state,
    ).inc()


def track_rate_limiter_store_error(error_type: str) -> None:
    """Track a shared store error during a rate limit check.

    Args:
        error_type: Type of error ('timeout', 'connection', 'auth', 'other')
    """
    business.rate_limiter_store_errors_total.labels(error_type=error_type).inc()


# ============================================================================
# Circuit Breaker Tracking
# ============================================================================


def update_circuit_breaker_state(circuit_name: str, state: str) -> None:
    """Update circuit breaker state gauge.

    Args:
        circuit_name: Name of the circuit breaker
        state: Current state ('closed', 'half_open', 'open')
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    business.circuit_breaker_state.labels(circuit_name=circuit_name).set(state_map.get(state, 0))


def track_circuit_breaker_failure(circuit_name: str) -> None:
    business.circuit_breaker_failures_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_success(circuit_name: str) -> None:
    business.circuit_breaker_successes_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_state_change(circuit_name: str, from_state: str, to_state: str) -> None:
    business.circuit_breaker_state_changes_total.labels(
        circuit_name=circuit_name,
        from_state=from_state,
        to_state=to_state,
    ).inc()


def track_circuit_breaker_rejected(circuit_name: str) -> None:
    business.circuit_breaker_rejected_total.labels(circuit_name=circuit_name).inc()


# ============================================================================
# Retry Tracking
# ============================================================================


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Track a retry attempt.

    Args:
        operation: Name of the operation being retried
        attempt_number: Retry number (1 = first retry)
    """
    business.retry_attempts_total.labels(
        operation=operation,
        attempt_number=str(attempt_number),
    ).inc()


def track_retry_exhausted(operation: str) -> None:
    business.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts_needed: int) -> None:
    business.retry_success_after_failure_total.labels(
        operation=operation,
        attempts_needed=str(attempts_needed),
    ).inc()


# ============================================================================
# Response Cache Tracking
# ============================================================================


def track_cache_hit(resource_type: str, stale: bool = False) -> None:
    freshness = "stale" if stale else "fresh"
    prometheus.cache_hits_total.labels(resource_type=resource_type, freshness=freshness).inc()


def track_cache_miss(resource_type: str) -> None:
    prometheus.cache_misses_total.labels(resource_type=resource_type).inc()


def track_cache_not_modified(resource_type: str) -> None:
    prometheus.cache_not_modified_total.labels(resource_type=resource_type).inc()


def track_cache_store_error(operation: str) -> None:
    """Track a store error absorbed by the cache layer.

    Args:
        operation: 'read', 'write' or 'invalidate'
    """
    prometheus.cache_store_errors_total.labels(operation=operation).inc()


def track_cache_invalidation(kind: str, ok: bool) -> None:
    prometheus.cache_invalidations_total.labels(kind=kind, result="ok" if ok else "error").inc()


# ============================================================================
# Detached Background Work
# ============================================================================


def update_background_tasks_in_flight(count: int) -> None:
    prometheus.background_tasks_in_flight.set(count)


def track_background_task_failure(task: str) -> None:
    prometheus.background_task_failures_total.labels(task=task).inc()
