"""Rate limit protection tracker.

The middleware fails open when the shared store is unreachable. The tracker
makes that visible: after ``failure_threshold`` consecutive store failures the
status flips to DEGRADED (WARNING log, gauge update) and returns to ACTIVE on
the next successful check.

The tracker lives on ``app.state.rate_limit_tracker`` and is only touched from
the event loop, so it holds no lock.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime

from edge_service.infra.metrics.tracking import (
    track_rate_limiter_state_transition,
    track_rate_limiter_store_error,
    update_rate_limiter_protection_status,
)
from edge_service.infra.ratelimit.status import (
    RateLimitProtectionState,
    RateLimitProtectionStatus,
)

logger = logging.getLogger(__name__)


def categorize_error(error: str) -> str:
    """Bucket a store error message into a low-cardinality metric label."""
    error_lower = error.lower()
    if "timeout" in error_lower or "timed out" in error_lower:
        return "timeout"
    if "connection" in error_lower or "refused" in error_lower:
        return "connection"
    if "auth" in error_lower:
        return "auth"
    return "other"


class RateLimitStateTracker:
    """Tracks ACTIVE / DEGRADED / DISABLED protection status.

    Example:
        >>> tracker = RateLimitStateTracker(failure_threshold=3)
        >>> tracker.record_failure("Connection refused")
        >>> tracker.get_state().status
        <RateLimitProtectionStatus.ACTIVE: 'active'>
    """

    def __init__(self, failure_threshold: int = 5) -> None:
        """Initialize the tracker.

        Args:
            failure_threshold: Consecutive failures before ACTIVE turns DEGRADED.
        """
        self._failure_threshold = failure_threshold
        self._state = RateLimitProtectionState(status=RateLimitProtectionStatus.ACTIVE)
        update_rate_limiter_protection_status(self._state.status.value)

    def get_state(self) -> RateLimitProtectionState:
        """Return a copy of the current state."""
        return replace(self._state)

    @property
    def status(self) -> RateLimitProtectionStatus:
        return self._state.status

    def record_success(self) -> None:
        """Record a successful store round trip."""
        self._state.consecutive_failures = 0
        self._state.last_error = None
        if self._state.status is RateLimitProtectionStatus.DEGRADED:
            self._set_status(RateLimitProtectionStatus.ACTIVE)

    def record_failure(self, error: str) -> None:
        """Record a failed store round trip.

        Args:
            error: Error message describing the failure.
        """
        self._state.consecutive_failures += 1
        self._state.last_error = error
        track_rate_limiter_store_error(categorize_error(error))

        if (
            self._state.status is RateLimitProtectionStatus.ACTIVE
            and self._state.consecutive_failures >= self._failure_threshold
        ):
            self._set_status(RateLimitProtectionStatus.DEGRADED)

    def mark_disabled(self) -> None:
        """Mark rate limiting as disabled by configuration."""
        if self._state.status is not RateLimitProtectionStatus.DISABLED:
            self._set_status(RateLimitProtectionStatus.DISABLED)

    def _set_status(self, new_status: RateLimitProtectionStatus) -> None:
        old_status = self._state.status
        self._state.status = new_status
        self._state.since = datetime.now(UTC)

        update_rate_limiter_protection_status(new_status.value)
        track_rate_limiter_state_transition(old_status.value, new_status.value)

        log_extra = {
            "from_status": old_status.value,
            "to_status": new_status.value,
            "consecutive_failures": self._state.consecutive_failures,
            "last_error": self._state.last_error,
        }
        if new_status is RateLimitProtectionStatus.DEGRADED:
            logger.warning(
                "Rate limit protection degraded, fail-open mode engaged", extra=log_extra
            )
        elif new_status is RateLimitProtectionStatus.ACTIVE:
            logger.info("Rate limit protection restored to active", extra=log_extra)
        else:
            logger.info("Rate limit protection disabled by configuration", extra=log_extra)


__all__ = [
    "RateLimitStateTracker",
    "categorize_error",
]
