"""Rate limit protection status types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class RateLimitProtectionStatus(StrEnum):
    """Whether the limiter is actually enforcing quotas.

    Values:
        ACTIVE: The shared store answers and quotas are enforced
        DEGRADED: The store keeps failing; requests are let through (fail-open)
        DISABLED: Rate limiting is turned off by configuration
    """

    ACTIVE = "active"
    DEGRADED = "degraded"
    DISABLED = "disabled"


@dataclass
class RateLimitProtectionState:
    """Snapshot of the protection status.

    Attributes:
        status: Current protection status
        since: When this status began
        consecutive_failures: Store failures since the last success
        last_error: Most recent store error message, if any
    """

    status: RateLimitProtectionStatus
    since: datetime = field(default_factory=lambda: datetime.now(UTC))
    consecutive_failures: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "since": self.since.isoformat(),
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }


__all__ = [
    "RateLimitProtectionState",
    "RateLimitProtectionStatus",
]
