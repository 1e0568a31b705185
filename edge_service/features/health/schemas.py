"""Response schemas for the health endpoints."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Overall service health.

    ``degraded`` means requests are served but the shared store is not
    reachable (cache misses, fail-open rate limiting, process-local state).
    """

    status: HealthStatus = Field(description="Overall health status")
    service: str = Field(min_length=1, max_length=100, description="Service name")
    version: str = Field(description="Service version")
    timestamp: datetime = Field(description="Check timestamp")
    checks: dict[str, bool] = Field(default_factory=dict, description="Dependency checks")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "service": "edge-service",
                "version": "0.1.0",
                "timestamp": "2026-01-01T00:00:00Z",
                "checks": {"cache": True},
            }
        }
    )


class CircuitBreakerStatus(BaseModel):
    name: str
    state: str
    failure_count: int
    success_count: int
    failure_threshold: int
    success_threshold: int
    cooldown: float
    retry_after: int = Field(description="Seconds until an OPEN breaker allows a probe")
    total_failures: int
    total_successes: int
    total_rejections: int


class RateLimitProtection(BaseModel):
    status: str = Field(description="active, degraded or disabled")
    since: datetime
    consecutive_failures: int
    last_error: str | None = None


class ResilienceStatusResponse(BaseModel):
    """Circuit breakers, rate limit protection and background task load."""

    timestamp: datetime
    circuit_breakers: dict[str, CircuitBreakerStatus] = Field(default_factory=dict)
    rate_limiter: RateLimitProtection
    background_tasks: int = Field(ge=0, description="Detached cache writes/refreshes in flight")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "timestamp": "2026-01-01T00:00:00Z",
                "circuit_breakers": {
                    "payment": {
                        "name": "payment",
                        "state": "open",
                        "failure_count": 5,
                        "success_count": 0,
                        "failure_threshold": 5,
                        "success_threshold": 2,
                        "cooldown": 30.0,
                        "retry_after": 12,
                        "total_failures": 5,
                        "total_successes": 40,
                        "total_rejections": 3,
                    }
                },
                "rate_limiter": {
                    "status": "active",
                    "since": "2026-01-01T00:00:00Z",
                    "consecutive_failures": 0,
                    "last_error": None,
                },
                "background_tasks": 0,
            }
        }
    )


class BreakerResetResponse(BaseModel):
    reset: list[str] = Field(default_factory=list, description="Breakers reset to CLOSED")


def breaker_statuses(raw: dict[str, dict[str, Any]]) -> dict[str, CircuitBreakerStatus]:
    return {name: CircuitBreakerStatus(**status) for name, status in raw.items()}
