"""Custom exception classes for the application."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception.

    All custom exceptions should inherit from this class.
    Follows RFC 7807 Problem Details for HTTP APIs.

    Attributes:
        status_code: HTTP status code for the error.
        detail: Human-readable error message.
        type: Error type identifier (used in RFC 7807 problem details).
        title: Short, human-readable summary of the problem type.
        instance: URI reference that identifies the specific occurrence of the problem.
        extra: Additional context-specific information about the error.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        type: str = "about:blank",
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.type = type
        self.title = title or default_title(status_code)
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    @property
    def retry_after(self) -> int | None:
        """Seconds a client should wait before retrying, when known."""
        value = self.extra.get("retry_after")
        return int(value) if value is not None else None


def default_title(status_code: int) -> str:
    """Get default title for an HTTP status code."""
    titles = {
        400: "Bad Request",
        404: "Not Found",
        422: "Unprocessable Entity",
        429: "Too Many Requests",
        500: "Internal Server Error",
        502: "Bad Gateway",
        503: "Service Unavailable",
        504: "Gateway Timeout",
    }
    return titles.get(status_code, "Error")


class RateLimitException(AppException):
    """Exception raised when rate limit is exceeded.

    The middleware answers over-quota requests itself; handlers that enforce an
    ad hoc limit raise this instead.

    Example:
        raise RateLimitException(
            detail="Too many requests",
            extra={"retry_after": 60, "limit": 100, "limiter": "search"},
        )
    """

    def __init__(
        self,
        detail: str,
        type: str = "rate-limit-exceeded",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=429,
            detail=detail,
            type=type,
            title="Too Many Requests",
            instance=instance,
            extra=extra,
        )


class ServiceUnavailableException(AppException):
    """Exception raised when a dependency is temporarily unavailable."""

    def __init__(
        self,
        detail: str,
        type: str = "service-unavailable",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            status_code=503,
            detail=detail,
            type=type,
            title="Service Unavailable",
            instance=instance,
            extra=extra,
        )


class CircuitBreakerOpenException(ServiceUnavailableException):
    """Exception raised when a circuit breaker rejects a call at the HTTP edge.

    Example:
        raise CircuitBreakerOpenException(
            detail="Payment provider circuit breaker is open",
            extra={"service": "payment", "retry_after": 30},
        )
    """

    def __init__(
        self,
        detail: str,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            detail=detail,
            type="circuit-breaker-open",
            instance=instance,
            extra=extra,
        )
