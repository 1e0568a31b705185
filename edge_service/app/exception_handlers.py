"""Global exception handlers for FastAPI application."""

from __future__ import annotations

import logging
import math
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from edge_service.core.exceptions import AppException, RateLimitException, default_title
from edge_service.core.schemas.problem_details import (
    FieldError,
    ProblemDetails,
    ValidationProblemDetails,
)
from edge_service.infra.metrics import tracking
from edge_service.infra.resilience.circuit_breaker import CircuitOpenError

logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _create_problem_detail(
    status_code: int,
    detail: str,
    type_: str = "about:blank",
    title: str | None = None,
    instance: str | None = None,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create an RFC 7807 Problem Details body, with ``extra`` merged in."""
    problem = ProblemDetails(
        type=type_,
        title=title or default_title(status_code),
        status=status_code,
        detail=detail,
        instance=instance,
    )
    response_data = problem.model_dump(exclude_none=True)
    if extra:
        response_data.update(extra)
    return response_data


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Render AppException subclasses as problem details."""
    request_id = _get_request_id(request)

    tracking.track_error(
        error_type=exc.type,
        endpoint=request.url.path,
        status_code=exc.status_code,
    )

    logger.warning(
        "Application exception occurred",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": exc.type,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )

    problem_data = _create_problem_detail(
        status_code=exc.status_code,
        detail=exc.detail,
        type_=exc.type,
        title=exc.title,
        instance=exc.instance or str(request.url),
        extra=exc.extra,
    )
    if request_id:
        problem_data["request_id"] = request_id

    headers = {}
    if exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=problem_data,
        headers=headers or None,
    )


async def rate_limit_exception_handler(request: Request, exc: RateLimitException) -> JSONResponse:
    """Render a handler-level limit in the same shape the middleware uses."""
    tracking.track_error(
        error_type=exc.type,
        endpoint=request.url.path,
        status_code=exc.status_code,
    )

    retry_after = exc.retry_after or 0
    headers = {"Retry-After": str(retry_after)}
    if "limit" in exc.extra:
        headers["X-RateLimit-Limit"] = str(exc.extra["limit"])
        headers["X-RateLimit-Remaining"] = str(exc.extra.get("remaining", 0))
    if "reset" in exc.extra:
        headers["X-RateLimit-Reset"] = str(exc.extra["reset"])

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail, "retryAfter": retry_after},
        headers=headers,
    )


async def circuit_open_exception_handler(request: Request, exc: CircuitOpenError) -> JSONResponse:
    """Map a breaker rejection nobody handled to 503 with Retry-After.

    Handlers that want dependency-specific messaging catch CircuitOpenError
    themselves; this is the fallback.
    """
    retry_after = max(1, math.ceil(exc.retry_after))

    tracking.track_error(
        error_type="circuit-breaker-open",
        endpoint=request.url.path,
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    logger.warning(
        "Circuit breaker rejected request",
        extra={
            "request_id": _get_request_id(request),
            "path": request.url.path,
            "method": request.method,
            "circuit": exc.name,
            "retry_after": retry_after,
        },
    )

    problem_data = _create_problem_detail(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"{exc.name} is temporarily unavailable",
        type_="circuit-breaker-open",
        instance=str(request.url),
        extra={"service": exc.name, "retry_after": retry_after},
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=problem_data,
        headers={"Retry-After": str(retry_after)},
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation errors with field-level detail."""
    validation_errors = [
        FieldError(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            type=error["type"],
            value=error.get("input"),
        )
        for error in exc.errors()
    ]

    tracking.track_error(
        error_type="validation-error",
        endpoint=request.url.path,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )
    logger.warning(
        "Request validation failed",
        extra={
            "request_id": _get_request_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_count": len(validation_errors),
        },
    )

    problem = ValidationProblemDetails(
        type="validation-error",
        title="Validation Error",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Request validation failed for {len(validation_errors)} field(s)",
        instance=str(request.url),
        errors=validation_errors,
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=problem.model_dump(mode="json", exclude_none=True),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log with traceback and return a generic 500."""
    request_id = _get_request_id(request)

    tracking.track_unhandled_exception(
        exception_type=type(exc).__name__,
        endpoint=request.url.path,
    )
    logger.error(
        "Unexpected exception occurred",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        },
        exc_info=exc,
    )

    # Internal details stay in the logs.
    problem_data = _create_problem_detail(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing your request",
        type_="internal-error",
        title="Internal Server Error",
        instance=str(request.url),
    )
    if request_id:
        problem_data["request_id"] = request_id

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=problem_data,
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """Register the problem-details exception handlers on ``app``."""
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RateLimitException,
        rate_limit_exception_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        CircuitOpenError,
        circuit_open_exception_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers configured")
