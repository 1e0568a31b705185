"""Shared response schemas."""

from __future__ import annotations

from edge_service.core.schemas.problem_details import (
    FieldError,
    ProblemDetails,
    ValidationProblemDetails,
)

__all__ = ["FieldError", "ProblemDetails", "ValidationProblemDetails"]
