"""ASGI middleware."""

from __future__ import annotations

from typing import TYPE_CHECKING

from edge_service.app.middleware.rate_limit import RateLimitMiddleware

if TYPE_CHECKING:
    from fastapi import FastAPI

    from edge_service.core.settings import Settings

__all__ = ["RateLimitMiddleware", "configure_middleware"]


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Install middleware in order.

    The rate limiter runs before routing, so over-quota requests never reach
    the response cache or the handler.
    """
    if settings.ratelimit.enabled:
        app.add_middleware(RateLimitMiddleware, settings=settings.ratelimit)
