"""Router registry and setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from edge_service.core.settings import get_app_settings
from edge_service.features.health.router import router as health_router
from edge_service.features.metrics.router import router as metrics_router

if TYPE_CHECKING:
    from fastapi import FastAPI

    from edge_service.core.settings.app import AppSettings

logger = logging.getLogger(__name__)


def setup_routers(app: FastAPI, app_settings: AppSettings | None = None) -> None:
    """Register the operational routers.

    Business routers live in the services that import this layer; they mount
    under ``app_settings.api_prefix`` where the default rate limit rule and the
    route table apply.
    """
    settings = app_settings or get_app_settings()

    app.include_router(health_router)
    if settings.metrics_enabled:
        app.include_router(metrics_router)

    logger.info(
        "Routers configured",
        extra={"metrics_enabled": settings.metrics_enabled, "api_prefix": settings.api_prefix},
    )
