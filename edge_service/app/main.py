"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from edge_service.app.exception_handlers import configure_exception_handlers
from edge_service.app.lifespan import lifespan
from edge_service.app.middleware import configure_middleware
from edge_service.app.router import setup_routers
from edge_service.core.settings import get_settings


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    app_settings = settings.app

    app = FastAPI(
        title=app_settings.title,
        version=app_settings.version,
        debug=app_settings.debug,
        lifespan=lifespan,
    )

    # Exception handlers first, then middleware, then routes.
    configure_exception_handlers(app)
    configure_middleware(app, settings)
    setup_routers(app, app_settings)

    return app


# Application instance for uvicorn
app = create_app()
