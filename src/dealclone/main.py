"""FastAPI application factory.

Creates the app with logging middleware, lifespan initialization of the
duplication service, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI

from src.dealclone.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.dealclone.api.v1.router import router as v1_router
from src.dealclone.config import get_settings
from src.dealclone.deals.duplication import create_duplication_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging and build the duplication service once."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    app.state.duplication_service = create_duplication_service(settings)
    log.info(
        "app.started",
        environment=settings.ENVIRONMENT.value,
        hubspot_configured=settings.has_access_token,
    )

    yield

    app.state.duplication_service = None
    log.info("app.stopped")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Deal Clone",
        description="Clones HubSpot deals with their associations",
        lifespan=lifespan,
    )
    app.add_middleware(LoggingMiddleware)
    app.include_router(v1_router, prefix="/v1")
    return app


app = create_app()
