"""
FastAPI application entrypoint for the recruitsync service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from recruitsync import __version__
from recruitsync.api.routes import router as api_router
from recruitsync.core.config import get_settings
from recruitsync.core.logging import configure_logging
from recruitsync.dependencies.clients import get_database

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    get_database()
    logger.info(
        "recruitsync started",
        extra={
            "environment": settings.environment,
            "data_source_mode": settings.data_source_mode,
        },
    )
    yield
    logger.info("recruitsync stopped")


def create_app() -> FastAPI:
    """Build the API app; the schema is created on startup, not at import."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="recruitsync",
        version=__version__,
        summary="External identity and synchronization service for staffing teams.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
