"""
Taxonomy Service Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .core.errors import (
    TaxonomyError,
    embedding_error_handler,
    taxonomy_error_handler,
    unhandled_exception_handler,
)
from .embeddings.embedder import EmbeddingError

from .api import (
    health_routes,
    topic_routes,
    ingestion_routes,
)


logger = logging.getLogger("taxonomy.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Fail-fast validation at application startup, cleanup at shutdown.

    This ensures that critical configuration is present before the first
    request is ever served.
    """
    logging.basicConfig(level=settings.log_level.upper())
    logger.info("Starting semantic-taxonomy")

    if not settings.gemini_api_key.get_secret_value():
        raise RuntimeError("GEMINI_API_KEY is not configured")

    logger.info("Configuration validated successfully")
    yield

    from .db.session import async_engine

    await async_engine.dispose()
    logger.info("Shutting down semantic-taxonomy")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory pattern allows:
    - Clean test instantiation
    - Controlled dependency overrides in pytest

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="semantic-taxonomy",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(TaxonomyError, taxonomy_error_handler)
    app.add_exception_handler(EmbeddingError, embedding_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(topic_routes.router)
    app.include_router(ingestion_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
