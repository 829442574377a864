"""
Global Error Handling

This module defines the domain exception hierarchy for the taxonomy engine
and the application-wide exception handlers registered on the FastAPI app.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- Domain errors carry a human-readable reason that is safe to return
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("taxonomy.errors")


# ---------------------------------------------------------------------
# Domain Exceptions
# ---------------------------------------------------------------------

class TaxonomyError(Exception):
    """Base class for expected, reportable engine failures."""

    code = "taxonomy_error"
    status_code = 400


class TopicNotFoundError(TaxonomyError):
    """Raised when a referenced topic node does not exist."""

    code = "topic_not_found"
    status_code = 404


class InvalidHierarchyError(TaxonomyError):
    """Raised when an operation would violate the four-level tree shape."""

    code = "invalid_hierarchy"
    status_code = 422


class BatchFormatError(TaxonomyError):
    """Raised when an ingestion batch cannot be parsed."""

    code = "invalid_batch"
    status_code = 422


class ChainNotFoundError(TaxonomyError):
    """Raised when a resolution action targets an unknown item or chain."""

    code = "chain_not_found"
    status_code = 404


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def taxonomy_error_handler(
    request: Request,
    exc: TaxonomyError,
) -> JSONResponse:
    """
    Map a domain error to a 4xx response carrying its reason.
    """
    logger.warning(
        "Taxonomy error during request %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": exc.code,
        "detail": str(exc),
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
    )


async def embedding_error_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Map an embedding provider failure to 502, or 503 once quota retries
    are exhausted.
    """
    retryable = getattr(exc, "retryable", False)
    logger.error(
        "Embedding provider failure during request %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": "embedding_unavailable" if retryable else "embedding_failed",
        "detail": str(exc),
    }

    return JSONResponse(
        status_code=503 if retryable else 502,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    This handler should be registered with FastAPI as the final safety net
    for any exception not otherwise handled by route-level or framework-level
    handlers.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
