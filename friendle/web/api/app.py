"""FastAPI application setup for the Friendle storage service.

This module creates and configures the FastAPI application with lifespan
management for the database, request tracking, CORS and uniform error
responses.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from friendle import __version__
from friendle.shared.config import Settings, get_settings
from friendle.shared.database import close_database, init_database
from friendle.shared.signing import SIGNATURE_HEADER
from friendle.web.api.exceptions import APIError
from friendle.web.api.routers.puzzles import router as puzzles_router
from friendle.web.api.routers.stats import router as stats_router
from friendle.web.api.schemas import (
    ErrorDetail,
    ErrorResponse,
    HealthResponse,
    ValidationErrorResponse,
)
from friendle.web.crud import DatabaseOperationError, NotFoundError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage FastAPI application lifespan.

    Opens the database engine on startup and disposes of it on shutdown.

    Args:
        app: FastAPI application instance

    Yields:
        None: Control to the application
    """
    settings = get_settings()

    try:
        await init_database(settings.database_url)

        if not settings.webhook_secret:
            logger.warning("WEBHOOK_SECRET is not set; signed ingestion will be refused")

        app.state.settings = settings

        yield

    finally:
        await close_database()


# Get settings for configuration
settings = get_settings()

# Create FastAPI application
api = FastAPI(
    title="Friendle Storage API",
    description="Signed puzzle ingestion, puzzle reads and usage counters for Friendle",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development else None,
    redoc_url=None,
)


@api.middleware("http")
async def add_request_id_middleware(request: Request, call_next):
    """Add request ID to request state for tracking."""
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)

    response.headers["x-request-id"] = request_id
    return response


api.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.allowed_origin or "*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", SIGNATURE_HEADER, "Authorization"],
)


def _error_response(
    request: Request, status_code: int, detail: str, error_type: str
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    response = ErrorResponse(
        detail=detail,
        type=error_type,
        timestamp=datetime.now(timezone.utc),
        request_id=request_id,
    )
    return JSONResponse(status_code=status_code, content=response.model_dump())


# Exception handlers
@api.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors.

    Args:
        request: FastAPI request object
        exc: Validation exception

    Returns:
        JSONResponse: Formatted validation error response
    """
    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))

    errors = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        errors.append(
            ErrorDetail(code=error["type"], message=error["msg"], field=field_path)
        )

    logger.warning(
        "Validation error",
        extra={
            "request_id": request_id,
            "url": str(request.url),
            "method": request.method,
            "errors": [error.model_dump() for error in errors],
        },
    )

    response = ValidationErrorResponse(
        detail="Request validation failed",
        errors=errors,
        timestamp=datetime.now(timezone.utc),
        request_id=request_id,
    )

    return JSONResponse(status_code=422, content=response.model_dump())


@api.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Render signature, credential and payload errors with their own status."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"Request rejected: {exc.detail}",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "url": str(request.url),
            "method": request.method,
        },
    )
    return _error_response(request, exc.status_code, exc.detail, exc.error_type)


@api.exception_handler(NotFoundError)
async def not_found_exception_handler(
    request: Request, exc: NotFoundError
) -> JSONResponse:
    """Handle NotFoundError exceptions.

    Args:
        request: FastAPI request object
        exc: NotFoundError exception

    Returns:
        JSONResponse: 404 error response
    """
    logger.info(
        "Resource not found",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "url": str(request.url),
            "method": request.method,
            "error": str(exc),
        },
    )
    return _error_response(request, 404, str(exc), "not_found_error")


@api.exception_handler(DatabaseOperationError)
async def database_exception_handler(
    request: Request, exc: DatabaseOperationError
) -> JSONResponse:
    """Handle DatabaseOperationError exceptions.

    Args:
        request: FastAPI request object
        exc: DatabaseOperationError exception

    Returns:
        JSONResponse: 500 error response
    """
    logger.error(
        f"Database operation error: {exc}",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "url": str(request.url),
            "method": request.method,
            "error": str(exc),
        },
    )

    # Don't expose internal storage errors in production
    if settings.verbose_errors_enabled and settings.is_development:
        detail = f"Database error: {str(exc)}"
    else:
        detail = "Internal server error"

    return _error_response(request, 500, detail, "database_error")


@api.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions globally.

    Args:
        request: FastAPI request object
        exc: Exception that was raised

    Returns:
        JSONResponse: Error response
    """
    logger.exception(
        "Unhandled exception",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "url": str(request.url),
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
    )

    if settings.verbose_errors_enabled and settings.is_development:
        detail = f"Internal server error: {str(exc)}"
    else:
        detail = "Internal server error"

    return _error_response(request, 500, detail, "internal_error")


# Include routers
api.include_router(puzzles_router)

api.include_router(stats_router)


# Health check endpoint
@api.get("/health", tags=["Health"], response_model=HealthResponse)
async def health_check(
    current_settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Health check endpoint for monitoring.

    Returns:
        HealthResponse: Configuration summary
    """
    return HealthResponse(
        has_webhook_secret=bool(current_settings.webhook_secret),
        allowed_origin=current_settings.allowed_origin or "*",
        version=__version__,
    )


def main() -> None:
    import uvicorn

    uvicorn.run("friendle.web.api.app:api", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
