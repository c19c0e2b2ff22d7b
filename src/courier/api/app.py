"""FastAPI application for Courier."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from courier import __version__
from courier.config import Settings, load_settings
from courier.exceptions import (
    ConflictError,
    CourierError,
    DeliveryStateError,
    NotFoundError,
    ValidationError,
)
from courier.logging import configure_logging, get_logger
from courier.service import WebhookService

from .router import router, set_service

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    service: WebhookService | None = None,
) -> FastAPI:
    """Create a FastAPI application.

    Args:
        settings: Optional settings. Uses environment if None.
        service: Optional pre-built service (e.g. with a stub transport).
            Built from `settings` on startup if None.

    Returns:
        Configured FastAPI application.

    Example:
        ```python
        from courier.api import create_app

        app = create_app()
        # Run with: uvicorn courier.api:app --reload
        ```
    """
    if settings is None:
        settings = service.settings if service is not None else load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Build the service, start the retry sweep, and tear both down on exit."""
        configure_logging(level=settings.log_level, format=settings.log_format)
        logger.info(
            "Starting Courier API",
            log_level=settings.log_level,
            retry_enabled=settings.retry_enabled,
        )

        courier = service or WebhookService.create(settings)
        await courier.start()
        set_service(courier)

        yield

        await courier.close()
        set_service(None)
        logger.info("Courier API stopped")

    app = FastAPI(
        title="Courier",
        description="Signed, retried webhook delivery for domain events.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Register exception handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        """Handle validation errors with 400 status."""
        logger.warning(
            "Validation error", field=exc.field, error=exc.message, path=str(request.url)
        )
        return JSONResponse(status_code=400, content=exc.to_dict())

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        """Handle not found errors with 404 status."""
        logger.info(
            "Resource not found",
            resource_type=exc.resource_type,
            resource_id=exc.resource_id,
            path=str(request.url),
        )
        return JSONResponse(status_code=404, content=exc.to_dict())

    @app.exception_handler(DeliveryStateError)
    async def delivery_state_error_handler(
        request: Request, exc: DeliveryStateError
    ) -> JSONResponse:
        """Handle operations not allowed in the delivery's status with 409."""
        logger.info(
            "Delivery state conflict",
            delivery_id=exc.delivery_id,
            delivery_status=exc.status,
            path=str(request.url),
        )
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(ConflictError)
    async def conflict_error_handler(request: Request, exc: ConflictError) -> JSONResponse:
        """Handle concurrent modification with 409 status."""
        logger.warning("Conflict", error=exc.message, path=str(request.url))
        return JSONResponse(status_code=409, content=exc.to_dict())

    @app.exception_handler(CourierError)
    async def courier_error_handler(request: Request, exc: CourierError) -> JSONResponse:
        """Handle all other Courier errors with 500 status."""
        logger.error("Courier error", error=exc.message, code=exc.code, path=str(request.url))
        return JSONResponse(status_code=500, content=exc.to_dict())

    app.include_router(router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
