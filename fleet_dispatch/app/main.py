"""
FastAPI Application Entry Point.

This is the main application file for the Fleet Dispatch Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fleet_dispatch.app.core.config import settings
from fleet_dispatch.app.core.observability import ObservabilityMiddleware, configure_logging
from fleet_dispatch.app.core.redis_client import close_redis, ping_redis
from fleet_dispatch.app.api.v1.router import router as api_v1_router
from fleet_dispatch.app.db.session import engine, Base
from fleet_dispatch.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from fleet_dispatch.app.models.driver import Driver
from fleet_dispatch.app.models.vehicle import Vehicle
from fleet_dispatch.app.models.parcel import Parcel
from fleet_dispatch.app.models.trip import Trip
from fleet_dispatch.app.models.trip_destination import TripDestination
from fleet_dispatch.app.models.ongoing_trip import OngoingTrip
from fleet_dispatch.app.models.notification import Notification
from fleet_dispatch.app.models.audit_log import AuditLog
from fleet_dispatch.app.models.dlq import DeadLetterQueue

configure_logging()
logger = logging.getLogger("fleet_dispatch")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup and closes connections on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s started", settings.app_name)
    yield
    await close_redis()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Trip assignment and notification backend for fleet logistics",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Fleet Dispatch Backend API",
        "docs": "/docs",
        "health": "/health",
    }
