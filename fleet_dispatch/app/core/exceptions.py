"""
Custom exceptions and error handlers for consistent error responses.

Provides the dispatch error taxonomy and the global exception handlers.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict, List, Optional

logger = logging.getLogger("fleet_dispatch.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when a referenced driver, vehicle, trip, parcel or notification is absent."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InvalidStateError(AppException):
    """Raised when a transition is attempted from a state that forbids it."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class DomainValidationError(AppException):
    """Raised when required fields are missing or inconsistent."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class ConflictError(AppException):
    """Raised for duplicates or when state changed underneath a concurrent caller."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT_001",
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class PartialFailureError(AppException):
    """
    Raised when a fan-out write fails after an earlier write of the same
    transition succeeded. The transaction has been rolled back; callers
    may retry or trigger reconciliation.
    """

    def __init__(
        self,
        transition: str,
        failed_step: str,
        completed_steps: List[str],
        reason: Optional[str] = None
    ):
        self.transition = transition
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        super().__init__(
            message=f"Transition '{transition}' failed at step '{failed_step}'",
            error_code="ERR_PARTIAL_FAILURE",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={
                "transition": transition,
                "failed_step": failed_step,
                "completed_steps": self.completed_steps,
                "reason": reason,
            }
        )


class ExternalServiceError(AppException):
    """Raised by the notifier when delivery fails. Never propagated by the core."""

    def __init__(self, service: str, message: str):
        super().__init__(
            message=f"{service}: {message}",
            error_code="ERR_EXTERNAL_001",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"service": service}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    if isinstance(exc, PartialFailureError):
        logger.error("Partial failure on %s %s: %s", request.method, request.url.path, exc.details)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
