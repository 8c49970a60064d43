"""
Shared HTTP error classes and utilities for all Huddle services.

Provides:
- Base exception class for API errors
- Common subclasses (Validation, Auth, Permission, NotFound, Conflict, Provider)
- Shared error response model
- Utility to convert exceptions to error responses
- FastAPI exception handler registration

Common Usage Patterns:
=====================

Basic Exception Usage:
>>> from services.common.http_errors import ValidationError, NotFoundError
>>>
>>> # Validation error with field context
>>> error = ValidationError("Duration must be positive", field="duration_minutes", value=0)
>>>
>>> # Resource not found
>>> error = NotFoundError("Meeting", "mtg-123")

FastAPI Integration:
>>> from fastapi import FastAPI
>>> from services.common.http_errors import register_huddle_exception_handlers
>>>
>>> app = FastAPI()
>>> register_huddle_exception_handlers(app)

Error Code Taxonomy:
===================
- VALIDATION_* : Input validation errors (422)
- AUTH_* : Authentication errors (401)
- ACCESS_* : Authorization/permission errors (403)
- NOT_FOUND : Resource not found (404)
- ALREADY_EXISTS, STALE_STATE, SCHEDULE_CONFLICT : State conflicts (409)
- PROVIDER_* : External provider integration errors (502)
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from services.common.logging_config import get_logger, request_id_var

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """
    Standardized error codes for all Huddle services.

    Error codes are organized by category and follow the ALL_CAPS naming convention.
    """

    # ==========================================
    # GENERAL ERRORS (4xx client errors)
    # ==========================================
    VALIDATION_FAILED = "VALIDATION_FAILED"  # HTTP 422 - Input validation failed
    NOT_FOUND = "NOT_FOUND"  # HTTP 404 - Resource not found
    ALREADY_EXISTS = "ALREADY_EXISTS"  # HTTP 409 - Resource already exists

    # ==========================================
    # STATE ERRORS (409 Conflict)
    # ==========================================
    STALE_STATE = "STALE_STATE"  # Resource is no longer in the required state
    SCHEDULE_CONFLICT = "SCHEDULE_CONFLICT"  # Lost a race to schedule a meeting

    # ==========================================
    # AUTHENTICATION ERRORS (401 Unauthorized)
    # ==========================================
    AUTH_FAILED = "AUTH_FAILED"  # Generic authentication failure
    TOKEN_INVALID = "TOKEN_INVALID"  # Token format or value invalid

    # ==========================================
    # AUTHORIZATION ERRORS (403 Forbidden)
    # ==========================================
    ACCESS_DENIED = "ACCESS_DENIED"  # Insufficient permissions

    # ==========================================
    # PROVIDER ERRORS (502 Bad Gateway)
    # ==========================================
    PROVIDER_ERROR = "PROVIDER_ERROR"  # Generic external provider error
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"  # External provider not available


class ErrorResponse(BaseModel):
    """
    Standardized error response model for all Huddle services.

    Attributes:
        type: Error type categorization (e.g., "validation_error", "stale_state")
        message: Human-readable error message for end users
        details: Optional dictionary containing additional error context and metadata
        timestamp: ISO 8601 timestamp of when the error occurred
        request_id: Unique identifier for tracing and debugging purposes
    """

    type: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: str
    request_id: str


def _current_request_id() -> str:
    request_id = request_id_var.get()
    if request_id and request_id != "uninitialized":
        return request_id
    return str(uuid.uuid4())


class HuddleAPIException(Exception):
    """
    Base exception class for all Huddle API errors.

    Carries everything needed to render a standardized ErrorResponse: the
    message, structured details, a category, an ErrorCode and the HTTP status.
    The request ID is taken from the logging context when one is active so
    that error responses correlate with request logs.

    Example:
        >>> error = HuddleAPIException(
        ...     message="Meeting was removed",
        ...     details={"meeting_id": "mtg-1"},
        ...     error_type="gone",
        ...     status_code=410
        ... )
        >>> error.to_error_response().type
        'gone'
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_type: str = "internal_error",
        error_code: Optional[ErrorCode] = None,
        status_code: int = 500,
        request_id: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        self.error_type = error_type
        self.error_code = error_code
        self.status_code = status_code
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.request_id = request_id or _current_request_id()
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse, including the error code in details."""
        details = {
            **self.details,
            **({"code": self.error_code.value} if self.error_code else {}),
        }
        return ErrorResponse(
            type=self.error_type,
            message=self.message,
            details=details if details else None,
            timestamp=self.timestamp,
            request_id=self.request_id,
        )


class ValidationError(HuddleAPIException):
    """
    Exception for input validation errors (HTTP 422).

    Examples:
        >>> error = ValidationError("Duration is required")
        >>> error = ValidationError(
        ...     "Duration must be positive", field="duration_minutes", value=0
        ... )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        validation_details = details or {}
        if field:
            validation_details["field"] = field
        if value is not None:
            validation_details["value"] = str(value)
        super().__init__(
            message=message,
            details=validation_details,
            error_type="validation_error",
            error_code=ErrorCode.VALIDATION_FAILED,
            status_code=422,
        )
        self.field = field
        self.value = value


class NotFoundError(HuddleAPIException):
    """
    Exception for resource not found errors (HTTP 404).

    Examples:
        >>> NotFoundError("Meeting", "mtg-123").message
        'Meeting mtg-123 not found'
        >>> NotFoundError("Invitation").message
        'Invitation not found'
    """

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        if identifier:
            message = f"{resource} {identifier} not found"
        else:
            message = f"{resource} not found"
        notfound_details = {
            **(details or {}),
            "resource": resource,
            "identifier": identifier,
        }
        super().__init__(
            message=message,
            details=notfound_details,
            error_type="not_found",
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
        )
        self.resource = resource
        self.identifier = identifier


class AuthError(HuddleAPIException):
    """Exception for authentication errors (HTTP 401 by default)."""

    def __init__(
        self,
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.AUTH_FAILED,
        status_code: int = 401,
    ):
        super().__init__(
            message=message,
            details=details,
            error_type="auth_error",
            error_code=code,
            status_code=status_code,
        )


class PermissionDeniedError(HuddleAPIException):
    """Exception for an authenticated caller acting outside its rights (HTTP 403)."""

    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            details=details,
            error_type="permission_denied",
            error_code=ErrorCode.ACCESS_DENIED,
            status_code=403,
        )


class ConflictError(HuddleAPIException):
    """
    Exception for requests that conflict with the current resource state (HTTP 409).

    Subclasses pick the error type and code; the caller is expected to reload
    the resource and decide again rather than retry the same request.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_type: str = "conflict",
        code: ErrorCode = ErrorCode.ALREADY_EXISTS,
    ):
        super().__init__(
            message=message,
            details=details,
            error_type=error_type,
            error_code=code,
            status_code=409,
        )


class ProviderError(HuddleAPIException):
    """
    Exception for failures of an external provider such as a calendar backend (HTTP 502).

    Example:
        >>> error = ProviderError(
        ...     message="Calendar lookup failed",
        ...     provider="office",
        ...     response_body='{"error": "timeout"}'
        ... )
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.PROVIDER_ERROR,
        status_code: int = 502,
        response_body: Optional[str] = None,
    ):
        provider_details = details or {}
        if provider:
            provider_details["provider"] = provider
        if response_body:
            provider_details["response_body"] = response_body
        super().__init__(
            message=message,
            details=provider_details,
            error_type="provider_error",
            error_code=code,
            status_code=status_code,
        )
        self.provider = provider


def exception_to_response(exc: Exception) -> ErrorResponse:
    """
    Convert any exception to a standardized ErrorResponse Pydantic model.

    1. HuddleAPIException: Uses the built-in to_error_response() method
    2. HTTPException: Extracts detail information and normalizes format
    3. Generic Exception: Creates a safe internal error response

    Examples:
        >>> exception_to_response(ValidationError("Invalid", field="title")).type
        'validation_error'
        >>> exception_to_response(ValueError("boom")).details["error_type"]
        'ValueError'
    """
    if isinstance(exc, HuddleAPIException):
        return exc.to_error_response()
    elif isinstance(exc, HTTPException):
        if isinstance(exc.detail, dict):
            message = (
                exc.detail.get("message")
                or exc.detail.get("detail")
                or exc.detail.get("error")
                or str(exc.detail)
            )
        else:
            message = str(exc.detail)
        return ErrorResponse(
            type="http_error",
            message=message,
            details={"detail": exc.detail, "status_code": exc.status_code},
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=_current_request_id(),
        )
    else:
        return ErrorResponse(
            type="internal_error",
            message=str(exc),
            details={"error_type": type(exc).__name__},
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=_current_request_id(),
        )


def register_huddle_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers for FastAPI applications.

    1. HuddleAPIException: returns the exception's status code and details
    2. HTTPException: converts FastAPI HTTP exceptions to the standard format
    3. Exception: converts anything unhandled into a 500 internal error response

    Call once during application initialization, right after creating the app.
    """
    from fastapi import Request
    from fastapi.responses import JSONResponse

    @app.exception_handler(HuddleAPIException)
    async def huddle_api_exception_handler(
        request: Request, exc: HuddleAPIException
    ) -> JSONResponse:
        error_response = exc.to_error_response()
        log_level = "error" if exc.status_code >= 500 else "warning"
        getattr(logger, log_level)(
            f"HTTP {exc.status_code} {exc.error_type}: {exc.message}",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
        )
        return JSONResponse(
            status_code=exc.status_code, content=error_response.model_dump()
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        error_response = exception_to_response(exc)
        return JSONResponse(
            status_code=exc.status_code, content=error_response.model_dump()
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        error_response = exception_to_response(exc)
        return JSONResponse(status_code=500, content=error_response.model_dump())
