"""
Error Handling

Provides consistent, informative error responses across the API and the
typed failures raised by the tracking core.

Features:
- Standardized error response format
- Correlation IDs for log tracking
- Sanitized responses (hides internal details in production)
- Custom exception classes for different error types

Error taxonomy raised by the core:
- InvalidTransition: state machine move not allowed from the current state
- ConflictingActiveSession: owner already has a planned/active/paused session
- InvariantViolation: computed state breaks a data invariant; the mutation is rejected
- NotFoundError: record missing or outside the caller's owner scope

These carry structured details (entity, id, current state, attempted
action) that are always included in the response body so clients can
render a precise message.

Usage:
    from studytrack.middleware.error_handling import setup_error_handling, NotFoundError

    setup_error_handling(app, debug=settings.DEBUG)

    raise NotFoundError("session", session_id)
"""

import logging
import traceback
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# =============================================================================
# Error Response Schema
# =============================================================================


class ErrorResponse(BaseModel):
    """Standardized error response."""

    error: str  # Error code (e.g., "invalid_transition")
    message: str  # Human-readable message
    error_id: str  # For log correlation
    details: Optional[dict] = None  # Additional context
    timestamp: datetime


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Database connection failed", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"
    # Whether details are safe to return outside debug mode
    expose_details: bool = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class ValidationError(ServiceError):
    """
    Data validation error.

    Raised when input data fails validation beyond what the request
    schema can express.
    """

    status_code = 422
    error_code = "validation_error"
    expose_details = True


class NotFoundError(ServiceError):
    """
    Resource not found error.

    Raised when a session, goal or milestone doesn't exist or belongs to
    another owner. Both cases look identical to the caller.
    """

    status_code = 404
    error_code = "not_found"
    expose_details = True

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity.capitalize()} {entity_id} not found",
            details={"entity": entity, "entity_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(ServiceError):
    """
    State machine move not permitted from the current state.

    Never retried automatically.
    """

    status_code = 409
    error_code = "invalid_transition"
    expose_details = True

    def __init__(
        self,
        entity: str,
        entity_id: Any,
        current_state: str,
        action: str,
        reason: Optional[str] = None,
    ):
        message = f"Cannot {action} {entity} {entity_id} in state '{current_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            details={
                "entity": entity,
                "entity_id": entity_id,
                "current_state": current_state,
                "action": action,
            },
        )
        self.entity = entity
        self.entity_id = entity_id
        self.current_state = current_state
        self.action = action


class ConflictingActiveSession(ServiceError):
    """
    Owner already has a planned, active or paused session.

    The caller must complete or cancel that session before retrying.
    """

    status_code = 409
    error_code = "conflicting_active_session"
    expose_details = True

    def __init__(self, owner_id: str, open_session_id: Optional[int] = None):
        message = "Owner already has an open session; complete or cancel it first"
        if open_session_id is not None:
            message = f"{message} (session {open_session_id})"
        super().__init__(
            message,
            details={"owner_id": owner_id, "open_session_id": open_session_id},
        )
        self.owner_id = owner_id
        self.open_session_id = open_session_id


class InvariantViolation(ServiceError):
    """
    Data invariant broken.

    Raised when a computed state would break a data invariant (negative
    duration inputs, overlapping interruptions, progress out of bounds).
    The mutation is rejected rather than partially applied.
    """

    status_code = 500
    error_code = "invariant_violation"
    expose_details = True

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, details=details)
        logger.error(f"Invariant violation: {message}", extra={"details": details})


# =============================================================================
# Error Handling Middleware
# =============================================================================


def _service_error_content(
    e: ServiceError, error_id: str, debug: bool
) -> dict[str, Any]:
    return {
        "error": e.error_code,
        "message": e.message,
        "error_id": error_id,
        "details": e.details if (debug or e.expose_details) else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    - Catches unhandled exceptions
    - Logs with correlation ID
    - Returns consistent error format
    - Hides internal details in production
    """

    def __init__(self, app, debug: bool = False):
        """
        Initialize middleware.

        Args:
            app: FastAPI/Starlette application
            debug: Whether to include stack traces in responses
        """
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any errors."""
        error_id = str(uuid4())[:8]

        try:
            response = await call_next(request)
            return response

        except HTTPException:
            # Let FastAPI handle HTTP exceptions
            raise

        except ServiceError as e:
            logger.error(
                f"[{error_id}] {e.error_code}: {e.message}",
                extra={
                    "error_id": error_id,
                    "error_code": e.error_code,
                    "path": request.url.path,
                    "method": request.method,
                    "details": e.details,
                },
            )
            return JSONResponse(
                status_code=e.status_code,
                content=_service_error_content(e, error_id, self.debug),
            )

        except Exception as e:
            # Log full traceback for unexpected errors
            logger.error(
                f"[{error_id}] Unhandled error: {type(e).__name__}: {e}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                    "traceback": traceback.format_exc(),
                },
            )

            # Return sanitized response
            content = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "error_id": error_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

            # Include details in debug mode
            if self.debug:
                content["details"] = {
                    "exception": type(e).__name__,
                    "message": str(e),
                    "traceback": traceback.format_exc(),
                }

            return JSONResponse(status_code=500, content=content)


# =============================================================================
# Setup Function
# =============================================================================


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    ServiceErrors are rendered by an exception handler so they are handled
    inside the routing layer; the middleware is the catch-all for anything
    else.

    Args:
        app: FastAPI application instance
        debug: Whether to include stack traces in responses
    """

    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        error_id = str(uuid4())[:8]
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            f"[{error_id}] {exc.error_code}: {exc.message}",
            extra={
                "error_id": error_id,
                "path": request.url.path,
                "method": request.method,
                "details": exc.details,
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_service_error_content(exc, error_id, debug),
        )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")


# =============================================================================
# Helper Functions
# =============================================================================


def handle_endpoint_errors(operation: str) -> Callable:
    """
    Decorator for route handlers.

    ServiceErrors and HTTPExceptions pass through untouched so they keep
    their status codes; anything else is logged with the operation name
    and converted into a 500.

    Args:
        operation: Human-readable operation name used in log messages.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except (HTTPException, ServiceError):
                raise
            except Exception as e:
                logger.exception(f"{operation} failed: {e}")
                raise HTTPException(
                    status_code=500, detail=f"{operation} failed"
                ) from e

        return wrapper

    return decorator
