"""
Middleware Package

Provides FastAPI middleware for:
- Rate limiting
- Error handling

Rate limiting usage:
    from studytrack.middleware import limiter
    from studytrack.enums import RateLimitType
    from studytrack.config import settings

    @limiter.limit(settings.get_rate_limit(RateLimitType.BATCH))
    async def my_endpoint(request: Request):
        ...
"""

from studytrack.middleware.error_handling import (
    ConflictingActiveSession,
    ErrorHandlingMiddleware,
    InvalidTransition,
    InvariantViolation,
    NotFoundError,
    ServiceError,
    ValidationError,
    handle_endpoint_errors,
    setup_error_handling,
)
from studytrack.middleware.rate_limit import limiter, setup_rate_limiting

__all__ = [
    "setup_rate_limiting",
    "limiter",
    "ErrorHandlingMiddleware",
    "setup_error_handling",
    "handle_endpoint_errors",
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransition",
    "ConflictingActiveSession",
    "InvariantViolation",
]
