"""
Rate Limiting Middleware

Prevents abuse and ensures fair resource usage using SlowAPI.

Usage:
    from studytrack.middleware.rate_limit import limiter
    from studytrack.enums import RateLimitType
    from studytrack.config import settings

    @router.post("/sweep")
    @limiter.limit(settings.get_rate_limit(RateLimitType.BATCH))
    async def trigger_sweep(request: Request, ...):
        ...

Rate limit configurations (from settings):
- DEFAULT: Applied to every endpoint by the middleware (100/minute)
- WRITE: Session transitions and goal progress (60/minute)
- ANALYTICS: Analytics endpoints (30/minute)
- BATCH: Manual sweep trigger (5/minute)
"""

import logging

from fastapi import FastAPI, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from studytrack.config import settings
from studytrack.enums import RateLimitType

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """
    Get client identifier for rate limiting.

    Limits are per owner when the owner header is present, otherwise per
    client address (X-Forwarded-For first when behind a proxy).

    Args:
        request: FastAPI request object

    Returns:
        Owner id or client IP address
    """
    owner_id = request.headers.get("X-Owner-Id")
    if owner_id:
        return f"owner:{owner_id}"

    # Check for forwarded header (behind proxy/load balancer)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain (original client)
        return forwarded_for.split(",")[0].strip()

    # Fall back to direct client address
    return get_remote_address(request)


# Initialize limiter with default key function
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[settings.get_rate_limit(RateLimitType.DEFAULT)],
    enabled=settings.RATE_LIMITING_ENABLED,
)


def setup_rate_limiting(app: FastAPI, enabled: bool = True) -> None:
    """
    Configure rate limiting on the FastAPI app.

    Args:
        app: FastAPI application instance
        enabled: Whether to enable rate limiting
    """
    # Store limiter in app state (decorated routes look it up there)
    app.state.limiter = limiter

    if not enabled:
        limiter.enabled = False
        logger.info("Rate limiting disabled")
        return

    # Add exception handler for rate limit exceeded
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Add middleware
    app.add_middleware(SlowAPIMiddleware)

    logger.info("Rate limiting enabled")

