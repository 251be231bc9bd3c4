"""
API-related enums.

Defines enums for rate limiting and other API concerns.
"""

from enum import Enum


class RateLimitType(str, Enum):
    """
    Rate limit categories for different endpoint types.

    Each category has a corresponding rate limit configured in settings.
    Usage:
        from studytrack.enums import RateLimitType
        from studytrack.config import settings

        limit = settings.get_rate_limit(RateLimitType.WRITE)
    """

    # General API endpoints
    DEFAULT = "default"

    # State-changing endpoints (transitions, progress updates)
    WRITE = "write"

    # Analytics endpoints
    ANALYTICS = "analytics"

    # Batch operations (manual sweep trigger)
    BATCH = "batch"
