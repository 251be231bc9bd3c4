"""Pydantic models for the application."""

from studytrack.models.base import (
    PaginatedResponse,
    StrictRequest,
    StrictResponse,
    SuccessResponse,
)
from studytrack.models.tracking import (
    ActivityBucket,
    GoalResponse,
    SessionResponse,
    StreakData,
    SweepResult,
    UserActivityStats,
)

__all__ = [
    "StrictRequest",
    "StrictResponse",
    "PaginatedResponse",
    "SuccessResponse",
    "ActivityBucket",
    "GoalResponse",
    "SessionResponse",
    "StreakData",
    "SweepResult",
    "UserActivityStats",
]
