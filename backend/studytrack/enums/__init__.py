"""
Centralized enum definitions for the application.

All enums are organized by domain:
- tracking.py: Session/goal lifecycle states, goal taxonomy, analytics grouping
- api.py: Rate limit categories

Usage:
    from studytrack.enums import SessionStatus, GoalStatus

    # Or import from specific module
    from studytrack.enums.tracking import SessionAction
"""

from studytrack.enums.api import RateLimitType
from studytrack.enums.tracking import (
    GoalCategory,
    GoalDifficulty,
    GoalPriority,
    GoalStatus,
    GoalType,
    GoalUnit,
    GroupBy,
    NotificationEvent,
    ProgressMode,
    RecurrenceFrequency,
    RewardCondition,
    SessionAction,
    SessionStatus,
    SessionType,
    TimePeriod,
)

__all__ = [
    "RateLimitType",
    "GoalCategory",
    "GoalDifficulty",
    "GoalPriority",
    "GoalStatus",
    "GoalType",
    "GoalUnit",
    "GroupBy",
    "NotificationEvent",
    "ProgressMode",
    "RecurrenceFrequency",
    "RewardCondition",
    "SessionAction",
    "SessionStatus",
    "SessionType",
    "TimePeriod",
]
