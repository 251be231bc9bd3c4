"""
Study Tracking Services

Temporal state machine and progress accounting for study sessions and goals.

Modules:
- duration: Active-time accounting across pause/resume cycles
- session_machine: Session transition table and record mutations
- session_service: Session persistence and lifecycle orchestration
- progress: Goal progress engine (milestones, rewards, completion)
- goal_service: Goal management and locked progress updates
- recurrence: Successor construction for recurring goals
- sweep: Overdue/recurrence batch job
- streak_tracking: Study streaks and activity heatmaps
- analytics: Session and goal rollups
- activity_stats: Cached per-owner rollup

Usage:
    from studytrack.services.tracking import (
        SessionService,
        GoalService,
        GoalSweep,
        StreakTrackingService,
        AnalyticsService,
    )
"""

from studytrack.services.tracking.activity_stats import ActivityStatsService
from studytrack.services.tracking.analytics import AnalyticsService
from studytrack.services.tracking.duration import compute_active_minutes
from studytrack.services.tracking.goal_service import GoalService
from studytrack.services.tracking.progress import ProgressOutcome, apply_delta
from studytrack.services.tracking.session_service import SessionService
from studytrack.services.tracking.streak_tracking import StreakTrackingService
from studytrack.services.tracking.sweep import GoalSweep

__all__ = [
    "ActivityStatsService",
    "AnalyticsService",
    "compute_active_minutes",
    "GoalService",
    "ProgressOutcome",
    "apply_delta",
    "SessionService",
    "StreakTrackingService",
    "GoalSweep",
]
