"""
Study Tracking Enums

Defines enums for the session state machine, goal lifecycle and taxonomy,
progress updates, recurrence and analytics grouping.
"""

from enum import Enum


class SessionStatus(str, Enum):
    """
    Study session lifecycle states.

    State transitions:
    - PLANNED → ACTIVE (start)
    - ACTIVE → PAUSED (pause)
    - PAUSED → ACTIVE (resume)
    - ACTIVE | PAUSED → COMPLETED (complete)
    - PLANNED | ACTIVE | PAUSED → CANCELLED (cancel)

    COMPLETED and CANCELLED are terminal.
    """

    PLANNED = "planned"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_SESSION_STATUSES


TERMINAL_SESSION_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED})
OPEN_SESSION_STATUSES = frozenset(
    {SessionStatus.PLANNED, SessionStatus.ACTIVE, SessionStatus.PAUSED}
)


class SessionAction(str, Enum):
    """Commands accepted by the session state machine."""

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    CANCEL = "cancel"


class SessionType(str, Enum):
    """
    Kinds of study sessions.
    """

    POMODORO = "pomodoro"  # Short fixed-length focus block
    FOCUSED = "focused"  # Open-ended deep work
    BREAK = "break"  # Scheduled rest
    REVIEW = "review"  # Revisiting earlier material


class GoalStatus(str, Enum):
    """
    Goal lifecycle states.

    - ACTIVE: accepting progress
    - COMPLETED: current_value reached target_value
    - PAUSED: temporarily frozen by the owner
    - CANCELLED: abandoned by the owner
    - OVERDUE: end_date passed while still active (set by the sweep)
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


class GoalType(str, Enum):
    """Goal window granularity."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class GoalCategory(str, Enum):
    """
    What a goal measures.

    STUDY_TIME and SESSIONS_COMPLETED goals receive progress automatically
    when a study session completes; the rest are updated explicitly.
    """

    STUDY_TIME = "study-time"
    TOPICS_COMPLETED = "topics-completed"
    SESSIONS_COMPLETED = "sessions-completed"
    STREAK_MAINTENANCE = "streak-maintenance"
    SKILL_DEVELOPMENT = "skill-development"
    PROJECT_COMPLETION = "project-completion"
    READING = "reading"
    PRACTICE = "practice"
    OTHER = "other"


class GoalUnit(str, Enum):
    """Unit of a goal's target value."""

    HOURS = "hours"
    MINUTES = "minutes"
    TOPICS = "topics"
    SESSIONS = "sessions"
    DAYS = "days"
    PROJECTS = "projects"
    PAGES = "pages"
    PROBLEMS = "problems"
    COMMITS = "commits"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GoalDifficulty(str, Enum):
    EASY = "easy"
    MODERATE = "moderate"
    CHALLENGING = "challenging"
    EXTREME = "extreme"


class ProgressMode(str, Enum):
    """How a progress amount is applied to a goal."""

    ADD = "add"  # current + amount
    SET = "set"  # amount replaces current


class RewardCondition(str, Enum):
    """When a goal reward is earned."""

    COMPLETION = "completion"
    MILESTONE = "milestone"
    STREAK = "streak"


class RecurrenceFrequency(str, Enum):
    """Step size used to advance a recurring goal's window."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class GroupBy(str, Enum):
    """Bucket size for analytics series."""

    DAY = "day"
    WEEK = "week"


class TimePeriod(str, Enum):
    """Preset look-back windows for analytics."""

    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"


class NotificationEvent(str, Enum):
    """Events published to the notification collaborator."""

    GOAL_COMPLETED = "goalCompleted"
    MILESTONE_COMPLETED = "milestoneCompleted"
    SESSION_COMPLETED = "sessionCompleted"
    GOAL_OVERDUE = "goalOverdue"
