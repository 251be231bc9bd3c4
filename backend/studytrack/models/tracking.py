"""
Study Tracking API Models (Pydantic)

Request/response schemas for:
- Study sessions and their state transitions
- Goals, milestones, rewards and progress updates
- Streaks, activity history and analytics series
- Derived per-user activity stats and sweep results

ARCHITECTURE NOTE:
    This file contains PYDANTIC models for API validation.
    There is a corresponding SQLAlchemy file: studytrack/db/models.py

    Data flows: API Request → Pydantic → Service → SQLAlchemy → Database

API Contract:
    Request models use StrictRequest (extra="forbid") to reject unknown fields.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field, field_validator, model_validator

from studytrack.config import settings
from studytrack.enums.tracking import (
    GoalCategory,
    GoalDifficulty,
    GoalPriority,
    GoalStatus,
    GoalType,
    GoalUnit,
    GroupBy,
    ProgressMode,
    RecurrenceFrequency,
    RewardCondition,
    SessionAction,
    SessionStatus,
    SessionType,
)
from studytrack.models.base import PaginatedResponse, StrictRequest, StrictResponse


# ===========================================
# Session Models
# ===========================================


class SessionCreateRequest(StrictRequest):
    """
    Request to plan a new study session.

    The session starts in the planned state; an owner may hold only one
    planned, active or paused session at a time.
    """

    topic_id: str = Field(..., min_length=1, max_length=64)
    planned_duration: int = Field(
        ...,
        ge=settings.SESSION_MIN_PLANNED_MINUTES,
        le=settings.SESSION_MAX_PLANNED_MINUTES,
        description="Planned length in minutes",
    )
    session_type: SessionType = SessionType.FOCUSED
    notes: Optional[str] = Field(None, max_length=settings.SESSION_NOTES_MAX_LENGTH)
    tags: list[str] = Field(default_factory=list)


class ProductivityPayload(StrictRequest):
    """Self-assessed productivity recorded at completion."""

    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None


class FocusMetricsPayload(StrictRequest):
    """Self-reported focus recorded at completion."""

    deep_focus_minutes: Optional[int] = Field(None, ge=0)
    average_focus_level: Optional[float] = Field(None, ge=1, le=10)


class TransitionPayload(StrictRequest):
    """
    Optional data accompanying a transition.

    - resume: pause_duration_minutes lets the client report how long it was
      paused (reconciled against the open interruption)
    - complete: notes, productivity, focus and tags
    - cancel: reason (appended to notes)
    """

    notes: Optional[str] = Field(None, max_length=settings.SESSION_NOTES_MAX_LENGTH)
    productivity: Optional[ProductivityPayload] = None
    focus: Optional[FocusMetricsPayload] = None
    tags: Optional[list[str]] = None
    pause_duration_minutes: Optional[float] = Field(None, ge=0)
    reason: Optional[str] = Field(None, max_length=500)


class SessionTransitionRequest(StrictRequest):
    """Request to move a session through its state machine."""

    action: SessionAction
    payload: Optional[TransitionPayload] = None


class SessionUpdateRequest(StrictRequest):
    """Editable, non-lifecycle session details."""

    notes: Optional[str] = Field(None, max_length=settings.SESSION_NOTES_MAX_LENGTH)
    productivity: Optional[ProductivityPayload] = None
    focus: Optional[FocusMetricsPayload] = None
    tags: Optional[list[str]] = None


class InterruptionResponse(StrictResponse):
    """A pause interval; ended_at is None while the session is paused."""

    started_at: datetime
    ended_at: Optional[datetime] = None


class SessionResponse(StrictResponse):
    """Full session state."""

    id: int
    owner_id: str
    topic_id: str
    session_type: SessionType
    planned_duration: int
    status: SessionStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    actual_duration: Optional[int] = None
    productivity_rating: Optional[int] = None
    productivity_comment: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    interruptions: list[InterruptionResponse] = Field(default_factory=list)
    deep_focus_minutes: Optional[int] = None
    average_focus_level: Optional[float] = None
    efficiency: int = 0
    paused_minutes: int = 0
    interruption_count: int = 0
    focus_score: int = 0

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags(cls, value):
        return value or []


class SessionListResponse(PaginatedResponse):
    """Paginated session history."""

    items: list[SessionResponse]


class OpenSessionResponse(StrictResponse):
    """The owner's planned/active/paused session, if any."""

    session: Optional[SessionResponse] = None


class TodaySessionsResponse(StrictResponse):
    """Sessions started today (owner's timezone) with quick totals."""

    sessions: list[SessionResponse]
    total_sessions: int
    completed_sessions: int
    total_minutes: int
    average_productivity: Optional[float] = None


# ===========================================
# Goal Models
# ===========================================


class MilestoneCreate(StrictRequest):
    """An intermediate threshold of a goal."""

    title: Optional[str] = Field(None, max_length=100)
    target_value: float = Field(..., gt=0)
    order: Optional[int] = Field(None, ge=1)


class RewardCreate(StrictRequest):
    """A reward granted on completion, milestone or streak."""

    title: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    condition: RewardCondition = RewardCondition.COMPLETION


class RecurrencePattern(StrictRequest):
    """How a recurring goal's window advances."""

    frequency: RecurrenceFrequency = RecurrenceFrequency.WEEKLY
    interval: int = Field(1, ge=1)
    end_date: Optional[AwareDatetime] = None
    end_after_occurrences: Optional[int] = Field(None, ge=1)


class GoalCreateRequest(StrictRequest):
    """
    Request to create a goal.

    start_date defaults to now. A recurring goal without an explicit
    pattern recurs weekly.
    """

    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    goal_type: GoalType
    category: GoalCategory
    target_value: float = Field(..., gt=0)
    unit: GoalUnit
    priority: GoalPriority = GoalPriority.MEDIUM
    difficulty: GoalDifficulty = GoalDifficulty.MODERATE
    start_date: Optional[AwareDatetime] = None
    end_date: AwareDatetime
    related_topics: list[str] = Field(default_factory=list)
    milestones: list[MilestoneCreate] = Field(default_factory=list)
    rewards: list[RewardCreate] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=1000)
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "GoalCreateRequest":
        if self.start_date is not None and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        for milestone in self.milestones:
            if milestone.target_value > self.target_value:
                raise ValueError("milestone target_value cannot exceed goal target_value")
        if self.is_recurring and self.recurrence_pattern is None:
            self.recurrence_pattern = RecurrencePattern()
        return self


class GoalUpdateRequest(StrictRequest):
    """Editable goal fields. Progress and status have dedicated endpoints."""

    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    priority: Optional[GoalPriority] = None
    end_date: Optional[AwareDatetime] = None
    related_topics: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = Field(None, max_length=1000)


class GoalStatusUpdateRequest(StrictRequest):
    """Owner-initiated status change. OVERDUE is reserved for the sweep."""

    status: GoalStatus

    @field_validator("status")
    @classmethod
    def _not_overdue(cls, value: GoalStatus) -> GoalStatus:
        if value == GoalStatus.OVERDUE:
            raise ValueError("overdue is set by the scheduler, not by clients")
        return value


class GoalProgressRequest(StrictRequest):
    """
    Progress update for a goal.

    mode=add requires a non-negative amount so progress never moves
    backwards; mode=set may correct the value downwards.
    """

    amount: float
    mode: ProgressMode = ProgressMode.ADD

    @model_validator(mode="after")
    def _non_negative_add(self) -> "GoalProgressRequest":
        if self.mode == ProgressMode.ADD and self.amount < 0:
            raise ValueError("amount must be non-negative when mode is 'add'")
        return self


class MilestoneResponse(StrictResponse):
    id: Optional[int] = None
    title: Optional[str] = None
    target_value: float
    current_value: float = 0.0
    completed: bool = False
    completed_at: Optional[datetime] = None
    order: int = 1


class RewardResponse(StrictResponse):
    id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    condition: RewardCondition
    earned: bool = False
    earned_at: Optional[datetime] = None


class RecurrencePatternResponse(StrictResponse):
    frequency: RecurrenceFrequency
    interval: int
    end_date: Optional[datetime] = None
    end_after_occurrences: Optional[int] = None


class GoalResponse(StrictResponse):
    """Full goal state with derived progress fields."""

    id: int
    owner_id: str
    title: str
    description: Optional[str] = None
    goal_type: GoalType
    category: GoalCategory
    unit: GoalUnit
    priority: GoalPriority
    difficulty: GoalDifficulty
    target_value: float
    current_value: float
    status: GoalStatus
    start_date: datetime
    end_date: datetime
    completed_at: Optional[datetime] = None
    related_topics: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = None
    milestones: list[MilestoneResponse] = Field(default_factory=list)
    rewards: list[RewardResponse] = Field(default_factory=list)
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePatternResponse] = None
    occurrence: int = 1
    source_goal_id: Optional[int] = None
    progress_percentage: int = 0
    days_remaining: int = 0
    is_overdue: bool = False

    @field_validator("related_topics", "tags", mode="before")
    @classmethod
    def _none_lists(cls, value):
        return value or []


class GoalListResponse(PaginatedResponse):
    items: list[GoalResponse]


class GoalProgressResponse(StrictResponse):
    """
    Result of one progress update.

    completed_milestones and earned_rewards list only what this call
    changed, in the order they were evaluated.
    """

    goal: GoalResponse
    previous_value: float
    current_value: float
    goal_completed: bool = False
    completed_milestones: list[MilestoneResponse] = Field(default_factory=list)
    earned_rewards: list[RewardResponse] = Field(default_factory=list)


class SessionTransitionResponse(StrictResponse):
    """Session after a transition, plus goal updates triggered by completion."""

    session: SessionResponse
    goal_updates: list[GoalProgressResponse] = Field(default_factory=list)


class GoalTemplateSuggestion(StrictResponse):
    """Pre-filled goal suggestion."""

    title: str
    description: str
    goal_type: GoalType
    category: GoalCategory
    target_value: float
    unit: GoalUnit
    difficulty: GoalDifficulty


class GoalStatsOverview(StrictResponse):
    total_goals: int = 0
    completed_goals: int = 0
    active_goals: int = 0
    overdue_goals: int = 0
    average_progress: float = 0.0
    completion_rate: int = 0


class CategoryGoalStats(StrictResponse):
    category: GoalCategory
    total_goals: int
    completed_goals: int
    average_progress: float
    completion_rate: float


class WeeklyCompletion(StrictResponse):
    week_start: date
    completed: int


class UpcomingDeadline(StrictResponse):
    id: int
    title: str
    end_date: datetime
    current_value: float
    target_value: float


class GoalStatsResponse(StrictResponse):
    overview: GoalStatsOverview
    category_stats: list[CategoryGoalStats] = Field(default_factory=list)
    weekly_trend: list[WeeklyCompletion] = Field(default_factory=list)
    upcoming_deadlines: list[UpcomingDeadline] = Field(default_factory=list)


# ===========================================
# Streak Models
# ===========================================


class StreakData(BaseModel):
    """
    Study streak information.

    A streak is the number of consecutive calendar days (owner's timezone)
    with at least one completed session of non-zero duration. Not having
    studied yet today does not break the streak.
    """

    current_streak: int  # Days
    longest_streak: int
    streak_start: Optional[date] = None
    last_activity: Optional[date] = None
    is_active_today: bool
    days_this_week: int
    days_this_month: int
    # Milestones
    milestones_reached: list[int] = Field(default_factory=list)  # e.g., [7, 30, 100]
    next_milestone: Optional[int] = None


class ActivityHistoryDay(BaseModel):
    """Single day of activity for heatmaps."""

    date: date
    count: int = Field(0, description="Completed sessions")
    minutes: int = Field(0, description="Total active minutes")
    level: int = Field(0, ge=0, le=4, description="Activity level 0-4 for heatmap coloring")


class ActivityHistoryResponse(BaseModel):
    """Daily activity over a configurable range."""

    days: list[ActivityHistoryDay] = Field(default_factory=list)
    total_active_days: int = 0
    total_sessions: int = 0
    max_daily_count: int = 0


# ===========================================
# Analytics Models
# ===========================================


class ActivityBucket(BaseModel):
    """
    Completed sessions aggregated over one day or week.

    period_end is exclusive.
    """

    period_start: date
    period_end: date
    session_count: int = 0
    total_minutes: int = 0
    average_productivity: Optional[float] = None


class CategorySummary(BaseModel):
    category: GoalCategory
    session_count: int = 0
    total_minutes: int = 0
    average_productivity: Optional[float] = None


class TopicSummary(BaseModel):
    topic_id: str
    session_count: int = 0
    total_minutes: int = 0
    average_productivity: Optional[float] = None


class TypeSummary(BaseModel):
    session_type: SessionType
    session_count: int = 0
    total_minutes: int = 0
    average_productivity: Optional[float] = None


class AnalyticsSummaryResponse(BaseModel):
    """Roll-up of completed sessions within [start_date, end_date]."""

    start_date: date
    end_date: date
    group_by: GroupBy
    timezone: str
    total_sessions: int = 0
    total_minutes: int = 0
    average_session_minutes: float = 0.0
    average_productivity: Optional[float] = None
    buckets: list[ActivityBucket] = Field(default_factory=list)
    by_category: list[CategorySummary] = Field(default_factory=list)
    by_topic: list[TopicSummary] = Field(default_factory=list)
    by_type: list[TypeSummary] = Field(default_factory=list)
    trend: str = "stable"  # "increasing", "decreasing", "stable"


class UserActivityStats(BaseModel):
    """
    Derived per-owner rollup. Recomputable from history at any time.
    """

    owner_id: str
    total_active_minutes: int = 0
    completed_sessions: int = 0
    average_session_minutes: float = 0.0
    average_productivity: Optional[float] = None
    current_streak: int = 0
    longest_streak: int = 0
    sessions_by_status: dict[str, int] = Field(default_factory=dict)
    goals_by_status: dict[str, int] = Field(default_factory=dict)
    computed_at: datetime


# ===========================================
# Sweep Models
# ===========================================


class SweepResult(BaseModel):
    """
    Outcome of one overdue/recurrence sweep batch.

    next_cursor is None once both passes have drained their backlog.
    """

    ran_at: datetime
    overdue_marked: int = 0
    regenerated: int = 0
    skipped: int = 0
    failed: int = 0
    next_cursor: Optional[int] = None
