"""
SQLAlchemy Database Models for Study Tracking

Tables:
- study_sessions: Timed study sessions and their lifecycle timestamps
- session_interruptions: Pause intervals within a session
- goals: Numeric targets within a time window, optionally recurring
- goal_milestones: Intermediate thresholds of a goal
- goal_rewards: Rewards earned on completion, milestones or streaks

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    There is a corresponding Pydantic file: studytrack/models/tracking.py

    Data flows: Service Layer → Pydantic → SQLAlchemy → Database

    Owner and topic identifiers are opaque strings resolved by the
    (external) identity and content catalog services. There is no foreign
    key between sessions and goals.
"""

import math
from datetime import datetime, timezone
from typing import List, Optional


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studytrack.db.base import Base


# Partial unique index predicate: at most one row per owner may match it.
OPEN_SESSION_PREDICATE = "status IN ('planned', 'active', 'paused')"


# ===========================================
# Study Sessions
# ===========================================


class StudySession(Base):
    """
    A timed unit of study against a topic.

    Attributes:
        id: Primary key.
        owner_id: Opaque owner reference from the identity service.
        topic_id: Opaque topic reference from the content catalog.
        session_type: pomodoro, focused, break or review.
        planned_duration: Minutes planned at creation. Never changed.
        status: planned, active, paused, completed or cancelled.
        started_at: Set by the "start" transition.
        completed_at: Set by the "complete" transition.
        cancelled_at: Set by the "cancel" transition. Mutually exclusive
            with completed_at.
        actual_duration: Active minutes, fixed once at completion.
        productivity_rating: Optional 1-5 self assessment.
        productivity_comment: Free text accompanying the rating.
        notes: Free text notes (cancellation reasons are appended here).
        tags: List of free-form tags.
        deep_focus_minutes: Self-reported minutes of deep focus.
        average_focus_level: Self-reported 1-10 focus level.
        interruptions: Ordered pause intervals.
    """

    __tablename__ = "study_sessions"
    __table_args__ = (
        Index("ix_study_sessions_owner_started", "owner_id", "started_at"),
        Index("ix_study_sessions_owner_status", "owner_id", "status"),
        Index(
            "uq_study_sessions_owner_open",
            "owner_id",
            unique=True,
            postgresql_where=text(OPEN_SESSION_PREDICATE),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    topic_id: Mapped[str] = mapped_column(String(64), index=True)

    session_type: Mapped[str] = mapped_column(String(20), default="focused")
    planned_duration: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="planned")

    # Lifecycle timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    actual_duration: Mapped[Optional[int]] = mapped_column(Integer)

    # Opaque payload
    productivity_rating: Mapped[Optional[int]] = mapped_column(Integer)
    productivity_comment: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    # Focus metrics reported at completion
    deep_focus_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    average_focus_level: Mapped[Optional[float]] = mapped_column(Float)

    interruptions: Mapped[List["SessionInterruption"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionInterruption.position",
        lazy="selectin",
    )

    @property
    def efficiency(self) -> int:
        """Actual vs planned duration as a rounded percentage."""
        if not self.actual_duration or not self.planned_duration:
            return 0
        return round(self.actual_duration / self.planned_duration * 100)

    @property
    def paused_minutes(self) -> int:
        """Whole minutes spent in closed interruptions."""
        seconds = sum(
            (i.ended_at - i.started_at).total_seconds()
            for i in self.interruptions
            if i.ended_at is not None
        )
        return int(seconds // 60)

    @property
    def interruption_count(self) -> int:
        return len(self.interruptions)

    @property
    def focus_score(self) -> int:
        """
        Focus level scaled to 0-100, minus 5 points per interruption.

        0 when no focus level was reported.
        """
        if self.average_focus_level is None:
            return 0
        raw = self.average_focus_level * 10 - self.interruption_count * 5
        return max(0, min(100, round(raw)))

    @property
    def open_interruption(self) -> Optional["SessionInterruption"]:
        """The interruption without an end, if the session is paused."""
        for interruption in self.interruptions:
            if interruption.ended_at is None:
                return interruption
        return None


class SessionInterruption(Base):
    """
    A pause interval within a study session.

    An interruption with no ended_at exists only while its session is
    paused; intervals of one session never overlap.
    """

    __tablename__ = "session_interruptions"

    id: Mapped[int] = mapped_column(primary_key=True)
    session_id: Mapped[int] = mapped_column(
        ForeignKey("study_sessions.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    session: Mapped["StudySession"] = relationship(back_populates="interruptions")


# ===========================================
# Goals, Milestones & Rewards
# ===========================================


class Goal(Base):
    """
    A target quantity to reach within a window.

    Attributes:
        id: Primary key.
        owner_id: Opaque owner reference.
        title / description: Display text.
        goal_type: daily, weekly, monthly or custom.
        category: What the goal measures (study-time, sessions-completed, ...).
        unit: Unit of target_value.
        target_value: Value at which the goal completes.
        current_value: Progress so far, kept within [0, target_value]. Only
            written by the progress engine.
        status: active, completed, paused, cancelled or overdue.
        start_date / end_date: Goal window.
        completed_at: Stamped when current_value first reached target_value.
        related_topics: Opaque topic ids the goal is tied to. Empty means
            every topic counts.
        is_recurring: Whether completion spawns a successor instance.
        recurrence_*: Recurrence pattern (frequency, interval and optional
            end bounds).
        occurrence: 1 for the first instance, incremented per successor.
        source_goal_id: The completed goal this instance was regenerated
            from. Unique, so a goal has at most one successor.
        regenerated_at: Stamped on a completed recurring goal when its
            successor is created. Survives deletion of the successor, so a
            goal is regenerated at most once.
    """

    __tablename__ = "goals"
    __table_args__ = (
        Index("ix_goals_owner_status", "owner_id", "status"),
        Index("ix_goals_status_end_date", "status", "end_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)

    title: Mapped[str] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(String(500))
    goal_type: Mapped[str] = mapped_column(String(20))
    category: Mapped[str] = mapped_column(String(40))
    unit: Mapped[str] = mapped_column(String(20))
    priority: Mapped[str] = mapped_column(String(20), default="medium")
    difficulty: Mapped[str] = mapped_column(String(20), default="moderate")
    tags: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    related_topics: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    # Progress
    target_value: Mapped[float] = mapped_column(Float)
    current_value: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(20), default="active")

    # Window
    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Recurrence
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False)
    recurrence_frequency: Mapped[Optional[str]] = mapped_column(String(20))
    recurrence_interval: Mapped[int] = mapped_column(Integer, default=1)
    recurrence_end_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    recurrence_end_after_occurrences: Mapped[Optional[int]] = mapped_column(Integer)
    occurrence: Mapped[int] = mapped_column(Integer, default=1)
    source_goal_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("goals.id", ondelete="SET NULL"), unique=True
    )
    regenerated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    milestones: Mapped[List["GoalMilestone"]] = relationship(
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalMilestone.order",
        lazy="selectin",
    )
    rewards: Mapped[List["GoalReward"]] = relationship(
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalReward.id",
        lazy="selectin",
    )

    @property
    def progress_percentage(self) -> int:
        if not self.target_value:
            return 0
        return min(100, round((self.current_value or 0) / self.target_value * 100))

    @property
    def days_remaining(self) -> int:
        delta = self.end_date - _utc_now()
        return max(0, math.ceil(delta.total_seconds() / 86400))

    @property
    def is_overdue(self) -> bool:
        return self.status == "active" and _utc_now() > self.end_date

    @property
    def recurrence_pattern(self) -> Optional[dict]:
        """Recurrence columns grouped for API responses."""
        if not self.is_recurring or not self.recurrence_frequency:
            return None
        return {
            "frequency": self.recurrence_frequency,
            "interval": self.recurrence_interval,
            "end_date": self.recurrence_end_date,
            "end_after_occurrences": self.recurrence_end_after_occurrences,
        }


class GoalMilestone(Base):
    """
    Intermediate threshold within a goal.

    current_value mirrors the goal's current_value capped at this
    milestone's target. Once completed, a milestone is never un-completed.
    """

    __tablename__ = "goal_milestones"

    id: Mapped[int] = mapped_column(primary_key=True)
    goal_id: Mapped[int] = mapped_column(
        ForeignKey("goals.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[Optional[str]] = mapped_column(String(100))
    target_value: Mapped[float] = mapped_column(Float)
    current_value: Mapped[float] = mapped_column(Float, default=0.0)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    order: Mapped[int] = mapped_column(Integer, default=1)

    goal: Mapped["Goal"] = relationship(back_populates="milestones")


class GoalReward(Base):
    """
    A reward attached to a goal. Earned flags are monotonic.
    """

    __tablename__ = "goal_rewards"

    id: Mapped[int] = mapped_column(primary_key=True)
    goal_id: Mapped[int] = mapped_column(
        ForeignKey("goals.id", ondelete="CASCADE"), index=True
    )
    title: Mapped[Optional[str]] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text)
    condition: Mapped[str] = mapped_column(String(20), default="completion")
    earned: Mapped[bool] = mapped_column(Boolean, default=False)
    earned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    goal: Mapped["Goal"] = relationship(back_populates="rewards")
