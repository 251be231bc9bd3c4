"""
Streak and Activity History Tracking Service

Tracks study streaks and provides activity history for heatmap visualizations.

Responsibilities:
- Calculate current and longest study streaks
- Track streak milestones
- Provide daily activity history for heatmaps
- Activity level calculations for visualizations

A study day is a calendar date, in the owner's timezone, on which at least
one session was completed with a non-zero actual duration. Cancelled and
zero-minute sessions never count.

Usage:
    from studytrack.services.tracking.streak_tracking import StreakTrackingService

    service = StreakTrackingService(db)
    streak = await service.get_streak_data(owner_id, ZoneInfo("Europe/Berlin"))
    history = await service.get_activity_history(owner_id, tz, weeks=52)
"""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studytrack.config import settings
from studytrack.db.models import StudySession
from studytrack.enums.tracking import SessionStatus
from studytrack.models.tracking import (
    ActivityHistoryDay,
    ActivityHistoryResponse,
    StreakData,
)


def local_date(ts: datetime, tz: tzinfo) -> date:
    """Calendar date of a timestamp in the given timezone (naive = UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(tz).date()


def calculate_activity_level(count: int, max_count: int) -> int:
    """
    Calculate activity level (0-4) based on count relative to max.

    Used for heatmap visualizations where higher levels indicate more activity.
    Thresholds are configured in settings (ACTIVITY_LEVEL_*).

    Args:
        count: Activity count for the day.
        max_count: Maximum activity count across all days.

    Returns:
        Activity level from 0 (no activity) to 4 (high activity).
    """
    if max_count == 0 or count == 0:
        return 0

    ratio = count / max_count
    if ratio >= settings.ACTIVITY_LEVEL_HIGH:
        return 4
    elif ratio >= settings.ACTIVITY_LEVEL_MEDIUM_HIGH:
        return 3
    elif ratio >= settings.ACTIVITY_LEVEL_MEDIUM:
        return 2
    else:
        return 1  # Any activity > 0


class StreakTrackingService:
    """
    Service for tracking study streaks and activity history.

    Read-only over completed sessions.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the streak tracking service.

        Args:
            db: SQLAlchemy async database session.
        """
        self.db = db

    async def get_streak_data(
        self,
        owner_id: str,
        tz: tzinfo = timezone.utc,
        today: Optional[date] = None,
    ) -> StreakData:
        """
        Get detailed study streak information.

        Args:
            owner_id: Owner whose sessions are scanned.
            tz: Owner's timezone; day boundaries follow it.
            today: Reference date (defaults to the current date in tz).

        Returns:
            StreakData with comprehensive streak information.
        """
        timestamps = await self._fetch_completion_times(owner_id)
        study_dates = sorted(
            {local_date(ts, tz) for ts in timestamps}, reverse=True
        )
        today = today or datetime.now(tz).date()
        return self.build_streak_data(study_dates, today)

    @classmethod
    def build_streak_data(cls, study_dates: list[date], today: date) -> StreakData:
        """
        Assemble StreakData from distinct study dates (most recent first).
        """
        milestones = settings.STREAK_MILESTONES

        if not study_dates:
            return StreakData(
                current_streak=0,
                longest_streak=0,
                streak_start=None,
                last_activity=None,
                is_active_today=False,
                days_this_week=0,
                days_this_month=0,
                milestones_reached=[],
                next_milestone=milestones[0] if milestones else None,
            )

        current_streak, streak_start = cls.calculate_current_streak(study_dates, today)
        longest_streak = cls.calculate_longest_streak(study_dates)

        return StreakData(
            current_streak=current_streak,
            longest_streak=longest_streak,
            streak_start=streak_start,
            last_activity=study_dates[0],
            is_active_today=study_dates[0] == today,
            days_this_week=cls._count_days_in_period(study_dates, today, 7),
            days_this_month=cls._count_days_in_period(study_dates, today, 30),
            milestones_reached=[m for m in milestones if longest_streak >= m],
            next_milestone=next((m for m in milestones if m > current_streak), None),
        )

    async def get_activity_history(
        self,
        owner_id: str,
        tz: tzinfo = timezone.utc,
        weeks: int = 52,
    ) -> ActivityHistoryResponse:
        """
        Get study history for an activity heatmap.

        Returns one entry per day with at least one completed session in the
        last `weeks` weeks.

        Args:
            owner_id: Owner whose sessions are scanned.
            tz: Owner's timezone.
            weeks: Number of weeks of history to return (default 52).

        Returns:
            ActivityHistoryResponse with daily activity data.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(weeks=weeks)

        result = await self.db.execute(
            select(StudySession.completed_at, StudySession.actual_duration)
            .where(
                StudySession.owner_id == owner_id,
                StudySession.status == SessionStatus.COMPLETED.value,
                StudySession.actual_duration > 0,
                StudySession.completed_at >= cutoff,
            )
        )

        counts: dict[date, int] = defaultdict(int)
        minutes: dict[date, int] = defaultdict(int)
        for completed_at, actual_duration in result.all():
            day = local_date(completed_at, tz)
            counts[day] += 1
            minutes[day] += actual_duration or 0

        max_count = max(counts.values(), default=0)
        days = [
            ActivityHistoryDay(
                date=day,
                count=counts[day],
                minutes=minutes[day],
                level=calculate_activity_level(counts[day], max_count),
            )
            for day in sorted(counts)
        ]

        return ActivityHistoryResponse(
            days=days,
            total_active_days=len(days),
            total_sessions=sum(counts.values()),
            max_daily_count=max_count,
        )

    async def _fetch_completion_times(self, owner_id: str) -> list[datetime]:
        """
        Completion timestamps of the owner's counted sessions.

        Dates are derived in Python rather than with SQL date() so the
        owner's timezone decides the day boundary.
        """
        result = await self.db.execute(
            select(StudySession.completed_at).where(
                StudySession.owner_id == owner_id,
                StudySession.status == SessionStatus.COMPLETED.value,
                StudySession.actual_duration > 0,
                StudySession.completed_at.isnot(None),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    def calculate_current_streak(
        study_dates: list[date], today: date
    ) -> tuple[int, Optional[date]]:
        """
        Calculate current consecutive study streak.

        Counts consecutive study days starting from today (or yesterday if no
        study today). The streak remains valid if the owner studied yesterday
        but hasn't studied today yet.

        Args:
            study_dates: Distinct study dates in descending order (most recent first).
            today: Current date for streak calculation reference.

        Returns:
            tuple[int, Optional[date]]: Tuple containing:
                - streak_count: Number of consecutive study days.
                - streak_start_date: Date when the current streak began, or None if no streak.
        """
        if not study_dates:
            return 0, None

        # Check if streak is still valid (studied today or yesterday)
        most_recent = study_dates[0]
        yesterday = today - timedelta(days=1)

        if most_recent != today and most_recent != yesterday:
            return 0, None

        # Count consecutive days
        streak = 0
        streak_start = None
        expected_date = most_recent

        for study_date in study_dates:
            if study_date == expected_date:
                streak += 1
                streak_start = study_date
                expected_date = expected_date - timedelta(days=1)
            elif study_date < expected_date:
                # Gap in streak
                break

        return streak, streak_start

    @staticmethod
    def calculate_longest_streak(study_dates: list[date]) -> int:
        """
        Calculate the longest study streak ever achieved.

        Args:
            study_dates: Study dates in any order.

        Returns:
            int: Length of the longest consecutive study streak.
        """
        if not study_dates:
            return 0

        sorted_dates = sorted(set(study_dates))

        longest = 1
        current = 1

        for i in range(1, len(sorted_dates)):
            if sorted_dates[i] == sorted_dates[i - 1] + timedelta(days=1):
                current += 1
                longest = max(longest, current)
            else:
                current = 1

        return longest

    @staticmethod
    def _count_days_in_period(study_dates: list[date], today: date, days: int) -> int:
        """Count unique study days within the last `days` days, today included."""
        cutoff = today - timedelta(days=days - 1)
        return len({d for d in study_dates if cutoff <= d <= today})
