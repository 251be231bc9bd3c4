"""
Study Analytics Aggregator

Read-only rollups of completed sessions and goals for reporting.

Responsibilities:
- Bucket completed sessions by day or week (Monday-start) in the owner's timezone
- Attribute session minutes to goal categories, topics and session types
- Summarize goals: completion rate, category breakdown, weekly completions,
  upcoming deadlines
- Calculate simple trends over a bucket series

Sparse data is expected: with fill=True every bucket in the range is
emitted, zero-valued when nothing happened.

Usage:
    from studytrack.services.tracking.analytics import AnalyticsService

    service = AnalyticsService(db)
    summary = await service.get_summary(owner_id, start, end, GroupBy.DAY, tz)
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from statistics import mean
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studytrack.db.models import Goal, StudySession
from studytrack.enums.tracking import (
    GoalCategory,
    GoalStatus,
    GroupBy,
    SessionStatus,
    TimePeriod,
)
from studytrack.models.tracking import (
    ActivityBucket,
    AnalyticsSummaryResponse,
    CategoryGoalStats,
    CategorySummary,
    GoalStatsOverview,
    GoalStatsResponse,
    TopicSummary,
    TypeSummary,
    UpcomingDeadline,
    WeeklyCompletion,
)
from studytrack.services.tracking.streak_tracking import local_date

TREND_WEEKS = 12
DEADLINE_WINDOW_DAYS = 7


# ===========================================
# Pure helpers
# ===========================================


def _counted(sessions: Iterable[StudySession]) -> list[StudySession]:
    return [
        s
        for s in sessions
        if s.status == SessionStatus.COMPLETED.value and s.completed_at is not None
    ]


def _mean_rating(sessions: list[StudySession]) -> Optional[float]:
    ratings = [s.productivity_rating for s in sessions if s.productivity_rating]
    return round(mean(ratings), 2) if ratings else None


def _minutes(sessions: list[StudySession]) -> int:
    return sum(s.actual_duration or 0 for s in sessions)


def period_start(day: date, group_by: GroupBy) -> date:
    """First day of the bucket containing day."""
    if group_by == GroupBy.WEEK:
        return day - timedelta(days=day.weekday())
    return day


def _period_length(group_by: GroupBy) -> timedelta:
    return timedelta(days=7) if group_by == GroupBy.WEEK else timedelta(days=1)


def bucket_sessions(
    sessions: Iterable[StudySession],
    start: date,
    end: date,
    group_by: GroupBy = GroupBy.DAY,
    tz: tzinfo = timezone.utc,
    fill: bool = True,
) -> list[ActivityBucket]:
    """
    Group completed sessions into day or week buckets.

    Args:
        sessions: Sessions to aggregate; non-completed ones are ignored
        start: First local date of the range (inclusive)
        end: Last local date of the range (inclusive)
        group_by: GroupBy.DAY or GroupBy.WEEK (weeks start on Monday)
        tz: Timezone used to derive each session's local completion date
        fill: Emit zero-valued buckets for periods without sessions

    Returns:
        Buckets in chronological order; period_end is exclusive
    """
    grouped: dict[date, list[StudySession]] = defaultdict(list)
    for session in _counted(sessions):
        day = local_date(session.completed_at, tz)
        if start <= day <= end:
            grouped[period_start(day, group_by)].append(session)

    step = _period_length(group_by)
    buckets: list[ActivityBucket] = []
    current = period_start(start, group_by)

    while current <= end:
        members = grouped.get(current, [])
        if members or fill:
            buckets.append(
                ActivityBucket(
                    period_start=current,
                    period_end=current + step,
                    session_count=len(members),
                    total_minutes=_minutes(members),
                    average_productivity=_mean_rating(members),
                )
            )
        current += step

    return buckets


def goal_matches_topic(goal: Goal, topic_id: str) -> bool:
    """A goal with no related topics accepts every topic."""
    related = goal.related_topics or []
    return not related or topic_id in related


def summarize_by_category(
    sessions: Iterable[StudySession], goals: Iterable[Goal]
) -> list[CategorySummary]:
    """
    Attribute session minutes to the categories of matching goals.

    A session counts once toward each distinct category of the goals that
    match its topic. Sessions matching no goal are reported under "other".
    """
    goals = list(goals)
    grouped: dict[str, list[StudySession]] = defaultdict(list)

    for session in _counted(sessions):
        categories = {g.category for g in goals if goal_matches_topic(g, session.topic_id)}
        for category in categories or {GoalCategory.OTHER.value}:
            grouped[category].append(session)

    summaries = [
        CategorySummary(
            category=category,
            session_count=len(members),
            total_minutes=_minutes(members),
            average_productivity=_mean_rating(members),
        )
        for category, members in grouped.items()
    ]
    return sorted(summaries, key=lambda s: s.total_minutes, reverse=True)


def summarize_by_topic(sessions: Iterable[StudySession]) -> list[TopicSummary]:
    grouped: dict[str, list[StudySession]] = defaultdict(list)
    for session in _counted(sessions):
        grouped[session.topic_id].append(session)

    summaries = [
        TopicSummary(
            topic_id=topic_id,
            session_count=len(members),
            total_minutes=_minutes(members),
            average_productivity=_mean_rating(members),
        )
        for topic_id, members in grouped.items()
    ]
    return sorted(summaries, key=lambda s: s.total_minutes, reverse=True)


def summarize_by_type(sessions: Iterable[StudySession]) -> list[TypeSummary]:
    grouped: dict[str, list[StudySession]] = defaultdict(list)
    for session in _counted(sessions):
        grouped[session.session_type].append(session)

    summaries = [
        TypeSummary(
            session_type=session_type,
            session_count=len(members),
            total_minutes=_minutes(members),
            average_productivity=_mean_rating(members),
        )
        for session_type, members in grouped.items()
    ]
    return sorted(summaries, key=lambda s: s.total_minutes, reverse=True)


def calculate_trend(buckets: list[ActivityBucket]) -> str:
    """
    Calculate trend from a chronological bucket series.

    Compares average minutes between the first and second half of the
    series. Returns "increasing" if the second half is >10% higher,
    "decreasing" if >10% lower, otherwise "stable".
    """
    if len(buckets) < 2:
        return "stable"

    mid = len(buckets) // 2
    first_half_avg = sum(b.total_minutes for b in buckets[:mid]) / max(mid, 1)
    second_half_avg = sum(b.total_minutes for b in buckets[mid:]) / max(
        len(buckets) - mid, 1
    )

    if second_half_avg > first_half_avg * 1.1:
        return "increasing"
    elif second_half_avg < first_half_avg * 0.9:
        return "decreasing"

    return "stable"


def resolve_period(period: TimePeriod, today: date) -> tuple[date, date]:
    """Inclusive (start, end) local dates for a look-back preset."""
    days = {TimePeriod.WEEK: 7, TimePeriod.MONTH: 30, TimePeriod.QUARTER: 90}[period]
    return today - timedelta(days=days - 1), today


def local_day_bounds(start: date, end: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """UTC instants covering local dates [start, end]."""
    lower = datetime.combine(start, time.min, tzinfo=tz).astimezone(timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=tz).astimezone(
        timezone.utc
    )
    return lower, upper


# ===========================================
# Service
# ===========================================


class AnalyticsService:
    """
    Service for session and goal analytics.

    Never mutates sessions or goals.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_summary(
        self,
        owner_id: str,
        start_date: date,
        end_date: date,
        group_by: GroupBy = GroupBy.DAY,
        tz: tzinfo = timezone.utc,
        fill: bool = True,
    ) -> AnalyticsSummaryResponse:
        """
        Roll up the owner's completed sessions between two local dates.

        Args:
            owner_id: Owner scope
            start_date: First local date (inclusive)
            end_date: Last local date (inclusive)
            group_by: Day or week buckets
            tz: Owner's timezone
            fill: Include zero-valued buckets

        Returns:
            AnalyticsSummaryResponse with buckets and breakdowns
        """
        lower, upper = local_day_bounds(start_date, end_date, tz)

        session_result = await self.db.execute(
            select(StudySession)
            .where(
                StudySession.owner_id == owner_id,
                StudySession.status == SessionStatus.COMPLETED.value,
                StudySession.completed_at >= lower,
                StudySession.completed_at < upper,
            )
            .order_by(StudySession.completed_at)
        )
        sessions = list(session_result.scalars().all())

        goal_result = await self.db.execute(
            select(Goal).where(
                Goal.owner_id == owner_id,
                Goal.status != GoalStatus.CANCELLED.value,
            )
        )
        goals = list(goal_result.scalars().all())

        buckets = bucket_sessions(sessions, start_date, end_date, group_by, tz, fill)
        total_minutes = _minutes(sessions)

        return AnalyticsSummaryResponse(
            start_date=start_date,
            end_date=end_date,
            group_by=group_by,
            timezone=str(tz),
            total_sessions=len(sessions),
            total_minutes=total_minutes,
            average_session_minutes=(
                round(total_minutes / len(sessions), 1) if sessions else 0.0
            ),
            average_productivity=_mean_rating(sessions),
            buckets=buckets,
            by_category=summarize_by_category(sessions, goals),
            by_topic=summarize_by_topic(sessions),
            by_type=summarize_by_type(sessions),
            trend=calculate_trend(buckets),
        )

    async def get_goal_stats(
        self, owner_id: str, now: Optional[datetime] = None
    ) -> GoalStatsResponse:
        """
        Goal overview for dashboards.

        Includes totals, completion rate, per-category stats, completions per
        week for the last 12 weeks and active goals due within 7 days.
        """
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(select(Goal).where(Goal.owner_id == owner_id))
        goals = list(result.scalars().all())
        return self.build_goal_stats(goals, now)

    @staticmethod
    def build_goal_stats(goals: list[Goal], now: datetime) -> GoalStatsResponse:
        if not goals:
            return GoalStatsResponse(overview=GoalStatsOverview())

        def is_(goal: Goal, status: GoalStatus) -> bool:
            return goal.status == status.value

        completed = [g for g in goals if is_(g, GoalStatus.COMPLETED)]
        overview = GoalStatsOverview(
            total_goals=len(goals),
            completed_goals=len(completed),
            active_goals=sum(1 for g in goals if is_(g, GoalStatus.ACTIVE)),
            overdue_goals=sum(1 for g in goals if is_(g, GoalStatus.OVERDUE)),
            average_progress=round(mean(g.progress_percentage for g in goals), 1),
            completion_rate=round(len(completed) / len(goals) * 100),
        )

        by_category: dict[str, list[Goal]] = defaultdict(list)
        for goal in goals:
            by_category[goal.category].append(goal)
        category_stats = [
            CategoryGoalStats(
                category=category,
                total_goals=len(members),
                completed_goals=sum(1 for g in members if is_(g, GoalStatus.COMPLETED)),
                average_progress=round(mean(g.progress_percentage for g in members), 1),
                completion_rate=round(
                    sum(1 for g in members if is_(g, GoalStatus.COMPLETED))
                    / len(members)
                    * 100,
                    1,
                ),
            )
            for category, members in sorted(by_category.items())
        ]

        this_week = period_start(now.date(), GroupBy.WEEK)
        week_starts = [
            this_week - timedelta(weeks=offset)
            for offset in range(TREND_WEEKS - 1, -1, -1)
        ]
        completions: dict[date, int] = defaultdict(int)
        for goal in completed:
            if goal.completed_at is not None:
                completed_on = local_date(goal.completed_at, timezone.utc)
                completions[period_start(completed_on, GroupBy.WEEK)] += 1
        weekly_trend = [
            WeeklyCompletion(week_start=week, completed=completions.get(week, 0))
            for week in week_starts
        ]

        horizon = now + timedelta(days=DEADLINE_WINDOW_DAYS)
        upcoming = sorted(
            (
                g
                for g in goals
                if is_(g, GoalStatus.ACTIVE) and now <= g.end_date <= horizon
            ),
            key=lambda g: g.end_date,
        )

        return GoalStatsResponse(
            overview=overview,
            category_stats=category_stats,
            weekly_trend=weekly_trend,
            upcoming_deadlines=[
                UpcomingDeadline.model_validate(goal) for goal in upcoming
            ],
        )
