"""
Per-Owner Activity Stats

Derived rollup of an owner's history: active minutes, session and goal
counts by status, averages and streaks. It is recomputed from the
database on a cache miss and cached in Redis for ACTIVITY_STATS_CACHE_TTL
seconds. Writers call invalidate() after a session completes or is
cancelled and after goal progress; the cache is never the source of truth.

Streaks depend on the owner's timezone, so the cache is one hash per owner
(activity_stats:<owner>) with a field per timezone name. Invalidation
drops the whole hash.

Cache errors are logged and ignored so a Redis outage only costs a
recompute.
"""

import logging
from datetime import datetime, timezone, tzinfo
from statistics import mean
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studytrack.config import settings
from studytrack.db.models import Goal, StudySession
from studytrack.db.redis import RedisCache
from studytrack.enums.tracking import SessionStatus
from studytrack.models.tracking import UserActivityStats
from studytrack.services.tracking.streak_tracking import (
    StreakTrackingService,
    local_date,
)

logger = logging.getLogger(__name__)

_cache = RedisCache(prefix="activity_stats")


def _tz_key(tz: tzinfo) -> str:
    return getattr(tz, "key", None) or str(tz)


async def invalidate(owner_id: str) -> None:
    """Drop the cached stats for an owner, in every timezone."""
    try:
        await _cache.delete(owner_id)
    except Exception as e:
        logger.warning(f"Failed to invalidate activity stats for {owner_id}: {e}")


class ActivityStatsService:
    """Computes and caches UserActivityStats."""

    def __init__(self, db: AsyncSession, cache: Optional[RedisCache] = None):
        self.db = db
        self.cache = cache or _cache

    async def get_stats(
        self,
        owner_id: str,
        tz: tzinfo = timezone.utc,
        use_cache: bool = True,
    ) -> UserActivityStats:
        if use_cache:
            try:
                cached = await self.cache.get_field(owner_id, _tz_key(tz))
                if cached:
                    return UserActivityStats.model_validate(cached)
            except Exception as e:
                logger.warning(f"Activity stats cache read failed for {owner_id}: {e}")

        stats = await self.compute(owner_id, tz)

        try:
            await self.cache.set_field(
                owner_id,
                _tz_key(tz),
                stats.model_dump(mode="json"),
                ttl=settings.ACTIVITY_STATS_CACHE_TTL,
            )
        except Exception as e:
            logger.warning(f"Activity stats cache write failed for {owner_id}: {e}")
        return stats

    async def compute(self, owner_id: str, tz: tzinfo = timezone.utc) -> UserActivityStats:
        """Recompute the rollup from session and goal history."""
        status_rows = await self.db.execute(
            select(StudySession.status, func.count(StudySession.id))
            .where(StudySession.owner_id == owner_id)
            .group_by(StudySession.status)
        )
        sessions_by_status = {status: count for status, count in status_rows.all()}

        goal_rows = await self.db.execute(
            select(Goal.status, func.count(Goal.id))
            .where(Goal.owner_id == owner_id)
            .group_by(Goal.status)
        )
        goals_by_status = {status: count for status, count in goal_rows.all()}

        completed_rows = await self.db.execute(
            select(
                StudySession.completed_at,
                StudySession.actual_duration,
                StudySession.productivity_rating,
            ).where(
                StudySession.owner_id == owner_id,
                StudySession.status == SessionStatus.COMPLETED.value,
            )
        )
        completed = completed_rows.all()

        durations = [row.actual_duration or 0 for row in completed]
        ratings = [row.productivity_rating for row in completed if row.productivity_rating]
        study_dates = sorted(
            {
                local_date(row.completed_at, tz)
                for row in completed
                if row.completed_at is not None and (row.actual_duration or 0) > 0
            },
            reverse=True,
        )
        today = datetime.now(tz).date()
        current_streak, _ = StreakTrackingService.calculate_current_streak(
            study_dates, today
        )

        return UserActivityStats(
            owner_id=owner_id,
            total_active_minutes=sum(durations),
            completed_sessions=len(completed),
            average_session_minutes=(
                round(sum(durations) / len(durations), 1) if durations else 0.0
            ),
            average_productivity=round(mean(ratings), 2) if ratings else None,
            current_streak=current_streak,
            longest_streak=StreakTrackingService.calculate_longest_streak(study_dates),
            sessions_by_status=sessions_by_status,
            goals_by_status=goals_by_status,
            computed_at=datetime.now(timezone.utc),
        )
