"""
Analytics API Router

Endpoints for study streaks and activity analytics.

Endpoints:
- GET /api/analytics/summary - Day/week series plus category, topic and type breakdowns
- GET /api/analytics/streak - Study streak information
- GET /api/analytics/activity-history - Daily activity for heatmaps
- GET /api/analytics/stats - Cached per-owner activity rollup
"""

import logging
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query, Request

from studytrack.config import settings
from studytrack.dependencies import (
    get_activity_stats_service,
    get_analytics_service,
    get_current_owner,
    get_streak_service,
    get_timezone,
)
from studytrack.enums.api import RateLimitType
from studytrack.enums.tracking import GroupBy, TimePeriod
from studytrack.middleware.error_handling import ValidationError, handle_endpoint_errors
from studytrack.middleware.rate_limit import limiter
from studytrack.models.tracking import (
    ActivityHistoryResponse,
    AnalyticsSummaryResponse,
    StreakData,
    UserActivityStats,
)
from studytrack.services.tracking import (
    ActivityStatsService,
    AnalyticsService,
    StreakTrackingService,
)
from studytrack.services.tracking.analytics import resolve_period

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/analytics", tags=["analytics"])

MAX_RANGE_DAYS = 366


@router.get("/summary", response_model=AnalyticsSummaryResponse)
@limiter.limit(settings.get_rate_limit(RateLimitType.ANALYTICS))
@handle_endpoint_errors("Get analytics summary")
async def get_summary(
    request: Request,
    start_date: Optional[date] = Query(None, description="First local date (inclusive)"),
    end_date: Optional[date] = Query(None, description="Last local date (inclusive)"),
    period: TimePeriod = Query(TimePeriod.MONTH, description="Used when dates are omitted"),
    group_by: GroupBy = Query(GroupBy.DAY),
    fill: bool = Query(True, description="Include zero-valued buckets"),
    owner_id: str = Depends(get_current_owner),
    tz: ZoneInfo = Depends(get_timezone),
    service: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsSummaryResponse:
    """
    Completed-session rollup over a date range in the owner's timezone.

    Without explicit dates the range is the preset period ending today.
    """
    default_start, default_end = resolve_period(period, datetime.now(tz).date())
    start = start_date or default_start
    end = end_date or default_end

    if end < start:
        raise ValidationError(
            "end_date must not be before start_date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
    if (end - start).days >= MAX_RANGE_DAYS:
        raise ValidationError(
            f"Date range cannot exceed {MAX_RANGE_DAYS} days",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )

    return await service.get_summary(owner_id, start, end, group_by, tz, fill)


@router.get("/streak", response_model=StreakData)
@handle_endpoint_errors("Get study streak")
async def get_streak(
    owner_id: str = Depends(get_current_owner),
    tz: ZoneInfo = Depends(get_timezone),
    service: StreakTrackingService = Depends(get_streak_service),
) -> StreakData:
    """
    Current and longest streak, milestones and recent activity counts.

    Not having studied yet today does not break the streak.
    """
    return await service.get_streak_data(owner_id, tz)


@router.get("/activity-history", response_model=ActivityHistoryResponse)
@handle_endpoint_errors("Get activity history")
async def get_activity_history(
    weeks: int = Query(52, ge=1, le=104, description="Number of weeks of history"),
    owner_id: str = Depends(get_current_owner),
    tz: ZoneInfo = Depends(get_timezone),
    service: StreakTrackingService = Depends(get_streak_service),
) -> ActivityHistoryResponse:
    """
    Daily activity for a GitHub-style heatmap.
    """
    return await service.get_activity_history(owner_id, tz, weeks=weeks)


@router.get("/stats", response_model=UserActivityStats)
@handle_endpoint_errors("Get activity stats")
async def get_activity_stats(
    refresh: bool = Query(False, description="Bypass the cache"),
    owner_id: str = Depends(get_current_owner),
    tz: ZoneInfo = Depends(get_timezone),
    service: ActivityStatsService = Depends(get_activity_stats_service),
) -> UserActivityStats:
    """Totals, averages, streaks and counts by status."""
    return await service.get_stats(owner_id, tz, use_cache=not refresh)
