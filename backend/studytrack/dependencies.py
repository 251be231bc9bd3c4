"""
Request-Scoped Dependencies

Owner identity, timezone and service wiring for the routers.

Authentication happens upstream (gateway or identity service); this layer
only reads the already-authenticated owner id from the X-Owner-Id header.
When API_KEY is configured, requests must also present it in X-API-Key so
the service cannot be reached around the gateway.
"""

import logging
import secrets
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from studytrack.config import settings
from studytrack.db.base import get_db
from studytrack.services.notifications import (
    NotificationPublisher,
    get_notification_publisher,
)
from studytrack.services.tracking import (
    ActivityStatsService,
    AnalyticsService,
    GoalService,
    GoalSweep,
    SessionService,
    StreakTrackingService,
)

logger = logging.getLogger(__name__)


# ===========================================
# Identity
# ===========================================


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Reject requests without the shared key when API_KEY is set."""
    if not settings.API_KEY:
        return
    if x_api_key is None or not secrets.compare_digest(x_api_key, settings.API_KEY):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


async def get_current_owner(
    x_owner_id: Optional[str] = Header(None),
    _: None = Depends(verify_api_key),
) -> str:
    """Owner id supplied by the upstream identity layer."""
    owner_id = (x_owner_id or "").strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    if len(owner_id) > 64:
        raise HTTPException(status_code=400, detail="X-Owner-Id is too long")
    return owner_id


async def get_timezone(x_timezone: Optional[str] = Header(None)) -> ZoneInfo:
    """Owner's IANA timezone from X-Timezone, else DEFAULT_TIMEZONE."""
    name = x_timezone or settings.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {name}")


# ===========================================
# Services
# ===========================================


async def get_session_service(
    db: AsyncSession = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
) -> SessionService:
    """Get session service."""
    return SessionService(db, publisher)


async def get_goal_service(
    db: AsyncSession = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
) -> GoalService:
    """Get goal service."""
    return GoalService(db, publisher)


async def get_goal_sweep(
    db: AsyncSession = Depends(get_db),
    publisher: NotificationPublisher = Depends(get_notification_publisher),
) -> GoalSweep:
    return GoalSweep(db, publisher)


async def get_streak_service(db: AsyncSession = Depends(get_db)) -> StreakTrackingService:
    return StreakTrackingService(db)


async def get_analytics_service(db: AsyncSession = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)


async def get_activity_stats_service(
    db: AsyncSession = Depends(get_db),
) -> ActivityStatsService:
    return ActivityStatsService(db)
