"""
Notification Publisher

Publishes tracking events (goalCompleted, milestoneCompleted,
sessionCompleted, goalOverdue) to a Redis pub/sub channel. Delivery
(email, push, websockets) happens in whatever subscribes to the channel.

Publishing is fire-and-forget: failures are logged as warnings and never
raised, so a Redis outage cannot fail a session completion or a sweep.

Message format (JSON):
    {
        "event": "goalCompleted",
        "owner_id": "user-1",
        "payload": {"goal_id": 7, "title": "..."},
        "published_at": "2024-01-01T10:00:00+00:00"
    }

Usage:
    from studytrack.services.notifications import get_notification_publisher

    publisher = get_notification_publisher()
    await publisher.publish(NotificationEvent.SESSION_COMPLETED, owner_id, {...})
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis

from studytrack.config import settings
from studytrack.db.models import Goal, StudySession
from studytrack.db.redis import get_redis
from studytrack.enums.tracking import NotificationEvent

logger = logging.getLogger(__name__)


class NotificationPublisher:
    """
    Redis pub/sub publisher for tracking events.
    """

    def __init__(
        self,
        redis_factory: Callable[[], Awaitable[redis.Redis]] = get_redis,
        channel: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        self._redis_factory = redis_factory
        self.channel = channel or settings.NOTIFICATION_CHANNEL
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled

    async def publish(
        self,
        event: NotificationEvent,
        owner_id: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        Publish one event.

        Returns:
            True if the message was handed to Redis, False if publishing is
            disabled or failed
        """
        if not self.enabled:
            return False

        message = json.dumps(
            {
                "event": event.value,
                "owner_id": owner_id,
                "payload": payload or {},
                "published_at": datetime.now(timezone.utc).isoformat(),
            },
            default=str,
        )
        try:
            client = await self._redis_factory()
            await client.publish(self.channel, message)
            return True
        except Exception as e:
            logger.warning(f"Failed to publish {event.value} for owner {owner_id}: {e}")
            return False

    async def session_completed(self, session: StudySession) -> None:
        await self.publish(
            NotificationEvent.SESSION_COMPLETED,
            session.owner_id,
            {
                "session_id": session.id,
                "topic_id": session.topic_id,
                "actual_duration": session.actual_duration,
                "planned_duration": session.planned_duration,
            },
        )

    async def goal_progressed(self, goal: Goal, outcome) -> None:
        """Publish milestone and completion events for a ProgressOutcome."""
        for milestone in outcome.completed_milestones:
            await self.publish(
                NotificationEvent.MILESTONE_COMPLETED,
                goal.owner_id,
                {
                    "goal_id": goal.id,
                    "milestone_id": milestone.id,
                    "title": milestone.title,
                    "target_value": milestone.target_value,
                },
            )
        if outcome.goal_completed:
            await self.publish(
                NotificationEvent.GOAL_COMPLETED,
                goal.owner_id,
                {
                    "goal_id": goal.id,
                    "title": goal.title,
                    "rewards": [r.title for r in outcome.earned_rewards],
                },
            )

    async def goal_overdue(self, goal: Goal) -> None:
        await self.publish(
            NotificationEvent.GOAL_OVERDUE,
            goal.owner_id,
            {"goal_id": goal.id, "title": goal.title, "end_date": goal.end_date},
        )


_publisher: Optional[NotificationPublisher] = None


def get_notification_publisher() -> NotificationPublisher:
    """Get the process-wide publisher (FastAPI dependency)."""
    global _publisher
    if _publisher is None:
        _publisher = NotificationPublisher()
    return _publisher
