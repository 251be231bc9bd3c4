"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across unit and integration tests.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root BEFORE any fixtures run
# This ensures POSTGRES_TEST_* variables are available
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

# Settings are read at import time, so the test environment has to be in
# place before anything from studytrack is imported.
os.environ.update(
    {
        "POSTGRES_HOST": os.environ.get("POSTGRES_HOST", "localhost"),
        "POSTGRES_PORT": os.environ.get("POSTGRES_PORT", "5432"),
        "POSTGRES_USER": os.environ.get("POSTGRES_TEST_USER", "testuser"),
        "POSTGRES_PASSWORD": os.environ.get("POSTGRES_TEST_PASSWORD", "testpass"),
        "POSTGRES_DB": os.environ.get("POSTGRES_TEST_DB", "testdb"),
        "REDIS_URL": os.environ.get("REDIS_URL", "redis://localhost:6379/1"),
        "API_KEY": "",
        "RATE_LIMITING_ENABLED": "false",
        "SWEEP_ENABLED": "false",
        "NOTIFICATIONS_ENABLED": "false",
        "DEBUG": "true",
    }
)

from studytrack.db.models import (  # noqa: E402
    Goal,
    GoalMilestone,
    GoalReward,
    SessionInterruption,
    StudySession,
)

OWNER_ID = "user-1"
T0 = datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)  # a Monday


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_redis() -> MagicMock:
    """
    Create a mock Redis client for unit testing.

    This allows testing Redis-dependent code without a real Redis server.
    """
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.setex = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.hget = AsyncMock(return_value=None)
    mock.hset = AsyncMock(return_value=1)
    mock.expire = AsyncMock(return_value=True)
    mock.ping = AsyncMock(return_value=True)
    mock.publish = AsyncMock(return_value=1)
    return mock


@pytest.fixture
def mock_db_session() -> MagicMock:
    """
    Create a mock database session for unit testing.
    """
    mock = MagicMock()
    mock.execute = AsyncMock()
    mock.scalar = AsyncMock()
    mock.commit = AsyncMock()
    mock.rollback = AsyncMock()
    mock.refresh = AsyncMock()
    mock.flush = AsyncMock()
    mock.delete = AsyncMock()
    mock.close = AsyncMock()
    mock.add = MagicMock()
    return mock


@pytest.fixture
def mock_publisher() -> MagicMock:
    """NotificationPublisher double recording every call."""
    mock = MagicMock()
    mock.publish = AsyncMock(return_value=True)
    mock.session_completed = AsyncMock()
    mock.goal_progressed = AsyncMock()
    mock.goal_overdue = AsyncMock()
    return mock


@pytest.fixture(autouse=True)
def stats_invalidate(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Keep unit tests away from Redis when services invalidate cached stats."""
    from studytrack.services.tracking import activity_stats

    invalidate = AsyncMock()
    monkeypatch.setattr(activity_stats, "invalidate", invalidate)
    return invalidate


def scalars_result(items: list[Any]) -> MagicMock:
    """Mimic the Result returned by AsyncSession.execute for ORM selects."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(items)
    result.scalars.return_value.first.return_value = items[0] if items else None
    result.scalar_one_or_none.return_value = items[0] if items else None
    return result


def rows_result(rows: list[Any]) -> MagicMock:
    """Mimic a Result of column tuples."""
    result = MagicMock()
    result.all.return_value = list(rows)
    result.scalars.return_value.all.return_value = [row[0] for row in rows]
    return result


def rowcount_result(rowcount: int) -> MagicMock:
    """Mimic the CursorResult of an UPDATE."""
    result = MagicMock()
    result.rowcount = rowcount
    return result


# ============================================================================
# Record Factories
# ============================================================================


def make_session(
    session_id: int = 1,
    status: str = "planned",
    owner_id: str = OWNER_ID,
    topic_id: str = "topic-a",
    planned_duration: int = 30,
    started_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
    actual_duration: Optional[int] = None,
    session_type: str = "focused",
    productivity_rating: Optional[int] = None,
    interruptions: Optional[list[tuple[datetime, Optional[datetime]]]] = None,
    average_focus_level: Optional[float] = None,
) -> StudySession:
    """Transient StudySession with every column set explicitly."""
    session = StudySession(
        id=session_id,
        owner_id=owner_id,
        topic_id=topic_id,
        session_type=session_type,
        planned_duration=planned_duration,
        status=status,
        created_at=started_at or T0,
        updated_at=started_at or T0,
        started_at=started_at,
        completed_at=completed_at,
        cancelled_at=None,
        actual_duration=actual_duration,
        productivity_rating=productivity_rating,
        productivity_comment=None,
        notes=None,
        tags=[],
        deep_focus_minutes=None,
        average_focus_level=average_focus_level,
    )
    session.interruptions = [
        SessionInterruption(position=i, started_at=start, ended_at=end)
        for i, (start, end) in enumerate(interruptions or [], start=1)
    ]
    return session


def make_goal(
    goal_id: int = 1,
    target_value: float = 100.0,
    current_value: float = 0.0,
    status: str = "active",
    owner_id: str = OWNER_ID,
    category: str = "study-time",
    unit: str = "minutes",
    milestones: Optional[list[float]] = None,
    rewards: Optional[list[str]] = None,
    related_topics: Optional[list[str]] = None,
    start_date: datetime = T0,
    end_date: Optional[datetime] = None,
    is_recurring: bool = False,
    recurrence_frequency: Optional[str] = None,
    recurrence_interval: int = 1,
    occurrence: int = 1,
    completed_at: Optional[datetime] = None,
) -> Goal:
    """Transient Goal with milestones and rewards attached."""
    goal = Goal(
        id=goal_id,
        owner_id=owner_id,
        title=f"Goal {goal_id}",
        description=None,
        goal_type="weekly",
        category=category,
        unit=unit,
        priority="medium",
        difficulty="moderate",
        tags=[],
        notes=None,
        related_topics=related_topics or [],
        target_value=target_value,
        current_value=current_value,
        status=status,
        start_date=start_date,
        end_date=end_date or start_date + timedelta(days=7),
        completed_at=completed_at,
        is_recurring=is_recurring,
        recurrence_frequency=recurrence_frequency,
        recurrence_interval=recurrence_interval,
        recurrence_end_date=None,
        recurrence_end_after_occurrences=None,
        occurrence=occurrence,
        source_goal_id=None,
        regenerated_at=None,
        created_at=start_date,
        updated_at=start_date,
    )
    goal.milestones = [
        GoalMilestone(
            id=index,
            title=f"Reach {value:g}",
            target_value=value,
            current_value=0.0,
            completed=False,
            completed_at=None,
            order=index,
        )
        for index, value in enumerate(milestones or [], start=1)
    ]
    goal.rewards = [
        GoalReward(
            id=index,
            title=f"{condition} reward",
            description=None,
            condition=condition,
            earned=False,
            earned_at=None,
        )
        for index, condition in enumerate(rewards or [], start=1)
    ]
    return goal


@pytest.fixture
def session_factory() -> Callable[..., StudySession]:
    return make_session


@pytest.fixture
def goal_factory() -> Callable[..., Goal]:
    return make_goal
