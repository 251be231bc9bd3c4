"""
Celery Task Definitions

- run_goal_sweep: marks expired goals overdue and regenerates completed
  recurring goals (see services/tracking/sweep.py)

Retry Strategy:
    Uses tenacity for retry logic with exponential backoff:
    - sweep_retry: 3 attempts, 30s-2min backoff on database connectivity
      errors. Per-goal failures are handled inside the sweep and never
      reach this layer.

Usage:
    from studytrack.services.tasks import run_goal_sweep

    run_goal_sweep.delay()
    run_goal_sweep.delay(now="2024-05-01T00:00:00+00:00", batch_size=50)
"""

# =============================================================================
# Standard library imports
# =============================================================================
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

# =============================================================================
# Third-party imports
# =============================================================================
from sqlalchemy.exc import DBAPIError, OperationalError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# =============================================================================
# Internal imports
# =============================================================================
from studytrack.db.base import task_session_maker
from studytrack.services.notifications import NotificationPublisher
from studytrack.services.queue import celery_app
from studytrack.services.tracking.sweep import GoalSweep

logger = logging.getLogger(__name__)

# =============================================================================
# Retry configurations using tenacity
# =============================================================================

# Transient database failures: 3 attempts, 30s-2min exponential backoff
sweep_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=30, min=30, max=120),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    retry=retry_if_exception_type((OperationalError, DBAPIError, ConnectionError)),
    reraise=True,
)


# =============================================================================
# Sweep
# =============================================================================


async def _run_goal_sweep_impl(
    now: datetime, batch_size: Optional[int] = None
) -> dict[str, Any]:
    """Drain the sweep backlog with a task-local database session."""
    async with task_session_maker() as session:
        sweep = GoalSweep(session, NotificationPublisher())
        result = await sweep.run_until_drained(now, batch_size=batch_size)
    return result.model_dump(mode="json")


@sweep_retry
def _run_goal_sweep_with_retry(
    now: datetime, batch_size: Optional[int] = None
) -> dict[str, Any]:
    """Run the sweep with tenacity retry logic."""
    return asyncio.run(_run_goal_sweep_impl(now, batch_size))


@celery_app.task(name="studytrack.services.tasks.run_goal_sweep")
def run_goal_sweep(
    now: Optional[str] = None,
    batch_size: Optional[int] = None,
) -> dict[str, Any]:
    """
    Celery task running the overdue/recurrence sweep.

    Args:
        now: ISO timestamp to sweep as of (defaults to the current time)
        batch_size: Goals per pass per batch (defaults to SWEEP_BATCH_SIZE)

    Returns:
        SweepResult as a dict
    """
    as_of = datetime.fromisoformat(now) if now else datetime.now(timezone.utc)
    if as_of.tzinfo is None:
        as_of = as_of.replace(tzinfo=timezone.utc)

    try:
        result = _run_goal_sweep_with_retry(as_of, batch_size)
    except (OperationalError, DBAPIError, ConnectionError) as e:
        logger.error(f"Goal sweep failed after all retries: {e}")
        raise

    logger.info(f"Goal sweep finished: {result}")
    return result
