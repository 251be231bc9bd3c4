"""
Scheduled Job Configuration

Configures the periodic goal sweep using APScheduler:
- Overdue/recurrence sweep every SWEEP_INTERVAL_MINUTES (default hourly)

Execution Context:
    The scheduler runs IN-PROCESS with FastAPI. It is started/stopped via
    FastAPI's lifespan context manager in studytrack/main.py when
    SWEEP_ENABLED is true.

    The scheduler does NOT execute the sweep directly. It queues the Celery
    task run_goal_sweep, and a worker executes it. The sweep itself takes
    "now" and a cursor as parameters, so the trigger carries no state.

Limitations:
    - Each API replica runs its own scheduler. Duplicate triggers are safe
      (the sweep is idempotent) but wasteful; run a single scheduler
      instance in multi-replica deployments.

Usage:
    start_scheduler()  # On app startup
    stop_scheduler()   # On app shutdown

    POST /api/goals/sweep runs the sweep inline instead of waiting for
    the next trigger.
"""

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from studytrack.config import settings, yaml_config

logger = logging.getLogger(__name__)

GOAL_SWEEP_JOB_ID = "goal_sweep"

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def trigger_goal_sweep() -> None:
    """Queue the overdue/recurrence sweep."""
    # Deferred import: avoids loading Celery and the DB engine at scheduler setup
    from studytrack.services.tasks import run_goal_sweep

    now = datetime.now(timezone.utc)
    run_goal_sweep.delay(now.isoformat())
    logger.info(f"Triggered goal sweep as of {now.isoformat()}")


def setup_scheduled_jobs() -> None:
    """Configure all scheduled jobs."""
    misfire_grace_time = yaml_config.get("scheduler", {}).get("misfire_grace_time", 600)

    scheduler.add_job(
        trigger_goal_sweep,
        IntervalTrigger(minutes=settings.SWEEP_INTERVAL_MINUTES),
        id=GOAL_SWEEP_JOB_ID,
        name="Goal Overdue/Recurrence Sweep",
        replace_existing=True,
        misfire_grace_time=misfire_grace_time,
        coalesce=True,
    )

    logger.info("Scheduled jobs configured:")
    logger.info(f"  - Goal sweep: every {settings.SWEEP_INTERVAL_MINUTES} minutes")


def start_scheduler() -> None:
    """Start the scheduler and configure jobs."""
    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    setup_scheduled_jobs()
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    if not scheduler.running:
        logger.warning("Scheduler not running")
        return

    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")


def get_scheduled_jobs() -> list[dict]:
    """Get list of scheduled jobs with their next run times."""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run": (
                    job.next_run_time.isoformat() if job.next_run_time else None
                ),
                "trigger": str(job.trigger),
            }
        )
    return jobs
