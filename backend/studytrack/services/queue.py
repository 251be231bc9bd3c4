"""
Celery Queue Configuration

Background execution for the overdue/recurrence sweep. The in-process
APScheduler job only enqueues; a Celery worker runs the sweep so a long
backlog never blocks the API event loop.

Task Time Limits:
- Sweep: 5 minutes soft, 10 minutes hard (each run is bounded by
  SWEEP_BATCH_SIZE per pass)

Usage:
    from studytrack.services.queue import celery_app
    from studytrack.services.tasks import run_goal_sweep

    # Queue a task
    run_goal_sweep.delay()

    # Run worker: celery -A studytrack.services.queue worker -l info
"""

from celery import Celery

from studytrack.config import settings

celery_app = Celery(
    "studytrack",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["studytrack.services.tasks"],
)

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Task routing
    task_routes={
        "studytrack.services.tasks.run_goal_sweep": {"queue": "maintenance"},
    },
    # Retry configuration
    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,
    # Result expiration (24 hours)
    result_expires=86400,
    task_soft_time_limit=300,  # 5 minutes soft limit
    task_time_limit=600,  # 10 minutes hard limit
    # Concurrency
    worker_prefetch_multiplier=1,
    # Task acknowledgment
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)


def get_queue_stats() -> dict:
    """
    Get statistics about the task queues.

    Returns:
        Dictionary with queue statistics
    """
    inspect = celery_app.control.inspect()

    active = inspect.active() or {}
    reserved = inspect.reserved() or {}
    scheduled = inspect.scheduled() or {}

    return {
        "active_tasks": sum(len(v) for v in active.values()),
        "queued_tasks": sum(len(v) for v in reserved.values()),
        "scheduled_tasks": sum(len(v) for v in scheduled.values()),
        "workers": list(active.keys()),
    }
