"""
Health Check Endpoints

Provides health check endpoints for monitoring and orchestration.

Endpoints:
- GET /api/health - Basic health check
- GET /api/health/detailed - Detailed health with dependency checks
- GET /api/health/ready - Readiness probe for orchestration systems
- GET /api/health/queue - Celery queue statistics for the sweep worker
"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from studytrack.config import settings
from studytrack.db.base import get_db
from studytrack.db.redis import get_redis
from studytrack.services.queue import get_queue_stats
from studytrack.services.scheduler import get_scheduled_jobs

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """
    Basic health check.

    Returns a simple status response indicating the API is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@router.get("/detailed")
async def detailed_health_check(db: AsyncSession = Depends(get_db)):
    """
    Detailed health check with dependency status.

    Checks connectivity to:
    - PostgreSQL database
    - Redis (activity stats cache, notifications)
    And reports the scheduled sweep job.
    """
    health = {"status": "healthy", "service": settings.APP_NAME, "dependencies": {}}

    # Check PostgreSQL
    try:
        await db.execute(text("SELECT 1"))
        health["dependencies"]["postgres"] = {"status": "healthy"}
    except Exception as e:
        health["dependencies"]["postgres"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    # Check Redis
    try:
        r = await get_redis()
        await r.ping()
        health["dependencies"]["redis"] = {"status": "healthy"}
    except Exception as e:
        health["dependencies"]["redis"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    health["scheduler"] = {
        "enabled": settings.SWEEP_ENABLED,
        "jobs": get_scheduled_jobs(),
    }

    return health


@router.get("/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)):
    """
    Readiness probe for orchestration systems.

    Only PostgreSQL is critical; Redis outages degrade caching and
    notifications but do not stop the service.
    """
    try:
        await db.execute(text("SELECT 1"))
        return {"ready": True}
    except Exception as e:
        return {"ready": False, "error": str(e)}


@router.get("/queue")
async def queue_check() -> dict[str, Any]:
    """
    Celery queue statistics.

    Returns counts of active, queued and scheduled sweep tasks.
    """
    try:
        stats = get_queue_stats()
        return {"status": "ok", **stats}
    except Exception as e:
        return {
            "status": "error",
            "error": str(e),
            "message": "Could not connect to Celery. Is the worker running?",
        }
