"""
Study Tracker API

FastAPI application wiring: logging, error handling, rate limiting, CORS,
routers and the in-process scheduler for the goal sweep.

Run:
    uvicorn studytrack.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studytrack.config import settings
from studytrack.db.redis import close_redis_pool
from studytrack.middleware.error_handling import setup_error_handling
from studytrack.middleware.rate_limit import setup_rate_limiting
from studytrack.routers import analytics, goals, health, sessions
from studytrack.services.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.SWEEP_ENABLED:
        start_scheduler()
    else:
        logger.info("Goal sweep scheduler disabled")

    yield

    if settings.SWEEP_ENABLED:
        stop_scheduler()
    await close_redis_pool()


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(title=f"{settings.APP_NAME} API", lifespan=lifespan)

    setup_error_handling(app, debug=settings.DEBUG)
    setup_rate_limiting(app, enabled=settings.RATE_LIMITING_ENABLED)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(sessions.router)
    app.include_router(goals.router)
    app.include_router(analytics.router)

    @app.get("/")
    async def root():
        return {"message": f"{settings.APP_NAME} API"}

    return app


app = create_app()
