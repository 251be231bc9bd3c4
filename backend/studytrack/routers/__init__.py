"""API routers."""

from studytrack.routers import analytics, goals, health, sessions

__all__ = ["analytics", "goals", "health", "sessions"]
