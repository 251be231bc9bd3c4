"""Study Tracker backend: timed study sessions, goals, streaks and analytics."""

__version__ = "0.1.0"
