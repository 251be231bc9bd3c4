"""
Duration Accountant

Pure functions computing active study time from a session's lifecycle
timestamps and its pause intervals:

    active = (ended_at - started_at) - sum(paused intervals)

expressed in whole minutes, floored. Nothing here touches the database,
so the result is reproducible from the stored record at any time.

Usage:
    from studytrack.services.tracking.duration import compute_active_minutes

    minutes = compute_active_minutes(
        session.started_at, session.completed_at, session.interruptions
    )
"""

import logging
import math
from datetime import datetime
from typing import Iterable, Optional, Protocol

from studytrack.middleware.error_handling import InvariantViolation

logger = logging.getLogger(__name__)


class Interval(Protocol):
    """Anything with a start and an optional end (e.g. SessionInterruption)."""

    started_at: datetime
    ended_at: Optional[datetime]


def _validated(interruptions: Iterable[Interval]) -> list[Interval]:
    """
    Return interruptions sorted by start after checking they are closed,
    well-formed and non-overlapping.
    """
    intervals = sorted(interruptions, key=lambda i: i.started_at)
    previous_end: Optional[datetime] = None

    for interval in intervals:
        if interval.ended_at is None:
            raise InvariantViolation(
                "Cannot account duration with an open interruption",
                details={"started_at": interval.started_at.isoformat()},
            )
        if interval.ended_at < interval.started_at:
            raise InvariantViolation(
                "Interruption ends before it starts",
                details={
                    "started_at": interval.started_at.isoformat(),
                    "ended_at": interval.ended_at.isoformat(),
                },
            )
        if previous_end is not None and interval.started_at < previous_end:
            raise InvariantViolation(
                "Interruptions overlap",
                details={
                    "started_at": interval.started_at.isoformat(),
                    "previous_end": previous_end.isoformat(),
                },
            )
        previous_end = interval.ended_at

    return intervals


def paused_seconds(
    interruptions: Iterable[Interval],
    window_start: datetime,
    window_end: datetime,
) -> float:
    """
    Total paused seconds inside [window_start, window_end].

    Intervals are clipped to the window, so a pause recorded slightly
    outside the session's bounds only counts for the overlapping part.
    """
    total = 0.0
    for interval in _validated(interruptions):
        start = max(interval.started_at, window_start)
        end = min(interval.ended_at, window_end)
        if end > start:
            total += (end - start).total_seconds()
    return total


def compute_active_minutes(
    started_at: datetime,
    ended_at: datetime,
    interruptions: Iterable[Interval],
) -> int:
    """
    Compute whole active minutes for a finished session.

    Args:
        started_at: When the session was started
        ended_at: Terminal timestamp (completion time)
        interruptions: Closed pause intervals

    Returns:
        floor((ended_at - started_at - paused) / 60), never negative

    Raises:
        InvariantViolation: If an interruption is open, malformed or
            overlaps another one
    """
    paused = paused_seconds(interruptions, started_at, ended_at)
    raw_seconds = (ended_at - started_at).total_seconds() - paused

    if raw_seconds < 0:
        # Clock skew between writers; never report negative study time
        logger.warning(
            f"Negative active duration clamped to 0 "
            f"(start={started_at.isoformat()}, end={ended_at.isoformat()}, "
            f"paused={paused:.0f}s)"
        )
        return 0

    return math.floor(raw_seconds / 60)
