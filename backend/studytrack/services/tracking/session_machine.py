"""
Session State Machine

Single transition table for study sessions plus the record mutations each
transition performs. Pure: callers own persistence and the atomic
single-open-session check (see session_service).

Transitions:
    planned  --start-->    active
    active   --pause-->    paused
    paused   --resume-->   active
    active   --complete--> completed
    paused   --complete--> completed
    planned  --cancel-->   cancelled
    active   --cancel-->   cancelled
    paused   --cancel-->   cancelled

Every other (status, action) pair is rejected with InvalidTransition. The
module refuses to import if a status/action pair is neither allowed nor
explicitly rejected, so adding a status forces a decision for each action.
"""

import itertools
import logging
from datetime import datetime, timedelta
from typing import Optional

from studytrack.db.models import SessionInterruption, StudySession
from studytrack.enums.tracking import SessionAction, SessionStatus
from studytrack.middleware.error_handling import InvalidTransition, InvariantViolation
from studytrack.models.tracking import FocusMetricsPayload, TransitionPayload
from studytrack.services.tracking.duration import compute_active_minutes

logger = logging.getLogger(__name__)

S = SessionStatus
A = SessionAction

TRANSITIONS: dict[tuple[SessionStatus, SessionAction], SessionStatus] = {
    (S.PLANNED, A.START): S.ACTIVE,
    (S.ACTIVE, A.PAUSE): S.PAUSED,
    (S.PAUSED, A.RESUME): S.ACTIVE,
    (S.ACTIVE, A.COMPLETE): S.COMPLETED,
    (S.PAUSED, A.COMPLETE): S.COMPLETED,
    (S.PLANNED, A.CANCEL): S.CANCELLED,
    (S.ACTIVE, A.CANCEL): S.CANCELLED,
    (S.PAUSED, A.CANCEL): S.CANCELLED,
}

REJECTED: dict[tuple[SessionStatus, SessionAction], str] = {
    (S.PLANNED, A.PAUSE): "session has not been started",
    (S.PLANNED, A.RESUME): "session has not been started",
    (S.PLANNED, A.COMPLETE): "session has not been started",
    (S.ACTIVE, A.START): "session is already active",
    (S.ACTIVE, A.RESUME): "session is not paused",
    (S.PAUSED, A.START): "session is already started",
    (S.PAUSED, A.PAUSE): "session is already paused",
    **{
        (terminal, action): "session is finished"
        for terminal in (S.COMPLETED, S.CANCELLED)
        for action in SessionAction
    },
}


def _check_table() -> None:
    every_pair = set(itertools.product(SessionStatus, SessionAction))
    decided = set(TRANSITIONS) | set(REJECTED)
    undecided = every_pair - decided
    both = set(TRANSITIONS) & set(REJECTED)
    if undecided or both:
        raise RuntimeError(
            f"Session transition table is inconsistent: "
            f"undecided={sorted(undecided)}, conflicting={sorted(both)}"
        )


_check_table()


def next_status(
    session_id: Optional[int],
    current: SessionStatus,
    action: SessionAction,
) -> SessionStatus:
    """
    Look up the target state for an action.

    Raises:
        InvalidTransition: If the action is not allowed from current
    """
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransition(
            "session",
            session_id,
            current.value,
            action.value,
            reason=REJECTED.get((current, action)),
        ) from None


def allowed_actions(current: SessionStatus) -> list[SessionAction]:
    """Actions accepted from the given state, in declaration order."""
    return [action for action in SessionAction if (current, action) in TRANSITIONS]


def _close_interruption(
    interruption: SessionInterruption,
    now: datetime,
    pause_minutes: Optional[float] = None,
) -> None:
    end = now
    if pause_minutes is not None:
        # Client-reported pause length, kept within [start, now]
        reported = interruption.started_at + timedelta(minutes=pause_minutes)
        end = min(reported, now)
    interruption.ended_at = max(end, interruption.started_at)


def _append_note(notes: Optional[str], line: str) -> str:
    return f"{notes}\n{line}" if notes else line


def merge_focus(session: StudySession, focus: FocusMetricsPayload) -> None:
    """Overwrite only the focus fields the client supplied."""
    for field in focus.model_fields_set:
        setattr(session, field, getattr(focus, field))


def apply_transition(
    session: StudySession,
    action: SessionAction,
    now: datetime,
    payload: Optional[TransitionPayload] = None,
) -> SessionStatus:
    """
    Validate and apply an action to a session record in place.

    Args:
        session: Session to mutate
        action: Requested action
        now: Timestamp recorded for the transition
        payload: Optional resume/complete/cancel data

    Returns:
        The new status

    Raises:
        InvalidTransition: Action not allowed, or resume without an open
            interruption
        InvariantViolation: Interruption bookkeeping is corrupt
    """
    current = SessionStatus(session.status)
    target = next_status(session.id, current, action)
    open_interruption = session.open_interruption

    if action == SessionAction.START:
        session.started_at = now

    elif action == SessionAction.PAUSE:
        if open_interruption is not None:
            raise InvariantViolation(
                "Active session already has an open interruption",
                details={"session_id": session.id},
            )
        session.interruptions.append(
            SessionInterruption(
                position=len(session.interruptions) + 1,
                started_at=now,
                ended_at=None,
            )
        )

    elif action == SessionAction.RESUME:
        if open_interruption is None:
            raise InvalidTransition(
                "session",
                session.id,
                current.value,
                action.value,
                reason="no open interruption to close",
            )
        _close_interruption(
            open_interruption,
            now,
            payload.pause_duration_minutes if payload else None,
        )

    elif action == SessionAction.COMPLETE:
        if open_interruption is not None:
            _close_interruption(open_interruption, now)
        session.completed_at = now
        session.actual_duration = compute_active_minutes(
            session.started_at, now, session.interruptions
        )
        if payload is not None:
            if payload.notes is not None:
                session.notes = payload.notes
            if payload.productivity is not None:
                session.productivity_rating = payload.productivity.rating
                session.productivity_comment = payload.productivity.comment
            if payload.focus is not None:
                merge_focus(session, payload.focus)
            if payload.tags is not None:
                session.tags = list(payload.tags)

    elif action == SessionAction.CANCEL:
        if open_interruption is not None:
            _close_interruption(open_interruption, now)
        session.cancelled_at = now
        if payload is not None and payload.reason:
            session.notes = _append_note(session.notes, f"Cancelled: {payload.reason}")

    session.status = target.value
    logger.debug(f"Session {session.id}: {current.value} --{action.value}--> {target.value}")
    return target
