"""
Study Session Service

Persists sessions and drives them through the state machine.

Single open session per owner:
    The partial unique index uq_study_sessions_owner_open allows at most
    one planned/active/paused row per owner. create_session() relies on it
    (IntegrityError -> ConflictingActiveSession) instead of a
    check-then-insert, and "start" is a conditional UPDATE whose rowcount
    tells whether it won.

Completion side effects, after the session commit:
    1. Matching active goals receive progress (GoalService.contribute_session)
    2. sessionCompleted / goal events are published
    3. The owner's cached activity stats are invalidated

Usage:
    from studytrack.services.tracking.session_service import SessionService

    service = SessionService(db, publisher)
    session = await service.create_session(owner_id, request)
    session, goal_updates = await service.transition(
        owner_id, session.id, SessionAction.START
    )
"""

import logging
from datetime import date, datetime, timezone, tzinfo
from statistics import mean
from typing import Optional

from sqlalchemy import exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from studytrack.db.models import Goal, StudySession
from studytrack.enums.tracking import (
    OPEN_SESSION_STATUSES,
    SessionAction,
    SessionStatus,
    SessionType,
)
from studytrack.middleware.error_handling import (
    ConflictingActiveSession,
    InvalidTransition,
    NotFoundError,
)
from studytrack.models.tracking import (
    SessionCreateRequest,
    SessionResponse,
    SessionUpdateRequest,
    TodaySessionsResponse,
    TransitionPayload,
)
from studytrack.services.notifications import NotificationPublisher
from studytrack.services.tracking import activity_stats
from studytrack.services.tracking.analytics import local_day_bounds
from studytrack.services.tracking.goal_service import GoalService
from studytrack.services.tracking.progress import ProgressOutcome
from studytrack.services.tracking.session_machine import (
    apply_transition,
    merge_focus,
    next_status,
)

logger = logging.getLogger(__name__)

_OPEN_VALUES = [status.value for status in OPEN_SESSION_STATUSES]


class SessionService:
    """
    Study session lifecycle service.
    """

    def __init__(
        self,
        db: AsyncSession,
        publisher: Optional[NotificationPublisher] = None,
        goal_service: Optional[GoalService] = None,
    ):
        """
        Initialize session service.

        Args:
            db: Database session
            publisher: Event publisher (optional; events are skipped without it)
            goal_service: Goal service used for completion contributions
        """
        self.db = db
        self.publisher = publisher
        self.goals = goal_service or GoalService(db, publisher)

    # =========================================================================
    # Lookup
    # =========================================================================

    async def get_session(
        self, owner_id: str, session_id: int, for_update: bool = False
    ) -> StudySession:
        """
        Fetch an owner's session.

        Raises:
            NotFoundError: Missing, or owned by someone else
        """
        query = select(StudySession).where(
            StudySession.id == session_id, StudySession.owner_id == owner_id
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        session = result.scalar_one_or_none()
        if session is None:
            raise NotFoundError("session", session_id)
        return session

    async def get_open_session(self, owner_id: str) -> Optional[StudySession]:
        """The owner's planned, active or paused session, if any."""
        result = await self.db.execute(
            select(StudySession).where(
                StudySession.owner_id == owner_id,
                StudySession.status.in_(_OPEN_VALUES),
            )
        )
        return result.scalars().first()

    async def list_sessions(
        self,
        owner_id: str,
        status: Optional[SessionStatus] = None,
        topic_id: Optional[str] = None,
        session_type: Optional[SessionType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[StudySession], int]:
        """
        Session history, most recent first.

        Date filters apply to created_at. Returns (page items, total).
        """
        conditions = [StudySession.owner_id == owner_id]
        if status:
            conditions.append(StudySession.status == status.value)
        if topic_id:
            conditions.append(StudySession.topic_id == topic_id)
        if session_type:
            conditions.append(StudySession.session_type == session_type.value)
        if start_date:
            conditions.append(StudySession.created_at >= start_date)
        if end_date:
            conditions.append(StudySession.created_at <= end_date)

        total = await self.db.scalar(
            select(func.count()).select_from(StudySession).where(*conditions)
        )
        result = await self.db.execute(
            select(StudySession)
            .where(*conditions)
            .order_by(StudySession.created_at.desc(), StudySession.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    async def get_today(
        self,
        owner_id: str,
        tz: tzinfo = timezone.utc,
        today: Optional[date] = None,
    ) -> TodaySessionsResponse:
        """Sessions started (or planned) today in the owner's timezone."""
        today = today or datetime.now(tz).date()
        lower, upper = local_day_bounds(today, today, tz)
        moment = func.coalesce(StudySession.started_at, StudySession.created_at)

        result = await self.db.execute(
            select(StudySession)
            .where(
                StudySession.owner_id == owner_id,
                moment >= lower,
                moment < upper,
            )
            .order_by(moment)
        )
        sessions = list(result.scalars().all())
        completed = [s for s in sessions if s.status == SessionStatus.COMPLETED.value]
        ratings = [s.productivity_rating for s in completed if s.productivity_rating]

        return TodaySessionsResponse(
            sessions=[SessionResponse.model_validate(s) for s in sessions],
            total_sessions=len(sessions),
            completed_sessions=len(completed),
            total_minutes=sum(s.actual_duration or 0 for s in completed),
            average_productivity=round(mean(ratings), 2) if ratings else None,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_session(
        self,
        owner_id: str,
        request: SessionCreateRequest,
        now: Optional[datetime] = None,
    ) -> StudySession:
        """
        Create a planned session.

        Raises:
            ConflictingActiveSession: The owner already has an open session
        """
        now = now or datetime.now(timezone.utc)

        session = StudySession(
            owner_id=owner_id,
            topic_id=request.topic_id,
            session_type=request.session_type.value,
            planned_duration=request.planned_duration,
            status=SessionStatus.PLANNED.value,
            created_at=now,
            updated_at=now,
            notes=request.notes,
            tags=list(request.tags),
            interruptions=[],
        )
        self.db.add(session)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            open_session = await self.get_open_session(owner_id)
            logger.info(f"Rejected second open session for owner {owner_id}")
            raise ConflictingActiveSession(
                owner_id, open_session.id if open_session else None
            ) from e

        logger.info(
            f"Created session {session.id} for owner {owner_id} "
            f"(topic={request.topic_id}, planned={request.planned_duration}m)"
        )
        return session

    async def transition(
        self,
        owner_id: str,
        session_id: int,
        action: SessionAction,
        payload: Optional[TransitionPayload] = None,
        now: Optional[datetime] = None,
    ) -> tuple[StudySession, list[tuple[Goal, ProgressOutcome]]]:
        """
        Apply a state machine action.

        Returns:
            (session, goal updates); goal updates are only produced by
            "complete"

        Raises:
            NotFoundError: Unknown session
            InvalidTransition: Action not allowed from the current state
            ConflictingActiveSession: "start" lost a race for the open slot
        """
        now = now or datetime.now(timezone.utc)
        session = await self.get_session(owner_id, session_id, for_update=True)

        if action == SessionAction.START:
            await self._start(session, now)
        else:
            apply_transition(session, action, now, payload)
            session.updated_at = now
            await self.db.commit()

        logger.info(f"Session {session_id} {action.value} -> {session.status}")

        goal_updates: list[tuple[Goal, ProgressOutcome]] = []
        if action == SessionAction.COMPLETE:
            goal_updates = await self._after_completion(session, now)
        elif action == SessionAction.CANCEL:
            await activity_stats.invalidate(owner_id)

        return session, goal_updates

    async def update_details(
        self, owner_id: str, session_id: int, request: SessionUpdateRequest
    ) -> StudySession:
        """Edit notes, tags, productivity or focus. Lifecycle fields are untouched."""
        session = await self.get_session(owner_id, session_id)

        if request.notes is not None:
            session.notes = request.notes
        if request.tags is not None:
            session.tags = list(request.tags)
        if request.productivity is not None:
            session.productivity_rating = request.productivity.rating
            session.productivity_comment = request.productivity.comment
        if request.focus is not None:
            merge_focus(session, request.focus)
        session.updated_at = datetime.now(timezone.utc)

        await self.db.commit()
        return session

    async def delete_session(self, owner_id: str, session_id: int) -> None:
        """
        Delete a planned, active or paused session.

        Raises:
            InvalidTransition: The session is completed or cancelled
        """
        session = await self.get_session(owner_id, session_id)
        status = SessionStatus(session.status)
        if status.is_terminal:
            raise InvalidTransition(
                "session",
                session_id,
                status.value,
                "delete",
                reason="finished sessions are kept for history",
            )
        await self.db.delete(session)
        await self.db.commit()
        logger.info(f"Deleted session {session_id} for owner {owner_id}")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _start(self, session: StudySession, now: datetime) -> None:
        """
        planned -> active as a conditional UPDATE.

        The row only changes if it is still planned and the owner has no
        other open session; rowcount 0 means another writer got there first.
        """
        next_status(session.id, SessionStatus(session.status), SessionAction.START)

        other = aliased(StudySession)
        result = await self.db.execute(
            update(StudySession)
            .where(
                StudySession.id == session.id,
                StudySession.status == SessionStatus.PLANNED.value,
                ~exists().where(
                    other.owner_id == session.owner_id,
                    other.id != session.id,
                    other.status.in_(_OPEN_VALUES),
                ),
            )
            .values(
                status=SessionStatus.ACTIVE.value,
                started_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            await self.db.rollback()
            current = await self.get_session(session.owner_id, session.id)
            if current.status != SessionStatus.PLANNED.value:
                raise InvalidTransition(
                    "session", session.id, current.status, SessionAction.START.value
                )
            open_session = await self.get_open_session(session.owner_id)
            raise ConflictingActiveSession(
                session.owner_id, open_session.id if open_session else None
            )

        await self.db.commit()
        await self.db.refresh(session)

    async def _after_completion(
        self, session: StudySession, now: datetime
    ) -> list[tuple[Goal, ProgressOutcome]]:
        if self.publisher is not None:
            await self.publisher.session_completed(session)

        goal_updates = await self.goals.contribute_session(session, now)
        if not goal_updates:
            await activity_stats.invalidate(session.owner_id)
        return goal_updates
