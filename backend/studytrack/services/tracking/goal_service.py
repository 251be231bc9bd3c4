"""
Goal Service

Persistence and orchestration around the goal progress engine.

Every progress write goes through apply_delta() while the goal row is held
with SELECT ... FOR UPDATE, so concurrent deltas to one goal serialize and
each is computed against the latest stored value.

Usage:
    from studytrack.services.tracking.goal_service import GoalService

    service = GoalService(db, publisher)
    goal, outcome = await service.apply_progress(owner_id, goal_id, 30, ProgressMode.ADD)
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studytrack.db.models import Goal, GoalMilestone, GoalReward, StudySession
from studytrack.enums.tracking import (
    GoalCategory,
    GoalDifficulty,
    GoalStatus,
    GoalType,
    GoalUnit,
    ProgressMode,
)
from studytrack.middleware.error_handling import (
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from studytrack.models.tracking import (
    GoalCreateRequest,
    GoalProgressResponse,
    GoalResponse,
    GoalTemplateSuggestion,
    GoalUpdateRequest,
    MilestoneCreate,
    MilestoneResponse,
    RewardResponse,
)
from studytrack.services.notifications import NotificationPublisher
from studytrack.services.tracking import activity_stats
from studytrack.services.tracking.analytics import goal_matches_topic
from studytrack.services.tracking.progress import ProgressOutcome, apply_delta

logger = logging.getLogger(__name__)


# Owner-initiated status changes: target -> statuses it may be reached from.
# COMPLETED additionally requires the goal to be active and is routed
# through the progress engine.
STATUS_SOURCES: dict[GoalStatus, frozenset[GoalStatus]] = {
    GoalStatus.ACTIVE: frozenset({GoalStatus.PAUSED}),
    GoalStatus.PAUSED: frozenset({GoalStatus.ACTIVE}),
    GoalStatus.CANCELLED: frozenset(
        {GoalStatus.ACTIVE, GoalStatus.PAUSED, GoalStatus.OVERDUE}
    ),
    GoalStatus.COMPLETED: frozenset({GoalStatus.ACTIVE}),
}

SORTABLE_FIELDS = {
    "created_at": Goal.created_at,
    "end_date": Goal.end_date,
    "title": Goal.title,
    "priority": Goal.priority,
    "current_value": Goal.current_value,
}

GOAL_TEMPLATES = [
    GoalTemplateSuggestion(
        title="Daily Study Time",
        description="Complete 2 hours of focused study time",
        goal_type=GoalType.DAILY,
        category=GoalCategory.STUDY_TIME,
        target_value=120,
        unit=GoalUnit.MINUTES,
        difficulty=GoalDifficulty.MODERATE,
    ),
    GoalTemplateSuggestion(
        title="Weekly Topic Completion",
        description="Complete 3 topics this week",
        goal_type=GoalType.WEEKLY,
        category=GoalCategory.TOPICS_COMPLETED,
        target_value=3,
        unit=GoalUnit.TOPICS,
        difficulty=GoalDifficulty.CHALLENGING,
    ),
    GoalTemplateSuggestion(
        title="Monthly Skill Development",
        description="Master a new technology or framework",
        goal_type=GoalType.MONTHLY,
        category=GoalCategory.SKILL_DEVELOPMENT,
        target_value=1,
        unit=GoalUnit.PROJECTS,
        difficulty=GoalDifficulty.CHALLENGING,
    ),
    GoalTemplateSuggestion(
        title="Maintain Study Streak",
        description="Study consistently for 30 days",
        goal_type=GoalType.MONTHLY,
        category=GoalCategory.STREAK_MAINTENANCE,
        target_value=30,
        unit=GoalUnit.DAYS,
        difficulty=GoalDifficulty.EXTREME,
    ),
    GoalTemplateSuggestion(
        title="Algorithm Practice",
        description="Solve 50 algorithm problems",
        goal_type=GoalType.MONTHLY,
        category=GoalCategory.PRACTICE,
        target_value=50,
        unit=GoalUnit.PROBLEMS,
        difficulty=GoalDifficulty.CHALLENGING,
    ),
]


def session_contribution(goal: Goal, session: StudySession) -> Optional[float]:
    """
    Amount a completed session adds to a goal, or None if it does not count.

    - study-time goals: actual minutes (converted for hour-based goals)
    - sessions-completed goals: 1 per session
    """
    if not session.actual_duration or session.actual_duration <= 0:
        return None
    if not goal_matches_topic(goal, session.topic_id):
        return None

    if goal.category == GoalCategory.STUDY_TIME.value:
        if goal.unit == GoalUnit.MINUTES.value:
            return float(session.actual_duration)
        if goal.unit == GoalUnit.HOURS.value:
            return session.actual_duration / 60
        return None
    if goal.category == GoalCategory.SESSIONS_COMPLETED.value:
        return 1.0
    return None


def progress_response(goal: Goal, outcome: ProgressOutcome) -> GoalProgressResponse:
    return GoalProgressResponse(
        goal=GoalResponse.model_validate(goal),
        previous_value=outcome.previous_value,
        current_value=outcome.current_value,
        goal_completed=outcome.goal_completed,
        completed_milestones=[
            MilestoneResponse.model_validate(m) for m in outcome.completed_milestones
        ],
        earned_rewards=[RewardResponse.model_validate(r) for r in outcome.earned_rewards],
    )


class GoalService:
    """
    Goal management and progress tracking.
    """

    def __init__(
        self,
        db: AsyncSession,
        publisher: Optional[NotificationPublisher] = None,
    ):
        self.db = db
        self.publisher = publisher

    # =========================================================================
    # Lookup
    # =========================================================================

    async def get_goal(
        self, owner_id: str, goal_id: int, for_update: bool = False
    ) -> Goal:
        """
        Fetch an owner's goal.

        Raises:
            NotFoundError: Missing, or owned by someone else
        """
        query = select(Goal).where(Goal.id == goal_id, Goal.owner_id == owner_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        goal = result.scalar_one_or_none()
        if goal is None:
            raise NotFoundError("goal", goal_id)
        return goal

    async def list_goals(
        self,
        owner_id: str,
        goal_type: Optional[GoalType] = None,
        status: Optional[GoalStatus] = None,
        category: Optional[GoalCategory] = None,
        page: int = 1,
        page_size: int = 20,
        sort_by: str = "created_at",
        descending: bool = True,
    ) -> tuple[list[Goal], int]:
        """List goals with optional filters. Returns (page items, total)."""
        conditions = [Goal.owner_id == owner_id]
        if goal_type:
            conditions.append(Goal.goal_type == goal_type.value)
        if status:
            conditions.append(Goal.status == status.value)
        if category:
            conditions.append(Goal.category == category.value)

        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Cannot sort goals by '{sort_by}'",
                details={"allowed": sorted(SORTABLE_FIELDS)},
            )
        column = SORTABLE_FIELDS[sort_by]

        total = await self.db.scalar(
            select(func.count()).select_from(Goal).where(*conditions)
        )
        result = await self.db.execute(
            select(Goal)
            .where(*conditions)
            .order_by(column.desc() if descending else column.asc(), Goal.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total or 0

    async def list_active_goals(self, owner_id: str) -> list[Goal]:
        """Active goals ordered by deadline."""
        result = await self.db.execute(
            select(Goal)
            .where(Goal.owner_id == owner_id, Goal.status == GoalStatus.ACTIVE.value)
            .order_by(Goal.end_date, Goal.id)
        )
        return list(result.scalars().all())

    @staticmethod
    def goal_templates() -> list[GoalTemplateSuggestion]:
        return list(GOAL_TEMPLATES)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_goal(
        self,
        owner_id: str,
        request: GoalCreateRequest,
        now: Optional[datetime] = None,
    ) -> Goal:
        """
        Create an active goal with its milestones and rewards.

        Raises:
            ValidationError: end_date not after the (defaulted) start_date
        """
        now = now or datetime.now(timezone.utc)
        start_date = request.start_date or now
        if request.end_date <= start_date:
            raise ValidationError(
                "end_date must be after start_date",
                details={
                    "start_date": start_date.isoformat(),
                    "end_date": request.end_date.isoformat(),
                },
            )

        pattern = request.recurrence_pattern if request.is_recurring else None
        goal = Goal(
            owner_id=owner_id,
            title=request.title,
            description=request.description,
            goal_type=request.goal_type.value,
            category=request.category.value,
            unit=request.unit.value,
            priority=request.priority.value,
            difficulty=request.difficulty.value,
            target_value=request.target_value,
            current_value=0.0,
            status=GoalStatus.ACTIVE.value,
            start_date=start_date,
            end_date=request.end_date,
            completed_at=None,
            related_topics=list(request.related_topics),
            tags=list(request.tags),
            notes=request.notes,
            is_recurring=pattern is not None,
            recurrence_frequency=pattern.frequency.value if pattern else None,
            recurrence_interval=pattern.interval if pattern else 1,
            recurrence_end_date=pattern.end_date if pattern else None,
            recurrence_end_after_occurrences=(
                pattern.end_after_occurrences if pattern else None
            ),
            occurrence=1,
            source_goal_id=None,
            created_at=now,
            updated_at=now,
        )
        goal.milestones = [
            GoalMilestone(
                title=m.title,
                target_value=m.target_value,
                current_value=0.0,
                completed=False,
                completed_at=None,
                order=m.order if m.order is not None else index,
            )
            for index, m in enumerate(request.milestones, start=1)
        ]
        goal.rewards = [
            GoalReward(
                title=r.title,
                description=r.description,
                condition=r.condition.value,
                earned=False,
                earned_at=None,
            )
            for r in request.rewards
        ]

        self.db.add(goal)
        await self.db.commit()
        logger.info(f"Created goal {goal.id} for owner {owner_id}: {goal.title}")
        return goal

    async def update_goal(
        self, owner_id: str, goal_id: int, request: GoalUpdateRequest
    ) -> Goal:
        """Update descriptive fields. Progress and status are not editable here."""
        goal = await self.get_goal(owner_id, goal_id)
        changes = request.model_dump(exclude_unset=True)

        if "end_date" in changes and changes["end_date"] is not None:
            if changes["end_date"] <= goal.start_date:
                raise ValidationError(
                    "end_date must be after start_date",
                    details={"goal_id": goal_id},
                )

        for field_name, value in changes.items():
            if value is None and field_name in ("title", "end_date", "priority"):
                continue
            if hasattr(value, "value"):
                value = value.value
            setattr(goal, field_name, value)

        await self.db.commit()
        return goal

    async def update_status(
        self,
        owner_id: str,
        goal_id: int,
        status: GoalStatus,
        now: Optional[datetime] = None,
    ) -> tuple[Goal, Optional[ProgressOutcome]]:
        """
        Owner-initiated status change.

        Completing a goal sets its value to the target through the progress
        engine so milestones and rewards stay consistent.

        Raises:
            InvalidTransition: Change not allowed from the current status
        """
        now = now or datetime.now(timezone.utc)
        goal = await self.get_goal(owner_id, goal_id, for_update=True)
        current = GoalStatus(goal.status)

        if current not in STATUS_SOURCES.get(status, frozenset()):
            raise InvalidTransition("goal", goal_id, current.value, status.value)

        outcome = None
        if status == GoalStatus.COMPLETED:
            outcome = apply_delta(goal, goal.target_value, ProgressMode.SET, now)
        else:
            goal.status = status.value
            goal.updated_at = now

        await self.db.commit()
        logger.info(f"Goal {goal_id}: {current.value} -> {goal.status}")

        if outcome is not None:
            await self._after_progress(goal, outcome)
        return goal, outcome

    async def apply_progress(
        self,
        owner_id: str,
        goal_id: int,
        amount: float,
        mode: ProgressMode = ProgressMode.ADD,
        now: Optional[datetime] = None,
    ) -> tuple[Goal, ProgressOutcome]:
        """
        Apply a progress delta atomically.

        The goal row is locked for the read-modify-write, so the delta is
        always computed against the latest committed value.
        """
        now = now or datetime.now(timezone.utc)
        goal = await self.get_goal(owner_id, goal_id, for_update=True)
        outcome = apply_delta(goal, amount, mode, now)
        goal.updated_at = now
        await self.db.commit()
        await self._after_progress(goal, outcome)
        return goal, outcome

    async def contribute_session(
        self, session: StudySession, now: Optional[datetime] = None
    ) -> list[tuple[Goal, ProgressOutcome]]:
        """
        Forward a completed session to the owner's matching active goals.

        Returns:
            (goal, outcome) for each goal that received progress
        """
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            select(Goal)
            .where(
                Goal.owner_id == session.owner_id,
                Goal.status == GoalStatus.ACTIVE.value,
                Goal.category.in_(
                    [
                        GoalCategory.STUDY_TIME.value,
                        GoalCategory.SESSIONS_COMPLETED.value,
                    ]
                ),
            )
            .order_by(Goal.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

        updates = []
        for goal in result.scalars().all():
            amount = session_contribution(goal, session)
            if amount is None:
                continue
            outcome = apply_delta(goal, amount, ProgressMode.ADD, now)
            goal.updated_at = now
            updates.append((goal, outcome))

        if not updates:
            return []

        await self.db.commit()
        logger.info(
            f"Session {session.id} contributed to {len(updates)} goal(s) "
            f"for owner {session.owner_id}"
        )
        for goal, outcome in updates:
            await self._after_progress(goal, outcome, invalidate=False)
        await activity_stats.invalidate(session.owner_id)
        return updates

    async def add_milestone(
        self,
        owner_id: str,
        goal_id: int,
        request: MilestoneCreate,
        now: Optional[datetime] = None,
    ) -> tuple[Goal, ProgressOutcome]:
        """
        Append a milestone to an active goal. If the goal is already past
        the new threshold, the milestone completes immediately.

        Raises:
            InvalidTransition: The goal is not active
            ValidationError: Milestone target above the goal target
        """
        now = now or datetime.now(timezone.utc)
        goal = await self.get_goal(owner_id, goal_id, for_update=True)

        # Finished or paused goals keep their milestone set as recorded
        if goal.status != GoalStatus.ACTIVE.value:
            raise InvalidTransition("goal", goal_id, goal.status, "add_milestone")

        if request.target_value > goal.target_value:
            raise ValidationError(
                "Milestone target cannot exceed goal target",
                details={
                    "goal_id": goal_id,
                    "milestone_target": request.target_value,
                    "goal_target": goal.target_value,
                },
            )

        goal.milestones.append(
            GoalMilestone(
                title=request.title,
                target_value=request.target_value,
                current_value=0.0,
                completed=False,
                completed_at=None,
                order=request.order if request.order is not None else len(goal.milestones) + 1,
            )
        )
        goal.milestones.sort(key=lambda m: m.order)

        outcome = apply_delta(goal, 0.0, ProgressMode.ADD, now)
        goal.updated_at = now

        await self.db.commit()
        await self._after_progress(goal, outcome)
        return goal, outcome

    async def delete_goal(self, owner_id: str, goal_id: int) -> None:
        goal = await self.get_goal(owner_id, goal_id)
        await self.db.delete(goal)
        await self.db.commit()
        await activity_stats.invalidate(owner_id)
        logger.info(f"Deleted goal {goal_id} for owner {owner_id}")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _after_progress(
        self, goal: Goal, outcome: ProgressOutcome, invalidate: bool = True
    ) -> None:
        if self.publisher is not None and outcome.changed:
            await self.publisher.goal_progressed(goal, outcome)
        if invalidate:
            await activity_stats.invalidate(goal.owner_id)
