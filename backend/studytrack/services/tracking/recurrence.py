"""
Recurring Goal Regeneration

Builds the next instance of a completed recurring goal. The completed goal
is never modified: a GoalTemplate captures the shape worth repeating
(target, taxonomy, milestone and reward shapes, recurrence rule) and
build_successor() produces a brand-new Goal from it. History fields
(current_value, completed_at, earned flags) are never copied, because the
template does not hold them.

Window arithmetic:
- daily:   end_date + interval days
- weekly:  end_date + 7 * interval days
- monthly: end_date + interval calendar months (day clamped to month length)

The successor keeps the predecessor's window length.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from studytrack.db.models import Goal, GoalMilestone, GoalReward
from studytrack.enums.tracking import GoalStatus, RecurrenceFrequency


def _add_months(dt: datetime, months: int) -> datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def advance(dt: datetime, frequency: RecurrenceFrequency, interval: int = 1) -> datetime:
    """
    Step a timestamp forward by one recurrence period.

    Examples:
        >>> advance(datetime(2024, 1, 31), RecurrenceFrequency.MONTHLY)
        datetime.datetime(2024, 2, 29, 0, 0)
    """
    if interval < 1:
        raise ValueError(f"Recurrence interval must be >= 1, got {interval}")

    frequency = RecurrenceFrequency(frequency)
    if frequency == RecurrenceFrequency.DAILY:
        return dt + timedelta(days=interval)
    if frequency == RecurrenceFrequency.WEEKLY:
        return dt + timedelta(weeks=interval)
    return _add_months(dt, interval)


@dataclass(frozen=True)
class GoalWindow:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: RecurrenceFrequency
    interval: int = 1
    end_date: Optional[datetime] = None
    end_after_occurrences: Optional[int] = None


@dataclass(frozen=True)
class MilestoneShape:
    title: Optional[str]
    target_value: float
    order: int


@dataclass(frozen=True)
class RewardShape:
    title: Optional[str]
    description: Optional[str]
    condition: str


@dataclass(frozen=True)
class GoalTemplate:
    """
    Immutable description of a goal to repeat.

    Holds only what a fresh instance should inherit; progress and
    completion state have no field here.
    """

    owner_id: str
    title: str
    description: Optional[str]
    goal_type: str
    category: str
    unit: str
    priority: str
    difficulty: str
    target_value: float
    notes: Optional[str]
    tags: tuple[str, ...]
    related_topics: tuple[str, ...]
    rule: RecurrenceRule
    milestones: tuple[MilestoneShape, ...] = ()
    rewards: tuple[RewardShape, ...] = ()

    @classmethod
    def from_goal(cls, goal: Goal) -> "GoalTemplate":
        if not goal.is_recurring or not goal.recurrence_frequency:
            raise ValueError(f"Goal {goal.id} is not recurring")

        return cls(
            owner_id=goal.owner_id,
            title=goal.title,
            description=goal.description,
            goal_type=goal.goal_type,
            category=goal.category,
            unit=goal.unit,
            priority=goal.priority,
            difficulty=goal.difficulty,
            target_value=goal.target_value,
            notes=goal.notes,
            tags=tuple(goal.tags or ()),
            related_topics=tuple(goal.related_topics or ()),
            rule=RecurrenceRule(
                frequency=RecurrenceFrequency(goal.recurrence_frequency),
                interval=goal.recurrence_interval or 1,
                end_date=goal.recurrence_end_date,
                end_after_occurrences=goal.recurrence_end_after_occurrences,
            ),
            milestones=tuple(
                MilestoneShape(m.title, m.target_value, m.order) for m in goal.milestones
            ),
            rewards=tuple(
                RewardShape(r.title, r.description, r.condition) for r in goal.rewards
            ),
        )


def next_window(goal: Goal) -> GoalWindow:
    """Window following goal's, with the same length."""
    start = advance(goal.end_date, goal.recurrence_frequency, goal.recurrence_interval or 1)
    return GoalWindow(start=start, end=start + (goal.end_date - goal.start_date))


def skip_reason(goal: Goal, window: GoalWindow) -> Optional[str]:
    """
    Why goal must not regenerate into window, or None if it may.
    """
    if goal.status != GoalStatus.COMPLETED.value:
        return "goal is not completed"
    if not goal.is_recurring or not goal.recurrence_frequency:
        return "goal is not recurring"
    if goal.recurrence_end_date is not None and window.start > goal.recurrence_end_date:
        return "recurrence end date passed"
    if (
        goal.recurrence_end_after_occurrences is not None
        and (goal.occurrence or 1) >= goal.recurrence_end_after_occurrences
    ):
        return "occurrence limit reached"
    return None


def build_successor(
    template: GoalTemplate,
    window: GoalWindow,
    source: Goal,
    now: datetime,
) -> Goal:
    """
    Create the next instance of a recurring goal.

    The returned Goal is transient; the caller adds it to a session.
    """
    rule = template.rule
    goal = Goal(
        owner_id=template.owner_id,
        title=template.title,
        description=template.description,
        goal_type=template.goal_type,
        category=template.category,
        unit=template.unit,
        priority=template.priority,
        difficulty=template.difficulty,
        target_value=template.target_value,
        current_value=0.0,
        status=GoalStatus.ACTIVE.value,
        start_date=window.start,
        end_date=window.end,
        completed_at=None,
        notes=template.notes,
        tags=list(template.tags),
        related_topics=list(template.related_topics),
        is_recurring=True,
        recurrence_frequency=rule.frequency.value,
        recurrence_interval=rule.interval,
        recurrence_end_date=rule.end_date,
        recurrence_end_after_occurrences=rule.end_after_occurrences,
        occurrence=(source.occurrence or 1) + 1,
        source_goal_id=source.id,
        created_at=now,
        updated_at=now,
    )
    goal.milestones = [
        GoalMilestone(
            title=shape.title,
            target_value=shape.target_value,
            current_value=0.0,
            completed=False,
            completed_at=None,
            order=shape.order,
        )
        for shape in template.milestones
    ]
    goal.rewards = [
        GoalReward(
            title=shape.title,
            description=shape.description,
            condition=shape.condition,
            earned=False,
            earned_at=None,
        )
        for shape in template.rewards
    ]
    return goal


def plan_successor(goal: Goal, now: datetime) -> tuple[Optional[Goal], Optional[str]]:
    """
    Successor for a completed recurring goal, or (None, reason) when it
    should not regenerate.
    """
    if not goal.is_recurring or not goal.recurrence_frequency:
        return None, "goal is not recurring"
    window = next_window(goal)
    reason = skip_reason(goal, window)
    if reason is not None:
        return None, reason
    return build_successor(GoalTemplate.from_goal(goal), window, goal, now), None
