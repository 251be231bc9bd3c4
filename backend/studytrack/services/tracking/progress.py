"""
Goal Progress Engine

apply_delta() is the only code path that writes Goal.current_value. In one
pass it:

1. Computes the new value (add: current + amount, set: amount) clamped to
   [0, target_value]
2. Completes the goal when the target is reached, earning completion rewards
3. Completes every milestone whose threshold is now met, in ascending
   order, earning milestone rewards

Milestones and rewards are monotonic: once completed/earned they stay that
way, even if a later "set" lowers current_value. Re-applying a delta that
leaves current_value unchanged never re-stamps anything.

The function mutates the ORM record in place and does no I/O; GoalService
wraps it in a row lock and a transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from studytrack.db.models import Goal, GoalMilestone, GoalReward
from studytrack.enums.tracking import GoalStatus, ProgressMode, RewardCondition
from studytrack.middleware.error_handling import (
    InvalidTransition,
    InvariantViolation,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class ProgressOutcome:
    """What a single apply_delta() call changed."""

    previous_value: float
    current_value: float
    goal_completed: bool = False
    completed_milestones: list[GoalMilestone] = field(default_factory=list)
    earned_rewards: list[GoalReward] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return (
            self.previous_value != self.current_value
            or self.goal_completed
            or bool(self.completed_milestones)
        )


def _earn_rewards(
    goal: Goal, condition: RewardCondition, now: datetime
) -> list[GoalReward]:
    earned = []
    for reward in goal.rewards:
        if reward.condition == condition.value and not reward.earned:
            reward.earned = True
            reward.earned_at = now
            earned.append(reward)
    return earned


def apply_delta(
    goal: Goal,
    amount: float,
    mode: ProgressMode,
    now: datetime,
) -> ProgressOutcome:
    """
    Apply a progress update to an active goal.

    Args:
        goal: Goal record (milestones and rewards loaded)
        amount: Amount to add, or the new absolute value for mode=set
        mode: ProgressMode.ADD or ProgressMode.SET
        now: Timestamp used for completed_at / earned_at

    Returns:
        ProgressOutcome describing the changes

    Raises:
        InvalidTransition: Goal is not active
        ValidationError: Negative amount with mode=add
        InvariantViolation: Resulting value outside [0, target_value]
    """
    if goal.status != GoalStatus.ACTIVE.value:
        raise InvalidTransition(
            "goal",
            goal.id,
            goal.status,
            "progress",
            reason="only active goals accept progress",
        )
    if mode == ProgressMode.ADD and amount < 0:
        raise ValidationError(
            "Progress amount must be non-negative in add mode",
            details={"goal_id": goal.id, "amount": amount},
        )

    previous = goal.current_value or 0.0
    raw = previous + amount if mode == ProgressMode.ADD else amount
    new_value = min(max(raw, 0.0), goal.target_value)
    goal.current_value = new_value

    outcome = ProgressOutcome(previous_value=previous, current_value=new_value)

    # Goal completion
    if new_value >= goal.target_value:
        goal.status = GoalStatus.COMPLETED.value
        goal.completed_at = now
        outcome.goal_completed = True
        outcome.earned_rewards.extend(
            _earn_rewards(goal, RewardCondition.COMPLETION, now)
        )

    # Milestones in ascending order
    for milestone in sorted(goal.milestones, key=lambda m: (m.order, m.target_value)):
        if milestone.completed:
            continue
        milestone.current_value = min(new_value, milestone.target_value)
        if milestone.target_value <= new_value:
            milestone.completed = True
            milestone.completed_at = now
            outcome.completed_milestones.append(milestone)

    if outcome.completed_milestones:
        outcome.earned_rewards.extend(
            _earn_rewards(goal, RewardCondition.MILESTONE, now)
        )

    if not 0.0 <= goal.current_value <= goal.target_value:
        raise InvariantViolation(
            "Goal progress outside [0, target]",
            details={
                "goal_id": goal.id,
                "current_value": goal.current_value,
                "target_value": goal.target_value,
            },
        )

    if outcome.changed:
        logger.debug(
            f"Goal {goal.id}: {previous} -> {new_value}/{goal.target_value} "
            f"(milestones={len(outcome.completed_milestones)}, "
            f"completed={outcome.goal_completed})"
        )
    return outcome
