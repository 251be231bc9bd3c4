"""
Unit tests for the goal progress engine.

Tests for:
- Add/set semantics and clamping to [0, target]
- Goal completion and completion rewards
- Milestone completion order and milestone rewards
- Idempotence of no-op deltas
- Monotonic milestones and rewards under downward corrections
"""

import random
from datetime import timedelta

import pytest

from studytrack.enums.tracking import ProgressMode
from studytrack.middleware.error_handling import InvalidTransition, ValidationError
from studytrack.services.tracking.progress import apply_delta
from tests.conftest import T0, make_goal

T1 = T0 + timedelta(hours=1)
T2 = T0 + timedelta(hours=2)


class TestApplyDelta:
    def test_add_accumulates(self):
        goal = make_goal(target_value=100)
        outcome = apply_delta(goal, 30, ProgressMode.ADD, T0)

        assert goal.current_value == 30
        assert outcome.previous_value == 0
        assert outcome.current_value == 30
        assert outcome.changed
        assert not outcome.goal_completed

    def test_set_replaces_value(self):
        goal = make_goal(target_value=100, current_value=40)
        apply_delta(goal, 10, ProgressMode.SET, T0)
        assert goal.current_value == 10

    def test_add_clamped_to_target(self):
        goal = make_goal(target_value=50, current_value=45)
        outcome = apply_delta(goal, 20, ProgressMode.ADD, T0)

        assert goal.current_value == 50
        assert outcome.goal_completed
        assert goal.status == "completed"
        assert goal.completed_at == T0

    def test_set_negative_clamped_to_zero(self):
        goal = make_goal(target_value=50, current_value=20)
        apply_delta(goal, -5, ProgressMode.SET, T0)
        assert goal.current_value == 0

    def test_negative_add_rejected(self):
        goal = make_goal(current_value=10)
        with pytest.raises(ValidationError):
            apply_delta(goal, -1, ProgressMode.ADD, T0)
        assert goal.current_value == 10

    @pytest.mark.parametrize("status", ["completed", "paused", "cancelled", "overdue"])
    def test_non_active_goal_rejected(self, status: str):
        goal = make_goal(status=status, current_value=10)
        with pytest.raises(InvalidTransition) as exc_info:
            apply_delta(goal, 5, ProgressMode.ADD, T0)
        assert exc_info.value.details["current_state"] == status
        assert goal.current_value == 10

    def test_two_step_scenario(self):
        """target 100, milestones 25/50/100, +60 then +60."""
        goal = make_goal(
            target_value=100, milestones=[25, 50, 100], rewards=["completion"]
        )

        first = apply_delta(goal, 60, ProgressMode.ADD, T1)
        assert goal.current_value == 60
        assert [m.target_value for m in first.completed_milestones] == [25, 50]
        assert goal.status == "active"
        assert not first.goal_completed
        assert first.earned_rewards == []

        second = apply_delta(goal, 60, ProgressMode.ADD, T2)
        assert goal.current_value == 100
        assert goal.status == "completed"
        assert second.goal_completed
        assert [m.target_value for m in second.completed_milestones] == [100]
        assert [r.condition for r in second.earned_rewards] == ["completion"]
        assert goal.rewards[0].earned
        assert goal.rewards[0].earned_at == T2

    def test_milestones_complete_in_ascending_order(self):
        goal = make_goal(target_value=100, milestones=[10, 40, 75])
        goal.milestones[0].order = 3
        goal.milestones[2].order = 1

        outcome = apply_delta(goal, 80, ProgressMode.ADD, T0)

        assert [m.order for m in outcome.completed_milestones] == [1, 2, 3]
        assert all(m.completed for m in goal.milestones)

    def test_milestone_current_value_capped(self):
        goal = make_goal(target_value=100, milestones=[25, 50])
        apply_delta(goal, 30, ProgressMode.ADD, T0)

        first, second = goal.milestones
        assert first.current_value == 25
        assert second.current_value == 30
        assert not second.completed

    def test_milestone_reward_earned_once(self):
        goal = make_goal(target_value=100, milestones=[20, 40], rewards=["milestone"])

        first = apply_delta(goal, 25, ProgressMode.ADD, T1)
        assert [r.condition for r in first.earned_rewards] == ["milestone"]

        second = apply_delta(goal, 20, ProgressMode.ADD, T2)
        assert len(second.completed_milestones) == 1
        assert second.earned_rewards == []
        assert goal.rewards[0].earned_at == T1

    def test_streak_rewards_untouched(self):
        goal = make_goal(target_value=10, rewards=["streak"])
        outcome = apply_delta(goal, 10, ProgressMode.ADD, T0)
        assert outcome.earned_rewards == []
        assert not goal.rewards[0].earned


class TestIdempotence:
    def test_add_zero_changes_nothing(self):
        goal = make_goal(target_value=100, milestones=[25], rewards=["milestone"])
        apply_delta(goal, 30, ProgressMode.ADD, T1)

        outcome = apply_delta(goal, 0, ProgressMode.ADD, T2)

        assert not outcome.changed
        assert outcome.completed_milestones == []
        assert outcome.earned_rewards == []
        assert goal.milestones[0].completed_at == T1
        assert goal.rewards[0].earned_at == T1

    def test_set_to_same_value_changes_nothing(self):
        goal = make_goal(target_value=100, current_value=40)
        outcome = apply_delta(goal, 40, ProgressMode.SET, T0)
        assert not outcome.changed


class TestMonotonicity:
    def test_downward_set_keeps_completed_milestones(self):
        goal = make_goal(target_value=100, milestones=[25, 50], rewards=["milestone"])
        apply_delta(goal, 60, ProgressMode.ADD, T1)

        outcome = apply_delta(goal, 10, ProgressMode.SET, T2)

        assert goal.current_value == 10
        assert all(m.completed for m in goal.milestones)
        assert all(m.completed_at == T1 for m in goal.milestones)
        assert goal.rewards[0].earned
        assert outcome.completed_milestones == []

    def test_random_add_sequence_is_non_decreasing_and_bounded(self):
        rng = random.Random(42)
        goal = make_goal(target_value=250, milestones=[50, 100, 200])
        previous = goal.current_value

        for step in range(60):
            if goal.status != "active":
                break
            apply_delta(goal, rng.uniform(0, 15), ProgressMode.ADD, T0 + timedelta(minutes=step))
            assert previous <= goal.current_value <= goal.target_value
            previous = goal.current_value
