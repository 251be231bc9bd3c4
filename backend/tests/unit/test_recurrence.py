"""
Unit tests for recurring goal regeneration.

Tests for:
- Window arithmetic (daily, weekly, monthly with day clamping)
- Recurrence bounds (end date, occurrence limit)
- Successor construction leaving the completed goal untouched
"""

from datetime import datetime, timedelta, timezone

import pytest

from studytrack.enums.tracking import RecurrenceFrequency
from studytrack.services.tracking.recurrence import (
    GoalTemplate,
    GoalWindow,
    advance,
    next_window,
    plan_successor,
    skip_reason,
)
from tests.conftest import T0, make_goal

NOW = T0 + timedelta(days=8)


def completed_recurring_goal(**overrides):
    params = dict(
        goal_id=10,
        target_value=100,
        current_value=100,
        status="completed",
        milestones=[50, 100],
        rewards=["completion", "milestone"],
        is_recurring=True,
        recurrence_frequency="weekly",
        completed_at=T0 + timedelta(days=5),
    )
    params.update(overrides)
    goal = make_goal(**params)
    for milestone in goal.milestones:
        milestone.current_value = milestone.target_value
        milestone.completed = True
        milestone.completed_at = T0 + timedelta(days=4)
    for reward in goal.rewards:
        reward.earned = True
        reward.earned_at = T0 + timedelta(days=5)
    return goal


class TestAdvance:
    def test_daily(self):
        assert advance(T0, RecurrenceFrequency.DAILY, 3) == T0 + timedelta(days=3)

    def test_weekly(self):
        assert advance(T0, RecurrenceFrequency.WEEKLY, 2) == T0 + timedelta(days=14)

    def test_monthly_clamps_day(self):
        jan_31 = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)
        assert advance(jan_31, RecurrenceFrequency.MONTHLY) == datetime(
            2024, 2, 29, 12, 0, tzinfo=timezone.utc
        )

    def test_monthly_crosses_year(self):
        nov_30 = datetime(2023, 11, 30, tzinfo=timezone.utc)
        assert advance(nov_30, RecurrenceFrequency.MONTHLY, 3) == datetime(
            2024, 2, 29, tzinfo=timezone.utc
        )

    def test_accepts_string_frequency(self):
        assert advance(T0, "daily") == T0 + timedelta(days=1)

    def test_rejects_zero_interval(self):
        with pytest.raises(ValueError):
            advance(T0, RecurrenceFrequency.DAILY, 0)


class TestWindowAndBounds:
    def test_next_window_keeps_length(self):
        goal = completed_recurring_goal(end_date=T0 + timedelta(days=7))
        window = next_window(goal)
        assert window.start == T0 + timedelta(days=14)
        assert window.end - window.start == timedelta(days=7)

    def test_eligible(self):
        goal = completed_recurring_goal()
        assert skip_reason(goal, next_window(goal)) is None

    def test_active_goal_not_eligible(self):
        goal = completed_recurring_goal(status="active")
        assert skip_reason(goal, next_window(goal)) == "goal is not completed"

    def test_recurrence_end_date_passed(self):
        goal = completed_recurring_goal()
        goal.recurrence_end_date = T0 + timedelta(days=10)
        assert skip_reason(goal, next_window(goal)) == "recurrence end date passed"

    def test_occurrence_limit_reached(self):
        goal = completed_recurring_goal(occurrence=3)
        goal.recurrence_end_after_occurrences = 3
        window = GoalWindow(start=NOW, end=NOW + timedelta(days=7))
        assert skip_reason(goal, window) == "occurrence limit reached"


class TestPlanSuccessor:
    def test_successor_is_fresh(self):
        source = completed_recurring_goal()
        successor, reason = plan_successor(source, NOW)

        assert reason is None
        assert successor is not source
        assert successor.id is None
        assert successor.current_value == 0
        assert successor.status == "active"
        assert successor.completed_at is None
        assert successor.occurrence == 2
        assert successor.source_goal_id == source.id
        assert successor.target_value == source.target_value
        assert successor.category == source.category
        assert successor.start_date == T0 + timedelta(days=14)
        assert [m.target_value for m in successor.milestones] == [50, 100]
        assert not any(m.completed or m.completed_at for m in successor.milestones)
        assert [r.condition for r in successor.rewards] == ["completion", "milestone"]
        assert not any(r.earned or r.earned_at for r in successor.rewards)

    def test_source_is_not_modified(self):
        source = completed_recurring_goal()
        completed_at = source.completed_at

        plan_successor(source, NOW)

        assert source.current_value == 100
        assert source.status == "completed"
        assert source.completed_at == completed_at
        assert all(m.completed for m in source.milestones)
        assert all(r.earned for r in source.rewards)
        assert len(source.milestones) == 2

    def test_non_recurring_goal(self):
        goal = completed_recurring_goal(is_recurring=False, recurrence_frequency=None)
        successor, reason = plan_successor(goal, NOW)
        assert successor is None
        assert reason == "goal is not recurring"

    def test_template_rejects_non_recurring_goal(self):
        with pytest.raises(ValueError):
            GoalTemplate.from_goal(make_goal())

    def test_template_is_immutable(self):
        template = GoalTemplate.from_goal(completed_recurring_goal())
        with pytest.raises(AttributeError):
            template.target_value = 5
