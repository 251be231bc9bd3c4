"""
Unit tests for the overdue and recurrence sweep.

Tests for:
- Conditional overdue marking (a concurrent completion wins)
- Successor regeneration and duplicate handling
- Per-goal failures never aborting the batch
- Cursor handling across batches
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from studytrack.db.models import Goal
from studytrack.services.tracking.sweep import GoalSweep
from tests.conftest import OWNER_ID, T0, make_goal, rowcount_result, scalars_result

NOW = T0 + timedelta(days=10)


@pytest.fixture
def db(mock_db_session: MagicMock) -> MagicMock:
    """Session double whose begin_nested() works as an async context manager."""
    savepoint = MagicMock()
    savepoint.__aenter__ = AsyncMock(return_value=savepoint)
    savepoint.__aexit__ = AsyncMock(return_value=False)
    mock_db_session.begin_nested = MagicMock(return_value=savepoint)
    return mock_db_session


@pytest.fixture
def sweep(db: MagicMock, mock_publisher: MagicMock) -> GoalSweep:
    return GoalSweep(db, mock_publisher)


def expired_goal(goal_id: int) -> Goal:
    return make_goal(goal_id=goal_id, end_date=T0 + timedelta(days=7))


def recurring_source(goal_id: int = 10) -> Goal:
    return make_goal(
        goal_id=goal_id,
        current_value=100,
        status="completed",
        milestones=[50],
        is_recurring=True,
        recurrence_frequency="weekly",
        completed_at=T0 + timedelta(days=3),
    )


# =============================================================================
# Overdue Pass
# =============================================================================


class TestOverduePass:
    @pytest.mark.asyncio
    async def test_marks_expired_goals(
        self,
        sweep: GoalSweep,
        db: MagicMock,
        mock_publisher: MagicMock,
        stats_invalidate,
    ):
        goals = [expired_goal(1), expired_goal(2)]
        db.execute.side_effect = [
            scalars_result(goals),
            rowcount_result(1),
            rowcount_result(1),
            scalars_result([]),
        ]

        result = await sweep.run(NOW, batch_size=10)

        assert result.overdue_marked == 2
        assert result.skipped == 0
        assert result.next_cursor is None
        assert mock_publisher.goal_overdue.await_count == 2
        stats_invalidate.assert_awaited_with(OWNER_ID)

    @pytest.mark.asyncio
    async def test_concurrent_completion_wins(
        self, sweep: GoalSweep, db: MagicMock, mock_publisher: MagicMock
    ):
        # the goal completed between the scan and the conditional update
        db.execute.side_effect = [
            scalars_result([expired_goal(1)]),
            rowcount_result(0),
            scalars_result([]),
        ]

        result = await sweep.run(NOW, batch_size=10)

        assert result.overdue_marked == 0
        assert result.skipped == 1
        mock_publisher.goal_overdue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_batch(self, sweep: GoalSweep, db: MagicMock):
        db.execute.side_effect = [
            scalars_result([expired_goal(1), expired_goal(2)]),
            RuntimeError("deadlock detected"),
            rowcount_result(1),
            scalars_result([]),
        ]

        result = await sweep.run(NOW, batch_size=10)

        assert result.failed == 1
        assert result.overdue_marked == 1

    @pytest.mark.asyncio
    async def test_without_publisher(self, db: MagicMock, stats_invalidate):
        db.execute.side_effect = [
            scalars_result([expired_goal(1)]),
            rowcount_result(1),
            scalars_result([]),
        ]

        result = await GoalSweep(db).run(NOW, batch_size=10)

        assert result.overdue_marked == 1
        stats_invalidate.assert_awaited_once_with(OWNER_ID)


# =============================================================================
# Regeneration Pass
# =============================================================================


class TestRegenerationPass:
    @pytest.mark.asyncio
    async def test_regenerates_successor(self, sweep: GoalSweep, db: MagicMock):
        source = recurring_source()
        db.execute.side_effect = [
            scalars_result([]),
            scalars_result([source]),
            rowcount_result(1),
        ]

        result = await sweep.run(NOW, batch_size=10)

        assert result.regenerated == 1
        claim = db.execute.call_args_list[2].args[0]
        assert claim.compile().params["regenerated_at"] == NOW
        successor = db.add.call_args.args[0]
        assert successor.source_goal_id == source.id
        assert successor.occurrence == 2
        assert successor.current_value == 0
        assert successor.status == "active"
        assert source.status == "completed"
        assert source.current_value == 100
        db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_duplicate_successor_is_skipped(self, sweep: GoalSweep, db: MagicMock):
        db.execute.side_effect = [
            scalars_result([]),
            scalars_result([recurring_source()]),
            rowcount_result(1),
        ]
        db.flush.side_effect = IntegrityError(
            "INSERT", {}, Exception("uq_goals_source_goal_id")
        )

        result = await sweep.run(NOW, batch_size=10)

        assert result.regenerated == 0
        assert result.skipped == 1
        assert result.failed == 0

    @pytest.mark.asyncio
    async def test_source_claimed_by_parallel_sweep(self, sweep: GoalSweep, db: MagicMock):
        db.execute.side_effect = [
            scalars_result([]),
            scalars_result([recurring_source()]),
            rowcount_result(0),
        ]

        result = await sweep.run(NOW, batch_size=10)

        assert result.regenerated == 0
        assert result.skipped == 1
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_scan_excludes_regenerated_sources(self, sweep: GoalSweep, db: MagicMock):
        # the marker outlives a deleted successor
        db.execute.side_effect = [scalars_result([]), scalars_result([])]

        await sweep.run(NOW, batch_size=10)

        scan = str(db.execute.call_args_list[1].args[0])
        assert "goals.regenerated_at IS NULL" in scan
        assert "source_goal_id" not in scan

    @pytest.mark.asyncio
    async def test_ineligible_source_is_skipped(self, sweep: GoalSweep, db: MagicMock):
        source = recurring_source()
        source.recurrence_end_date = T0 + timedelta(days=8)
        db.execute.side_effect = [scalars_result([]), scalars_result([source])]

        result = await sweep.run(NOW, batch_size=10)

        assert result.skipped == 1
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_error_counts_as_failed(self, sweep: GoalSweep, db: MagicMock):
        db.execute.side_effect = [
            scalars_result([]),
            scalars_result([recurring_source(10), recurring_source(11)]),
            rowcount_result(1),
            rowcount_result(1),
        ]
        db.flush.side_effect = [RuntimeError("connection reset"), None]

        result = await sweep.run(NOW, batch_size=10)

        assert result.failed == 1
        assert result.regenerated == 1


# =============================================================================
# Cursor
# =============================================================================


class TestCursor:
    @pytest.mark.asyncio
    async def test_full_batch_returns_cursor(self, sweep: GoalSweep, db: MagicMock):
        db.execute.side_effect = [
            scalars_result([expired_goal(3), expired_goal(5)]),
            rowcount_result(1),
            rowcount_result(1),
            scalars_result([recurring_source(4)]),
            rowcount_result(1),
        ]

        result = await sweep.run(NOW, batch_size=2)

        assert result.next_cursor == 5

    @pytest.mark.asyncio
    async def test_cursor_is_smallest_pending_position(self, sweep: GoalSweep, db: MagicMock):
        db.execute.side_effect = [
            scalars_result([expired_goal(3), expired_goal(9)]),
            rowcount_result(1),
            rowcount_result(1),
            scalars_result([recurring_source(4), recurring_source(6)]),
            rowcount_result(1),
            rowcount_result(1),
        ]

        result = await sweep.run(NOW, batch_size=2)

        assert result.next_cursor == 6

    @pytest.mark.asyncio
    async def test_run_until_drained(self, sweep: GoalSweep, db: MagicMock):
        db.execute.side_effect = [
            # first batch
            scalars_result([expired_goal(1)]),
            rowcount_result(1),
            scalars_result([]),
            # second batch
            scalars_result([expired_goal(2)]),
            rowcount_result(1),
            scalars_result([]),
            # drained
            scalars_result([]),
            scalars_result([]),
        ]

        total = await sweep.run_until_drained(NOW, batch_size=1)

        assert total.overdue_marked == 2
        assert total.next_cursor is None
        assert db.commit.await_count == 6
