"""
Unit tests for the background sweep: Celery task and APScheduler wiring.

The task is called directly (no broker); the database session and the
sweep itself are mocked.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from tenacity import wait_none

from studytrack.models.tracking import SweepResult
from studytrack.services import scheduler, tasks

NOW = datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Celery Task
# =============================================================================


class TestRunGoalSweepTask:
    def test_parses_timestamp(self, monkeypatch: pytest.MonkeyPatch):
        impl = AsyncMock(return_value={"overdue_marked": 1})
        monkeypatch.setattr(tasks, "_run_goal_sweep_impl", impl)

        result = tasks.run_goal_sweep(now="2024-05-06T09:00:00+00:00", batch_size=25)

        assert result == {"overdue_marked": 1}
        impl.assert_awaited_once_with(NOW, 25)

    def test_naive_timestamp_treated_as_utc(self, monkeypatch: pytest.MonkeyPatch):
        impl = AsyncMock(return_value={})
        monkeypatch.setattr(tasks, "_run_goal_sweep_impl", impl)

        tasks.run_goal_sweep(now="2024-05-06T09:00:00")

        assert impl.await_args.args[0] == NOW

    def test_retries_transient_database_errors(self, monkeypatch: pytest.MonkeyPatch):
        impl = AsyncMock(
            side_effect=[
                OperationalError("SELECT 1", {}, Exception("connection refused")),
                {"regenerated": 2},
            ]
        )
        monkeypatch.setattr(tasks, "_run_goal_sweep_impl", impl)
        run = tasks._run_goal_sweep_with_retry.retry_with(wait=wait_none())

        assert run(NOW) == {"regenerated": 2}
        assert impl.await_count == 2

    def test_gives_up_after_three_attempts(self, monkeypatch: pytest.MonkeyPatch):
        impl = AsyncMock(side_effect=ConnectionError("redis down"))
        monkeypatch.setattr(tasks, "_run_goal_sweep_impl", impl)
        run = tasks._run_goal_sweep_with_retry.retry_with(wait=wait_none())

        with pytest.raises(ConnectionError):
            run(NOW)

        assert impl.await_count == 3

    @pytest.mark.asyncio
    async def test_impl_drains_backlog(self, monkeypatch: pytest.MonkeyPatch):
        session = MagicMock()
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=session)
        session_cm.__aexit__ = AsyncMock(return_value=False)
        monkeypatch.setattr(tasks, "task_session_maker", MagicMock(return_value=session_cm))

        sweep = MagicMock()
        sweep.run_until_drained = AsyncMock(
            return_value=SweepResult(ran_at=NOW, overdue_marked=3, regenerated=1)
        )
        sweep_cls = MagicMock(return_value=sweep)
        monkeypatch.setattr(tasks, "GoalSweep", sweep_cls)

        result = await tasks._run_goal_sweep_impl(NOW, batch_size=50)

        assert result["overdue_marked"] == 3
        assert result["regenerated"] == 1
        assert sweep_cls.call_args.args[0] is session
        sweep.run_until_drained.assert_awaited_once_with(NOW, batch_size=50)


# =============================================================================
# Scheduler
# =============================================================================


@pytest.fixture
def mock_scheduler(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    mock = MagicMock()
    mock.running = False
    monkeypatch.setattr(scheduler, "scheduler", mock)
    return mock


class TestScheduler:
    def test_sweep_job_configured(self, mock_scheduler: MagicMock):
        scheduler.setup_scheduled_jobs()

        kwargs = mock_scheduler.add_job.call_args.kwargs
        assert mock_scheduler.add_job.call_args.args[0] is scheduler.trigger_goal_sweep
        assert kwargs["id"] == scheduler.GOAL_SWEEP_JOB_ID
        assert kwargs["coalesce"] is True
        assert kwargs["misfire_grace_time"] == 600

    def test_start_and_stop(self, mock_scheduler: MagicMock):
        scheduler.start_scheduler()
        mock_scheduler.start.assert_called_once()

        mock_scheduler.running = True
        scheduler.start_scheduler()
        mock_scheduler.start.assert_called_once()

        scheduler.stop_scheduler()
        mock_scheduler.shutdown.assert_called_once_with(wait=True)

    @pytest.mark.asyncio
    async def test_trigger_queues_task(self, monkeypatch: pytest.MonkeyPatch):
        delay = MagicMock()
        monkeypatch.setattr(tasks.run_goal_sweep, "delay", delay)

        await scheduler.trigger_goal_sweep()

        (timestamp,) = delay.call_args.args
        assert datetime.fromisoformat(timestamp).tzinfo is not None

    def test_scheduled_jobs_listing(self, mock_scheduler: MagicMock):
        job = MagicMock()
        job.id = "goal_sweep"
        job.name = "Goal Overdue/Recurrence Sweep"
        job.next_run_time = NOW
        mock_scheduler.get_jobs.return_value = [job]

        (listed,) = scheduler.get_scheduled_jobs()

        assert listed["id"] == "goal_sweep"
        assert listed["next_run"] == NOW.isoformat()
