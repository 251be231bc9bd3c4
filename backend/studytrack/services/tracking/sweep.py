"""
Overdue and Recurrence Sweep

Restartable batch job with two passes:

1. Overdue: active goals whose end_date has passed become overdue. Each
   update is conditional on status = 'active', so a concurrent progress
   write that completes the goal wins.
2. Regeneration: completed recurring goals not yet regenerated get a
   successor (see recurrence.plan_successor). The source is claimed with a
   conditional update of regenerated_at in the same savepoint as the
   insert, and candidates are filtered on that marker, so deleting a
   successor never brings its source back. The unique constraint on
   source_goal_id stays as a second guard; a violation counts as "already
   regenerated".

The job takes "now" and a cursor (last goal id handled) as parameters and
touches at most batch_size goals per pass, so it can be re-run safely after
a crash or in parallel with user requests. A failing goal is logged and
skipped; it never aborts the batch.

Usage:
    from studytrack.services.tracking.sweep import GoalSweep

    sweep = GoalSweep(db, publisher)
    result = await sweep.run(now)
    while result.next_cursor is not None:
        result = await sweep.run(now, cursor=result.next_cursor)
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from studytrack.config import settings
from studytrack.db.models import Goal
from studytrack.enums.tracking import GoalStatus
from studytrack.models.tracking import SweepResult
from studytrack.services.notifications import NotificationPublisher
from studytrack.services.tracking import activity_stats
from studytrack.services.tracking.recurrence import plan_successor

logger = logging.getLogger(__name__)


class GoalSweep:
    """
    Marks expired goals overdue and regenerates completed recurring goals.
    """

    def __init__(
        self,
        db: AsyncSession,
        publisher: Optional[NotificationPublisher] = None,
    ):
        self.db = db
        self.publisher = publisher

    async def run(
        self,
        now: Optional[datetime] = None,
        cursor: int = 0,
        batch_size: Optional[int] = None,
    ) -> SweepResult:
        """
        Process one batch of each pass for goals with id > cursor.

        Returns:
            SweepResult; next_cursor is None once neither pass filled its batch
        """
        now = now or datetime.now(timezone.utc)
        batch_size = batch_size or settings.SWEEP_BATCH_SIZE
        result = SweepResult(ran_at=now)

        overdue_last_id = await self._mark_overdue(now, cursor, batch_size, result)
        regen_last_id = await self._regenerate(now, cursor, batch_size, result)

        # Passes that filled their batch may have more work; resume from the
        # smallest position so neither skips rows. Re-scanning is idempotent.
        pending = [last for last in (overdue_last_id, regen_last_id) if last is not None]
        result.next_cursor = min(pending) if pending else None

        logger.info(
            f"Goal sweep (cursor={cursor}): overdue={result.overdue_marked}, "
            f"regenerated={result.regenerated}, skipped={result.skipped}, "
            f"failed={result.failed}, next_cursor={result.next_cursor}"
        )
        return result

    async def run_until_drained(
        self,
        now: Optional[datetime] = None,
        batch_size: Optional[int] = None,
    ) -> SweepResult:
        """Run batches until the backlog is empty and return the totals."""
        now = now or datetime.now(timezone.utc)
        total = SweepResult(ran_at=now)
        cursor: Optional[int] = 0

        while cursor is not None:
            batch = await self.run(now, cursor=cursor, batch_size=batch_size)
            total.overdue_marked += batch.overdue_marked
            total.regenerated += batch.regenerated
            total.skipped += batch.skipped
            total.failed += batch.failed
            cursor = batch.next_cursor

        return total

    # =========================================================================
    # Passes
    # =========================================================================

    async def _mark_overdue(
        self, now: datetime, cursor: int, batch_size: int, result: SweepResult
    ) -> Optional[int]:
        """Returns the last id scanned if the batch was full, else None."""
        rows = await self.db.execute(
            select(Goal)
            .where(
                Goal.status == GoalStatus.ACTIVE.value,
                Goal.end_date < now,
                Goal.id > cursor,
            )
            .order_by(Goal.id)
            .limit(batch_size)
        )
        goals = list(rows.scalars().all())

        marked: list[Goal] = []
        for goal in goals:
            try:
                async with self.db.begin_nested():
                    update_result = await self.db.execute(
                        update(Goal)
                        .where(Goal.id == goal.id, Goal.status == GoalStatus.ACTIVE.value)
                        .values(status=GoalStatus.OVERDUE.value, updated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                if update_result.rowcount == 1:
                    marked.append(goal)
                else:
                    result.skipped += 1
            except Exception as e:
                logger.error(f"Failed to mark goal {goal.id} overdue: {e}")
                result.failed += 1

        await self.db.commit()
        result.overdue_marked += len(marked)

        for goal in marked:
            if self.publisher is not None:
                await self.publisher.goal_overdue(goal)
            await activity_stats.invalidate(goal.owner_id)

        return goals[-1].id if len(goals) == batch_size else None

    async def _regenerate(
        self, now: datetime, cursor: int, batch_size: int, result: SweepResult
    ) -> Optional[int]:
        """Returns the last id scanned if the batch was full, else None."""
        rows = await self.db.execute(
            select(Goal)
            .where(
                Goal.status == GoalStatus.COMPLETED.value,
                Goal.is_recurring.is_(True),
                Goal.recurrence_frequency.isnot(None),
                Goal.id > cursor,
                Goal.regenerated_at.is_(None),
            )
            .order_by(Goal.id)
            .limit(batch_size)
        )
        sources = list(rows.scalars().all())

        for source in sources:
            try:
                new_goal, reason = plan_successor(source, now)
                if new_goal is None:
                    logger.debug(f"Not regenerating goal {source.id}: {reason}")
                    result.skipped += 1
                    continue

                # Claim the source before inserting: a parallel sweep blocks on
                # the row lock and then sees the marker already set.
                async with self.db.begin_nested():
                    claimed = await self.db.execute(
                        update(Goal)
                        .where(Goal.id == source.id, Goal.regenerated_at.is_(None))
                        .values(regenerated_at=now)
                        .execution_options(synchronize_session=False)
                    )
                    if claimed.rowcount == 1:
                        self.db.add(new_goal)
                        await self.db.flush()

                if claimed.rowcount != 1:
                    logger.info(f"Goal {source.id} already regenerated")
                    result.skipped += 1
                    continue

                result.regenerated += 1
                logger.info(
                    f"Regenerated goal {source.id} as {new_goal.id} "
                    f"(occurrence {new_goal.occurrence})"
                )
            except IntegrityError:
                logger.info(f"Goal {source.id} already regenerated")
                result.skipped += 1
            except Exception as e:
                logger.error(f"Failed to regenerate goal {source.id}: {e}")
                result.failed += 1

        await self.db.commit()
        return sources[-1].id if len(sources) == batch_size else None
