"""Add regenerated_at marker to goals

Revision ID: 002
Revises: 001
Create Date: 2026-10-20

A completed recurring goal used to count as regenerated only while its
successor row existed, so deleting the successor made the next sweep
create it again. The marker now lives on the source goal.

This migration:
1. Adds the nullable regenerated_at column
2. Backfills it for goals that already have a successor
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "goals",
        sa.Column("regenerated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.execute(
        """
        UPDATE goals AS source
        SET regenerated_at = successor.created_at
        FROM goals AS successor
        WHERE successor.source_goal_id = source.id
          AND source.regenerated_at IS NULL
    """
    )


def downgrade() -> None:
    op.drop_column("goals", "regenerated_at")
