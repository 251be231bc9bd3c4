"""Add focus metrics to study sessions

Revision ID: 003
Revises: 002
Create Date: 2026-10-20

Completion (and later edits) may record self-reported focus. The
interruption count is derived from session_interruptions, so only the
reported values are stored.
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "study_sessions",
        sa.Column("deep_focus_minutes", sa.Integer(), nullable=True),
    )
    op.add_column(
        "study_sessions",
        sa.Column("average_focus_level", sa.Float(), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("study_sessions", "average_focus_level")
    op.drop_column("study_sessions", "deep_focus_minutes")
