"""Initial study tracking schema

Creates the session and goal tables:
- study_sessions with a partial unique index allowing one open session
  (planned, active or paused) per owner
- session_interruptions for pause intervals
- goals with recurrence columns; source_goal_id is unique so a completed
  goal regenerates at most once
- goal_milestones and goal_rewards

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


OPEN_SESSION_PREDICATE = "status IN ('planned', 'active', 'paused')"


def upgrade() -> None:
    # ===========================================
    # Study sessions
    # ===========================================
    op.create_table(
        "study_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("topic_id", sa.String(64), nullable=False),
        sa.Column(
            "session_type", sa.String(20), nullable=False, server_default="focused"
        ),
        sa.Column("planned_duration", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="planned"),
        # Lifecycle timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_duration", sa.Integer(), nullable=True),
        # Payload
        sa.Column("productivity_rating", sa.Integer(), nullable=True),
        sa.Column("productivity_comment", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.CheckConstraint(
            "completed_at IS NULL OR cancelled_at IS NULL",
            name="ck_study_sessions_single_outcome",
        ),
    )
    op.create_index("ix_study_sessions_owner_id", "study_sessions", ["owner_id"])
    op.create_index("ix_study_sessions_topic_id", "study_sessions", ["topic_id"])
    op.create_index(
        "ix_study_sessions_owner_started", "study_sessions", ["owner_id", "started_at"]
    )
    op.create_index(
        "ix_study_sessions_owner_status", "study_sessions", ["owner_id", "status"]
    )
    op.create_index(
        "uq_study_sessions_owner_open",
        "study_sessions",
        ["owner_id"],
        unique=True,
        postgresql_where=sa.text(OPEN_SESSION_PREDICATE),
    )

    op.create_table(
        "session_interruptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("study_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_session_interruptions_session_id", "session_interruptions", ["session_id"]
    )

    # ===========================================
    # Goals
    # ===========================================
    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("goal_type", sa.String(20), nullable=False),
        sa.Column("category", sa.String(40), nullable=False),
        sa.Column("unit", sa.String(20), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column(
            "difficulty", sa.String(20), nullable=False, server_default="moderate"
        ),
        sa.Column("tags", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("related_topics", sa.JSON(), nullable=True),
        # Progress
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("current_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        # Window
        sa.Column(
            "start_date",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        # Recurrence
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("recurrence_frequency", sa.String(20), nullable=True),
        sa.Column(
            "recurrence_interval", sa.Integer(), nullable=False, server_default="1"
        ),
        sa.Column("recurrence_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("recurrence_end_after_occurrences", sa.Integer(), nullable=True),
        sa.Column("occurrence", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "source_goal_id",
            sa.Integer(),
            sa.ForeignKey("goals.id", ondelete="SET NULL"),
            nullable=True,
            unique=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("target_value > 0", name="ck_goals_target_positive"),
        sa.CheckConstraint(
            "current_value >= 0 AND current_value <= target_value",
            name="ck_goals_current_within_target",
        ),
        sa.CheckConstraint("end_date > start_date", name="ck_goals_window"),
    )
    op.create_index("ix_goals_owner_id", "goals", ["owner_id"])
    op.create_index("ix_goals_owner_status", "goals", ["owner_id", "status"])
    op.create_index("ix_goals_status_end_date", "goals", ["status", "end_date"])

    op.create_table(
        "goal_milestones",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "goal_id",
            sa.Integer(),
            sa.ForeignKey("goals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(100), nullable=True),
        sa.Column("target_value", sa.Float(), nullable=False),
        sa.Column("current_value", sa.Float(), nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_goal_milestones_goal_id", "goal_milestones", ["goal_id"])

    op.create_table(
        "goal_rewards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "goal_id",
            sa.Integer(),
            sa.ForeignKey("goals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "condition", sa.String(20), nullable=False, server_default="completion"
        ),
        sa.Column("earned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_goal_rewards_goal_id", "goal_rewards", ["goal_id"])


def downgrade() -> None:
    op.drop_table("goal_rewards")
    op.drop_table("goal_milestones")
    op.drop_table("goals")
    op.drop_table("session_interruptions")
    op.drop_index("uq_study_sessions_owner_open", table_name="study_sessions")
    op.drop_table("study_sessions")
