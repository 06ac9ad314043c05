"""habits and completion log baseline

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-17

Creates the habits table (legacy embedded completed_days map, cached streak
state, migration flag) and the per-day habit_completions log.
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_baseline"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "habits",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("goal_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("completed_days", sa.JSON(), nullable=False),
        sa.Column(
            "completions_migrated",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_completed_date", sa.String(10), nullable=True),
        sa.Column(
            "is_archived", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_habits_user_id", "habits", ["user_id"])
    op.create_index(
        "ix_habits_user_deleted_archived",
        "habits",
        ["user_id", "is_deleted", "is_archived"],
    )
    op.create_index("ix_habits_unmigrated", "habits", ["completions_migrated"])

    op.create_table(
        "habit_completions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("habit_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column(
            "mood",
            sa.Enum(
                "great",
                "good",
                "okay",
                "bad",
                "terrible",
                name="completion_mood",
                native_enum=False,
            ),
            nullable=True,
        ),
        sa.Column("value", sa.Float(), nullable=False, server_default="1"),
        sa.Column("target_value", sa.Float(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["habit_id"], ["habits.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("habit_id", "date", name="uq_habit_completion_day"),
    )
    op.create_index(
        "ix_habit_completions_habit_id", "habit_completions", ["habit_id"]
    )
    op.create_index(
        "ix_habit_completions_user_date", "habit_completions", ["user_id", "date"]
    )
    op.create_index(
        "ix_habit_completions_user_date_completed",
        "habit_completions",
        ["user_id", "date", "completed"],
    )


def downgrade() -> None:
    op.drop_table("habit_completions")
    op.drop_table("habits")
