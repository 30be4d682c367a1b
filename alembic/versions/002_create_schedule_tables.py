"""Create pending schedule, approved entry and saved schedule tables

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "pending_schedule",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("conversation_history", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "schedule_entry",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column(
            "pending_schedule_id",
            sa.String(length=36),
            sa.ForeignKey("pending_schedule.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.String(length=16), nullable=False),
        sa.Column("end_time", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_schedule_entry_pending_schedule_id"), "schedule_entry", ["pending_schedule_id"])

    op.create_table(
        "approved_entry",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("entry_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("start_time", sa.String(length=16), nullable=False),
        sa.Column("end_time", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_approved_entry_entry_id"), "approved_entry", ["entry_id"])
    op.create_index(op.f("ix_approved_entry_date"), "approved_entry", ["date"])

    op.create_table(
        "saved_schedule",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("schedule_data", sa.JSON(), nullable=False),
        sa.Column("conversation_history", sa.JSON(), nullable=False),
        sa.Column("saved_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_saved_schedule_date"), "saved_schedule", ["date"])


def downgrade() -> None:
    op.drop_index(op.f("ix_saved_schedule_date"), table_name="saved_schedule")
    op.drop_table("saved_schedule")
    op.drop_index(op.f("ix_approved_entry_date"), table_name="approved_entry")
    op.drop_index(op.f("ix_approved_entry_entry_id"), table_name="approved_entry")
    op.drop_table("approved_entry")
    op.drop_index(op.f("ix_schedule_entry_pending_schedule_id"), table_name="schedule_entry")
    op.drop_table("schedule_entry")
    op.drop_table("pending_schedule")
