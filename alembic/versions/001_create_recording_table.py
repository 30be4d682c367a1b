"""Create recording table

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "recording",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("audio_blob", sa.LargeBinary(), nullable=False),
        sa.Column("mime_type", sa.String(length=128), nullable=False, server_default="audio/wav"),
        sa.Column("original_filename", sa.String(length=512), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.String(length=19), nullable=False),
        sa.Column("transcription_state", sa.String(length=16), nullable=False, server_default="idle"),
        sa.Column("transcription", sa.Text(), nullable=True),
        sa.Column("transcription_error", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_recording_created_at"), "recording", ["created_at"])


def downgrade() -> None:
    op.drop_index(op.f("ix_recording_created_at"), table_name="recording")
    op.drop_table("recording")
