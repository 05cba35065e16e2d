"""create entries table

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "entries",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("number", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=False),
        sa.Column("phone_number", sa.String(), nullable=True),
        sa.Column("whom_to_meet", sa.String(), nullable=True),
        sa.Column("purpose", sa.String(), nullable=True),
        sa.Column("badge_tag", sa.String(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("entry_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("exit_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('entered', 'exited')", name="status_check"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_entries_number", "entries", ["number"])
    op.create_index("ix_entries_badge_tag", "entries", ["badge_tag"], unique=True)
    op.create_index("ix_entries_created_at", "entries", ["created_at"])


def downgrade():
    op.drop_index("ix_entries_created_at", table_name="entries")
    op.drop_index("ix_entries_badge_tag", table_name="entries")
    op.drop_index("ix_entries_number", table_name="entries")
    op.drop_table("entries")
