"""Initial schema with kv_entries table

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "kv_entries",
        sa.Column("key", sa.String(512), nullable=False),
        sa.Column("value", sa.Text, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("key"),
    )

    # Index for the janitor's purge scan
    op.create_index("ix_kv_entries_expires_at", "kv_entries", ["expires_at"])

    # Prefix listings (lease keys, rate limit keys) scan by key pattern
    op.execute("""
        CREATE INDEX ix_kv_entries_key_prefix
        ON kv_entries (key text_pattern_ops)
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_kv_entries_key_prefix")
    op.drop_index("ix_kv_entries_expires_at")
    op.drop_table("kv_entries")
