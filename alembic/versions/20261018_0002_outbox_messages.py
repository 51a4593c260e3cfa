"""outbox messages

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "outbox_messages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "occurred_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("type", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column(
            "attempts",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
    )
    op.create_index(
        "ix_outbox_messages_occurred_at",
        "outbox_messages",
        ["occurred_at"],
    )
    op.create_index(
        "ix_outbox_messages_processed_at",
        "outbox_messages",
        ["processed_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_outbox_messages_processed_at", table_name="outbox_messages")
    op.drop_index("ix_outbox_messages_occurred_at", table_name="outbox_messages")
    op.drop_table("outbox_messages")
