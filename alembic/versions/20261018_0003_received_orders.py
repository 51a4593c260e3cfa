"""received orders

Revision ID: 20261018_0003
Revises: 20261018_0002
Create Date: 2026-10-18
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261018_0003"
down_revision = "20261018_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "received_orders",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("order_id", sa.String(length=36), nullable=False),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column(
            "received_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    )
    op.create_index("ix_received_orders_order_id", "received_orders", ["order_id"])


def downgrade() -> None:
    op.drop_index("ix_received_orders_order_id", table_name="received_orders")
    op.drop_table("received_orders")
