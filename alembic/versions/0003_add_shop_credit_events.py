"""add shop credit events

Revision ID: 0003_add_shop_credit_events
Revises: 0002_add_webhook_events
Create Date: 2026-10-01 00:20:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0003_add_shop_credit_events"
down_revision = "0002_add_webhook_events"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "shop_credit_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("shop_id", sa.Text(), nullable=False),
        sa.Column("order_reference", sa.Text(), nullable=False, unique=True),
        sa.Column("markup_minor", sa.Integer(), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        schema="app",
    )
    op.create_index("ix_shop_credit_events_shop_id", "shop_credit_events", ["shop_id"], schema="app")


def downgrade() -> None:
    op.drop_index("ix_shop_credit_events_shop_id", table_name="shop_credit_events", schema="app")
    op.drop_table("shop_credit_events", schema="app")
