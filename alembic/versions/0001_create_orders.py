"""create orders table

Revision ID: 0001_create_orders
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_create_orders"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.orders (
          id bigserial PRIMARY KEY,
          reference text NOT NULL UNIQUE,
          category text NOT NULL,
          network text NOT NULL,
          phone text NOT NULL,
          package_size text NOT NULL,
          package_price_minor integer NOT NULL CHECK (package_price_minor > 0),
          amount_minor integer NOT NULL CHECK (amount_minor > 0),
          payment_reference text NOT NULL,
          gateway_transaction_id text,
          status text NOT NULL,
          supplier_used text,
          supplier_transaction_id text,
          supplier_response jsonb,
          last_error text,
          shop_id text,
          markup_minor integer,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NOT NULL DEFAULT now(),
          CONSTRAINT orders_status_check CHECK (
            status IN ('AWAITING_PAYMENT', 'PAID', 'PROCESSING', 'FULFILLED', 'CANCELLED', 'FAILED')
          ),
          CONSTRAINT orders_category_payment_reference_key UNIQUE (category, payment_reference)
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_orders_status_updated_at ON app.orders (status, updated_at);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_orders_payment_reference ON app.orders (payment_reference);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.orders;")
