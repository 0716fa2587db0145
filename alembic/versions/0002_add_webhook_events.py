"""add webhook events audit table

Revision ID: 0002_add_webhook_events
Revises: 0001_create_orders
Create Date: 2026-10-01 00:10:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0002_add_webhook_events"
down_revision = "0001_create_orders"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.webhook_events (
          id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
          received_at timestamptz NOT NULL DEFAULT now(),
          provider text NOT NULL,
          path text NOT NULL,
          request_id text,
          headers jsonb NOT NULL DEFAULT '{}'::jsonb,
          body jsonb,
          body_raw text,
          signature text,
          signature_valid boolean NOT NULL DEFAULT false,
          signature_error text,
          external_ref text,
          status_raw text,
          order_reference text,
          order_status_before text,
          order_status_after text,
          update_applied boolean NOT NULL DEFAULT false,
          ignored boolean NOT NULL DEFAULT false,
          ignore_reason text
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_webhook_events_external_ref ON app.webhook_events (external_ref);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_webhook_events_received_at ON app.webhook_events (received_at DESC);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS app.webhook_events;")
