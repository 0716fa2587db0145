#app/webhooks/repository.py
from __future__ import annotations

from typing import Any
from psycopg2.extensions import connection as PGConn
from psycopg2.extras import Json


def insert_webhook_event(
    conn: PGConn,
    *,
    provider: str,
    path: str,
    request_id: str | None = None,
    headers: dict[str, Any] | None = None,
    body: dict[str, Any] | None = None,
    body_raw: str | None = None,
    signature: str | None = None,
    signature_valid: bool | None = None,
    signature_error: str | None = None,
    external_ref: str | None = None,
    status_raw: str | None = None,
    order_reference: str | None = None,
    order_status_before: str | None = None,
    order_status_after: str | None = None,
    update_applied: bool | None = None,
    ignored: bool | None = None,
    ignore_reason: str | None = None,
) -> str:
    """
    Insert a webhook event for audit/debugging.
    NOTE: caller commits.
    """
    sql = """
    INSERT INTO app.webhook_events (
      provider, path, request_id,
      signature, signature_valid, signature_error,
      headers, body, body_raw,
      external_ref, status_raw,
      order_reference, order_status_before, order_status_after,
      update_applied,
      ignored, ignore_reason
    )
    VALUES (
      %(provider)s, %(path)s, %(request_id)s,
      %(signature)s, %(signature_valid)s, %(signature_error)s,
      %(headers)s, %(body)s, %(body_raw)s,
      %(external_ref)s, %(status_raw)s,
      %(order_reference)s, %(order_status_before)s, %(order_status_after)s,
      %(update_applied)s,
      %(ignored)s, %(ignore_reason)s
    )
    RETURNING id
    """

    params = {
        "provider": provider,
        "path": path,
        "request_id": request_id,
        "signature": signature,
        "signature_valid": signature_valid,
        "signature_error": signature_error,
        "headers": Json(headers or {}),
        "body": Json(body) if body is not None else None,
        "body_raw": body_raw,
        "external_ref": external_ref,
        "status_raw": status_raw,
        "order_reference": order_reference,
        "order_status_before": order_status_before,
        "order_status_after": order_status_after,
        "update_applied": update_applied,
        "ignored": ignored,
        "ignore_reason": ignore_reason,
    }

    with conn.cursor() as cur:
        cur.execute(sql, params)
        row = cur.fetchone()
        assert row and row[0], "insert_webhook_event: missing id"
        return str(row[0])
