# app/orders/repository.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from psycopg2.extras import Json, RealDictCursor

from app.catalog.packages import PackageDescriptor
from app.orders.model import PROCESSING, NewOrder, Order
from app.orders.state_machine import is_allowed
from app.orders.store import CreateResult, ReferenceConflict
from app.webhooks.repository import insert_webhook_event

ORDER_COLUMNS = """
  id, reference, category, network, phone,
  package_size, package_price_minor, amount_minor,
  payment_reference, gateway_transaction_id, status,
  supplier_used, supplier_transaction_id, supplier_response,
  last_error, shop_id, markup_minor, created_at, updated_at
"""


def _adapt_json(value: Any):
    return Json(value) if value is not None else None


def row_to_order(row: dict[str, Any]) -> Order:
    return Order(
        id=int(row["id"]),
        reference=row["reference"],
        category=row["category"],
        network=row["network"],
        phone=row["phone"],
        package=PackageDescriptor(size=row["package_size"], price_minor=int(row["package_price_minor"])),
        amount_minor=int(row["amount_minor"]),
        payment_reference=row["payment_reference"],
        status=row["status"],
        gateway_transaction_id=row.get("gateway_transaction_id"),
        supplier_used=row.get("supplier_used"),
        supplier_transaction_id=row.get("supplier_transaction_id"),
        supplier_response=row.get("supplier_response"),
        last_error=row.get("last_error"),
        shop_id=row.get("shop_id"),
        markup_minor=row.get("markup_minor"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# ==========================================================
# Inserts
# ==========================================================

def insert_order_if_absent(conn, new: NewOrder) -> dict[str, Any] | None:
    """
    Returns the inserted row, or None when any unique key already exists.
    """
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            INSERT INTO app.orders (
              reference, category, network, phone,
              package_size, package_price_minor, amount_minor,
              payment_reference, gateway_transaction_id, status,
              shop_id, markup_minor
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT DO NOTHING
            RETURNING {ORDER_COLUMNS}
            """,
            (
                new.reference,
                new.category,
                new.network,
                new.phone,
                new.package.size,
                new.package.price_minor,
                new.amount_minor,
                new.payment_reference,
                new.gateway_transaction_id,
                new.status,
                new.shop_id,
                new.markup_minor,
            ),
        )
        row = cur.fetchone()
        return dict(row) if row else None


# ==========================================================
# Updates
# ==========================================================

def update_status(
    conn,
    *,
    order_id: int,
    from_status: str,
    new_status: str,
    gateway_transaction_id: Optional[str] = None,
    supplier_used: Optional[str] = None,
    supplier_transaction_id: Optional[str] = None,
    supplier_response: Optional[dict[str, Any]] = None,
    last_error: Optional[str] = None,
) -> bool:
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE app.orders
        SET
          status = %s,
          gateway_transaction_id = COALESCE(%s, gateway_transaction_id),
          supplier_used = COALESCE(%s, supplier_used),
          supplier_transaction_id = COALESCE(%s, supplier_transaction_id),
          supplier_response = COALESCE(%s::jsonb, supplier_response),
          last_error = COALESCE(%s, last_error),
          updated_at = now()
        WHERE id = %s
          AND status = %s
        """,
        (
            new_status,
            gateway_transaction_id,
            supplier_used,
            supplier_transaction_id,
            _adapt_json(supplier_response),
            last_error,
            order_id,
            from_status,
        ),
    )
    return cur.rowcount == 1


def set_supplier_attempt(conn, *, order_id: int, supplier: str) -> bool:
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE app.orders
        SET supplier_used = %s,
            supplier_transaction_id = NULL,
            updated_at = now()
        WHERE id = %s
          AND status = %s
        """,
        (supplier, order_id, PROCESSING),
    )
    return cur.rowcount == 1


def touch_if_unchanged(conn, *, order_id: int, status: str, seen_updated_at: datetime) -> bool:
    cur = conn.cursor()
    cur.execute(
        """
        UPDATE app.orders
        SET updated_at = now()
        WHERE id = %s
          AND status = %s
          AND updated_at = %s
        """,
        (order_id, status, seen_updated_at),
    )
    return cur.rowcount == 1


# ==========================================================
# Reads
# ==========================================================

def get_order(conn, order_id: int) -> dict | None:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {ORDER_COLUMNS} FROM app.orders WHERE id = %s", (order_id,))
        row = cur.fetchone()
        return dict(row) if row else None


def get_order_by_reference(conn, reference: str) -> dict | None:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(f"SELECT {ORDER_COLUMNS} FROM app.orders WHERE reference = %s", (reference,))
        row = cur.fetchone()
        return dict(row) if row else None


def get_order_by_payment_reference(conn, payment_reference: str, *, category: str | None = None) -> dict | None:
    category_filter = ""
    params: list[Any] = [payment_reference]
    if category:
        category_filter = "AND category = %s"
        params.append(category)

    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM app.orders
            WHERE payment_reference = %s
            {category_filter}
            ORDER BY id DESC
            LIMIT 1
            """,
            tuple(params),
        )
        row = cur.fetchone()
        return dict(row) if row else None


def list_stale_orders(conn, *, status: str, older_than_seconds: int, limit: int) -> list[dict[str, Any]]:
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM app.orders
            WHERE status = %s
              AND updated_at <= (now() - (%s || ' seconds')::interval)
            ORDER BY updated_at
            LIMIT %s
            """,
            (status, older_than_seconds, limit),
        )
        return [dict(r) for r in cur.fetchall()]


def insert_reconcile_report(conn, *, run_at: datetime, summary: dict[str, Any], items: list[dict[str, Any]]) -> str:
    report_id = str(uuid.uuid4())
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO app.reconcile_reports (id, run_at, summary, items)
            VALUES (%s::uuid, %s, %s::jsonb, %s::jsonb)
            """,
            (report_id, run_at, Json(summary), Json(items)),
        )
    return report_id


# ==========================================================
# Store facade
# ==========================================================

class PostgresOrderStore:
    """
    OrderStore backed by app.orders. Each call runs in its own transaction
    from the pool; conditional SQL provides the compare-and-swap.
    """

    def __init__(self, conn_factory: Callable | None = None):
        if conn_factory is None:
            from db import get_conn

            conn_factory = get_conn
        self._conn = conn_factory

    def ping(self) -> bool:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                return cur.fetchone()[0] == 1

    def create_if_absent(self, new: NewOrder) -> CreateResult:
        with self._conn() as conn:
            row = insert_order_if_absent(conn, new)
            if row:
                return CreateResult(order=row_to_order(row), created=True)
            existing = get_order_by_payment_reference(conn, new.payment_reference, category=new.category)
        if existing is None:
            raise ReferenceConflict(new.reference)
        return CreateResult(order=row_to_order(existing), created=False)

    def transition(
        self,
        order_id: int,
        *,
        from_status: str,
        to_status: str,
        gateway_transaction_id: Optional[str] = None,
        supplier_used: Optional[str] = None,
        supplier_transaction_id: Optional[str] = None,
        supplier_response: Optional[dict[str, Any]] = None,
        last_error: Optional[str] = None,
    ) -> bool:
        if not is_allowed(from_status, to_status):
            return False
        with self._conn() as conn:
            return update_status(
                conn,
                order_id=order_id,
                from_status=from_status,
                new_status=to_status,
                gateway_transaction_id=gateway_transaction_id,
                supplier_used=supplier_used,
                supplier_transaction_id=supplier_transaction_id,
                supplier_response=supplier_response,
                last_error=last_error,
            )

    def record_supplier_attempt(self, order_id: int, supplier: str) -> bool:
        with self._conn() as conn:
            return set_supplier_attempt(conn, order_id=order_id, supplier=supplier)

    def claim_stale(self, order_id: int, *, status: str, seen_updated_at: datetime) -> bool:
        with self._conn() as conn:
            return touch_if_unchanged(conn, order_id=order_id, status=status, seen_updated_at=seen_updated_at)

    def get(self, order_id: int) -> Order | None:
        with self._conn() as conn:
            row = get_order(conn, order_id)
        return row_to_order(row) if row else None

    def get_by_reference(self, reference: str) -> Order | None:
        with self._conn() as conn:
            row = get_order_by_reference(conn, reference)
        return row_to_order(row) if row else None

    def get_by_payment_reference(self, payment_reference: str, category: Optional[str] = None) -> Order | None:
        with self._conn() as conn:
            row = get_order_by_payment_reference(conn, payment_reference, category=category)
        return row_to_order(row) if row else None

    def list_stale(self, status: str, *, older_than_s: int, limit: int) -> list[Order]:
        with self._conn() as conn:
            rows = list_stale_orders(conn, status=status, older_than_seconds=older_than_s, limit=limit)
        return [row_to_order(r) for r in rows]

    def record_webhook_event(self, event: dict[str, Any]) -> None:
        with self._conn() as conn:
            insert_webhook_event(conn, **event)

    def save_reconcile_report(self, *, run_at: datetime, summary: dict[str, Any], items: list[dict[str, Any]]) -> str:
        with self._conn() as conn:
            return insert_reconcile_report(conn, run_at=run_at, summary=summary, items=items)
