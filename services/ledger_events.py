from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Protocol

from psycopg2.extras import Json

logger = logging.getLogger("bundlepay.ledger")


class ShopLedger(Protocol):
    def credit_markup(self, *, shop_id: str, markup_minor: int, order_reference: str) -> bool: ...


class LoggingShopLedger:
    """
    Emits credit events to the log and keeps them in memory.
    Duplicate order references are dropped, matching the outbox table's unique key.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.events: list[dict[str, Any]] = []
        self._seen: set[str] = set()

    def credit_markup(self, *, shop_id: str, markup_minor: int, order_reference: str) -> bool:
        with self._lock:
            if order_reference in self._seen:
                return False
            self._seen.add(order_reference)
            self.events.append(
                {"shop_id": shop_id, "markup_minor": markup_minor, "order_reference": order_reference}
            )
        logger.info(
            "shop_credit_event shop_id=%s markup_minor=%s order_reference=%s",
            shop_id,
            markup_minor,
            order_reference,
        )
        return True


class PostgresShopLedger:
    """Writes to app.shop_credit_events; the external shop ledger consumes that table."""

    def __init__(self, conn_factory: Callable | None = None):
        if conn_factory is None:
            from db import get_conn

            conn_factory = get_conn
        self._conn = conn_factory

    def credit_markup(self, *, shop_id: str, markup_minor: int, order_reference: str) -> bool:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO app.shop_credit_events (shop_id, markup_minor, order_reference, payload)
                    VALUES (%s, %s, %s, %s::jsonb)
                    ON CONFLICT (order_reference) DO NOTHING
                    """,
                    (
                        shop_id,
                        markup_minor,
                        order_reference,
                        Json({"shop_id": shop_id, "markup_minor": markup_minor, "order_reference": order_reference}),
                    ),
                )
                inserted = cur.rowcount == 1
        logger.info(
            "shop_credit_event shop_id=%s markup_minor=%s order_reference=%s inserted=%s",
            shop_id,
            markup_minor,
            order_reference,
            inserted,
        )
        return inserted
