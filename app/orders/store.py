from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from app.clock import Clock, utcnow
from app.orders.model import PROCESSING, NewOrder, Order
from app.orders.state_machine import is_allowed


class ReferenceConflict(Exception):
    """The customer reference is already taken by an order with a different payment key."""


@dataclass(frozen=True)
class CreateResult:
    order: Order
    created: bool


class OrderStore(Protocol):
    def ping(self) -> bool: ...

    def create_if_absent(self, new: NewOrder) -> CreateResult: ...

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
    ) -> bool: ...

    def record_supplier_attempt(self, order_id: int, supplier: str) -> bool: ...

    def claim_stale(self, order_id: int, *, status: str, seen_updated_at: datetime) -> bool: ...

    def get(self, order_id: int) -> Order | None: ...

    def get_by_reference(self, reference: str) -> Order | None: ...

    def get_by_payment_reference(self, payment_reference: str, category: Optional[str] = None) -> Order | None: ...

    def list_stale(self, status: str, *, older_than_s: int, limit: int) -> list[Order]: ...

    def record_webhook_event(self, event: dict[str, Any]) -> None: ...

    def save_reconcile_report(self, *, run_at: datetime, summary: dict[str, Any], items: list[dict[str, Any]]) -> str: ...


class InMemoryOrderStore:
    """
    Process-local store. Every mutation runs under one lock so that
    create_if_absent and transition behave like their SQL counterparts.
    """

    def __init__(self, clock: Clock | None = None):
        self._lock = threading.Lock()
        self._clock = clock or utcnow
        self._orders: dict[int, Order] = {}
        self._by_key: dict[tuple[str, str], int] = {}
        self._by_reference: dict[str, int] = {}
        self._next_id = 1
        self.webhook_events: list[dict[str, Any]] = []
        self.reconcile_reports: list[dict[str, Any]] = []

    def ping(self) -> bool:
        return True

    def create_if_absent(self, new: NewOrder) -> CreateResult:
        key = (new.category, new.payment_reference)
        with self._lock:
            existing_id = self._by_key.get(key)
            if existing_id is not None:
                return CreateResult(order=self._orders[existing_id], created=False)
            if new.reference in self._by_reference:
                raise ReferenceConflict(new.reference)

            now = self._clock()
            order = Order(
                id=self._next_id,
                reference=new.reference,
                category=new.category,
                network=new.network,
                phone=new.phone,
                package=new.package,
                amount_minor=new.amount_minor,
                payment_reference=new.payment_reference,
                status=new.status,
                gateway_transaction_id=new.gateway_transaction_id,
                supplier_used=None,
                supplier_transaction_id=None,
                supplier_response=None,
                last_error=None,
                shop_id=new.shop_id,
                markup_minor=new.markup_minor,
                created_at=now,
                updated_at=now,
            )
            self._next_id += 1
            self._orders[order.id] = order
            self._by_key[key] = order.id
            self._by_reference[order.reference] = order.id
            return CreateResult(order=order, created=True)

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
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status != from_status:
                return False
            self._orders[order_id] = replace(
                order,
                status=to_status,
                gateway_transaction_id=gateway_transaction_id or order.gateway_transaction_id,
                supplier_used=supplier_used or order.supplier_used,
                supplier_transaction_id=supplier_transaction_id or order.supplier_transaction_id,
                supplier_response=supplier_response if supplier_response is not None else order.supplier_response,
                last_error=last_error or order.last_error,
                updated_at=self._clock(),
            )
            return True

    def record_supplier_attempt(self, order_id: int, supplier: str) -> bool:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status != PROCESSING:
                return False
            self._orders[order_id] = replace(
                order,
                supplier_used=supplier,
                supplier_transaction_id=None,
                updated_at=self._clock(),
            )
            return True

    def claim_stale(self, order_id: int, *, status: str, seen_updated_at: datetime) -> bool:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None or order.status != status or order.updated_at != seen_updated_at:
                return False
            self._orders[order_id] = replace(order, updated_at=self._clock())
            return True

    def get(self, order_id: int) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

    def get_by_reference(self, reference: str) -> Order | None:
        with self._lock:
            order_id = self._by_reference.get(reference)
            return self._orders.get(order_id) if order_id is not None else None

    def get_by_payment_reference(self, payment_reference: str, category: Optional[str] = None) -> Order | None:
        with self._lock:
            if category is not None:
                order_id = self._by_key.get((category, payment_reference))
                return self._orders.get(order_id) if order_id is not None else None
            matches = [o for o in self._orders.values() if o.payment_reference == payment_reference]
        if not matches:
            return None
        return max(matches, key=lambda o: o.id)

    def list_stale(self, status: str, *, older_than_s: int, limit: int) -> list[Order]:
        cutoff = self._clock() - timedelta(seconds=older_than_s)
        with self._lock:
            rows = [o for o in self._orders.values() if o.status == status and o.updated_at <= cutoff]
        rows.sort(key=lambda o: o.updated_at)
        return rows[:limit]

    def record_webhook_event(self, event: dict[str, Any]) -> None:
        with self._lock:
            self.webhook_events.append(dict(event, received_at=self._clock()))

    def save_reconcile_report(self, *, run_at: datetime, summary: dict[str, Any], items: list[dict[str, Any]]) -> str:
        report_id = str(uuid.uuid4())
        with self._lock:
            self.reconcile_reports.append({"id": report_id, "run_at": run_at, "summary": summary, "items": items})
        return report_id
