# app/orders/poller.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from app.catalog.packages import PackageDescriptor
from app.clock import Clock, utcnow
from app.orders.model import AWAITING_PAYMENT, Order
from app.orders.store import OrderStore

logger = logging.getLogger("bundlepay.orders")


@dataclass(frozen=True)
class OrderStatusView:
    reference: str
    status: str
    package: PackageDescriptor
    phone: str
    amount_minor: int
    created_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderStatusView":
        return cls(
            reference=order.reference,
            status=order.status,
            package=order.package,
            phone=order.phone,
            amount_minor=order.amount_minor,
            created_at=order.created_at,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "reference": self.reference,
            "status": self.status,
            "package": self.package.as_dict(),
            "phone": self.phone,
            "amount_minor": self.amount_minor,
            "created_at": self.created_at,
        }


class StatusPoller:
    def __init__(self, *, store: OrderStore, scheduler, recheck_after_s: int, clock: Clock | None = None):
        self._store = store
        self._scheduler = scheduler
        self._recheck_after_s = recheck_after_s
        self._clock = clock or utcnow

    def get_status(self, reference: str) -> Optional[OrderStatusView]:
        order = self._store.get_by_reference(reference)
        if order is None:
            return None

        if order.status == AWAITING_PAYMENT and order.age_seconds(self._clock()) >= self._recheck_after_s:
            try:
                action = self._scheduler.recheck_payment(order)
                logger.info("poll_recheck reference=%s action=%s", reference, action)
            except Exception:
                # Status reads must not fail because the gateway or a supplier misbehaved.
                logger.exception("poll_recheck_failed reference=%s", reference)
            order = self._store.get(order.id) or order

        return OrderStatusView.from_order(order)
