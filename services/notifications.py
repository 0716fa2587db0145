from __future__ import annotations

import logging
from typing import Protocol

from app.orders.model import Order
from services.redaction import mask_phone

logger = logging.getLogger("bundlepay.notifications")


class CustomerNotifier(Protocol):
    def order_updated(self, order: Order) -> None: ...


class LoggingNotifier:
    """Fire-and-forget hook; SMS delivery lives outside this service."""

    def order_updated(self, order: Order) -> None:
        logger.info(
            "notify_customer reference=%s status=%s phone=%s size=%s",
            order.reference,
            order.status,
            mask_phone(order.phone),
            order.package.size,
        )


def notify_quietly(notifier: CustomerNotifier | None, order: Order | None) -> None:
    if notifier is None or order is None:
        return
    try:
        notifier.order_updated(order)
    except Exception:
        logger.exception("notify_failed reference=%s", order.reference)
