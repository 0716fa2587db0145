# app/fulfillment/dispatcher.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Mapping, Optional, Sequence, Union

from app.orders.model import FAILED, FULFILLED, PAID, PROCESSING, Order
from app.orders.store import OrderStore
from app.suppliers.base import DataSupplier, PurchaseKind, PurchaseResult
from app.suppliers.registry import SupplierDescriptor, SupplierHealth, eligible_suppliers
from services.ledger_events import ShopLedger
from services.metrics import increment_order_transition, increment_supplier_attempt
from services.notifications import CustomerNotifier, notify_quietly

logger = logging.getLogger("bundlepay.dispatch")

ALL_SUPPLIERS_EXHAUSTED = "ALL_SUPPLIERS_EXHAUSTED"


@dataclass(frozen=True)
class SupplierAttempt:
    supplier: str
    kind: str
    message: str


@dataclass(frozen=True)
class Fulfilled:
    order: Order
    supplier: str
    outcome: str = field(default="fulfilled", init=False)


@dataclass(frozen=True)
class Exhausted:
    order: Order
    attempts: tuple[SupplierAttempt, ...]
    outcome: str = field(default="failed", init=False)


@dataclass(frozen=True)
class DispatchSkipped:
    reference: str
    reason: str
    outcome: str = field(default="skipped", init=False)


FulfillmentOutcome = Union[Fulfilled, Exhausted, DispatchSkipped]


class SupplierDispatcher:
    def __init__(
        self,
        *,
        store: OrderStore,
        suppliers: Mapping[str, DataSupplier],
        descriptors: Sequence[SupplierDescriptor],
        health: SupplierHealth,
        ledger: ShopLedger | None = None,
        notifier: CustomerNotifier | None = None,
    ):
        self._store = store
        self._suppliers = suppliers
        self._descriptors = tuple(descriptors)
        self._health = health
        self._ledger = ledger
        self._notifier = notifier

    def dispatch(self, order: Order) -> FulfillmentOutcome:
        """Only the caller that wins PAID -> PROCESSING talks to suppliers."""
        if not self._store.transition(order.id, from_status=PAID, to_status=PROCESSING):
            current = self._store.get(order.id)
            status = current.status if current else "MISSING"
            logger.info("dispatch_skipped reference=%s status=%s", order.reference, status)
            return DispatchSkipped(reference=order.reference, reason=f"NOT_PAID:{status}")

        increment_order_transition(PAID, PROCESSING)
        logger.info("dispatch_start reference=%s category=%s network=%s", order.reference, order.category, order.network)
        candidates = eligible_suppliers(
            self._descriptors,
            category=order.category,
            network=order.network,
            health=self._health,
        )
        return self._walk(order, candidates)

    def resume(self, order: Order, *, after: Optional[str] = None) -> FulfillmentOutcome:
        """
        Continue the supplier walk for an order already in PROCESSING that the
        caller has claimed. `after` skips the named supplier and everything
        ranked above it.
        """
        if order.status != PROCESSING:
            return DispatchSkipped(reference=order.reference, reason=f"NOT_PROCESSING:{order.status}")

        logger.info("dispatch_resume reference=%s after=%s", order.reference, after)
        candidates = eligible_suppliers(
            self._descriptors,
            category=order.category,
            network=order.network,
            health=self._health,
            after=after,
        )
        return self._walk(order, candidates)

    def mark_fulfilled(
        self,
        order: Order,
        *,
        supplier: str,
        provider_transaction_id: Optional[str],
        response: Optional[dict],
    ) -> Optional[Order]:
        """PROCESSING -> FULFILLED plus the side effects. None when another actor got there first."""
        ok = self._store.transition(
            order.id,
            from_status=PROCESSING,
            to_status=FULFILLED,
            supplier_used=supplier,
            supplier_transaction_id=provider_transaction_id,
            supplier_response=response,
        )
        if not ok:
            logger.warning("fulfill_conflict reference=%s supplier=%s", order.reference, supplier)
            return None

        increment_order_transition(PROCESSING, FULFILLED)
        logger.info("order_fulfilled reference=%s supplier=%s", order.reference, supplier)
        self._credit_shop(order)
        fulfilled = self._store.get(order.id)
        notify_quietly(self._notifier, fulfilled)
        return fulfilled

    def mark_failed(self, order: Order, *, last_error: str, response: Optional[dict] = None) -> Optional[Order]:
        ok = self._store.transition(
            order.id,
            from_status=PROCESSING,
            to_status=FAILED,
            supplier_response=response,
            last_error=last_error,
        )
        if not ok:
            return None
        increment_order_transition(PROCESSING, FAILED)
        logger.error("order_failed reference=%s last_error=%s", order.reference, last_error)
        failed = self._store.get(order.id)
        notify_quietly(self._notifier, failed)
        return failed

    def _walk(self, order: Order, candidates: Sequence[SupplierDescriptor]) -> FulfillmentOutcome:
        attempts: list[SupplierAttempt] = []

        for descriptor in candidates:
            supplier = self._suppliers.get(descriptor.name)
            if supplier is None:
                logger.error("supplier_missing_adapter supplier=%s reference=%s", descriptor.name, order.reference)
                continue

            if not self._store.record_supplier_attempt(order.id, descriptor.name):
                logger.warning("dispatch_lost_claim reference=%s supplier=%s", order.reference, descriptor.name)
                return DispatchSkipped(reference=order.reference, reason="NOT_PROCESSING")

            result = self._purchase(supplier, order)
            increment_supplier_attempt(descriptor.name, result.kind.value.lower())

            if result.kind == PurchaseKind.SUCCESS:
                fulfilled = self.mark_fulfilled(
                    order,
                    supplier=descriptor.name,
                    provider_transaction_id=result.provider_transaction_id,
                    response=result.response,
                )
                if fulfilled is None:
                    return DispatchSkipped(reference=order.reference, reason="NOT_PROCESSING")
                return Fulfilled(order=fulfilled, supplier=descriptor.name)

            if result.kind == PurchaseKind.UNREACHABLE:
                logger.warning(
                    "supplier_unreachable reference=%s supplier=%s error=%s",
                    order.reference,
                    descriptor.name,
                    result.message,
                )
                self._health.mark_unhealthy(descriptor.name, reason=result.message)
            else:
                logger.warning(
                    "supplier_declined reference=%s supplier=%s message=%s",
                    order.reference,
                    descriptor.name,
                    result.message,
                )
            attempts.append(SupplierAttempt(descriptor.name, result.kind.value, result.message))

        failed = self.mark_failed(
            order,
            last_error=ALL_SUPPLIERS_EXHAUSTED,
            response={"attempts": [asdict(a) for a in attempts]},
        )
        if failed is None:
            return DispatchSkipped(reference=order.reference, reason="NOT_PROCESSING")
        return Exhausted(order=failed, attempts=tuple(attempts))

    def _purchase(self, supplier: DataSupplier, order: Order) -> PurchaseResult:
        try:
            return supplier.purchase(order.phone, order.package, order.reference, network=order.network)
        except Exception as exc:
            # Adapters classify their own errors; anything escaping is treated as unreachable.
            logger.exception("supplier_error reference=%s supplier=%s", order.reference, supplier.name)
            return PurchaseResult(kind=PurchaseKind.UNREACHABLE, message=f"unexpected: {exc}")

    def _credit_shop(self, order: Order) -> None:
        if self._ledger is None or not order.shop_id or not order.markup_minor:
            return
        try:
            self._ledger.credit_markup(
                shop_id=order.shop_id,
                markup_minor=int(order.markup_minor),
                order_reference=order.reference,
            )
        except Exception:
            logger.exception("shop_credit_failed reference=%s shop_id=%s", order.reference, order.shop_id)
