# app/payments/confirmation.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from app.fulfillment.dispatcher import FulfillmentOutcome, SupplierDispatcher
from app.orders.model import AWAITING_PAYMENT, CANCELLED, PAID, NewOrder, Order
from app.orders.store import OrderStore
from app.payments.attempts import AttemptRegistry
from app.payments.moolre import PaymentStatus
from services.metrics import increment_order_transition
from services.notifications import CustomerNotifier, notify_quietly

logger = logging.getLogger("bundlepay.payments")


@dataclass(frozen=True)
class ConfirmationResult:
    applied: bool
    reason: str
    order: Optional[Order] = None
    fulfillment: Optional[FulfillmentOutcome] = None
    # PAID was applied but the caller asked to dispatch on its own.
    needs_dispatch: bool = False


class PaymentConfirmer:
    """
    Applies a decoded payment status to the order behind a payment reference.
    Shared by the webhook, the poller re-check and the scheduler so that all
    of them follow the same rules and only a CAS winner dispatches.
    """

    def __init__(
        self,
        *,
        store: OrderStore,
        attempts: AttemptRegistry,
        dispatcher: SupplierDispatcher,
        notifier: CustomerNotifier | None = None,
    ):
        self._store = store
        self._attempts = attempts
        self._dispatcher = dispatcher
        self._notifier = notifier

    def apply(
        self,
        *,
        reference: str,
        status: PaymentStatus,
        transaction_id: Optional[str] = None,
        source: str,
        dispatch: bool = True,
    ) -> ConfirmationResult:
        """
        With dispatch=False a PAID transition is returned with needs_dispatch set
        and the supplier walk is left to the caller (or the PAID sweep).
        """
        order = self._store.get_by_payment_reference(reference)

        if order is None:
            return self._apply_without_order(reference, status, transaction_id, source, dispatch)

        if order.status != AWAITING_PAYMENT:
            logger.info(
                "payment_status_noop source=%s reference=%s status=%s order_status=%s",
                source,
                reference,
                status.value,
                order.status,
            )
            return ConfirmationResult(applied=False, reason=f"ALREADY_{order.status}", order=order)

        if status == PaymentStatus.SUCCESS:
            return self._mark_paid(order, transaction_id, source, dispatch)

        if status == PaymentStatus.FAILED:
            if not self._store.transition(order.id, from_status=AWAITING_PAYMENT, to_status=CANCELLED, last_error="PAYMENT_FAILED"):
                current = self._store.get(order.id)
                return ConfirmationResult(applied=False, reason=f"ALREADY_{current.status if current else 'MISSING'}", order=current)
            increment_order_transition(AWAITING_PAYMENT, CANCELLED)
            logger.info("order_cancelled source=%s reference=%s", source, order.reference)
            cancelled = self._store.get(order.id)
            notify_quietly(self._notifier, cancelled)
            return ConfirmationResult(applied=True, reason="CANCELLED", order=cancelled)

        return ConfirmationResult(applied=False, reason="STILL_PENDING", order=order)

    def _apply_without_order(
        self,
        reference: str,
        status: PaymentStatus,
        transaction_id: Optional[str],
        source: str,
        dispatch: bool,
    ) -> ConfirmationResult:
        if status != PaymentStatus.SUCCESS:
            logger.info("payment_status_unknown_order source=%s reference=%s status=%s", source, reference, status.value)
            return ConfirmationResult(applied=False, reason="ORDER_NOT_FOUND")

        attempt = self._attempts.get(reference)
        if attempt is None:
            # Money may have been taken with no order behind it; needs an operator.
            logger.error("payment_success_unknown_order source=%s reference=%s", source, reference)
            return ConfirmationResult(applied=False, reason="ORDER_NOT_FOUND")

        created = self._store.create_if_absent(
            NewOrder(
                reference=attempt.order_ref,
                category=attempt.category,
                network=attempt.network,
                phone=attempt.phone,
                package=attempt.package,
                amount_minor=attempt.amount_minor,
                payment_reference=attempt.order_ref,
                status=PAID,
                gateway_transaction_id=transaction_id,
                shop_id=attempt.shop_id,
                markup_minor=attempt.markup_minor,
            )
        )
        self._attempts.discard(reference)

        if not created.created:
            # Someone else created it in the meantime; apply the normal rules to that row.
            if created.order.status == AWAITING_PAYMENT:
                return self._mark_paid(created.order, transaction_id, source, dispatch)
            return ConfirmationResult(applied=False, reason=f"ALREADY_{created.order.status}", order=created.order)

        increment_order_transition("NEW", PAID)
        logger.info("order_created_paid source=%s reference=%s", source, created.order.reference)
        if not dispatch:
            return ConfirmationResult(applied=True, reason="CREATED_PAID", order=created.order, needs_dispatch=True)
        fulfillment = self._dispatcher.dispatch(created.order)
        return ConfirmationResult(
            applied=True,
            reason="CREATED_PAID",
            order=self._store.get(created.order.id),
            fulfillment=fulfillment,
        )

    def _mark_paid(
        self,
        order: Order,
        transaction_id: Optional[str],
        source: str,
        dispatch: bool = True,
    ) -> ConfirmationResult:
        if not self._store.transition(
            order.id,
            from_status=AWAITING_PAYMENT,
            to_status=PAID,
            gateway_transaction_id=transaction_id,
        ):
            current = self._store.get(order.id)
            return ConfirmationResult(
                applied=False,
                reason=f"ALREADY_{current.status if current else 'MISSING'}",
                order=current,
            )

        increment_order_transition(AWAITING_PAYMENT, PAID)
        logger.info("order_paid source=%s reference=%s", source, order.reference)
        paid = self._store.get(order.id) or order
        if not dispatch:
            return ConfirmationResult(applied=True, reason="PAID", order=paid, needs_dispatch=True)
        fulfillment = self._dispatcher.dispatch(paid)
        return ConfirmationResult(
            applied=True,
            reason="PAID",
            order=self._store.get(order.id),
            fulfillment=fulfillment,
        )
