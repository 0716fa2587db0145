# app/workers/reconcile_scheduler.py
from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from app.clock import Clock, utcnow
from app.config import ReconcileConfig
from app.fulfillment.dispatcher import SupplierDispatcher
from app.orders.model import AWAITING_PAYMENT, CANCELLED, PAID, PROCESSING, Order
from app.orders.store import OrderStore
from app.payments.attempts import AttemptRegistry
from app.payments.confirmation import PaymentConfirmer
from app.payments.moolre import GatewayUnavailable, PaymentGateway, PaymentStatus
from app.suppliers.base import DataSupplier, SupplierStatus
from services.metrics import increment_order_transition, increment_reconcile_action
from services.notifications import CustomerNotifier, notify_quietly

logger = logging.getLogger("bundlepay.reconcile")

PAYMENT_ABANDONED = "PAYMENT_ABANDONED"
SUPPLIER_STATUS_UNAVAILABLE = "SUPPLIER_STATUS_UNAVAILABLE"


class ReconciliationScheduler:
    def __init__(
        self,
        *,
        store: OrderStore,
        gateway: PaymentGateway,
        confirmer: PaymentConfirmer,
        dispatcher: SupplierDispatcher,
        suppliers: Mapping[str, DataSupplier],
        attempts: AttemptRegistry | None = None,
        config: ReconcileConfig,
        notifier: CustomerNotifier | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._gateway = gateway
        self._confirmer = confirmer
        self._dispatcher = dispatcher
        self._suppliers = suppliers
        self._attempts = attempts
        self._config = config
        self._notifier = notifier
        self._clock = clock or utcnow

    # ==========================================================
    # AWAITING_PAYMENT
    # ==========================================================

    def recheck_payment(self, order: Order) -> str:
        """Ask the gateway about one unpaid order and apply the answer."""
        if order.status != AWAITING_PAYMENT:
            return f"ALREADY_{order.status}"

        try:
            status = self._gateway.transaction_status(order.payment_reference)
        except GatewayUnavailable as exc:
            # Payment state is unknown, so the order must not be abandoned on this pass.
            logger.warning("payment_recheck_unavailable reference=%s error=%s", order.reference, exc.reason)
            return "GATEWAY_UNAVAILABLE"

        if status.status in (PaymentStatus.SUCCESS, PaymentStatus.FAILED):
            res = self._confirmer.apply(
                reference=order.payment_reference,
                status=status.status,
                transaction_id=status.transaction_id,
                source="reconcile",
            )
            return res.reason

        if order.age_seconds(self._clock()) >= self._config.payment_abandon_after_s:
            if self._store.transition(
                order.id,
                from_status=AWAITING_PAYMENT,
                to_status=CANCELLED,
                last_error=PAYMENT_ABANDONED,
            ):
                increment_order_transition(AWAITING_PAYMENT, CANCELLED)
                logger.info("order_abandoned reference=%s", order.reference)
                notify_quietly(self._notifier, self._store.get(order.id))
                return "ABANDONED"
            return "CONFLICT"

        return "STILL_PENDING"

    # ==========================================================
    # PAID / PROCESSING
    # ==========================================================

    def _sweep_paid(self, order: Order) -> str:
        outcome = self._dispatcher.dispatch(order)
        return f"DISPATCHED_{outcome.outcome.upper()}"

    def _sweep_processing(self, order: Order) -> str:
        if not self._store.claim_stale(order.id, status=PROCESSING, seen_updated_at=order.updated_at):
            return "CLAIM_LOST"
        claimed = self._store.get(order.id) or order

        if not claimed.supplier_used:
            outcome = self._dispatcher.resume(claimed)
            return f"RESUMED_{outcome.outcome.upper()}"

        supplier = self._suppliers.get(claimed.supplier_used)
        if supplier is None:
            self._dispatcher.mark_failed(claimed, last_error=SUPPLIER_STATUS_UNAVAILABLE)
            return "FAILED_UNKNOWN_SUPPLIER"

        try:
            result = supplier.check_status(claimed.supplier_transaction_id or claimed.reference)
        except Exception:
            logger.exception("supplier_status_error reference=%s supplier=%s", claimed.reference, claimed.supplier_used)
            return "STATUS_ERROR"

        if result.unreachable:
            logger.warning(
                "supplier_status_unreachable reference=%s supplier=%s error=%s",
                claimed.reference,
                claimed.supplier_used,
                result.message,
            )
            return "STATUS_UNREACHABLE"

        if not result.supported or result.status == SupplierStatus.UNKNOWN:
            # Never re-dispatch blindly: the first purchase may have gone through.
            self._dispatcher.mark_failed(
                claimed,
                last_error=SUPPLIER_STATUS_UNAVAILABLE,
                response={"status_check": result.message or result.raw},
            )
            return "FAILED_STATUS_UNAVAILABLE"

        if result.status == SupplierStatus.DELIVERED:
            self._dispatcher.mark_fulfilled(
                claimed,
                supplier=claimed.supplier_used,
                provider_transaction_id=claimed.supplier_transaction_id,
                response=result.response,
            )
            return "FULFILLED"

        if result.status == SupplierStatus.FAILED:
            outcome = self._dispatcher.resume(claimed, after=claimed.supplier_used)
            return f"RESUMED_{outcome.outcome.upper()}"

        return "STILL_PROCESSING"

    # ==========================================================
    # Sweep
    # ==========================================================

    def sweep(self) -> dict[str, Any]:
        run_at = self._clock()
        cfg = self._config
        items: list[dict[str, Any]] = []
        summary: dict[str, int] = {
            "awaiting_payment_checked": 0,
            "paid_checked": 0,
            "processing_checked": 0,
            "errors": 0,
        }

        if self._attempts is not None:
            summary["attempts_purged"] = self._attempts.purge_expired()

        passes = (
            (AWAITING_PAYMENT, cfg.payment_stale_s, "awaiting_payment_checked", self.recheck_payment),
            (PAID, cfg.paid_stale_s, "paid_checked", self._sweep_paid),
            (PROCESSING, cfg.processing_stale_s, "processing_checked", self._sweep_processing),
        )

        for status, older_than, counter, handler in passes:
            for order in self._store.list_stale(status, older_than_s=older_than, limit=cfg.batch_size):
                summary[counter] += 1
                try:
                    action = handler(order)
                except Exception:
                    logger.exception("reconcile_item_failed reference=%s status=%s", order.reference, status)
                    summary["errors"] += 1
                    action = "ERROR"
                increment_reconcile_action(status.lower(), action.lower())
                items.append({"reference": order.reference, "status": status, "action": action})

        report_id = self._store.save_reconcile_report(run_at=run_at, summary=summary, items=items)
        logger.info("reconcile_sweep id=%s summary=%s", report_id, summary)
        return {"id": report_id, "run_at": run_at.isoformat(), "summary": summary, "items": items}

    def run_forever(self, *, poll_seconds: int | None = None) -> None:
        interval = poll_seconds if poll_seconds is not None else self._config.interval_s
        logger.info("reconcile_scheduler_started interval_s=%s", interval)
        while True:
            try:
                self.sweep()
            except Exception:
                logger.exception("reconcile_sweep_failed")
            time.sleep(max(1, int(interval)))
