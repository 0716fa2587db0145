# app/webhooks/reconciler.py
from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from app.fulfillment.dispatcher import FulfillmentOutcome, SupplierDispatcher
from app.orders.model import Order
from app.orders.store import OrderStore
from app.payments.confirmation import PaymentConfirmer
from app.payments.moolre import WebhookPayload, parse_webhook_payload
from services.metrics import increment_webhook_event
from services.observability import get_request_id
from services.redaction import redact_dict, redact_text

logger = logging.getLogger("bundlepay.webhooks")

PROVIDER = "MOOLRE"
WEBHOOK_PATH = "/v1/webhooks/moolre"


@dataclass(frozen=True)
class WebhookAck:
    reference: Optional[str]
    applied: bool
    ignored_reason: Optional[str] = None
    order_status: Optional[str] = None
    # Order just moved to PAID; the caller dispatches it after acknowledging.
    dispatch_order: Optional[Order] = field(default=None, repr=False, compare=False)
    outcome: str = field(default="ack", init=False)

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"ok": True, "provider": PROVIDER, "reference": self.reference, "applied": self.applied}
        if self.ignored_reason:
            out["ignored"] = True
            out["reason"] = self.ignored_reason
        if self.order_status:
            out["status"] = self.order_status
        return out


@dataclass(frozen=True)
class WebhookReject:
    error: str
    outcome: str = field(default="reject", init=False)


WebhookResult = Union[WebhookAck, WebhookReject]


def verify_webhook(
    *,
    raw: bytes,
    payload: Optional[dict[str, Any]],
    headers: Mapping[str, str],
    secret: str | None,
) -> tuple[bool, str | None]:
    """
    Accepts either an HMAC-SHA256 signature of the raw body in X-Signature
    ("sha256=<hex>") or the shared secret echoed in the body / X-Moolre-Secret.
    """
    if not secret or not secret.strip():
        return False, "WEBHOOK_SECRET_NOT_CONFIGURED"

    sig = (headers.get("x-signature") or "").strip()
    if sig:
        if sig.lower().startswith("sha256="):
            sig = sig.split("=", 1)[1].strip()
        expected = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, sig):
            return False, "INVALID_SIGNATURE"
        return True, None

    shared = (headers.get("x-moolre-secret") or "").strip()
    if not shared and payload is not None:
        shared = parse_webhook_payload(payload).secret or ""
    if not shared:
        return False, "MISSING_SIGNATURE"
    if not hmac.compare_digest(secret.encode("utf-8"), shared.encode("utf-8")):
        return False, "INVALID_SECRET"
    return True, None


def _parse_json(raw: bytes) -> Optional[dict[str, Any]]:
    try:
        obj = json.loads(raw.decode("utf-8") or "null")
    except (UnicodeDecodeError, ValueError):
        return None
    return obj if isinstance(obj, dict) else None


class WebhookReconciler:
    def __init__(
        self,
        *,
        store: OrderStore,
        confirmer: PaymentConfirmer,
        dispatcher: SupplierDispatcher,
        secret: str,
    ):
        self._store = store
        self._confirmer = confirmer
        self._dispatcher = dispatcher
        self._secret = secret

    def handle(self, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        lowered = {str(k).lower(): str(v) for k, v in dict(headers).items()}
        payload = _parse_json(raw_body)

        ok, sig_err = verify_webhook(raw=raw_body, payload=payload, headers=lowered, secret=self._secret)
        if not ok:
            log = logger.error if sig_err == "WEBHOOK_SECRET_NOT_CONFIGURED" else logger.warning
            log("webhook_rejected request_id=%s provider=%s error=%s", get_request_id(), PROVIDER, sig_err)
            increment_webhook_event(PROVIDER, signature_valid=False, applied=False)
            self._audit(raw_body, lowered, payload, None, signature_valid=False, signature_error=sig_err)
            return WebhookReject(error=sig_err or "INVALID_SIGNATURE")

        if payload is None:
            ack = WebhookAck(reference=None, applied=False, ignored_reason="INVALID_JSON")
            self._finish(raw_body, lowered, payload, None, ack)
            return ack

        parsed = parse_webhook_payload(payload)
        logger.info(
            "webhook_received request_id=%s provider=%s reference=%s status_raw=%s",
            get_request_id(),
            PROVIDER,
            parsed.reference,
            parsed.status_raw,
        )

        if not parsed.reference:
            ack = WebhookAck(reference=None, applied=False, ignored_reason="MISSING_REFERENCE")
            self._finish(raw_body, lowered, payload, parsed, ack)
            return ack

        before = None
        try:
            before = self._store.get_by_payment_reference(parsed.reference)
            res = self._confirmer.apply(
                reference=parsed.reference,
                status=parsed.status,
                transaction_id=parsed.transaction_id,
                source="webhook",
                dispatch=False,
            )
        except Exception:
            # Acknowledge anyway; the stale-order sweep picks the order up again.
            logger.exception("webhook_apply_failed reference=%s", parsed.reference)
            ack = WebhookAck(reference=parsed.reference, applied=False, ignored_reason="INTERNAL_ERROR")
            self._finish(raw_body, lowered, payload, parsed, ack, status_before=before.status if before else None)
            return ack

        ack = WebhookAck(
            reference=parsed.reference,
            applied=res.applied,
            ignored_reason=None if res.applied else res.reason,
            order_status=res.order.status if res.order else None,
            dispatch_order=res.order if res.needs_dispatch else None,
        )
        self._finish(raw_body, lowered, payload, parsed, ack, status_before=before.status if before else None)
        return ack

    def dispatch_paid(self, order: Order) -> Optional[FulfillmentOutcome]:
        """Runs after the acknowledgement; failures are left to the PAID sweep."""
        try:
            return self._dispatcher.dispatch(order)
        except Exception:
            logger.exception("webhook_dispatch_failed reference=%s", order.reference)
            return None

    def _finish(
        self,
        raw: bytes,
        headers: dict[str, str],
        payload: Optional[dict[str, Any]],
        parsed: Optional[WebhookPayload],
        ack: WebhookAck,
        *,
        status_before: Optional[str] = None,
    ) -> None:
        increment_webhook_event(PROVIDER, signature_valid=True, applied=ack.applied)
        if ack.ignored_reason:
            logger.info("webhook_ignored reference=%s reason=%s", ack.reference, ack.ignored_reason)
        self._audit(
            raw,
            headers,
            payload,
            parsed,
            signature_valid=True,
            signature_error=None,
            status_before=status_before,
            status_after=ack.order_status,
            applied=ack.applied,
            ignore_reason=ack.ignored_reason,
        )

    def _audit(
        self,
        raw: bytes,
        headers: dict[str, str],
        payload: Optional[dict[str, Any]],
        parsed: Optional[WebhookPayload],
        *,
        signature_valid: bool,
        signature_error: Optional[str],
        status_before: Optional[str] = None,
        status_after: Optional[str] = None,
        applied: bool = False,
        ignore_reason: Optional[str] = None,
    ) -> None:
        event = {
            "provider": PROVIDER,
            "path": WEBHOOK_PATH,
            "request_id": get_request_id(),
            "headers": redact_dict(headers),
            "body": redact_dict(payload) if payload is not None else None,
            # Parsed bodies are stored redacted; raw text is kept only when it did not parse.
            "body_raw": redact_text(raw.decode("utf-8", errors="replace"))[:4000] if payload is None else None,
            "signature": "present" if headers.get("x-signature") else None,
            "signature_valid": signature_valid,
            "signature_error": signature_error,
            "external_ref": parsed.reference if parsed else None,
            "status_raw": parsed.status_raw if parsed else None,
            "order_reference": parsed.reference if parsed and status_after else None,
            "order_status_before": status_before,
            "order_status_after": status_after,
            "update_applied": applied,
            "ignored": bool(ignore_reason) or not signature_valid,
            "ignore_reason": ignore_reason or signature_error,
        }
        try:
            self._store.record_webhook_event(event)
        except Exception:
            logger.exception("webhook_audit_failed reference=%s", event["external_ref"])
