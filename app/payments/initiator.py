# app/payments/initiator.py
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Union

from app.catalog.networks import normalize_phone, phone_matches_network
from app.catalog.packages import CATEGORY_NETWORKS, PackageDescriptor, normalize_size
from app.config import GatewayConfig
from app.fulfillment.dispatcher import FulfillmentOutcome, SupplierDispatcher
from app.orders.model import AWAITING_PAYMENT, CANCELLED, PAID, NewOrder, Order
from app.orders.store import OrderStore, ReferenceConflict
from app.payments.attempts import AttemptRegistry, PaymentAttempt
from app.payments.moolre import (
    ChargeRequest,
    GatewayCode,
    GatewayResponse,
    GatewayUnavailable,
    PaymentGateway,
)
from services.metrics import increment_gateway_call, increment_order_transition, increment_purchase_outcome
from services.redaction import mask_phone

logger = logging.getLogger("bundlepay.payments")

_OTP_RE = re.compile(r"^\d{4,8}$")

NETWORK_ERROR = "NETWORK_ERROR"
OTP_EXPIRED = "OTP_EXPIRED"


class InvalidPurchase(ValueError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class PurchaseRequest:
    phone: str
    amount_minor: int
    order_ref: str
    network: str
    category: str
    package: PackageDescriptor
    otp: Optional[str] = None
    shop_id: Optional[str] = None
    markup_minor: Optional[int] = None


@dataclass(frozen=True)
class ChallengeRequired:
    reference: str
    message: str
    code: str = "TP14"
    outcome: str = field(default="challenge_required", init=False)


@dataclass(frozen=True)
class Pending:
    reference: str
    message: str
    order: Order
    outcome: str = field(default="pending", init=False)


@dataclass(frozen=True)
class Confirmed:
    reference: str
    message: str
    order: Order
    fulfillment: Optional[FulfillmentOutcome] = None
    outcome: str = field(default="confirmed", init=False)


@dataclass(frozen=True)
class Rejected:
    reference: str
    reason: str
    message: str
    network_error: bool = False
    outcome: str = field(default="rejected", init=False)


PaymentOutcome = Union[ChallengeRequired, Pending, Confirmed, Rejected]


def validate_purchase(req: PurchaseRequest) -> PurchaseRequest:
    """Returns the request with a normalized phone and package size, or raises InvalidPurchase."""
    allowed_networks = CATEGORY_NETWORKS.get(req.category)
    if allowed_networks is None:
        raise InvalidPurchase("UNKNOWN_CATEGORY", f"Unknown category: {req.category}")
    if req.network not in allowed_networks:
        raise InvalidPurchase(
            "NETWORK_NOT_SUPPORTED",
            f"Network {req.network} is not supported for {req.category} bundles",
        )

    phone = normalize_phone(req.phone)
    if phone is None:
        raise InvalidPurchase("INVALID_PHONE", "Phone number must be a 10-digit Ghana number")
    if not phone_matches_network(phone, req.network):
        raise InvalidPurchase("PHONE_NETWORK_MISMATCH", f"Phone number is not a valid {req.network} number")

    try:
        size = normalize_size(req.package.size)
    except ValueError:
        raise InvalidPurchase("UNKNOWN_PACKAGE", f"Unknown package size: {req.package.size}") from None
    if req.package.price_minor <= 0:
        raise InvalidPurchase("UNKNOWN_PACKAGE", "Package price must be positive")

    if req.amount_minor <= 0:
        raise InvalidPurchase("INVALID_AMOUNT", "Amount must be positive")
    markup = req.markup_minor or 0
    if markup < 0:
        raise InvalidPurchase("INVALID_AMOUNT", "Markup cannot be negative")
    if req.markup_minor and not req.shop_id:
        raise InvalidPurchase("INVALID_AMOUNT", "Markup requires a shop")
    if req.amount_minor != req.package.price_minor + markup:
        raise InvalidPurchase("AMOUNT_MISMATCH", "Amount does not match the package price")

    order_ref = (req.order_ref or "").strip()
    if not order_ref:
        raise InvalidPurchase("MISSING_REFERENCE", "Order reference is required")

    otp = (req.otp or "").strip() or None
    if otp is not None and not _OTP_RE.match(otp):
        raise InvalidPurchase("INVALID_OTP", "Verification code must be 4 to 8 digits")

    return replace(
        req,
        phone=phone,
        order_ref=order_ref,
        otp=otp,
        package=PackageDescriptor(size=size, price_minor=req.package.price_minor),
    )


class PaymentInitiator:
    def __init__(
        self,
        *,
        store: OrderStore,
        gateway: PaymentGateway,
        attempts: AttemptRegistry,
        dispatcher: SupplierDispatcher,
        config: GatewayConfig,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._gateway = gateway
        self._attempts = attempts
        self._dispatcher = dispatcher
        self._config = config
        self._sleep = sleep

    def initiate(self, req: PurchaseRequest) -> PaymentOutcome:
        req = validate_purchase(req)

        existing = self._store.get_by_payment_reference(req.order_ref, category=req.category)
        if existing is not None:
            logger.info("purchase_replay reference=%s status=%s", existing.reference, existing.status)
            return self._record(req, self._outcome_for_existing(existing))

        attempt = self._attempts.get(req.order_ref)
        if req.otp and attempt is None:
            logger.info("otp_expired reference=%s", req.order_ref)
            return self._record(
                req,
                Rejected(
                    reference=req.order_ref,
                    reason=OTP_EXPIRED,
                    message="Verification code expired. Please start the payment again.",
                ),
            )
        if attempt is None:
            attempt = self._attempts.new_attempt(
                order_ref=req.order_ref,
                category=req.category,
                network=req.network,
                phone=req.phone,
                package=req.package,
                amount_minor=req.amount_minor,
                channel=self._config.channels.get(req.network),
                shop_id=req.shop_id,
                markup_minor=req.markup_minor,
            )
        # Registered before the charge so a webhook racing the response can find it.
        attempt = self._attempts.remember(attempt)

        logger.info(
            "purchase_start reference=%s category=%s network=%s phone=%s amount_minor=%s has_otp=%s",
            req.order_ref,
            req.category,
            req.network,
            mask_phone(req.phone),
            req.amount_minor,
            bool(req.otp),
        )

        try:
            resp = self._charge_with_retry(self._charge_request(req, otp=req.otp))
            if resp.code == GatewayCode.OTP_VERIFIED:
                logger.info("otp_verified reference=%s resubmitting", req.order_ref)
                resp = self._charge_with_retry(self._charge_request(req, otp=None))
        except GatewayUnavailable as exc:
            logger.error("gateway_unavailable reference=%s error=%s", req.order_ref, exc.reason)
            return self._record(
                req,
                Rejected(
                    reference=req.order_ref,
                    reason=NETWORK_ERROR,
                    message="Payment service is temporarily unreachable. Please try again.",
                    network_error=True,
                ),
            )

        return self._record(req, self._apply(req, attempt, resp))

    # ----------------------------------------------------------

    def _charge_request(self, req: PurchaseRequest, *, otp: Optional[str]) -> ChargeRequest:
        return ChargeRequest(
            phone=req.phone,
            amount_minor=req.amount_minor,
            order_ref=req.order_ref,
            network=req.network,
            otp=otp,
        )

    def _charge_with_retry(self, charge: ChargeRequest) -> GatewayResponse:
        max_attempts = max(1, int(self._config.max_attempts))
        last_exc: GatewayUnavailable | None = None

        for n in range(1, max_attempts + 1):
            try:
                resp = self._gateway.charge(charge)
                increment_gateway_call(resp.code.value.lower())
                return resp
            except GatewayUnavailable as exc:
                last_exc = exc
                increment_gateway_call("unavailable")
                logger.warning(
                    "gateway_retry reference=%s attempt=%s/%s error=%s",
                    charge.order_ref,
                    n,
                    max_attempts,
                    exc.reason,
                )
                if n < max_attempts:
                    self._sleep(self._config.backoff_s * (2 ** (n - 1)))

        assert last_exc is not None
        raise last_exc

    def _apply(self, req: PurchaseRequest, attempt: PaymentAttempt, resp: GatewayResponse) -> PaymentOutcome:
        if resp.code == GatewayCode.OTP_REQUIRED:
            self._attempts.remember(attempt, last_code=resp.raw_code)
            return ChallengeRequired(reference=req.order_ref, message=resp.message, code=resp.raw_code)

        if resp.code == GatewayCode.PENDING:
            order, created = self._create(req, AWAITING_PAYMENT, resp.transaction_id)
            self._attempts.discard(req.order_ref)
            if not created:
                return self._outcome_for_existing(order)
            increment_order_transition("NEW", AWAITING_PAYMENT)
            return Pending(reference=order.reference, message=resp.message, order=order)

        if resp.code == GatewayCode.SUCCESS:
            order, created = self._create(req, PAID, resp.transaction_id)
            self._attempts.discard(req.order_ref)
            if not created:
                return self._outcome_for_existing(order)
            increment_order_transition("NEW", PAID)
            fulfillment = self._dispatcher.dispatch(order)
            return Confirmed(
                reference=order.reference,
                message=resp.message,
                order=self._store.get(order.id) or order,
                fulfillment=fulfillment,
            )

        # Hard decline, or a second TP17 after re-submission.
        self._attempts.discard(req.order_ref)
        logger.warning("purchase_rejected reference=%s code=%s message=%s", req.order_ref, resp.raw_code, resp.message)
        return Rejected(reference=req.order_ref, reason=resp.raw_code, message=resp.message)

    def _create(self, req: PurchaseRequest, status: str, transaction_id: Optional[str]) -> tuple[Order, bool]:
        try:
            result = self._store.create_if_absent(
                NewOrder(
                    reference=req.order_ref,
                    category=req.category,
                    network=req.network,
                    phone=req.phone,
                    package=req.package,
                    amount_minor=req.amount_minor,
                    payment_reference=req.order_ref,
                    status=status,
                    gateway_transaction_id=transaction_id,
                    shop_id=req.shop_id,
                    markup_minor=req.markup_minor,
                )
            )
        except ReferenceConflict:
            raise InvalidPurchase("DUPLICATE_REFERENCE", "Order reference is already in use") from None
        return result.order, result.created

    def _outcome_for_existing(self, order: Order) -> PaymentOutcome:
        if order.status == AWAITING_PAYMENT:
            return Pending(reference=order.reference, message="Awaiting payment confirmation", order=order)
        if order.status == CANCELLED:
            return Rejected(reference=order.reference, reason="PAYMENT_CANCELLED", message="Payment was not completed")
        message = "Payment received" if order.status == PAID else f"Order is {order.status.lower()}"
        return Confirmed(reference=order.reference, message=message, order=order)

    def _record(self, req: PurchaseRequest, outcome: PaymentOutcome) -> PaymentOutcome:
        increment_purchase_outcome(req.category, outcome.outcome)
        logger.info("purchase_outcome reference=%s outcome=%s", req.order_ref, outcome.outcome)
        return outcome
