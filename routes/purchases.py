# routes/purchases.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.catalog.networks import parse_network
from app.catalog.packages import PackageDescriptor, new_reference, parse_category
from app.container import Services
from app.fulfillment.dispatcher import DispatchSkipped, Exhausted, Fulfilled
from app.payments.initiator import (
    ChallengeRequired,
    Confirmed,
    InvalidPurchase,
    Pending,
    PurchaseRequest,
    Rejected,
)
from deps.services import get_services
from schemas import FulfillmentOut, PurchaseIn, PurchaseOut

router = APIRouter(prefix="/v1", tags=["purchases"])


def _invalid(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=422, detail={"error": code, "message": message})


def _fulfillment_out(fulfillment) -> FulfillmentOut | None:
    if isinstance(fulfillment, Fulfilled):
        return FulfillmentOut(outcome=fulfillment.outcome, supplier=fulfillment.supplier)
    if isinstance(fulfillment, Exhausted):
        return FulfillmentOut(outcome=fulfillment.outcome, reason=fulfillment.order.last_error)
    if isinstance(fulfillment, DispatchSkipped):
        return FulfillmentOut(outcome=fulfillment.outcome, reason=fulfillment.reason)
    return None


def _to_out(outcome) -> PurchaseOut:
    if isinstance(outcome, ChallengeRequired):
        return PurchaseOut(outcome=outcome.outcome, message=outcome.message, reference=outcome.reference, code=outcome.code)
    if isinstance(outcome, Pending):
        return PurchaseOut(
            outcome=outcome.outcome,
            message=outcome.message,
            reference=outcome.reference,
            status=outcome.order.status,
        )
    if isinstance(outcome, Confirmed):
        return PurchaseOut(
            outcome=outcome.outcome,
            message=outcome.message,
            reference=outcome.reference,
            status=outcome.order.status,
            fulfillment=_fulfillment_out(outcome.fulfillment),
        )
    assert isinstance(outcome, Rejected)
    return PurchaseOut(
        outcome=outcome.outcome,
        message=outcome.message,
        reference=outcome.reference,
        reason=outcome.reason,
    )


@router.post("/purchases", response_model=PurchaseOut, response_model_exclude_none=True)
def create_purchase(body: PurchaseIn, services: Services = Depends(get_services)):
    category = parse_category(body.category)
    if category is None:
        raise _invalid("UNKNOWN_CATEGORY", f"Unknown category: {body.category}")
    network = parse_network(body.network)
    if network is None:
        raise _invalid("UNKNOWN_NETWORK", f"Unknown network: {body.network}")

    order_ref = (body.order_ref or "").strip() or new_reference(category)

    req = PurchaseRequest(
        phone=body.phone,
        amount_minor=body.amount_minor,
        order_ref=order_ref,
        network=network,
        category=category,
        package=PackageDescriptor(size=body.package.size, price_minor=body.package.price_minor),
        otp=body.otp,
        shop_id=body.shop_id,
        markup_minor=body.markup_minor,
    )

    try:
        outcome = services.initiator.initiate(req)
    except InvalidPurchase as exc:
        raise _invalid(exc.code, exc.message)

    return _to_out(outcome)
