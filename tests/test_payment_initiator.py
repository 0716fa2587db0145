from __future__ import annotations

import pytest

from app.catalog.packages import PackageDescriptor
from app.payments.initiator import (
    ChallengeRequired,
    Confirmed,
    InvalidPurchase,
    Pending,
    PurchaseRequest,
    Rejected,
    validate_purchase,
)
from app.payments.moolre import GatewayCode, GatewayResponse, GatewayUnavailable
from app.providers.mock import MockGateway
from tests.conftest import make_services


def _request(phone: str = "0241234560", ref: str = "FN-1-001", **overrides) -> PurchaseRequest:
    values = {
        "phone": phone,
        "amount_minor": 2000,
        "order_ref": ref,
        "network": "mtn",
        "category": "fastnet",
        "package": PackageDescriptor(size="5GB", price_minor=2000),
    }
    values.update(overrides)
    return PurchaseRequest(**values)


class _ScriptedGateway:
    """Returns (or raises) the queued items in order."""

    def __init__(self, *items):
        self.items = list(items)
        self.charges = []

    def charge(self, req):
        self.charges.append(req)
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def transaction_status(self, order_ref):
        raise AssertionError("not used")


def test_immediate_success_creates_paid_order_and_fulfills(clock):
    services = make_services(clock)
    outcome = services.initiator.initiate(_request())

    assert isinstance(outcome, Confirmed)
    order = services.store.get_by_reference("FN-1-001")
    assert order.status == "FULFILLED"
    assert order.supplier_used == "dakazina"
    assert len(services.attempts) == 0


def test_otp_flow_challenge_then_verified_then_success(clock):
    gateway = MockGateway()
    services = make_services(clock, gateway=gateway)

    first = services.initiator.initiate(_request(phone="0241234561"))
    assert isinstance(first, ChallengeRequired)
    assert first.code == "TP14"
    assert services.store.get_by_reference("FN-1-001") is None
    assert services.attempts.get("FN-1-001") is not None

    second = services.initiator.initiate(_request(phone="0241234561", otp="123456"))
    assert isinstance(second, Confirmed)
    # TP17 on the OTP submission, then an automatic re-submit without the code.
    assert [c.otp for c in gateway.charges] == [None, "123456", None]
    assert services.store.get_by_reference("FN-1-001").status == "FULFILLED"


def test_otp_after_attempt_expired_is_rejected(clock):
    services = make_services(clock)
    services.initiator.initiate(_request(phone="0241234561"))

    clock.advance(301)
    outcome = services.initiator.initiate(_request(phone="0241234561", otp="123456"))

    assert isinstance(outcome, Rejected)
    assert outcome.reason == "OTP_EXPIRED"
    assert services.store.get_by_reference("FN-1-001") is None


def test_pending_creates_awaiting_payment_order(clock):
    services = make_services(clock)
    outcome = services.initiator.initiate(_request(phone="0241234562"))

    assert isinstance(outcome, Pending)
    order = services.store.get_by_reference("FN-1-001")
    assert order.status == "AWAITING_PAYMENT"
    assert order.payment_reference == "FN-1-001"


def test_decline_creates_no_order(clock):
    services = make_services(clock)
    outcome = services.initiator.initiate(_request(phone="0241234563"))

    assert isinstance(outcome, Rejected)
    assert outcome.reason == "TP02"
    assert outcome.network_error is False
    assert services.store.get_by_reference("FN-1-001") is None


def test_replay_returns_existing_order_without_charging(clock):
    gateway = MockGateway()
    services = make_services(clock, gateway=gateway)
    services.initiator.initiate(_request(phone="0241234562"))

    again = services.initiator.initiate(_request(phone="0241234562"))

    assert isinstance(again, Pending)
    assert len(gateway.charges) == 1


def test_transient_errors_are_retried_then_succeed(clock):
    gateway = _ScriptedGateway(
        GatewayUnavailable("timeout"),
        GatewayResponse(GatewayCode.PENDING, "TR099", "prompt sent"),
    )
    services = make_services(clock, gateway=gateway)
    outcome = services.initiator.initiate(_request())

    assert isinstance(outcome, Pending)
    assert len(gateway.charges) == 2


def test_retries_exhausted_reports_network_error(clock):
    gateway = _ScriptedGateway(*(GatewayUnavailable("http_503", 503) for _ in range(3)))
    services = make_services(clock, gateway=gateway)
    outcome = services.initiator.initiate(_request())

    assert isinstance(outcome, Rejected)
    assert outcome.reason == "NETWORK_ERROR"
    assert outcome.network_error is True
    assert len(gateway.charges) == 3
    assert services.store.get_by_reference("FN-1-001") is None


def test_second_otp_verified_is_rejected(clock):
    gateway = _ScriptedGateway(
        GatewayResponse(GatewayCode.OTP_VERIFIED, "TP17", "verified"),
        GatewayResponse(GatewayCode.OTP_VERIFIED, "TP17", "verified"),
    )
    services = make_services(clock, gateway=gateway)
    services.attempts.remember(
        services.attempts.new_attempt(
            order_ref="FN-1-001",
            category="fastnet",
            network="mtn",
            phone="0241234561",
            package=PackageDescriptor(size="5GB", price_minor=2000),
            amount_minor=2000,
            channel="13",
        )
    )

    outcome = services.initiator.initiate(_request(phone="0241234561", otp="1234"))
    assert isinstance(outcome, Rejected)
    assert outcome.reason == "TP17"


def test_duplicate_reference_across_categories_is_refused(clock):
    services = make_services(clock)
    services.initiator.initiate(_request(phone="0241234562"))

    with pytest.raises(InvalidPurchase) as exc:
        services.initiator.initiate(_request(phone="0241234562", category="datagod"))
    assert exc.value.code == "DUPLICATE_REFERENCE"


def test_markup_goes_to_shop_on_fulfillment(clock):
    services = make_services(clock)
    outcome = services.initiator.initiate(_request(amount_minor=2300, shop_id="shop-7", markup_minor=300))

    assert isinstance(outcome, Confirmed)
    assert services.ledger.events == [{"shop_id": "shop-7", "markup_minor": 300, "order_reference": "FN-1-001"}]


@pytest.mark.parametrize(
    "overrides,code",
    [
        ({"category": "unknown"}, "UNKNOWN_CATEGORY"),
        ({"network": "telecel"}, "NETWORK_NOT_SUPPORTED"),
        ({"phone": "12345"}, "INVALID_PHONE"),
        ({"phone": "0201234567"}, "PHONE_NETWORK_MISMATCH"),
        ({"package": PackageDescriptor(size="five", price_minor=2000)}, "UNKNOWN_PACKAGE"),
        ({"amount_minor": 1999}, "AMOUNT_MISMATCH"),
        ({"amount_minor": 2300, "markup_minor": 300}, "INVALID_AMOUNT"),
        ({"order_ref": "  "}, "MISSING_REFERENCE"),
        ({"otp": "12ab"}, "INVALID_OTP"),
    ],
)
def test_validation_errors(overrides, code):
    with pytest.raises(InvalidPurchase) as exc:
        validate_purchase(_request(**overrides))
    assert exc.value.code == code


def test_validation_normalizes_phone_and_size():
    req = validate_purchase(_request(phone="+233 24 123 4560", package=PackageDescriptor(size="5 gb", price_minor=2000)))
    assert req.phone == "0241234560"
    assert req.package.size == "5GB"
