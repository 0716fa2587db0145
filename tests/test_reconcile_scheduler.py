from __future__ import annotations

import httpx

from app.catalog.packages import PackageDescriptor
from app.config import SupplierCredentials
from app.payments.moolre import GatewayStatus, GatewayUnavailable, PaymentStatus
from app.providers.http import HttpClient
from app.providers.mock import MockSupplier
from app.suppliers.base import PurchaseKind, SupplierStatus
from app.suppliers.dakazina import DakazinaSupplier
from tests.conftest import make_services, new_order


class _StatusGateway:
    def __init__(self, status=None, error=None):
        self.status = status
        self.error = error
        self.lookups = []

    def charge(self, req):
        raise AssertionError("not used")

    def transaction_status(self, order_ref):
        self.lookups.append(order_ref)
        if self.error is not None:
            raise self.error
        return GatewayStatus(status=self.status, raw_status="x")


def _mock_suppliers(**overrides):
    suppliers = {name: MockSupplier(name) for name in ("dakazina", "sykes", "codecraft")}
    suppliers.update(overrides)
    return suppliers


def _processing(services, reference="FN-1-001", supplier="dakazina"):
    order = services.store.create_if_absent(new_order(reference, status="PAID")).order
    services.store.transition(order.id, from_status="PAID", to_status="PROCESSING")
    if supplier:
        services.store.record_supplier_attempt(order.id, supplier)
    return services.store.get(order.id)


def test_stale_awaiting_payment_confirmed_by_gateway(clock):
    gateway = _StatusGateway(PaymentStatus.SUCCESS)
    services = make_services(clock, gateway=gateway, suppliers=_mock_suppliers())
    order = services.store.create_if_absent(new_order()).order

    clock.advance(301)
    report = services.scheduler.sweep()

    assert report["summary"]["awaiting_payment_checked"] == 1
    assert report["items"] == [{"reference": "FN-1-001", "status": "AWAITING_PAYMENT", "action": "PAID"}]
    assert services.store.get(order.id).status == "FULFILLED"
    assert gateway.lookups == ["FN-1-001"]
    assert services.store.reconcile_reports[-1]["id"] == report["id"]


def test_fresh_orders_are_left_alone(clock):
    gateway = _StatusGateway(PaymentStatus.SUCCESS)
    services = make_services(clock, gateway=gateway)
    services.store.create_if_absent(new_order())

    report = services.scheduler.sweep()

    assert report["items"] == []
    assert gateway.lookups == []


def test_gateway_failure_cancels(clock):
    services = make_services(clock, gateway=_StatusGateway(PaymentStatus.FAILED))
    order = services.store.create_if_absent(new_order()).order

    clock.advance(301)
    services.scheduler.sweep()

    assert services.store.get(order.id).status == "CANCELLED"


def test_pending_past_abandon_window_is_cancelled(clock):
    services = make_services(clock, gateway=_StatusGateway(PaymentStatus.PENDING))
    order = services.store.create_if_absent(new_order()).order

    clock.advance(301)
    assert services.scheduler.recheck_payment(services.store.get(order.id)) == "STILL_PENDING"

    clock.advance(1800)
    assert services.scheduler.recheck_payment(services.store.get(order.id)) == "ABANDONED"
    current = services.store.get(order.id)
    assert current.status == "CANCELLED"
    assert current.last_error == "PAYMENT_ABANDONED"


def test_gateway_unreachable_keeps_order(clock):
    services = make_services(clock, gateway=_StatusGateway(error=GatewayUnavailable("timeout")))
    order = services.store.create_if_absent(new_order()).order

    clock.advance(301)
    assert services.scheduler.recheck_payment(services.store.get(order.id)) == "GATEWAY_UNAVAILABLE"
    assert services.store.get(order.id).status == "AWAITING_PAYMENT"


def test_gateway_outage_past_abandon_window_does_not_cancel(clock):
    gateway = _StatusGateway(error=GatewayUnavailable("timeout"))
    services = make_services(clock, gateway=gateway, suppliers=_mock_suppliers())
    order = services.store.create_if_absent(new_order()).order

    clock.advance(1801)
    report = services.scheduler.sweep()

    assert report["items"] == [{"reference": "FN-1-001", "status": "AWAITING_PAYMENT", "action": "GATEWAY_UNAVAILABLE"}]
    assert services.store.get(order.id).status == "AWAITING_PAYMENT"

    # The gateway comes back and the late confirmation still lands.
    res = services.confirmer.apply(reference="FN-1-001", status=PaymentStatus.SUCCESS, source="webhook")
    assert res.reason == "PAID"
    assert services.store.get(order.id).status == "FULFILLED"


def test_stale_paid_order_is_dispatched(clock):
    suppliers = _mock_suppliers()
    services = make_services(clock, suppliers=suppliers)
    order = services.store.create_if_absent(new_order(status="PAID")).order

    clock.advance(121)
    report = services.scheduler.sweep()

    assert report["summary"]["paid_checked"] == 1
    assert report["items"][0]["action"] == "DISPATCHED_FULFILLED"
    assert services.store.get(order.id).status == "FULFILLED"


def test_stale_processing_delivered_is_fulfilled(clock):
    suppliers = _mock_suppliers(dakazina=MockSupplier("dakazina", status=SupplierStatus.DELIVERED))
    services = make_services(clock, suppliers=suppliers)
    order = _processing(services)

    clock.advance(601)
    report = services.scheduler.sweep()

    assert report["items"][0]["action"] == "FULFILLED"
    assert services.store.get(order.id).status == "FULFILLED"
    assert suppliers["dakazina"].calls == []


def test_stale_processing_failed_moves_to_next_supplier(clock):
    suppliers = _mock_suppliers(dakazina=MockSupplier("dakazina", status=SupplierStatus.FAILED))
    services = make_services(clock, suppliers=suppliers)
    order = _processing(services)

    clock.advance(601)
    report = services.scheduler.sweep()

    assert report["items"][0]["action"] == "RESUMED_FULFILLED"
    current = services.store.get(order.id)
    assert current.status == "FULFILLED"
    assert current.supplier_used == "sykes"
    assert suppliers["dakazina"].calls == []


def test_stale_processing_without_status_api_fails_instead_of_redispatching(clock):
    suppliers = _mock_suppliers(sykes=MockSupplier("sykes", status_supported=False))
    services = make_services(clock, suppliers=suppliers)
    order = _processing(services, supplier="sykes")

    clock.advance(601)
    report = services.scheduler.sweep()

    assert report["items"][0]["action"] == "FAILED_STATUS_UNAVAILABLE"
    current = services.store.get(order.id)
    assert current.status == "FAILED"
    assert current.last_error == "SUPPLIER_STATUS_UNAVAILABLE"
    assert all(s.calls == [] for s in suppliers.values())


def test_stale_processing_status_outage_keeps_order_processing(clock):
    state = {"up": False}

    def handler(request: httpx.Request) -> httpx.Response:
        if not state["up"]:
            return httpx.Response(502)
        return httpx.Response(200, json={"data": {"status": "Completed"}})

    dakazina = DakazinaSupplier(
        SupplierCredentials(base_url="https://supplier.test", api_key="k-123"),
        http=HttpClient(timeout_s=1, transport=httpx.MockTransport(handler)),
    )
    suppliers = _mock_suppliers(dakazina=dakazina)
    services = make_services(clock, suppliers=suppliers)
    order = _processing(services)

    clock.advance(601)
    report = services.scheduler.sweep()

    assert report["items"][0]["action"] == "STATUS_UNREACHABLE"
    current = services.store.get(order.id)
    assert current.status == "PROCESSING"
    assert current.supplier_used == "dakazina"
    assert suppliers["sykes"].calls == []

    # Next sweep asks again once the status endpoint recovers.
    clock.advance(601)
    state["up"] = True
    assert services.scheduler.sweep()["items"][0]["action"] == "FULFILLED"


def test_stale_processing_still_processing_is_left(clock):
    suppliers = _mock_suppliers(dakazina=MockSupplier("dakazina", status=SupplierStatus.PROCESSING))
    services = make_services(clock, suppliers=suppliers)
    order = _processing(services)

    clock.advance(601)
    report = services.scheduler.sweep()

    assert report["items"][0]["action"] == "STILL_PROCESSING"
    assert services.store.get(order.id).status == "PROCESSING"


def test_stale_processing_with_no_supplier_recorded_resumes_walk(clock):
    suppliers = _mock_suppliers(dakazina=MockSupplier("dakazina", kind=PurchaseKind.DECLINED))
    services = make_services(clock, suppliers=suppliers)
    order = _processing(services, supplier=None)

    clock.advance(601)
    report = services.scheduler.sweep()

    assert report["items"][0]["action"] == "RESUMED_FULFILLED"
    assert services.store.get(order.id).supplier_used == "sykes"


def test_sweep_purges_expired_attempts(clock):
    services = make_services(clock)
    services.attempts.remember(
        services.attempts.new_attempt(
            order_ref="FN-3-001",
            category="fastnet",
            network="mtn",
            phone="0241234561",
            package=PackageDescriptor(size="5GB", price_minor=2000),
            amount_minor=2000,
        )
    )
    clock.advance(301)

    report = services.scheduler.sweep()

    assert report["summary"]["attempts_purged"] == 1
    assert len(services.attempts) == 0
