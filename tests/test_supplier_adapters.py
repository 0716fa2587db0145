from __future__ import annotations

import json

import httpx

from app.catalog.packages import PackageDescriptor
from app.config import SupplierCredentials
from app.providers.http import HttpClient
from app.suppliers.base import PurchaseKind, SupplierStatus, normalize_supplier_status
from app.suppliers.codecraft import CodeCraftSupplier
from app.suppliers.dakazina import DakazinaSupplier
from app.suppliers.sykes import SykesSupplier, normalize_recipient


PACKAGE = PackageDescriptor(size="5GB", price_minor=2000)


def _http(handler) -> HttpClient:
    return HttpClient(timeout_s=1, transport=httpx.MockTransport(handler))


def _creds(base_url: str = "https://supplier.test") -> SupplierCredentials:
    return SupplierCredentials(base_url=base_url, api_key="k-123")


# ---------------------------
# DataKazina
# ---------------------------

def test_dakazina_purchase_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers.get("x-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": True, "message": "ok", "transaction_id": "DK-1"})

    result = DakazinaSupplier(_creds(), http=_http(handler)).purchase("0241234567", PACKAGE, "FN-1-001", network="mtn")

    assert result.kind == PurchaseKind.SUCCESS
    assert result.provider_transaction_id == "DK-1"
    assert seen["path"] == "/buy-data-package"
    assert seen["key"] == "k-123"
    assert seen["body"] == {
        "recipient_msisdn": "0241234567",
        "network_id": 3,
        "shared_bundle": 5,
        "incoming_api_ref": "FN-1-001",
    }


def test_dakazina_purchase_declined_on_status_false():
    handler = lambda request: httpx.Response(200, json={"status": False, "message": "Insufficient balance"})
    result = DakazinaSupplier(_creds(), http=_http(handler)).purchase("0241234567", PACKAGE, "FN-1-001", network="mtn")
    assert result.kind == PurchaseKind.DECLINED
    assert result.message == "Insufficient balance"


def test_dakazina_purchase_unreachable_on_502():
    result = DakazinaSupplier(_creds(), http=_http(lambda r: httpx.Response(502))).purchase(
        "0241234567", PACKAGE, "FN-1-001", network="mtn"
    )
    assert result.kind == PurchaseKind.UNREACHABLE


def test_dakazina_unknown_size_is_declined_without_call():
    def handler(request):
        raise AssertionError("should not be called")

    result = DakazinaSupplier(_creds(), http=_http(handler)).purchase(
        "0241234567", PackageDescriptor(size="9GB", price_minor=100), "FN-1-001", network="mtn"
    )
    assert result.kind == PurchaseKind.DECLINED


def test_dakazina_balance_and_status():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/check-console-balance":
            return httpx.Response(200, json={"Wallet Balance": 150.5})
        return httpx.Response(200, json={"data": {"status": "Completed"}})

    supplier = DakazinaSupplier(_creds(), http=_http(handler))
    assert supplier.get_balance().balance == "150.5"
    status = supplier.check_status("DK-1")
    assert status.supported and status.status == SupplierStatus.DELIVERED


def test_dakazina_status_404_is_failed():
    supplier = DakazinaSupplier(_creds(), http=_http(lambda r: httpx.Response(404, json={"message": "nope"})))
    assert supplier.check_status("DK-1").status == SupplierStatus.FAILED


def test_dakazina_status_502_is_marked_unreachable():
    supplier = DakazinaSupplier(_creds(), http=_http(lambda r: httpx.Response(502)))
    status = supplier.check_status("DK-1")
    assert status.unreachable is True
    assert status.status == SupplierStatus.UNKNOWN
    assert status.message == "http_502"


# ---------------------------
# Code Craft
# ---------------------------

def test_codecraft_purchase_success_uses_order_ref_as_provider_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "Successful", "message": "Order placed"})

    result = CodeCraftSupplier(_creds(), http=_http(handler)).purchase("0241234567", PACKAGE, "FN-1-001", network="mtn")

    assert result.kind == PurchaseKind.SUCCESS
    assert result.provider_transaction_id == "FN-1-001"
    assert seen["body"]["network"] == "MTN"
    assert seen["body"]["gig"] == "5"
    assert seen["body"]["agent_api"] == "k-123"


def test_codecraft_vendor_code_declines():
    handler = lambda request: httpx.Response(200, json={"status": "Failed", "http_code": 100})
    result = CodeCraftSupplier(_creds(), http=_http(handler)).purchase("0241234567", PACKAGE, "FN-1-001", network="mtn")
    assert result.kind == PurchaseKind.DECLINED
    assert result.message == "Admin has low wallet balance"


def test_codecraft_balance_unsupported():
    supplier = CodeCraftSupplier(_creds(), http=_http(lambda r: httpx.Response(500)))
    assert supplier.get_balance().supported is False


def test_codecraft_status():
    handler = lambda request: httpx.Response(
        200, json={"status": "success", "http_code": 200, "order_details": {"order_status": "Pending"}}
    )
    status = CodeCraftSupplier(_creds(), http=_http(handler)).check_status("FN-1-001")
    assert status.status == SupplierStatus.PROCESSING


def test_codecraft_status_timeout_is_marked_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    status = CodeCraftSupplier(_creds(), http=_http(handler)).check_status("FN-1-001")
    assert status.unreachable is True
    assert status.message.startswith("timeout")


# ---------------------------
# Sykes
# ---------------------------

def test_sykes_purchase_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.headers.get("X-API-KEY")
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"success": True, "order_id": 42})

    result = SykesSupplier(_creds(), http=_http(handler)).purchase("0241234567", PACKAGE, "FN-1-001", network="mtn")

    assert result.kind == PurchaseKind.SUCCESS
    assert result.provider_transaction_id == "42"
    assert seen["key"] == "k-123"
    assert seen["body"] == {"recipient_phone": "0241234567", "network": "MTN", "size_gb": 5}


def test_sykes_fractional_size_declined():
    result = SykesSupplier(_creds(), http=_http(lambda r: httpx.Response(500))).purchase(
        "0241234567", PackageDescriptor(size="500MB", price_minor=500), "FN-1-001", network="mtn"
    )
    assert result.kind == PurchaseKind.DECLINED


def test_sykes_status_unsupported():
    supplier = SykesSupplier(_creds(), http=_http(lambda r: httpx.Response(500)))
    assert supplier.check_status("42").supported is False


def test_sykes_normalize_recipient():
    assert normalize_recipient("+233 24-123-4567") == "233241234567"
    assert normalize_recipient("241234567") == "0241234567"


def test_not_configured_supplier_declines():
    supplier = SykesSupplier(SupplierCredentials(base_url="https://x.test", api_key=""))
    assert supplier.purchase("0241234567", PACKAGE, "FN-1-001", network="mtn").kind == PurchaseKind.DECLINED


def test_normalize_supplier_status():
    assert normalize_supplier_status("Delivered") == SupplierStatus.DELIVERED
    assert normalize_supplier_status("queued") == SupplierStatus.PROCESSING
    assert normalize_supplier_status("refunded") == SupplierStatus.FAILED
    assert normalize_supplier_status(None) == SupplierStatus.UNKNOWN
    assert normalize_supplier_status("weird") == SupplierStatus.UNKNOWN
