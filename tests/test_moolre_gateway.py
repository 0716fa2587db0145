from __future__ import annotations

import json

import httpx
import pytest

from app.config import GatewayConfig
from app.payments.moolre import (
    ChargeRequest,
    GatewayCode,
    GatewayUnavailable,
    MoolreGateway,
    PaymentStatus,
    decode_gateway_code,
    parse_webhook_payload,
)
from app.providers.http import HttpClient


def _config(**overrides) -> GatewayConfig:
    values = {
        "base_url": "https://moolre.test",
        "user": "api-user",
        "pub_key": "pub-key",
        "account": "10001",
        "webhook_secret": "s3cret",
        "channels": {"mtn": "13", "telecel": "14", "airteltigo": "15"},
    }
    values.update(overrides)
    return GatewayConfig(**values)


def _gateway(handler, **overrides) -> MoolreGateway:
    http = HttpClient(timeout_s=1, transport=httpx.MockTransport(handler))
    return MoolreGateway(_config(**overrides), http=http)


def _charge(**overrides) -> ChargeRequest:
    values = {"phone": "0241234567", "amount_minor": 2000, "order_ref": "FN-1-001", "network": "mtn"}
    values.update(overrides)
    return ChargeRequest(**values)


def test_charge_sends_moolre_payload_and_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": 1, "code": "TR099", "message": "Prompt sent"})

    resp = _gateway(handler).charge(_charge(otp="1234"))

    assert resp.code == GatewayCode.PENDING
    assert seen["url"] == "https://moolre.test/open/transact/payment"
    assert seen["headers"]["X-API-USER"] == "api-user"
    assert seen["headers"]["X-API-PUBKEY"] == "pub-key"
    assert seen["body"] == {
        "type": 1,
        "channel": "13",
        "currency": "GHS",
        "amount": "20.00",
        "payer": "0241234567",
        "externalref": "FN-1-001",
        "accountnumber": "10001",
        "otpcode": "1234",
    }


@pytest.mark.parametrize(
    "raw,code",
    [
        ("TP14", GatewayCode.OTP_REQUIRED),
        ("TP17", GatewayCode.OTP_VERIFIED),
        ("TR099", GatewayCode.PENDING),
        ("0", GatewayCode.SUCCESS),
        ("TR000", GatewayCode.SUCCESS),
        ("TP02", GatewayCode.DECLINED),
        (None, GatewayCode.DECLINED),
    ],
)
def test_decode_gateway_code(raw, code):
    assert decode_gateway_code(raw) == code


def test_charge_raises_unavailable_on_5xx():
    gateway = _gateway(lambda request: httpx.Response(503, text="busy"))
    with pytest.raises(GatewayUnavailable) as exc:
        gateway.charge(_charge())
    assert exc.value.http_status == 503


def test_charge_raises_unavailable_on_timeout():
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(GatewayUnavailable):
        _gateway(handler).charge(_charge())


def test_charge_declines_when_not_configured():
    resp = _gateway(lambda request: httpx.Response(500), user="").charge(_charge())
    assert resp.code == GatewayCode.DECLINED
    assert resp.raw_code == "GATEWAY_NOT_CONFIGURED"


def test_charge_declines_unknown_channel():
    resp = _gateway(lambda request: httpx.Response(500), channels={"mtn": "13"}).charge(_charge(network="telecel"))
    assert resp.code == GatewayCode.DECLINED
    assert resp.raw_code == "TP09"


def test_transaction_status_maps_txstatus():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path == "/open/transact/status"
        assert body == {"type": 1, "idtype": 1, "id": "FN-1-001", "accountnumber": "10001"}
        return httpx.Response(200, json={"status": 1, "data": {"txstatus": 1, "transactionid": "77"}})

    status = _gateway(handler).transaction_status("FN-1-001")
    assert status.status == PaymentStatus.SUCCESS
    assert status.transaction_id == "77"


def test_transaction_status_without_txstatus_is_pending():
    status = _gateway(lambda r: httpx.Response(200, json={"status": 0, "code": "TX404"})).transaction_status("x")
    assert status.status == PaymentStatus.PENDING


def test_webhook_payload_unwraps_data_and_prefers_txstatus():
    payload = parse_webhook_payload(
        {
            "status": 1,
            "data": {
                "externalref": "FN-1-001",
                "txstatus": 2,
                "status": "success",
                "amount": "20.00",
                "transactionid": 991,
                "secret": "s3cret",
            },
        }
    )
    assert payload.reference == "FN-1-001"
    assert payload.status == PaymentStatus.FAILED
    assert payload.amount_minor == 2000
    assert payload.transaction_id == "991"
    assert payload.secret == "s3cret"


def test_webhook_payload_flat_status_string():
    payload = parse_webhook_payload({"externalref": "FN-1-002", "status": "Completed"})
    assert payload.status == PaymentStatus.SUCCESS
