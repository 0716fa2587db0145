# app/payments/moolre.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

import httpx

from app.catalog.packages import format_minor, parse_major
from app.config import GatewayConfig
from app.providers.http import HttpClient, is_retryable_http

logger = logging.getLogger("bundlepay.payments")

PAYMENT_PATH = "/open/transact/payment"
STATUS_PATH = "/open/transact/status"


class GatewayCode(str, Enum):
    OTP_REQUIRED = "OTP_REQUIRED"
    OTP_VERIFIED = "OTP_VERIFIED"
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    DECLINED = "DECLINED"


_CODE_MAP = {
    "TP14": GatewayCode.OTP_REQUIRED,
    "TP17": GatewayCode.OTP_VERIFIED,
    "TR099": GatewayCode.PENDING,
    "0": GatewayCode.SUCCESS,
    "TR000": GatewayCode.SUCCESS,
}

_DEFAULT_MESSAGES = {
    GatewayCode.OTP_REQUIRED: "Verification code required - Please enter the code sent to your phone",
    GatewayCode.OTP_VERIFIED: "Verification successful! Initiating payment...",
    GatewayCode.PENDING: "Payment prompt sent to customer's phone. Awaiting confirmation.",
    GatewayCode.SUCCESS: "Payment initiated successfully",
}


class PaymentStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


_SUCCESS_VALUES = {"completed", "success", "successful", "paid", "1", "tr000", "0"}
_FAILED_VALUES = {"failed", "rejected", "cancelled", "canceled", "declined", "expired", "2"}


class GatewayUnavailable(Exception):
    """Transient failure talking to the gateway (timeout, connection, 408/425/429/5xx)."""

    def __init__(self, reason: str, http_status: int | None = None):
        super().__init__(reason)
        self.reason = reason
        self.http_status = http_status


@dataclass(frozen=True)
class ChargeRequest:
    phone: str
    amount_minor: int
    order_ref: str
    network: str
    otp: Optional[str] = None


@dataclass(frozen=True)
class GatewayResponse:
    code: GatewayCode
    raw_code: str
    message: str
    transaction_id: Optional[str] = None
    body: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class GatewayStatus:
    status: PaymentStatus
    transaction_id: Optional[str] = None
    raw_status: Optional[str] = None
    body: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class WebhookPayload:
    reference: Optional[str]
    status: PaymentStatus
    status_raw: Optional[str]
    payer: Optional[str]
    amount_minor: Optional[int]
    transaction_id: Optional[str]
    secret: Optional[str]


class PaymentGateway(Protocol):
    def charge(self, req: ChargeRequest) -> GatewayResponse: ...

    def transaction_status(self, order_ref: str) -> GatewayStatus: ...


def decode_gateway_code(raw_code: Any) -> GatewayCode:
    key = str(raw_code if raw_code is not None else "").strip().upper()
    return _CODE_MAP.get(key, GatewayCode.DECLINED)


def decode_payment_status(raw: Any) -> PaymentStatus:
    value = str(raw if raw is not None else "").strip().lower()
    if value in _SUCCESS_VALUES:
        return PaymentStatus.SUCCESS
    if value in _FAILED_VALUES:
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


def decode_txstatus(raw: Any) -> PaymentStatus:
    """Numeric txstatus used by the status endpoint and webhook: 1 paid, 2 failed, else pending."""
    value = str(raw if raw is not None else "").strip()
    if value == "1":
        return PaymentStatus.SUCCESS
    if value == "2":
        return PaymentStatus.FAILED
    return PaymentStatus.PENDING


def _str_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _transaction_id(body: dict[str, Any]) -> Optional[str]:
    data = body.get("data")
    if isinstance(data, dict):
        for key in ("transactionid", "transaction_id", "id"):
            if data.get(key):
                return _str_or_none(data.get(key))
    for key in ("transactionid", "transaction_id"):
        if body.get(key):
            return _str_or_none(body.get(key))
    return None


def decode_charge_response(body: dict[str, Any]) -> GatewayResponse:
    raw_code = _str_or_none(body.get("code")) or ""
    code = decode_gateway_code(raw_code)
    message = _str_or_none(body.get("message"))
    if message is None:
        message = _DEFAULT_MESSAGES.get(code) or f"Payment failed with code {raw_code or 'UNKNOWN'}"
    return GatewayResponse(
        code=code,
        raw_code=raw_code or "UNKNOWN",
        message=message,
        transaction_id=_transaction_id(body),
        body=body,
    )


def _unwrap(body: dict[str, Any]) -> dict[str, Any]:
    data = body.get("data")
    if isinstance(data, dict) and ("externalref" in data or "txstatus" in data):
        return data
    return body


def parse_webhook_payload(body: dict[str, Any]) -> WebhookPayload:
    inner = _unwrap(body)
    if inner.get("txstatus") is not None:
        status_raw = inner.get("txstatus")
        status = decode_txstatus(status_raw)
    else:
        status_raw = inner.get("status")
        status = decode_payment_status(status_raw)
    return WebhookPayload(
        reference=_str_or_none(inner.get("externalref") or inner.get("reference")),
        status=status,
        status_raw=_str_or_none(status_raw),
        payer=_str_or_none(inner.get("payer")),
        amount_minor=parse_major(inner.get("amount")),
        transaction_id=_str_or_none(inner.get("transactionid") or inner.get("transaction_id")),
        secret=_str_or_none(inner.get("secret") or body.get("secret")),
    )


class MoolreGateway:
    def __init__(self, config: GatewayConfig, http: HttpClient | None = None):
        self.config = config
        self._http = http or HttpClient(timeout_s=config.timeout_s)

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-USER": self.config.user,
            "X-API-PUBKEY": self.config.pub_key,
        }

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.config.base_url}{path}"
        try:
            resp = self._http.post(url, headers=self._headers(), json_body=payload)
        except httpx.TimeoutException as e:
            raise GatewayUnavailable(f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise GatewayUnavailable(f"network: {e}") from e

        if is_retryable_http(resp.status_code):
            raise GatewayUnavailable(f"http_{resp.status_code}", http_status=resp.status_code)
        if not isinstance(resp.json, dict):
            if resp.status_code >= 400:
                return {"code": f"HTTP_{resp.status_code}", "message": (resp.text or "")[:300]}
            raise GatewayUnavailable("invalid_response", http_status=resp.status_code)
        return resp.json

    def charge(self, req: ChargeRequest) -> GatewayResponse:
        if not self.config.configured:
            logger.error("gateway_not_configured order_ref=%s", req.order_ref)
            return GatewayResponse(
                code=GatewayCode.DECLINED,
                raw_code="GATEWAY_NOT_CONFIGURED",
                message="Moolre is not configured on this server",
            )

        channel = self.config.channels.get(req.network)
        if channel is None:
            return GatewayResponse(
                code=GatewayCode.DECLINED,
                raw_code="TP09",
                message=f"Channel not supported for network {req.network}",
            )

        payload: dict[str, Any] = {
            "type": 1,
            "channel": channel,
            "currency": self.config.currency,
            "amount": format_minor(req.amount_minor),
            "payer": req.phone,
            "externalref": req.order_ref,
            "accountnumber": self.config.account,
        }
        if req.otp:
            payload["otpcode"] = req.otp

        logger.info(
            "gateway_charge order_ref=%s channel=%s amount=%s has_otp=%s",
            req.order_ref,
            channel,
            payload["amount"],
            bool(req.otp),
        )
        body = self._post(PAYMENT_PATH, payload)
        result = decode_charge_response(body)
        logger.info("gateway_charge_result order_ref=%s code=%s", req.order_ref, result.raw_code)
        return result

    def transaction_status(self, order_ref: str) -> GatewayStatus:
        if not self.config.configured:
            raise GatewayUnavailable("gateway_not_configured")
        payload = {
            "type": 1,
            "idtype": 1,
            "id": order_ref,
            "accountnumber": self.config.account,
        }
        body = self._post(STATUS_PATH, payload)
        data = body.get("data") if isinstance(body.get("data"), dict) else {}
        raw = data.get("txstatus")
        if raw is None:
            # Lookup failed outright (unknown reference) -> still pending from our side.
            return GatewayStatus(status=PaymentStatus.PENDING, raw_status=_str_or_none(body.get("code")), body=body)
        return GatewayStatus(
            status=decode_txstatus(raw),
            transaction_id=_transaction_id(body),
            raw_status=_str_or_none(raw),
            body=body,
        )
