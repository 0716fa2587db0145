# app/suppliers/sykes.py
from __future__ import annotations

import logging
import re

from app.catalog.networks import AIRTELTIGO, MTN, TELECEL
from app.catalog.packages import PackageDescriptor
from app.config import SupplierCredentials
from app.providers.http import HttpClient
from app.suppliers.base import (
    BalanceResult,
    PurchaseKind,
    PurchaseResult,
    StatusResult,
    SupplierUnreachable,
    not_configured,
    send_request,
    unsupported_status,
)
from services.redaction import mask_phone

logger = logging.getLogger("bundlepay.suppliers")

NETWORK_NAMES = {
    MTN: "MTN",
    TELECEL: "Telecel",
    AIRTELTIGO: "AirtelTigo",
}

_STRIP_RE = re.compile(r"[+\s-]")


def normalize_recipient(phone: str) -> str:
    """Accepts 0241234567, 241234567 and 233241234567; strips +, spaces and dashes."""
    cleaned = _STRIP_RE.sub("", phone or "")
    if cleaned.startswith("233"):
        return cleaned
    if len(cleaned) == 9:
        return "0" + cleaned
    return cleaned


def size_gb(package: PackageDescriptor) -> int | None:
    try:
        gb = package.size_gb
    except ValueError:
        return None
    if gb != gb.to_integral_value() or gb <= 0:
        return None
    return int(gb)


class SykesSupplier:
    name = "sykes"

    def __init__(self, credentials: SupplierCredentials, http: HttpClient | None = None, timeout_s: float = 15.0):
        self.credentials = credentials
        self._http = http or HttpClient(timeout_s=timeout_s)

    def _headers(self) -> dict[str, str]:
        return {"X-API-KEY": self.credentials.api_key, "Content-Type": "application/json"}

    def purchase(self, phone: str, package: PackageDescriptor, order_ref: str, *, network: str) -> PurchaseResult:
        if not self.credentials.api_key:
            return not_configured(self.name)

        gb = size_gb(package)
        if gb is None:
            return PurchaseResult(kind=PurchaseKind.DECLINED, message=f"Invalid data amount format: {package.size}")

        recipient = normalize_recipient(phone)
        body = {
            "recipient_phone": recipient,
            "network": NETWORK_NAMES.get(network, "MTN"),
            "size_gb": gb,
        }
        logger.info("sykes_purchase order_ref=%s phone=%s size_gb=%s", order_ref, mask_phone(recipient), gb)

        try:
            resp = send_request(
                self._http, "POST", f"{self.credentials.base_url}/api/orders",
                headers=self._headers(), json_body=body,
            )
        except SupplierUnreachable as e:
            return PurchaseResult(kind=PurchaseKind.UNREACHABLE, message=str(e))

        result = resp.json if isinstance(resp.json, dict) else {}
        if not resp.ok:
            return PurchaseResult(
                kind=PurchaseKind.DECLINED,
                message=result.get("message") or f"API request failed with status {resp.status_code}",
                response=result or None,
            )

        if result.get("success"):
            order_id = result.get("order_id")
            return PurchaseResult(
                kind=PurchaseKind.SUCCESS,
                message=result.get("message") or "Order placed",
                provider_transaction_id=str(order_id) if order_id is not None else None,
                response=result,
            )
        return PurchaseResult(
            kind=PurchaseKind.DECLINED,
            message=result.get("message") or "Purchase failed",
            response=result or None,
        )

    def get_balance(self) -> BalanceResult:
        if not self.credentials.api_key:
            return BalanceResult(supported=True, message="sykes is not configured")
        try:
            resp = send_request(self._http, "GET", f"{self.credentials.base_url}/api/balance", headers=self._headers())
        except SupplierUnreachable as e:
            return BalanceResult(supported=True, message=str(e))

        result = resp.json if isinstance(resp.json, dict) else {}
        if not resp.ok or not result.get("success"):
            return BalanceResult(supported=True, message=result.get("message") or "Failed to fetch wallet balance")
        balance = result.get("balance")
        return BalanceResult(supported=True, balance=str(balance) if balance is not None else "0", currency="GHS")

    def check_status(self, provider_transaction_id: str) -> StatusResult:
        return unsupported_status(self.name)
