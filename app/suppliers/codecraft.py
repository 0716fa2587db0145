# app/suppliers/codecraft.py
from __future__ import annotations

import logging
from typing import Any

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
    normalize_supplier_status,
    not_configured,
    send_request,
    unreachable_status,
    unsupported_balance,
)
from services.redaction import mask_phone

logger = logging.getLogger("bundlepay.suppliers")

NETWORK_NAMES = {
    MTN: "MTN",
    AIRTELTIGO: "AT",
    TELECEL: "TELECEL",
}

# Vendor result codes, reported either as the HTTP status or as http_code in the body.
VENDOR_CODES: dict[int, str] = {
    100: "Admin has low wallet balance",
    101: "Account is out of stock",
    102: "Agent not found",
    103: "Price not found",
    555: "Network not found",
}


def gig_amount(package: PackageDescriptor) -> str | None:
    try:
        gb = package.size_gb
    except ValueError:
        return None
    return f"{gb.normalize():f}"


def _vendor_code(status_code: int, body: dict[str, Any]) -> int:
    for key in ("http_code", "code"):
        value = body.get(key)
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError):
                continue
    return status_code


class CodeCraftSupplier:
    name = "codecraft"

    def __init__(self, credentials: SupplierCredentials, http: HttpClient | None = None, timeout_s: float = 15.0):
        self.credentials = credentials
        self._http = http or HttpClient(timeout_s=timeout_s)

    def purchase(self, phone: str, package: PackageDescriptor, order_ref: str, *, network: str) -> PurchaseResult:
        if not self.credentials.api_key:
            return not_configured(self.name)

        network_name = NETWORK_NAMES.get(network)
        if network_name is None:
            return PurchaseResult(kind=PurchaseKind.DECLINED, message=f"Unsupported network: {network}")
        gig = gig_amount(package)
        if gig is None:
            return PurchaseResult(kind=PurchaseKind.DECLINED, message=f"Invalid data amount format: {package.size}")

        body = {
            "agent_api": self.credentials.api_key,
            "recipient_number": phone,
            "network": network_name,
            "gig": gig,
            "reference_id": order_ref,
        }
        logger.info(
            "codecraft_purchase order_ref=%s phone=%s network=%s gig=%s",
            order_ref,
            mask_phone(phone),
            network_name,
            gig,
        )

        try:
            resp = send_request(
                self._http, "POST", f"{self.credentials.base_url}/initiate.php",
                headers={"Content-Type": "application/json"}, json_body=body,
            )
        except SupplierUnreachable as e:
            return PurchaseResult(kind=PurchaseKind.UNREACHABLE, message=str(e))

        result = resp.json if isinstance(resp.json, dict) else {}
        if resp.status_code == 200 and str(result.get("status") or "").lower() == "successful":
            # Code Craft tracks orders by our reference.
            return PurchaseResult(
                kind=PurchaseKind.SUCCESS,
                message=result.get("message") or "Order submitted successfully",
                provider_transaction_id=order_ref,
                response=result,
            )

        code = _vendor_code(resp.status_code, result)
        message = VENDOR_CODES.get(code) or result.get("message") or f"Order failed with code {code}"
        return PurchaseResult(kind=PurchaseKind.DECLINED, message=message, response=result or None)

    def get_balance(self) -> BalanceResult:
        return unsupported_balance(self.name)

    def check_status(self, provider_transaction_id: str) -> StatusResult:
        if not self.credentials.api_key:
            return StatusResult(supported=True, message="codecraft is not configured")
        try:
            resp = send_request(
                self._http, "POST", f"{self.credentials.base_url}/response_regular.php",
                headers={"Content-Type": "application/json"},
                json_body={"reference_id": provider_transaction_id, "agent_api": self.credentials.api_key},
            )
        except SupplierUnreachable as e:
            return unreachable_status(e)

        result = resp.json if isinstance(resp.json, dict) else {}
        if str(result.get("status") or "").lower() == "success" and _vendor_code(200, result) == 200:
            details = result.get("order_details") if isinstance(result.get("order_details"), dict) else {}
            raw = details.get("order_status")
            return StatusResult(
                supported=True,
                status=normalize_supplier_status(raw),
                raw=None if raw is None else str(raw),
                response=result,
            )
        return StatusResult(
            supported=True,
            message=result.get("message") or "Failed to retrieve order status",
            response=result or None,
        )
