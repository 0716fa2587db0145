# app/suppliers/dakazina.py
from __future__ import annotations

import logging
from typing import Any

from app.catalog.packages import PackageDescriptor, normalize_size
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
)
from services.redaction import mask_phone

logger = logging.getLogger("bundlepay.suppliers")

MTN_NETWORK_ID = 3

# Package size -> DataKazina shared_bundle id (MTN).
SHARED_BUNDLE_MAP: dict[str, int] = {
    "1GB": 1,
    "2GB": 2,
    "3GB": 3,
    "4GB": 4,
    "5GB": 5,
    "6GB": 6,
    "7GB": 7,
    "8GB": 8,
    "10GB": 10,
    "15GB": 15,
    "20GB": 20,
    "25GB": 25,
    "30GB": 30,
    "40GB": 40,
    "50GB": 50,
    "75GB": 75,
    "100GB": 100,
}


def shared_bundle_id(size: str) -> int | None:
    try:
        return SHARED_BUNDLE_MAP.get(normalize_size(size))
    except ValueError:
        return None


def _extract_status(body: dict[str, Any]) -> Any:
    data = body.get("data")
    if isinstance(data, dict) and data.get("status") is not None:
        return data["status"]
    tx = body.get("transaction")
    if isinstance(tx, dict) and tx.get("status") is not None:
        return tx["status"]
    if body.get("transaction_status") is not None:
        return body["transaction_status"]
    return body.get("status")


class DakazinaSupplier:
    name = "dakazina"

    def __init__(self, credentials: SupplierCredentials, http: HttpClient | None = None, timeout_s: float = 15.0):
        self.credentials = credentials
        self._http = http or HttpClient(timeout_s=timeout_s)

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.credentials.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def purchase(self, phone: str, package: PackageDescriptor, order_ref: str, *, network: str) -> PurchaseResult:
        if not self.credentials.api_key:
            return not_configured(self.name)

        bundle_id = shared_bundle_id(package.size)
        if bundle_id is None:
            return PurchaseResult(
                kind=PurchaseKind.DECLINED,
                message=f"Unknown data package size: {package.size}",
            )

        body = {
            "recipient_msisdn": phone,
            "network_id": MTN_NETWORK_ID,
            "shared_bundle": bundle_id,
            "incoming_api_ref": order_ref,
        }
        logger.info(
            "dakazina_purchase order_ref=%s phone=%s size=%s shared_bundle=%s",
            order_ref,
            mask_phone(phone),
            package.size,
            bundle_id,
        )

        try:
            resp = send_request(
                self._http, "POST", f"{self.credentials.base_url}/buy-data-package",
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

        if result.get("status") is True:
            tx_id = result.get("transaction_id")
            return PurchaseResult(
                kind=PurchaseKind.SUCCESS,
                message=result.get("message") or "Data purchase successful",
                provider_transaction_id=str(tx_id) if tx_id else None,
                response=result,
            )

        return PurchaseResult(
            kind=PurchaseKind.DECLINED,
            message=result.get("message") or "Purchase failed",
            response=result or None,
        )

    def get_balance(self) -> BalanceResult:
        if not self.credentials.api_key:
            return BalanceResult(supported=True, message="dakazina is not configured")
        try:
            resp = send_request(
                self._http, "GET", f"{self.credentials.base_url}/check-console-balance",
                headers={"x-api-key": self.credentials.api_key},
            )
        except SupplierUnreachable as e:
            return BalanceResult(supported=True, message=str(e))

        result = resp.json if isinstance(resp.json, dict) else {}
        if not resp.ok:
            return BalanceResult(supported=True, message=f"Failed to fetch wallet balance: {resp.status_code}")

        data = result.get("data") if isinstance(result.get("data"), dict) else {}
        balance = result.get("Wallet Balance")
        if balance is None:
            balance = result.get("balance")
        if balance is None:
            balance = data.get("balance", data.get("wallet_balance"))
        if balance is not None:
            return BalanceResult(supported=True, balance=str(balance), currency="GHS")
        return BalanceResult(supported=True, message=result.get("message") or "Unexpected balance response")

    def check_status(self, provider_transaction_id: str) -> StatusResult:
        if not self.credentials.api_key:
            return StatusResult(supported=True, message="dakazina is not configured")
        try:
            resp = send_request(
                self._http, "POST", f"{self.credentials.base_url}/fetch-single-transaction",
                headers=self._headers(), json_body={"transaction_id": provider_transaction_id},
            )
        except SupplierUnreachable as e:
            return unreachable_status(e)

        result = resp.json if isinstance(resp.json, dict) else {}
        if resp.status_code == 404:
            return StatusResult(supported=True, status=normalize_supplier_status("not_found"), raw="not_found", response=result)
        if not resp.ok:
            return StatusResult(supported=True, message=f"Failed to check transaction: {resp.status_code}")

        raw = _extract_status(result)
        return StatusResult(
            supported=True,
            status=normalize_supplier_status(raw),
            raw=None if raw is None else str(raw),
            response=result,
        )
