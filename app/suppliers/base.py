# app/suppliers/base.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol

import httpx

from app.catalog.packages import PackageDescriptor
from app.providers.http import HttpClient, HttpResponse, is_retryable_http


class PurchaseKind(str, Enum):
    SUCCESS = "SUCCESS"
    DECLINED = "DECLINED"
    UNREACHABLE = "UNREACHABLE"


class SupplierStatus(str, Enum):
    DELIVERED = "DELIVERED"
    PROCESSING = "PROCESSING"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class PurchaseResult:
    kind: PurchaseKind
    message: str
    provider_transaction_id: Optional[str] = None
    response: Optional[dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.kind == PurchaseKind.SUCCESS


@dataclass(frozen=True)
class BalanceResult:
    supported: bool
    balance: Optional[str] = None
    currency: str = "GHS"
    message: str = ""


@dataclass(frozen=True)
class StatusResult:
    supported: bool
    status: SupplierStatus = SupplierStatus.UNKNOWN
    raw: Optional[str] = None
    response: Optional[dict[str, Any]] = None
    message: str = ""
    # Status endpoint timed out or answered 408/425/429/5xx; ask again later.
    unreachable: bool = False


class DataSupplier(Protocol):
    name: str

    def purchase(self, phone: str, package: PackageDescriptor, order_ref: str, *, network: str) -> PurchaseResult: ...

    def get_balance(self) -> BalanceResult: ...

    def check_status(self, provider_transaction_id: str) -> StatusResult: ...


_DELIVERED = {
    "success", "successful", "completed", "complete", "delivered",
    "fulfilled", "sent", "done", "approved", "1",
}
_PROCESSING = {"pending", "processing", "queued", "accepted", "placed", "in progress", "initiated"}
_FAILED = {"failed", "failure", "error", "rejected", "cancelled", "canceled", "refunded", "reversed", "not_found"}


def normalize_supplier_status(raw: Any) -> SupplierStatus:
    value = str(raw if raw is not None else "").strip().lower()
    if not value:
        return SupplierStatus.UNKNOWN
    if value in _DELIVERED:
        return SupplierStatus.DELIVERED
    if value in _PROCESSING:
        return SupplierStatus.PROCESSING
    if value in _FAILED:
        return SupplierStatus.FAILED
    return SupplierStatus.UNKNOWN


def not_configured(name: str) -> PurchaseResult:
    return PurchaseResult(kind=PurchaseKind.DECLINED, message=f"{name} is not configured")


def unsupported_balance(name: str) -> BalanceResult:
    return BalanceResult(supported=False, message=f"{name} does not expose a balance API")


def unsupported_status(name: str) -> StatusResult:
    return StatusResult(supported=False, message=f"{name} does not expose a status API")


def unreachable_status(error: Exception) -> StatusResult:
    return StatusResult(supported=True, unreachable=True, message=str(error))


class SupplierUnreachable(Exception):
    """Raised by request helpers for timeouts, connection errors and 408/425/429/5xx."""


def send_request(
    http: HttpClient,
    method: str,
    url: str,
    *,
    headers: dict[str, str],
    json_body: dict[str, Any] | None = None,
) -> HttpResponse:
    try:
        if method == "GET":
            resp = http.get(url, headers=headers)
        else:
            resp = http.post(url, headers=headers, json_body=json_body)
    except httpx.TimeoutException as e:
        raise SupplierUnreachable(f"timeout: {e}") from e
    except httpx.HTTPError as e:
        raise SupplierUnreachable(f"network: {e}") from e

    if is_retryable_http(resp.status_code):
        raise SupplierUnreachable(f"http_{resp.status_code}")
    return resp
