# app/providers/mock.py
from __future__ import annotations

import threading
from typing import Any, Optional

from app.catalog.packages import PackageDescriptor
from app.payments.moolre import (
    ChargeRequest,
    GatewayCode,
    GatewayResponse,
    GatewayStatus,
    PaymentStatus,
)
from app.suppliers.base import (
    BalanceResult,
    PurchaseKind,
    PurchaseResult,
    StatusResult,
    SupplierStatus,
)


class MockGateway:
    """
    Sandbox gateway. Outcome is derived from the phone number's last digit
    so flows can be exercised end to end without Moolre:

      ...1 -> OTP required until an OTP is supplied (then TP17, then success)
      ...2 -> pending (prompt sent); the status endpoint then reports it paid
      ...3 -> declined
      else -> immediate success
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._verified: set[str] = set()
        self._prompted: set[str] = set()
        self.charges: list[ChargeRequest] = []

    def charge(self, req: ChargeRequest) -> GatewayResponse:
        with self._lock:
            self.charges.append(req)
            verified = req.phone in self._verified

        last = req.phone[-1:]
        if last == "1" and not verified:
            if not req.otp:
                return GatewayResponse(GatewayCode.OTP_REQUIRED, "TP14", "Verification code required")
            with self._lock:
                self._verified.add(req.phone)
            return GatewayResponse(GatewayCode.OTP_VERIFIED, "TP17", "Verification successful")
        if last == "2":
            with self._lock:
                self._prompted.add(req.order_ref)
            return GatewayResponse(GatewayCode.PENDING, "TR099", "Payment prompt sent", transaction_id=f"mock-{req.order_ref}")
        if last == "3":
            return GatewayResponse(GatewayCode.DECLINED, "TP02", "Insufficient balance")
        return GatewayResponse(GatewayCode.SUCCESS, "TR000", "Payment successful", transaction_id=f"mock-{req.order_ref}")

    def transaction_status(self, order_ref: str) -> GatewayStatus:
        with self._lock:
            prompted = order_ref in self._prompted
        if "fail" in (order_ref or "").lower():
            return GatewayStatus(status=PaymentStatus.FAILED, raw_status="2")
        if prompted:
            return GatewayStatus(status=PaymentStatus.SUCCESS, transaction_id=f"mock-{order_ref}", raw_status="1")
        return GatewayStatus(status=PaymentStatus.PENDING, raw_status="0")


class MockSupplier:
    """Test/dev supplier with a fixed purchase outcome; records every call."""

    def __init__(
        self,
        name: str = "mock",
        *,
        kind: PurchaseKind = PurchaseKind.SUCCESS,
        status: SupplierStatus = SupplierStatus.DELIVERED,
        status_supported: bool = True,
        balance: Optional[str] = "1000.00",
    ):
        self.name = name
        self.kind = kind
        self.status = status
        self.status_supported = status_supported
        self.balance = balance
        self._lock = threading.Lock()
        self.calls: list[dict[str, Any]] = []
        self.status_calls: list[str] = []

    def purchase(self, phone: str, package: PackageDescriptor, order_ref: str, *, network: str) -> PurchaseResult:
        with self._lock:
            self.calls.append({"phone": phone, "size": package.size, "order_ref": order_ref, "network": network})

        if self.kind == PurchaseKind.SUCCESS:
            return PurchaseResult(
                kind=PurchaseKind.SUCCESS,
                message="mock order placed",
                provider_transaction_id=f"{self.name}-{order_ref}",
                response={"mock": True, "supplier": self.name},
            )
        if self.kind == PurchaseKind.UNREACHABLE:
            return PurchaseResult(kind=PurchaseKind.UNREACHABLE, message="timeout: mock supplier unreachable")
        return PurchaseResult(kind=PurchaseKind.DECLINED, message="mock supplier declined", response={"mock": True})

    def get_balance(self) -> BalanceResult:
        if self.balance is None:
            return BalanceResult(supported=False, message=f"{self.name} does not expose a balance API")
        return BalanceResult(supported=True, balance=self.balance, currency="GHS")

    def check_status(self, provider_transaction_id: str) -> StatusResult:
        with self._lock:
            self.status_calls.append(provider_transaction_id)
        if not self.status_supported:
            return StatusResult(supported=False, message=f"{self.name} does not expose a status API")
        return StatusResult(supported=True, status=self.status, raw=self.status.value.lower())
