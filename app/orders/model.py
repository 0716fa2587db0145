from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Any
from datetime import datetime

from app.catalog.packages import PackageDescriptor

AWAITING_PAYMENT = "AWAITING_PAYMENT"
PAID = "PAID"
PROCESSING = "PROCESSING"
FULFILLED = "FULFILLED"
CANCELLED = "CANCELLED"
FAILED = "FAILED"

ORDER_STATUSES = (AWAITING_PAYMENT, PAID, PROCESSING, FULFILLED, CANCELLED, FAILED)


@dataclass(frozen=True)
class NewOrder:
    reference: str
    category: str
    network: str
    phone: str
    package: PackageDescriptor
    amount_minor: int
    payment_reference: str
    status: str
    gateway_transaction_id: Optional[str] = None
    shop_id: Optional[str] = None
    markup_minor: Optional[int] = None


@dataclass(frozen=True)
class Order:
    id: int
    reference: str
    category: str
    network: str
    phone: str
    package: PackageDescriptor
    amount_minor: int
    payment_reference: str
    status: str
    gateway_transaction_id: Optional[str]
    supplier_used: Optional[str]
    supplier_transaction_id: Optional[str]
    supplier_response: Optional[dict[str, Any]]
    last_error: Optional[str]
    shop_id: Optional[str]
    markup_minor: Optional[int]
    created_at: datetime
    updated_at: datetime

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()

    def idle_seconds(self, now: datetime) -> float:
        return (now - self.updated_at).total_seconds()
