# schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

Outcome = Literal["challenge_required", "pending", "confirmed", "rejected"]


# -------- PURCHASES --------
class PackageIn(BaseModel):
    size: str = Field(min_length=1, max_length=16)
    price_minor: int = Field(gt=0)


class PurchaseIn(BaseModel):
    phone: str = Field(min_length=9, max_length=16)
    amount_minor: int = Field(gt=0)
    category: str
    network: str
    package: PackageIn
    order_ref: Optional[str] = Field(default=None, max_length=64)
    otp: Optional[str] = Field(default=None, max_length=8)
    shop_id: Optional[str] = Field(default=None, max_length=64)
    markup_minor: Optional[int] = Field(default=None, ge=0)


class FulfillmentOut(BaseModel):
    outcome: str
    supplier: Optional[str] = None
    reason: Optional[str] = None


class PurchaseOut(BaseModel):
    outcome: Outcome
    message: str
    reference: str
    status: Optional[str] = None
    code: Optional[str] = None
    reason: Optional[str] = None
    fulfillment: Optional[FulfillmentOut] = None


# -------- ORDERS --------
class PackageOut(BaseModel):
    size: str
    price_minor: int


class OrderStatusOut(BaseModel):
    reference: str
    status: str
    package: PackageOut
    phone: str
    amount_minor: int
    created_at: datetime


# -------- OPS --------
class SupplierBalanceOut(BaseModel):
    supplier: str
    supported: bool
    healthy: bool
    balance: Optional[str] = None
    currency: Optional[str] = None
    message: Optional[str] = None


class ReconcileRunOut(BaseModel):
    id: str
    run_at: str
    summary: dict[str, Any]
    items: list[dict[str, Any]]
