# app/payments/attempts.py
from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional

from app.catalog.packages import PackageDescriptor
from app.clock import Clock, utcnow


@dataclass(frozen=True)
class PaymentAttempt:
    order_ref: str
    category: str
    network: str
    phone: str
    package: PackageDescriptor
    amount_minor: int
    channel: Optional[str]
    created_at: datetime
    expires_at: datetime
    shop_id: Optional[str] = None
    markup_minor: Optional[int] = None
    last_code: Optional[str] = None


class AttemptRegistry:
    """
    In-process record of charges that have no order yet (OTP round trips,
    in-flight or unanswered charges). Entries expire after the OTP window.
    """

    def __init__(self, ttl_s: int, clock: Clock | None = None):
        self._ttl = timedelta(seconds=ttl_s)
        self._clock = clock or utcnow
        self._lock = threading.Lock()
        self._attempts: dict[str, PaymentAttempt] = {}

    def new_attempt(
        self,
        *,
        order_ref: str,
        category: str,
        network: str,
        phone: str,
        package: PackageDescriptor,
        amount_minor: int,
        channel: Optional[str] = None,
        shop_id: Optional[str] = None,
        markup_minor: Optional[int] = None,
    ) -> PaymentAttempt:
        now = self._clock()
        return PaymentAttempt(
            order_ref=order_ref,
            category=category,
            network=network,
            phone=phone,
            package=package,
            amount_minor=amount_minor,
            channel=channel,
            created_at=now,
            expires_at=now + self._ttl,
            shop_id=shop_id,
            markup_minor=markup_minor,
        )

    def remember(self, attempt: PaymentAttempt, *, last_code: Optional[str] = None) -> PaymentAttempt:
        """Stores (or refreshes) the attempt; the expiry window restarts."""
        stored = replace(
            attempt,
            expires_at=self._clock() + self._ttl,
            last_code=last_code if last_code is not None else attempt.last_code,
        )
        with self._lock:
            self._attempts[attempt.order_ref] = stored
        return stored

    def get(self, order_ref: str) -> PaymentAttempt | None:
        now = self._clock()
        with self._lock:
            attempt = self._attempts.get(order_ref)
            if attempt is None:
                return None
            if attempt.expires_at <= now:
                self._attempts.pop(order_ref, None)
                return None
            return attempt

    def discard(self, order_ref: str) -> None:
        with self._lock:
            self._attempts.pop(order_ref, None)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [ref for ref, a in self._attempts.items() if a.expires_at <= now]
            for ref in expired:
                self._attempts.pop(ref, None)
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._attempts)
