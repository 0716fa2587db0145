# app/suppliers/registry.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from app.clock import Clock, utcnow

logger = logging.getLogger("bundlepay.suppliers")


@dataclass(frozen=True)
class SupplierDescriptor:
    name: str
    priority: int
    categories: frozenset[str]
    networks: frozenset[str]
    enabled: bool = True

    def can_fulfill(self, category: str, network: str) -> bool:
        """Empty capability sets mean 'any'."""
        if not self.enabled:
            return False
        if self.categories and category not in self.categories:
            return False
        if self.networks and network not in self.networks:
            return False
        return True


class SupplierHealth:
    """Cool-down bookkeeping for suppliers that were unreachable."""

    def __init__(self, cooldown_s: int, clock: Clock | None = None):
        self._cooldown = timedelta(seconds=cooldown_s)
        self._clock = clock or utcnow
        self._lock = threading.Lock()
        self._unhealthy_until: dict[str, datetime] = {}

    def mark_unhealthy(self, name: str, reason: str | None = None) -> None:
        until = self._clock() + self._cooldown
        with self._lock:
            self._unhealthy_until[name] = until
        logger.warning("supplier_cooldown supplier=%s until=%s reason=%s", name, until.isoformat(), reason)

    def is_healthy(self, name: str) -> bool:
        with self._lock:
            until = self._unhealthy_until.get(name)
            if until is None:
                return True
            if self._clock() >= until:
                self._unhealthy_until.pop(name, None)
                return True
            return False

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return {name: until.isoformat() for name, until in self._unhealthy_until.items()}


def eligible_suppliers(
    descriptors: Iterable[SupplierDescriptor],
    *,
    category: str,
    network: str,
    health: SupplierHealth,
    after: Optional[str] = None,
) -> list[SupplierDescriptor]:
    """
    Priority-ordered candidates for an order. With `after`, only suppliers
    ranked below the named one are returned.
    """
    ranked = sorted(descriptors, key=lambda d: (d.priority, d.name))
    if after is not None:
        names = [d.name for d in ranked]
        if after in names:
            ranked = ranked[names.index(after) + 1:]

    out: list[SupplierDescriptor] = []
    for d in ranked:
        if not d.can_fulfill(category, network):
            continue
        if not health.is_healthy(d.name):
            logger.info("supplier_skipped_cooldown supplier=%s", d.name)
            continue
        out.append(d)
    return out
