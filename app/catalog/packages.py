from __future__ import annotations

import re
import secrets
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.catalog.networks import AIRTELTIGO, MTN, TELECEL

CATEGORY_FASTNET = "fastnet"
CATEGORY_DATAGOD = "datagod"
CATEGORY_AT = "at"
CATEGORY_TELECEL = "telecel"

CATEGORIES = (CATEGORY_FASTNET, CATEGORY_DATAGOD, CATEGORY_AT, CATEGORY_TELECEL)

# Destination networks each bundle category can be delivered to.
CATEGORY_NETWORKS: dict[str, frozenset[str]] = {
    CATEGORY_FASTNET: frozenset({MTN}),
    CATEGORY_DATAGOD: frozenset({MTN}),
    CATEGORY_AT: frozenset({AIRTELTIGO}),
    CATEGORY_TELECEL: frozenset({TELECEL}),
}

REFERENCE_PREFIXES: dict[str, str] = {
    CATEGORY_FASTNET: "FN",
    CATEGORY_DATAGOD: "DG",
    CATEGORY_AT: "AT",
    CATEGORY_TELECEL: "TC",
}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(GB|MB)\s*$", re.IGNORECASE)
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class PackageDescriptor:
    size: str
    price_minor: int

    @property
    def size_gb(self) -> Decimal:
        return parse_size_gb(self.size)

    def as_dict(self) -> dict[str, object]:
        return {"size": self.size, "price_minor": self.price_minor}


def parse_category(value: str | None) -> str | None:
    key = (value or "").strip().lower()
    return key if key in CATEGORY_NETWORKS else None


def normalize_size(value: str) -> str:
    """'5 gb' -> '5GB'. Raises ValueError for anything that is not a GB/MB size."""
    m = _SIZE_RE.match(value or "")
    if not m:
        raise ValueError(f"invalid package size: {value!r}")
    amount = Decimal(m.group(1)).normalize()
    return f"{amount:f}{m.group(2).upper()}"


def parse_size_gb(value: str) -> Decimal:
    m = _SIZE_RE.match(value or "")
    if not m:
        raise ValueError(f"invalid package size: {value!r}")
    amount = Decimal(m.group(1))
    if m.group(2).upper() == "MB":
        return amount / Decimal(1000)
    return amount


def format_minor(amount_minor: int) -> str:
    """2000 -> '20.00'"""
    return str((Decimal(int(amount_minor)) / 100).quantize(_CENT))


def parse_major(value) -> int | None:
    """'20', 20.5, '20.50' -> minor units. None when the value is not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def new_reference(category: str, *, now_ms: int | None = None) -> str:
    prefix = REFERENCE_PREFIXES.get(category, "BP")
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{prefix}-{ms}-{secrets.randbelow(1000):03d}"
