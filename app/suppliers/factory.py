# app/suppliers/factory.py
from __future__ import annotations

import logging

from app.config import CoreConfig
from app.providers.http import HttpClient
from app.suppliers.base import DataSupplier

logger = logging.getLogger("bundlepay.suppliers")


def build_supplier(name: str, config: CoreConfig, http: HttpClient | None = None):
    key = (name or "").strip().lower()
    if not key:
        return None

    if config.mode == "sandbox":
        from app.providers.mock import MockSupplier
        return MockSupplier(key)

    creds = config.supplier_credentials.get(key)
    if creds is None:
        return None

    if key == "dakazina":
        from app.suppliers.dakazina import DakazinaSupplier
        return DakazinaSupplier(creds, http=http, timeout_s=config.supplier_timeout_s)

    if key == "codecraft":
        from app.suppliers.codecraft import CodeCraftSupplier
        return CodeCraftSupplier(creds, http=http, timeout_s=config.supplier_timeout_s)

    if key == "sykes":
        from app.suppliers.sykes import SykesSupplier
        return SykesSupplier(creds, http=http, timeout_s=config.supplier_timeout_s)

    return None


def build_suppliers(config: CoreConfig, http: HttpClient | None = None) -> dict[str, DataSupplier]:
    """One adapter per configured descriptor; unknown names are logged and left out."""
    shared = http or HttpClient(timeout_s=config.supplier_timeout_s)
    out: dict[str, DataSupplier] = {}
    for descriptor in config.suppliers:
        supplier = build_supplier(descriptor.name, config, http=shared)
        if supplier is None:
            logger.error("supplier_unknown name=%s", descriptor.name)
            continue
        out[descriptor.name] = supplier
    return out
