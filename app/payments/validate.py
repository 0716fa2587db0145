# app/payments/validate.py
from __future__ import annotations

import logging
from typing import Iterable

from app.config import CoreConfig

logger = logging.getLogger("bundlepay")

KNOWN_SUPPLIERS = {"dakazina", "codecraft", "sykes"}


def _sorted_csv(items: Iterable[str]) -> str:
    return ", ".join(sorted(set(items)))


def validate_startup(config: CoreConfig, *, strict: bool = False, store_backend: str = "postgres", database_url: str = "") -> None:
    mode = config.mode
    enabled = [d.name for d in config.suppliers if d.enabled]

    logger.info(
        "startup check: mode=%s strict=%s store=%s suppliers=%s",
        mode,
        strict,
        store_backend,
        ",".join(enabled) if enabled else "<none>",
    )

    if mode not in ("sandbox", "real"):
        raise RuntimeError(f"Startup validation failed. Invalid MM_MODE={mode!r}. Allowed: sandbox, real")

    if store_backend == "postgres" and not database_url:
        raise RuntimeError("Startup validation failed. ORDER_STORE_BACKEND=postgres requires DATABASE_URL")

    if mode == "sandbox" and not strict:
        return

    if not enabled:
        raise RuntimeError("Startup validation failed. SUPPLIERS has no enabled supplier.")

    unknown = sorted(set(enabled) - KNOWN_SUPPLIERS)
    if unknown:
        raise RuntimeError(
            "Startup validation failed. Unknown suppliers in SUPPLIERS: "
            f"{_sorted_csv(unknown)}. Allowed: {_sorted_csv(KNOWN_SUPPLIERS)}"
        )

    missing: list[str] = []
    gw = config.gateway
    for env_name, value in (
        ("MOOLRE_USER", gw.user),
        ("MOOLRE_PUB_KEY", gw.pub_key),
        ("MOOLRE_ACCOUNT", gw.account),
        ("MOOLRE_WEBHOOK_SECRET", gw.webhook_secret),
    ):
        if not value:
            missing.append(env_name)

    for name in enabled:
        creds = config.supplier_credentials.get(name)
        if creds is None or not creds.api_key:
            missing.append(f"{name.upper()}_API_KEY")

    if missing:
        raise RuntimeError(
            "Startup validation failed. "
            f"mode={mode} suppliers={_sorted_csv(enabled)} "
            "Missing required env vars: " + _sorted_csv(missing)
        )
