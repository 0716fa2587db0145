# app/config.py
from __future__ import annotations

from dataclasses import dataclass, field

from app.catalog.networks import parse_network
from app.suppliers.registry import SupplierDescriptor


@dataclass(frozen=True)
class GatewayConfig:
    base_url: str
    user: str
    pub_key: str
    account: str
    webhook_secret: str
    currency: str = "GHS"
    channels: dict[str, str] = field(default_factory=dict)
    timeout_s: float = 10.0
    max_attempts: int = 3
    backoff_s: float = 0.5
    otp_validity_s: int = 300

    @property
    def configured(self) -> bool:
        return bool(self.user and self.pub_key and self.account)


@dataclass(frozen=True)
class SupplierCredentials:
    base_url: str
    api_key: str


@dataclass(frozen=True)
class ReconcileConfig:
    poll_recheck_after_s: int = 120
    payment_stale_s: int = 300
    payment_abandon_after_s: int = 1800
    paid_stale_s: int = 120
    processing_stale_s: int = 600
    batch_size: int = 50
    interval_s: int = 300


@dataclass(frozen=True)
class CoreConfig:
    mode: str  # "sandbox" | "real"
    gateway: GatewayConfig
    suppliers: tuple[SupplierDescriptor, ...]
    supplier_credentials: dict[str, SupplierCredentials]
    supplier_timeout_s: float
    supplier_cooldown_s: int
    reconcile: ReconcileConfig
    ops_token: str = ""


def _channels(raw: dict[str, str]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, code in (raw or {}).items():
        network = parse_network(key)
        if network and str(code).strip():
            out[network] = str(code).strip()
    return out


def load_core_config(settings) -> CoreConfig:
    """Built once at startup from settings.Settings and passed to components."""
    gateway = GatewayConfig(
        base_url=(settings.MOOLRE_BASE_URL or "").strip().rstrip("/"),
        user=(settings.MOOLRE_USER or "").strip(),
        pub_key=(settings.MOOLRE_PUB_KEY or "").strip(),
        account=(settings.MOOLRE_ACCOUNT or "").strip(),
        webhook_secret=(settings.MOOLRE_WEBHOOK_SECRET or "").strip(),
        currency=(settings.MOOLRE_CURRENCY or "GHS").strip().upper(),
        channels=_channels(settings.MOOLRE_CHANNELS),
        timeout_s=float(settings.GATEWAY_HTTP_TIMEOUT_S),
        max_attempts=int(settings.GATEWAY_MAX_ATTEMPTS),
        backoff_s=float(settings.GATEWAY_BACKOFF_S),
        otp_validity_s=int(settings.OTP_VALIDITY_S),
    )

    suppliers = tuple(
        SupplierDescriptor(
            name=s.name.strip().lower(),
            priority=int(s.priority),
            categories=frozenset(c.strip().lower() for c in s.categories if c.strip()),
            networks=frozenset(n for n in (parse_network(x) for x in s.networks) if n),
            enabled=bool(s.enabled),
        )
        for s in settings.SUPPLIERS
    )

    credentials = {
        "dakazina": SupplierCredentials(settings.DAKAZINA_BASE_URL.rstrip("/"), settings.DAKAZINA_API_KEY.strip()),
        "codecraft": SupplierCredentials(settings.CODECRAFT_BASE_URL.rstrip("/"), settings.CODECRAFT_API_KEY.strip()),
        "sykes": SupplierCredentials(settings.SYKES_BASE_URL.rstrip("/"), settings.SYKES_API_KEY.strip()),
    }

    reconcile = ReconcileConfig(
        poll_recheck_after_s=int(settings.POLL_RECHECK_AFTER_S),
        payment_stale_s=int(settings.RECONCILE_PAYMENT_STALE_S),
        payment_abandon_after_s=int(settings.PAYMENT_ABANDON_AFTER_S),
        paid_stale_s=int(settings.RECONCILE_PAID_STALE_S),
        processing_stale_s=int(settings.RECONCILE_PROCESSING_STALE_S),
        batch_size=int(settings.RECONCILE_BATCH_SIZE),
        interval_s=int(settings.RECONCILE_INTERVAL_SECONDS),
    )

    return CoreConfig(
        mode=(settings.MM_MODE or "sandbox").strip().lower(),
        gateway=gateway,
        suppliers=suppliers,
        supplier_credentials=credentials,
        supplier_timeout_s=float(settings.SUPPLIER_HTTP_TIMEOUT_S),
        supplier_cooldown_s=int(settings.SUPPLIER_COOLDOWN_S),
        reconcile=reconcile,
        ops_token=(settings.OPS_TOKEN or "").strip(),
    )
