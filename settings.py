# settings.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field
from typing import Literal


class SupplierSetting(BaseModel):
    name: str
    priority: int = 100
    categories: list[str] = Field(default_factory=list)
    networks: list[str] = Field(default_factory=list)
    enabled: bool = True


def _default_suppliers() -> list[SupplierSetting]:
    return [
        SupplierSetting(name="dakazina", priority=10, categories=["fastnet", "datagod"], networks=["mtn"]),
        SupplierSetting(name="sykes", priority=20, categories=["fastnet", "datagod"], networks=["mtn"]),
        SupplierSetting(
            name="codecraft",
            priority=30,
            categories=["fastnet", "datagod", "at", "telecel"],
            networks=["mtn", "airteltigo", "telecel"],
        ),
    ]


class Settings(BaseSettings):
    """
    Pending OTP attempts live in process memory (AttemptRegistry), so the API is
    meant to run as a single uvicorn worker. With several workers an OTP
    resubmission, or a webhook for an order that was never created, can land on a
    worker that does not hold the attempt. The webhook case is logged at ERROR as
    payment_success_unknown_order.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # -----------------------
    # DB
    # -----------------------
    # Empty is allowed so the app can boot with ORDER_STORE_BACKEND=memory.
    DATABASE_URL: str = ""
    DB_POOL_MAX: int = 10
    ORDER_STORE_BACKEND: Literal["postgres", "memory"] = "postgres"

    # -----------------------
    # Logging
    # -----------------------
    LOG_LEVEL: str = "INFO"

    # -----------------------
    # Mode switch
    # -----------------------
    # sandbox: mock gateway + mock suppliers, real: live vendor APIs
    MM_MODE: Literal["sandbox", "real"] = "sandbox"
    MM_STRICT_STARTUP_VALIDATION: bool = False

    # -----------------------
    # Moolre payment gateway
    # -----------------------
    MOOLRE_BASE_URL: str = "https://api.moolre.com"
    MOOLRE_USER: str = ""
    MOOLRE_PUB_KEY: str = ""
    MOOLRE_ACCOUNT: str = ""
    MOOLRE_WEBHOOK_SECRET: str = ""
    MOOLRE_CURRENCY: str = "GHS"
    MOOLRE_CHANNELS: dict[str, str] = Field(
        default_factory=lambda: {"mtn": "13", "telecel": "14", "airteltigo": "15"}
    )

    GATEWAY_HTTP_TIMEOUT_S: float = 10.0
    GATEWAY_MAX_ATTEMPTS: int = Field(default=3, ge=1, le=10)
    GATEWAY_BACKOFF_S: float = 0.5
    OTP_VALIDITY_S: int = 300

    # -----------------------
    # Data suppliers
    # -----------------------
    SUPPLIERS: list[SupplierSetting] = Field(default_factory=_default_suppliers)
    SUPPLIER_HTTP_TIMEOUT_S: float = 15.0
    SUPPLIER_COOLDOWN_S: int = 300

    DAKAZINA_BASE_URL: str = "https://reseller.dakazinabusinessconsult.com/api/v1"
    DAKAZINA_API_KEY: str = ""

    CODECRAFT_BASE_URL: str = "https://api.codecraftnetwork.com/api"
    CODECRAFT_API_KEY: str = ""

    SYKES_BASE_URL: str = "https://sykesofficial.net"
    SYKES_API_KEY: str = ""

    # -----------------------
    # Reconciliation
    # -----------------------
    POLL_RECHECK_AFTER_S: int = 120
    RECONCILE_PAYMENT_STALE_S: int = 300
    PAYMENT_ABANDON_AFTER_S: int = 1800
    RECONCILE_PAID_STALE_S: int = 120
    RECONCILE_PROCESSING_STALE_S: int = 600
    RECONCILE_BATCH_SIZE: int = 50
    RECONCILE_INTERVAL_SECONDS: int = 300

    # -----------------------
    # Operator endpoints
    # -----------------------
    OPS_TOKEN: str = ""


settings = Settings()
