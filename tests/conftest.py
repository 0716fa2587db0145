# tests/conftest.py

import os

# main builds its app at import time; point it at the in-memory store before anything imports settings.
os.environ.setdefault("ORDER_STORE_BACKEND", "memory")
os.environ.setdefault("MM_MODE", "sandbox")

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from app.catalog.packages import PackageDescriptor
from app.container import Services, build_services
from app.orders.model import NewOrder
from app.orders.store import InMemoryOrderStore
from app.providers.mock import MockGateway
from main import create_app
from services.ledger_events import LoggingShopLedger
from settings import Settings


WEBHOOK_SECRET = "test-webhook-secret"
OPS_TOKEN = "test-ops-token"


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingNotifier:
    def __init__(self):
        self.updates = []

    def order_updated(self, order) -> None:
        self.updates.append((order.reference, order.status))


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "ORDER_STORE_BACKEND": "memory",
        "MM_MODE": "sandbox",
        "MOOLRE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "OPS_TOKEN": OPS_TOKEN,
        "GATEWAY_BACKOFF_S": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_services(clock: FakeClock, **kwargs: Any) -> Services:
    settings_overrides = kwargs.pop("settings", {})
    kwargs.setdefault("store", InMemoryOrderStore(clock=clock))
    kwargs.setdefault("gateway", MockGateway())
    kwargs.setdefault("ledger", LoggingShopLedger())
    kwargs.setdefault("notifier", RecordingNotifier())
    return build_services(make_settings(**settings_overrides), clock=clock, sleep=lambda s: None, **kwargs)


def new_order(reference: str = "FN-1-001", **overrides: Any) -> NewOrder:
    values: Dict[str, Any] = {
        "reference": reference,
        "category": "fastnet",
        "network": "mtn",
        "phone": "0241234567",
        "package": PackageDescriptor(size="5GB", price_minor=2000),
        "amount_minor": 2000,
        "payment_reference": reference,
        "status": "AWAITING_PAYMENT",
    }
    values.update(overrides)
    return NewOrder(**values)


# ---------------------------
# Fixtures
# ---------------------------

@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def services(clock: FakeClock) -> Services:
    return make_services(clock)


@pytest.fixture()
def client(services: Services) -> TestClient:
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    return TestClient(create_app(services), raise_server_exceptions=False)
