from __future__ import annotations

from fastapi.testclient import TestClient

from main import create_app
from tests.conftest import make_services


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["mm_mode"] == "sandbox"


def test_healthz_reports_store(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["db_ok"] is True


def test_readyz_false_when_store_down(clock):
    class _DownStore:
        def ping(self):
            raise RuntimeError("connection refused")

    services = make_services(clock)
    services.store = _DownStore()
    client = TestClient(create_app(services))

    r = client.get("/readyz")
    assert r.status_code == 200
    assert r.json()["ready"] is False
    assert "RuntimeError" in r.json()["db_error"]


def test_metrics_endpoint_prometheus_text(client):
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in r.text
