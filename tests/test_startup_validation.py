from __future__ import annotations

import pytest

from app.config import load_core_config
from app.payments.validate import validate_startup
from tests.conftest import make_settings


REAL_ENV = {
    "MM_MODE": "real",
    "MOOLRE_USER": "u",
    "MOOLRE_PUB_KEY": "p",
    "MOOLRE_ACCOUNT": "10001",
    "MOOLRE_WEBHOOK_SECRET": "s",
    "DAKAZINA_API_KEY": "dk",
    "SYKES_API_KEY": "sy",
    "CODECRAFT_API_KEY": "cc",
}


def test_sandbox_boots_without_credentials():
    validate_startup(load_core_config(make_settings(MOOLRE_WEBHOOK_SECRET="")), store_backend="memory")


def test_real_mode_with_everything_configured():
    validate_startup(load_core_config(make_settings(**REAL_ENV)), store_backend="memory")


def test_real_mode_missing_gateway_credentials():
    env = dict(REAL_ENV, MOOLRE_PUB_KEY="", MOOLRE_WEBHOOK_SECRET="")
    with pytest.raises(RuntimeError) as exc:
        validate_startup(load_core_config(make_settings(**env)), store_backend="memory")
    assert "MOOLRE_PUB_KEY" in str(exc.value)
    assert "MOOLRE_WEBHOOK_SECRET" in str(exc.value)


def test_real_mode_missing_supplier_key():
    env = dict(REAL_ENV, SYKES_API_KEY="")
    with pytest.raises(RuntimeError) as exc:
        validate_startup(load_core_config(make_settings(**env)), store_backend="memory")
    assert "SYKES_API_KEY" in str(exc.value)


def test_strict_sandbox_is_validated_like_real():
    with pytest.raises(RuntimeError):
        validate_startup(load_core_config(make_settings()), strict=True, store_backend="memory")


def test_real_mode_without_suppliers():
    env = dict(REAL_ENV, SUPPLIERS=[])
    with pytest.raises(RuntimeError) as exc:
        validate_startup(load_core_config(make_settings(**env)), store_backend="memory")
    assert "no enabled supplier" in str(exc.value)


def test_postgres_backend_requires_database_url():
    with pytest.raises(RuntimeError) as exc:
        validate_startup(load_core_config(make_settings()), store_backend="postgres", database_url="")
    assert "DATABASE_URL" in str(exc.value)


def test_channel_aliases_are_normalized():
    config = load_core_config(make_settings(MOOLRE_CHANNELS={"MTN": "13", "vodafone": "14", "AT": "15"}))
    assert config.gateway.channels == {"mtn": "13", "telecel": "14", "airteltigo": "15"}
