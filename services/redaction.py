from __future__ import annotations

import re
from typing import Any


# Ghana numbers in national (0XXXXXXXXX) or international (233XXXXXXXXX, +233...) form.
_PHONE_RE = re.compile(r"(?<!\d)(?:\+?233|0)\d{9}(?!\d)")

_SENSITIVE_KEY_MARKERS = (
    "token",
    "authorization",
    "secret",
    "signature",
    "password",
    "api_key",
    "apikey",
    "pubkey",
    "agent_api",
    "otp",
)

_SENSITIVE_HEADERS = {"x-api-key", "x-api-pubkey", "x-api-user", "x-ops-token", "x-moolre-secret"}


def mask_phone(value: str) -> str:
    """0241234567 -> 024****567"""
    if len(value) <= 6:
        return value
    return f"{value[:3]}****{value[-3:]}"


def redact_text(value: str) -> str:
    return _PHONE_RE.sub(lambda m: mask_phone(m.group(0)), value)


def _is_sensitive_key(key: str) -> bool:
    key_l = (key or "").lower()
    return key_l in _SENSITIVE_HEADERS or any(marker in key_l for marker in _SENSITIVE_KEY_MARKERS)


def redact_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in payload.items():
        if _is_sensitive_key(str(k)):
            out[k] = "[REDACTED]"
        else:
            out[k] = redact_value(v)
    return out
