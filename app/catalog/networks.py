from __future__ import annotations

import re

MTN = "mtn"
TELECEL = "telecel"
AIRTELTIGO = "airteltigo"

NETWORKS = (MTN, TELECEL, AIRTELTIGO)

NETWORK_ALIASES: dict[str, str] = {
    "mtn": MTN,
    "mtn_momo": MTN,
    "telecel": TELECEL,
    "vodafone": TELECEL,
    "voda": TELECEL,
    "airteltigo": AIRTELTIGO,
    "airtel": AIRTELTIGO,
    "tigo": AIRTELTIGO,
    "at": AIRTELTIGO,
}

# National number prefixes (leading zero form).
NETWORK_PREFIXES: dict[str, tuple[str, ...]] = {
    MTN: ("024", "025", "053", "054", "055", "059"),
    TELECEL: ("020", "050"),
    AIRTELTIGO: ("026", "027", "056", "057"),
}

_DIGITS_RE = re.compile(r"\D+")


def parse_network(value: str | None) -> str | None:
    key = (value or "").strip().lower().replace("-", "").replace(" ", "")
    return NETWORK_ALIASES.get(key)


def normalize_phone(raw: str | None) -> str | None:
    """
    Accepts 0XXXXXXXXX, 233XXXXXXXXX, +233XXXXXXXXX or the bare 9-digit form
    and returns the national 10-digit form (0XXXXXXXXX), or None.
    """
    digits = _DIGITS_RE.sub("", raw or "")
    if digits.startswith("233") and len(digits) == 12:
        digits = "0" + digits[3:]
    elif len(digits) == 9 and not digits.startswith("0"):
        digits = "0" + digits
    if len(digits) != 10 or not digits.startswith("0"):
        return None
    return digits


def phone_matches_network(phone: str, network: str) -> bool:
    return phone[:3] in NETWORK_PREFIXES.get(network, ())


def to_msisdn(phone: str) -> str:
    """0XXXXXXXXX -> 233XXXXXXXXX"""
    if phone.startswith("0"):
        return "233" + phone[1:]
    return phone
