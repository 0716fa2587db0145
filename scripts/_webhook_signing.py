"""Sign Moolre payment callbacks the way the webhook endpoint verifies them.

Run directly to print (or post) a signed callback for a local order:

    python scripts/_webhook_signing.py FN-1-001 --txstatus 1 --post http://localhost:8000
"""
from __future__ import annotations

import argparse
import hashlib
import hmac
import json
import os
from typing import Any, Dict, Optional

import httpx

SIGNATURE_HEADER = "X-Signature"
SIGNATURE_PREFIX = "sha256="


def canonical_json_bytes(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")


def hmac_sha256_hex(secret: str, body_bytes: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body_bytes, hashlib.sha256).hexdigest()


def moolre_signature_header(secret: str, body_bytes: bytes) -> Dict[str, str]:
    return {SIGNATURE_HEADER: SIGNATURE_PREFIX + hmac_sha256_hex(secret, body_bytes)}


def moolre_callback(
    reference: str,
    *,
    txstatus: int = 1,
    amount: Optional[str] = None,
    transaction_id: Optional[str] = None,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {"externalref": reference, "txstatus": txstatus}
    if amount is not None:
        data["amount"] = amount
    if transaction_id is not None:
        data["transactionid"] = transaction_id
    return {"status": 1, "data": data}


def main() -> None:
    parser = argparse.ArgumentParser(description="Build a signed Moolre payment callback.")
    parser.add_argument("reference")
    parser.add_argument("--txstatus", type=int, default=1, help="1 success, 2 failed, anything else pending")
    parser.add_argument("--amount")
    parser.add_argument("--transaction-id")
    parser.add_argument("--secret", default=os.getenv("WEBHOOK_SECRET", ""))
    parser.add_argument("--post", metavar="BASE_URL", help="send the callback to a running API")
    args = parser.parse_args()

    if not args.secret:
        parser.error("WEBHOOK_SECRET is not set; pass --secret")

    body = canonical_json_bytes(
        moolre_callback(args.reference, txstatus=args.txstatus, amount=args.amount, transaction_id=args.transaction_id)
    )
    headers = {"Content-Type": "application/json", **moolre_signature_header(args.secret, body)}

    if not args.post:
        print(body.decode("utf-8"))
        print(f"{SIGNATURE_HEADER}: {headers[SIGNATURE_HEADER]}")
        return

    r = httpx.post(args.post.rstrip("/") + "/v1/webhooks/moolre", content=body, headers=headers, timeout=10.0)
    print(r.status_code, r.text)


if __name__ == "__main__":
    main()
