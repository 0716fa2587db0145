from __future__ import annotations

import argparse
import json

from app.container import build_services
from services.observability import configure_logging
from settings import settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one order reconciliation sweep.")
    parser.add_argument("--json", action="store_true", help="print the full report as JSON")
    args = parser.parse_args()

    configure_logging(settings.LOG_LEVEL)
    result = build_services(settings).scheduler.sweep()
    summary = result["summary"]

    if args.json:
        print(json.dumps(result, indent=2, default=str))
        return

    print("reconcile_report_id:", result["id"])
    print(
        "counts:",
        f"awaiting_payment_checked={summary['awaiting_payment_checked']}",
        f"paid_checked={summary['paid_checked']}",
        f"processing_checked={summary['processing_checked']}",
        f"errors={summary['errors']}",
    )
    for item in result["items"]:
        print(f"  {item.get('status')} {item.get('reference')} -> {item.get('action')}")


if __name__ == "__main__":
    main()
