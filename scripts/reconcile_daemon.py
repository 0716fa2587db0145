# scripts/reconcile_daemon.py
from __future__ import annotations

import logging

from app.container import build_services
from services.observability import configure_logging
from settings import settings


logger = logging.getLogger("bundlepay.reconcile_daemon")


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    services = build_services(settings)
    interval = max(1, int(settings.RECONCILE_INTERVAL_SECONDS))
    logger.info("reconcile_daemon_starting interval_s=%s mode=%s", interval, services.config.mode)

    try:
        services.scheduler.run_forever(poll_seconds=interval)
    except KeyboardInterrupt:
        logger.info("reconcile_daemon_exiting")


if __name__ == "__main__":
    main()
