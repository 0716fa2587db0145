# app/container.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from app.clock import Clock, utcnow
from app.config import CoreConfig, load_core_config
from app.fulfillment.dispatcher import SupplierDispatcher
from app.orders.poller import StatusPoller
from app.orders.store import InMemoryOrderStore, OrderStore
from app.payments.attempts import AttemptRegistry
from app.payments.confirmation import PaymentConfirmer
from app.payments.initiator import PaymentInitiator
from app.payments.moolre import MoolreGateway, PaymentGateway
from app.suppliers.base import DataSupplier
from app.suppliers.factory import build_suppliers
from app.suppliers.registry import SupplierHealth
from app.webhooks.reconciler import WebhookReconciler
from app.workers.reconcile_scheduler import ReconciliationScheduler
from services.ledger_events import LoggingShopLedger, PostgresShopLedger, ShopLedger
from services.notifications import CustomerNotifier, LoggingNotifier


@dataclass
class Services:
    config: CoreConfig
    store: OrderStore
    gateway: PaymentGateway
    attempts: AttemptRegistry
    suppliers: Mapping[str, DataSupplier]
    health: SupplierHealth
    ledger: ShopLedger
    dispatcher: SupplierDispatcher
    confirmer: PaymentConfirmer
    initiator: PaymentInitiator
    webhooks: WebhookReconciler
    scheduler: ReconciliationScheduler
    poller: StatusPoller


def _default_store(settings, clock: Clock) -> OrderStore:
    if settings.ORDER_STORE_BACKEND == "memory":
        return InMemoryOrderStore(clock=clock)
    from app.orders.repository import PostgresOrderStore

    return PostgresOrderStore()


def _default_gateway(config: CoreConfig) -> PaymentGateway:
    if config.mode == "sandbox":
        from app.providers.mock import MockGateway

        return MockGateway()
    return MoolreGateway(config.gateway)


def build_services(
    settings,
    *,
    store: Optional[OrderStore] = None,
    gateway: Optional[PaymentGateway] = None,
    suppliers: Optional[Mapping[str, DataSupplier]] = None,
    ledger: Optional[ShopLedger] = None,
    notifier: Optional[CustomerNotifier] = None,
    clock: Optional[Clock] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Services:
    """Wires every component from one CoreConfig. Keyword overrides are for tests and scripts."""
    config = load_core_config(settings)
    clock = clock or utcnow

    if store is None:
        store = _default_store(settings, clock)
    if gateway is None:
        gateway = _default_gateway(config)
    if suppliers is None:
        suppliers = build_suppliers(config)
    if ledger is None:
        ledger = PostgresShopLedger() if settings.ORDER_STORE_BACKEND == "postgres" else LoggingShopLedger()
    if notifier is None:
        notifier = LoggingNotifier()

    attempts = AttemptRegistry(ttl_s=config.gateway.otp_validity_s, clock=clock)
    health = SupplierHealth(cooldown_s=config.supplier_cooldown_s, clock=clock)

    dispatcher = SupplierDispatcher(
        store=store,
        suppliers=suppliers,
        descriptors=config.suppliers,
        health=health,
        ledger=ledger,
        notifier=notifier,
    )
    confirmer = PaymentConfirmer(store=store, attempts=attempts, dispatcher=dispatcher, notifier=notifier)
    initiator = PaymentInitiator(
        store=store,
        gateway=gateway,
        attempts=attempts,
        dispatcher=dispatcher,
        config=config.gateway,
        sleep=sleep,
    )
    webhooks = WebhookReconciler(
        store=store,
        confirmer=confirmer,
        dispatcher=dispatcher,
        secret=config.gateway.webhook_secret,
    )
    scheduler = ReconciliationScheduler(
        store=store,
        gateway=gateway,
        confirmer=confirmer,
        dispatcher=dispatcher,
        suppliers=suppliers,
        attempts=attempts,
        config=config.reconcile,
        notifier=notifier,
        clock=clock,
    )
    poller = StatusPoller(
        store=store,
        scheduler=scheduler,
        recheck_after_s=config.reconcile.poll_recheck_after_s,
        clock=clock,
    )

    return Services(
        config=config,
        store=store,
        gateway=gateway,
        attempts=attempts,
        suppliers=suppliers,
        health=health,
        ledger=ledger,
        dispatcher=dispatcher,
        confirmer=confirmer,
        initiator=initiator,
        webhooks=webhooks,
        scheduler=scheduler,
        poller=poller,
    )
