# Overview: Wires repository, ledger and services together for one application.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from .repository import Repository, SqlAlchemyRepository
from .services.availability_service import AvailabilityValidator
from .services.cart_service import CartService
from .services.catalog_service import CatalogService
from .services.checkout_service import CheckoutService, OrderAggregator
from .services.inventory_service import StockLedger
from .services.loyalty_service import FloorAccrualPolicy, LoyaltyService
from .services.notification_service import NotificationEmitter
from .services.order_service import OrderService
from .services.payment_service import PaymentService
from .services.receipt_service import ReceiptService
from .services.settlement_service import SettlementGateway, gateway_from_config


@dataclass
class Services:
    repository: Repository
    gateway: SettlementGateway
    notifier: NotificationEmitter
    ledger: StockLedger
    validator: AvailabilityValidator
    checkout: CheckoutService
    orders: OrderService
    payments: PaymentService
    loyalty: LoyaltyService
    cart: CartService
    receipts: ReceiptService
    catalog: CatalogService


def build_services(config, *, repository: Repository | None = None, gateway: SettlementGateway | None = None) -> Services:
    repository = repository or SqlAlchemyRepository()
    gateway = gateway or gateway_from_config(config)

    notifier = NotificationEmitter(
        repository,
        default_low_stock_threshold=int(config.get("LOW_STOCK_THRESHOLD", 5)),
    )
    ledger = StockLedger(repository, notifier=notifier)
    validator = AvailabilityValidator(repository)
    orders = OrderService(repository, ledger)
    loyalty = LoyaltyService(
        repository,
        FloorAccrualPolicy(int(config.get("LOYALTY_FILS_PER_POINT", 1000))),
    )

    return Services(
        repository=repository,
        gateway=gateway,
        notifier=notifier,
        ledger=ledger,
        validator=validator,
        checkout=CheckoutService(repository, ledger, validator, aggregator=OrderAggregator(), notifier=notifier),
        orders=orders,
        payments=PaymentService(repository, orders, gateway, loyalty, notifier=notifier),
        loyalty=loyalty,
        cart=CartService(repository),
        receipts=ReceiptService(repository, orders),
        catalog=CatalogService(repository, ledger),
    )


def get_services() -> Services:
    return current_app.extensions["bazaar"]
