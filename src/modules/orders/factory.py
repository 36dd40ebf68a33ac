"""Wiring of the order services with their Django repositories.

Repositories keep identity maps, so build one service per request or
task run.
"""

from __future__ import annotations

from typing import Optional

from modules.catalog.repositories.django_repository import CatalogDjangoRepository
from modules.discounts.repositories.django_repository import (
    DiscountCodeDjangoRepository,
)
from modules.discounts.services import DiscountCodeValidator
from modules.inventory.repositories.django_repository import StockDjangoRepository
from modules.inventory.services import StockLedger
from modules.orders.gateways import GatewayRegistry, NotificationSender
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.orders.status import OrderStatusMachine
from modules.taxes.repositories.django_repository import TaxRateDjangoRepository
from modules.taxes.services import TaxCalculator


def build_order_service(
    notifier: Optional[NotificationSender] = None,
    gateways: Optional[GatewayRegistry] = None,
) -> OrderService:
    orders = OrderDjangoRepository()
    stock = StockLedger(StockDjangoRepository())
    return OrderService(
        order_repository=orders,
        catalog_repository=CatalogDjangoRepository(),
        stock=stock,
        tax_calculator=TaxCalculator(TaxRateDjangoRepository()),
        discount_validator=DiscountCodeValidator(DiscountCodeDjangoRepository()),
        status_machine=OrderStatusMachine(orders, stock, notifier),
        gateways=gateways,
    )
