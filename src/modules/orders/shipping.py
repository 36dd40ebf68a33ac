"""Shipping charges from shipper rate tables.

Business rules enforced here:
- Only physical lines ship.  Each contributes its product's shipping
  units plus the variant's unit delta, times the quantity, and the
  product's fixed per-item shipping.
- A shipper prices the units with its cheapest rate row,
  ``rate * ceil(units / package units)``.  Shippers whose unit range
  excludes the order are skipped.
- The order's selected shipper is used when it qualifies; otherwise the
  cheapest quote.  When no shipper qualifies the cheapest one is quoted
  ignoring unit limits, and when no shipper has rates at all only the
  fixed amount is charged.
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Tuple

import structlog

from modules.core.currency import ZERO, to_decimal
from modules.orders.dtos import ShippingQuote

if TYPE_CHECKING:
    from modules.orders.models import OrderItem, Shipper
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


def line_units(item: OrderItem) -> Decimal:
    units = to_decimal(item.product.shipping_units)
    if item.variant is not None:
        units += to_decimal(item.variant.shipping_units)
    return max(units, ZERO) * item.quantity


def unit_rate(shipper: Shipper, units: Decimal) -> Optional[Decimal]:
    """Cheapest charge of *shipper* for *units*, ``None`` without rates."""
    costs = [
        to_decimal(rate.rate) * math.ceil(units / to_decimal(rate.units))
        for rate in shipper.rates.all()
        if rate.units > 0
    ]
    return min(costs) if costs else None


class ShippingCalculator:
    def __init__(self, repository: IOrderRepository) -> None:
        self._repo = repository

    @staticmethod
    def totals(items: Iterable[OrderItem]) -> Tuple[Decimal, Decimal]:
        """Shipping units and fixed shipping of the physical lines."""
        units = ZERO
        fixed = ZERO
        for item in items:
            if not item.product.is_physical:
                continue
            units += line_units(item)
            fixed += to_decimal(item.product.shipping_for(item.quantity))
        return units, fixed

    def quotes(self, items: Iterable[OrderItem]) -> List[ShippingQuote]:
        """Quotes of the qualifying shippers, cheapest first."""
        units, fixed = self.totals(items)
        if units <= 0:
            return []
        shippers = self._repo.active_shippers()
        quotes = self._quote(shippers, units, fixed, within_limits=True)
        if not quotes:
            quotes = self._quote(shippers, units, fixed, within_limits=False)[:1]
        return quotes

    def _quote(
        self,
        shippers: Iterable[Shipper],
        units: Decimal,
        fixed: Decimal,
        within_limits: bool,
    ) -> List[ShippingQuote]:
        quotes = []
        for shipper in shippers:
            if within_limits and not shipper.handles(units):
                continue
            rate = unit_rate(shipper, units)
            if rate is None:
                continue
            quotes.append(
                ShippingQuote(
                    shipper_id=shipper.pk,
                    shipper_name=shipper.name,
                    units=units,
                    total=rate + fixed if shipper.use_fixed else rate,
                )
            )
        quotes.sort(key=lambda q: (q.total, q.shipper_name))
        return quotes

    def calculate(self, order: Any, items: List[OrderItem]) -> ShippingQuote:
        units, fixed = self.totals(items)
        quotes = self.quotes(items)
        if not quotes:
            return ShippingQuote(units=units, total=fixed)
        if order.shipper_id is not None:
            for quote in quotes:
                if quote.shipper_id == order.shipper_id:
                    return quote
            logger.info(
                "order.shipper_not_qualified",
                order_id=str(order.pk),
                shipper_id=str(order.shipper_id),
                units=str(units),
            )
        return quotes[0]
