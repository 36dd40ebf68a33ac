"""Unit price computation.

Pipeline for one line, in order:
1. A buyer-supplied override price wins outright when the product kind
   or product flag permits it.
2. List price = base price + variant delta + selected option deltas
   (checkbox option deltas included).
3. The effective sale is applied.  A product sale beats any category
   sale; category sales are searched from the nearest category up to the
   root.  Within one scope the most recently started active sale wins.
   Percent sales discount the whole list price; amount sales take the
   amount off the base+variant part only.  Never below zero.
4. The quantity tier with the highest threshold not above the quantity
   is applied.
5. The result is rounded half-up to the currency precision.

The engine keeps the effective sale per product for its own lifetime;
create one engine per request or unit of work.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

import structlog
from django.utils import timezone

from modules.catalog.capabilities import allows_price_override
from modules.catalog.constants import SaleDiscountType
from modules.catalog.dtos import PriceBreakdown
from modules.core.currency import ZERO, Currency, percent_off, to_decimal
from modules.core.results import Lookup

if TYPE_CHECKING:
    from modules.catalog.models import OptionValue, Product, ProductVariant, Sale
    from modules.catalog.repositories.interfaces import ICatalogRepository

logger = structlog.get_logger(__name__)


def _latest_active(sales: List[Sale], at) -> Optional[Sale]:
    active = [sale for sale in sales if sale.is_active(at)]
    if not active:
        return None
    return max(active, key=lambda sale: sale.start)


class PricingEngine:
    """Composes list price, sale, quantity tier and rounding."""

    def __init__(
        self,
        repository: ICatalogRepository,
        currency: Currency | None = None,
        at=None,
    ) -> None:
        self._repo = repository
        self._currency = currency or Currency()
        self._at = at
        self._sales: Dict[str, Lookup[Sale]] = {}

    @property
    def currency(self) -> Currency:
        return self._currency

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def effective_sale(self, product: Product) -> Lookup[Sale]:
        key = str(product.pk)
        if key in self._sales:
            return self._sales[key]

        at = self._at or timezone.now()
        product_sales, category_levels = self._repo.sale_candidates(product)
        sale = _latest_active(product_sales, at)
        if sale is None:
            for level in category_levels:
                sale = _latest_active(level, at)
                if sale is not None:
                    break

        result = Lookup.found(sale) if sale is not None else Lookup.missing()
        logger.debug(
            "pricing.sale_resolved",
            product_id=key,
            sale_id=str(sale.pk) if sale is not None else None,
        )
        self._sales[key] = result
        return result

    def quantity_discount(self, product: Product, quantity: int) -> Decimal:
        """Percent off for *quantity*; tiers are scanned in ascending order."""
        percent = ZERO
        for tier in self._repo.qty_discounts(product.pk):
            if quantity < tier.min_qty:
                break
            percent = to_decimal(tier.percent)
        return percent

    @staticmethod
    def apply_sale(sale: Sale, item_price: Decimal, options_price: Decimal) -> Decimal:
        if sale.discount_type == SaleDiscountType.PERCENT:
            return percent_off(item_price + options_price, sale.amount)
        return max(item_price - to_decimal(sale.amount), ZERO) + options_price

    def apply_discount_pct(self, price, pct) -> Decimal:
        """Net price after a discount-code percentage, rounded."""
        return self._currency.round(percent_off(price, pct))

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def line_price(
        self,
        product: Product,
        variant: Optional[ProductVariant] = None,
        option_values: Iterable[OptionValue] = (),
        quantity: int = 1,
        override_price=None,
    ) -> PriceBreakdown:
        if override_price is not None and allows_price_override(product):
            price = self._currency.round(override_price)
            return PriceBreakdown(
                base_price=price,
                sale_price=price,
                unit_price=price,
                overridden=True,
            )

        item_price = to_decimal(product.price)
        if variant is not None:
            item_price += to_decimal(variant.price_delta)
        options_price = sum(
            (to_decimal(ov.price) for ov in option_values), ZERO
        )
        list_price = item_price + options_price

        sale = self.effective_sale(product)
        sale_price = sale.map(
            lambda s: self.apply_sale(s, item_price, options_price), list_price
        )

        qty_pct = self.quantity_discount(product, quantity)
        unit = percent_off(sale_price, qty_pct) if qty_pct else sale_price

        return PriceBreakdown(
            base_price=self._currency.round(list_price),
            options_price=self._currency.round(options_price),
            sale_price=self._currency.round(sale_price),
            qty_discount_pct=qty_pct,
            unit_price=self._currency.round(unit),
            sale_id=sale.map(lambda s: s.pk, None),
        )

    def unit_price(
        self,
        product: Product,
        variant: Optional[ProductVariant] = None,
        option_values: Iterable[OptionValue] = (),
        quantity: int = 1,
        override_price=None,
    ) -> Decimal:
        return self.line_price(
            product, variant, option_values, quantity, override_price
        ).unit_price
