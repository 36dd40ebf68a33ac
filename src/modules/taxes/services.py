"""Tax calculation (Use Cases).

Business rules enforced here:
- Physical and virtual goods each have a configurable nexus: ``origin``
  taxes at the seller address, ``destination`` at the buyer address.
- For physical goods a shipper's declared tax location overrides the
  shop setting.
- The buyer address is the shipping address, falling back to the
  billing address, then to the geolocated country.
- When nexus locations are configured, only those jurisdictions are
  taxed.
- Whether shipping and handling are taxed depends on the buyer's
  jurisdiction, independent of the item rate.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional, Sequence, Tuple

import structlog

from modules.catalog.constants import ProductType
from modules.core.address import Address
from modules.core.config import get_shop_settings
from modules.core.currency import ZERO, Currency, to_decimal
from modules.taxes.constants import Nexus
from modules.taxes.dtos import ItemTax, TaxResult

if TYPE_CHECKING:
    from modules.taxes.repositories.interfaces import ITaxRateRepository

logger = structlog.get_logger(__name__)


class TaxCalculator:
    """Resolves tax rates for an order and prices its tax."""

    def __init__(self, repository: ITaxRateRepository) -> None:
        self._repo = repository
        self._settings = get_shop_settings().tax

    # ------------------------------------------------------------------
    # Address resolution
    # ------------------------------------------------------------------

    def origin_address(self) -> Address:
        origin = self._settings.origin
        return Address(country=origin.country, state=origin.state, zip=origin.zip)

    @staticmethod
    def buyer_address(order: Any) -> Address:
        for raw in (order.shipto, order.billto):
            address = Address.from_json(raw)
            if not address.is_empty:
                return address
        return Address(country=getattr(order, "geo_country", "") or "")

    def nexus_for(self, order: Any, prod_type: str) -> str:
        if prod_type == ProductType.PHYSICAL:
            shipper = getattr(order, "shipper", None)
            if shipper is not None and shipper.tax_location:
                return shipper.tax_location
            return self._settings.nexus_physical
        return self._settings.nexus_virtual

    def tax_address(self, order: Any, prod_type: str) -> Address:
        if self.nexus_for(order, prod_type) == Nexus.ORIGIN:
            return self.origin_address()
        return self.buyer_address(order)

    def in_nexus(self, address: Address) -> bool:
        if not self._settings.nexuses:
            return True
        for entry in self._settings.nexuses:
            parts = [part.strip() for part in entry.split(",")]
            if parts[0] != address.country:
                continue
            if len(parts) == 1 or not parts[1] or parts[1] == address.state:
                return True
        return False

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    def rate_for_address(self, address: Address) -> Decimal:
        if not self.in_nexus(address):
            return ZERO
        match = self._repo.best_match(address)
        if match is None:
            return to_decimal(self._settings.default_rate)
        return to_decimal(match.rate)

    def rate_for(self, order: Any, prod_type: str) -> Decimal:
        return self.rate_for_address(self.tax_address(order, prod_type))

    def freight_taxable(self, address: Address) -> Tuple[bool, bool]:
        """(shipping taxed, handling taxed) for the jurisdiction of *address*."""
        if not self.in_nexus(address):
            return False, False
        match = self._repo.best_match(address)
        if match is None:
            return False, False
        return match.freight_taxable, match.handling_taxable

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def calculate(self, order: Any, items: Optional[Sequence[Any]] = None) -> TaxResult:
        """Tax every taxable line and the taxable freight of *order*.

        Each line is taxed as ``rate * net_price * quantity`` and rounded;
        shipping and handling are taxed at the physical-goods rate when
        the buyer's jurisdiction taxes freight.
        """
        currency = Currency(order.currency)
        if items is None:
            items = list(order.items.all())

        rates = {}
        item_taxes = []
        item_total = ZERO
        for item in items:
            prod_type = item.product.prod_type
            if prod_type not in rates:
                rates[prod_type] = self.rate_for(order, prod_type)
            rate = rates[prod_type] if item.taxable else ZERO
            tax = currency.round(rate * to_decimal(item.net_price) * item.quantity)
            item_taxes.append(ItemTax(item_id=item.pk, rate=rate, tax=tax))
            item_total += tax

        physical_rate = rates.get(ProductType.PHYSICAL)
        if physical_rate is None:
            physical_rate = self.rate_for(order, ProductType.PHYSICAL)
        tax_shipping, tax_handling = self.freight_taxable(
            self.tax_address(order, ProductType.PHYSICAL)
        )
        shipping_tax = (
            currency.round(physical_rate * to_decimal(order.shipping))
            if tax_shipping
            else ZERO
        )
        handling_tax = (
            currency.round(physical_rate * to_decimal(order.handling))
            if tax_handling
            else ZERO
        )

        result = TaxResult(
            items=tuple(item_taxes),
            item_tax=item_total,
            shipping_tax=shipping_tax,
            handling_tax=handling_tax,
            tax_rate=physical_rate,
            tax_shipping=tax_shipping,
            tax_handling=tax_handling,
        )
        logger.debug(
            "tax.calculated",
            order_id=str(order.pk),
            item_tax=str(item_total),
            freight_tax=str(shipping_tax + handling_tax),
        )
        return result
