"""Tax calculation output DTOs."""

from __future__ import annotations

from decimal import Decimal
from typing import Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ItemTax(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: UUID
    rate: Decimal
    tax: Decimal


class TaxResult(BaseModel):
    """Per-item taxes plus the order-level freight taxes, all rounded."""

    model_config = ConfigDict(frozen=True)

    items: Tuple[ItemTax, ...] = ()
    item_tax: Decimal = Decimal("0")
    shipping_tax: Decimal = Decimal("0")
    handling_tax: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    tax_shipping: bool = False
    tax_handling: bool = False

    @property
    def total(self) -> Decimal:
        return self.item_tax + self.shipping_tax + self.handling_tax
