"""Catalog DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``CreateProductDTO``: input for product creation.
- ``PriceQuoteDTO``: input for a unit-price quote.
- ``GenerateVariantsDTO``: option selections for variant generation.
- ``PriceBreakdown``: output of the pricing pipeline for one line.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateProductDTO(BaseModel):
    """Immutable DTO for product creation requests.

    Validates:
    - ``sku`` is a non-empty string (normalised to uppercase).
    - ``price`` is not negative; zero-priced items are legitimate.
    """

    model_config = ConfigDict(frozen=True)

    sku: str
    name: str
    price: Decimal
    description: str = ""
    kind: str = "catalog"
    prod_type: str = "physical"
    taxable: bool = True
    track_onhand: bool = False
    oversell: str = "allow"
    onhand: int = 0
    min_ord_qty: int = 1
    max_ord_qty: int = 0
    allow_price_override: bool = False
    allow_discount_code: bool = True
    shipping_amt: Decimal = Decimal("0")
    handling: Decimal = Decimal("0")

    @field_validator("sku")
    @classmethod
    def sku_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("SKU must not be empty.")
        return v.strip().upper()

    @field_validator("name")
    @classmethod
    def name_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Name must not be empty.")
        return v.strip()

    @field_validator("price", "shipping_amt", "handling")
    @classmethod
    def amount_not_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Amounts cannot be negative.")
        return v

    @field_validator("onhand", "max_ord_qty")
    @classmethod
    def count_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Quantities cannot be negative.")
        return v


class PriceQuoteDTO(BaseModel):
    """Immutable DTO for a price quote request."""

    model_config = ConfigDict(frozen=True)

    option_value_ids: Tuple[UUID, ...] = ()
    quantity: int = 1
    override_price: Optional[Decimal] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v

    @field_validator("override_price")
    @classmethod
    def override_not_negative(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v < 0:
            raise ValueError("Override price cannot be negative.")
        return v


class GenerateVariantsDTO(BaseModel):
    """Immutable DTO for variant generation.

    ``selections`` maps an option group id to the option value ids chosen
    for it.  Empty strings, ``"0"`` and ``None`` entries are the form's
    "nothing selected" placeholder and are skipped.
    """

    model_config = ConfigDict(frozen=True)

    selections: Dict[str, List[Optional[str]]]
    override_price: Optional[Decimal] = None
    weight: Decimal = Decimal("0")
    shipping_units: Decimal = Decimal("0")
    img_ids: Tuple[str, ...] = ()
    enabled: bool = True

    @field_validator("selections")
    @classmethod
    def selections_not_empty(
        cls, v: Dict[str, List[Optional[str]]]
    ) -> Dict[str, List[Optional[str]]]:
        if not v:
            raise ValueError("At least one option group must be selected.")
        return v


# ---------------------------------------------------------------------------
# Output DTO
# ---------------------------------------------------------------------------


class PriceBreakdown(BaseModel):
    """Every intermediate price of a line, rounded to currency precision."""

    model_config = ConfigDict(frozen=True)

    base_price: Decimal
    options_price: Decimal = Decimal("0")
    sale_price: Decimal
    qty_discount_pct: Decimal = Decimal("0")
    unit_price: Decimal
    sale_id: Optional[UUID] = None
    overridden: bool = False
