"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``AddItemDTO``: a product, its chosen options and a quantity.
- ``SetStatusDTO``: administrative status change.
- ``RecordPaymentDTO``: one payment ledger entry.
- ``ShippingQuote``: what a shipper would charge for an order.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class AddItemDTO(BaseModel):
    """Immutable DTO for adding a product to a cart.

    ``custom_fields`` maps a text option's name to the buyer's text;
    ``override_price`` is honoured only for products that allow it.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int = 1
    option_value_ids: Tuple[UUID, ...] = ()
    custom_fields: Dict[str, str] = {}
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
            raise ValueError("Price cannot be negative.")
        return v

    @field_validator("custom_fields")
    @classmethod
    def drop_blank_fields(cls, v: Dict[str, str]) -> Dict[str, str]:
        return {
            name.strip(): text.strip()
            for name, text in v.items()
            if name and name.strip() and text and text.strip()
        }


class SetStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str
    notes: str = ""
    notify: bool = True
    force_notify: bool = False

    @field_validator("status")
    @classmethod
    def normalise_status(cls, v: str) -> str:
        return v.strip().lower()


class RecordPaymentDTO(BaseModel):
    """Immutable DTO for a payment ledger entry.

    A negative ``amount`` records a refund.
    """

    model_config = ConfigDict(frozen=True)

    amount: Decimal
    gateway: str
    ref_id: str = ""
    method: str = ""
    is_money: bool = True
    comment: str = ""

    @field_validator("gateway")
    @classmethod
    def gateway_must_not_be_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Gateway must not be empty.")
        return v.strip()


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class ShippingQuote(BaseModel):
    """Shipping charge for an order; ``shipper_id`` is ``None`` for the
    fixed-only charge used when no shipper has rates."""

    model_config = ConfigDict(frozen=True)

    shipper_id: Optional[UUID] = None
    shipper_name: str = ""
    units: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
