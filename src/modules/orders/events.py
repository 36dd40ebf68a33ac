"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar, Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderEvent(DomainEvent):
    topic: ClassVar[str] = "orders"


@dataclass(frozen=True)
class CartCreated(OrderEvent):
    owner_id: Optional[int] = None


@dataclass(frozen=True)
class OrderStatusChanged(OrderEvent):
    old_status: str = ""
    new_status: str = ""
    actor: str = ""


@dataclass(frozen=True)
class OrderInvoiced(OrderEvent):
    order_seq: int = 0


@dataclass(frozen=True)
class PaymentRecorded(OrderEvent):
    amount: Decimal = Decimal("0")
    gateway: str = ""
    amount_paid: Decimal = Decimal("0")


@dataclass(frozen=True)
class DiscountCodeApplied(OrderEvent):
    code: str = ""
    percent: Decimal = Decimal("0")
