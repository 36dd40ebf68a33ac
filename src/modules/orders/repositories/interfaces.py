"""Order repository interface.

Extends ``IRepository[Order]`` with what the order services need: row
locking, the item collection, status history, the invoice sequence, the
status registry and the payment ledger.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Tuple

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import (
        Order,
        OrderItem,
        OrderItemOption,
        OrderStatusDefinition,
        OrderStatusHistory,
        Payment,
        Shipper,
    )


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes its OrderItem (and OrderItemOption) children,
    OrderStatusHistory records and Payment entries.
    """

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def get_by_token(self, token: str) -> Optional[Order]:
        """Retrieve a live order by its view-link token."""

    @abstractmethod
    def stale_carts(self, cutoff: datetime) -> List[Order]:
        """Carts not updated since *cutoff*."""

    # Items -------------------------------------------------------------

    @abstractmethod
    def items(self, order_id: Any) -> List[OrderItem]:
        """Items with product, variant and options loaded."""

    @abstractmethod
    def get_item(self, order_id: Any, item_id: Any) -> Optional[OrderItem]:
        """An item of *order_id*; ``None`` if it belongs elsewhere."""

    @abstractmethod
    def save_item(
        self, item: OrderItem, options: Optional[Iterable[OrderItemOption]] = None
    ) -> OrderItem:
        """Persist an item; *options*, when given, replace the current ones."""

    @abstractmethod
    def save_items(self, items: Iterable[OrderItem], fields: List[str]) -> None:
        """Bulk-update *fields* of existing items."""

    @abstractmethod
    def delete_item(self, item_id: Any) -> bool:
        """Remove an item and its options."""

    # Status ------------------------------------------------------------

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        old_status: str,
        new_status: str,
        user: Any = None,
        actor_name: str = "",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def assign_sequence(self, order_id: Any) -> int:
        """Insert the order's invoice sequence row, or read back the winner's."""

    @abstractmethod
    def status_definition(self, name: str) -> Optional[OrderStatusDefinition]:
        """Registry row for *name*, ``None`` when unregistered."""

    @abstractmethod
    def mark_affiliate_granted(self, order_id: Any) -> bool:
        """Flip ``aff_granted`` once; ``False`` if it was already set."""

    @abstractmethod
    def mark_stock_recorded(self, order_id: Any) -> bool:
        """Flip ``stock_recorded`` once; ``False`` if it was already set."""

    # Payments ----------------------------------------------------------

    @abstractmethod
    def add_payment(self, order_id: Any, **fields: Any) -> Tuple[Payment, bool]:
        """Append a ledger entry; a repeated (gateway, ref_id) returns the existing one."""

    @abstractmethod
    def total_paid(self, order_id: Any) -> Decimal:
        """Sum of the money entries of the ledger."""

    # Shippers ----------------------------------------------------------

    @abstractmethod
    def get_shipper(self, shipper_id: Any) -> Optional[Shipper]:
        """An enabled shipper, ``None`` otherwise."""

    @abstractmethod
    def active_shippers(self) -> List[Shipper]:
        """Enabled shippers with their rate rows loaded."""
