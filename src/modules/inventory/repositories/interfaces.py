"""Stock repository interface.

Every mutating method is a single conditional UPDATE and returns the
number of rows it changed; zero means the guard did not hold.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.inventory.models import StockRecord


class IStockRepository(IRepository["StockRecord"]):
    """Repository contract for stock records."""

    @abstractmethod
    def get_record(self, product_id: Any, variant_id: Any = None) -> Optional[StockRecord]:
        """Record for (product, variant); ``variant_id=None`` is product level."""

    @abstractmethod
    def ensure_record(
        self, product_id: Any, variant_id: Any = None, onhand: int = 0, reorder: int = 0
    ) -> StockRecord:
        """Return the record, creating it when missing."""

    @abstractmethod
    def records_for_product(self, product_id: Any) -> List[StockRecord]:
        """All records of a product, product level and per variant."""

    @abstractmethod
    def reserve_checked(self, product_id: Any, variant_id: Any, qty: int) -> int:
        """Add to ``reserved`` only if ``onhand - reserved >= qty``."""

    @abstractmethod
    def reserve_unchecked(self, product_id: Any, variant_id: Any, qty: int) -> int:
        """Add to ``reserved`` unconditionally."""

    @abstractmethod
    def release(self, product_id: Any, variant_id: Any, qty: int) -> int:
        """Subtract from ``reserved``, floored at zero."""

    @abstractmethod
    def purchase(
        self,
        product_id: Any,
        variant_id: Any,
        qty: int,
        floor_onhand: bool,
        from_reserved: bool,
    ) -> int:
        """Subtract from ``onhand`` (and ``reserved``) after a sale."""

    @abstractmethod
    def delete_for_variant(self, variant_id: Any) -> int:
        """Remove the record of a deleted variant."""

    @abstractmethod
    def reorder_candidates(self) -> List[StockRecord]:
        """Records whose onhand is at or below their reorder point."""
