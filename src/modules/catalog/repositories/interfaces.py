"""Catalog repository interface.

Extends ``IRepository[Product]`` with the look-ups needed by pricing
and variant resolution.  Implementations hold a per-instance identity
map, so one repository object is created per request or unit of work
and discarded with it.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Sequence, Tuple

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.catalog.models import (
        OptionValue,
        Product,
        ProductVariant,
        QuantityDiscount,
        Sale,
    )


class ICatalogRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate and its children."""

    @abstractmethod
    def get_by_sku(self, sku: str) -> Optional[Product]:
        """Retrieve a product by SKU."""

    @abstractmethod
    def get_variant(self, variant_id: Any) -> Optional[ProductVariant]:
        """Retrieve a live variant by primary key."""

    @abstractmethod
    def variants_for(self, product_id: Any) -> List[ProductVariant]:
        """Live variants of a product, with option values prefetched."""

    @abstractmethod
    def find_variant(
        self, product_id: Any, option_value_ids: Iterable[Any]
    ) -> Optional[ProductVariant]:
        """Variant whose option set is exactly *option_value_ids*."""

    @abstractmethod
    def variant_key_exists(self, product_id: Any, option_key: str) -> bool:
        """Whether a variant (live or deleted) already owns *option_key*."""

    @abstractmethod
    def save_variant(
        self, variant: ProductVariant, option_values: Sequence[OptionValue]
    ) -> ProductVariant:
        """Persist a variant together with its option value set."""

    @abstractmethod
    def delete_variant(self, variant_id: Any) -> bool:
        """Soft-delete a variant."""

    @abstractmethod
    def option_values(
        self, product_id: Any, ids: Iterable[Any]
    ) -> List[OptionValue]:
        """Enabled option values of a product among *ids*, groups joined."""

    @abstractmethod
    def qty_discounts(self, product_id: Any) -> List[QuantityDiscount]:
        """Quantity tiers in ascending ``min_qty`` order."""

    @abstractmethod
    def sale_candidates(
        self, product: Product
    ) -> Tuple[List[Sale], List[List[Sale]]]:
        """Unexpired sales for the product and for each category level.

        Returns ``(product_sales, category_levels)`` where each level is
        the sales of the categories at that distance from the product,
        nearest first.  Each list is ordered by ``start``.
        """
