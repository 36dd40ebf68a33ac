"""Stock ledger (Use Cases).

Business rules enforced here:
- Reservation is a single increment-with-check UPDATE when the product
  tracks stock under a DENY or HIDE oversell policy; under ALLOW, or
  without tracking, it always succeeds.
- A negative reservation releases stock; reserved never drops below 0.
- A purchase decrements onhand (floored at zero unless ALLOW) and the
  matching reservation.
- HIDE products with no stock are excluded from the catalog.
- Storage failures are logged and reported as a failed result, never
  raised to the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

import structlog
from django.db import DatabaseError, transaction
from django.utils import timezone

from modules.catalog.capabilities import is_purchasable, is_stockable
from modules.catalog.constants import OversellPolicy
from modules.core.cache import invalidate, product_tag
from modules.core.config import get_shop_settings
from modules.core.results import OperationResult

if TYPE_CHECKING:
    from modules.catalog.models import Product, ProductVariant
    from modules.inventory.models import StockRecord
    from modules.inventory.repositories.interfaces import IStockRepository

logger = structlog.get_logger(__name__)

INSUFFICIENT_STOCK = "insufficient_stock"
PERSISTENCE_ERROR = "persistence_error"


def _variant_id(variant: Optional[ProductVariant]) -> Any:
    return variant.pk if variant is not None else None


class StockLedger:
    """Application service for stock reservation and purchase."""

    def __init__(self, repository: IStockRepository) -> None:
        self._repo = repository

    # ------------------------------------------------------------------
    # Policy helpers
    # ------------------------------------------------------------------

    @staticmethod
    def enforces_stock(product: Product) -> bool:
        """True when reservations must not exceed onhand."""
        return is_stockable(product) and product.oversell != OversellPolicy.ALLOW

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def reserve(
        self, product: Product, variant: Optional[ProductVariant], qty: int
    ) -> OperationResult:
        """Hold *qty* units for a cart; a negative *qty* releases them."""
        if qty == 0:
            return OperationResult.success(reserved=0)
        if qty < 0:
            return self.release(product, variant, -qty)
        if not is_stockable(product):
            return OperationResult.success(reserved=qty)

        variant_id = _variant_id(variant)
        log = logger.bind(
            product_id=str(product.pk),
            variant_id=str(variant_id) if variant_id else None,
            quantity=qty,
        )
        try:
            with transaction.atomic():
                self._repo.ensure_record(product.pk, variant_id)
                if self.enforces_stock(product):
                    updated = self._repo.reserve_checked(product.pk, variant_id, qty)
                else:
                    updated = self._repo.reserve_unchecked(product.pk, variant_id, qty)
        except DatabaseError as exc:
            log.error("stock.reserve_failed", error=str(exc))
            return OperationResult.failure(PERSISTENCE_ERROR)

        if not updated:
            available = self.available(product, variant)
            log.warning("stock.insufficient", available=available)
            return OperationResult.failure(INSUFFICIENT_STOCK, available=available)

        log.info("stock.reserved")
        return OperationResult.success(reserved=qty)

    def release(
        self, product: Product, variant: Optional[ProductVariant], qty: int
    ) -> OperationResult:
        if qty <= 0:
            return OperationResult.success(released=0)
        variant_id = _variant_id(variant)
        try:
            with transaction.atomic():
                self._repo.release(product.pk, variant_id, qty)
        except DatabaseError as exc:
            logger.error(
                "stock.release_failed", product_id=str(product.pk), error=str(exc)
            )
            return OperationResult.failure(PERSISTENCE_ERROR)
        logger.info(
            "stock.released",
            product_id=str(product.pk),
            variant_id=str(variant_id) if variant_id else None,
            quantity=qty,
        )
        return OperationResult.success(released=qty)

    def record_purchase(
        self,
        product: Product,
        variant: Optional[ProductVariant],
        qty: int,
        reserved: bool = True,
    ) -> OperationResult:
        """Convert a paid quantity into an onhand decrement."""
        if qty <= 0 or not is_stockable(product):
            return OperationResult.success(purchased=0)
        variant_id = _variant_id(variant)
        log = logger.bind(
            product_id=str(product.pk),
            variant_id=str(variant_id) if variant_id else None,
            quantity=qty,
        )
        try:
            with transaction.atomic():
                self._repo.ensure_record(product.pk, variant_id)
                self._repo.purchase(
                    product.pk,
                    variant_id,
                    qty,
                    floor_onhand=product.oversell != OversellPolicy.ALLOW,
                    from_reserved=reserved,
                )
        except DatabaseError as exc:
            log.error("stock.purchase_failed", error=str(exc))
            return OperationResult.failure(PERSISTENCE_ERROR)

        invalidate(product_tag(product.pk))
        log.info("stock.purchased")
        return OperationResult.success(purchased=qty)

    def ensure_record(
        self, product: Product, variant: Optional[ProductVariant] = None, onhand: int = 0
    ) -> StockRecord:
        return self._repo.ensure_record(product.pk, _variant_id(variant), onhand=onhand)

    def delete_variant_record(self, variant: ProductVariant) -> None:
        self._repo.delete_for_variant(variant.pk)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def onhand(self, product: Product, variant: Optional[ProductVariant] = None) -> int:
        record = self._repo.get_record(product.pk, _variant_id(variant))
        return record.onhand if record is not None else 0

    def available(self, product: Product, variant: Optional[ProductVariant] = None) -> int:
        """Unreserved units; unlimited products report the order ceiling."""
        if not self.enforces_stock(product):
            return self._configured_max(product)
        record = self._repo.get_record(product.pk, _variant_id(variant))
        if record is None:
            return 0
        return max(record.available, 0)

    def is_in_stock(self, product: Product) -> bool:
        """Any variant with stock counts; otherwise the product-level record."""
        if not is_stockable(product):
            return True
        records = self._repo.records_for_product(product.pk)
        variant_records = [r for r in records if r.variant_id is not None]
        if variant_records:
            return any(r.onhand > 0 for r in variant_records)
        return any(r.onhand > 0 for r in records)

    def _configured_max(self, product: Product) -> int:
        return product.max_ord_qty or get_shop_settings().max_order_qty

    def max_order_quantity(
        self, product: Product, variant: Optional[ProductVariant] = None
    ) -> int:
        configured = self._configured_max(product)
        if not self.enforces_stock(product):
            return configured
        return max(min(self.onhand(product, variant), configured), 0)

    def validate_order_qty(
        self, product: Product, qty: int, variant: Optional[ProductVariant] = None
    ) -> int:
        """Clamp *qty* into [min, max]; 0 when nothing can be ordered."""
        maximum = self.max_order_quantity(product, variant)
        minimum = max(product.min_ord_qty, 1)
        if maximum < minimum:
            return 0
        return min(max(qty, minimum), maximum)

    def can_display(self, product: Product, at=None) -> bool:
        if not product.enabled or product.is_deleted:
            return False
        today = timezone.localdate(at) if at else timezone.localdate()
        if not product.is_available_on(today):
            return False
        if product.oversell == OversellPolicy.HIDE and not self.is_in_stock(product):
            return False
        return True

    def can_order(self, product: Product) -> bool:
        return (
            is_purchasable(product)
            and self.can_display(product)
            and (
                product.oversell == OversellPolicy.ALLOW or self.is_in_stock(product)
            )
        )

    def reorder_candidates(self) -> List[StockRecord]:
        return self._repo.reorder_candidates()
