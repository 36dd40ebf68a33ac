"""Django ORM implementation of the stock repository.

Counters are changed with ``F()`` expressions inside a single UPDATE
statement, so concurrent reservations from different carts cannot lose
updates or oversell a DENY/HIDE product.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import F, Q, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from modules.inventory.models import StockRecord
from modules.inventory.repositories.interfaces import IStockRepository

logger = structlog.get_logger(__name__)


def _record_filter(product_id: Any, variant_id: Any) -> Dict[str, Any]:
    if variant_id is None:
        return {"product_id": product_id, "variant__isnull": True}
    return {"product_id": product_id, "variant_id": variant_id}


class StockDjangoRepository(IStockRepository):
    """Concrete stock repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # IRepository contract
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[StockRecord]:
        try:
            return StockRecord.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[StockRecord]:
        queryset = StockRecord.objects.select_related("product", "variant")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def save(self, entity: StockRecord) -> StockRecord:
        entity.save()
        return entity

    def delete(self, id: Any) -> bool:
        deleted, _ = StockRecord.objects.filter(id=id).delete()
        return deleted > 0

    # ------------------------------------------------------------------
    # Look-ups
    # ------------------------------------------------------------------

    def get_record(self, product_id: Any, variant_id: Any = None) -> Optional[StockRecord]:
        return StockRecord.objects.filter(**_record_filter(product_id, variant_id)).first()

    def ensure_record(
        self, product_id: Any, variant_id: Any = None, onhand: int = 0, reorder: int = 0
    ) -> StockRecord:
        record = self.get_record(product_id, variant_id)
        if record is not None:
            return record
        try:
            with transaction.atomic():
                record = StockRecord.objects.create(
                    product_id=product_id,
                    variant_id=variant_id,
                    onhand=onhand,
                    reorder=reorder,
                )
        except IntegrityError:
            # Created concurrently by another request.
            record = self.get_record(product_id, variant_id)
        logger.debug(
            "stock.record_created",
            product_id=str(product_id),
            variant_id=str(variant_id) if variant_id else None,
        )
        return record

    def records_for_product(self, product_id: Any) -> List[StockRecord]:
        # Product-level rows plus rows of live, enabled variants.
        return list(
            StockRecord.objects.filter(product_id=product_id).filter(
                Q(variant__isnull=True)
                | Q(variant__deleted_at__isnull=True, variant__enabled=True)
            )
        )

    def reorder_candidates(self) -> List[StockRecord]:
        return list(
            StockRecord.objects.select_related("product", "variant")
            .filter(onhand__lte=F("reorder"), product__track_onhand=True)
            .order_by("product__sku")
        )

    # ------------------------------------------------------------------
    # Atomic counters
    # ------------------------------------------------------------------

    def reserve_checked(self, product_id: Any, variant_id: Any, qty: int) -> int:
        return StockRecord.objects.filter(
            onhand__gte=F("reserved") + qty,
            **_record_filter(product_id, variant_id),
        ).update(reserved=F("reserved") + qty, updated_at=timezone.now())

    def reserve_unchecked(self, product_id: Any, variant_id: Any, qty: int) -> int:
        return StockRecord.objects.filter(
            **_record_filter(product_id, variant_id)
        ).update(reserved=F("reserved") + qty, updated_at=timezone.now())

    def release(self, product_id: Any, variant_id: Any, qty: int) -> int:
        return StockRecord.objects.filter(
            **_record_filter(product_id, variant_id)
        ).update(
            reserved=Greatest(F("reserved") - qty, Value(0)), updated_at=timezone.now()
        )

    def purchase(
        self,
        product_id: Any,
        variant_id: Any,
        qty: int,
        floor_onhand: bool,
        from_reserved: bool,
    ) -> int:
        changes: Dict[str, Any] = {
            "updated_at": timezone.now(),
            "onhand": (
                Greatest(F("onhand") - qty, Value(0))
                if floor_onhand
                else F("onhand") - qty
            ),
        }
        if from_reserved:
            changes["reserved"] = Greatest(F("reserved") - qty, Value(0))
        return StockRecord.objects.filter(
            **_record_filter(product_id, variant_id)
        ).update(**changes)

    def delete_for_variant(self, variant_id: Any) -> int:
        deleted, _ = StockRecord.objects.filter(variant_id=variant_id).delete()
        return deleted
