"""Django ORM implementation of the catalog repository.

Satisfies ``ICatalogRepository`` using Django's QuerySet API.
Missing records are returned as ``None``; the Service Layer decides
how to translate a missing entity into an API response.

Products, quantity tiers and sale candidates are read through the tag
cache (``modules.core.cache``) and additionally memoised in an identity
map owned by this repository instance.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from modules.catalog.models import (
    Category,
    OptionValue,
    Product,
    ProductVariant,
    QuantityDiscount,
    Sale,
    make_option_key,
)
from modules.catalog.repositories.interfaces import ICatalogRepository
from modules.core.cache import SALES_TAG, cached, product_tag

logger = structlog.get_logger(__name__)

SALES_CACHE_TIMEOUT = 300


class CatalogDjangoRepository(ICatalogRepository):
    """Concrete catalog repository backed by Django ORM."""

    def __init__(self) -> None:
        self._products: Dict[str, Optional[Product]] = {}
        self._tiers: Dict[str, List[QuantityDiscount]] = {}

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Product]:
        """Retrieve a live product by primary key.

        Returns ``None`` for non-existent, deleted or malformed IDs.
        """
        key = str(id)
        if key not in self._products:
            self._products[key] = cached(
                product_tag(key), "product", lambda: self._load_product(id)
            )
        return self._products[key]

    @staticmethod
    def _load_product(id: Any) -> Optional[Product]:
        try:
            return Product.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        queryset = Product.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.save()
        self._products.pop(str(entity.pk), None)
        logger.info("product.saved", product_id=str(entity.pk), sku=entity.sku)
        return entity

    @transaction.atomic
    def delete(self, id: Any) -> bool:
        product = self.get_by_id(id)
        if not product:
            return False
        product.delete()
        self._products.pop(str(id), None)
        logger.info("product.soft_deleted", product_id=str(id))
        return True

    def get_by_sku(self, sku: str) -> Optional[Product]:
        return Product.objects.alive().filter(sku=sku.strip().upper()).first()

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def get_variant(self, variant_id: Any) -> Optional[ProductVariant]:
        try:
            return (
                ProductVariant.objects.alive()
                .select_related("product")
                .filter(id=variant_id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def variants_for(self, product_id: Any) -> List[ProductVariant]:
        return list(
            ProductVariant.objects.alive()
            .filter(product_id=product_id)
            .prefetch_related("option_values__group")
        )

    def find_variant(
        self, product_id: Any, option_value_ids: Iterable[Any]
    ) -> Optional[ProductVariant]:
        """Exact-cardinality match on the variant's option set.

        A variant matches when it carries every supplied value and no
        other: it must be neither a subset nor a superset.
        Disabled variants never match.
        """
        ids = {str(ov_id) for ov_id in option_value_ids}
        if not ids:
            return None
        try:
            return (
                ProductVariant.objects.alive()
                .filter(product_id=product_id, enabled=True)
                .annotate(
                    total_options=Count("option_values", distinct=True),
                    matched_options=Count(
                        "option_values",
                        filter=Q(option_values__in=ids),
                        distinct=True,
                    ),
                )
                .filter(total_options=len(ids), matched_options=len(ids))
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def variant_key_exists(self, product_id: Any, option_key: str) -> bool:
        return ProductVariant.objects.filter(
            product_id=product_id, option_key=option_key
        ).exists()

    @transaction.atomic
    def save_variant(
        self, variant: ProductVariant, option_values: Sequence[OptionValue]
    ) -> ProductVariant:
        variant.option_key = make_option_key(ov.pk for ov in option_values)
        variant.save()
        variant.option_values.set(option_values)
        logger.info(
            "variant.saved",
            variant_id=str(variant.pk),
            product_id=str(variant.product_id),
            sku=variant.sku,
        )
        return variant

    @transaction.atomic
    def delete_variant(self, variant_id: Any) -> bool:
        variant = self.get_variant(variant_id)
        if not variant:
            return False
        # Free the option set so the same combination can be generated again.
        variant.option_key = f"deleted:{variant.pk}"
        variant.deleted_at = timezone.now()
        variant.save(update_fields=["option_key", "deleted_at"])
        logger.info("variant.soft_deleted", variant_id=str(variant_id))
        return True

    # ------------------------------------------------------------------
    # Options, tiers and sales
    # ------------------------------------------------------------------

    def option_values(self, product_id: Any, ids: Iterable[Any]) -> List[OptionValue]:
        ids = [str(ov_id) for ov_id in ids]
        if not ids:
            return []
        try:
            return list(
                OptionValue.objects.select_related("group").filter(
                    product_id=product_id, id__in=ids, enabled=True
                )
            )
        except (ValueError, ValidationError):
            return []

    def qty_discounts(self, product_id: Any) -> List[QuantityDiscount]:
        key = str(product_id)
        if key not in self._tiers:
            self._tiers[key] = cached(
                product_tag(key),
                "qty_discounts",
                lambda: list(
                    QuantityDiscount.objects.filter(product_id=product_id).order_by(
                        "min_qty"
                    )
                ),
            )
        return self._tiers[key]

    def sale_candidates(self, product: Product) -> Tuple[List[Sale], List[List[Sale]]]:
        return cached(
            SALES_TAG,
            f"product:{product.pk}",
            lambda: self._load_sale_candidates(product),
            timeout=SALES_CACHE_TIMEOUT,
        )

    @staticmethod
    def _load_sale_candidates(product: Product) -> Tuple[List[Sale], List[List[Sale]]]:
        now = timezone.now()
        unexpired = Sale.objects.filter(end__gt=now).order_by("start")
        product_sales = list(unexpired.filter(product_id=product.pk))

        levels: List[List[Sale]] = []
        seen = set()
        frontier: List[Category] = list(product.categories.all())
        while frontier:
            ids = [cat.pk for cat in frontier if cat.pk not in seen]
            if not ids:
                break
            seen.update(ids)
            levels.append(list(unexpired.filter(category_id__in=ids)))
            frontier = list(
                Category.objects.filter(children__in=ids).exclude(pk__in=seen).distinct()
            )
        return product_sales, levels
