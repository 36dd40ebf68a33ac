"""Variant generation and lookup.

Generation takes, per option group, the values selected for it and
creates one variant per element of the Cartesian product.  Checkbox and
text groups never form variants; their values are priced per selection.
An option set that already has a variant is skipped, so re-running a
generation never duplicates variants.

Lookup is by exact option set: a variant matches only when it carries
all of the requested values and nothing else.
"""

from __future__ import annotations

import itertools
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Sequence

import structlog
from django.db import transaction

from modules.catalog.constants import NON_VARIANT_GROUP_TYPES, UNSET_OPTION_VALUE
from modules.catalog.exceptions import InvalidOptionSelection, VariantNotFound
from modules.catalog.models import OptionValue, Product, ProductVariant, make_option_key
from modules.core.currency import ZERO, to_decimal
from modules.core.results import Lookup

if TYPE_CHECKING:
    from modules.catalog.repositories.interfaces import ICatalogRepository
    from modules.inventory.services import StockLedger

logger = structlog.get_logger(__name__)


def _is_unset(value: Any) -> bool:
    return value in (None, "", UNSET_OPTION_VALUE, str(UNSET_OPTION_VALUE))


def variant_price_delta(lookup: Lookup[ProductVariant]) -> Decimal:
    """Price delta of a resolved variant; a missing variant adds nothing."""
    return lookup.map(lambda v: to_decimal(v.price_delta), ZERO)


def variant_description(variant: ProductVariant) -> str:
    return variant.description()


class VariantCatalog:
    """Builds and resolves the variants of a product."""

    def __init__(self, repository: ICatalogRepository, stock: StockLedger) -> None:
        self._repo = repository
        self._stock = stock

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _selected_groups(
        self, product: Product, selections: Mapping[Any, Sequence[Any]]
    ) -> List[List[OptionValue]]:
        """Per-group value lists in group order, placeholders dropped."""
        wanted = {
            str(group_id): [str(v) for v in values if not _is_unset(v)]
            for group_id, values in selections.items()
        }
        all_ids = [v for values in wanted.values() for v in values]
        found = {str(ov.pk): ov for ov in self._repo.option_values(product.pk, all_ids)}

        unknown = sorted(set(all_ids) - set(found))
        if unknown:
            raise InvalidOptionSelection(
                f"Option values {', '.join(unknown)} do not belong to product "
                f"{product.sku}."
            )

        groups = []
        for group_id, ids in wanted.items():
            values = [found[v] for v in dict.fromkeys(ids)]
            if not values:
                continue
            group = values[0].group
            if any(str(ov.group_id) != group_id for ov in values):
                raise InvalidOptionSelection(
                    f"Selected values are not all members of group {group_id}."
                )
            if group.group_type in NON_VARIANT_GROUP_TYPES:
                continue
            groups.append(values)

        groups.sort(key=lambda values: (values[0].group.orderby, values[0].group.name))
        for values in groups:
            values.sort(key=lambda ov: (ov.orderby, ov.value))
        return groups

    @staticmethod
    def build_sku(product: Product, combination: Iterable[OptionValue]) -> str:
        fragments = "".join(ov.sku for ov in combination if ov.sku)
        return f"{product.sku}-{fragments}" if fragments else product.sku

    @transaction.atomic
    def generate_variants(
        self,
        product: Product,
        selections: Mapping[Any, Sequence[Any]],
        override_price=None,
        weight=ZERO,
        shipping_units=ZERO,
        img_ids: Sequence[str] = (),
        enabled: bool = True,
    ) -> List[ProductVariant]:
        """Create the missing variants for every combination of *selections*.

        Returns only the variants created by this call.

        Raises:
            InvalidOptionSelection: a value is not an option of the product,
                or was listed under a group it does not belong to.
        """
        log = logger.bind(product_id=str(product.pk), sku=product.sku)
        groups = self._selected_groups(product, selections)
        if not groups:
            log.info("variants.nothing_to_generate")
            return []

        created: List[ProductVariant] = []
        skipped = 0
        for combination in itertools.product(*groups):
            key = make_option_key(ov.pk for ov in combination)
            if self._repo.variant_key_exists(product.pk, key):
                skipped += 1
                continue

            if override_price is not None:
                price = to_decimal(override_price)
            else:
                price = sum((to_decimal(ov.price) for ov in combination), ZERO)

            variant = ProductVariant(
                product=product,
                sku=self.build_sku(product, combination),
                price=price,
                weight=to_decimal(weight),
                shipping_units=to_decimal(shipping_units),
                img_ids=list(img_ids),
                enabled=enabled,
            )
            variant = self._repo.save_variant(variant, list(combination))
            self._stock.ensure_record(product, variant)
            created.append(variant)

        log.info("variants.generated", created=len(created), skipped=skipped)
        return created

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve_variant(
        self, product_id: Any, option_value_ids: Iterable[Any]
    ) -> Lookup[ProductVariant]:
        ids = [ov_id for ov_id in option_value_ids if not _is_unset(ov_id)]
        variant = self._repo.find_variant(product_id, ids)
        if variant is None:
            logger.debug(
                "variants.unresolved",
                product_id=str(product_id),
                option_count=len(ids),
            )
            return Lookup.missing()
        return Lookup.found(variant)

    def variants_for(self, product_id: Any) -> List[ProductVariant]:
        return self._repo.variants_for(product_id)

    def get_variant(self, variant_id: Any) -> ProductVariant:
        variant = self._repo.get_variant(variant_id)
        if variant is None:
            raise VariantNotFound(f"Variant {variant_id} not found.")
        return variant

    @transaction.atomic
    def delete_variant(self, variant_id: Any) -> None:
        """Soft-delete a variant and drop its stock record.

        Raises:
            VariantNotFound: the variant does not exist.
        """
        variant = self.get_variant(variant_id)
        self._stock.delete_variant_record(variant)
        self._repo.delete_variant(variant.pk)
        logger.info(
            "variant.deleted",
            variant_id=str(variant_id),
            product_id=str(variant.product_id),
        )

    def option_map(
        self, product: Product, option_value_ids: Iterable[Any]
    ) -> Dict[str, OptionValue]:
        """Option values of *product* among *option_value_ids*, keyed by id."""
        ids = [ov_id for ov_id in option_value_ids if not _is_unset(ov_id)]
        return {str(ov.pk): ov for ov in self._repo.option_values(product.pk, ids)}
