"""Catalog service layer (Use Cases).

Orchestrates product creation, catalog visibility, price quotes and
variant generation, delegating persistence to the injected
``ICatalogRepository`` and stock questions to the ``StockLedger``.

Business rules enforced here:
- SKU must be unique.
- Products hidden by the HIDE oversell policy are not listed or shown.
- Selected option values split into the variant-forming set (resolved
  to a variant) and per-selection options (checkbox/text) priced on top.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, List, Optional

import structlog
from django.db import transaction

from modules.catalog.constants import NON_VARIANT_GROUP_TYPES
from modules.catalog.exceptions import (
    InvalidOptionSelection,
    ProductAlreadyExists,
    ProductNotFound,
)
from modules.catalog.models import OptionValue, Product, ProductVariant
from modules.catalog.pricing import PricingEngine
from modules.catalog.variants import VariantCatalog
from modules.core.results import Lookup

if TYPE_CHECKING:
    from modules.catalog.dtos import (
        CreateProductDTO,
        GenerateVariantsDTO,
        PriceBreakdown,
        PriceQuoteDTO,
    )
    from modules.catalog.repositories.interfaces import ICatalogRepository
    from modules.inventory.services import StockLedger

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Selection:
    """Buyer's option choice for one product, resolved."""

    variant: Lookup[ProductVariant]
    options: List[OptionValue] = field(default_factory=list)
    priced_options: List[OptionValue] = field(default_factory=list)


class ProductService:
    """Application service for catalog use-cases.

    Receives its collaborators via constructor injection (DIP).
    """

    def __init__(
        self,
        repository: ICatalogRepository,
        stock: StockLedger,
        pricing: Optional[PricingEngine] = None,
    ) -> None:
        self._repo = repository
        self._stock = stock
        self._pricing = pricing or PricingEngine(repository)
        self._variants = VariantCatalog(repository, stock)

    @property
    def variants(self) -> VariantCatalog:
        return self._variants

    @property
    def pricing(self) -> PricingEngine:
        return self._pricing

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_product(self, dto: CreateProductDTO) -> Product:
        """Create a product and its product-level stock record.

        Raises:
            ProductAlreadyExists: if SKU is already taken.
        """
        log = logger.bind(sku=dto.sku)

        if self._repo.get_by_sku(dto.sku):
            log.warning("product.duplicate_sku")
            raise ProductAlreadyExists(f"SKU '{dto.sku}' already registered.")

        product = Product(**dto.model_dump(exclude={"onhand"}))
        product = self._repo.save(product)
        if product.track_onhand:
            self._stock.ensure_record(product, None, onhand=dto.onhand)
        log.info("product.created", product_id=str(product.id))
        return product

    @transaction.atomic
    def generate_variants(
        self, product_id: Any, dto: GenerateVariantsDTO
    ) -> List[ProductVariant]:
        """Generate the variant matrix for the selected option values.

        Raises:
            ProductNotFound: if the product does not exist.
            InvalidOptionSelection: if a selected value is not the product's.
        """
        product = self.get_product(product_id)
        return self._variants.generate_variants(
            product,
            dto.selections,
            override_price=dto.override_price,
            weight=dto.weight,
            shipping_units=dto.shipping_units,
            img_ids=dto.img_ids,
            enabled=dto.enabled,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_product(self, product_id: Any) -> Product:
        """Retrieve a single live product by ID.

        Raises:
            ProductNotFound: if the product does not exist.
        """
        product = self._repo.get_by_id(product_id)
        if not product:
            raise ProductNotFound(f"Product {product_id} not found.")
        return product

    def get_visible_product(self, product_id: Any) -> Product:
        """Like ``get_product`` but hidden products read as missing."""
        product = self.get_product(product_id)
        if not self._stock.can_display(product):
            raise ProductNotFound(f"Product {product_id} not found.")
        return product

    def filter_visible(self, products: Iterable[Product]) -> List[Product]:
        """Drop products the catalog must not show (disabled, HIDE at zero)."""
        return [product for product in products if self._stock.can_display(product)]

    def resolve_selection(
        self, product: Product, option_value_ids: Iterable[Any]
    ) -> Selection:
        """Split the chosen option values and resolve the variant.

        Raises:
            InvalidOptionSelection: a value is not an option of *product*.
        """
        ids = [str(ov_id) for ov_id in option_value_ids if ov_id]
        options = list(self._variants.option_map(product, ids).values())
        if len(options) != len(set(ids)):
            raise InvalidOptionSelection(
                f"Unknown option selected for product {product.sku}."
            )

        variant_ids = [
            ov.pk for ov in options if ov.group.group_type not in NON_VARIANT_GROUP_TYPES
        ]
        priced = [
            ov for ov in options if ov.group.group_type in NON_VARIANT_GROUP_TYPES
        ]
        variant = (
            self._variants.resolve_variant(product.pk, variant_ids)
            if variant_ids
            else Lookup.missing()
        )
        return Selection(variant=variant, options=options, priced_options=priced)

    def quote(self, product_id: Any, dto: PriceQuoteDTO) -> PriceBreakdown:
        """Price one unit of a product for the given options and quantity.

        Raises:
            ProductNotFound: if the product does not exist or is hidden.
            InvalidOptionSelection: a value is not an option of the product.
        """
        product = self.get_visible_product(product_id)
        selection = self.resolve_selection(product, dto.option_value_ids)
        breakdown = self._pricing.line_price(
            product,
            selection.variant.value,
            selection.priced_options,
            dto.quantity,
            dto.override_price,
        )
        logger.info(
            "product.price_quoted",
            product_id=str(product.pk),
            quantity=dto.quantity,
            unit_price=str(breakdown.unit_price),
        )
        return breakdown
