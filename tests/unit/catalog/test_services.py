"""Unit tests for ProductService.

Covers:
- create_product: SKU normalisation, duplicate SKUs, stock record creation.
- Visibility: disabled and HIDE-at-zero products read as missing.
- resolve_selection: variant-forming vs. priced option split.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from modules.catalog.constants import OversellPolicy
from modules.catalog.dtos import CreateProductDTO, GenerateVariantsDTO
from modules.catalog.exceptions import (
    InvalidOptionSelection,
    ProductAlreadyExists,
    ProductNotFound,
)
from modules.catalog.factory import build_product_service
from modules.inventory.models import StockRecord

pytestmark = pytest.mark.unit


@pytest.fixture()
def service():
    return build_product_service()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateProduct:
    def test_sku_is_normalised(self, service):
        product = service.create_product(
            CreateProductDTO(sku=" mug-1 ", name=" Mug ", price=Decimal("8.00"))
        )
        assert product.sku == "MUG-1"
        assert product.name == "Mug"

    def test_duplicate_sku(self, service):
        service.create_product(CreateProductDTO(sku="MUG", name="Mug", price=Decimal("8")))
        with pytest.raises(ProductAlreadyExists):
            service.create_product(
                CreateProductDTO(sku="mug", name="Other", price=Decimal("9"))
            )

    def test_tracked_product_gets_a_stock_record(self, service):
        product = service.create_product(
            CreateProductDTO(
                sku="LAMP", name="Lamp", price=Decimal("49"), track_onhand=True, onhand=7
            )
        )
        assert StockRecord.objects.get(product=product, variant=None).onhand == 7

    def test_untracked_product_has_no_stock_record(self, service):
        product = service.create_product(
            CreateProductDTO(sku="PDF", name="Guide", price=Decimal("0"))
        )
        assert not StockRecord.objects.filter(product=product).exists()

    @pytest.mark.parametrize(
        "fields",
        [
            {"sku": "  ", "name": "Blank", "price": "1"},
            {"sku": "NEG", "name": "Negative", "price": "-1"},
            {"sku": "NEG", "name": "Negative", "price": "1", "onhand": -2},
        ],
    )
    def test_invalid_input(self, fields):
        with pytest.raises(ValidationError):
            CreateProductDTO(**fields)


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


class TestVisibility:
    def test_hidden_at_zero_stock(self, service, make_product):
        hidden = make_product(onhand=0, oversell=OversellPolicy.HIDE)
        with pytest.raises(ProductNotFound):
            service.get_visible_product(hidden.pk)
        assert service.get_product(hidden.pk) == hidden

    def test_deny_at_zero_stock_is_still_shown(self, service, make_product):
        shown = make_product(onhand=0, oversell=OversellPolicy.DENY)
        assert service.get_visible_product(shown.pk) == shown

    def test_filter_visible(self, service, product, make_product):
        hidden = make_product(onhand=0, oversell=OversellPolicy.HIDE)
        assert service.filter_visible([product, hidden]) == [product]

    def test_missing_product(self, service):
        with pytest.raises(ProductNotFound):
            service.get_product("00000000-0000-0000-0000-000000000000")


# ---------------------------------------------------------------------------
# Option selection
# ---------------------------------------------------------------------------


class TestResolveSelection:
    def test_checkbox_options_are_priced_not_variant_forming(
        self, service, product, make_option
    ):
        red = make_option(product, "Color", "Red")
        wrap = make_option(product, "Gift wrap", "Yes", Decimal("3"), group_type="checkbox")
        service.generate_variants(
            product.pk, GenerateVariantsDTO(selections={str(red.group_id): [str(red.pk)]})
        )

        selection = service.resolve_selection(product, [red.pk, wrap.pk])

        assert selection.variant
        assert selection.variant.unwrap().product_id == product.pk
        assert selection.priced_options == [wrap]
        assert set(selection.options) == {red, wrap}

    def test_no_options(self, service, product):
        selection = service.resolve_selection(product, [])
        assert not selection.variant
        assert selection.options == []

    def test_foreign_option(self, service, product, make_product, make_option):
        foreign = make_option(make_product(), "Color", "Blue")
        with pytest.raises(InvalidOptionSelection):
            service.resolve_selection(product, [foreign.pk])
