"""Integration tests for the Product API endpoints.

Covers:
- Public list / retrieve; HIDE products at zero stock read as 404.
- Filters and search on GET /api/v1/products/.
- POST /api/v1/products/{id}/quote/ (options, quantity tiers, overrides).
- POST /api/v1/products/{id}/generate-variants/ is staff-only.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from rest_framework.test import APIClient

from modules.catalog.constants import OversellPolicy
from modules.catalog.models import QuantityDiscount

pytestmark = pytest.mark.integration

PRODUCTS_URL = "/api/v1/products/"


@pytest.fixture()
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Browse
# ---------------------------------------------------------------------------


class TestBrowse:
    def test_list_is_public(self, api_client, product):
        response = api_client.get(PRODUCTS_URL)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["results"][0]["sku"] == "WIDGET"
        assert Decimal(data["results"][0]["price"]) == Decimal("20.00")

    def test_hidden_product_is_not_listed(self, api_client, product, make_product):
        make_product(onhand=0, oversell=OversellPolicy.HIDE)

        response = api_client.get(PRODUCTS_URL)

        assert [row["sku"] for row in response.json()["results"]] == ["WIDGET"]

    def test_hidden_product_reads_as_missing(self, api_client, make_product):
        hidden = make_product(onhand=0, oversell=OversellPolicy.HIDE)
        response = api_client.get(f"{PRODUCTS_URL}{hidden.pk}/")
        assert response.status_code == 404
        assert response.json() == {"detail": "Product not found."}

    def test_disabled_product_is_not_listed(self, api_client, make_product):
        make_product(enabled=False)
        assert api_client.get(PRODUCTS_URL).json()["count"] == 0

    def test_retrieve_lists_options(self, api_client, product, make_option):
        make_option(product, "Color", "Red", Decimal("1.00"))

        response = api_client.get(f"{PRODUCTS_URL}{product.pk}/")

        assert response.status_code == 200
        options = response.json()["options"]
        assert [(o["group"], o["value"]) for o in options] == [("Color", "Red")]

    def test_filter_by_price(self, api_client, product, make_product):
        make_product(price=Decimal("5.00"))

        response = api_client.get(PRODUCTS_URL, {"min_price": "10"})

        assert [row["sku"] for row in response.json()["results"]] == ["WIDGET"]

    def test_search(self, api_client, product, make_product):
        make_product(name="Gadget")
        response = api_client.get(PRODUCTS_URL, {"search": "widg"})
        assert response.json()["count"] == 1


# ---------------------------------------------------------------------------
# Quote
# ---------------------------------------------------------------------------


class TestQuote:
    def test_plain_quote(self, api_client, product):
        response = api_client.post(f"{PRODUCTS_URL}{product.pk}/quote/", {}, format="json")

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["unit_price"]) == Decimal("20.00")
        assert data["overridden"] is False
        assert data["sale_id"] is None

    def test_priced_option_adds_to_unit_price(self, api_client, product, make_option):
        wrap = make_option(
            product, "Gift wrap", "Yes", Decimal("3.00"), group_type="checkbox"
        )

        response = api_client.post(
            f"{PRODUCTS_URL}{product.pk}/quote/",
            {"option_value_ids": [str(wrap.pk)]},
            format="json",
        )

        assert Decimal(response.json()["unit_price"]) == Decimal("23.00")

    def test_quantity_tier(self, api_client, product):
        QuantityDiscount.objects.create(product=product, min_qty=4, percent=Decimal("10"))

        response = api_client.post(
            f"{PRODUCTS_URL}{product.pk}/quote/", {"quantity": 4}, format="json"
        )

        data = response.json()
        assert Decimal(data["qty_discount_pct"]) == Decimal("10")
        assert Decimal(data["unit_price"]) == Decimal("18.00")

    def test_override_needs_permission_on_product(self, api_client, make_product):
        flexible = make_product(allow_price_override=True)
        fixed = make_product()

        allowed = api_client.post(
            f"{PRODUCTS_URL}{flexible.pk}/quote/", {"override_price": "4.50"}, format="json"
        )
        ignored = api_client.post(
            f"{PRODUCTS_URL}{fixed.pk}/quote/", {"override_price": "4.50"}, format="json"
        )

        assert allowed.json()["overridden"] is True
        assert Decimal(allowed.json()["unit_price"]) == Decimal("4.50")
        assert ignored.json()["overridden"] is False
        assert Decimal(ignored.json()["unit_price"]) == Decimal("10.00")

    def test_foreign_option_is_rejected(self, api_client, product, make_product, make_option):
        other = make_product()
        foreign = make_option(other, "Color", "Blue")

        response = api_client.post(
            f"{PRODUCTS_URL}{product.pk}/quote/",
            {"option_value_ids": [str(foreign.pk)]},
            format="json",
        )

        assert response.status_code == 400

    def test_unknown_product(self, api_client):
        response = api_client.post(
            f"{PRODUCTS_URL}00000000-0000-0000-0000-000000000000/quote/",
            {},
            format="json",
        )
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


class TestGenerateVariants:
    @pytest.fixture()
    def selections(self, product, make_option):
        red = make_option(product, "Color", "Red", sku="R")
        blue = make_option(product, "Color", "Blue", sku="B")
        large = make_option(product, "Size", "L", Decimal("2.00"), sku="L", orderby=1)
        return {
            str(red.group_id): [str(red.pk), str(blue.pk)],
            str(large.group_id): [str(large.pk)],
        }

    def test_staff_only(self, api_client, user, product, selections):
        api_client.force_authenticate(user=user)
        response = api_client.post(
            f"{PRODUCTS_URL}{product.pk}/generate-variants/",
            {"selections": selections},
            format="json",
        )
        assert response.status_code == 403

    def test_generates_matrix(self, staff_client, api_client, product, selections):
        response = staff_client.post(
            f"{PRODUCTS_URL}{product.pk}/generate-variants/",
            {"selections": selections},
            format="json",
        )

        assert response.status_code == 201
        assert len(response.json()) == 2

        listed = api_client.get(f"{PRODUCTS_URL}{product.pk}/variants/")
        assert listed.status_code == 200
        assert len(listed.json()) == 2

    def test_second_run_creates_nothing(self, staff_client, product, selections):
        url = f"{PRODUCTS_URL}{product.pk}/generate-variants/"
        staff_client.post(url, {"selections": selections}, format="json")

        again = staff_client.post(url, {"selections": selections}, format="json")

        assert again.status_code == 201
        assert again.json() == []
