"""Integration tests for all-or-nothing cart operations.

A rejected request must leave the cart, its lines and the stock ledger
exactly as they were.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from rest_framework.test import APIClient

from modules.discounts.models import DiscountCode
from modules.inventory.models import StockRecord
from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderItem

pytestmark = pytest.mark.integration


@pytest.fixture()
def anon_cart(api_client):
    cart = api_client.post("/api/v1/orders/", {}, format="json").json()
    api_client.credentials(HTTP_X_ORDER_TOKEN=cart["token"])
    return api_client, cart


@pytest.fixture()
def last_unit(make_product):
    return make_product(onhand=1, price=Decimal("5.00"))


def _add(client, cart, product, quantity=1):
    return client.post(
        f"/api/v1/orders/{cart['id']}/items/",
        {"product_id": str(product.pk), "quantity": quantity},
        format="json",
    )


class TestCartAtomicity:
    def test_stock_failure_leaves_cart_untouched(self, anon_cart, product, last_unit):
        client, cart = anon_cart
        _add(client, cart, product, quantity=2)

        rival = APIClient()
        rival_cart = rival.post("/api/v1/orders/", {}, format="json").json()
        rival.credentials(HTTP_X_ORDER_TOKEN=rival_cart["token"])
        assert _add(rival, rival_cart, last_unit).status_code == 201

        response = _add(client, cart, last_unit)

        assert response.status_code == 409
        assert OrderItem.objects.filter(order_id=cart["id"]).count() == 1
        assert Order.objects.get(pk=cart["id"]).order_total == Decimal("40.00")
        record = StockRecord.objects.get(product=last_unit, variant=None)
        assert (record.onhand, record.reserved) == (1, 1)

    def test_failed_checkout_keeps_status_and_code_count(self, anon_cart, product):
        client, cart = anon_cart
        code = DiscountCode.objects.create(code="SAVE10", percent=Decimal("10"))
        _add(client, cart, product)
        client.post(
            f"/api/v1/orders/{cart['id']}/discount/", {"code": "SAVE10"}, format="json"
        )

        # No shipping address for physical goods
        response = client.post(
            f"/api/v1/orders/{cart['id']}/checkout/", {"gateway": "check"}, format="json"
        )

        assert response.status_code == 400
        assert Order.objects.get(pk=cart["id"]).status == OrderStatus.CART
        code.refresh_from_db()
        assert code.use_count == 0
