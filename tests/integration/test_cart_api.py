"""Integration tests for the cart endpoints of the Order API.

Covers:
- Cart creation via POST /api/v1/orders/ (anonymous and authenticated).
- Access control: token holders, owners and staff; everyone else gets 404.
- Item add / update / remove and stock conflicts (409).
- Discount code apply / remove; invalid codes answer 400 with messages.
- Address, shipper, shipping options, checkout and cancel-checkout.
- Merging an anonymous cart into the caller's cart.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from rest_framework.test import APIClient

from modules.discounts.models import DiscountCode
from modules.inventory.models import StockRecord
from modules.orders.constants import OrderStatus
from modules.orders.models import Order, Shipper, ShipperRate

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"

SHIP_TO = {
    "kind": "shipto",
    "name": "Ada Buyer",
    "address1": "1 Main St",
    "city": "Sacramento",
    "state": "CA",
    "zip": "95814",
    "country": "US",
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def anon_cart(api_client):
    """An anonymous cart plus a client that presents its token."""
    response = api_client.post(ORDERS_URL, {}, format="json")
    assert response.status_code == 201
    data = response.json()
    api_client.credentials(HTTP_X_ORDER_TOKEN=data["token"])
    return api_client, data


@pytest.fixture()
def buyer_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def stocked(make_product):
    return make_product(onhand=3, price=Decimal("20.00"))


def _url(cart: dict, suffix: str = "") -> str:
    return f"{ORDERS_URL}{cart['id']}/{suffix}"


def _add(client, cart, product, quantity=1, **extra):
    payload = {"product_id": str(product.pk), "quantity": quantity, **extra}
    return client.post(_url(cart, "items/"), payload, format="json")


# ---------------------------------------------------------------------------
# Create / access
# ---------------------------------------------------------------------------


class TestCreateCart:
    def test_anonymous_cart(self, api_client):
        response = api_client.post(
            ORDERS_URL, {"buyer_email": "ada@example.com"}, format="json"
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == OrderStatus.CART
        assert data["owner_id"] is None
        assert data["currency"] == "USD"
        assert len(data["token"]) == 13
        assert data["order_number"].startswith("ORD-")
        assert data["status_history"][0]["new_status"] == OrderStatus.CART

    def test_authenticated_cart_is_owned(self, buyer_client, user):
        response = buyer_client.post(ORDERS_URL, {}, format="json")
        assert response.status_code == 201
        assert response.json()["owner_id"] == user.pk

    def test_currency_can_be_chosen(self, api_client):
        response = api_client.post(ORDERS_URL, {"currency": "eur"}, format="json")
        assert response.json()["currency"] == "EUR"


class TestAccess:
    def test_token_header_grants_access(self, anon_cart):
        client, cart = anon_cart
        assert client.get(_url(cart)).status_code == 200

    def test_token_query_parameter_grants_access(self, anon_cart):
        _, cart = anon_cart
        response = APIClient().get(_url(cart), {"token": cart["token"]})
        assert response.status_code == 200

    def test_without_token_reads_as_missing(self, anon_cart):
        _, cart = anon_cart
        response = APIClient().get(_url(cart))
        assert response.status_code == 404
        assert response.json() == {"detail": "Order not found."}

    def test_other_users_cannot_see_owned_cart(self, buyer_client, other_user):
        cart = buyer_client.post(ORDERS_URL, {}, format="json").json()
        intruder = APIClient()
        intruder.force_authenticate(user=other_user)
        assert intruder.get(_url(cart)).status_code == 404

    def test_staff_can_see_any_cart(self, anon_cart, staff_user):
        _, cart = anon_cart
        staff = APIClient()
        staff.force_authenticate(user=staff_user)
        assert staff.get(_url(cart)).status_code == 200

    def test_malformed_id(self, api_client):
        assert api_client.get(f"{ORDERS_URL}not-a-uuid/").status_code == 404

    def test_delete_cart(self, anon_cart, stocked):
        client, cart = anon_cart
        _add(client, cart, stocked, quantity=2)

        response = client.delete(_url(cart))

        assert response.status_code == 204
        assert StockRecord.objects.get(product=stocked, variant=None).reserved == 0
        assert not Order.objects.alive().filter(pk=cart["id"]).exists()


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class TestItems:
    def test_add_item_prices_the_line(self, anon_cart, product):
        client, cart = anon_cart

        response = _add(client, cart, product, quantity=2)

        assert response.status_code == 201
        data = response.json()
        assert len(data["items"]) == 1
        line = data["items"][0]
        assert line["sku"] == "WIDGET"
        assert line["quantity"] == 2
        assert Decimal(line["price"]) == Decimal("20.00")
        assert Decimal(data["order_total"]) == Decimal("40.00")

    def test_unknown_product(self, anon_cart):
        client, cart = anon_cart
        response = client.post(
            _url(cart, "items/"),
            {"product_id": "00000000-0000-0000-0000-000000000000"},
            format="json",
        )
        assert response.status_code == 404

    def test_zero_quantity_is_rejected(self, anon_cart, product):
        client, cart = anon_cart
        assert _add(client, cart, product, quantity=0).status_code == 400

    def test_stock_conflict(self, anon_cart, stocked):
        client, cart = anon_cart
        _add(client, cart, stocked, quantity=3)

        second = APIClient()
        other = second.post(ORDERS_URL, {}, format="json").json()
        second.credentials(HTTP_X_ORDER_TOKEN=other["token"])
        response = _add(second, other, stocked)

        assert response.status_code == 409
        assert response.json()["available"] == 0

    def test_update_quantity(self, anon_cart, stocked):
        client, cart = anon_cart
        item_id = _add(client, cart, stocked).json()["items"][0]["id"]

        response = client.patch(
            _url(cart, f"items/{item_id}/"), {"quantity": 2}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["items"][0]["quantity"] == 2
        assert StockRecord.objects.get(product=stocked, variant=None).reserved == 2

    def test_remove_item(self, anon_cart, product):
        client, cart = anon_cart
        item_id = _add(client, cart, product).json()["items"][0]["id"]

        response = client.delete(_url(cart, f"items/{item_id}/"))

        assert response.status_code == 200
        assert response.json()["items"] == []
        assert Decimal(response.json()["order_total"]) == Decimal("0")

    def test_unknown_item(self, anon_cart):
        client, cart = anon_cart
        response = client.delete(
            _url(cart, "items/00000000-0000-0000-0000-000000000000/")
        )
        assert response.status_code == 404

    def test_clear(self, anon_cart, product, make_product):
        client, cart = anon_cart
        _add(client, cart, product)
        _add(client, cart, make_product())

        response = client.post(_url(cart, "clear/"))

        assert response.status_code == 200
        assert response.json()["items"] == []


# ---------------------------------------------------------------------------
# Discount codes
# ---------------------------------------------------------------------------


class TestDiscount:
    @pytest.fixture(autouse=True)
    def save10(self):
        return DiscountCode.objects.create(code="SAVE10", percent=Decimal("10"))

    def test_apply_and_remove(self, anon_cart, product):
        client, cart = anon_cart
        _add(client, cart, product, quantity=2)

        applied = client.post(_url(cart, "discount/"), {"code": "save10"}, format="json")
        assert applied.status_code == 200
        assert applied.json()["discount_code"] == "SAVE10"
        assert Decimal(applied.json()["order_total"]) == Decimal("36.00")

        removed = client.delete(_url(cart, "discount/"))
        assert removed.json()["discount_code"] == ""
        assert Decimal(removed.json()["order_total"]) == Decimal("40.00")

    def test_invalid_code_answers_400_with_messages(self, anon_cart, product):
        client, cart = anon_cart
        _add(client, cart, product)

        response = client.post(_url(cart, "discount/"), {"code": "NOPE"}, format="json")

        assert response.status_code == 400
        body = response.json()
        assert body["detail"] == "Invalid discount code."
        assert body["messages"]
        assert Order.objects.get(pk=cart["id"]).discount_code == ""


# ---------------------------------------------------------------------------
# Address, shipper, checkout
# ---------------------------------------------------------------------------


class TestCheckout:
    def test_address_is_stored(self, anon_cart):
        client, cart = anon_cart
        response = client.put(_url(cart, "address/"), SHIP_TO, format="json")
        assert response.status_code == 200
        assert response.json()["shipto"]["city"] == "Sacramento"

    def test_address_needs_a_country(self, anon_cart):
        client, cart = anon_cart
        payload = {key: value for key, value in SHIP_TO.items() if key != "country"}
        assert client.put(_url(cart, "address/"), payload, format="json").status_code == 400

    def test_shipper_selection(self, anon_cart):
        client, cart = anon_cart
        ground = Shipper.objects.create(name="Ground")

        response = client.put(
            _url(cart, "shipper/"), {"shipper_id": str(ground.pk)}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["shipper_id"] == str(ground.pk)

    def test_shipping_options(self, anon_cart, make_product):
        client, cart = anon_cart
        parcel = make_product(shipping_units=Decimal("3"))
        post = Shipper.objects.create(name="Post")
        ShipperRate.objects.create(shipper=post, units=Decimal("5"), rate=Decimal("4.50"))
        _add(client, cart, parcel)

        response = client.get(_url(cart, "shipping-options/"))

        assert response.status_code == 200
        assert response.json() == [
            {
                "shipper_id": str(post.pk),
                "shipper_name": "Post",
                "units": "3.0000",
                "total": "4.5000",
            }
        ]

    def test_shipping_options_need_the_token(self, anon_cart):
        _, cart = anon_cart
        response = APIClient().get(_url(cart, "shipping-options/"))
        assert response.status_code == 404

    def test_unknown_shipper(self, anon_cart):
        client, cart = anon_cart
        response = client.put(
            _url(cart, "shipper/"),
            {"shipper_id": "00000000-0000-0000-0000-000000000000"},
            format="json",
        )
        assert response.status_code == 404

    def test_empty_cart_cannot_check_out(self, anon_cart):
        client, cart = anon_cart
        response = client.post(_url(cart, "checkout/"), {"gateway": "check"}, format="json")
        assert response.status_code == 400

    def test_physical_goods_need_an_address(self, anon_cart, product):
        client, cart = anon_cart
        _add(client, cart, product)
        response = client.post(_url(cart, "checkout/"), {"gateway": "check"}, format="json")
        assert response.status_code == 400
        assert "address" in response.json()["detail"]

    def test_unknown_gateway(self, anon_cart, virtual_product):
        client, cart = anon_cart
        _add(client, cart, virtual_product)
        response = client.post(
            _url(cart, "checkout/"), {"gateway": "bitcoin"}, format="json"
        )
        assert response.status_code == 404

    def test_checkout_then_cancel(self, anon_cart, product):
        client, cart = anon_cart
        _add(client, cart, product)
        client.put(_url(cart, "address/"), SHIP_TO, format="json")

        checked_out = client.post(
            _url(cart, "checkout/"), {"gateway": "check"}, format="json"
        )
        assert checked_out.status_code == 200
        assert checked_out.json()["status"] == OrderStatus.PENDING

        canceled = client.post(
            _url(cart, "cancel-checkout/"), {"gateway": "check"}, format="json"
        )
        assert canceled.status_code == 200
        assert canceled.json()["status"] == OrderStatus.CART


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class TestMerge:
    def test_anonymous_cart_moves_into_owned_cart(
        self, anon_cart, buyer_client, product
    ):
        anon_client, anon = anon_cart
        _add(anon_client, anon, product, quantity=2)
        owned = buyer_client.post(ORDERS_URL, {}, format="json").json()

        response = buyer_client.post(
            _url(owned, "merge/"),
            {"cart_id": anon["id"], "token": anon["token"]},
            format="json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["items"][0]["quantity"] == 2
        assert Decimal(data["order_total"]) == Decimal("40.00")

    def test_wrong_token_reads_as_missing(self, anon_cart, buyer_client):
        _, anon = anon_cart
        owned = buyer_client.post(ORDERS_URL, {}, format="json").json()

        response = buyer_client.post(
            _url(owned, "merge/"),
            {"cart_id": anon["id"], "token": "0000000000000"},
            format="json",
        )

        assert response.status_code == 404

    def test_requires_authentication(self, anon_cart):
        client, cart = anon_cart
        response = client.post(
            _url(cart, "merge/"),
            {"cart_id": cart["id"], "token": cart["token"]},
            format="json",
        )
        assert response.status_code == 401
