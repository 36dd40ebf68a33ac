"""E2E tests of the cart flow using Playwright."""

from __future__ import annotations

import json

import pytest

pytestmark = [pytest.mark.e2e]

SHIP_TO = {
    "kind": "shipto",
    "name": "E2E Buyer",
    "address1": "1 Main St",
    "city": "Sacramento",
    "state": "CA",
    "zip": "95814",
    "country": "US",
}


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


def test_cart_to_checkout(api_request_context, auth_token, product_id):
    headers = _auth_headers(auth_token)

    cart_response = api_request_context.post(
        "/api/v1/orders/", data=json.dumps({}), headers=headers
    )
    assert cart_response.status == 201
    order_id = cart_response.json()["id"]

    item_response = api_request_context.post(
        f"/api/v1/orders/{order_id}/items/",
        data=json.dumps({"product_id": product_id, "quantity": 2}),
        headers=headers,
    )
    assert item_response.status == 201
    assert item_response.json()["items"][0]["quantity"] == 2

    address_response = api_request_context.put(
        f"/api/v1/orders/{order_id}/address/",
        data=json.dumps(SHIP_TO),
        headers=headers,
    )
    assert address_response.status == 200

    checkout_response = api_request_context.post(
        f"/api/v1/orders/{order_id}/checkout/",
        data=json.dumps({"gateway": "check"}),
        headers=headers,
    )
    assert checkout_response.status == 200
    assert checkout_response.json()["status"] == "pending"

    retrieve_response = api_request_context.get(
        f"/api/v1/orders/{order_id}/", headers=headers
    )
    assert retrieve_response.status == 200
    retrieved = retrieve_response.json()
    assert retrieved["items"][0]["product_id"] == product_id
    assert retrieved["status_history"][0]["new_status"] == "pending"


def test_anonymous_cart_needs_its_token(api_request_context):
    cart = api_request_context.post(
        "/api/v1/orders/",
        data=json.dumps({}),
        headers={"Content-Type": "application/json"},
    ).json()

    without = api_request_context.get(f"/api/v1/orders/{cart['id']}/")
    with_token = api_request_context.get(
        f"/api/v1/orders/{cart['id']}/", headers={"X-Order-Token": cart["token"]}
    )

    assert without.status == 404
    assert with_token.status == 200
