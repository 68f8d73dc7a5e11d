import re

import pytest

from conftest import bearer, register

from storefront.routers.orders import generate_order_number, mask_card, shipping_cost, to_base36

SHIPPING = {
    "full_name": "Jake Thompson",
    "email": "jake@example.com",
    "phone": "+34 600 000 000",
    "address": "Calle Mayor 1",
    "city": "Madrid",
    "postal_code": "28013",
    "country": "Spain",
}
PAYMENT = {
    "card_number": "4242 4242 4242 4242",
    "expiry_date": "12/29",
    "cvv": "123",
    "card_name": "JAKE THOMPSON",
}


def checkout(client, headers, shipping=None, payment=None):
    body = {"shipping_info": shipping or SHIPPING, "payment_info": payment or PAYMENT}
    return client.post("/api/orders", json=body, headers=headers)


def test_order_helpers():
    assert to_base36(0) == "0"
    assert to_base36(35) == "Z"
    assert to_base36(36) == "10"
    assert re.fullmatch(r"KAI-[0-9A-Z]+-[0-9A-Z]{5}", generate_order_number())
    assert mask_card("4242424242421234") == "**** **** **** 1234"


@pytest.mark.parametrize("subtotal, expected", [(49.99, 4.99), (50.0, 0.0), (120.0, 0.0)])
def test_shipping_cost_threshold(subtotal, expected):
    assert shipping_cost(subtotal) == expected


def test_checkout_creates_order_and_empties_cart(client, user_headers, make_product):
    gloves = make_product("Gloves", price=20, stock=5)
    wraps = make_product("Wraps", price=4.5, stock=3)
    client.post("/api/cart/items", json={"product_id": gloves["id"], "quantity": 2}, headers=user_headers)
    client.post("/api/cart/items", json={"product_id": wraps["id"], "quantity": 1}, headers=user_headers)

    response = checkout(client, user_headers)
    assert response.status_code == 201, response.text
    order = response.json()["data"]
    assert order["number"].startswith("KAI-")
    assert order["status"] == "confirmed"
    assert order["subtotal"] == 44.5
    assert order["shipping"] == 4.99
    assert order["total"] == 49.49
    assert order["card_number"] == "**** **** **** 4242"
    assert "cvv" not in order
    assert sorted((i["name"], i["quantity"], i["price_at_purchase"]) for i in order["items"]) == [
        ("Gloves", 2, 20.0),
        ("Wraps", 1, 4.5),
    ]

    assert client.get(f"/api/products/{gloves['id']}").json()["data"]["stock"] == 3
    assert client.get(f"/api/products/{wraps['id']}").json()["data"]["stock"] == 2
    assert client.get("/api/cart", headers=user_headers).json()["data"]["items"] == []


def test_checkout_free_shipping(client, user_headers, make_product):
    product = make_product(price=25, stock=4)
    client.post("/api/cart/items", json={"product_id": product["id"], "quantity": 2}, headers=user_headers)

    order = checkout(client, user_headers).json()["data"]
    assert order["shipping"] == 0
    assert order["total"] == 50


def test_checkout_with_empty_cart(client, user_headers):
    response = checkout(client, user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Cart is empty"


def test_checkout_requires_auth(client):
    body = {"shipping_info": SHIPPING, "payment_info": PAYMENT}
    assert client.post("/api/orders", json=body).status_code == 401


@pytest.mark.parametrize(
    "field, value",
    [
        ("card_number", "4242 4242"),
        ("expiry_date", "13/29"),
        ("cvv", "12"),
        ("card_name", "   "),
    ],
)
def test_checkout_validates_payment(client, user_headers, field, value):
    response = checkout(client, user_headers, payment={**PAYMENT, field: value})
    assert response.status_code == 400
    assert any(d["field"].endswith(field) for d in response.json()["details"])


def test_checkout_rejects_when_stock_dropped(client, admin_headers, user_headers, make_product):
    product = make_product("Gloves", price=30, stock=5)
    client.post("/api/cart/items", json={"product_id": product["id"], "quantity": 4}, headers=user_headers)
    client.put(f"/api/products/{product['id']}", json={"stock": 2}, headers=admin_headers)

    response = checkout(client, user_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "Out of stock: Gloves"

    assert client.get(f"/api/products/{product['id']}").json()["data"]["stock"] == 2
    assert len(client.get("/api/cart", headers=user_headers).json()["data"]["items"]) == 1
    assert client.get("/api/orders", headers=user_headers).json()["data"] == []


def test_list_and_get_orders(client, user_headers, make_product):
    product = make_product(price=60, stock=10)
    numbers = []
    for _ in range(2):
        client.post("/api/cart/items", json={"product_id": product["id"], "quantity": 1}, headers=user_headers)
        numbers.append(checkout(client, user_headers).json()["data"]["number"])

    listed = client.get("/api/orders", headers=user_headers).json()["data"]
    assert [o["number"] for o in listed] == list(reversed(numbers))

    single = client.get(f"/api/orders/{numbers[0]}", headers=user_headers)
    assert single.status_code == 200
    assert single.json()["data"]["items"][0]["quantity"] == 1

    stranger = bearer(register(client, email="stranger@example.com")["access_token"])
    assert client.get(f"/api/orders/{numbers[0]}", headers=stranger).status_code == 404
    assert client.get("/api/orders", headers=stranger).json()["data"] == []


def test_checkout_refreshes_cached_product_list(client, user_headers, make_product, fake_cache):
    product = make_product(price=10, stock=5)
    assert client.get("/api/products").json()["data"][0]["stock"] == 5

    client.post("/api/cart/items", json={"product_id": product["id"], "quantity": 2}, headers=user_headers)
    assert checkout(client, user_headers).status_code == 201

    listed = client.get("/api/products").json()["data"]
    assert listed[0]["stock"] == 3
    assert listed[0]["version"] == 2
