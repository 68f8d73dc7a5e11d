import pytest

from conftest import register

from storefront.client.api import ApiClient, ApiError
from storefront.client.local_cart import LocalCart
from storefront.client.resolver import CartResolver


@pytest.fixture
def api(client):
    return ApiClient(http=client)


@pytest.fixture
def resolver(api, tmp_path):
    return CartResolver(api, LocalCart(tmp_path / "cart.json"))


def test_api_client_unwraps_envelope_and_raises(api, make_product):
    product = make_product("Gloves", price=30)
    assert api.get_product(product["id"])["name"] == "Gloves"

    with pytest.raises(ApiError) as excinfo:
        api.get_product(999)
    assert excinfo.value.status_code == 404
    assert excinfo.value.message == "Product not found"

    with pytest.raises(ApiError) as excinfo:
        api.get_cart()
    assert excinfo.value.status_code == 401


def test_anonymous_operations_stay_local(resolver, api, make_product):
    product = make_product(price=15, stock=2)

    assert resolver.authenticated is False
    assert resolver.add(product, 2) is True
    assert resolver.add(product, 1) is False
    assert resolver.get_cart()["item_count"] == 2


def test_login_migrates_local_cart_once(client, resolver, api, make_product):
    register(client)
    gloves = make_product("Gloves", price=20, stock=4)
    wraps = make_product("Wraps", price=5, stock=10)
    resolver.add(gloves, 2)
    resolver.add(wraps, 3)

    resolver.login("fighter@example.com", "secret123")

    assert resolver.authenticated is True
    assert resolver.local.items() == []
    cart = resolver.get_cart()
    assert {(i["id"], i["quantity"]) for i in cart["items"]} == {(gloves["id"], 2), (wraps["id"], 3)}
    assert cart["total"] == 55.0

    # Already authenticated: a new token does not migrate again
    assert resolver.set_token(api.token) is None


def test_migration_is_idempotent_across_retries(client, resolver, api, make_product):
    token = register(client)["access_token"]
    product = make_product(stock=10)
    resolver.add(product, 3)
    key = resolver.local.pending_merge_key()

    # Server applied the merge but the client never saw the answer
    api.token = token
    api.merge_cart([{"product_id": product["id"], "quantity": 3}], merge_key=key)
    api.logout()

    result = resolver.set_token(token)
    assert result["already_merged"] is True
    assert resolver.get_cart()["items"][0]["quantity"] == 3


def test_failed_migration_keeps_local_cart(client, resolver, api, make_product, monkeypatch):
    token = register(client)["access_token"]
    product = make_product(stock=10)
    resolver.add(product, 1)

    def broken_merge(*args, **kwargs):
        raise ApiError(503, "Service unavailable")

    monkeypatch.setattr(api, "merge_cart", broken_merge)
    with pytest.raises(ApiError):
        resolver.set_token(token)

    assert resolver.authenticated is False
    assert resolver.local.get_item(product["id"]).quantity == 1
    assert resolver.get_cart()["item_count"] == 1

    monkeypatch.undo()
    result = resolver.set_token(token)
    assert result["already_merged"] is False
    assert resolver.local.items() == []
    assert [(i["id"], i["quantity"]) for i in resolver.get_cart()["items"]] == [(product["id"], 1)]


def test_failed_migration_on_login_can_be_retried(client, resolver, api, make_product, monkeypatch):
    register(client)
    product = make_product(stock=10)
    resolver.add(product, 2)

    def broken_merge(*args, **kwargs):
        raise ApiError(503, "Service unavailable")

    monkeypatch.setattr(api, "merge_cart", broken_merge)
    with pytest.raises(ApiError):
        resolver.login("fighter@example.com", "secret123")
    assert resolver.authenticated is False

    monkeypatch.undo()
    resolver.login("fighter@example.com", "secret123")
    assert resolver.authenticated is True
    assert resolver.get_cart()["items"][0]["quantity"] == 2


def test_authenticated_operations_go_to_server(client, resolver, make_product):
    token = register(client)["access_token"]
    product = make_product(stock=3)
    resolver.set_token(token)

    assert resolver.add(product, 2) is True
    assert resolver.add(product, 2) is False
    assert resolver.update_quantity(product["id"], 3) is True
    assert resolver.get_cart()["item_count"] == 3
    assert resolver.remove(product["id"]) is True
    assert resolver.remove(product["id"]) is False

    resolver.add(product, 1)
    resolver.clear()
    assert resolver.get_cart()["items"] == []

    resolver.logout()
    assert resolver.authenticated is False
    assert resolver.local.items() == []
