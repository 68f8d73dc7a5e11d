def test_products_by_category_embeds_category(client, make_category, make_product):
    electronics = make_category("Electronics", is_active=True)
    other = make_category("Other")
    phone = make_product("Phone", price=999.99, category_id=electronics["id"])
    make_product("Gloves", price=50, category_id=other["id"])

    response = client.get(f"/api/products/category/{electronics['id']}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data) == 1
    assert data[0]["id"] == phone["id"]
    assert data[0]["price"] == 999.99
    assert data[0]["category"] == {
        "id": electronics["id"],
        "name": "Electronics",
        "description": None,
        "is_active": True,
    }


def test_create_product_defaults(client, make_product):
    product = make_product("Rashguard", price=49.99)
    assert product["currency_type"] == "€"
    assert product["is_new"] is False
    assert product["is_top_sale"] is False
    assert product["is_limited"] is False
    assert product["version"] == 1


def test_create_product_rejects_unknown_category_and_bad_values(client, admin_headers):
    base = {"name": "Gloves", "price": 10, "cover": "x.jpg", "category_id": 999}
    assert client.post("/api/products", json=base, headers=admin_headers).status_code == 400
    negative = client.post("/api/products", json={**base, "stock": -1}, headers=admin_headers)
    assert negative.status_code == 400


def test_product_writes_require_admin(client, user_headers, make_product):
    product = make_product()
    assert client.put(f"/api/products/{product['id']}", json={"price": 1}, headers=user_headers).status_code == 403
    assert client.delete(f"/api/products/{product['id']}").status_code == 401


def test_list_sort_and_search(client, make_product):
    make_product("Cheap Shorts", price=20, description="light")
    make_product("Pro Gloves", price=90, description="leather gloves")
    make_product("Mid Rashguard", price=45)

    newest_first = client.get("/api/products").json()["data"]
    assert [p["name"] for p in newest_first] == ["Mid Rashguard", "Pro Gloves", "Cheap Shorts"]

    ascending = client.get("/api/products", params={"sort_by_price": "asc"}).json()["data"]
    assert [p["price"] for p in ascending] == [20, 45, 90]

    assert client.get("/api/products", params={"sort_by_price": "up"}).status_code == 400

    found = client.get("/api/products/search", params={"q": "GLOVES"}).json()["data"]
    assert [p["name"] for p in found] == ["Pro Gloves"]


def test_get_product_includes_drops(client, admin_headers, make_product, make_drop):
    product = make_product()
    drop = make_drop()
    client.post(f"/api/drops/{drop['id']}/products", json={"product_id": product["id"], "drop_price": 7.5}, headers=admin_headers)

    data = client.get(f"/api/products/{product['id']}").json()["data"]
    assert data["category"]["name"] == "Boxing Gloves"
    assert data["drop_products"][0]["drop"]["name"] == "Samurai Spirit"
    assert data["drop_products"][0]["drop_price"] == 7.5

    assert client.get("/api/products/999").status_code == 404


def test_update_and_delete_product(client, admin_headers, make_product):
    product = make_product(stock=3)

    updated = client.put(f"/api/products/{product['id']}", json={"stock": 8, "is_new": True}, headers=admin_headers)
    assert updated.status_code == 200
    data = updated.json()["data"]
    assert data["stock"] == 8
    assert data["is_new"] is True
    assert data["version"] == 2

    assert client.delete(f"/api/products/{product['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/products/{product['id']}", headers=admin_headers).status_code == 404
