def test_active_drops_only_lists_active(client, make_drop):
    make_drop("Old Season", status="ENDED", release_date="2025-01-01T00:00:00Z")
    make_drop("Next Season", status="COMING_SOON", release_date="2027-01-01T00:00:00Z")
    active = make_drop("Samurai Spirit")

    all_drops = client.get("/api/drops").json()["data"]
    assert len(all_drops) == 3

    active_drops = client.get("/api/drops/active").json()["data"]
    assert [d["id"] for d in active_drops] == [active["id"]]
    assert active_drops[0]["status"] == "ACTIVE"


def test_create_drop_validation(client, admin_headers, user_headers, make_drop):
    drop = make_drop()
    assert drop["products"] == []
    assert drop["end_date"] is None

    payload = {
        "name": "Backwards",
        "description": "bad dates",
        "release_date": "2026-09-01T00:00:00Z",
        "end_date": "2026-08-01T00:00:00Z",
        "banner_image": "b.jpg",
        "primary_color": "#000",
        "secondary_color": "#111",
        "accent_color": "#222",
    }
    response = client.post("/api/drops", json=payload, headers=admin_headers)
    assert response.status_code == 400
    assert "end_date cannot be earlier than release_date" in response.json()["error"]

    bad_status = client.post("/api/drops", json={**payload, "end_date": None, "status": "LIVE"}, headers=admin_headers)
    assert bad_status.status_code == 400

    assert client.post("/api/drops", json={**payload, "end_date": None}, headers=user_headers).status_code == 403


def test_update_and_delete_drop(client, admin_headers, make_drop):
    drop = make_drop()

    response = client.put(f"/api/drops/{drop['id']}", json={"status": "ENDED"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "ENDED"

    bad_end = client.put(
        f"/api/drops/{drop['id']}", json={"end_date": "2020-01-01T00:00:00Z"}, headers=admin_headers
    )
    assert bad_end.status_code == 400

    assert client.delete(f"/api/drops/{drop['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/drops/{drop['id']}").status_code == 404
    assert client.put("/api/drops/999", json={"name": "Ghost"}, headers=admin_headers).status_code == 404


def test_drop_products_lifecycle(client, admin_headers, make_drop, make_product):
    drop = make_drop()
    product = make_product("Kimono", price=120)
    url = f"/api/drops/{drop['id']}/products"

    added = client.post(url, json={"product_id": product["id"], "drop_price": 99, "is_limited": True}, headers=admin_headers)
    assert added.status_code == 201
    assert added.json()["data"]["product"]["name"] == "Kimono"

    duplicate = client.post(url, json={"product_id": product["id"]}, headers=admin_headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Product already in drop"

    assert client.post(url, json={"product_id": 999}, headers=admin_headers).status_code == 404
    assert client.post("/api/drops/999/products", json={"product_id": product["id"]}, headers=admin_headers).status_code == 404

    listed = client.get(url).json()["data"]
    assert len(listed) == 1
    assert listed[0]["drop"]["id"] == drop["id"]
    assert listed[0]["drop_price"] == 99
    assert listed[0]["is_limited"] is True

    detail = client.get(f"/api/drops/{drop['id']}").json()["data"]
    assert [p["product_id"] for p in detail["products"]] == [product["id"]]

    removed = client.delete(f"{url}/{product['id']}", headers=admin_headers)
    assert removed.status_code == 200
    again = client.delete(f"{url}/{product['id']}", headers=admin_headers)
    assert again.status_code == 404
    assert again.json()["error"] == "Product not in drop"
