def _guest_cart(client, seed):
    seed.product(42)
    resp = client.post("/v2/cart/add-item", json={"id": 42})
    return resp.headers["Cart-Key"]


def test_admin_reads_session(client, seed, login_as):
    cart_key = _guest_cart(client, seed)
    admin = login_as(1, role="administrator")
    resp = client.get(f"/v2/session/{cart_key}", headers=admin)
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["cart_key"] == cart_key
    assert data["in_session"] is True
    assert data["cart"]["items"][0]["product_id"] == 42


def test_manager_lists_sessions_and_stats(client, seed, login_as):
    _guest_cart(client, seed)
    manager = login_as(2, role="shop_manager")
    listing = client.get("/v2/sessions", headers=manager).get_json()["data"]
    assert listing["total"] == 1
    assert listing["page"] == 1
    assert listing["sessions"][0]["cart_source"] == "cocart"

    stats = client.get("/v2/sessions", query_string={"stats": "1"}, headers=manager).get_json()["data"]
    assert stats["in_session"] == 1
    assert stats["total"] == 1
    assert stats["active"] == 1


def test_admin_deletes_session(client, seed, login_as):
    cart_key = _guest_cart(client, seed)
    admin = login_as(1, role="administrator")
    assert client.delete(f"/v2/session/{cart_key}", headers=admin).status_code == 200
    assert client.get(f"/v2/session/{cart_key}", headers=admin).status_code == 404


def test_customer_cannot_read_sessions(client, seed, login_as):
    cart_key = _guest_cart(client, seed)
    resp = client.get(f"/v2/session/{cart_key}", headers=login_as(100))
    assert resp.status_code == 403
