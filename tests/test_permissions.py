from cartapi.auth.permissions import role_has_scope


def test_role_scopes():
    assert role_has_scope("administrator", "anything")
    assert role_has_scope("shop_manager", "view_sessions")
    assert not role_has_scope("shop_manager", "delete_sessions")
    assert not role_has_scope("customer", "view_sessions")
    assert not role_has_scope("unknown", "view_sessions")


def test_scope_allowed(client, login_as):
    hdr = login_as(200, role="shop_manager")
    r = client.get("/v2/sessions", headers=hdr)
    assert r.status_code == 200
    assert r.get_json()["data"]["total"] == 0


def test_scope_denied(client, login_as):
    hdr = login_as(201, role="customer")
    r = client.get("/v2/sessions", headers=hdr)
    assert r.status_code == 403
    assert r.get_json()["code"] == "Forbidden"


def test_guest_denied(client):
    assert client.get("/v2/sessions").status_code == 401


def test_delete_requires_administrator(client, login_as):
    manager = login_as(202, role="shop_manager")
    r = client.delete("/v2/session/abc", headers=manager)
    assert r.status_code == 403
    admin = login_as(203, role="administrator")
    r = client.delete("/v2/session/abc", headers=admin)
    assert r.status_code == 404
