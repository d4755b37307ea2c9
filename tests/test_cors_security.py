import importlib

import pytest


@pytest.fixture
def make_client(monkeypatch):
    """Build a fresh app whose CORS whitelist comes from the environment."""

    def _make(origins):
        monkeypatch.setenv("APP_ENV", "testing")
        monkeypatch.setenv("CORS_ALLOWED_ORIGINS", origins)
        import cartapi.config as config
        importlib.reload(config)
        from cartapi import create_app
        return create_app(config.get_config_class()).test_client()

    yield _make
    monkeypatch.undo()
    import cartapi.config as config
    importlib.reload(config)


def _preflight(client, origin, path="/v2/cart/add-item"):
    return client.open(
        path,
        method="OPTIONS",
        headers={
            "Origin": origin,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Cart-Key, Content-Type",
        },
    )


def test_whitelisted_storefront_may_send_cart_key(make_client):
    client = make_client("http://localhost:3000, https://shop.example.com")
    resp = _preflight(client, "https://shop.example.com")
    assert resp.status_code in (200, 204)
    assert resp.headers["Access-Control-Allow-Origin"] == "https://shop.example.com"
    assert resp.headers["Access-Control-Allow-Credentials"] == "true"
    allowed = resp.headers["Access-Control-Allow-Headers"].lower()
    assert "cart-key" in allowed


def test_unknown_origin_gets_no_cors_headers(make_client):
    client = make_client("https://shop.example.com")
    resp = _preflight(client, "http://evil.test")
    assert "Access-Control-Allow-Origin" not in resp.headers


def test_cart_headers_are_exposed_to_browsers(make_client):
    client = make_client("*")
    resp = client.get("/v2/cart", headers={"Origin": "http://any.test", "X-Request-ID": "abc-123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "abc-123"
    expose = resp.headers["Access-Control-Expose-Headers"]
    for header in ("X-Request-ID", "Cart-Key", "CoCart-Timestamp", "traceparent"):
        assert header in expose
    assert resp.headers["Cart-Key"]


def test_security_headers(make_client):
    resp = make_client("*").get("/health")
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"
    assert resp.headers["Referrer-Policy"] == "no-referrer"
