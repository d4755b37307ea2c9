from models import db


def test_health_check(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok'}
    assert 'Cart-Key' not in response.headers


def test_metrics_endpoint(client):
    client.get('/v2/cart')
    response = client.get('/metrics')
    assert response.status_code == 200
    assert b'flask_http_request_total' in response.data


def test_apispec_lists_only_v2_routes(client):
    paths = client.get('/apispec.json').get_json().get('paths', {})
    assert all(path.startswith('/v2/') for path in paths)


def test_debug_app_creates_tables_on_startup(caplog):
    import logging

    from sqlalchemy import inspect

    from cartapi import create_app
    from cartapi.config import TestingConfig

    class DebugConfig(TestingConfig):
        DEBUG = True
        SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    with caplog.at_level(logging.INFO):
        app = create_app(DebugConfig)
    assert 'Tables created' in caplog.text
    with app.app_context():
        assert 'carts' in inspect(db.engine).get_table_names()
    assert app.test_client().get('/health').status_code == 200
