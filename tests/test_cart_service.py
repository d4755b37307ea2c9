import threading

import pytest

from cartapi import create_app
from cartapi.config import TestingConfig
from cartapi.context import cart_context
from cartapi.errors import InsufficientStock
from models import db
from models.product import Product


@pytest.fixture
def ctx(app, seed):
    seed.product(1, name="Mug")
    seed.product(2, name="Stocked", manage_stock=True, stock_quantity=1)
    return cart_context()


def test_missing_guest_key_gets_a_fresh_cart(ctx):
    cart = ctx.service.read("unknown-key")
    assert cart.cart_key != "unknown-key"
    assert cart.is_empty()
    assert ctx.store.load(cart.cart_key) is None


def test_read_does_not_persist(ctx):
    cart = ctx.service.read(None)
    assert ctx.store.load(cart.cart_key) is None


def test_user_key_is_kept(ctx):
    assert ctx.service.read("100").cart_key == "100"


def test_mutate_persists(ctx):
    outcome = ctx.service.mutate(None, lambda cart: ctx.engine.add_item(cart, 1, 2))
    stored = ctx.store.load(outcome.cart.cart_key)
    assert stored.items[outcome.result.item_key].quantity == 2
    assert stored.content_hash == outcome.cart.content_hash


def test_source_tag(ctx):
    outcome = ctx.service.mutate(None, lambda cart: None, source="woocommerce")
    assert outcome.cart.source == "woocommerce"
    outcome = ctx.service.mutate(None, lambda cart: None, source="kiosk")
    assert outcome.cart.source == "other"


def test_failed_operation_leaves_stored_cart_untouched(ctx):
    key = ctx.service.mutate(None, lambda cart: ctx.engine.add_item(cart, 2, 1)).cart.cart_key
    with pytest.raises(InsufficientStock):
        ctx.service.mutate(key, lambda cart: ctx.engine.add_item(cart, 2, 1))
    assert ctx.store.load(key).item_count() == 1


def test_replayed_request_applied_once(ctx):
    key = ctx.service.mutate(None, lambda cart: None).cart.cart_key
    add = lambda cart: ctx.engine.add_item(cart, 1, 1)  # noqa: E731
    first = ctx.service.mutate(key, add, request_id="req-1")
    second = ctx.service.mutate(key, add, request_id="req-1")
    assert not first.replayed
    assert second.replayed
    assert ctx.store.load(key).item_count() == 1


def test_parallel_adds_on_one_cart_are_serialized(tmp_path):
    config = type("ParallelConfig", (TestingConfig,), {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'carts.db'}",
    })
    app = create_app(config)
    with app.app_context():
        db.session.add(Product(id=1, name="Mug", price=5))
        db.session.commit()
        ctx = cart_context()
        key = ctx.service.mutate(None, lambda cart: None).cart.cart_key

    errors = []
    barrier = threading.Barrier(2)

    def worker(quantity):
        try:
            with app.app_context():
                barrier.wait()
                ctx.service.mutate(key, lambda cart: ctx.engine.add_item(cart, 1, quantity))
                db.session.remove()
        except Exception as e:  # surfaced through the errors list
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(q,)) for q in (2, 3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with app.app_context():
        assert ctx.store.load(key).item_count() == 5


def test_events_reach_observers_only_after_the_save(ctx, monkeypatch):
    from cartapi.errors import StorageUnavailable
    from cartapi.services.events import RecordingEventSink

    recorder = RecordingEventSink()
    monkeypatch.setattr(ctx.engine, "sink", recorder)

    def failing_save(cart):
        assert recorder.events == []
        raise StorageUnavailable()

    monkeypatch.setattr(ctx.store, "save", failing_save)
    with pytest.raises(StorageUnavailable):
        ctx.service.mutate(None, lambda cart: ctx.engine.add_item(cart, 1, 1))
    assert recorder.events == []

    monkeypatch.undo()
    monkeypatch.setattr(ctx.engine, "sink", recorder)
    ctx.service.mutate(None, lambda cart: ctx.engine.add_item(cart, 1, 1))
    assert "ItemAdded" in recorder.names()
