from decimal import Decimal

import pytest

from cartapi.errors import (
    CartFull,
    InvalidRequest,
    InvalidVariation,
    ItemNotInCart,
    ItemNotInRemovedBuffer,
    MissingItemKey,
    NotPurchasable,
    ProductNotFound,
)


def test_add_item_creates_line_with_snapshot(engine, catalog, new_cart):
    catalog.simple(42, name="Widget", price="12.50", sku="W-1", categories=["tools"])
    cart = new_cart()
    line = engine.add_item(cart, 42, 2)
    assert list(cart.items) == [line.item_key]
    assert line.quantity == 2
    assert line.name == "Widget"
    assert line.price == Decimal("12.50")
    assert line.sku == "W-1"
    assert line.line_subtotal == Decimal("25.00")
    assert cart.totals.subtotal == Decimal("25.00")


def test_adding_same_line_merges_quantities(engine, catalog, new_cart):
    catalog.simple(42)
    cart = new_cart()
    first = engine.add_item(cart, 42, 1)
    second = engine.add_item(cart, 42, 3)
    assert first.item_key == second.item_key
    assert len(cart.items) == 1
    assert cart.items[first.item_key].quantity == 4


def test_item_data_makes_a_separate_line(engine, catalog, new_cart):
    catalog.simple(42)
    cart = new_cart()
    engine.add_item(cart, 42, 1)
    engine.add_item(cart, 42, 1, cart_item_data={"engraving": "Ann"})
    assert len(cart.items) == 2
    assert cart.item_count() == 2


def test_unknown_product(engine, new_cart):
    with pytest.raises(ProductNotFound):
        engine.add_item(new_cart(), 404, 1)


def test_non_numeric_product(engine, new_cart):
    with pytest.raises(InvalidRequest):
        engine.add_item(new_cart(), "abc", 1)


@pytest.mark.parametrize("quantity", [0, -1, 1.5, "two"])
def test_bad_quantity(engine, catalog, new_cart, quantity):
    catalog.simple(42)
    with pytest.raises(InvalidRequest):
        engine.add_item(new_cart(), 42, quantity)


def test_unpriced_product_is_not_purchasable(engine, catalog, new_cart):
    catalog.simple(42, price=None)
    catalog.simple(43, purchasable=False)
    cart = new_cart()
    with pytest.raises(NotPurchasable):
        engine.add_item(cart, 42, 1)
    with pytest.raises(NotPurchasable):
        engine.add_item(cart, 43, 1)
    assert cart.is_empty()


# ------------------------------------------------------------------ variations

@pytest.fixture
def tshirt(catalog):
    catalog.variable(10, {"Color": ["red", "blue"]}, name="T-shirt")
    catalog.variation(11, 10, {"color": "red"}, price="15.00", name="T-shirt - red")
    catalog.variation(12, 10, {"color": "blue"}, price="16.00", name="T-shirt - blue")


def test_variable_product_resolves_variation(engine, tshirt, new_cart):
    cart = new_cart()
    line = engine.add_item(cart, 10, 1, variation={"Color": "Red"})
    assert line.product_id == 10
    assert line.variation_id == 11
    assert line.variation == {"attribute_color": "red"}
    assert line.price == Decimal("15.00")


def test_variation_id_and_attributes_share_a_line(engine, tshirt, new_cart):
    cart = new_cart()
    by_attributes = engine.add_item(cart, 10, 1, variation={"color": "red"})
    by_id = engine.add_item(cart, 11, 2)
    assert by_attributes.item_key == by_id.item_key
    assert cart.items[by_id.item_key].quantity == 3


def test_unmatched_attributes(engine, tshirt, new_cart):
    with pytest.raises(InvalidVariation):
        engine.add_item(new_cart(), 10, 1, variation={"color": "green"})
    with pytest.raises(InvalidVariation):
        engine.add_item(new_cart(), 10, 1)


def test_conflicting_attribute_for_variation_id(engine, tshirt, new_cart):
    with pytest.raises(InvalidVariation):
        engine.add_item(new_cart(), 10, 1, variation_id=11, variation={"color": "blue"})


def test_simple_product_with_variation_id(engine, catalog, new_cart):
    catalog.simple(42)
    with pytest.raises(InvalidVariation):
        engine.add_item(new_cart(), 42, 1, variation_id=7)


def test_any_value_attribute_requires_a_choice(engine, catalog, new_cart):
    catalog.variable(30, {"Size": ["S", "M"]})
    catalog.variation(31, 30, {"size": ""})
    cart = new_cart()
    with pytest.raises(InvalidVariation):
        engine.add_item(cart, 30, 1, variation_id=31)
    line = engine.add_item(cart, 30, 1, variation_id=31, variation={"size": "M"})
    assert line.variation == {"attribute_size": "M"}
    with pytest.raises(InvalidVariation):
        engine.add_item(cart, 30, 1, variation_id=31, variation={"size": "XL"})


# --------------------------------------------------------------------- grouped

def test_grouped_product_cannot_be_added_directly(engine, catalog, new_cart):
    catalog.simple(1)
    catalog.grouped(20, [1])
    with pytest.raises(NotPurchasable):
        engine.add_item(new_cart(), 20, 1)


def test_grouped_children_added_together(engine, catalog, new_cart):
    catalog.simple(1)
    catalog.simple(2)
    catalog.simple(3)
    catalog.grouped(20, [1, 2])
    cart = new_cart()
    lines = engine.add_items(cart, [{"id": 1, "quantity": 1}, {"id": 2, "quantity": 2}], grouped_id=20)
    assert [line.product_id for line in lines] == [1, 2]
    assert cart.item_count() == 3
    with pytest.raises(InvalidRequest):
        engine.add_items(cart, [{"id": 3, "quantity": 1}], grouped_id=20)


def test_batch_add_is_all_or_nothing(engine, catalog, sink, new_cart):
    catalog.simple(1)
    cart = new_cart()
    with pytest.raises(ProductNotFound):
        engine.add_items(cart, [{"id": 1, "quantity": 1}, {"id": 999, "quantity": 1}])
    assert cart.is_empty()
    assert "ItemAdded" not in sink.names()


def test_cart_full(engine, catalog, new_cart):
    for pid in range(1, 7):
        catalog.simple(pid)
    cart = new_cart()
    for pid in range(1, 6):
        engine.add_item(cart, pid, 1)
    with pytest.raises(CartFull):
        engine.add_item(cart, 6, 1)
    # Growing an existing line is still allowed.
    engine.add_item(cart, 1, 1)
    assert cart.item_count() == 6


# ------------------------------------------------------- update/remove/restore

def test_update_item_verdicts(engine, catalog, new_cart):
    catalog.simple(42, name="Widget")
    cart = new_cart()
    key = engine.add_item(cart, 42, 2).item_key

    up = engine.update_item(cart, key, 5)
    assert up["verdict"] == "increased"
    assert up["message"] == 'The quantity for "Widget" has increased to "5".'
    down = engine.update_item(cart, key, 1)
    assert down["verdict"] == "decreased"
    assert down["message"] == 'The quantity for "Widget" has decreased to "1".'
    same = engine.update_item(cart, key, 1)
    assert same["verdict"] == "unchanged"
    assert same["message"] == 'The quantity for "Widget" has not changed.'

    gone = engine.update_item(cart, key, 0)
    assert gone["verdict"] == "removed"
    assert cart.is_empty()
    assert key in cart.removed_items


def test_update_unknown_line(engine, new_cart):
    with pytest.raises(ItemNotInCart):
        engine.update_item(new_cart(), "nope", 1)
    with pytest.raises(MissingItemKey):
        engine.update_item(new_cart(), "", 1)


def test_remove_then_restore_round_trip(engine, catalog, new_cart):
    for pid in (1, 2, 3):
        catalog.simple(pid)
    cart = new_cart()
    keys = [engine.add_item(cart, pid, pid).item_key for pid in (1, 2, 3)]
    before = cart.model_dump()

    engine.remove_item(cart, keys[1])
    assert list(cart.items) == [keys[0], keys[2]]
    assert list(cart.removed_items) == [keys[1]]

    engine.restore_item(cart, keys[1])
    assert list(cart.items) == keys
    assert cart.model_dump() == before


def test_restore_merges_with_re_added_line(engine, catalog, new_cart):
    catalog.simple(1)
    cart = new_cart()
    key = engine.add_item(cart, 1, 2).item_key
    engine.remove_item(cart, key)
    engine.add_item(cart, 1, 1)
    engine.restore_item(cart, key)
    assert cart.items[key].quantity == 3
    assert not cart.removed_items


def test_restore_requires_removed_line(engine, new_cart):
    with pytest.raises(ItemNotInRemovedBuffer):
        engine.restore_item(new_cart(), "missing")
    with pytest.raises(MissingItemKey):
        engine.restore_item(new_cart(), "")


def test_clear_empties_cart(engine, catalog, new_cart):
    catalog.simple(1)
    catalog.coupon("five", amount=Decimal("5"))
    cart = new_cart()
    key = engine.add_item(cart, 1, 3).item_key
    engine.apply_coupon(cart, "five")
    engine.add_fee(cart, "Wrap", "1.00")
    engine.remove_item(cart, key)
    engine.clear(cart)
    assert cart.is_empty()
    assert not cart.removed_items
    assert cart.applied_coupons == []
    assert cart.fees == []
    assert cart.totals.total == Decimal("0.00")


# ------------------------------------------------------- shipping, fees, customer

def test_shipping_method_selection(engine, catalog, new_cart):
    catalog.simple(1)
    cart = new_cart()
    engine.add_item(cart, 1, 1)
    assert cart.totals.shipping_total == Decimal("5.00")
    engine.set_shipping_method(cart, "free_shipping")
    assert cart.chosen_shipping_methods == {0: "free_shipping"}
    assert cart.totals.shipping_total == Decimal("0.00")
    with pytest.raises(InvalidRequest):
        engine.set_shipping_method(cart, "teleport")
    with pytest.raises(InvalidRequest):
        engine.set_shipping_method(cart, "flat_rate", package_id=3)


def test_fee_replaced_by_name(engine, new_cart):
    cart = new_cart()
    engine.add_fee(cart, "Wrap", "1.00")
    engine.add_fee(cart, "Wrap", "2.50")
    assert [(f.name, f.amount) for f in cart.fees] == [("Wrap", Decimal("2.50"))]
    with pytest.raises(InvalidRequest):
        engine.add_fee(cart, "Bad", "abc")
    engine.remove_fees(cart)
    assert cart.fees == []


def test_customer_location_changes_tax(engine, catalog, new_cart, pricing):
    pricing.tax_rates = {"*": {"standard": 20}, "US": {"standard": 0}}
    catalog.simple(1, needs_shipping=False)
    cart = new_cart()
    engine.add_item(cart, 1, 1)
    assert cart.totals.total_tax == Decimal("2.00")
    engine.set_customer(cart, country="us", postcode=" 10001 ")
    assert cart.customer.country == "US"
    assert cart.customer.postcode == "10001"
    assert cart.totals.total_tax == Decimal("0.00")


# ---------------------------------------------------------- merge and refresh

def test_merge_reports_dropped_lines(engine, catalog, new_cart):
    catalog.simple(1)
    catalog.simple(2)
    catalog.simple(99, sold_individually=True)
    user = new_cart("100")
    engine.add_item(user, 2, 1)
    engine.add_item(user, 99, 1)
    guest = new_cart("guest")
    engine.add_item(guest, 1, 1)
    engine.add_item(guest, 99, 1)

    warnings = engine.merge(user, guest)
    assert {item.product_id: item.quantity for item in user.items.values()} == {1: 1, 2: 1, 99: 1}
    assert [w["code"] for w in warnings] == ["SoldIndividuallyExceeded"]
    assert warnings[0]["product_id"] == 99


def test_refresh_drops_unpurchasable_lines(engine, catalog, new_cart):
    catalog.simple(1, name="Gone soon")
    catalog.simple(2, price="3.00")
    cart = new_cart()
    engine.add_item(cart, 1, 1)
    engine.add_item(cart, 2, 1)
    catalog.simple(1, name="Gone soon", purchasable=False)
    catalog.simple(2, price="4.00")
    engine.rebuild(cart)
    assert [item.product_id for item in cart.items.values()] == [2]
    assert cart.totals.subtotal == Decimal("4.00")
    assert any("Gone soon" in notice for notice in cart.notices)


# ---------------------------------------------------------------------- events

def test_events_emitted(engine, catalog, sink, new_cart):
    catalog.simple(1)
    cart = new_cart()
    key = engine.add_item(cart, 1, 1).item_key
    engine.update_item(cart, key, 2)
    engine.remove_item(cart, key)
    engine.restore_item(cart, key)
    engine.clear(cart)
    names = [n for n in sink.names() if n != "TotalsRecalculated"]
    assert names == ["ItemAdded", "ItemQuantityChanged", "ItemRemoved", "ItemRestored", "CartCleared"]
    assert sink.names().count("TotalsRecalculated") == 5


def test_failing_sink_does_not_break_the_engine(catalog, pricing, new_cart):
    from cartapi.services.cart_engine import CartEngine
    from cartapi.services.events import CompositeEventSink, RecordingEventSink

    class Broken:
        def emit(self, event):
            raise RuntimeError("sink down")

    recorder = RecordingEventSink()
    engine = CartEngine(catalog, pricing, sink=CompositeEventSink(Broken(), recorder))
    catalog.simple(1)
    engine.add_item(new_cart(), 1, 1)
    assert "ItemAdded" in recorder.names()


def test_unknown_tax_mode_fails_at_construction(catalog, pricing):
    from cartapi.services.cart_engine import CartEngine

    with pytest.raises(ValueError, match='gross'):
        CartEngine(catalog, pricing, tax_mode='gross')
