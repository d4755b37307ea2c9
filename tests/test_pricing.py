from decimal import Decimal

import pytest

from cartapi.catalog.gateway import CouponView
from cartapi.domain import Cart, CartItem, Customer, Fee
from cartapi.services.pricing import PER_SUBTOTAL, PricingEngine, split_cents, to_money

RATES = {"*": {"standard": 20, "reduced-rate": 5}, "US": {"standard": 0}}
FLAT = {"flat_rate": {"label": "Flat rate", "cost": "5.00", "taxable": True}}


def _cart(*lines, **kwargs):
    cart = Cart(cart_key="k", **kwargs)
    for index, (price, qty, extra) in enumerate(lines):
        key = f"line{index}"
        cart.items[key] = CartItem(item_key=key, product_id=index + 1, quantity=qty, price=Decimal(price), **extra)
    return cart


def test_to_money_rounds_half_up():
    assert to_money("0.005") == Decimal("0.01")
    assert to_money("2.675") == Decimal("2.68")
    assert to_money(3) == Decimal("3.00")


def test_basic_totals_with_shipping():
    engine = PricingEngine(RATES, FLAT)
    totals = engine.recalculate(_cart(("10.00", 2, {}))).totals
    assert totals.subtotal == Decimal("20.00")
    assert totals.subtotal_tax == Decimal("4.00")
    assert totals.shipping_total == Decimal("5.00")
    assert totals.shipping_tax == Decimal("1.00")
    assert totals.total_tax == Decimal("5.00")
    assert totals.total == Decimal("30.00")


def test_virtual_items_need_no_shipping():
    engine = PricingEngine(RATES, FLAT)
    cart = _cart(("10.00", 1, {"needs_shipping": False}))
    assert engine.shipping_packages(cart) == []
    assert engine.recalculate(cart).totals.shipping_total == Decimal("0.00")


def test_rounding_modes_differ_by_a_cent():
    lines = [("0.33", 1, {"tax_class": "reduced-rate", "needs_shipping": False})] * 3
    per_line = PricingEngine(RATES, FLAT).recalculate(_cart(*lines)).totals
    per_subtotal = PricingEngine(RATES, FLAT, PER_SUBTOTAL).recalculate(_cart(*lines)).totals
    assert per_line.subtotal_tax == Decimal("0.06")
    assert per_subtotal.subtotal_tax == Decimal("0.05")


def test_unknown_rounding_mode():
    with pytest.raises(ValueError):
        PricingEngine(RATES, FLAT, "banker")


def test_country_rates_override_default():
    engine = PricingEngine(RATES, {})
    cart = _cart(("10.00", 1, {}), customer=Customer(country="US"))
    assert engine.recalculate(cart).totals.total_tax == Decimal("0.00")
    assert engine.recalculate(cart, customer_location=Customer(country="GB")).totals.total_tax == Decimal("2.00")


def test_coupons_apply_in_insertion_order():
    engine = PricingEngine(RATES, {})
    coupons = {
        "five": CouponView(code="five", discount_type="fixed_cart", amount=Decimal("5")),
        "ten": CouponView(code="ten", discount_type="percent", amount=Decimal("10")),
    }
    cart = _cart(("20.00", 1, {}), applied_coupons=["five", "ten"])
    result = engine.recalculate(cart, coupons=coupons)
    assert result.totals.coupon_discounts == {"five": Decimal("5.00"), "ten": Decimal("1.50")}
    assert result.totals.discount_total == Decimal("6.50")
    assert result.lines["line0"].line_total == Decimal("13.50")
    assert result.totals.total == Decimal("16.20")


def test_fixed_cart_split_across_lines():
    engine = PricingEngine(RATES, {})
    coupons = {"ten": CouponView(code="ten", discount_type="fixed_cart", amount=Decimal("10"))}
    cart = _cart(("10.00", 1, {}), ("20.00", 1, {}), applied_coupons=["ten"])
    lines = engine.recalculate(cart, coupons=coupons).lines
    assert lines["line0"].line_total == Decimal("6.67")
    assert lines["line1"].line_total == Decimal("13.33")


def test_fixed_cart_cents_never_overshoot_a_line():
    engine = PricingEngine(RATES, {})
    coupons = {"small": CouponView(code="small", discount_type="fixed_cart", amount=Decimal("0.04"))}
    cart = _cart(*[("1.00", 1, {}) for _ in range(6)], applied_coupons=["small"])
    result = engine.recalculate(cart, coupons=coupons)
    discounts = [line.line_subtotal - line.line_total for line in result.lines.values()]
    assert all(Decimal("0") <= d <= Decimal("0.01") for d in discounts)
    assert sum(discounts) == Decimal("0.04")
    assert result.totals.discount_total == Decimal("0.04")


def test_split_cents_gives_leftovers_to_largest_remainders():
    shares = split_cents(Decimal("1.00"), {"a": Decimal("1"), "b": Decimal("1"), "c": Decimal("1")})
    assert shares == {"a": Decimal("0.34"), "b": Decimal("0.33"), "c": Decimal("0.33")}


def test_fixed_product_discount_never_exceeds_line():
    engine = PricingEngine(RATES, {})
    coupons = {"big": CouponView(code="big", discount_type="fixed_product", amount=Decimal("50"))}
    cart = _cart(("10.00", 2, {}), applied_coupons=["big"])
    totals = engine.recalculate(cart, coupons=coupons).totals
    assert totals.discount_total == Decimal("20.00")
    assert totals.total == Decimal("0.00")


def test_taxable_fee():
    engine = PricingEngine(RATES, {})
    cart = _cart(("10.00", 1, {}))
    cart.fees.append(Fee(name="Gift wrap", amount=Decimal("2.00"), taxable=True))
    totals = engine.recalculate(cart).totals
    assert totals.fee_total == Decimal("2.00")
    assert totals.fee_tax == Decimal("0.40")
    assert totals.total == Decimal("14.40")


def test_inclusive_display():
    engine = PricingEngine(RATES, {})
    totals = engine.recalculate(_cart(("10.00", 1, {})), tax_mode="incl").totals
    assert totals.subtotal == Decimal("12.00")
    assert totals.total == Decimal("12.00")


def test_unknown_tax_mode_is_rejected():
    with pytest.raises(ValueError):
        PricingEngine(RATES, {}).recalculate(_cart(("10.00", 1, {})), tax_mode="gross")


def test_recalculate_is_pure():
    engine = PricingEngine(RATES, FLAT)
    coupons = {"ten": CouponView(code="ten", discount_type="percent", amount=Decimal("10"))}
    cart = _cart(("9.99", 3, {}), ("0.15", 7, {"tax_class": "reduced-rate"}), applied_coupons=["ten"])
    snapshot = cart.model_dump()
    first = engine.recalculate(cart, coupons=coupons)
    for _ in range(3):
        engine.recalculate(cart, coupons=coupons)
    assert engine.recalculate(cart, coupons=coupons) == first
    assert cart.model_dump() == snapshot
