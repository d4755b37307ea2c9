"""Coupon eligibility rules."""
from datetime import datetime, timezone

from cartapi.errors import CouponIneligible
from cartapi.services.pricing import coupon_applies_to, to_money
from cartapi.utils import clock


def items_subtotal(cart):
    return sum((to_money(item.price * item.quantity) for item in cart.items.values()), to_money(0))


def _utcnow():
    return datetime.fromtimestamp(clock.now(), tz=timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def check_eligibility(coupon, cart, coupons=None) -> None:
    """Raise CouponIneligible with a ``reason`` when ``coupon`` cannot apply to ``cart``.

    ``coupons`` maps the codes already applied to their definitions and is used
    for the individual-use rule.
    """
    code = coupon.code

    if coupon.date_expires is not None and _aware(coupon.date_expires) < _utcnow():
        raise CouponIneligible(f'Coupon "{code}" has expired.', reason="expired", coupon=code)

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise CouponIneligible(
            f'Coupon usage limit has been reached for "{code}".', reason="usage_limit", coupon=code
        )

    subtotal = items_subtotal(cart)
    if coupon.minimum_amount is not None and subtotal < coupon.minimum_amount:
        raise CouponIneligible(
            f'The minimum spend for coupon "{code}" is {to_money(coupon.minimum_amount)}.',
            reason="minimum_spend",
            coupon=code,
        )
    if coupon.maximum_amount is not None and coupon.maximum_amount > 0 and subtotal > coupon.maximum_amount:
        raise CouponIneligible(
            f'The maximum spend for coupon "{code}" is {to_money(coupon.maximum_amount)}.',
            reason="maximum_spend",
            coupon=code,
        )

    filtered = (
        coupon.product_ids
        or coupon.excluded_product_ids
        or coupon.product_categories
        or coupon.excluded_product_categories
    )
    if filtered and not any(coupon_applies_to(coupon, item) for item in cart.items.values()):
        by_category = coupon.product_categories or coupon.excluded_product_categories
        raise CouponIneligible(
            f'Sorry, coupon "{code}" is not applicable to the products in your cart.',
            reason="category_filter" if by_category and not coupon.product_ids else "product_filter",
            coupon=code,
        )

    for other_code, other in (coupons or {}).items():
        if other_code != code and other is not None and other.individual_use:
            raise CouponIneligible(
                f'Coupon "{other_code}" has already been applied and cannot be used in conjunction with other coupons.',
                reason="individual_use",
                coupon=code,
            )
