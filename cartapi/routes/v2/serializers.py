"""Response shapes for the v2 API."""
from decimal import Decimal

from flask import current_app

from cartapi.services.pricing import to_money


def money(value) -> str:
    return str(to_money(value if value is not None else Decimal("0")))


def item_payload(item) -> dict:
    return {
        "item_key": item.item_key,
        "id": item.variation_id or item.product_id,
        "product_id": item.product_id,
        "variation_id": item.variation_id,
        "name": item.name,
        "slug": item.slug,
        "price": money(item.price),
        "quantity": {
            "value": item.quantity,
            "min_purchase": item.min_purchase,
            "max_purchase": item.max_purchase,
        },
        "totals": {
            "subtotal": money(item.line_subtotal),
            "subtotal_tax": money(item.line_subtotal_tax),
            "total": money(item.line_total),
            "tax": money(item.line_total_tax),
        },
        "meta": {
            "sku": item.sku,
            "weight": item.weight,
            "variation": item.variation,
            "backordered": item.backordered,
        },
        "cart_item_data": item.cart_item_data,
        "featured_image": item.image_url,
    }


def totals_payload(totals) -> dict:
    return {
        "subtotal": money(totals.subtotal),
        "subtotal_tax": money(totals.subtotal_tax),
        "fee_total": money(totals.fee_total),
        "fee_tax": money(totals.fee_tax),
        "discount_total": money(totals.discount_total),
        "discount_tax": money(totals.discount_tax),
        "shipping_total": money(totals.shipping_total),
        "shipping_tax": money(totals.shipping_tax),
        "total": money(totals.total),
        "total_tax": money(totals.total_tax),
    }


def cart_payload(cart, packages=None) -> dict:
    cfg = current_app.config
    return {
        "cart_key": cart.cart_key,
        "cart_hash": cart.content_hash,
        "currency": {"currency_code": cfg.get("CURRENCY", "")},
        "customer": cart.customer.model_dump(),
        "items": [item_payload(item) for item in cart.items.values()],
        "item_count": cart.item_count(),
        "needs_shipping": any(item.needs_shipping for item in cart.items.values()),
        "coupons": [
            {"coupon": code, "saving": money(cart.totals.coupon_discounts.get(code))}
            for code in cart.applied_coupons
        ],
        "shipping": {
            "packages": packages or [],
            "chosen_shipping_methods": {str(k): v for k, v in cart.chosen_shipping_methods.items()},
        },
        "fees": [
            {"name": fee.name, "amount": money(fee.amount), "taxable": fee.taxable}
            for fee in cart.fees
        ],
        "totals": totals_payload(cart.totals),
        "removed_items": {key: item_payload(item) for key, item in cart.removed_items.items()},
        "expires_at": cart.expires_at,
        "notices": list(cart.notices),
    }
