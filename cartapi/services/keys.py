"""Deterministic keys and hashes for carts and cart lines."""
import hashlib
import json
import secrets
from decimal import Decimal

GUEST_KEY_LENGTH = 42


def _default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


def canonical(value) -> str:
    """Serialize ``value`` with sorted mapping keys and no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=_default)


def attribute_name(name) -> str:
    """Normalize an attribute name to ``attribute_<name>`` in lower case."""
    key = str(name).strip().lower().replace(" ", "-")
    if not key.startswith("attribute_"):
        key = f"attribute_{key}"
    return key


def canonical_attributes(attributes) -> dict:
    result = {}
    for name, value in (attributes or {}).items():
        result[attribute_name(name)] = "" if value is None else str(value).strip()
    return dict(sorted(result.items()))


def stable_hash(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:32]


def generate_item_key(product_id, variation_id=0, variation=None, cart_item_data=None) -> str:
    parts = [
        str(int(product_id)),
        str(int(variation_id or 0)),
        canonical(canonical_attributes(variation)),
        canonical(cart_item_data or {}),
    ]
    return stable_hash("|".join(parts))


def generate_guest_key() -> str:
    # 21 random bytes -> 42 hex characters, the width of the cart_key column.
    return secrets.token_hex(GUEST_KEY_LENGTH // 2)


def is_user_key(cart_key) -> bool:
    return bool(cart_key) and str(cart_key).isdigit()


def content_hash(cart) -> str:
    """Hash of the customer-visible content: lines, coupons and fees."""
    lines = [
        {
            "key": key,
            "product_id": item.product_id,
            "variation_id": item.variation_id,
            "quantity": item.quantity,
            "variation": item.variation,
            "cart_item_data": item.cart_item_data,
        }
        for key, item in cart.items.items()
    ]
    fees = [
        {"name": fee.name, "amount": fee.amount, "taxable": fee.taxable, "tax_class": fee.tax_class}
        for fee in cart.fees
    ]
    return stable_hash(canonical({"items": lines, "coupons": list(cart.applied_coupons), "fees": fees}))
