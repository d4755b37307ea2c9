"""Versioned encoding of a cart for the ``cart_value`` column."""
import json
import logging

from pydantic import ValidationError

from cartapi.domain import Cart, CartItem, Customer
from cartapi.services.keys import canonical_attributes, generate_item_key

logger = logging.getLogger(__name__)

SCHEMA_NAME = "cart"
SCHEMA_VERSION = 1


class SerializationError(Exception):
    pass


def dumps(cart: Cart) -> str:
    document = {
        "schema": SCHEMA_NAME,
        "version": SCHEMA_VERSION,
        "cart": cart.model_dump(mode="json"),
    }
    return json.dumps(document, separators=(",", ":"))


def loads(value: str) -> Cart:
    try:
        document = json.loads(value)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"cart value is not valid JSON: {e}") from e
    if not isinstance(document, dict) or document.get("schema") != SCHEMA_NAME:
        raise SerializationError("cart value has no schema tag")
    version = document.get("version")
    if version != SCHEMA_VERSION:
        raise SerializationError(f"unsupported cart schema version {version!r}")
    try:
        return Cart.model_validate(document["cart"])
    except ValidationError as e:
        raise SerializationError(str(e)) from e


def from_legacy_session(cart_key: str, value: str) -> Cart:
    """Build a cart from a legacy session row.

    Only content is carried over; prices and totals are recomputed by the caller.
    """
    try:
        session = json.loads(value)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"legacy session is not valid JSON: {e}") from e

    if not isinstance(session, dict):
        raise SerializationError("legacy session is not an object")
    contents = session.get("cart") or {}
    if isinstance(contents, str):
        try:
            contents = json.loads(contents or "{}")
        except ValueError as e:
            raise SerializationError(f"legacy cart contents are not valid JSON: {e}") from e
    if isinstance(contents, list):
        contents = dict(enumerate(contents))

    cart = Cart(cart_key=cart_key, source="woocommerce")
    for raw in contents.values():
        try:
            product_id = int(raw["product_id"])
            quantity = int(raw.get("quantity", 1))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed legacy line in session %s", cart_key)
            continue
        if quantity < 1:
            continue
        variation_id = int(raw.get("variation_id") or 0)
        variation = canonical_attributes(raw.get("variation"))
        item_data = raw.get("cart_item_data") or {}
        key = generate_item_key(product_id, variation_id, variation, item_data)
        if key in cart.items:
            cart.items[key].quantity += quantity
            continue
        cart.items[key] = CartItem(
            item_key=key,
            product_id=product_id,
            variation_id=variation_id,
            quantity=quantity,
            variation=variation,
            cart_item_data=item_data,
        )

    for code in session.get("applied_coupons") or []:
        code = str(code).strip().lower()
        if code and code not in cart.applied_coupons:
            cart.applied_coupons.append(code)

    methods = session.get("chosen_shipping_methods") or []
    if isinstance(methods, dict):
        methods = [methods[k] for k in sorted(methods, key=int)]
    cart.chosen_shipping_methods = {i: m for i, m in enumerate(methods) if m}

    customer = session.get("customer") or {}
    if isinstance(customer, dict):
        cart.customer = Customer(
            country=customer.get("shipping_country") or customer.get("country") or "",
            state=customer.get("shipping_state") or customer.get("state") or "",
            postcode=customer.get("shipping_postcode") or customer.get("postcode") or "",
            city=customer.get("shipping_city") or customer.get("city") or "",
        )
    return cart
