"""Glue between views and the cart service shared by both API versions."""
from flask import g, request

from cartapi.context import cart_context
from cartapi.utils.auth import current_identity


def cart_source() -> str:
    return (request.headers.get("X-Cart-Source") or "cocart").strip().lower()


def client_request_id():
    rid = request.headers.get("X-Request-ID")
    return rid[:100] if rid else None


def read_cart():
    identity = current_identity()
    g.cart_key = identity.cart_key
    cart = cart_context().service.read(identity.cart_key, cart_source())
    g.cart_key = cart.cart_key
    return cart


def mutate_cart(operation):
    """Apply ``operation`` to the caller's cart and persist it."""
    identity = current_identity()
    g.cart_key = identity.cart_key
    outcome = cart_context().service.mutate(
        identity.cart_key, operation, request_id=client_request_id(), source=cart_source()
    )
    g.cart_key = outcome.cart.cart_key
    return outcome
