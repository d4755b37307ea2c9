"""Legacy v1 routes, answered by the v2 operations through the mappers."""
from flask import g, jsonify, request

from cartapi.context import cart_context
from cartapi.errors import EmptyCart, MissingItemKey
from cartapi.routes.common import mutate_cart, read_cart
from cartapi.routes.headers import no_cache
from cartapi.routes.v1.mappers import V1AddItemRequest, V1ItemRequest, v1_cart, v1_item, v1_totals
from cartapi.services.keys import generate_guest_key
from cartapi.utils import request_params, validate_schema
from cartapi.utils.auth import current_identity
from . import v1_bp


def _truthy(name):
    return str(request_params().get(name, "")).lower() in ("1", "true", "yes")


def _item_key():
    key = request.validated_data.cart_item_key
    if not key:
        raise MissingItemKey("Cart item key is required!")
    return key


@v1_bp.route("/get-cart", methods=["GET"])
@no_cache
def get_cart():
    return jsonify(v1_cart(read_cart()))


@v1_bp.route("/count-items", methods=["GET"])
@no_cache
def count_items():
    return jsonify(read_cart().item_count())


@v1_bp.route("/totals", methods=["GET"])
@no_cache
def totals():
    return jsonify(v1_totals(read_cart()))


@v1_bp.route("/add-item", methods=["POST"])
@no_cache
@validate_schema(V1AddItemRequest)
def add_item():
    data = request.validated_data
    line = data.to_v2()
    engine = cart_context().engine
    outcome = mutate_cart(
        lambda cart: engine.add_item(
            cart, line["id"], line["quantity"], line["variation_id"], line["variation"], line["item_data"]
        )
    )
    if data.return_cart or outcome.replayed:
        return jsonify(v1_cart(outcome.cart))
    return jsonify(v1_item(outcome.result))


@v1_bp.route("/item", methods=["GET"])
@no_cache
@validate_schema(V1ItemRequest)
def restore_item():
    item_key = _item_key()
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.restore_item(cart, item_key))
    if request.validated_data.return_cart:
        return jsonify(v1_cart(outcome.cart))
    return jsonify("Item has been restored to the cart.")


@v1_bp.route("/item", methods=["POST"])
@no_cache
@validate_schema(V1ItemRequest)
def update_item():
    item_key = _item_key()
    quantity = request.validated_data.quantity
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.update_item(cart, item_key, quantity))
    if request.validated_data.return_cart or outcome.replayed:
        return jsonify(v1_cart(outcome.cart))
    return jsonify(outcome.result["message"])


@v1_bp.route("/item", methods=["DELETE"])
@no_cache
@validate_schema(V1ItemRequest)
def remove_item():
    item_key = _item_key()
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.remove_item(cart, item_key))
    if request.validated_data.return_cart:
        return jsonify(v1_cart(outcome.cart))
    return jsonify("Item has been removed from cart.")


@v1_bp.route("/clear", methods=["POST"])
@no_cache
def clear():
    engine = cart_context().engine
    mutate_cart(engine.clear)
    return jsonify("Cart is cleared.")


@v1_bp.route("/calculate", methods=["POST"])
@no_cache
def calculate():
    engine = cart_context().engine

    def _calculate(cart):
        if cart.is_empty():
            raise EmptyCart()
        return engine.calculate(cart)

    outcome = mutate_cart(_calculate)
    if _truthy("return"):
        return jsonify(v1_totals(outcome.cart))
    return jsonify("Cart totals have been calculated.")


@v1_bp.route("/logout", methods=["POST"])
@no_cache
def logout():
    identity = current_identity()
    if identity.authenticated:
        g.cart_key = cart_context().identity.logout(identity.user.id)
    else:
        g.cart_key = generate_guest_key()
    return jsonify("Logged out.")
