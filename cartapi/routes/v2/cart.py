from flask import request

from cartapi.context import cart_context
from cartapi.errors import EmptyCart, ItemNotInCart, MissingItemKey
from cartapi.routes.common import mutate_cart, read_cart
from cartapi.routes.headers import no_cache
from cartapi.routes.v2.serializers import cart_payload, item_payload, totals_payload
from cartapi.schemas.cart import (
    AddItemRequest,
    AddItemsRequest,
    BulkUpdateRequest,
    CouponRequest,
    CustomerRequest,
    FeeRequest,
    ItemKeyRequest,
    QuantityRequest,
    ShippingRequest,
    UpdateItemRequest,
)
from cartapi.utils import ok, request_params, validate_schema
from . import v2_bp


def _cart_response(cart, message="success"):
    engine = cart_context().engine
    return ok(cart_payload(cart, engine.shipping_packages(cart)), message=message)


# ------------------- Read -------------------

@v2_bp.route("/cart", methods=["GET"])
@no_cache
def get_cart():
    return _cart_response(read_cart())


@v2_bp.route("/cart/items", methods=["GET"])
@no_cache
def get_items():
    cart = read_cart()
    return ok([item_payload(item) for item in cart.items.values()])


@v2_bp.route("/cart/items/count", methods=["GET"])
@no_cache
def count_items():
    cart = read_cart()
    params = request_params()
    if str(params.get("removed_items", "")).lower() in ("1", "true", "yes"):
        return ok(sum(item.quantity for item in cart.removed_items.values()))
    return ok(cart.item_count())


@v2_bp.route("/cart/totals", methods=["GET"])
@no_cache
def get_totals():
    return ok(totals_payload(read_cart().totals))


@v2_bp.route("/cart/item/<item_key>", methods=["GET"])
@no_cache
def get_item(item_key):
    cart = read_cart()
    item = cart.items.get(item_key)
    if item is None:
        raise ItemNotInCart(item_key=item_key)
    return ok(item_payload(item))


# ------------------- Items -------------------

@v2_bp.route("/cart/add-item", methods=["POST"])
@no_cache
@validate_schema(AddItemRequest)
def add_item():
    data = request.validated_data
    engine = cart_context().engine
    outcome = mutate_cart(
        lambda cart: engine.add_item(
            cart, data.id, data.quantity, data.variation_id, data.variation, data.item_data
        )
    )
    if outcome.replayed:
        return _cart_response(outcome.cart)
    if data.return_item:
        return ok(item_payload(outcome.result))
    return _cart_response(outcome.cart, message=f'"{outcome.result.name}" has been added to your cart.')


@v2_bp.route("/cart/add-items", methods=["POST"])
@no_cache
@validate_schema(AddItemsRequest)
def add_items():
    data = request.validated_data
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.add_items(cart, data.lines(), grouped_id=data.id))
    return _cart_response(outcome.cart)


def _update(item_key, quantity):
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.update_item(cart, item_key, quantity))
    message = outcome.result["message"] if outcome.result else "success"
    return _cart_response(outcome.cart, message=message)


def _remove(item_key):
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.remove_item(cart, item_key))
    if outcome.cart.is_empty():
        return _cart_response(outcome.cart, message="Item has been removed from cart. Cart is now empty.")
    return _cart_response(outcome.cart, message="Item has been removed from cart.")


@v2_bp.route("/cart/item/<item_key>", methods=["POST", "PUT"])
@no_cache
@validate_schema(QuantityRequest)
def update_item_by_key(item_key):
    return _update(item_key, request.validated_data.quantity)


@v2_bp.route("/cart/item/<item_key>", methods=["DELETE"])
@no_cache
def remove_item_by_key(item_key):
    return _remove(item_key)


@v2_bp.route("/cart/update-item", methods=["POST"])
@no_cache
@validate_schema(UpdateItemRequest)
def update_item():
    data = request.validated_data
    return _update(data.item_key, data.quantity)


@v2_bp.route("/cart/remove-item", methods=["POST", "DELETE"])
@no_cache
@validate_schema(ItemKeyRequest)
def remove_item():
    return _remove(request.validated_data.item_key)


@v2_bp.route("/cart/restore-item", methods=["POST", "PUT"])
@no_cache
@validate_schema(ItemKeyRequest)
def restore_item():
    item_key = request.validated_data.item_key
    if not item_key:
        raise MissingItemKey()
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.restore_item(cart, item_key))
    return _cart_response(outcome.cart, message="Item has been restored to the cart.")


@v2_bp.route("/cart/clear", methods=["POST"])
@no_cache
def clear_cart():
    engine = cart_context().engine
    outcome = mutate_cart(engine.clear)
    return _cart_response(outcome.cart, message="Cart is cleared.")


@v2_bp.route("/cart/calculate", methods=["POST"])
@no_cache
def calculate():
    engine = cart_context().engine

    def _calculate(cart):
        if cart.is_empty():
            raise EmptyCart()
        return engine.calculate(cart)

    outcome = mutate_cart(_calculate)
    if str(request_params().get("return_totals", "")).lower() in ("1", "true", "yes"):
        return ok(totals_payload(outcome.cart.totals))
    return _cart_response(outcome.cart, message="Cart totals have been calculated.")


@v2_bp.route("/cart/update", methods=["POST"])
@no_cache
@validate_schema(BulkUpdateRequest)
def bulk_update():
    data = request.validated_data
    engine = cart_context().engine

    def _apply(cart):
        for item_key, quantity in data.quantities.items():
            engine.update_item(cart, item_key, quantity)
        for code in data.coupons.remove:
            engine.remove_coupon(cart, code)
        for code in data.coupons.apply:
            engine.apply_coupon(cart, code)
        if data.customer is not None:
            engine.set_customer(cart, **data.customer.model_dump(exclude_none=True))
        if data.shipping_method is not None:
            engine.set_shipping_method(cart, data.shipping_method.method, data.shipping_method.package)

    outcome = mutate_cart(_apply)
    return _cart_response(outcome.cart, message="Cart updated.")


# ------------------- Coupons, shipping, fees, customer -------------------

@v2_bp.route("/cart/coupon", methods=["POST"])
@no_cache
@validate_schema(CouponRequest)
def apply_coupon():
    code = request.validated_data.code
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.apply_coupon(cart, code))
    return _cart_response(outcome.cart, message="Coupon code applied successfully.")


@v2_bp.route("/cart/coupon", methods=["DELETE"])
@no_cache
@validate_schema(CouponRequest)
def remove_coupon():
    code = request.validated_data.code
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.remove_coupon(cart, code))
    return _cart_response(outcome.cart, message="Coupon has been removed.")


@v2_bp.route("/cart/shipping", methods=["POST"])
@no_cache
@validate_schema(ShippingRequest)
def set_shipping():
    data = request.validated_data
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.set_shipping_method(cart, data.method, data.package))
    return _cart_response(outcome.cart)


@v2_bp.route("/cart/fees", methods=["POST"])
@no_cache
@validate_schema(FeeRequest)
def add_fee():
    data = request.validated_data
    engine = cart_context().engine
    outcome = mutate_cart(
        lambda cart: engine.add_fee(cart, data.name, data.amount, data.taxable, data.tax_class)
    )
    return _cart_response(outcome.cart)


@v2_bp.route("/cart/fees", methods=["DELETE"])
@no_cache
def remove_fees():
    engine = cart_context().engine
    outcome = mutate_cart(engine.remove_fees)
    return _cart_response(outcome.cart, message="All cart fees have been removed.")


@v2_bp.route("/cart/customer", methods=["POST"])
@no_cache
@validate_schema(CustomerRequest)
def set_customer():
    location = request.validated_data.model_dump(exclude_none=True)
    engine = cart_context().engine
    outcome = mutate_cart(lambda cart: engine.set_customer(cart, **location))
    return _cart_response(outcome.cart)
