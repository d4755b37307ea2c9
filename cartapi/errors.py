import logging
from flask import Blueprint
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException
from cartapi.utils.responses import error

errors_bp = Blueprint("errors_bp", __name__)


class CartError(Exception):
    """Business or infrastructure failure surfaced to the client."""

    code = "CartError"
    status = 400
    message = "Unable to complete the cart operation."

    def __init__(self, message=None, **data):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.data = data

    def to_dict(self):
        return {
            "code": self.code,
            "message": self.message,
            "data": {"status": self.status, **self.data},
        }


class ProductNotFound(CartError):
    code, status, message = "ProductNotFound", 404, "This product cannot be found."


class NotPurchasable(CartError):
    code, status, message = "NotPurchasable", 403, "This product cannot be purchased."


class InvalidVariation(CartError):
    code, status, message = "InvalidVariation", 400, "Invalid variation attributes."


class InsufficientStock(CartError):
    code, status, message = "InsufficientStock", 403, "Not enough stock available."


class SoldIndividuallyExceeded(CartError):
    code, status, message = "SoldIndividuallyExceeded", 403, "You can only have 1 of this item in your cart."


class BelowMinPurchase(CartError):
    code, status, message = "BelowMinPurchase", 403, "Quantity is below the minimum purchase amount."


class AboveMaxPurchase(CartError):
    code, status, message = "AboveMaxPurchase", 403, "Quantity is above the maximum purchase amount."


class ItemNotInCart(CartError):
    code, status, message = "ItemNotInCart", 404, "Item specified does not exist in cart."


class ItemNotInRemovedBuffer(CartError):
    code, status, message = "ItemNotInRemovedBuffer", 404, "Item specified was not removed from the cart."


class CouponNotFound(CartError):
    code, status, message = "CouponNotFound", 400, "Coupon does not exist."


class CouponIneligible(CartError):
    code, status, message = "CouponIneligible", 403, "Coupon cannot be applied to this cart."


class MissingItemKey(CartError):
    code, status, message = "MissingItemKey", 404, "Cart item key is required!"


class EmptyCart(CartError):
    code, status, message = "EmptyCart", 404, "No items in cart."


class CartFull(CartError):
    code, status, message = "CartFull", 413, "The cart has reached the maximum number of items."


class CartNotFound(CartError):
    code, status, message = "CartNotFound", 404, "Cart could not be found."


class Conflict(CartError):
    code, status, message = "Conflict", 409, "A cart already exists for this key."


class InvalidRequest(CartError):
    code, status, message = "InvalidRequest", 400, "Invalid request parameters."


class Unauthorized(CartError):
    code, status, message = "Unauthorized", 401, "Sorry, you are not authorized."


class Forbidden(CartError):
    code, status, message = "Forbidden", 403, "Sorry, you are not allowed to do that."


class StorageUnavailable(CartError):
    code, status, message = "StorageUnavailable", 503, "The cart could not be saved. Please try again later."


class UpstreamUnavailable(CartError):
    code, status, message = "UpstreamUnavailable", 504, "A dependent service did not respond in time."


@errors_bp.app_errorhandler(CartError)
def handle_cart_error(e):
    if e.status >= 500:
        logging.error("%s: %s", e.code, e.message)
    else:
        logging.info("%s: %s", e.code, e.message)
    return error(e.message, status=e.status, code=e.code, data=e.data)


@errors_bp.app_errorhandler(ValidationError)
def handle_validation_error(e):
    errors = [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in e.errors()
    ]
    return error(InvalidRequest.message, status=400, code=InvalidRequest.code, data={"errors": errors})


@errors_bp.app_errorhandler(HTTPException)
def handle_http_exception(e):
    msg = e.description or getattr(e, "name", "HTTP Error")
    code = "rest_" + (getattr(e, "name", "error") or "error").lower().replace(" ", "_")
    return error(msg, status=e.code, code=code)


@errors_bp.app_errorhandler(Exception)
def handle_unexpected_exception(e):
    logging.exception("Unhandled exception")
    return error(
        "An unexpected error occurred. Please try again later.",
        status=500,
        code="internal_server_error",
    )
