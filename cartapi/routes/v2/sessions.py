from flask import g

from cartapi.context import cart_context
from cartapi.errors import CartNotFound
from cartapi.routes.headers import no_cache
from cartapi.routes.v2.serializers import cart_payload
from cartapi.services.serialization import SerializationError, loads
from cartapi.utils import ok, request_params
from cartapi.utils.auth import role_required
from . import v2_bp


def _row_payload(row) -> dict:
    data = row.to_dict()
    try:
        data["cart"] = cart_payload(loads(row.cart_value))
    except SerializationError:
        data["cart"] = None
    return data


def _int_param(params, name, default, upper=None):
    try:
        value = max(1, int(params.get(name, default)))
    except (TypeError, ValueError):
        value = default
    return min(value, upper) if upper else value


@v2_bp.route("/session/<cart_key>", methods=["GET"])
@no_cache
@role_required(["administrator", "shop_manager:view_sessions"])
def get_session(cart_key):
    store = cart_context().store
    session_row, cart_row = store.get_rows(cart_key)
    if session_row is None and cart_row is None:
        raise CartNotFound(cart_key=cart_key)
    g.cart_key = cart_key
    row = session_row or cart_row
    payload = _row_payload(row)
    payload["in_session"] = session_row is not None
    return ok(payload)


@v2_bp.route("/session/<cart_key>", methods=["DELETE"])
@no_cache
@role_required("administrator")
def delete_session(cart_key):
    if not cart_context().store.delete(cart_key):
        raise CartNotFound(cart_key=cart_key)
    return ok(message="Session has been deleted.")


@v2_bp.route("/sessions", methods=["GET"])
@no_cache
@role_required(["administrator", "shop_manager:view_sessions"])
def list_sessions():
    store = cart_context().store
    params = request_params()
    if str(params.get("stats", "")).lower() in ("1", "true", "yes"):
        return ok(store.stats())
    page = _int_param(params, "page", 1)
    per_page = _int_param(params, "per_page", 20, upper=100)
    rows, total = store.list_carts(page, per_page)
    return ok({
        "sessions": [row.to_dict() for row in rows],
        "page": page,
        "per_page": per_page,
        "total": total,
    })
