import logging

from flask import current_app, g
from flask_limiter.util import get_remote_address

from cartapi.context import cart_context
from cartapi.errors import Unauthorized
from cartapi.routes.headers import no_cache
from cartapi.services.keys import generate_guest_key, is_user_key
from cartapi.utils import create_access_token, create_refresh_token, ok
from cartapi.utils.auth import current_identity, requested_cart_key
from extensions import limiter
from . import v2_bp

logger = logging.getLogger(__name__)

DEV_NOTE = "Store the access token to authenticate every other request for this customer."


@v2_bp.route("/login", methods=["POST"])
@limiter.limit(
    lambda: current_app.config["LOGIN_LIMIT_PER_IP"],
    key_func=get_remote_address,
    error_message="Too many logins from this IP",
)
@no_cache
def login():
    identity = current_identity()
    if not identity.authenticated:
        raise Unauthorized("Authentication credentials are required to log in.")
    user = identity.user
    guest_key = requested_cart_key()
    if guest_key and is_user_key(guest_key):
        guest_key = None

    result = cart_context().identity.login(user.id, guest_key, client_ip=get_remote_address())
    g.cart_key = result["cart_key"]
    logger.info("User %s logged in (%s)", user.id, result.get("transition"))
    return ok({
        **user.to_dict(),
        "cart_key": result["cart_key"],
        "access_token": create_access_token(user.id, user.role),
        "refresh_token": create_refresh_token(user.id),
        "expires_in": current_app.config["ACCESS_TOKEN_LIFETIME_MIN"] * 60,
        "warnings": result.get("warnings", []),
        "extras": {},
        "dev_note": DEV_NOTE,
    })


@v2_bp.route("/logout", methods=["POST"])
@no_cache
def logout():
    identity = current_identity()
    if identity.authenticated:
        new_key = cart_context().identity.logout(identity.user.id)
    else:
        new_key = generate_guest_key()
    g.cart_key = new_key
    return ok({"cart_key": new_key}, message="You are now logged out.")
