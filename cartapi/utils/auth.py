import base64
import binascii
from functools import wraps
from typing import NamedTuple, Optional

from flask import request, g
from cartapi.auth.permissions import role_has_scope
from cartapi.errors import Forbidden, InvalidRequest, Unauthorized
from cartapi.services.keys import GUEST_KEY_LENGTH, is_user_key
from .jwt import decode_token, TokenError
from models import db
from models.user import User


class Identity(NamedTuple):
    user: Optional[User]
    cart_key: Optional[str]

    @property
    def authenticated(self) -> bool:
        return self.user is not None


def _basic_credentials(header):
    try:
        decoded = base64.b64decode(header.split(" ", 1)[1]).decode("utf-8")
    except (IndexError, binascii.Error, UnicodeDecodeError):
        raise Unauthorized("Malformed basic authorization header.")
    username, sep, password = decoded.partition(":")
    if not sep:
        raise Unauthorized("Malformed basic authorization header.")
    return username, password


def authenticate() -> Optional[User]:
    """Return the user named by the Authorization header, or None for guests."""
    auth = request.headers.get("Authorization", "")
    if not auth:
        return None
    if auth.startswith("Basic "):
        username, password = _basic_credentials(auth)
        user = User.query.filter(
            (User.username == username) | (User.email == username)
        ).first()
        if not user or not user.check_password(password):
            raise Unauthorized("The username or password is incorrect.")
        return user

    token = auth.split(" ", 1)[1] if auth.startswith("Bearer ") else auth
    try:
        payload = decode_token(token, expected_type="access")
    except TokenError as e:
        raise Unauthorized(str(e))
    try:
        user = db.session.get(User, int(payload["sub"]))
    except (KeyError, TypeError, ValueError):
        user = None
    if user is None:
        raise Unauthorized("Unknown user.")
    return user


def requested_cart_key() -> Optional[str]:
    key = request.args.get("cart_key") or request.headers.get("Cart-Key")
    key = (key or "").strip()
    return key or None


def resolve_identity() -> Identity:
    """Decide which cart this request operates on.

    Authenticated users always get their own cart. Guests use the ``cart_key``
    query parameter or the ``Cart-Key`` header; with neither, a key is generated
    when the cart is first written.
    """
    user = authenticate()
    if user is not None:
        return Identity(user, str(user.id))
    key = requested_cart_key()
    if key is None:
        return Identity(None, None)
    if len(key) > GUEST_KEY_LENGTH:
        raise InvalidRequest("Cart key is too long.", param="cart_key")
    if is_user_key(key):
        raise Unauthorized("You must be logged in to access this cart.", cart_key=key)
    return Identity(None, key)


def current_identity() -> Identity:
    identity = getattr(g, "identity", None)
    if identity is None:
        identity = resolve_identity()
        g.identity = identity
    return identity


def auth_required(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        if not current_identity().authenticated:
            raise Unauthorized()
        return func(*args, **kwargs)

    return wrapper


def _to_set(obj):
    return set(obj) if isinstance(obj, (list, tuple, set)) else {obj}


def role_required(required):
    """Authorize based on user role or scoped action."""
    required_set = _to_set(required)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            identity = current_identity()
            if not identity.authenticated:
                raise Unauthorized()
            role = identity.user.role
            for entry in required_set:
                if ":" in entry:
                    r, action = entry.split(":", 1)
                    if role == r and role_has_scope(role, action):
                        break
                elif role == entry:
                    break
            else:
                raise Forbidden()
            return fn(*args, **kwargs)

        return wrapper

    return decorator
