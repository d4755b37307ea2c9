from email.utils import format_datetime
from datetime import timezone
from functools import wraps

from flask import g, make_response

from cartapi.utils import clock

NO_CACHE = "no-cache, must-revalidate, max-age=0, no-store"
EXPIRES_IN_PAST = "Thu, 01-Jan-70 00:00:01 GMT"


def add_cart_headers(resp):
    """Echo the cart key and server time on every response."""
    cart_key = getattr(g, "cart_key", None)
    if cart_key:
        resp.headers["Cart-Key"] = cart_key
    resp.headers["CoCart-Timestamp"] = str(clock.now())
    return resp


def no_cache(fn):
    """Mark a view's responses as never cacheable."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        resp = make_response(fn(*args, **kwargs))
        identity = getattr(g, "identity", None)
        private = identity is not None and identity.authenticated
        resp.headers["Cache-Control"] = NO_CACHE + (", private" if private else "")
        resp.headers["Expires"] = EXPIRES_IN_PAST
        resp.headers["Pragma"] = "no-cache"
        return resp

    return wrapper


def last_modified(fn):
    """Send ``Last-Modified`` from ``g.last_modified`` when the view sets it."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        resp = make_response(fn(*args, **kwargs))
        modified = getattr(g, "last_modified", None)
        if modified is not None:
            if modified.tzinfo is None:
                modified = modified.replace(tzinfo=timezone.utc)
            resp.headers["Last-Modified"] = format_datetime(modified, usegmt=True)
        return resp

    return wrapper
