import datetime as dt
from typing import Dict

import jwt
from flask import current_app

ALGORITHM = "HS256"


class TokenError(Exception):
    pass


def _issue(user_id, token_type: str, lifetime: dt.timedelta, **claims) -> str:
    now = dt.datetime.now(dt.timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": token_type,
        "iat": now,
        "exp": now + lifetime,
        **claims,
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=ALGORITHM)


def create_access_token(user_id, role: str) -> str:
    """Short-lived token; its subject is also the customer's cart key."""
    minutes = current_app.config["ACCESS_TOKEN_LIFETIME_MIN"]
    return _issue(user_id, "access", dt.timedelta(minutes=minutes), role=role)


def create_refresh_token(user_id) -> str:
    days = current_app.config["REFRESH_TOKEN_LIFETIME_DAYS"]
    return _issue(user_id, "refresh", dt.timedelta(days=days))


def decode_token(token: str, expected_type: str = "access") -> Dict:
    try:
        data = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("token expired")
    except jwt.InvalidTokenError:
        raise TokenError("invalid token")
    if data.get("type") != expected_type:
        raise TokenError(f"expected {expected_type} token, got {data.get('type') or 'unknown'}")
    return data
