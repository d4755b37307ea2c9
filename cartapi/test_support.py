from flask import Blueprint, request
from cartapi.utils.responses import ok
import logging
from cartapi.utils.jwt import create_access_token, create_refresh_token
from models import db
from models.user import User


test_support_bp = Blueprint("test_support_bp", __name__)


@test_support_bp.route("/__ok", methods=["GET"])
def __ok():
    return ok({"ping": "pong"})


@test_support_bp.route("/__boom", methods=["GET"])
def __boom():
    raise RuntimeError("boom")


@test_support_bp.route("/__log", methods=["GET"])
def __log():
    logging.getLogger(__name__).info("test log line")
    return ok({"logged": True})


@test_support_bp.route("/__auth/token", methods=["POST"])
def __auth_token():
    """Create the user if needed and issue tokens for it.

    Body: {"user_id": 100, "username": "jane", "password": "secret", "role": "customer"}
    """
    j = request.get_json() or {}
    user_id = int(j.get("user_id", 1))
    user = db.session.get(User, user_id)
    if not user:
        user = User(id=user_id, username=j.get("username", f"user{user_id}"), role=j.get("role", "customer"))
        user.set_password(j.get("password", "password"))
        db.session.add(user)
        db.session.commit()
    return ok({
        "user_id": str(user.id),
        "access": create_access_token(user.id, user.role),
        "refresh": create_refresh_token(user.id),
    })
