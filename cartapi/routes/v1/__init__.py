from flask import Blueprint
from cartapi.version import API_V1

v1_bp = Blueprint("v1", __name__, url_prefix=API_V1)

from . import cart  # noqa: E402
