from flask import Blueprint
from cartapi.version import API_V2

v2_bp = Blueprint("v2", __name__, url_prefix=API_V2)

from . import cart  # noqa: E402
from . import auth  # noqa: E402
from . import sessions  # noqa: E402
from . import store  # noqa: E402
