from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import BigInteger, Integer

# Use BigInteger in production but fall back to Integer for SQLite
BIGINT = BigInteger().with_variant(Integer, "sqlite")

db = SQLAlchemy()

# Re-export common models for convenience
from .user import User  # noqa: F401
from .product import Product  # noqa: F401
from .coupon import Coupon  # noqa: F401
from .cart import CartRecord, SessionRecord, RetiredCartKey  # noqa: F401
from .reservation import StockReservation  # noqa: F401
from .legacy import LegacySession  # noqa: F401
from .option import Option  # noqa: F401
