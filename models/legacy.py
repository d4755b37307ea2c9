from models import db, BIGINT


class LegacySession(db.Model):
    """Session table used by the storefront before the cart API existed.

    Rows are read once by the session transfer and never written by this service.
    """

    __tablename__ = "woocommerce_sessions"

    session_id = db.Column(BIGINT, primary_key=True, autoincrement=True)
    session_key = db.Column(db.String(42), unique=True, nullable=False)
    session_value = db.Column(db.Text, nullable=False)
    session_expiry = db.Column(db.BigInteger, nullable=False)
