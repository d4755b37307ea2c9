from models import db, BIGINT


class _CartRowMixin:
    """Columns shared by the ephemeral session table and the durable cart table."""

    cart_key = db.Column(db.String(42), unique=True, nullable=False)
    cart_value = db.Column(db.Text, nullable=False)                 # versioned JSON document
    cart_created = db.Column(db.BigInteger, nullable=False)         # unix seconds
    cart_expiry = db.Column(db.BigInteger, nullable=False, index=True)
    cart_source = db.Column(db.String(200), nullable=False, default="cocart")
    cart_hash = db.Column(db.String(200), nullable=False, default="")

    def to_dict(self):
        return {
            "cart_id": self.cart_id,
            "cart_key": self.cart_key,
            "cart_created": self.cart_created,
            "cart_expiry": self.cart_expiry,
            "cart_source": self.cart_source,
            "cart_hash": self.cart_hash,
        }


class CartRecord(_CartRowMixin, db.Model):
    """Durable cart row, survives session expiry."""

    __tablename__ = "carts"

    cart_id = db.Column(BIGINT, primary_key=True, autoincrement=True)

    def __repr__(self):
        return f"<CartRecord key={self.cart_key} expiry={self.cart_expiry}>"


class SessionRecord(_CartRowMixin, db.Model):
    """Short-lived session row with a rolling TTL."""

    __tablename__ = "cart_sessions"

    cart_id = db.Column(BIGINT, primary_key=True, autoincrement=True)

    def __repr__(self):
        return f"<SessionRecord key={self.cart_key} expiry={self.cart_expiry}>"


class RetiredCartKey(db.Model):
    """Guest keys consumed by a login; requests carrying them get a 404."""

    __tablename__ = "retired_cart_keys"

    cart_key = db.Column(db.String(42), primary_key=True)
    replaced_by = db.Column(db.String(42), nullable=False)
    retired_at = db.Column(db.BigInteger, nullable=False)
    expires_at = db.Column(db.BigInteger, nullable=False, index=True)
