from models import db, BIGINT


class StockReservation(db.Model):
    """Stock held by draft orders so concurrent checkouts don't double-spend."""

    __tablename__ = "stock_reservations"

    id = db.Column(BIGINT, primary_key=True, autoincrement=True)
    product_id = db.Column(BIGINT, nullable=False, index=True)
    draft_order_id = db.Column(BIGINT, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.BigInteger, nullable=False)              # unix seconds

    __table_args__ = (
        db.UniqueConstraint("product_id", "draft_order_id", name="u_reservation_product_order"),
    )
