from models import db, BIGINT
from datetime import datetime


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(BIGINT, primary_key=True)
    code = db.Column(db.String(100), unique=True, nullable=False)     # stored lower-case
    discount_type = db.Column(db.String(20), nullable=False, default="fixed_cart")  # percent, fixed_cart, fixed_product
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    minimum_amount = db.Column(db.Numeric(12, 2), nullable=True)
    maximum_amount = db.Column(db.Numeric(12, 2), nullable=True)
    product_ids = db.Column(db.JSON, default=list)
    excluded_product_ids = db.Column(db.JSON, default=list)
    product_categories = db.Column(db.JSON, default=list)
    excluded_product_categories = db.Column(db.JSON, default=list)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, default=0)
    date_expires = db.Column(db.DateTime, nullable=True)
    individual_use = db.Column(db.Boolean, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Coupon code={self.code} type={self.discount_type}>"
