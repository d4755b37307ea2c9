# --- models/product.py ---
from models import db, BIGINT
from datetime import datetime


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(BIGINT, primary_key=True)
    parent_id = db.Column(BIGINT, db.ForeignKey("products.id"), nullable=True, index=True)

    # simple, variable, variation, grouped
    type = db.Column(db.String(20), nullable=False, default="simple")
    status = db.Column(db.String(20), nullable=False, default="publish")

    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(200), nullable=True)
    sku = db.Column(db.String(100), nullable=True)

    # Pricing
    price = db.Column(db.Numeric(12, 2), nullable=True)             # NULL means not purchasable
    tax_class = db.Column(db.String(50), nullable=False, default="standard")

    # Inventory
    manage_stock = db.Column(db.Boolean, default=False)
    stock_quantity = db.Column(db.Integer, nullable=True)
    stock_status = db.Column(db.String(20), default="instock")       # instock, outofstock, onbackorder
    backorders = db.Column(db.String(10), default="no")              # no, notify, yes
    sold_individually = db.Column(db.Boolean, default=False)
    min_purchase = db.Column(db.Integer, nullable=True)
    max_purchase = db.Column(db.Integer, nullable=True)              # -1 means unlimited

    # Shipping
    virtual = db.Column(db.Boolean, default=False)
    weight = db.Column(db.String(20), nullable=True)
    length = db.Column(db.String(20), nullable=True)
    width = db.Column(db.String(20), nullable=True)
    height = db.Column(db.String(20), nullable=True)

    # Taxonomy / attributes
    categories = db.Column(db.JSON, default=list)                    # category slugs
    attributes = db.Column(db.JSON, default=dict)                    # variable: {name: [options]}, variation: {name: value}
    grouped_children = db.Column(db.JSON, default=list)              # grouped: child product ids

    image_url = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    variations = db.relationship("Product", backref=db.backref("parent", remote_side=[id]))

    def __repr__(self):
        return f"<Product id={self.id} type={self.type}>"
