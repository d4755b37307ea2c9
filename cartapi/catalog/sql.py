import logging
from typing import Dict, List, Optional

from pydantic import TypeAdapter
from sqlalchemy import func
from sqlalchemy.exc import OperationalError

from cartapi.catalog.gateway import (
    AmbiguousVariation,
    CatalogGateway,
    CouponView,
    ProductView,
    VariationProduct,
    match_variation,
)
from cartapi.errors import InvalidVariation, UpstreamUnavailable
from cartapi.services.keys import attribute_name, canonical_attributes
from cartapi.utils import clock
from models import db
from models.coupon import Coupon
from models.product import Product
from models.reservation import StockReservation

logger = logging.getLogger(__name__)

_product_adapter = TypeAdapter(ProductView)


def product_to_view(product: Product) -> ProductView:
    """Map a catalog row onto the tagged product variant."""
    in_stock = product.stock_status != "outofstock"
    if product.manage_stock and product.stock_quantity is not None:
        in_stock = product.stock_quantity > 0 or product.backorders in ("notify", "yes")
    data = {
        "id": product.id,
        "type": product.type,
        "name": product.name,
        "slug": product.slug or "",
        "sku": product.sku or "",
        "price": product.price,
        "tax_class": product.tax_class or "standard",
        "manage_stock": bool(product.manage_stock),
        "stock_qty": product.stock_quantity if product.manage_stock else None,
        "in_stock": in_stock,
        "backorders_allowed": product.backorders in ("notify", "yes"),
        "sold_individually": bool(product.sold_individually),
        "purchasable": product.status == "publish" and product.price is not None,
        "min_purchase": product.min_purchase,
        "max_purchase": product.max_purchase,
        "needs_shipping": not product.virtual,
        "weight": product.weight or "",
        "dimensions": {
            "length": product.length or "",
            "width": product.width or "",
            "height": product.height or "",
        },
        "image_url": product.image_url or "",
        "categories": list(product.categories or []),
        "modified_at": product.updated_at,
    }
    if product.type == "variable":
        data["variations"] = [v.id for v in product.variations]
        data["attributes"] = {
            attribute_name(name): list(options) for name, options in (product.attributes or {}).items()
        }
        # A variable product is bought through its variations only.
        data["purchasable"] = product.status == "publish"
    elif product.type == "variation":
        parent = product.parent
        data["parent_id"] = product.parent_id
        data["variation_attributes"] = canonical_attributes(product.attributes or {})
        if parent is not None:
            data["categories"] = list(parent.categories or [])
            if product.status == "publish" and parent.status != "publish":
                data["purchasable"] = False
    elif product.type == "grouped":
        data["children"] = list(product.grouped_children or [])
        data["purchasable"] = False
    return _product_adapter.validate_python(data)


class SqlCatalogGateway(CatalogGateway):
    """Catalog served from the local product tables."""

    def get_product(self, product_id: int) -> Optional[ProductView]:
        product = self._get(Product, product_id)
        return product_to_view(product) if product else None

    def get_variation(self, variation_id: int) -> Optional[VariationProduct]:
        product = self._get(Product, variation_id)
        if product is None or product.type != "variation":
            return None
        return product_to_view(product)

    def resolve_variation(self, product_id: int, attributes: Dict[str, str]) -> int:
        parent = self._get(Product, product_id)
        if parent is None or parent.type != "variable":
            raise InvalidVariation("Product is not a variable product.", product_id=product_id)
        wanted = canonical_attributes(attributes)
        variations = [product_to_view(v) for v in parent.variations if v.status == "publish"]
        matches = match_variation(variations, wanted)
        if not matches:
            raise InvalidVariation("No matching variation found.", product_id=product_id)
        if len(matches) > 1:
            raise AmbiguousVariation(product_id=product_id, variations=matches)
        return matches[0]

    def get_coupon(self, code: str) -> Optional[CouponView]:
        try:
            coupon = Coupon.query.filter(func.lower(Coupon.code) == code.strip().lower()).first()
        except OperationalError as e:
            raise UpstreamUnavailable() from e
        if coupon is None:
            return None
        return CouponView(
            code=coupon.code.lower(),
            discount_type=coupon.discount_type,
            amount=coupon.amount,
            minimum_amount=coupon.minimum_amount,
            maximum_amount=coupon.maximum_amount,
            product_ids=list(coupon.product_ids or []),
            excluded_product_ids=list(coupon.excluded_product_ids or []),
            product_categories=list(coupon.product_categories or []),
            excluded_product_categories=list(coupon.excluded_product_categories or []),
            usage_limit=coupon.usage_limit,
            usage_count=coupon.usage_count or 0,
            date_expires=coupon.date_expires,
            individual_use=bool(coupon.individual_use),
        )

    def reserved_stock(self, product_id: int, exclude_draft_order: int = 0) -> int:
        try:
            reserved = (
                db.session.query(func.coalesce(func.sum(StockReservation.quantity), 0))
                .filter(
                    StockReservation.product_id == product_id,
                    StockReservation.draft_order_id != (exclude_draft_order or 0),
                    StockReservation.expires_at > clock.now(),
                )
                .scalar()
            )
        except OperationalError as e:
            raise UpstreamUnavailable() from e
        return int(reserved or 0)

    def list_products(self, page: int = 1, per_page: int = 10) -> List[ProductView]:
        rows = (
            Product.query.filter(Product.status == "publish", Product.type != "variation")
            .order_by(Product.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return [product_to_view(p) for p in rows]

    def _get(self, model, ident):
        try:
            return db.session.get(model, int(ident))
        except (TypeError, ValueError):
            return None
        except OperationalError as e:
            logger.error("Catalog lookup failed: %s", e)
            raise UpstreamUnavailable() from e
