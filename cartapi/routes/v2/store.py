from flask import current_app, g, url_for

from cartapi.context import cart_context
from cartapi.errors import ProductNotFound
from cartapi.routes.headers import last_modified, no_cache
from cartapi.utils import ok, request_params
from cartapi.version import API_VERSION
from . import v2_bp


@v2_bp.route("/store", methods=["GET"])
@no_cache
def store_info():
    cfg = current_app.config
    return ok({
        "version": API_VERSION,
        "title": cfg["STORE_NAME"],
        "description": cfg["STORE_DESCRIPTION"],
        "home_url": cfg["STORE_URL"],
        "currency": cfg["CURRENCY"],
        "routes": {
            "cart": url_for("v2.get_cart"),
            "add-item": url_for("v2.add_item"),
            "login": url_for("v2.login"),
            "logout": url_for("v2.logout"),
            "products": url_for("v2.list_products"),
        },
    })


@v2_bp.route("/products", methods=["GET"])
@last_modified
def list_products():
    params = request_params()
    try:
        page = max(1, int(params.get("page", 1)))
        per_page = min(100, max(1, int(params.get("per_page", 10))))
    except (TypeError, ValueError):
        page, per_page = 1, 10
    products = cart_context().catalog.list_products(page, per_page)
    stamps = [p.modified_at for p in products if p.modified_at is not None]
    g.last_modified = max(stamps) if stamps else None
    return ok([p.model_dump(mode="json") for p in products])


@v2_bp.route("/products/<int:product_id>", methods=["GET"])
@last_modified
def get_product(product_id):
    product = cart_context().catalog.get_product(product_id)
    if product is None:
        raise ProductNotFound(product_id=product_id)
    g.last_modified = product.modified_at
    return ok(product.model_dump(mode="json"))


@v2_bp.route("/products/<int:product_id>/variations", methods=["GET"])
@last_modified
def get_variations(product_id):
    catalog = cart_context().catalog
    product = catalog.get_product(product_id)
    if product is None:
        raise ProductNotFound(product_id=product_id)
    variations = [catalog.get_variation(vid) for vid in getattr(product, "variations", [])]
    variations = [v for v in variations if v is not None]
    stamps = [v.modified_at for v in variations + [product] if v.modified_at is not None]
    g.last_modified = max(stamps) if stamps else None
    return ok([v.model_dump(mode="json") for v in variations])
