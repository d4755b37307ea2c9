"""Wiring of the cart services onto the Flask app."""
import logging
from typing import NamedTuple

from flask import current_app

from cartapi.catalog.http import HttpCatalogGateway
from cartapi.catalog.sql import SqlCatalogGateway
from cartapi.services.cart_engine import CartEngine
from cartapi.services.cart_service import CartService
from cartapi.services.events import CompositeEventSink, LoggingEventSink, MetricsEventSink
from cartapi.services.identity import IdentityService
from cartapi.services.pricing import PricingEngine
from cartapi.services.session_store import SessionStore

logger = logging.getLogger(__name__)


class CartContext(NamedTuple):
    catalog: object
    pricing: PricingEngine
    store: SessionStore
    engine: CartEngine
    service: CartService
    identity: IdentityService


def build_catalog(config):
    if config.get("CATALOG_BACKEND") == "http":
        return HttpCatalogGateway(config["CATALOG_SERVICE_URL"], timeout=config.get("UPSTREAM_TIMEOUT", 2.0))
    return SqlCatalogGateway()


def init_cart(app, sink=None) -> CartContext:
    cfg = app.config
    catalog = build_catalog(cfg)
    pricing = PricingEngine(cfg["TAX_RATES"], cfg["SHIPPING_METHODS"], cfg["TAX_ROUNDING_MODE"])
    store = SessionStore(cfg["SESSION_TTL"], cfg["CART_TTL"])
    if cfg["SESSION_TTL"] > cfg["CART_TTL"]:
        logger.warning("SESSION_TTL exceeds CART_TTL; clamping session TTL to %s", cfg["CART_TTL"])
    engine = CartEngine(
        catalog,
        pricing,
        sink=sink or CompositeEventSink(LoggingEventSink(), MetricsEventSink()),
        max_line_items=cfg["MAX_LINE_ITEMS"],
        tax_mode=cfg["TAX_MODE"],
    )
    ctx = CartContext(
        catalog=catalog,
        pricing=pricing,
        store=store,
        engine=engine,
        service=CartService(store, engine),
        identity=IdentityService(store, engine, preserve_on_logout=cfg["PRESERVE_USER_CART_ON_LOGOUT"]),
    )
    app.extensions["cart"] = ctx
    return ctx


def cart_context() -> CartContext:
    return current_app.extensions["cart"]
