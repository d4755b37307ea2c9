import os
import uuid

from dotenv import load_dotenv
from flasgger import Swagger
from flask import Flask, g, request
from flask_cors import CORS
from flask_migrate import Migrate
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from prometheus_client import CollectorRegistry
from prometheus_flask_exporter import PrometheusMetrics

import extensions
from cartapi import metrics as cart_metrics
from cartapi.api import register_api
from cartapi.cli import register_cli
from cartapi.config import get_config_class
from cartapi.context import init_cart
from cartapi.errors import errors_bp
from cartapi.logging import configure_logging
from cartapi.routes.headers import add_cart_headers
from cartapi.telemetry import init_tracing
from cartapi.version import API_V2, API_VERSION
from models import db

# Headers a browser storefront must be able to read from cart responses.
EXPOSED_HEADERS = ["X-Request-ID", "traceparent", "Cart-Key", "CoCart-Timestamp"]
ALLOWED_HEADERS = ["Content-Type", "Authorization", "Cart-Key", "X-Request-ID", "X-Cart-Source"]
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def _cors_origins(value):
    if not isinstance(value, str):
        return value or "*"
    value = value.strip()
    if value == "*":
        return "*"
    return [origin.strip() for origin in value.split(",") if origin.strip()]


def _init_docs(app):
    Swagger(
        app,
        config={
            "headers": [],
            "specs": [
                {
                    "endpoint": "apispec",
                    "route": "/apispec.json",
                    "rule_filter": lambda rule: rule.rule.startswith(f"{API_V2}/"),
                    "model_filter": lambda tag: True,
                }
            ],
            "swagger_ui": True,
            "specs_route": "/docs/",
        },
        template={
            "info": {"title": app.config["STORE_NAME"], "version": API_VERSION},
            "tags": [
                {"name": "Cart", "description": "Cart endpoints"},
                {"name": "Sessions", "description": "Cart session administration"},
                {"name": "Store", "description": "Store and product endpoints"},
            ],
        },
    )


def _init_metrics(app):
    # Every test app gets its own registry; the default one rejects duplicate collectors.
    registry = CollectorRegistry() if app.config.get("TESTING") else None
    metrics = PrometheusMetrics(app, path="/metrics", registry=registry)
    if not app.config.get("TESTING") and not os.environ.get("METRICS_APP_INFO_SET"):
        metrics.info("app_info", "Application info", version=API_VERSION)
        os.environ["METRICS_APP_INFO_SET"] = "1"


def _register_request_hooks(app):
    @app.before_request
    def _start_request():
        g.request_id = (request.headers.get("X-Request-ID") or uuid.uuid4().hex)[:100]
        # g outlives a request when an app context is already pushed.
        g.identity = None
        g.cart_key = None
        g.last_modified = None
        app.logger.info(f"request start {request.method} {request.path}")

    @app.after_request
    def _finish_request(resp):
        if getattr(g, "request_id", None):
            resp.headers["X-Request-ID"] = g.request_id
        for name, value in SECURITY_HEADERS.items():
            resp.headers.setdefault(name, value)
        exposed = [h.strip() for h in resp.headers.get("Access-Control-Expose-Headers", "").split(",") if h.strip()]
        exposed += [h for h in EXPOSED_HEADERS if h not in exposed]
        resp.headers["Access-Control-Expose-Headers"] = ",".join(exposed)

        carrier = {}
        TraceContextTextMapPropagator().inject(carrier)
        if carrier.get("traceparent"):
            resp.headers["traceparent"] = carrier["traceparent"]
        return add_cart_headers(resp)


def create_app(config_object=None):
    """Application factory."""
    load_dotenv()
    app = Flask(__name__)
    app.config.from_object(config_object or get_config_class())

    configure_logging(app)
    register_cli(app)

    extensions.limiter.init_app(app)
    app.limiter = extensions.limiter

    Migrate(app, db, compare_type=True, render_as_batch=True)
    _init_docs(app)
    _init_metrics(app)
    CORS(
        app,
        origins=_cors_origins(app.config.get("CORS_ALLOWED_ORIGINS", "*")),
        supports_credentials=True,
        expose_headers=EXPOSED_HEADERS,
        allow_headers=ALLOWED_HEADERS,
    )

    app.register_blueprint(errors_bp)
    if app.config.get("TESTING"):
        from cartapi.test_support import test_support_bp
        app.register_blueprint(test_support_bp)
    register_api(app)
    _register_request_hooks(app)

    db.init_app(app)
    init_tracing(app)
    cart_metrics.init_app(app)
    init_cart(app)
    if app.config.get("DEBUG") or app.config.get("TESTING"):
        with app.app_context():
            db.create_all()
            app.logger.info("Tables created")

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    return app
