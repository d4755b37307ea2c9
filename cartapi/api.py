from cartapi.routes import v1_bp, v2_bp
import logging


def register_api(app):
    """Register the versioned cart API blueprints."""
    app.register_blueprint(v2_bp)
    app.register_blueprint(v1_bp)
    logging.info("Cart API v1 and v2 routes registered")
