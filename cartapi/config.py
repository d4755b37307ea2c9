import json
import os

DEFAULT_TAX_RATES = {"*": {"standard": 20, "reduced-rate": 5, "zero-rate": 0}}
DEFAULT_SHIPPING_METHODS = {
    "flat_rate": {"label": "Flat rate", "cost": "5.00", "taxable": True},
    "free_shipping": {"label": "Free shipping", "cost": "0.00", "taxable": False},
    "local_pickup": {"label": "Local pickup", "cost": "0.00", "taxable": False},
}


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_json(name, default):
    value = os.getenv(name)
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError as e:
        raise RuntimeError(f"{name} is not valid JSON: {e}") from e


class BaseConfig:
    JSON_SORT_KEYS = False
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "*")
    RATELIMIT_STORAGE_URL = os.getenv("RATELIMIT_STORAGE_URL", "memory://")
    LOGIN_LIMIT_PER_IP = os.getenv("LOGIN_LIMIT_PER_IP", "10 per 30 minutes")
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-insecure-jwt-key")
    ACCESS_TOKEN_LIFETIME_MIN = int(os.getenv("ACCESS_TOKEN_LIFETIME_MIN", 15))
    REFRESH_TOKEN_LIFETIME_DAYS = int(os.getenv("REFRESH_TOKEN_LIFETIME_DAYS", 30))
    OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "cart-api")
    OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

    # Cart lifecycle, in seconds
    SESSION_TTL = int(os.getenv("SESSION_TTL", 48 * 3600))
    CART_TTL = int(os.getenv("CART_TTL", 7 * 24 * 3600))
    SWEEP_INTERVAL = int(os.getenv("SWEEP_INTERVAL", 6 * 3600))
    MAX_LINE_ITEMS = int(os.getenv("MAX_LINE_ITEMS", 100))
    PRESERVE_USER_CART_ON_LOGOUT = _env_bool("PRESERVE_USER_CART_ON_LOGOUT", True)

    # Pricing
    TAX_ROUNDING_MODE = os.getenv("TAX_ROUNDING_MODE", "per-line")
    TAX_MODE = os.getenv("TAX_MODE", "excl")
    TAX_RATES = _env_json("TAX_RATES", DEFAULT_TAX_RATES)
    SHIPPING_METHODS = _env_json("SHIPPING_METHODS", DEFAULT_SHIPPING_METHODS)

    # Catalog
    CATALOG_BACKEND = os.getenv("CATALOG_BACKEND", "sql")
    CATALOG_SERVICE_URL = os.getenv("CATALOG_SERVICE_URL", "")
    UPSTREAM_TIMEOUT = float(os.getenv("UPSTREAM_TIMEOUT", 2.0))

    STORE_NAME = os.getenv("STORE_NAME", "Cart API Store")
    STORE_DESCRIPTION = os.getenv("STORE_DESCRIPTION", "")
    STORE_URL = os.getenv("STORE_URL", "http://localhost")
    CURRENCY = os.getenv("CURRENCY", "GBP")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-insecure-key")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///dev.db")


class TestingConfig(BaseConfig):
    TESTING = True
    LOGIN_LIMIT_PER_IP = os.getenv("LOGIN_LIMIT_PER_IP", "1000 per minute")
    SECRET_KEY = "test-key"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")


class ProductionConfig(BaseConfig):
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")

    @staticmethod
    def validate():
        missing = []
        if not os.getenv("SECRET_KEY"):
            missing.append("SECRET_KEY")
        if not os.getenv("DATABASE_URL"):
            missing.append("DATABASE_URL")
        if os.getenv("CATALOG_BACKEND") == "http" and not os.getenv("CATALOG_SERVICE_URL"):
            missing.append("CATALOG_SERVICE_URL")
        if missing:
            raise RuntimeError(
                f"Missing required env vars in production: {', '.join(missing)}"
            )


def get_config_class():
    env = os.getenv("APP_ENV", "development").lower()
    if env == "production":
        ProductionConfig.validate()
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig
