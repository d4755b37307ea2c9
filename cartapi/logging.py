import json
import logging
import os
from typing import Any

from flask import g, has_app_context
from opentelemetry.trace import get_current_span

# Credentials plus the customer details a cart carries.
SENSITIVE_KEYS = {
    "password",
    "token",
    "access_token",
    "refresh_token",
    "authorization",
    "email",
    "postcode",
}
REDACTED = "[REDACTED]"
NOT_SET = "n/a"
QUIET_LOGGERS = ("sqlalchemy.engine", "urllib3.connectionpool")


def _from_g(name: str) -> str:
    if not has_app_context():
        return NOT_SET
    return getattr(g, name, None) or NOT_SET


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _from_g("request_id")
        return True


class CartKeyFilter(logging.Filter):
    """Tag records with the cart key the current request resolved to."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.cart_key = _from_g("cart_key")
        return True


class TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        ctx = get_current_span().get_span_context()
        if ctx.is_valid:
            record.trace_id = format(ctx.trace_id, "032x")
            record.span_id = format(ctx.span_id, "016x")
        else:
            record.trace_id = record.span_id = NOT_SET
        return True


def mask(value: Any) -> Any:
    """Redact sensitive keys, descending into nested dicts and lists."""
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else mask(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [mask(item) for item in value]
    return value


class MaskingFilter(logging.Filter):
    """Redact structured log payloads, except debug output outside production."""

    def filter(self, record: logging.LogRecord) -> bool:
        env = os.getenv("APP_ENV", "development").lower()
        if record.levelno == logging.DEBUG and env != "production":
            return True
        if isinstance(record.msg, dict):
            record.msg = mask(record.msg)
        if isinstance(record.args, dict):
            record.args = mask(record.args)
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        doc = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
        }
        for attr in ("request_id", "cart_key", "trace_id", "span_id"):
            doc[attr] = getattr(record, attr, NOT_SET)
        if isinstance(record.msg, dict):
            doc.update(record.msg)
        else:
            doc["message"] = record.getMessage()
        if record.exc_info:
            doc["exception"] = self.formatException(record.exc_info)
        return json.dumps(doc, default=str)


def _level(app) -> int:
    name = os.getenv("LOG_LEVEL")
    if name:
        return getattr(logging, name.upper(), logging.INFO)
    return logging.DEBUG if app.config.get("DEBUG") else logging.INFO


def configure_logging(app) -> None:
    """Send app, root and werkzeug logs through one JSON handler."""
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z"))
    for log_filter in (RequestIdFilter(), CartKeyFilter(), TraceIdFilter(), MaskingFilter()):
        handler.addFilter(log_filter)
    level = _level(app)

    app.logger.handlers.clear()
    app.logger.addHandler(handler)
    app.logger.setLevel(level)

    root = logging.getLogger()
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        root.addHandler(handler)
    root.setLevel(level)

    werkzeug = logging.getLogger("werkzeug")
    werkzeug.handlers.clear()
    werkzeug.addHandler(handler)
    werkzeug.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
