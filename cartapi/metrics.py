import time

from flask import request
from prometheus_client import Counter, Histogram
from sqlalchemy import event

from models import db

DB_QUERY_DURATION = Histogram(
    "db_query_duration_seconds",
    "Database query duration in seconds",
    ["statement"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

# HTTP errors, labelled with the cart error code when the body carries one
ERROR_COUNTER = Counter(
    "flask_error_total",
    "Count of HTTP responses with status >= 400",
    ["endpoint", "method", "code", "error"],
)

CART_EVENTS = Counter("cart_events_total", "Count of cart lifecycle events", ["event"])

CARTS_SWEPT = Counter("carts_swept_total", "Expired cart rows removed by the sweep")

_TIMER_KEY = "_cart_query_started"


def _statement_kind(statement: str) -> str:
    word = statement.lstrip().split(None, 1)[0].upper() if statement.strip() else ""
    return word if word in ("SELECT", "INSERT", "UPDATE", "DELETE") else "OTHER"


def _error_code(resp) -> str:
    if not resp.is_json:
        return ""
    body = resp.get_json(silent=True)
    return str(body.get("code") or "") if isinstance(body, dict) else ""


def init_app(app):
    """Time cart storage queries and count error responses."""
    with app.app_context():
        engine = db.engine

    @event.listens_for(engine, "before_cursor_execute")
    def _started(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault(_TIMER_KEY, []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def _finished(conn, cursor, statement, parameters, context, executemany):
        started = conn.info[_TIMER_KEY].pop()
        DB_QUERY_DURATION.labels(_statement_kind(statement)).observe(time.perf_counter() - started)

    @app.after_request
    def _count_errors(resp):
        if resp.status_code >= 400:
            ERROR_COUNTER.labels(
                request.endpoint or "unknown", request.method, resp.status_code, _error_code(resp)
            ).inc()
        return resp
