import logging
from celery import shared_task
from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from cartapi.metrics import CARTS_SWEPT

logger = logging.getLogger(__name__)


def _with_app(fn):
    if has_app_context():
        return fn(current_app)
    # Workers have no app context of their own.
    from wsgi import app
    with app.app_context():
        return fn(app)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def sweep_expired_carts_task(self) -> int:
    """Remove expired carts. A failed sweep is logged and left to the next tick."""

    def _sweep(app):
        try:
            removed = app.extensions["cart"].store.sweep_expired()
        except SQLAlchemyError as e:
            logger.error("Cart sweep failed: %s", e)
            return 0
        CARTS_SWEPT.inc(removed)
        return removed

    return _with_app(_sweep)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def transfer_sessions_task(self, batch_size: int = 100) -> int:
    """Copy legacy sessions into the cart table; a no-op once completed."""

    def _transfer(app):
        ctx = app.extensions["cart"]
        try:
            return ctx.store.transfer(rebuild=ctx.engine.rebuild, batch_size=batch_size)
        except SQLAlchemyError as e:
            logger.warning("Session transfer interrupted: %s", e)
            raise self.retry(exc=e)

    return _with_app(_transfer)
