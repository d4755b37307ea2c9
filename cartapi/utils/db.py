from contextlib import contextmanager
import logging
from sqlalchemy.exc import IntegrityError, OperationalError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed
from models import db


@contextmanager
def transactional(message="DB transaction failed"):
    """Context manager to wrap a database transaction."""
    try:
        yield
        db.session.commit()
    except Exception as e:
        logging.error(f"{message}: %s", e, exc_info=True)
        db.session.rollback()
        raise


def storage_retry():
    """Retry a write once on transient database failures."""
    return retry(
        reraise=True,
        stop=stop_after_attempt(2),
        wait=wait_fixed(0.05),
        retry=retry_if_exception_type((OperationalError, IntegrityError)),
    )
