"""
Retry for transient database failures at the store boundary.

Only reads issued outside an open unit of work are retried; inside a
transaction a dropped connection loses the pending writes, so the error
propagates and the whole request fails.
"""
import logging
import time
from functools import wraps

from sqlalchemy.exc import DisconnectionError, OperationalError

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, DisconnectionError)


def retry_on_disconnect(method):
    """Retry a store read on connection errors with linear backoff."""
    @wraps(method)
    def wrapper(store, *args, **kwargs):
        attempts = max(store.retry_attempts, 1)
        for attempt in range(1, attempts + 1):
            try:
                return method(store, *args, **kwargs)
            except TRANSIENT_ERRORS as e:
                if store.in_transaction or attempt >= attempts:
                    raise
                logger.warning(
                    "Store read %s failed (attempt %d/%d), retrying: %s",
                    method.__name__, attempt, attempts, e,
                )
                store.session.rollback()
                if store.retry_delay:
                    time.sleep(store.retry_delay * attempt)
    return wrapper
