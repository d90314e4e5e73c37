# Overview: Serialized command execution for every engine write.

from __future__ import annotations

import threading
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# One logical writer: carts, holds, stock, customers, sales, returns and
# the credit ledger are all mutated under this lock.
_WRITE_LOCK = threading.RLock()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_serialized(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one indivisible engine step.

    The step validates, mutates and commits; any exception discards the
    session so a rejected step leaves no partial writes behind.
    """
    with _WRITE_LOCK:
        try:
            return run_with_retry(func, attempts=attempts, backoff_base=backoff_base)
        except Exception:
            db.session.rollback()
            raise


def serialize_requests(wsgi_app):
    """
    WSGI middleware holding the write lock for a whole request.

    In-memory SQLite hands every thread the same connection, so a reader
    tearing down its session would roll back a writer's open transaction.
    The lock spans the app-context teardown as well as the view.
    """
    def _app(environ, start_response):
        with _WRITE_LOCK:
            return wsgi_app(environ, start_response)

    return _app
