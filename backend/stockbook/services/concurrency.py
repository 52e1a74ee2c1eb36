# Overview: Locking, write-transaction and retry helpers shared by the mutating services.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class RetryableConflict(Exception):
    """Raised when a concurrent writer won a race; the whole operation is re-run."""


RETRYABLE_ERRORS = (OperationalError, StaleDataError, RetryableConflict)


def lock_for_update(query):
    """
    Row-level lock plus a fresh read of the locked rows.

    populate_existing() makes the session overwrite any cached instance with
    the database values, so callers never validate against a stale quantity.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock there instead.
    """
    return query.with_for_update().populate_existing()


def begin_write() -> None:
    """Open the write transaction eagerly so read-check-write runs under the lock."""
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation atomically, retrying concurrency failures.

    - OperationalError (busy/deadlock), StaleDataError (version_id mismatch)
      and RetryableConflict roll back and re-run func from scratch.
    - Any other exception rolls back and propagates, so a failed operation
      never leaves partial writes in the session.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
