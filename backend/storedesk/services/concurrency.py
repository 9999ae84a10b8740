# Overview: Service-layer operations for concurrency; encapsulates business logic and database work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, statement timeouts) and
    StaleDataError (optimistic locking conflicts on version_id columns).
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


def _apply_transaction_timeout() -> None:
    seconds = current_app.config.get("TRANSACTION_TIMEOUT_SECONDS")
    if not seconds:
        return
    if db.engine.dialect.name != "postgresql":
        return
    db.session.execute(text(f"SET LOCAL statement_timeout = {int(seconds) * 1000}"))


def run_in_transaction(func, *, attempts: int = 3):
    """
    Run func() as one unit of work: commit on success, rollback on any error.

    Concurrency failures are retried through run_with_retry; every other
    exception propagates unchanged after the rollback.
    """
    def _op():
        try:
            _apply_transaction_timeout()
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts)
