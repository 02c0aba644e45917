# Overview: Service-layer helpers for atomic units; locking, serialization and bounded retry.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the unit is serialized by begin_serialized() instead.
    """
    return query.with_for_update()


def begin_serialized() -> None:
    """
    Take the database write lock up front on SQLite.

    WHY: pysqlite defers BEGIN until the first write, so two units can both
    read "no active session" before either writes. BEGIN IMMEDIATE makes the
    second unit wait until the first commits, then read the committed state.

    No-op on other dialects and when a transaction is already open (the
    caller is composing into an outer unit).
    """
    if db.engine.dialect.name != "sqlite":
        return
    dbapi_conn = db.session.connection().connection.dbapi_connection
    if getattr(dbapi_conn, "in_transaction", False):
        return
    db.session.execute(text("BEGIN IMMEDIATE"))


def _retry_settings() -> tuple[int, float]:
    if has_app_context():
        return (
            int(current_app.config.get("RETRY_ATTEMPTS", 3)),
            float(current_app.config.get("RETRY_BACKOFF_SECONDS", 0.1)),
        )
    return 3, 0.1


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation as one atomic unit with retry on concurrency failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other failure rolls the session
    back and propagates unchanged, so nothing from the unit is persisted.
    """
    default_attempts, default_backoff = _retry_settings()
    attempts = attempts or default_attempts
    backoff_base = default_backoff if backoff_base is None else backoff_base

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
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
