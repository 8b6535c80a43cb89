# Overview: Transaction helpers for engine writes: row locks, SQLite write locks, and retry on transient failures.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session
from sqlalchemy.orm.exc import StaleDataError

from ..errors import EngineError, Internal


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write(session) -> None:
    """
    Open the unit of work as a writer.

    On SQLite this takes the database write lock up front (BEGIN IMMEDIATE) so
    concurrent writers queue instead of failing a lock upgrade half way through.
    Other backends rely on row locks and conditional updates.
    """
    if isinstance(session, scoped_session):
        session = session()
    if session.get_bind().dialect.name != "sqlite":
        return
    if session.in_transaction():
        return
    session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(session, func, *, attempts: int = 2, backoff_base: float = 0.1):
    """
    Execute one unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Engine errors are business outcomes: the
    unit is rolled back and the error propagates without a retry.
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return func()
        except EngineError:
            session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            if attempt >= attempts - 1:
                raise Internal(
                    "Database operation failed, please retry",
                    {"attempts": attempts, "cause": exc.__class__.__name__},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            session.rollback()
            raise
