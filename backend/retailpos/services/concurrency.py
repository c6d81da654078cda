# Overview: Locking, write-transaction and retry helpers shared by the stock, cash-session and sale services.

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockRetryPolicy:
    """
    Bound on how often a conditional stock update that touched zero rows is
    re-attempted before the reservation is reported as InsufficientStock.

    attempts counts the first try: attempts=1 means no retry at all.
    """
    attempts: int = 2
    backoff_seconds: float = 0.05

    @classmethod
    def from_config(cls, config) -> "StockRetryPolicy":
        return cls(
            attempts=max(1, int(config.get("STOCK_RESERVE_RETRY_ATTEMPTS", 2))),
            backoff_seconds=float(config.get("STOCK_RESERVE_RETRY_BACKOFF_SECONDS", 0.05)),
        )

    def sleep(self, attempt: int) -> None:
        if self.backoff_seconds > 0:
            time.sleep(self.backoff_seconds * (2 ** attempt))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the write lock comes from begin_write_transaction() instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Take the database write lock up front for a multi-statement mutation.

    SQLite: issue BEGIN IMMEDIATE so two writers serialize at the start of
    the unit instead of failing with "database is locked" halfway through.
    Skipped when the DBAPI connection already has a transaction open (for
    example after an earlier read in the same request).

    Other engines: no-op; callers lock rows with lock_for_update().
    """
    if db.engine.dialect.name != "sqlite":
        return
    connection = db.session.connection()
    dbapi_connection = connection.connection.dbapi_connection
    if not getattr(dbapi_connection, "in_transaction", False):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError. The session is rolled back before each retry so func()
    always starts from a clean transaction.
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
            logger.warning("Transient DB failure (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
