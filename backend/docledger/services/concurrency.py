# Overview: Locking and retry helpers shared by the write paths.

from __future__ import annotations

import logging
import time
import zlib

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import ValuationLock

logger = logging.getLogger(__name__)

# Lock waits, deadlocks, optimistic version clashes and insert races on
# unique keys all resolve by replaying the whole transaction.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query, *, read: bool = False):
    """
    Apply row-level locking for critical operations.

    read=True asks for a shared lock (FOR SHARE) where the backend has one.
    NOTE: SQLite ignores SELECT ... FOR UPDATE; its database-level write lock
    serializes writers instead.
    """
    return query.with_for_update(read=read)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=(OperationalError, StaleDataError)):
    """
    Execute a DB operation with retry on concurrency-related failures.

    The session is rolled back before each retry, so func must rebuild all
    of its state from scratch.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying after %s (attempt %d of %d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def _advisory_key(org_id: int, year: int) -> int:
    return zlib.crc32(f"valuation:{org_id}:{year}".encode())


def lock_valuation_year(org_id: int, year: int, *, exclusive: bool) -> ValuationLock:
    """
    Take the (tenant, year) valuation lock for the current transaction.

    Finalizations take it shared so they can run side by side; a rebuild
    takes it exclusive. On PostgreSQL a transaction-scoped advisory lock is
    taken as well, so the first rebuild of a year is covered before its
    anchor row exists.
    """
    if db.session.get_bind().dialect.name == "postgresql":
        fn = "pg_advisory_xact_lock" if exclusive else "pg_advisory_xact_lock_shared"
        db.session.execute(text(f"SELECT {fn}(:key)"), {"key": _advisory_key(org_id, year)})

    query = db.session.query(ValuationLock).filter_by(org_id=org_id, year=year)
    row = lock_for_update(query, read=not exclusive).first()
    if row is None:
        row = ValuationLock(org_id=org_id, year=year)
        db.session.add(row)
        db.session.flush()
        row = lock_for_update(query, read=not exclusive).first()
    return row
