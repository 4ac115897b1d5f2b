# Overview: Locking and retry helpers shared by the counter ledger and the business flows.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


logger = logging.getLogger(__name__)

# session.info key holding how many ledger transaction scopes are open on that session
TRANSACTION_DEPTH_KEY = "coinop.transaction_depth"

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def is_retryable(exc: BaseException) -> bool:
    """Deadlocks, lock timeouts and optimistic-locking conflicts, raw or wrapped."""
    return isinstance(exc, RETRYABLE_ERRORS) or isinstance(exc.__cause__, RETRYABLE_ERRORS)


def run_with_retry(func, *, session, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Only the outermost transaction scope retries; inside an open scope the
    failure propagates so the owner of the scope can roll back as a whole.
    """
    if session.info.get(TRANSACTION_DEPTH_KEY, 0):
        return func()

    for attempt in range(attempts):
        try:
            return func()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying after concurrency failure (attempt %d of %d): %s",
                attempt + 1, attempts, exc,
            )
            time.sleep(backoff_base * (2 ** attempt))
