# Overview: Service-layer helpers for concurrency; retry and row locking.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError

logger = logging.getLogger(__name__)

RETRYABLE_DB_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    SQLite writers are serialized by BEGIN IMMEDIATE in the unit of work.
    """
    return query.with_for_update()


def run_with_retry(
    func,
    *,
    retry_on: tuple = RETRYABLE_DB_ERRORS,
    attempts: int = 3,
    backoff_base: float = 0.1,
):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, busy database) and StaleDataError
    (optimistic locking conflicts). `func` must roll back its own work on
    failure; the unit of work does. When every attempt loses the race the
    caller gets ConcurrencyConflictError, never a partial result.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts - 1:
                raise ConcurrencyConflictError(
                    "Concurrent update conflict; please retry",
                    details={"attempts": attempts},
                ) from exc
            logger.warning("Retrying after concurrency failure (attempt %s/%s): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
