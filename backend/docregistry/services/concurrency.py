# Overview: Service-layer helpers for transaction retry and row locking.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InvalidTransition, NumberingConflict
from ..extensions import db


# Failures that mean "another transaction got there first"; the unit of work is replayed from scratch.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, NumberingConflict)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and NumberingConflict (lost counter
    insert race). The session is rolled back before every retry, so ``func``
    must build its whole unit of work (and commit it) on each call.
    Any other exception also rolls the session back before propagating.
    """
    if attempts is None:
        attempts = current_app.config.get("NUMBERING_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = current_app.config.get("NUMBERING_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, StaleDataError):
                    raise InvalidTransition(
                        "Record was modified by a concurrent request; reload and retry"
                    ) from exc
                raise
            current_app.logger.warning(
                "Concurrent update detected (%s), retrying attempt %d/%d",
                type(exc).__name__, attempt + 2, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
