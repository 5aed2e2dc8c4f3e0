# Overview: Service-layer operations for concurrency; optimistic retry and row locking.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentModification
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id check on Bill/BillSplit is what actually guards races.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a unit of work as one transaction, retrying on a lost race.

    `func` must read, validate and write everything it needs and commit
    once. Any exception rolls the session back so nothing partially
    applies. StaleDataError (version_id mismatch) and OperationalError
    (lock contention) are retried; after the last attempt they surface as
    ConcurrentModification. Domain errors are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("CONCURRENCY_RETRY_ATTEMPTS", 2)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Concurrent modification not resolved after %d attempt(s): %s", attempts, exc
                )
                raise ConcurrentModification(
                    "Record was modified by another request; reload and retry"
                ) from exc
            current_app.logger.info("Optimistic check lost (attempt %d), retrying", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
