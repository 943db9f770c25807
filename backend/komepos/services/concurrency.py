# Overview: Locking and retry helpers shared by every commit path.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    On SQLite the version_id columns and unique indexes carry the guarantee.
    """
    return query.with_for_update()


def default_attempts() -> int:
    try:
        return int(current_app.config.get("COMMIT_RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    `func` must be a complete transaction: it adds, flushes and commits on
    its own. Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) after rolling back. Any other exception
    rolls back and propagates untouched.
    """
    attempts = attempts or default_attempts()
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying unit of work after %s (attempt %d of %d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
