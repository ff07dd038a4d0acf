# Overview: Row locking and retry helpers for units of work that touch shared rows.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Failures that mean "someone else got there first": retry the whole unit.
# IntegrityError covers two writers creating the same sequence row.
RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id column still catches lost updates there.
    """
    return query.with_for_update()


def retry_settings() -> tuple[int, float]:
    """(attempts, backoff_base) from app config."""
    attempts = int(current_app.config.get("TRANSITION_RETRY_ATTEMPTS", 3))
    backoff = float(current_app.config.get("TRANSITION_RETRY_BACKOFF", 0.1))
    return max(1, attempts), max(0.0, backoff)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a unit of work with retry on concurrency-related failures.

    func must be safe to re-run from scratch: on a retryable failure the
    session is rolled back and func is called again after an exponential
    backoff. Anything else propagates to the caller untouched.
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
            current_app.logger.warning(
                "Retrying unit of work after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
