# Overview: Guarded updates, row locking and retry helpers shared by order, funding and rate-limit writes.

"""
Concurrency Primitives

Pipeline runs for the same order can overlap (payment webhook retry, cron
re-drive, admin force-process). Every state change that must happen at most
once is written as a guarded UPDATE: the WHERE clause carries the
precondition and the affected row count says whether this caller won.
"""

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def guarded_update(model, *conditions, values: dict, bump_version: bool = False) -> int:
    """
    UPDATE model SET values WHERE conditions, without touching the session.

    Args:
        bump_version: also increment version_id so ORM copies loaded before
            the update fail their own flush instead of overwriting it

    Returns:
        Number of rows changed (0 means the precondition did not hold)
    """
    values = dict(values)
    if bump_version:
        values[model.version_id] = model.version_id + 1
    return (
        db.session.query(model)
        .filter(*conditions)
        .update(values, synchronize_session=False)
    )


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the funding pool row.

    NOTE: SQLite ignores FOR UPDATE (the database-wide write lock serializes
    writers instead); Postgres honors it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation, retrying lock and version conflicts.

    func must be safe to re-run from scratch: the session is rolled back
    before each retry.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt == attempts:
                raise
            current_app.logger.warning(
                "Retrying after concurrency conflict (attempt %s/%s): %s", attempt, attempts, exc
            )
            time.sleep(backoff_base * (2 ** (attempt - 1)))
