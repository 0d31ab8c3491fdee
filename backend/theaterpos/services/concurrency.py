# Overview: Retry and transaction helpers for whole-document read-modify-write operations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import PersistenceError


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks) and StaleDataError (version_id
    conflict: another writer replaced the document after we read it).
    IntegrityError is retried too: two writers creating the same theater's
    document collide on the unique theater_id and the loser must re-read.
    `func` must re-read everything it writes, since each retry starts from a
    rolled-back session.
    """
    if attempts is None:
        attempts = current_app.config.get("WRITE_RETRY_ATTEMPTS", 3)
    attempts = max(1, attempts)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, IntegrityError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.info("Write conflict, retrying (attempt %d of %d)", attempt + 2, attempts)
            time.sleep(backoff_base * (2 ** attempt))


def run_write(func, *, what: str, attempts: int | None = None):
    """
    Run a committing operation as one unit: either its commit succeeds or the
    session is rolled back and the caller sees the error.

    Database failures (including conflicts that outlast the retries) become
    PersistenceError; domain errors propagate unchanged.
    """
    try:
        return run_with_retry(func, attempts=attempts)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save %s", what)
        raise PersistenceError(f"Failed to save {what}") from exc
    except Exception:
        db.session.rollback()
        raise
