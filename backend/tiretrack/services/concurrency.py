# Overview: Row locking and optimistic-conflict retry for tire transitions.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import Inconsistent, StorageUnavailable


class ConcurrentInsert(Exception):
    """Another transaction inserted the same unique row first."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id column on tires still catches conflicting writers there.
    """
    return query.with_for_update()


def rollback_or_fail(reason: str) -> None:
    """
    Roll back the current unit of work.

    If the rollback itself fails the registry and the ledger can no longer
    be trusted to agree, so this is surfaced as Inconsistent.
    """
    try:
        db.session.rollback()
    except SQLAlchemyError as exc:
        current_app.logger.critical("Rollback failed after %s; tire state may be inconsistent", reason)
        raise Inconsistent(f"rollback failed after {reason}") from exc


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a read-validate-write unit of work with retry on concurrency failures.

    Retries on StaleDataError (optimistic locking conflicts),
    ConcurrentInsert and OperationalError (deadlocks, lock timeouts). Every retry re-runs func
    from scratch; nothing read by a failed attempt is reused.
    Exhausted retries surface as StorageUnavailable.
    Any other exception rolls back and propagates unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSITION_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TRANSITION_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (StaleDataError, ConcurrentInsert) as exc:
            rollback_or_fail("version conflict")
            if attempt >= attempts - 1:
                raise StorageUnavailable("tire was modified concurrently") from exc
            current_app.logger.warning("Version conflict, retrying (attempt %d/%d)", attempt + 1, attempts)
        except OperationalError as exc:
            rollback_or_fail("storage error")
            if attempt >= attempts - 1:
                raise StorageUnavailable(str(exc.orig) if exc.orig else str(exc)) from exc
            current_app.logger.warning("Storage error, retrying (attempt %d/%d)", attempt + 1, attempts)
        except Exception:
            rollback_or_fail("failed transition")
            raise
        time.sleep(backoff_base * (2 ** attempt))
