# Overview: Service-layer helpers for transactions, row locking and boundary-level retry.

from __future__ import annotations

import time
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientStoreFailure
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    populate_existing() makes the locked read overwrite any stale copy
    already sitting in the identity map.
    """
    return query.with_for_update().populate_existing()


@contextmanager
def unit_of_work(*, commit: bool = True):
    """
    Run a block as one atomic unit on the current session.

    commit=True: this block owns the transaction. Commit on success, roll
    back everything on any exception.
    commit=False: the block joins an enclosing unit. Flush on success and
    leave commit/rollback to the owner.

    Store-level concurrency failures surface as TransientStoreFailure.
    """
    try:
        yield db.session
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except (OperationalError, StaleDataError) as exc:
        if commit:
            db.session.rollback()
        current_app.logger.warning("Transient store failure: %s", exc)
        raise TransientStoreFailure(f"Transient store failure: {exc.__class__.__name__}") from exc
    except Exception:
        if commit:
            db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute an operation with retry on TransientStoreFailure.

    Only callers (routes, CLI) use this. Every core mutation rolls back
    fully on failure, so re-running it with the same inputs is safe.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except TransientStoreFailure as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_with_configured_retry(func):
    """run_with_retry using the app's TRANSIENT_RETRY_* settings."""
    return run_with_retry(
        func,
        attempts=current_app.config.get("TRANSIENT_RETRY_ATTEMPTS", 3),
        backoff_base=current_app.config.get("TRANSIENT_RETRY_BACKOFF", 0.1),
    )
