# Overview: Transaction boundaries and row locking shared by every mutating service.

from __future__ import annotations

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict, PosError, PosSystemError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Optimistic version_id columns catch what the lock cannot.
    """
    return query.with_for_update()


@contextmanager
def atomic(operation: str):
    """
    One logical operation, one transaction.

    Commits on success. On failure the session is rolled back so no ledger
    is left partially written:
    - PosError (expected business failure): re-raised unchanged
    - StaleDataError / IntegrityError (another writer won): ConcurrencyConflict
    - anything else: logged, wrapped as PosSystemError with the cause chained

    Usage:
        with atomic("complete order"):
            ...
    """
    try:
        yield db.session
        db.session.commit()
    except PosError:
        db.session.rollback()
        raise
    except (StaleDataError, IntegrityError) as exc:
        db.session.rollback()
        current_app.logger.warning("Concurrent update rejected during %s: %s", operation, exc)
        raise ConcurrencyConflict(
            "The record was changed by another request. Refresh and try again.",
            details={"operation": operation},
        ) from exc
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Unexpected failure during %s", operation)
        raise PosSystemError(
            "An unexpected error occurred. No changes were saved.",
            details={"operation": operation},
        ) from exc


@contextmanager
def unit_of_work(operation: str, *, commit: bool = True):
    """
    Own the transaction (commit=True) or write into the caller's (commit=False).

    Ledger functions take a commit flag so larger operations such as order
    completion can compose them without intermediate commits. With
    commit=False the work is only flushed; the caller's atomic() decides.
    """
    if not commit:
        yield db.session
        db.session.flush()
        return
    with atomic(operation) as session:
        yield session
