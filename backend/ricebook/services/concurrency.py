# Overview: Atomic multi-entity read-modify-write for the ledger store, with optimistic retry.

from __future__ import annotations

import time
from typing import Any, Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ReadAfterWriteError, StoreConflict
from ..extensions import db
from ..models import Customer, InventoryItem, LedgerTransaction
from ..notifications import ChangeSet

"""
Ledger store contract

- Every mutable entity maps a version_id_col. An UPDATE/DELETE whose row
  version moved since it was read matches zero rows and SQLAlchemy raises
  StaleDataError at flush; that is a conflicting concurrent commit.
- run_atomic(read, write) runs read(op) to build a snapshot and then
  write(op, snapshot) to stage writes, then commits. On conflict the session
  is rolled back and BOTH functions run again from scratch, so they must not
  have effects outside the store and must generate any ids before the call.
- Reads must complete before the first write. AtomicOperation.get() after a
  staged write raises ReadAfterWriteError instead of silently reading a
  half-modified state.
- Any other exception rolls back the attempt and propagates unchanged: no
  partial write set is ever committed.
"""

T = TypeVar("T")

CONFLICT_ERRORS = (StaleDataError, OperationalError)


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if attempts is None:
        attempts = int(current_app.config.get("LEDGER_RETRY_ATTEMPTS", 5))
    if backoff_base is None:
        backoff_base = float(current_app.config.get("LEDGER_RETRY_BACKOFF", 0.05))
    return max(1, attempts), max(0.0, backoff_base)


def run_with_retry(
    func: Callable[[], T],
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    conflict_errors: tuple = CONFLICT_ERRORS,
) -> T:
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks) and StaleDataError (optimistic
    locking conflicts). When the budget is exhausted raises StoreConflict,
    which callers surface as a retryable error.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except conflict_errors as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Ledger operation abandoned after %d conflicting attempts: %s", attempts, exc
                )
                raise StoreConflict(attempts) from exc
            current_app.logger.info("Ledger write conflict (attempt %d/%d), retrying", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise StoreConflict(attempts)


class AtomicOperation:
    """Handle given to the read and write halves of one atomic attempt."""

    def __init__(self, session):
        self.session = session
        self.changes = ChangeSet()
        self._writes = 0

    @property
    def has_writes(self) -> bool:
        return self._writes > 0

    def get(self, model, key):
        if self._writes:
            raise ReadAfterWriteError(
                f"read of {model.__name__} {key!r} issued after a write in the same atomic operation"
            )
        if key is None:
            return None
        # populate_existing: never answer from an identity-map copy loaded
        # before this attempt began.
        return self.session.get(model, key, populate_existing=True)

    def add(self, obj) -> Any:
        self.session.add(obj)
        self._record(obj)
        return obj

    def update(self, obj, **fields) -> Any:
        for key, value in fields.items():
            setattr(obj, key, value)
        self._record(obj)
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)
        self._record(obj)

    def _record(self, obj) -> None:
        self._writes += 1
        if isinstance(obj, Customer):
            self.changes.customers.add(obj.id)
        elif isinstance(obj, InventoryItem):
            self.changes.inventory.add(obj.id)
        elif isinstance(obj, LedgerTransaction):
            if obj.customer_id:
                self.changes.transactions.add(obj.customer_id)


def run_atomic(
    read: Callable[[AtomicOperation], Any],
    write: Callable[[AtomicOperation, Any], T],
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on_integrity: bool = False,
) -> T:
    """
    Run read-then-write as one all-or-nothing unit under optimistic concurrency.

    retry_on_integrity is for operations that lazily insert a row they read
    as missing: two writers that both insert it collide on the primary key,
    and the loser must re-read and update instead. Everywhere else an
    IntegrityError is a permanent constraint violation and propagates after
    rollback without a retry.
    """
    conflict_errors = CONFLICT_ERRORS
    if retry_on_integrity:
        conflict_errors = CONFLICT_ERRORS + (IntegrityError,)
    committed: dict[str, ChangeSet] = {}

    def _op():
        op = AtomicOperation(db.session)
        snapshot = read(op)
        result = write(op, snapshot)
        db.session.commit()
        committed["changes"] = op.changes
        return result

    result = run_with_retry(
        _op,
        attempts=attempts,
        backoff_base=backoff_base,
        conflict_errors=conflict_errors,
    )
    committed["changes"].publish()
    return result
