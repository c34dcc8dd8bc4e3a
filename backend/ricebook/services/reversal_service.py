# Overview: Reverses (deletes) a ledger record, undoing its balance and inventory effects atomically.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from flask import current_app

from ..errors import MalformedRecord, TransactionNotFound
from ..models import Customer, InventoryItem, LedgerTransaction
from ..records import (
    Batch,
    BatchUsage,
    MalformedDetails,
    SaleDetails,
    TransactionType,
    details_from_dict,
    parse_transaction_type,
)
from ..time_utils import utcnow
from ..validation import require_text
from .concurrency import AtomicOperation, run_atomic

"""
Reversal policy (authoritative)

Balance:
- Reversing a SALE subtracts its amount; reversing a PAYMENT adds it back.
- If the customer no longer exists the balance step is skipped with a
  warning; inventory restoration and deletion still happen.

Inventory (SALE records with tracked bags whose item still exists):
- Each batches_used entry is restored through an ordered fallback chain:
    1. BATCH_ID   the batch with the same id still exists -> add units to it
    2. COST_MATCH a batch with the same unit cost exists   -> add units to it
    3. SYNTHESIZED neither -> new batch with the recorded cost, dated now
- Records written before batch usage was tracked carry no entries; the full
  bag count goes to the most recently dated batch, or to a synthesized batch
  at the brand's default cost when the item has none.
- count is incremented by the record's full bag count in every case.
- Restoration is deterministic but lossy: a batch that was consumed to zero
  and dropped comes back as a cost match or a new batch, not the original.
  Synthesized batch ids derive from the reversed record id so a retried
  attempt produces the same ids.

Deletion:
- The record is deleted in the same atomic operation as the balance and
  inventory writes. A record that is already gone raises TransactionNotFound
  with nothing written.
- A record with no customer_id, an unknown type or an unreadable details
  payload raises MalformedRecord with nothing written.
"""

BATCH_ID = "BATCH_ID"
COST_MATCH = "COST_MATCH"
SYNTHESIZED = "SYNTHESIZED"
LATEST_BATCH = "LATEST_BATCH"


@dataclass(frozen=True)
class Restoration:
    strategy: str
    batch_id: str
    units: int

    def to_dict(self) -> dict:
        return {"strategy": self.strategy, "batch_id": self.batch_id, "units": self.units}


@dataclass(frozen=True)
class RestorePlan:
    batches: tuple[Batch, ...]
    restorations: tuple[Restoration, ...] = field(default_factory=tuple)

    @property
    def units(self) -> int:
        return sum(r.units for r in self.restorations)


@dataclass(frozen=True)
class ReversalResult:
    transaction_id: str
    customer_id: str
    type: str
    amount: int
    balance: int | None
    restored_units: int = 0
    restorations: tuple[Restoration, ...] = field(default_factory=tuple)
    # Brand whose stock could not be restored because its item was deleted.
    unrestored_brand: str | None = None

    @property
    def customer_missing(self) -> bool:
        return self.balance is None

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount": self.amount,
            "balance": self.balance,
            "customer_missing": self.customer_missing,
            "restored_units": self.restored_units,
            "restorations": [r.to_dict() for r in self.restorations],
            "unrestored_brand": self.unrestored_brand,
        }


@dataclass(frozen=True)
class _ReversalSnapshot:
    record: LedgerTransaction
    record_type: str
    customer_id: str
    amount: int
    details: object
    customer: Customer | None
    balance: int | None
    item: InventoryItem | None
    count: int
    batches: tuple[Batch, ...]


def plan_restore(
    batches: Sequence[Batch],
    usages: Sequence[BatchUsage],
    bags: int,
    *,
    now,
    synthetic_id_prefix: str,
    default_cost: int = 0,
) -> RestorePlan:
    """
    Work out where restored units go. Pure; the caller writes the result.

    Batches keep their storage order; synthesized batches are appended.
    """
    working = list(batches)
    restorations: list[Restoration] = []
    synthesized = 0

    def _synthesize(cost: int, units: int) -> Restoration:
        nonlocal synthesized
        synthesized += 1
        batch_id = f"{synthetic_id_prefix}-r{synthesized}"
        working.append(Batch(id=batch_id, count=units, initial_count=units, cost=cost, date=now))
        return Restoration(SYNTHESIZED, batch_id, units)

    def _add_to(index: int, strategy: str, units: int) -> Restoration:
        batch = working[index]
        working[index] = batch.with_count(batch.count + units)
        return Restoration(strategy, batch.id, units)

    if usages:
        for usage in usages:
            if usage.count <= 0:
                continue
            by_id = next(
                (i for i, b in enumerate(working) if usage.batch_id and b.id == usage.batch_id),
                None,
            )
            if by_id is not None:
                restorations.append(_add_to(by_id, BATCH_ID, usage.count))
                continue
            by_cost = next((i for i, b in enumerate(working) if b.cost == usage.cost), None)
            if by_cost is not None:
                restorations.append(_add_to(by_cost, COST_MATCH, usage.count))
                continue
            restorations.append(_synthesize(usage.cost, usage.count))
    elif bags > 0:
        if working:
            latest = max(range(len(working)), key=lambda i: working[i].date)
            restorations.append(_add_to(latest, LATEST_BATCH, bags))
        else:
            restorations.append(_synthesize(default_cost, bags))

    return RestorePlan(batches=tuple(working), restorations=tuple(restorations))


def reverse_transaction(transaction, *, default_cost: int = 0) -> ReversalResult:
    """
    Delete a ledger record and undo everything it did, as one atomic operation.

    `transaction` is a record id or a LedgerTransaction the caller already
    holds; a held record without customer_id is rejected before any read.
    The record is always re-read inside the operation.

    default_cost prices a synthesized batch when a pre-tracking sale is
    reversed into an item that has no batches.
    """
    if isinstance(transaction, LedgerTransaction):
        if not transaction.customer_id:
            raise MalformedRecord(transaction.id)
        transaction_id = transaction.id
    else:
        transaction_id = require_text("transaction_id", transaction, max_length=32)

    def read(op: AtomicOperation) -> _ReversalSnapshot:
        record = op.get(LedgerTransaction, transaction_id)
        if record is None:
            raise TransactionNotFound(transaction_id)
        if not record.customer_id:
            raise MalformedRecord(transaction_id)

        try:
            kind = parse_transaction_type(record.type)
            details = details_from_dict(record.type, record.details)
        except MalformedDetails as exc:
            raise MalformedRecord(transaction_id, reason=str(exc))

        customer = op.get(Customer, record.customer_id)

        item = None
        if isinstance(details, SaleDetails) and details.brand:
            item = op.get(InventoryItem, details.brand)

        return _ReversalSnapshot(
            record=record,
            record_type=kind.value,
            customer_id=record.customer_id,
            amount=record.amount,
            details=details,
            customer=customer,
            balance=customer.balance if customer is not None else None,
            item=item,
            count=item.count if item is not None else 0,
            batches=tuple(item.batch_list) if item is not None else (),
        )

    def write(op: AtomicOperation, snap: _ReversalSnapshot) -> ReversalResult:
        new_balance = None
        if snap.customer is not None:
            if snap.record_type == TransactionType.SALE.value:
                new_balance = snap.balance - snap.amount
            else:
                new_balance = snap.balance + snap.amount

        plan = None
        details = snap.details
        if isinstance(details, SaleDetails) and details.bags and snap.item is not None:
            plan = plan_restore(
                snap.batches,
                details.batches_used,
                details.bags,
                now=utcnow(),
                synthetic_id_prefix=transaction_id,
                default_cost=default_cost,
            )

        if snap.customer is not None:
            op.update(snap.customer, balance=new_balance)
        if plan is not None:
            op.update(
                snap.item,
                count=snap.count + details.bags,
                batches=InventoryItem.encode_batches(plan.batches),
                last_updated=utcnow(),
            )
        op.delete(snap.record)

        return ReversalResult(
            transaction_id=transaction_id,
            customer_id=snap.customer_id,
            type=snap.record_type,
            amount=snap.amount,
            balance=new_balance,
            restored_units=details.bags if plan is not None else 0,
            restorations=plan.restorations if plan is not None else (),
            unrestored_brand=(
                details.brand
                if isinstance(details, SaleDetails) and details.affects_inventory and plan is None
                else None
            ),
        )

    result = run_atomic(read, write)

    if result.customer_missing:
        current_app.logger.warning(
            "Reversed %s %s for missing customer %s; balance reversal skipped",
            result.type, transaction_id, result.customer_id,
        )
    if result.unrestored_brand:
        current_app.logger.warning(
            "Reversed sale %s but inventory item %s no longer exists; stock not restored",
            transaction_id, result.unrestored_brand,
        )
    current_app.logger.info(
        "Reversed %s %s: customer=%s amount=%d restored_units=%d",
        result.type, transaction_id, result.customer_id, result.amount, result.restored_units,
    )
    return result
