# Overview: Service-layer operations for inventory; stock receipt, write-off and item administration.

# backend/ricebook/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import InventoryItemNotFound
from ..extensions import db
from ..models import InventoryItem
from ..records import Batch
from ..time_utils import normalize_datetime, to_utc_z, utcnow
from ..validation import ValidationError, require_int, require_text
from .allocation_service import allocate, fifo_order, stock_value
from .concurrency import AtomicOperation, run_atomic
from .ledger_service import new_id
"""
Ricebook Inventory Invariants (authoritative)

Inventory model:
- One InventoryItem per product identifier, created lazily by the first
  stock receipt for that identifier.
- count == sum(batch.count) for every item written with batch tracking.
- Every receipt appends a new Batch(cost, date); batches are never merged.

Administrative actions (no ledger record, no customer balance effect):
- remove_stock consumes oldest batches first and is clamped at zero:
  removing more than is on hand empties the item instead of failing.
- delete_inventory_item removes the item outright. Reversing a sale of a
  deleted item still adjusts the balance but cannot restore stock.
"""


@dataclass(frozen=True)
class StockChange:
    product_id: str
    count: int
    units: int
    batch_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "count": self.count,
            "units": self.units,
            "batch_id": self.batch_id,
        }


@dataclass(frozen=True)
class _ItemSnapshot:
    item: InventoryItem | None
    count: int
    batches: tuple[Batch, ...]


def _read_item(op: AtomicOperation, product_id: str) -> _ItemSnapshot:
    item = op.get(InventoryItem, product_id)
    return _ItemSnapshot(
        item=item,
        count=item.count if item is not None else 0,
        batches=tuple(item.batch_list) if item is not None else (),
    )


def add_stock(
    *,
    product_id,
    bags,
    unit_cost,
    occurred_at=None,
) -> StockChange:
    """Receive `bags` units at `unit_cost` each as a new batch."""
    product_id = require_text("product_id", product_id, max_length=128)
    bags = require_int("bags", bags, minimum=1)
    unit_cost = require_int("unit_cost", unit_cost, minimum=0)
    try:
        acquired = normalize_datetime(occurred_at) or utcnow()
    except ValueError:
        raise ValidationError("occurred_at must be an ISO-8601 datetime")

    batch_id = new_id()
    batch = Batch(id=batch_id, count=bags, initial_count=bags, cost=unit_cost, date=acquired)

    def write(op: AtomicOperation, snap: _ItemSnapshot) -> StockChange:
        now = utcnow()
        batches = InventoryItem.encode_batches(snap.batches + (batch,))
        if snap.item is None:
            op.add(InventoryItem(id=product_id, count=bags, batches=batches, last_updated=now))
        else:
            op.update(snap.item, count=snap.count + bags, batches=batches, last_updated=now)
        return StockChange(product_id=product_id, count=snap.count + bags, units=bags, batch_id=batch_id)

    change = run_atomic(lambda op: _read_item(op, product_id), write, retry_on_integrity=True)
    current_app.logger.info(
        "Received %d bags of %s at %d (batch %s); on hand %d",
        bags, product_id, unit_cost, batch_id, change.count,
    )
    return change


def remove_stock(*, product_id, bags) -> StockChange:
    """
    Write off up to `bags` units, oldest first.

    Clamped at zero: asking for more than is on hand removes everything.
    """
    product_id = require_text("product_id", product_id, max_length=128)
    bags = require_int("bags", bags, minimum=1)

    def read(op: AtomicOperation) -> _ItemSnapshot:
        snap = _read_item(op, product_id)
        if snap.item is None:
            raise InventoryItemNotFound(product_id)
        return snap

    def write(op: AtomicOperation, snap: _ItemSnapshot) -> StockChange:
        units = min(bags, snap.count)
        allocation = allocate(units, snap.batches, 0)
        op.update(
            snap.item,
            count=snap.count - units,
            batches=InventoryItem.encode_batches(allocation.remaining_batches),
            last_updated=utcnow(),
        )
        return StockChange(product_id=product_id, count=snap.count - units, units=units)

    change = run_atomic(read, write)
    current_app.logger.info(
        "Removed %d of %d requested bags of %s; on hand %d",
        change.units, bags, product_id, change.count,
    )
    return change


def delete_inventory_item(product_id) -> None:
    product_id = require_text("product_id", product_id, max_length=128)

    def read(op: AtomicOperation) -> _ItemSnapshot:
        snap = _read_item(op, product_id)
        if snap.item is None:
            raise InventoryItemNotFound(product_id)
        return snap

    def write(op: AtomicOperation, snap: _ItemSnapshot) -> None:
        op.delete(snap.item)

    run_atomic(read, write)
    current_app.logger.info("Deleted inventory item %s", product_id)


def get_inventory_item(product_id: str) -> InventoryItem | None:
    if not product_id:
        return None
    return db.session.get(InventoryItem, product_id)


def list_inventory() -> list[InventoryItem]:
    return db.session.query(InventoryItem).order_by(InventoryItem.id.asc()).all()


def get_inventory_summary(product_id: str) -> dict:
    item = get_inventory_item(product_id)
    if item is None:
        raise InventoryItemNotFound(product_id)

    batches = fifo_order(item.batch_list)
    live = [b for b in batches if b.count > 0]
    return {
        "product_id": item.id,
        "count": item.count,
        "batch_count": len(live),
        "tracked_units": sum(b.count for b in batches),
        "stock_value": stock_value(batches),
        "oldest_batch_date": to_utc_z(live[0].date) if live else None,
        "last_updated": to_utc_z(item.last_updated),
    }
