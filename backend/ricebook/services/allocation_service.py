# Overview: FIFO batch consumption and per-sale profit; pure functions, no database access.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from ..records import Batch, BatchUsage
from ..validation import ValidationError

"""
Allocation rules (authoritative)

- Oldest stock first: batches are matched in ascending acquisition date.
  The sort is stable, so batches with equal dates are consumed in storage
  order.
- Each visited batch gives min(batch.count, remaining) units. Profit for
  those units is (sell_price - batch.cost) * units; the usage trail records
  (batch_id, units, batch.cost).
- A batch consumed to zero is dropped; a partially consumed one keeps its
  reduced count; unvisited batches pass through unchanged. The remaining
  list keeps the caller's storage order: batches are filtered and have their
  counts reduced, never reordered.
- Stock that predates batch tracking has no batches. Units not covered by
  batches are drawn from an implicit batch at the product's default cost and
  recorded with batch_id=None, so profit is still reported.
- Sufficiency against the item's total count is checked by the caller before
  allocation; this module never rejects for lack of stock.
"""


@dataclass(frozen=True)
class AllocationResult:
    consumed: tuple[BatchUsage, ...] = field(default_factory=tuple)
    profit: int = 0
    remaining_batches: tuple[Batch, ...] = field(default_factory=tuple)

    @property
    def units(self) -> int:
        return sum(usage.count for usage in self.consumed)


def fifo_order(batches: Sequence[Batch]) -> list[Batch]:
    """Batches sorted oldest first; sorted() is stable so ties keep storage order."""
    return sorted(batches, key=lambda batch: batch.date)


def allocate(
    requested: int,
    batches: Sequence[Batch],
    sell_price: int,
    *,
    default_cost: int = 0,
) -> AllocationResult:
    if requested < 0:
        raise ValidationError("requested quantity cannot be negative")

    if requested == 0:
        return AllocationResult(remaining_batches=tuple(batches))

    batches = list(batches)
    remaining = requested
    profit = 0
    consumed: list[BatchUsage] = []
    taken: dict[int, int] = {}

    for index in sorted(range(len(batches)), key=lambda i: batches[i].date):
        batch = batches[index]
        if remaining == 0:
            break
        if batch.count <= 0:
            continue
        units = min(batch.count, remaining)
        profit += (sell_price - batch.cost) * units
        consumed.append(BatchUsage(batch_id=batch.id, count=units, cost=batch.cost))
        taken[index] = units
        remaining -= units

    if remaining > 0:
        profit += (sell_price - default_cost) * remaining
        consumed.append(BatchUsage(batch_id=None, count=remaining, cost=default_cost))

    survivors = []
    for index, batch in enumerate(batches):
        units = taken.get(index, 0)
        if units == 0:
            survivors.append(batch)
        elif batch.count > units:
            survivors.append(batch.with_count(batch.count - units))

    return AllocationResult(
        consumed=tuple(consumed),
        profit=profit,
        remaining_batches=tuple(survivors),
    )


def stock_value(batches: Sequence[Batch]) -> int:
    """Cost of the units still held in `batches`."""
    return sum(batch.count * batch.cost for batch in batches)
