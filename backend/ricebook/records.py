"""
Value objects shared by the ledger models and services.

Batches and sale/payment details are persisted as JSON on their owning rows
(inventory_items.batches, ledger_transactions.details). These dataclasses are
the typed view of that JSON; rows written by older versions may lack fields,
so every from_dict() defaults what is missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from ricebook.time_utils import EPOCH, parse_iso_datetime, to_utc_z


class TransactionType(str, Enum):
    SALE = "SALE"
    PAYMENT = "PAYMENT"


PARTIAL_PAYMENT_NOTE = "Partial payment for sale"


@dataclass(frozen=True)
class Batch:
    """A lot of stock with its own unit cost and acquisition date."""

    id: str
    count: int
    initial_count: int
    cost: int
    date: datetime

    def with_count(self, count: int) -> "Batch":
        return replace(self, count=count)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "count": self.count,
            "initial_count": self.initial_count,
            "cost": self.cost,
            "date": to_utc_z(self.date),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Batch":
        count = int(data.get("count") or 0)
        initial = data.get("initial_count", data.get("initialCount"))
        date = data.get("date")
        if isinstance(date, str):
            date = parse_iso_datetime(date)
        return cls(
            id=str(data.get("id") or ""),
            count=count,
            initial_count=int(initial) if initial is not None else count,
            cost=int(data.get("cost") or 0),
            date=date or EPOCH,
        )


@dataclass(frozen=True)
class BatchUsage:
    """
    Audit entry: `count` units were taken from batch `batch_id` at `cost`.

    batch_id is None when the units came from the implicit default-cost batch
    of an item that has no batch history.
    """

    batch_id: Optional[str]
    count: int
    cost: int

    def to_dict(self) -> dict:
        return {"batch_id": self.batch_id, "count": self.count, "cost": self.cost}

    @classmethod
    def from_dict(cls, data: dict) -> "BatchUsage":
        batch_id = data.get("batch_id", data.get("batchId"))
        return cls(
            batch_id=str(batch_id) if batch_id else None,
            count=int(data.get("count") or 0),
            cost=int(data.get("cost") or 0),
        )


@dataclass(frozen=True)
class SaleDetails:
    brand: Optional[str] = None
    bags: Optional[int] = None
    price_per_bag: Optional[int] = None
    profit: int = 0
    batches_used: tuple[BatchUsage, ...] = field(default_factory=tuple)
    is_opening_balance: bool = False
    is_balance_adjustment: bool = False
    notes: Optional[str] = None

    @property
    def affects_inventory(self) -> bool:
        return bool(self.brand) and bool(self.bags)

    def to_dict(self) -> dict:
        return {
            "brand": self.brand,
            "bags": self.bags,
            "price_per_bag": self.price_per_bag,
            "profit": self.profit,
            "batches_used": [usage.to_dict() for usage in self.batches_used],
            "is_opening_balance": self.is_opening_balance,
            "is_balance_adjustment": self.is_balance_adjustment,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SaleDetails":
        bags = data.get("bags")
        price = data.get("price_per_bag", data.get("pricePerBag"))
        used = data.get("batches_used", data.get("batchesUsed")) or []
        return cls(
            brand=data.get("brand") or None,
            bags=int(bags) if bags is not None else None,
            price_per_bag=int(price) if price is not None else None,
            profit=int(data.get("profit") or 0),
            batches_used=tuple(BatchUsage.from_dict(u) for u in used),
            is_opening_balance=bool(data.get("is_opening_balance", data.get("isOpeningBalance", False))),
            is_balance_adjustment=bool(
                data.get("is_balance_adjustment", data.get("isBalanceAdjustment", False))
            ),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class PaymentDetails:
    notes: Optional[str] = None
    is_partial_payment: bool = False
    linked_transaction_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "notes": self.notes,
            "is_partial_payment": self.is_partial_payment,
            "linked_transaction_id": self.linked_transaction_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PaymentDetails":
        return cls(
            notes=data.get("notes"),
            is_partial_payment=bool(data.get("is_partial_payment", False)),
            linked_transaction_id=data.get("linked_transaction_id"),
        )


TransactionDetails = Union[SaleDetails, PaymentDetails]


class MalformedDetails(ValueError):
    """A stored record whose type or details payload cannot be read."""


def parse_transaction_type(value) -> TransactionType:
    """Case- and whitespace-insensitive; older rows were not always upper-cased."""
    try:
        return TransactionType(str(value or "").strip().upper())
    except ValueError:
        raise MalformedDetails(f"unknown transaction type {value!r}")


def details_from_dict(txn_type: str, data: Optional[dict]) -> TransactionDetails:
    """
    Select the details variant by the record's type discriminator.

    Raises MalformedDetails for an unknown type, a payload that is not a JSON
    object, or fields that cannot be coerced.
    """
    kind = parse_transaction_type(txn_type)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedDetails(f"details must be an object, not {type(data).__name__}")
    try:
        if kind is TransactionType.SALE:
            return SaleDetails.from_dict(data)
        return PaymentDetails.from_dict(data)
    except (AttributeError, TypeError, ValueError) as exc:
        raise MalformedDetails(f"unreadable {kind.value} details: {exc}") from exc


def batches_from_json(raw) -> list[Batch]:
    return [Batch.from_dict(entry) for entry in (raw or [])]


def batches_to_json(batches) -> list[dict]:
    return [batch.to_dict() for batch in batches]
