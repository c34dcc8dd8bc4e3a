# Overview: Records sales and payments against customer ledgers as single atomic operations.

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..errors import CustomerNotFound, InsufficientStock, OutOfStock
from ..extensions import db
from ..models import Customer, InventoryItem, LedgerTransaction
from ..records import (
    PARTIAL_PAYMENT_NOTE,
    Batch,
    BatchUsage,
    PaymentDetails,
    SaleDetails,
    TransactionType,
)
from ..time_utils import normalize_datetime, utcnow
from ..validation import (
    ValidationError,
    optional_int,
    optional_text,
    require_int,
    require_text,
)
from .allocation_service import allocate
from .concurrency import AtomicOperation, run_atomic

"""
Ledger recording invariants (authoritative)

- customer.balance == sum(SALE.amount) - sum(PAYMENT.amount) over the
  customer's records. Every path that writes a record also writes the
  balance, in the same atomic operation.
- A sale either fulfils every requested bag or writes nothing. Stock checks
  happen after all reads and before the first write.
- A sale with partial_payment_now > 0 writes a second PAYMENT record for that
  amount, linked to the sale. Paying more than the sale total is accepted and
  can leave the balance negative (the shop owes the customer).
- Record ids are generated before the atomic operation so a retried attempt
  writes the same ids.
"""


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class TransactionResult:
    transaction_id: str
    customer_id: str
    type: str
    amount: int
    balance: int
    profit: int = 0
    partial_payment_id: str | None = None
    batches_used: tuple[BatchUsage, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount": self.amount,
            "balance": self.balance,
            "profit": self.profit,
            "partial_payment_id": self.partial_payment_id,
            "batches_used": [usage.to_dict() for usage in self.batches_used],
        }


@dataclass(frozen=True)
class _CustomerSnapshot:
    customer: Customer
    name: str
    balance: int


@dataclass(frozen=True)
class _SaleSnapshot:
    customer: Customer
    customer_name: str
    balance: int
    item: InventoryItem | None
    count: int
    batches: tuple[Batch, ...]


def _parse_type(value) -> TransactionType:
    try:
        return TransactionType(str(value).strip().upper())
    except ValueError:
        raise ValidationError("type must be SALE or PAYMENT")


def _occurred(value) -> datetime:
    try:
        dt = normalize_datetime(value)
    except ValueError:
        raise ValidationError("date must be an ISO-8601 datetime")
    return dt or utcnow()


def _read_customer(op: AtomicOperation, customer_id: str) -> _CustomerSnapshot:
    customer = op.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    return _CustomerSnapshot(customer=customer, name=customer.name, balance=customer.balance)


def build_synthetic_sale(
    *,
    record_id: str,
    customer_id: str,
    customer_name: str,
    amount: int,
    date: datetime,
    opening: bool = False,
    adjustment: bool = False,
    notes: str | None = None,
) -> LedgerTransaction:
    """SALE record with no inventory effect: opening balance or manual adjustment."""
    details = SaleDetails(
        is_opening_balance=opening,
        is_balance_adjustment=adjustment,
        notes=notes,
    )
    return LedgerTransaction(
        id=record_id,
        customer_id=customer_id,
        customer_name=customer_name,
        type=TransactionType.SALE.value,
        amount=amount,
        date=date,
        details=details.to_dict(),
    )


def record_transaction(
    txn_type,
    customer_id,
    product_id=None,
    bags=None,
    price_per_bag=None,
    payment_amount=None,
    partial_payment_now=None,
    notes=None,
    *,
    default_cost: int = 0,
    occurred_at=None,
) -> TransactionResult:
    """
    Record a SALE or PAYMENT for a customer.

    SALE: amount = bags * price_per_bag; inventory for product_id is consumed
    oldest batch first and the sale's profit and batch usage are stored on
    the record. PAYMENT: amount = payment_amount.

    Raises ValidationError for bad input, CustomerNotFound, OutOfStock,
    InsufficientStock, or StoreConflict when concurrent writers exhaust the
    retry budget. On any error nothing is written.
    """
    kind = _parse_type(txn_type)
    customer_id = require_text("customer_id", customer_id, max_length=32)
    notes = optional_text("notes", notes)
    occurred = _occurred(occurred_at)

    if kind is TransactionType.SALE:
        return record_sale(
            customer_id=customer_id,
            product_id=product_id,
            bags=bags,
            price_per_bag=price_per_bag,
            partial_payment_now=partial_payment_now,
            notes=notes,
            default_cost=default_cost,
            occurred_at=occurred,
        )
    return record_payment(
        customer_id=customer_id,
        amount=payment_amount,
        notes=notes,
        occurred_at=occurred,
    )


def record_sale(
    *,
    customer_id: str,
    product_id,
    bags,
    price_per_bag,
    partial_payment_now=None,
    notes: str | None = None,
    default_cost: int = 0,
    occurred_at=None,
) -> TransactionResult:
    customer_id = require_text("customer_id", customer_id, max_length=32)
    product_id = require_text("product_id", product_id, max_length=128)
    notes = optional_text("notes", notes)
    bags = require_int("bags", bags, minimum=1)
    price_per_bag = require_int("price_per_bag", price_per_bag, minimum=1)
    paid_now = optional_int("partial_payment_now", partial_payment_now, minimum=0)
    occurred = _occurred(occurred_at)
    amount = bags * price_per_bag

    sale_id = new_id()
    payment_id = new_id() if paid_now > 0 else None

    def read(op: AtomicOperation) -> _SaleSnapshot:
        item = op.get(InventoryItem, product_id)
        customer = _read_customer(op, customer_id)
        return _SaleSnapshot(
            customer=customer.customer,
            customer_name=customer.name,
            balance=customer.balance,
            item=item,
            count=item.count if item is not None else 0,
            batches=tuple(item.batch_list) if item is not None else (),
        )

    def write(op: AtomicOperation, snap: _SaleSnapshot) -> TransactionResult:
        if snap.item is None:
            raise OutOfStock(product_id)
        if bags > snap.count:
            raise InsufficientStock(snap.count, bags, product_id)

        allocation = allocate(bags, snap.batches, price_per_bag, default_cost=default_cost)
        new_balance = snap.balance + amount - paid_now

        details = SaleDetails(
            brand=product_id,
            bags=bags,
            price_per_bag=price_per_bag,
            profit=allocation.profit,
            batches_used=allocation.consumed,
            notes=notes,
        )
        op.add(LedgerTransaction(
            id=sale_id,
            customer_id=customer_id,
            customer_name=snap.customer_name,
            type=TransactionType.SALE.value,
            amount=amount,
            date=occurred,
            details=details.to_dict(),
        ))
        if payment_id is not None:
            op.add(LedgerTransaction(
                id=payment_id,
                customer_id=customer_id,
                customer_name=snap.customer_name,
                type=TransactionType.PAYMENT.value,
                amount=paid_now,
                date=occurred,
                details=PaymentDetails(
                    notes=PARTIAL_PAYMENT_NOTE,
                    is_partial_payment=True,
                    linked_transaction_id=sale_id,
                ).to_dict(),
            ))
        op.update(snap.customer, balance=new_balance)
        op.update(
            snap.item,
            count=snap.count - bags,
            batches=InventoryItem.encode_batches(allocation.remaining_batches),
            last_updated=utcnow(),
        )
        return TransactionResult(
            transaction_id=sale_id,
            customer_id=customer_id,
            type=TransactionType.SALE.value,
            amount=amount,
            balance=new_balance,
            profit=allocation.profit,
            partial_payment_id=payment_id,
            batches_used=allocation.consumed,
        )

    result = run_atomic(read, write)
    current_app.logger.info(
        "Recorded sale %s: customer=%s brand=%s bags=%d amount=%d paid_now=%d profit=%d",
        sale_id, customer_id, product_id, bags, amount, paid_now, result.profit,
    )
    return result


def record_payment(
    *,
    customer_id: str,
    amount,
    notes: str | None = None,
    occurred_at=None,
) -> TransactionResult:
    customer_id = require_text("customer_id", customer_id, max_length=32)
    amount = require_int("payment_amount", amount, minimum=1)
    notes = optional_text("notes", notes)
    occurred = _occurred(occurred_at)
    payment_id = new_id()

    def read(op: AtomicOperation) -> _CustomerSnapshot:
        return _read_customer(op, customer_id)

    def write(op: AtomicOperation, snap: _CustomerSnapshot) -> TransactionResult:
        new_balance = snap.balance - amount
        op.add(LedgerTransaction(
            id=payment_id,
            customer_id=customer_id,
            customer_name=snap.name,
            type=TransactionType.PAYMENT.value,
            amount=amount,
            date=occurred,
            details=PaymentDetails(notes=notes).to_dict(),
        ))
        op.update(snap.customer, balance=new_balance)
        return TransactionResult(
            transaction_id=payment_id,
            customer_id=customer_id,
            type=TransactionType.PAYMENT.value,
            amount=amount,
            balance=new_balance,
        )

    result = run_atomic(read, write)
    current_app.logger.info(
        "Recorded payment %s: customer=%s amount=%d", payment_id, customer_id, amount
    )
    return result


def record_balance_adjustment(
    customer_id,
    amount,
    notes=None,
    *,
    occurred_at=None,
) -> TransactionResult:
    """
    Add a manual amount to a customer's balance.

    Written as a SALE flagged is_balance_adjustment with no inventory effect,
    so the ledger still sums to the balance. Reductions are recorded as
    payments.
    """
    customer_id = require_text("customer_id", customer_id, max_length=32)
    amount = require_int("amount", amount, minimum=1)
    notes = optional_text("notes", notes)
    occurred = _occurred(occurred_at)
    record_id = new_id()

    def read(op: AtomicOperation) -> _CustomerSnapshot:
        return _read_customer(op, customer_id)

    def write(op: AtomicOperation, snap: _CustomerSnapshot) -> TransactionResult:
        new_balance = snap.balance + amount
        op.add(build_synthetic_sale(
            record_id=record_id,
            customer_id=customer_id,
            customer_name=snap.name,
            amount=amount,
            date=occurred,
            adjustment=True,
            notes=notes,
        ))
        op.update(snap.customer, balance=new_balance)
        return TransactionResult(
            transaction_id=record_id,
            customer_id=customer_id,
            type=TransactionType.SALE.value,
            amount=amount,
            balance=new_balance,
        )

    result = run_atomic(read, write)
    current_app.logger.info(
        "Recorded balance adjustment %s: customer=%s amount=%d", record_id, customer_id, amount
    )
    return result


def get_transaction(transaction_id: str) -> LedgerTransaction | None:
    if not transaction_id:
        return None
    return db.session.get(LedgerTransaction, transaction_id)


def list_recent_transactions(limit: int = 5) -> list[LedgerTransaction]:
    return (
        db.session.query(LedgerTransaction)
        .order_by(LedgerTransaction.date.desc(), LedgerTransaction.id.desc())
        .limit(limit)
        .all()
    )
