# Overview: Customer accounts; creation with opening balance, lookup, search and ledger history.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import or_

from ..errors import CustomerNotFound
from ..extensions import db
from ..models import Customer, LedgerTransaction
from ..time_utils import utcnow
from ..validation import optional_int, optional_text, require_text
from .concurrency import AtomicOperation, run_atomic
from .ledger_service import build_synthetic_sale, new_id


@dataclass(frozen=True)
class _Absent:
    """Snapshot for operations that create a row and read nothing first."""


def create_customer(
    *,
    name,
    phone,
    address=None,
    location=None,
    open_balance=None,
) -> Customer:
    """
    Create a customer account.

    A non-zero opening balance is written as a synthetic SALE flagged
    is_opening_balance in the same atomic operation, so the customer's
    ledger sums to its balance from the start.
    """
    name = require_text("name", name, max_length=128)
    phone = require_text("phone", phone, max_length=32)
    address = optional_text("address", address, max_length=1000)
    location = optional_text("location", location, max_length=64)
    opening = optional_int("open_balance", open_balance, minimum=0)

    customer_id = new_id()
    opening_id = new_id() if opening else None

    def write(op: AtomicOperation, _snap: _Absent) -> str:
        now = utcnow()
        op.add(Customer(
            id=customer_id,
            name=name,
            phone=phone,
            address=address,
            location=location,
            balance=opening,
            created_at=now,
        ))
        if opening_id is not None:
            op.add(build_synthetic_sale(
                record_id=opening_id,
                customer_id=customer_id,
                customer_name=name,
                amount=opening,
                date=now,
                opening=True,
                notes="Opening balance",
            ))
        return customer_id

    run_atomic(lambda op: _Absent(), write)
    current_app.logger.info(
        "Created customer %s (%s) with opening balance %d", customer_id, name, opening
    )
    return db.session.get(Customer, customer_id)


def get_customer(customer_id: str) -> Customer | None:
    if not customer_id:
        return None
    return db.session.get(Customer, customer_id)


def require_customer(customer_id: str) -> Customer:
    customer = get_customer(customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def list_customers(*, search: str | None = None, location: str | None = None) -> list[Customer]:
    """Newest first; `search` matches name (case-insensitive) or phone."""
    q = db.session.query(Customer)
    if location and location != "All":
        q = q.filter(Customer.location == location)
    if search:
        term = search.strip()
        if term:
            q = q.filter(or_(
                Customer.name.ilike(f"%{term}%"),
                Customer.phone.contains(term),
            ))
    return q.order_by(Customer.created_at.desc(), Customer.id.desc()).all()


def list_customer_transactions(customer_id: str) -> list[LedgerTransaction]:
    require_customer(customer_id)
    return (
        db.session.query(LedgerTransaction)
        .filter(LedgerTransaction.customer_id == customer_id)
        .order_by(LedgerTransaction.date.desc(), LedgerTransaction.id.desc())
        .all()
    )


def delete_customer(customer_id) -> None:
    """
    Remove a customer account. Its ledger records are kept; reversing one
    later skips the balance step.
    """
    customer_id = require_text("customer_id", customer_id, max_length=32)

    def read(op: AtomicOperation) -> Customer:
        customer = op.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFound(customer_id)
        return customer

    def write(op: AtomicOperation, customer: Customer) -> None:
        op.delete(customer)

    run_atomic(read, write)
    current_app.logger.info("Deleted customer %s", customer_id)
