# Overview: Service-layer reporting; dashboard totals, CSV exports and ledger invariant audits.

from __future__ import annotations

import csv
import io
from collections import defaultdict
from datetime import datetime, timedelta

from sqlalchemy import case, func

from ..extensions import db
from ..models import Customer, InventoryItem, LedgerTransaction
from ..records import (
    MalformedDetails,
    PaymentDetails,
    SaleDetails,
    TransactionType,
    parse_transaction_type,
)
from ..time_utils import start_of_day, to_utc_z, utcnow
from .ledger_service import list_recent_transactions


def dashboard_summary(now: datetime | None = None) -> dict:
    """
    Totals for the home screen.

    pending: sum of positive balances (credit balances are not netted off).
    *_today: records dated on or after midnight UTC of `now`.
    Type matching ignores case; unreadable rows add nothing to profit.
    """
    now = now or utcnow()
    day_start = start_of_day(now)
    day_end = day_start + timedelta(days=1)
    record_type = func.upper(func.trim(LedgerTransaction.type))

    pending = db.session.query(
        func.coalesce(func.sum(Customer.balance), 0)
    ).filter(Customer.balance > 0).scalar()

    row = db.session.query(
        func.coalesce(func.sum(case(
            (record_type == TransactionType.PAYMENT.value, LedgerTransaction.amount),
            else_=0,
        )), 0).label("collected"),
        func.coalesce(func.sum(case(
            (record_type == TransactionType.SALE.value, LedgerTransaction.amount),
            else_=0,
        )), 0).label("sales"),
    ).filter(
        LedgerTransaction.date >= day_start,
        LedgerTransaction.date < day_end,
    ).one()

    # Profit lives in the JSON details payload; sum it in Python.
    todays_sales = db.session.query(LedgerTransaction).filter(
        record_type == TransactionType.SALE.value,
        LedgerTransaction.date >= day_start,
        LedgerTransaction.date < day_end,
    ).all()
    profit = 0
    for txn in todays_sales:
        details = txn.read_details()
        if isinstance(details, SaleDetails):
            profit += details.profit

    return {
        "as_of": to_utc_z(now),
        "pending": int(pending or 0),
        "collected_today": int(row.collected or 0),
        "sales_today": int(row.sales or 0),
        "profit_today": profit,
        "recent": [txn.to_dict() for txn in list_recent_transactions(limit=5)],
    }


def _describe(txn: LedgerTransaction) -> str:
    details = txn.read_details()
    if details is None:
        return "unreadable record"
    if isinstance(details, SaleDetails):
        if details.is_opening_balance:
            return "opening balance"
        if details.is_balance_adjustment:
            return details.notes or "balance adjustment"
        return f"rice: {details.brand}, bags: {details.bags}, price: {details.price_per_bag}"
    if isinstance(details, PaymentDetails):
        return details.notes or "Cash Payment"
    return ""


def _render_csv(header: list[str], rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def export_balances_csv() -> str:
    customers = db.session.query(Customer).order_by(Customer.name.asc(), Customer.id.asc()).all()
    return _render_csv(
        ["Name", "Phone", "Location", "Balance"],
        ([c.name, c.phone, c.location or "", c.balance] for c in customers),
    )


def export_transactions_csv() -> str:
    records = (
        db.session.query(LedgerTransaction)
        .order_by(LedgerTransaction.date.desc(), LedgerTransaction.id.desc())
        .all()
    )
    return _render_csv(
        ["Date", "Customer", "Type", "Amount", "Details"],
        ([to_utc_z(t.date), t.customer_name or "", t.type, t.amount, _describe(t)] for t in records),
    )


def audit_ledger() -> dict:
    """
    Recompute the ledger invariants from stored rows.

    - customer.balance == sum(SALE.amount) - sum(PAYMENT.amount)
    - item.count == sum(batch.count), for items that track batches

    Items holding stock with no batches at all predate batch tracking and
    are reported separately rather than as discrepancies. Records whose type
    cannot be read count toward neither side and are listed by id.
    """
    ledger_totals: dict[str, int] = defaultdict(int)
    malformed = []
    for record_id, customer_id, txn_type, amount in db.session.query(
        LedgerTransaction.id,
        LedgerTransaction.customer_id,
        LedgerTransaction.type,
        LedgerTransaction.amount,
    ).order_by(LedgerTransaction.id.asc()):
        try:
            kind = parse_transaction_type(txn_type)
        except MalformedDetails:
            malformed.append(record_id)
            continue
        if not customer_id:
            continue
        sign = 1 if kind is TransactionType.SALE else -1
        ledger_totals[customer_id] += sign * amount

    balance_issues = []
    for customer in db.session.query(Customer).order_by(Customer.id.asc()):
        expected = ledger_totals.get(customer.id, 0)
        if customer.balance != expected:
            balance_issues.append({
                "customer_id": customer.id,
                "balance": customer.balance,
                "ledger_total": expected,
            })

    inventory_issues = []
    untracked = []
    for item in db.session.query(InventoryItem).order_by(InventoryItem.id.asc()):
        batches = item.batch_list
        if not batches:
            if item.count:
                untracked.append(item.id)
            continue
        tracked = sum(b.count for b in batches)
        if tracked != item.count:
            inventory_issues.append({
                "product_id": item.id,
                "count": item.count,
                "batch_total": tracked,
            })

    return {
        "ok": not balance_issues and not inventory_issues,
        "balance_issues": balance_issues,
        "inventory_issues": inventory_issues,
        "untracked_items": untracked,
        "malformed_records": malformed,
    }
