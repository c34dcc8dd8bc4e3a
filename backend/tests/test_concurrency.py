# Overview: Pytest coverage for atomic operations and optimistic retry.

import json
from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from ricebook.errors import ReadAfterWriteError, StoreConflict
from ricebook.extensions import db
from ricebook.models import Customer, InventoryItem, LedgerTransaction
from ricebook.records import Batch
from ricebook.services import customer_service, inventory_service, ledger_service, reversal_service
from ricebook.services.allocation_service import allocate
from ricebook.services.concurrency import AtomicOperation, run_atomic, run_with_retry
from ricebook.services.ledger_service import build_synthetic_sale, new_id
from ricebook.time_utils import utcnow


def _bump_version(customer_id):
    """Simulate another writer committing between our read and our write."""
    db.session.execute(
        text("UPDATE customers SET version_id = version_id + 1 WHERE id = :id"),
        {"id": customer_id},
    )


class TestAtomicOperation:
    def test_commits_all_writes(self, db_session, customer):
        record_id = new_id()

        def read(op):
            return op.get(Customer, customer.id)

        def write(op, snap):
            op.add(build_synthetic_sale(
                record_id=record_id,
                customer_id=snap.id,
                customer_name=snap.name,
                amount=500,
                date=utcnow(),
                adjustment=True,
            ))
            op.update(snap, balance=snap.balance + 500)
            return record_id

        assert run_atomic(read, write) == record_id
        assert db.session.get(LedgerTransaction, record_id) is not None
        assert db.session.get(Customer, customer.id).balance == 500

    def test_read_after_write_rejected(self, db_session, customer):
        """A get() after a staged write raises and nothing is committed."""
        record_id = new_id()

        def write(op, _snap):
            op.add(build_synthetic_sale(
                record_id=record_id,
                customer_id=customer.id,
                customer_name=customer.name,
                amount=100,
                date=utcnow(),
            ))
            op.get(Customer, customer.id)

        with pytest.raises(ReadAfterWriteError):
            run_atomic(lambda op: None, write)

        assert db.session.get(LedgerTransaction, record_id) is None

    def test_exception_in_write_rolls_back(self, db_session, customer):
        def write(op, snap):
            op.update(snap, balance=999)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run_atomic(lambda op: op.get(Customer, customer.id), write)

        assert db.session.get(Customer, customer.id).balance == 0


class TestOptimisticRetry:
    def test_conflict_is_retried_from_fresh_read(self, db_session, customer):
        """First attempt loses the version race; the second re-reads and commits."""
        attempts = []

        def read(op):
            current = op.get(Customer, customer.id)
            attempts.append(current.balance)
            if len(attempts) == 1:
                _bump_version(customer.id)
            return current

        def write(op, snap):
            op.update(snap, balance=snap.balance + 100)
            return snap.balance

        assert run_atomic(read, write) == 100
        assert len(attempts) == 2
        assert db.session.get(Customer, customer.id).balance == 100

    def test_exhausted_retries_raise_store_conflict(self, db_session, customer):
        """Every attempt conflicts: StoreConflict after the configured budget, nothing written."""
        calls = []

        def read(op):
            current = op.get(Customer, customer.id)
            calls.append(1)
            _bump_version(customer.id)
            return current

        def write(op, snap):
            op.update(snap, balance=12345)

        with pytest.raises(StoreConflict) as excinfo:
            run_atomic(read, write, attempts=3, backoff_base=0)

        assert excinfo.value.attempts == 3
        assert excinfo.value.retryable is True
        assert len(calls) == 3
        assert db.session.get(Customer, customer.id).balance == 0

    def test_run_with_retry_passes_through_result(self, db_session):
        assert run_with_retry(lambda: 42, attempts=1, backoff_base=0) == 42

    def test_run_with_retry_does_not_retry_other_errors(self, db_session):
        calls = []

        def func():
            calls.append(1)
            raise KeyError("nope")

        with pytest.raises(KeyError):
            run_with_retry(func, attempts=3, backoff_base=0)
        assert len(calls) == 1

    def test_integrity_error_is_not_retried(self, db_session):
        """A constraint violation is permanent: it propagates after one attempt."""
        calls = []

        def read(op):
            calls.append(1)

        def write(op, _snap):
            op.add(Customer(id=new_id(), name=None, phone="1"))

        with pytest.raises(IntegrityError):
            run_atomic(read, write)

        assert len(calls) == 1
        assert db.session.query(Customer).count() == 0


def _other_writer(sql, **params):
    """Commit on a second connection, as a separate process would."""
    with db.engine.begin() as conn:
        conn.execute(text(sql), params)


class TestConcurrentWriters:
    """Another connection commits between our read and our write."""

    def test_add_stock_loses_insert_race(self, file_app, monkeypatch):
        rival = Batch(id="rival", count=3, initial_count=3, cost=1300, date=datetime(2026, 1, 1))
        original_read = inventory_service._read_item
        reads = []

        def read_item(op, product_id):
            snap = original_read(op, product_id)
            reads.append(snap.count)
            if len(reads) == 1:
                _other_writer(
                    "INSERT INTO inventory_items (id, count, batches, version_id) "
                    "VALUES (:id, 3, :batches, 1)",
                    id=product_id,
                    batches=json.dumps(InventoryItem.encode_batches([rival])),
                )
            return snap

        monkeypatch.setattr(inventory_service, "_read_item", read_item)

        change = inventory_service.add_stock(product_id="Basmati", bags=2, unit_cost=1400)

        assert reads == [0, 3]
        assert change.count == 5
        item = db.session.get(InventoryItem, "Basmati")
        assert item.count == 5 == sum(b.count for b in item.batch_list)
        assert [b.id for b in item.batch_list] == ["rival", change.batch_id]

    def test_sale_rereads_stock_after_conflict(self, file_app, monkeypatch):
        customer = customer_service.create_customer(name="Ravi Kumar", phone="9876543210")
        inventory_service.add_stock(
            product_id="Sona Masoori", bags=5, unit_cost=1000, occurred_at="2026-01-01T00:00:00Z"
        )
        inventory_service.add_stock(
            product_id="Sona Masoori", bags=5, unit_cost=1200, occurred_at="2026-02-01T00:00:00Z"
        )
        original_get = AtomicOperation.get
        counts = []

        def get(self, model, key):
            obj = original_get(self, model, key)
            if model is InventoryItem:
                counts.append(obj.count)
                if len(counts) == 1:
                    # Someone else sells the two oldest bags first.
                    left = allocate(2, obj.batch_list, 0).remaining_batches
                    _other_writer(
                        "UPDATE inventory_items SET count = 8, batches = :batches, "
                        "version_id = version_id + 1 WHERE id = :id",
                        id=key,
                        batches=json.dumps(InventoryItem.encode_batches(left)),
                    )
            return obj

        monkeypatch.setattr(AtomicOperation, "get", get)

        result = ledger_service.record_sale(
            customer_id=customer.id, product_id="Sona Masoori", bags=4, price_per_bag=1500
        )

        assert counts == [10, 8]
        assert result.profit == 3 * 500 + 1 * 300
        item = db.session.get(InventoryItem, "Sona Masoori")
        assert item.count == 4 == sum(b.count for b in item.batch_list)
        assert db.session.get(Customer, customer.id).balance == 6000

    def test_reversal_rereads_balance_after_conflict(self, file_app, monkeypatch):
        customer = customer_service.create_customer(name="Ravi Kumar", phone="9876543210")
        inventory_service.add_stock(product_id="Sona Masoori", bags=5, unit_cost=1000)
        sale = ledger_service.record_sale(
            customer_id=customer.id, product_id="Sona Masoori", bags=2, price_per_bag=1500
        )
        original_get = AtomicOperation.get
        balances = []

        def get(self, model, key):
            obj = original_get(self, model, key)
            if model is Customer:
                balances.append(obj.balance)
                if len(balances) == 1:
                    _other_writer(
                        "UPDATE customers SET balance = balance - 100, "
                        "version_id = version_id + 1 WHERE id = :id",
                        id=key,
                    )
            return obj

        monkeypatch.setattr(AtomicOperation, "get", get)

        result = reversal_service.reverse_transaction(sale.transaction_id)

        assert balances == [3000, 2900]
        assert result.balance == -100
        assert db.session.get(Customer, customer.id).balance == -100
        assert db.session.get(InventoryItem, "Sona Masoori").count == 5
        assert db.session.get(LedgerTransaction, sale.transaction_id) is None
