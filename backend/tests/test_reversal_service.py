# Overview: Pytest coverage for reversing ledger records and restoring stock.

from datetime import datetime

import pytest

from ricebook.errors import MalformedRecord, TransactionNotFound
from ricebook.extensions import db
from ricebook.models import Customer, InventoryItem, LedgerTransaction
from ricebook.records import Batch, BatchUsage
from ricebook.services import customer_service, inventory_service, ledger_service, reversal_service
from ricebook.services.reversal_service import (
    BATCH_ID,
    COST_MATCH,
    LATEST_BATCH,
    SYNTHESIZED,
    plan_restore,
)
from ricebook.validation import ValidationError

NOW = datetime(2026, 6, 1)


def _batch(batch_id, count, cost, day):
    return Batch(id=batch_id, count=count, initial_count=count, cost=cost, date=datetime(2026, 1, day))


class TestPlanRestore:
    """Fallback chain: batch id, then cost match, then a synthesized batch."""

    def test_restores_to_same_batch_id(self):
        plan = plan_restore(
            [_batch("b1", 2, 100, 1)], [BatchUsage("b1", 3, 100)], 3,
            now=NOW, synthetic_id_prefix="t1",
        )
        assert [(b.id, b.count) for b in plan.batches] == [("b1", 5)]
        assert plan.restorations[0].strategy == BATCH_ID
        assert plan.units == 3

    def test_falls_back_to_cost_match(self):
        plan = plan_restore(
            [_batch("other", 1, 100, 2)], [BatchUsage("gone", 2, 100)], 2,
            now=NOW, synthetic_id_prefix="t1",
        )
        assert [(b.id, b.count) for b in plan.batches] == [("other", 3)]
        assert plan.restorations[0].strategy == COST_MATCH

    def test_synthesizes_when_nothing_matches(self):
        plan = plan_restore(
            [_batch("b2", 1, 120, 2)], [BatchUsage("gone", 2, 100)], 2,
            now=NOW, synthetic_id_prefix="t1",
        )
        assert [(b.id, b.count, b.cost) for b in plan.batches] == [("b2", 1, 120), ("t1-r1", 2, 100)]
        restored = plan.batches[-1]
        assert restored.initial_count == 2
        assert restored.date == NOW
        assert plan.restorations[0].strategy == SYNTHESIZED

    def test_mixed_usages(self):
        usages = [BatchUsage("b1", 1, 100), BatchUsage("gone", 2, 120), BatchUsage("lost", 1, 90)]
        plan = plan_restore(
            [_batch("b1", 0, 100, 1), _batch("b2", 1, 120, 2)], usages, 4,
            now=NOW, synthetic_id_prefix="t9",
        )
        assert [r.strategy for r in plan.restorations] == [BATCH_ID, COST_MATCH, SYNTHESIZED]
        assert [(b.id, b.count) for b in plan.batches] == [("b1", 1), ("b2", 3), ("t9-r1", 1)]

    def test_no_usage_goes_to_latest_batch(self):
        batches = [_batch("late", 1, 120, 9), _batch("early", 1, 100, 1)]
        plan = plan_restore(batches, [], 4, now=NOW, synthetic_id_prefix="t1")
        assert [(b.id, b.count) for b in plan.batches] == [("late", 5), ("early", 1)]
        assert plan.restorations[0].strategy == LATEST_BATCH

    def test_no_usage_and_no_batches_uses_default_cost(self):
        plan = plan_restore([], [], 3, now=NOW, synthetic_id_prefix="t1", default_cost=950)
        assert [(b.id, b.count, b.cost) for b in plan.batches] == [("t1-r1", 3, 950)]

    def test_untracked_usage_restores_by_cost(self):
        """Units drawn from the implicit default-cost batch carry no batch id."""
        plan = plan_restore([], [BatchUsage(None, 2, 1000)], 2, now=NOW, synthetic_id_prefix="t1")
        assert [(b.count, b.cost) for b in plan.batches] == [(2, 1000)]
        assert plan.restorations[0].strategy == SYNTHESIZED


class TestReverseTransaction:
    def test_reversing_sale_restores_balance_and_stock(self, db_session, customer, stocked_brand):
        sale = ledger_service.record_transaction(
            "SALE", customer.id, product_id=stocked_brand, bags=7, price_per_bag=1500
        )

        result = reversal_service.reverse_transaction(sale.transaction_id)

        assert result.balance == 0
        assert result.restored_units == 7
        assert db.session.get(LedgerTransaction, sale.transaction_id) is None
        item = db.session.get(InventoryItem, stocked_brand)
        assert item.count == 10
        assert sum(b.count for b in item.batch_list) == 10
        # The drained 1000-cost batch was dropped, so it comes back as a new batch.
        assert sorted((b.count, b.cost) for b in item.batch_list) == [(5, 1000), (5, 1200)]

    def test_reversing_payment_adds_amount_back(self, db_session, customer):
        payment = ledger_service.record_payment(customer_id=customer.id, amount=300)

        result = reversal_service.reverse_transaction(payment.transaction_id)

        assert result.balance == 0
        assert result.restored_units == 0

    def test_partial_payment_is_reversed_separately(self, db_session, customer, stocked_brand):
        sale = ledger_service.record_transaction(
            "SALE", customer.id, product_id=stocked_brand, bags=1, price_per_bag=1500,
            partial_payment_now=500,
        )

        reversal_service.reverse_transaction(sale.transaction_id)

        assert db.session.get(LedgerTransaction, sale.partial_payment_id) is not None
        assert db.session.get(Customer, customer.id).balance == -500

    def test_opening_balance_reversal_touches_no_inventory(self, db_session, stocked_brand):
        created = customer_service.create_customer(name="Lakshmi", phone="9000000001", open_balance=2500)
        opening = customer_service.list_customer_transactions(created.id)[0]

        result = reversal_service.reverse_transaction(opening.id)

        assert result.balance == 0
        assert result.restored_units == 0
        assert db.session.get(InventoryItem, stocked_brand).count == 10

    def test_missing_customer_still_restores_stock(self, db_session, customer, stocked_brand):
        sale = ledger_service.record_transaction(
            "SALE", customer.id, product_id=stocked_brand, bags=2, price_per_bag=1500
        )
        customer_service.delete_customer(customer.id)

        result = reversal_service.reverse_transaction(sale.transaction_id)

        assert result.customer_missing is True
        assert result.balance is None
        assert db.session.get(InventoryItem, stocked_brand).count == 10
        assert db.session.get(LedgerTransaction, sale.transaction_id) is None

    def test_deleted_item_still_reverses_balance(self, db_session, customer, stocked_brand):
        sale = ledger_service.record_transaction(
            "SALE", customer.id, product_id=stocked_brand, bags=2, price_per_bag=1500
        )
        inventory_service.delete_inventory_item(stocked_brand)

        result = reversal_service.reverse_transaction(sale.transaction_id)

        assert result.balance == 0
        assert result.unrestored_brand == stocked_brand
        assert db.session.get(InventoryItem, stocked_brand) is None

    def test_legacy_sale_without_usage_goes_to_latest_batch(self, db_session, customer, stocked_brand):
        db.session.add(LedgerTransaction(
            id="legacy1",
            customer_id=customer.id,
            customer_name=customer.name,
            type="SALE",
            amount=3000,
            date=datetime(2025, 12, 1),
            details={"brand": stocked_brand, "bags": 2, "pricePerBag": 1500},
        ))
        customer.balance = 3000
        db.session.commit()

        result = reversal_service.reverse_transaction("legacy1")

        assert [r.strategy for r in result.restorations] == [LATEST_BATCH]
        item = db.session.get(InventoryItem, stocked_brand)
        assert [(b.cost, b.count) for b in item.batch_list] == [(1000, 5), (1200, 7)]
        assert item.count == 12

    def test_empty_id_rejected(self, db_session):
        with pytest.raises(ValidationError):
            reversal_service.reverse_transaction("  ")

    def test_unknown_transaction(self, db_session):
        with pytest.raises(TransactionNotFound):
            reversal_service.reverse_transaction("nope")

    def test_record_without_customer_is_malformed(self, db_session):
        db.session.add(LedgerTransaction(
            id="orphan", customer_id=None, type="PAYMENT", amount=10,
            date=datetime(2026, 1, 1), details={},
        ))
        db.session.commit()

        with pytest.raises(MalformedRecord):
            reversal_service.reverse_transaction("orphan")
        with pytest.raises(MalformedRecord):
            reversal_service.reverse_transaction(db.session.get(LedgerTransaction, "orphan"))
        assert db.session.get(LedgerTransaction, "orphan") is not None

    def test_second_reversal_is_not_found(self, db_session, customer):
        payment = ledger_service.record_payment(customer_id=customer.id, amount=300)
        reversal_service.reverse_transaction(payment.transaction_id)

        with pytest.raises(TransactionNotFound):
            reversal_service.reverse_transaction(payment.transaction_id)
        assert db.session.get(Customer, customer.id).balance == 0


class TestUnreadableRecords:
    """Stored rows that cannot be read fail as MalformedRecord and stay put."""

    def _insert(self, customer, record_id, txn_type, details, amount=3000):
        db.session.add(LedgerTransaction(
            id=record_id,
            customer_id=customer.id,
            customer_name=customer.name,
            type=txn_type,
            amount=amount,
            date=datetime(2025, 12, 1),
            details=details,
        ))
        db.session.commit()

    def test_lowercase_sale_is_reversed_as_sale(self, db_session, customer, stocked_brand):
        self._insert(customer, "lower1", "sale", {"brand": stocked_brand, "bags": 2, "price_per_bag": 1500})
        customer.balance = 3000
        db.session.commit()

        result = reversal_service.reverse_transaction("lower1")

        assert result.type == "SALE"
        assert result.balance == 0
        assert result.restored_units == 2
        assert db.session.get(InventoryItem, stocked_brand).count == 12

    @pytest.mark.parametrize("txn_type,details", [
        ("REFUND", {}),
        ("PAYMENT", ["x"]),
        ("SALE", {"brand": "Sona Masoori", "bags": 2, "batches_used": [1, 2]}),
    ])
    def test_unreadable_record_is_malformed(self, db_session, customer, stocked_brand, txn_type, details):
        self._insert(customer, "weird", txn_type, details)

        with pytest.raises(MalformedRecord) as excinfo:
            reversal_service.reverse_transaction("weird")

        assert excinfo.value.http_status == 422
        assert db.session.get(LedgerTransaction, "weird") is not None
        assert db.session.get(Customer, customer.id).balance == 0
        assert db.session.get(InventoryItem, stocked_brand).count == 10
