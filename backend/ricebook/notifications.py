"""
Change notifications for ledger entities.

Each signal fires once per committed atomic operation that wrote the entity,
never for an attempt that was rolled back or retried. Subscribers re-read
current state from the store instead of trusting a payload:

    from ricebook.notifications import customer_changed

    @customer_changed.connect
    def refresh(customer_id, **extra):
        ...

Senders:
- customer_changed: customer id
- inventory_changed: product identifier
- transactions_changed: customer id whose ledger gained or lost records
"""

from __future__ import annotations

from blinker import Namespace


_signals = Namespace()

customer_changed = _signals.signal("customer-changed")
inventory_changed = _signals.signal("inventory-changed")
transactions_changed = _signals.signal("transactions-changed")


class ChangeSet:
    """Entities touched by one atomic operation attempt."""

    def __init__(self):
        self.customers: set[str] = set()
        self.inventory: set[str] = set()
        self.transactions: set[str] = set()

    def __bool__(self) -> bool:
        return bool(self.customers or self.inventory or self.transactions)

    def publish(self) -> None:
        for customer_id in sorted(self.customers):
            customer_changed.send(customer_id)
        for product_id in sorted(self.inventory):
            inventory_changed.send(product_id)
        for customer_id in sorted(self.transactions):
            transactions_changed.send(customer_id)
