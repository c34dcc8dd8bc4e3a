from .customers import Customer
from .inventory import InventoryItem
from .ledger import LedgerTransaction

__all__ = [
    'Customer',
    'InventoryItem',
    'LedgerTransaction',
]
