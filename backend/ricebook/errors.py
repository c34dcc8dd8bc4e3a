# Overview: Typed failures raised by the ledger engine; routes map them to JSON responses.

from __future__ import annotations


class LedgerError(Exception):
    """Base for every failure the ledger engine reports to its callers."""

    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class OutOfStock(LedgerError):
    """Raised when a sale names a product that has never been stocked."""

    http_status = 409

    def __init__(self, product_id: str):
        super().__init__(f"{product_id} not in stock", details={"product_id": product_id})
        self.product_id = product_id


class InsufficientStock(LedgerError):
    """Raised when a sale asks for more bags than are on hand."""

    http_status = 409

    def __init__(self, available: int, requested: int, product_id: str | None = None):
        message = f"Only {available} bags available, requested {requested}"
        if product_id:
            message = f"Only {available} bags of {product_id} available, requested {requested}"
        super().__init__(
            message,
            details={"product_id": product_id, "available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested
        self.product_id = product_id


class CustomerNotFound(LedgerError):
    http_status = 404

    def __init__(self, customer_id: str):
        super().__init__(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        self.customer_id = customer_id


class TransactionNotFound(LedgerError):
    http_status = 404

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class InventoryItemNotFound(LedgerError):
    http_status = 404

    def __init__(self, product_id: str):
        super().__init__(f"No inventory recorded for {product_id}", details={"product_id": product_id})
        self.product_id = product_id


class MalformedRecord(LedgerError):
    """Raised when a stored record lacks the fields needed to reverse it."""

    http_status = 422

    def __init__(self, transaction_id: str, reason: str = "record has no customer_id"):
        super().__init__(
            f"Transaction {transaction_id} cannot be reversed: {reason}",
            details={"transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class StoreConflict(LedgerError):
    """
    Raised when concurrent writers kept invalidating an atomic operation
    until the retry budget ran out. Nothing was written; the caller may retry.
    """

    http_status = 409
    retryable = True

    def __init__(self, attempts: int):
        super().__init__(
            f"Ledger is busy, gave up after {attempts} attempts; please retry",
            details={"attempts": attempts, "retryable": True},
        )
        self.attempts = attempts


class ReadAfterWriteError(LedgerError):
    """
    Raised when an atomic operation reads after it has staged a write.

    This is a programming error in the operation, not a runtime condition:
    re-executed attempts must derive every write from reads taken up front.
    """

    http_status = 500


__all__ = [
    "LedgerError",
    "OutOfStock",
    "InsufficientStock",
    "CustomerNotFound",
    "TransactionNotFound",
    "InventoryItemNotFound",
    "MalformedRecord",
    "StoreConflict",
    "ReadAfterWriteError",
]
