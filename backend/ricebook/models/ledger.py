from __future__ import annotations

from ..extensions import db
from ricebook.records import MalformedDetails, TransactionDetails, details_from_dict
from ricebook.time_utils import to_utc_z


class LedgerTransaction(db.Model):
    """
    One SALE or PAYMENT against a customer's ledger.

    Immutable once committed. The only permitted change is deletion by the
    reversal engine, which undoes the record's balance and inventory effects
    in the same atomic operation.

    details is a JSON payload whose shape is selected by `type`; read it
    through `typed_details` (raises MalformedDetails) or `read_details()`
    (None for an unreadable row) rather than raw.
    For inventory-affecting sales it carries the batches_used audit trail.
    """
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        db.Index("ix_ledger_tx_customer_date", "customer_id", "date"),
        db.Index("ix_ledger_tx_type_date", "type", "date"),
    )

    id = db.Column(db.String(32), primary_key=True)

    # No foreign key: records outlive deleted customers for audit.
    customer_id = db.Column(db.String(32), nullable=True, index=True)
    customer_name = db.Column(db.String(128), nullable=True)

    type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    details = db.Column(db.JSON, nullable=False, default=dict)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<LedgerTransaction id={self.id} type={self.type} amount={self.amount}>"

    @property
    def typed_details(self) -> TransactionDetails:
        return details_from_dict(self.type, self.details)

    def read_details(self) -> TransactionDetails | None:
        try:
            return self.typed_details
        except MalformedDetails:
            return None

    def to_dict(self) -> dict:
        details = self.read_details()
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "type": self.type,
            "amount": self.amount,
            "date": to_utc_z(self.date),
            "details": details.to_dict() if details is not None else None,
            "malformed": details is None,
            "version_id": self.version_id,
        }
