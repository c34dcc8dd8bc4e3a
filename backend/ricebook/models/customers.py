from __future__ import annotations

from ..extensions import db
from ricebook.time_utils import to_utc_z


class Customer(db.Model):
    """
    A customer's ledger account.

    balance is a stored running total (positive = customer owes the shop).
    It must always equal sum(SALE.amount) - sum(PAYMENT.amount) over the
    customer's ledger_transactions, and is only ever written inside the
    atomic operations of ledger_service / reversal_service / customer_service.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_location", "location"),
        db.Index("ix_customers_created_at", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=False, default="")
    address = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(64), nullable=True)

    balance = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r} balance={self.balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "location": self.location,
            "balance": self.balance,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
