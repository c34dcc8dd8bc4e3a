from __future__ import annotations

from ..extensions import db
from ricebook.records import Batch, batches_from_json, batches_to_json
from ricebook.time_utils import to_utc_z


class InventoryItem(db.Model):
    """
    Stock on hand for one product identifier (brand).

    INVARIANT: count == sum(batch.count for batch in batches) for every
    state written with batch tracking. Items created before batches were
    tracked may hold a count with no batches; the allocator prices such
    stock at the brand's default cost.

    Batches are embedded as a JSON array; the order of that array is storage
    order, not acquisition order. Consumers sort by date before matching.
    Always assign a new list to `batches` rather than mutating in place so
    the change is flushed.
    """
    __tablename__ = "inventory_items"

    id = db.Column(db.String(128), primary_key=True)

    count = db.Column(db.Integer, nullable=False, default=0)
    batches = db.Column(db.JSON, nullable=False, default=list)

    last_updated = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id!r} count={self.count}>"

    @property
    def batch_list(self) -> list[Batch]:
        return batches_from_json(self.batches)

    @staticmethod
    def encode_batches(batches) -> list[dict]:
        return batches_to_json(batches)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "count": self.count,
            "batches": [batch.to_dict() for batch in self.batch_list],
            "last_updated": to_utc_z(self.last_updated),
            "version_id": self.version_id,
        }
