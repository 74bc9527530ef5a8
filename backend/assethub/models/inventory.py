from __future__ import annotations

from ..extensions import db
from ..identifiers import id_factory
from ..time_utils import to_utc_z, utcnow


class ConsumableInventoryTask(db.Model):
    """
    Physical-count reconciliation exercise over a filtered set of consumables.

    LIFECYCLE:
        draft -> in-progress -> completed

    Callers may set any status directly. The only implicit transition is
    auto-completion once no entry remains pending.
    """
    __tablename__ = "consumable_inventory_tasks"

    id = db.Column(db.String(32), primary_key=True, default=id_factory("CINV", 6))

    name = db.Column(db.String(255), nullable=False)
    scope = db.Column(db.String(255), nullable=True)
    # {"categories": [...], "keeper": "..."}
    filters = db.Column(db.JSON, nullable=True)
    owner = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "scope": self.scope,
            "filters": self.filters,
            "owner": self.owner,
            "description": self.description,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ConsumableInventoryEntry(db.Model):
    """
    Expected vs. actual stock for one consumable within a task.

    Expected values are snapshotted when the task is created; later stock
    movements do not change them. Variance is actual - expected.
    """
    __tablename__ = "consumable_inventory_entries"
    __table_args__ = (
        db.UniqueConstraint("task_id", "consumable_id", name="uq_inventory_entries_task_consumable"),
    )

    id = db.Column(db.String(32), primary_key=True, default=id_factory("CINE"))
    task_id = db.Column(db.String(32), db.ForeignKey("consumable_inventory_tasks.id"), nullable=False, index=True)
    consumable_id = db.Column(db.String(32), db.ForeignKey("consumables.id"), nullable=False, index=True)

    # Snapshot of descriptive fields at task creation
    consumable_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    keeper = db.Column(db.String(255), nullable=True)

    expected_quantity = db.Column(db.Integer, nullable=False)
    expected_reserved = db.Column(db.Integer, nullable=False)

    actual_quantity = db.Column(db.Integer, nullable=True)
    actual_reserved = db.Column(db.Integer, nullable=True)

    variance_quantity = db.Column(db.Integer, nullable=True)
    variance_reserved = db.Column(db.Integer, nullable=True)

    note = db.Column(db.Text, nullable=True)

    # pending, recorded
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    task = db.relationship(
        "ConsumableInventoryTask",
        backref=db.backref("entries", lazy=True, order_by="ConsumableInventoryEntry.consumable_name"),
    )

    @property
    def has_variance(self) -> bool:
        return (self.variance_quantity or 0) != 0 or (self.variance_reserved or 0) != 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "consumable_id": self.consumable_id,
            "consumable_name": self.consumable_name,
            "category": self.category,
            "keeper": self.keeper,
            "expected_quantity": self.expected_quantity,
            "expected_reserved": self.expected_reserved,
            "actual_quantity": self.actual_quantity,
            "actual_reserved": self.actual_reserved,
            "variance_quantity": self.variance_quantity,
            "variance_reserved": self.variance_reserved,
            "note": self.note,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
