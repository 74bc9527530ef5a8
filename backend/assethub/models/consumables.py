from __future__ import annotations

from ..extensions import db
from ..identifiers import id_factory
from ..time_utils import to_utc_z, utcnow


class Consumable(db.Model):
    """
    Consumable master data plus its stock ledger fields.

    STOCK LEDGER:
    ``quantity``, ``reserved_quantity`` and ``status`` change only by applying
    a consumable operation (see consumable_operation_service.apply_effects).

    INVARIANTS:
    - quantity >= 0
    - 0 <= reserved_quantity <= quantity
    - status is derived from stock unless archived (archived is sticky)

    CONCURRENCY:
    ``version_id`` makes a concurrent write to the same row fail instead of
    silently overwriting the stock another writer just computed.
    """
    __tablename__ = "consumables"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_consumables_quantity_nonneg"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_consumables_reserved_nonneg"),
        db.CheckConstraint("reserved_quantity <= quantity", name="ck_consumables_reserved_le_quantity"),
        db.CheckConstraint("safety_stock >= 0", name="ck_consumables_safety_nonneg"),
        db.Index("ix_consumables_category", "category"),
        db.Index("ix_consumables_keeper", "keeper"),
    )

    id = db.Column(db.String(32), primary_key=True, default=id_factory("CSM"))

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="general")
    keeper = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    unit = db.Column(db.String(32), nullable=False, default="pcs")

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    safety_stock = db.Column(db.Integer, nullable=False, default=0)

    # in-stock, low-stock, out-of-stock, reserved, archived
    status = db.Column(db.String(16), nullable=False, default="in-stock", index=True)

    purchase_price_cents = db.Column(db.Integer, nullable=True)
    purchase_currency = db.Column(db.String(8), nullable=True)

    # Soft delete
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Consumable id={self.id} name={self.name!r} qty={self.quantity} "
            f"reserved={self.reserved_quantity} status={self.status}>"
        )

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "keeper": self.keeper,
            "location": self.location,
            "unit": self.unit,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "safety_stock": self.safety_stock,
            "status": self.status,
            "purchase_price_cents": self.purchase_price_cents,
            "purchase_currency": self.purchase_currency,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "deleted_by": self.deleted_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ConsumableOperation(db.Model):
    """
    Stock-affecting action on one consumable.

    LIFECYCLE:
        pending -> done       (applies quantity/reserved deltas exactly once)
        pending -> cancelled  (no stock effect)

    A ``done`` row is immutable: its effects are permanent and cannot be
    replayed or reversed by changing status again.
    """
    __tablename__ = "consumable_operations"
    __table_args__ = (
        db.Index("ix_consumable_ops_consumable_created", "consumable_id", "created_at"),
        db.Index("ix_consumable_ops_type_status", "type", "status"),
    )

    id = db.Column(db.String(32), primary_key=True, default=id_factory("COP"))
    consumable_id = db.Column(db.String(32), db.ForeignKey("consumables.id"), nullable=False, index=True)

    # purchase, inbound, outbound, reserve, release, adjust, dispose
    type = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="done", index=True)

    description = db.Column(db.Text, nullable=False, default="")
    actor = db.Column(db.String(255), nullable=False)

    # Signed deltas
    quantity_delta = db.Column(db.Integer, nullable=False, default=0)
    reserved_delta = db.Column(db.Integer, nullable=False, default=0)

    meta = db.Column("metadata", db.JSON, nullable=True)

    # Set once, when effects are applied
    applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    consumable = db.relationship("Consumable", backref=db.backref("operations", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<ConsumableOperation id={self.id} type={self.type} status={self.status} "
            f"dq={self.quantity_delta} dr={self.reserved_delta}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "consumable_id": self.consumable_id,
            "type": self.type,
            "status": self.status,
            "description": self.description or "",
            "actor": self.actor,
            "quantity_delta": self.quantity_delta,
            "reserved_delta": self.reserved_delta,
            "metadata": self.meta,
            "applied_at": to_utc_z(self.applied_at) if self.applied_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ConsumableAlert(db.Model):
    """
    Low/out-of-stock signal derived from stock changes.

    At most one ``open`` alert per consumable; it is updated in place while the
    condition persists and resolved once stock recovers.
    """
    __tablename__ = "consumable_alerts"
    __table_args__ = (
        db.Index("ix_consumable_alerts_consumable_status", "consumable_id", "status"),
    )

    id = db.Column(db.String(32), primary_key=True, default=id_factory("CAL"))
    consumable_id = db.Column(db.String(32), db.ForeignKey("consumables.id"), nullable=False, index=True)
    consumable_name = db.Column(db.String(255), nullable=False)
    keeper = db.Column(db.String(255), nullable=True)

    # low-stock, out-of-stock
    level = db.Column(db.String(16), nullable=False)
    # open, resolved
    status = db.Column(db.String(16), nullable=False, default="open", index=True)

    message = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    external_todo_id = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "consumable_id": self.consumable_id,
            "consumable_name": self.consumable_name,
            "keeper": self.keeper,
            "level": self.level,
            "status": self.status,
            "message": self.message,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "external_todo_id": self.external_todo_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
        }
