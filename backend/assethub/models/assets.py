from __future__ import annotations

from ..extensions import db
from ..identifiers import id_factory
from ..time_utils import to_utc_z, utcnow


class Asset(db.Model):
    """
    Asset directory entry.

    The approval core reads ``status``/``owner`` and writes the inferred next
    values; identity, category rules and everything else belong to the
    directory itself.
    """
    __tablename__ = "assets"
    __table_args__ = (
        db.Index("ix_assets_status", "status"),
        db.Index("ix_assets_category", "category"),
    )

    id = db.Column(db.String(32), primary_key=True, default=id_factory("AST"))

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="general")
    company_code = db.Column(db.String(64), nullable=False, default="DEFAULT")

    # pending, idle, in-use, borrowing, maintenance, scrapped, lost
    status = db.Column(db.String(16), nullable=False, default="idle")

    owner = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    purchase_date = db.Column(db.String(10), nullable=True)

    # Authoritative storage in cents
    purchase_price_cents = db.Column(db.Integer, nullable=True)
    purchase_currency = db.Column(db.String(8), nullable=True)

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
        return f"<Asset id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "company_code": self.company_code,
            "status": self.status,
            "owner": self.owner,
            "location": self.location,
            "purchase_date": self.purchase_date,
            "purchase_price_cents": self.purchase_price_cents,
            "purchase_currency": self.purchase_currency,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AssetOperation(db.Model):
    """
    One recorded action against an asset.

    LIFECYCLE:
        pending -> done
        pending -> cancelled

    ``done`` is terminal. Inserting a row never mutates the asset; the
    approval orchestrator applies asset status changes based on ``type``.
    """
    __tablename__ = "asset_operations"
    __table_args__ = (
        db.Index("ix_asset_ops_asset_created", "asset_id", "created_at"),
        db.Index("ix_asset_ops_asset_type", "asset_id", "type"),
    )

    id = db.Column(db.String(32), primary_key=True, default=id_factory("OP"))
    asset_id = db.Column(db.String(32), db.ForeignKey("assets.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="done", index=True)

    description = db.Column(db.Text, nullable=False, default="")
    actor = db.Column(db.String(255), nullable=False)

    # Counter-parties (e.g. transfer from one holder to another)
    from_user_id = db.Column(db.String(64), nullable=True)
    to_user_id = db.Column(db.String(64), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=True)

    # Free-form payload; "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    asset = db.relationship("Asset", backref=db.backref("operations", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<AssetOperation id={self.id} type={self.type} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "type": self.type,
            "status": self.status,
            "description": self.description or "",
            "actor": self.actor,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "amount_cents": self.amount_cents,
            "metadata": self.meta,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
