from __future__ import annotations

from ..extensions import db
from ..identifiers import id_factory
from ..time_utils import to_utc_z, utcnow


class ApprovalRequest(db.Model):
    """
    A pending-or-decided human authorization gating an asset/consumable action.

    LIFECYCLE:
        pending -> approved | rejected | cancelled

    The three decided states are terminal: status never regresses and
    ``completed_at`` is stamped exactly once, on the first terminal transition.

    LINKS:
    - at most one of asset_id / consumable_id
    - optionally one operation: operation_id (asset ledger) or
      consumable_operation_id (consumable ledger)
    """
    __tablename__ = "approval_requests"
    __table_args__ = (
        db.Index("ix_approvals_status_created", "status", "created_at"),
        db.Index("ix_approvals_applicant", "applicant_id"),
        db.Index("ix_approvals_approver", "approver_id"),
    )

    id = db.Column(db.String(32), primary_key=True, default=id_factory("APR"))

    asset_id = db.Column(db.String(32), db.ForeignKey("assets.id"), nullable=True, index=True)
    consumable_id = db.Column(db.String(32), db.ForeignKey("consumables.id"), nullable=True, index=True)
    operation_id = db.Column(db.String(32), db.ForeignKey("asset_operations.id"), nullable=True, index=True)
    consumable_operation_id = db.Column(
        db.String(32), db.ForeignKey("consumable_operations.id"), nullable=True, index=True
    )

    type = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    title = db.Column(db.String(255), nullable=False)
    reason = db.Column(db.Text, nullable=True)

    applicant_id = db.Column(db.String(64), nullable=False)
    applicant_name = db.Column(db.String(255), nullable=True)
    approver_id = db.Column(db.String(64), nullable=True)
    approver_name = db.Column(db.String(255), nullable=True)

    # Human-readable decision outcome
    result = db.Column(db.Text, nullable=True)

    external_todo_id = db.Column(db.String(128), nullable=True)

    # Operation template values, config snapshot, reassignment history...
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
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    asset = db.relationship("Asset", foreign_keys=[asset_id])
    consumable = db.relationship("Consumable", foreign_keys=[consumable_id])
    operation = db.relationship("AssetOperation", foreign_keys=[operation_id])
    consumable_operation = db.relationship("ConsumableOperation", foreign_keys=[consumable_operation_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ApprovalRequest id={self.id} type={self.type} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "consumable_id": self.consumable_id,
            "operation_id": self.operation_id,
            "consumable_operation_id": self.consumable_operation_id,
            "type": self.type,
            "status": self.status,
            "title": self.title,
            "reason": self.reason,
            "applicant_id": self.applicant_id,
            "applicant_name": self.applicant_name,
            "approver_id": self.approver_id,
            "approver_name": self.approver_name,
            "result": self.result,
            "external_todo_id": self.external_todo_id,
            "metadata": self.meta,
            "cc": [recipient.to_dict() for recipient in self.cc_recipients],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }


class ApprovalCcRecipient(db.Model):
    """Users copied on an approval; they see it in the "all" list view."""
    __tablename__ = "approval_cc_recipients"
    __table_args__ = (
        db.UniqueConstraint("approval_id", "user_id", name="uq_approval_cc_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    approval_id = db.Column(db.String(32), db.ForeignKey("approval_requests.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    user_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    approval = db.relationship(
        "ApprovalRequest",
        backref=db.backref("cc_recipients", lazy=True, order_by="ApprovalCcRecipient.id"),
    )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "created_at": to_utc_z(self.created_at),
        }
