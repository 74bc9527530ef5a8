from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ActionConfig(db.Model):
    """
    Stored approval policy for one action type.

    Actions without a row fall back to the built-in defaults in
    action_config_service.DEFAULT_ACTION_CONFIGS.
    """
    __tablename__ = "action_configs"

    action = db.Column(db.String(32), primary_key=True)

    requires_approval = db.Column(db.Boolean, nullable=False, default=True)
    # none, user
    default_approver_type = db.Column(db.String(16), nullable=False, default="none")
    default_approver_refs = db.Column(db.JSON, nullable=True)
    allow_override = db.Column(db.Boolean, nullable=False, default=True)

    meta = db.Column("metadata", db.JSON, nullable=True)

    updated_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    def to_dict(self):
        return {
            "action": self.action,
            "requires_approval": bool(self.requires_approval),
            "default_approver_type": self.default_approver_type,
            "default_approver_refs": list(self.default_approver_refs or []),
            "allow_override": bool(self.allow_override),
            "metadata": self.meta,
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }
