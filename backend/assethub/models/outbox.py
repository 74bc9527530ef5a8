from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class OutboxEvent(db.Model):
    """
    Notification for the external task tracker, queued inside the business
    transaction and delivered after it commits.

    LIFECYCLE:
        pending -> delivered
        pending -> failed   (after OUTBOX_MAX_ATTEMPTS unsuccessful deliveries)

    ``next_attempt_at`` drives the backoff schedule used by ``flask outbox flush``.
    """
    __tablename__ = "outbox_events"
    __table_args__ = (
        db.Index("ix_outbox_status_next_attempt", "status", "next_attempt_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # approval.created, approval.decided, approval.reassigned, alert.opened, alert.resolved
    kind = db.Column(db.String(64), nullable=False, index=True)
    # Row the delivery result is written back to (approval or alert id)
    aggregate_id = db.Column(db.String(32), nullable=True, index=True)
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    next_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<OutboxEvent id={self.id} kind={self.kind} status={self.status} attempts={self.attempts}>"

    def to_dict(self):
        return {
            "id": self.id,
            "kind": self.kind,
            "aggregate_id": self.aggregate_id,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "next_attempt_at": to_utc_z(self.next_attempt_at) if self.next_attempt_at else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "created_at": to_utc_z(self.created_at),
        }
