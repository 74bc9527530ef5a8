# Overview: Transactional outbox for task-tracker notifications; enqueue, dispatch, retry.

"""
Notification outbox.

Events are appended inside the business transaction, so they exist exactly
when the business change does. Delivery happens after commit:

- immediately, once, when OUTBOX_DISPATCH_ON_COMMIT is on
- later, from ``flask outbox flush``, with exponential backoff

A delivery failure never reaches the caller of the business operation. It is
logged, stored on the event (``attempts``, ``last_error``) and retried until
OUTBOX_MAX_ATTEMPTS, after which the event is parked as ``failed`` for an
operator to inspect (``flask outbox list --status failed``).
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from flask import current_app

from ..extensions import db
from ..models import ApprovalRequest, ConsumableAlert, OutboxEvent
from ..time_utils import utcnow
from .concurrency import atomic, on_commit
from .external_todo_service import ExternalTodoClient, ExternalTodoError, update_external_approval_todo


EVENT_APPROVAL_CREATED = "approval.created"
EVENT_APPROVAL_DECIDED = "approval.decided"
EVENT_APPROVAL_REASSIGNED = "approval.reassigned"
EVENT_ALERT_OPENED = "alert.opened"
EVENT_ALERT_RESOLVED = "alert.resolved"

OUTBOX_PENDING = "pending"
OUTBOX_DELIVERED = "delivered"
OUTBOX_FAILED = "failed"
OUTBOX_STATUSES = {OUTBOX_PENDING, OUTBOX_DELIVERED, OUTBOX_FAILED}


def enqueue(kind: str, payload: dict[str, Any], *, aggregate_id: str | None = None) -> OutboxEvent:
    """Append an event to the current transaction and schedule post-commit delivery."""
    if kind not in _HANDLERS:
        raise ValueError(f"Unknown outbox event kind: {kind}")

    event = OutboxEvent(
        kind=kind,
        aggregate_id=aggregate_id,
        payload=payload,
        status=OUTBOX_PENDING,
        attempts=0,
        next_attempt_at=utcnow(),
    )
    db.session.add(event)
    db.session.flush()

    if current_app.config.get("OUTBOX_DISPATCH_ON_COMMIT", True):
        event_id = event.id
        on_commit(lambda: dispatch_event(event_id))
    return event


def _has_pending(kind: str, aggregate_id: str | None) -> bool:
    return (
        db.session.query(OutboxEvent.id)
        .filter(
            OutboxEvent.kind == kind,
            OutboxEvent.aggregate_id == aggregate_id,
            OutboxEvent.status == OUTBOX_PENDING,
        )
        .first()
        is not None
    )


def _deliver_approval_created(client: ExternalTodoClient, event: OutboxEvent) -> None:
    approval = db.session.get(ApprovalRequest, event.aggregate_id)
    if approval is None:
        return
    todo_id = client.create_approval_todo(event.payload)
    if todo_id:
        approval.external_todo_id = todo_id


def _deliver_approval_decided(client: ExternalTodoClient, event: OutboxEvent) -> None:
    approval = db.session.get(ApprovalRequest, event.aggregate_id)
    if approval is None:
        return
    if not approval.external_todo_id:
        if _has_pending(EVENT_APPROVAL_CREATED, approval.id):
            raise ExternalTodoError(f"Todo for approval {approval.id} has not been created yet")
        return
    update_external_approval_todo(approval, approval.external_todo_id, client=client)


def _deliver_approval_reassigned(client: ExternalTodoClient, event: OutboxEvent) -> None:
    approval = db.session.get(ApprovalRequest, event.aggregate_id)
    if approval is None or approval.status != "pending":
        return
    if not approval.external_todo_id:
        if _has_pending(EVENT_APPROVAL_CREATED, approval.id):
            raise ExternalTodoError(f"Todo for approval {approval.id} has not been created yet")
        return
    # current approver, not the one captured in the payload
    client.reassign_approval_todo(
        approval.external_todo_id,
        approver_id=approval.approver_id,
        approver_name=approval.approver_name,
    )


def _deliver_alert_opened(client: ExternalTodoClient, event: OutboxEvent) -> None:
    alert = db.session.get(ConsumableAlert, event.aggregate_id)
    if alert is None or alert.status != "open":
        return
    todo_id = client.create_alert_todo(event.payload)
    if todo_id:
        alert.external_todo_id = todo_id


def _deliver_alert_resolved(client: ExternalTodoClient, event: OutboxEvent) -> None:
    alert = db.session.get(ConsumableAlert, event.aggregate_id)
    if alert is None:
        return
    if not alert.external_todo_id:
        if _has_pending(EVENT_ALERT_OPENED, alert.id):
            raise ExternalTodoError(f"Todo for alert {alert.id} has not been created yet")
        return
    client.resolve_alert_todo(alert.external_todo_id, message=alert.message)


_HANDLERS = {
    EVENT_APPROVAL_CREATED: _deliver_approval_created,
    EVENT_APPROVAL_DECIDED: _deliver_approval_decided,
    EVENT_APPROVAL_REASSIGNED: _deliver_approval_reassigned,
    EVENT_ALERT_OPENED: _deliver_alert_opened,
    EVENT_ALERT_RESOLVED: _deliver_alert_resolved,
}


def _backoff(attempts: int) -> timedelta:
    base = int(current_app.config.get("OUTBOX_BACKOFF_SECONDS", 30))
    return timedelta(seconds=base * (2 ** max(attempts - 1, 0)))


def dispatch_event(event_id: int, *, client: ExternalTodoClient | None = None) -> bool:
    """
    Try to deliver one pending event. Returns True when delivered.

    Never raises for delivery problems; they are recorded on the event.
    """
    client = client or ExternalTodoClient.from_app()
    max_attempts = int(current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5))

    with atomic():
        event = db.session.get(OutboxEvent, event_id)
        if event is None or event.status != OUTBOX_PENDING:
            return False

        event.attempts = (event.attempts or 0) + 1
        try:
            _HANDLERS[event.kind](client, event)
        except ExternalTodoError as exc:
            event.last_error = str(exc)
            if event.attempts >= max_attempts:
                event.status = OUTBOX_FAILED
                event.next_attempt_at = None
                current_app.logger.error(
                    "Outbox event %s (%s) failed permanently after %s attempts: %s",
                    event.id, event.kind, event.attempts, exc,
                )
            else:
                event.next_attempt_at = utcnow() + _backoff(event.attempts)
                current_app.logger.warning(
                    "Outbox event %s (%s) delivery failed (attempt %s): %s",
                    event.id, event.kind, event.attempts, exc,
                )
            return False

        event.status = OUTBOX_DELIVERED
        event.delivered_at = utcnow()
        event.next_attempt_at = None
        event.last_error = None
    return True


def flush_due(*, now: datetime | None = None, limit: int = 100) -> dict[str, int]:
    """Deliver every pending event whose backoff has elapsed, oldest first."""
    now = now or utcnow()
    due_ids = [
        row.id
        for row in db.session.query(OutboxEvent.id)
        .filter(
            OutboxEvent.status == OUTBOX_PENDING,
            db.or_(OutboxEvent.next_attempt_at.is_(None), OutboxEvent.next_attempt_at <= now),
        )
        .order_by(OutboxEvent.id.asc())
        .limit(limit)
        .all()
    ]

    client = ExternalTodoClient.from_app()
    stats = {"due": len(due_ids), "delivered": 0, "failed": 0}
    for event_id in due_ids:
        if dispatch_event(event_id, client=client):
            stats["delivered"] += 1
        else:
            stats["failed"] += 1
    return stats


def list_events(*, status: str | None = None, limit: int = 50) -> list[OutboxEvent]:
    query = db.session.query(OutboxEvent)
    if status:
        if status not in OUTBOX_STATUSES:
            raise ValueError(f"Invalid outbox status: {status}")
        query = query.filter(OutboxEvent.status == status)
    return query.order_by(OutboxEvent.id.desc()).limit(limit).all()
