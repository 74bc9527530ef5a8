# Overview: Low/out-of-stock alerts derived from consumable stock snapshots.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ConsumableAlert
from ..time_utils import utcnow
from . import outbox_service
from .concurrency import atomic


ALERT_OPEN = "open"
ALERT_RESOLVED = "resolved"
ALERT_STATUSES = {ALERT_OPEN, ALERT_RESOLVED}

# Consumable status -> alert level
ALERT_LEVELS = {
    "low-stock": "low-stock",
    "out-of-stock": "out-of-stock",
}


@dataclass
class AlertSnapshot:
    consumable_id: str
    consumable_name: str
    status: str
    quantity: int
    reserved_quantity: int
    keeper: str | None = None


@dataclass
class AlertSyncResult:
    created: ConsumableAlert | None = None
    resolved: list[ConsumableAlert] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.created is not None or bool(self.resolved)


def _message(level: str, snapshot: AlertSnapshot) -> str:
    if level == "out-of-stock":
        return f"{snapshot.consumable_name} is out of stock (quantity {snapshot.quantity})."
    return (
        f"{snapshot.consumable_name} is below its safety stock "
        f"(quantity {snapshot.quantity}, reserved {snapshot.reserved_quantity})."
    )


def _open_alerts(consumable_id: str) -> list[ConsumableAlert]:
    return (
        db.session.query(ConsumableAlert)
        .filter(ConsumableAlert.consumable_id == consumable_id, ConsumableAlert.status == ALERT_OPEN)
        .order_by(ConsumableAlert.created_at.asc())
        .all()
    )


def _resolve(alert: ConsumableAlert) -> ConsumableAlert:
    now = utcnow()
    alert.status = ALERT_RESOLVED
    alert.resolved_at = now
    return alert


def sync_consumable_alert_snapshot(snapshot: AlertSnapshot) -> AlertSyncResult:
    """
    Open, refresh or resolve the alert for one consumable.

    - low-stock / out-of-stock: update the open alert in place, or open one
    - any other status: resolve every open alert

    Runs inside the caller's transaction.
    """
    level = ALERT_LEVELS.get(snapshot.status)
    if level is None:
        return AlertSyncResult(resolved=resolve_alerts_for_consumable(snapshot.consumable_id))

    open_alerts = _open_alerts(snapshot.consumable_id)
    if open_alerts:
        alert = open_alerts[0]
        alert.level = level
        alert.message = _message(level, snapshot)
        alert.quantity = snapshot.quantity
        alert.reserved_quantity = snapshot.reserved_quantity
        alert.keeper = snapshot.keeper
        db.session.flush()
        return AlertSyncResult()

    alert = ConsumableAlert(
        consumable_id=snapshot.consumable_id,
        consumable_name=snapshot.consumable_name,
        keeper=snapshot.keeper,
        level=level,
        status=ALERT_OPEN,
        message=_message(level, snapshot),
        quantity=snapshot.quantity,
        reserved_quantity=snapshot.reserved_quantity,
    )
    db.session.add(alert)
    db.session.flush()
    current_app.logger.info("Opened %s alert %s for consumable %s", level, alert.id, snapshot.consumable_id)
    return AlertSyncResult(created=alert)


def propagate_consumable_alert_result(result: AlertSyncResult | None) -> None:
    """Queue task-tracker notifications for alerts opened or resolved."""
    if not result:
        return
    if result.created is not None:
        alert = result.created
        outbox_service.enqueue(
            outbox_service.EVENT_ALERT_OPENED,
            {
                "type": "consumable-alert",
                "alertId": alert.id,
                "consumableId": alert.consumable_id,
                "level": alert.level,
                "title": f"[Consumable] {alert.consumable_name}",
                "message": alert.message,
                "keeper": alert.keeper,
            },
            aggregate_id=alert.id,
        )
    for alert in result.resolved:
        outbox_service.enqueue(
            outbox_service.EVENT_ALERT_RESOLVED,
            {"alertId": alert.id, "consumableId": alert.consumable_id},
            aggregate_id=alert.id,
        )


def resolve_alerts_for_consumable(consumable_id: str) -> list[ConsumableAlert]:
    resolved = [_resolve(alert) for alert in _open_alerts(consumable_id)]
    if resolved:
        db.session.flush()
    return resolved


def list_alerts(*, status: str | None = None) -> list[ConsumableAlert]:
    query = db.session.query(ConsumableAlert)
    if status:
        if status not in ALERT_STATUSES:
            raise ValidationError(f"Invalid alert status: {status}")
        query = query.filter(ConsumableAlert.status == status)
    # Open alerts first, newest first within each group
    return query.order_by(
        db.case((ConsumableAlert.status == ALERT_OPEN, 0), else_=1),
        ConsumableAlert.created_at.desc(),
    ).all()


def resolve_alert(alert_id: str) -> ConsumableAlert:
    """Manually resolve one alert. Resolving an already resolved alert is a no-op."""
    with atomic():
        alert = db.session.get(ConsumableAlert, alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found")
        if alert.status == ALERT_OPEN:
            _resolve(alert)
            db.session.flush()
            propagate_consumable_alert_result(AlertSyncResult(resolved=[alert]))
    return alert
