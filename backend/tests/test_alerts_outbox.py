"""
Stock alert propagation and task-tracker outbox tests.

Verifies:
- Alerts open, refresh and resolve with the consumable status
- Notifications are delivered after commit and never fail the business call
- Failed deliveries are retried with backoff and parked as failed at the limit
"""

from datetime import timedelta
from unittest import mock

import pytest
import requests

from assethub.errors import ValidationError
from assethub.models import OutboxEvent
from assethub.services import alert_service, approval_service, consumable_operation_service, outbox_service
from assethub.services.alert_service import AlertSnapshot, sync_consumable_alert_snapshot
from assethub.time_utils import utcnow


def _response(body=None):
    response = mock.Mock()
    response.content = b"{}" if body is not None else b""
    response.json.return_value = body
    response.raise_for_status.return_value = None
    return response


@pytest.fixture
def tracker(app, db_session, monkeypatch):
    """Configure the task tracker and intercept its HTTP calls."""
    monkeypatch.setitem(app.config, "EXTERNAL_TODO_BASE_URL", "https://todo.example.test/api")
    monkeypatch.setitem(app.config, "EXTERNAL_TODO_TOKEN", "secret")
    monkeypatch.setitem(app.config, "EXTERNAL_TODO_LINK_BASE", "https://assets.example.test")
    with mock.patch("assethub.services.external_todo_service.requests.request") as request:
        request.return_value = _response({"id": "T-1"})
        yield request


def _events(db_session, kind=None):
    query = db_session.query(OutboxEvent)
    if kind:
        query = query.filter_by(kind=kind)
    return query.order_by(OutboxEvent.id).all()


def _other_approval():
    return approval_service.create_approval_request(
        approval_type="other", title="Team offsite", applicant_id="u1", applicant_name="Alice"
    )


# =============================================================================
# ALERTS
# =============================================================================


def test_alert_opens_refreshes_and_resolves(db_session, make_consumable, no_approval_for):
    no_approval_for("outbound", "inbound")
    consumable = make_consumable(quantity=10, safety_stock=3)

    consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="outbound", actor="Alice", quantity_delta=-8
    )
    (alert,) = alert_service.list_alerts(status="open")
    assert alert.level == "low-stock"
    assert alert.quantity == 2

    consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="outbound", actor="Alice", quantity_delta=-2
    )
    (refreshed,) = alert_service.list_alerts(status="open")
    assert refreshed.id == alert.id
    assert refreshed.level == "out-of-stock"
    assert refreshed.quantity == 0

    consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="inbound", actor="Alice", quantity_delta=20
    )
    assert alert_service.list_alerts(status="open") == []
    assert alert_service.list_alerts(status="resolved")[0].resolved_at is not None

    assert len(_events(db_session, "alert.opened")) == 1
    assert len(_events(db_session, "alert.resolved")) == 1


def test_snapshot_sync_without_alerting_status_is_empty(db_session, make_consumable):
    consumable = make_consumable(quantity=10, safety_stock=3)

    result = sync_consumable_alert_snapshot(
        AlertSnapshot(
            consumable_id=consumable.id,
            consumable_name=consumable.name,
            status="in-stock",
            quantity=10,
            reserved_quantity=0,
        )
    )

    assert not result


def test_manual_resolve_is_idempotent(db_session, make_consumable):
    make_consumable(quantity=1, safety_stock=5)
    (alert,) = alert_service.list_alerts(status="open")

    alert_service.resolve_alert(alert.id)
    alert_service.resolve_alert(alert.id)

    assert alert.status == "resolved"
    assert len(_events(db_session, "alert.resolved")) == 1


def test_open_alerts_listed_first(db_session, make_consumable):
    make_consumable(name="Old", quantity=1, safety_stock=5)
    (old,) = alert_service.list_alerts(status="open")
    alert_service.resolve_alert(old.id)
    make_consumable(name="New", quantity=1, safety_stock=5)

    assert [a.status for a in alert_service.list_alerts()] == ["open", "resolved"]
    with pytest.raises(ValidationError):
        alert_service.list_alerts(status="snoozed")


# =============================================================================
# OUTBOX DELIVERY
# =============================================================================


def test_without_tracker_events_are_delivered_as_noop(db_session):
    _other_approval()

    (event,) = _events(db_session)
    assert event.status == "delivered"
    assert event.attempts == 1


def test_approval_todo_created_and_updated(db_session, tracker):
    approval = _other_approval()

    method, url = tracker.call_args.args
    assert (method, url) == ("POST", "https://todo.example.test/api/todos")
    assert tracker.call_args.kwargs["json"]["approvalId"] == approval.id
    assert tracker.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"
    assert approval.external_todo_id == "T-1"

    approval_service.decide(approval.id, "approve", actor_id="u2")

    method, url = tracker.call_args.args
    assert (method, url) == ("PATCH", "https://todo.example.test/api/todos/T-1")
    assert tracker.call_args.kwargs["json"] == {"status": "approved", "result": "Approved"}
    assert all(event.status == "delivered" for event in _events(db_session))


def test_reassignment_updates_todo_approver(db_session, tracker):
    approval = _other_approval()

    approval_service.reassign_approver(
        approval.id, approver_id="u7", approver_name="Gus", actor_id="admin"
    )

    method, url = tracker.call_args.args
    assert (method, url) == ("PATCH", "https://todo.example.test/api/todos/T-1")
    assert tracker.call_args.kwargs["json"] == {"approverId": "u7", "approverName": "Gus"}
    (event,) = _events(db_session, kind="approval.reassigned")
    assert event.status == "delivered"


def test_alert_todo_carries_link_and_is_resolved(db_session, tracker, make_consumable):
    consumable = make_consumable(quantity=1, safety_stock=5)

    body = tracker.call_args.kwargs["json"]
    assert body["consumableId"] == consumable.id
    assert body["link"] == f"https://assets.example.test/consumables/{consumable.id}"
    (alert,) = alert_service.list_alerts(status="open")
    assert alert.external_todo_id == "T-1"

    alert_service.resolve_alert(alert.id)

    method, url = tracker.call_args.args
    assert (method, url) == ("PATCH", "https://todo.example.test/api/todos/T-1")
    assert tracker.call_args.kwargs["json"]["status"] == "resolved"


def test_tracker_outage_never_fails_the_decision(db_session, tracker):
    tracker.side_effect = requests.ConnectionError("tracker down")

    approval = _other_approval()
    approval_service.decide(approval.id, "approve", actor_id="u2")

    assert approval_service.get_approval(approval.id).status == "approved"
    created, decided = _events(db_session)
    assert created.status == "pending"
    assert created.attempts == 1
    assert "tracker down" in created.last_error
    assert created.next_attempt_at > utcnow()
    # Decision update waits for the todo to exist
    assert decided.status == "pending"

    tracker.side_effect = None
    tracker.return_value = _response({"id": "T-9"})
    stats = outbox_service.flush_due(now=utcnow() + timedelta(hours=1))

    assert stats == {"due": 2, "delivered": 2, "failed": 0}
    assert approval_service.get_approval(approval.id).external_todo_id == "T-9"
    method, url = tracker.call_args.args
    assert (method, url) == ("PATCH", "https://todo.example.test/api/todos/T-9")


def test_backoff_is_respected(db_session, tracker):
    tracker.side_effect = requests.ConnectionError("tracker down")
    _other_approval()

    stats = outbox_service.flush_due()

    assert stats["due"] == 0


def test_event_parked_as_failed_after_max_attempts(app, db_session, tracker, monkeypatch):
    monkeypatch.setitem(app.config, "OUTBOX_MAX_ATTEMPTS", 2)
    tracker.side_effect = requests.HTTPError("502 Bad Gateway")
    _other_approval()

    stats = outbox_service.flush_due(now=utcnow() + timedelta(hours=1))

    assert stats == {"due": 1, "delivered": 0, "failed": 1}
    (event,) = outbox_service.list_events(status="failed")
    assert event.attempts == 2
    assert event.next_attempt_at is None
    assert outbox_service.flush_due(now=utcnow() + timedelta(days=1))["due"] == 0


def test_dispatch_on_commit_can_be_disabled(app, db_session, monkeypatch):
    monkeypatch.setitem(app.config, "OUTBOX_DISPATCH_ON_COMMIT", False)

    _other_approval()
    (event,) = outbox_service.list_events(status="pending")
    assert event.attempts == 0

    assert outbox_service.flush_due()["delivered"] == 1
    assert outbox_service.list_events(status="pending") == []


def test_unknown_event_kind_is_rejected(db_session):
    with pytest.raises(ValueError):
        outbox_service.enqueue("approval.exploded", {})
