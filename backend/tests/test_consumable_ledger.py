"""
Consumable operation / stock ledger tests.

Verifies:
- Done entries apply their deltas exactly once
- Stock invariants (no negative stock, 0 <= reserved <= quantity) reject the
  whole operation and leave stock untouched
- Status derivation order: archived > out-of-stock > reserved > low-stock > in-stock
- Approval-gated actions cannot be created directly as done
"""

import pytest

from assethub.errors import (
    ApprovalRequiredError,
    InvalidTransitionError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from assethub.models import ConsumableOperation
from assethub.services import alert_service, consumable_operation_service, consumable_service
from assethub.services.consumable_service import resolve_status_from_stock


def _outbound(consumable, delta, **kwargs):
    return consumable_operation_service.create_consumable_operation(
        consumable.id,
        op_type="outbound",
        actor="Alice",
        quantity_delta=delta,
        **kwargs,
    )


# =============================================================================
# STOCK EFFECTS
# =============================================================================


def test_outbound_below_safety_stock_becomes_low_stock(make_consumable, no_approval_for):
    no_approval_for("outbound")
    consumable = make_consumable(quantity=10, safety_stock=3)

    op = _outbound(consumable, -8)

    assert op.status == "done"
    assert op.applied_at is not None
    assert consumable.quantity == 2
    assert consumable.status == "low-stock"

    alerts = alert_service.list_alerts(status="open")
    assert len(alerts) == 1
    assert alerts[0].level == "low-stock"
    assert alerts[0].consumable_id == consumable.id


def test_outbound_beyond_stock_is_rejected_and_nothing_changes(db_session, make_consumable, no_approval_for):
    no_approval_for("outbound")
    consumable = make_consumable(quantity=10, safety_stock=3)
    _outbound(consumable, -8)

    with pytest.raises(InvariantViolationError, match="Insufficient stock"):
        _outbound(consumable, -15)

    refreshed = consumable_service.get_consumable(consumable.id)
    assert refreshed.quantity == 2
    assert refreshed.status == "low-stock"
    assert db_session.query(ConsumableOperation).filter_by(consumable_id=consumable.id).count() == 1


def test_reserve_then_release_restores_reserved(make_consumable):
    consumable = make_consumable(quantity=10, safety_stock=3)

    reserve = consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="reserve", actor="Alice", reserved_delta=2
    )
    assert reserve.status == "done"
    assert consumable.reserved_quantity == 2
    assert consumable.available_quantity == 8
    assert consumable.status == "in-stock"

    consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="release", actor="Alice", reserved_delta=-2
    )
    assert consumable.reserved_quantity == 0
    assert consumable.quantity == 10
    assert consumable.status == "in-stock"


def test_reserving_everything_marks_reserved(make_consumable):
    consumable = make_consumable(quantity=2, safety_stock=0)

    consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="reserve", actor="Alice", reserved_delta=2
    )

    assert consumable.status == "reserved"


def test_reserved_cannot_exceed_quantity(make_consumable):
    consumable = make_consumable(quantity=10)

    with pytest.raises(InvariantViolationError, match="cannot exceed"):
        consumable_operation_service.create_consumable_operation(
            consumable.id, op_type="reserve", actor="Alice", reserved_delta=11
        )

    assert consumable_service.get_consumable(consumable.id).reserved_quantity == 0


def test_release_cannot_go_negative(make_consumable):
    consumable = make_consumable(quantity=10)

    with pytest.raises(InvariantViolationError, match="cannot be negative"):
        consumable_operation_service.create_consumable_operation(
            consumable.id, op_type="release", actor="Alice", reserved_delta=-1
        )


def test_outbound_to_zero_is_out_of_stock(make_consumable, no_approval_for):
    no_approval_for("outbound")
    consumable = make_consumable(quantity=3, safety_stock=1)

    _outbound(consumable, -3)

    assert consumable.quantity == 0
    assert consumable.status == "out-of-stock"
    alert = alert_service.list_alerts(status="open")[0]
    assert alert.level == "out-of-stock"


def test_archived_status_is_sticky(make_consumable, no_approval_for):
    no_approval_for("adjust")
    consumable = make_consumable(quantity=5, safety_stock=0)
    consumable_service.archive_consumable(consumable.id)

    consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="adjust", actor="Alice", quantity_delta=-5
    )

    assert consumable.quantity == 0
    assert consumable.status == "archived"


@pytest.mark.parametrize(
    "current,quantity,reserved,safety,expected",
    [
        ("archived", 0, 0, 5, "archived"),
        ("in-stock", 0, 0, 5, "out-of-stock"),
        ("in-stock", 4, 4, 5, "reserved"),
        ("in-stock", 4, 1, 5, "low-stock"),
        ("low-stock", 6, 1, 5, "in-stock"),
        ("in-stock", 1, 0, 0, "in-stock"),
    ],
)
def test_status_derivation_order(current, quantity, reserved, safety, expected):
    assert resolve_status_from_stock(
        current_status=current,
        quantity=quantity,
        reserved_quantity=reserved,
        safety_stock=safety,
    ) == expected


# =============================================================================
# ENTRY LIFECYCLE
# =============================================================================


def test_gated_action_defaults_to_pending_without_effect(make_consumable):
    consumable = make_consumable(quantity=10)

    op = _outbound(consumable, -4)

    assert op.status == "pending"
    assert op.applied_at is None
    assert consumable.quantity == 10


def test_done_on_gated_action_requires_approval(make_consumable):
    consumable = make_consumable(quantity=10)

    with pytest.raises(ApprovalRequiredError):
        _outbound(consumable, -4, status="done")

    assert consumable_operation_service.list_consumable_operations(consumable.id) == []


def test_pending_to_done_applies_exactly_once(make_consumable):
    consumable = make_consumable(quantity=10)
    op = _outbound(consumable, -4)

    consumable_operation_service.update_consumable_operation_status(op.id, "done")
    assert consumable.quantity == 6

    # Same-status call is a no-op
    consumable_operation_service.update_consumable_operation_status(op.id, "done")
    assert consumable.quantity == 6

    with pytest.raises(InvalidTransitionError):
        consumable_operation_service.update_consumable_operation_status(op.id, "cancelled")
    with pytest.raises(InvalidTransitionError):
        consumable_operation_service.update_consumable_operation_status(op.id, "pending")

    assert consumable_service.get_consumable(consumable.id).quantity == 6


def test_failed_apply_keeps_entry_pending(make_consumable):
    consumable = make_consumable(quantity=10)
    op = _outbound(consumable, -20)

    with pytest.raises(InvariantViolationError):
        consumable_operation_service.update_consumable_operation_status(op.id, "done")

    op = consumable_operation_service.get_consumable_operation(op.id)
    assert op.status == "pending"
    assert op.applied_at is None
    assert consumable_service.get_consumable(consumable.id).quantity == 10


def test_cancelled_entry_has_no_effect_until_revived(make_consumable):
    consumable = make_consumable(quantity=10)
    op = _outbound(consumable, -1)

    consumable_operation_service.update_consumable_operation_status(op.id, "cancelled")
    assert consumable.quantity == 10

    consumable_operation_service.update_consumable_operation_status(op.id, "pending")
    consumable_operation_service.update_consumable_operation_status(op.id, "done")
    assert consumable.quantity == 9


@pytest.mark.parametrize(
    "op_type,quantity_delta,reserved_delta",
    [
        ("inbound", -1, 0),
        ("purchase", 0, 0),
        ("outbound", 1, 0),
        ("dispose", 0, 0),
        ("reserve", 0, -1),
        ("release", 0, 1),
        ("adjust", 0, 0),
        ("borrow", 1, 0),
    ],
)
def test_delta_signs_are_validated_per_type(make_consumable, op_type, quantity_delta, reserved_delta):
    consumable = make_consumable()

    with pytest.raises(ValidationError):
        consumable_operation_service.create_consumable_operation(
            consumable.id,
            op_type=op_type,
            actor="Alice",
            quantity_delta=quantity_delta,
            reserved_delta=reserved_delta,
        )


def test_non_integer_delta_rejected(make_consumable):
    consumable = make_consumable()

    with pytest.raises(ValidationError):
        consumable_operation_service.create_consumable_operation(
            consumable.id, op_type="inbound", actor="Alice", quantity_delta="5"
        )


# =============================================================================
# DIRECTORY
# =============================================================================


def test_create_rejects_reserved_above_quantity(db_session):
    with pytest.raises(ValidationError):
        consumable_service.create_consumable(name="Toner", quantity=1, reserved_quantity=2)


def test_opening_stock_below_safety_opens_alert(make_consumable):
    consumable = make_consumable(quantity=2, safety_stock=5)

    assert consumable.status == "low-stock"
    assert [a.consumable_id for a in alert_service.list_alerts(status="open")] == [consumable.id]


def test_stock_fields_are_not_patchable(make_consumable):
    consumable = make_consumable()

    with pytest.raises(ValidationError):
        consumable_service.update_consumable(consumable.id, {"quantity": 99})


def test_raising_safety_stock_rederives_status(make_consumable):
    consumable = make_consumable(quantity=4, safety_stock=1)

    consumable_service.update_consumable(consumable.id, {"safety_stock": 5})

    assert consumable.status == "low-stock"


def test_soft_delete_hides_consumable_and_resolves_alerts(make_consumable):
    consumable = make_consumable(quantity=1, safety_stock=5)
    assert alert_service.list_alerts(status="open")

    consumable_service.delete_consumable(consumable.id, actor="u1")

    assert alert_service.list_alerts(status="open") == []
    with pytest.raises(NotFoundError):
        consumable_service.get_consumable(consumable.id)
    with pytest.raises(NotFoundError):
        consumable_operation_service.create_consumable_operation(
            consumable.id, op_type="reserve", actor="Alice", reserved_delta=1
        )
    with pytest.raises(InvalidTransitionError):
        consumable_service.delete_consumable(consumable.id)

    deleted = consumable_service.get_consumable(consumable.id, include_deleted=True)
    assert deleted.deleted_by == "u1"
    assert consumable.id not in [c.id for c in consumable_service.list_consumables()]


# =============================================================================
# AUDIT QUERY
# =============================================================================


def test_query_filters_and_summarizes(make_consumable, no_approval_for):
    no_approval_for("inbound", "outbound")
    paper = make_consumable(name="A4 paper", quantity=10, keeper="alice")
    toner = make_consumable(name="Toner", quantity=4, keeper="bob")

    consumable_operation_service.create_consumable_operation(
        paper.id, op_type="inbound", actor="Alice", quantity_delta=5
    )
    _outbound(paper, -3)
    _outbound(toner, -1)
    consumable_operation_service.create_consumable_operation(
        toner.id, op_type="dispose", actor="Bob", quantity_delta=-1
    )

    everything = consumable_operation_service.query_consumable_operations({})
    assert everything["total"] == 4
    assert everything["summary"] == {
        "total_operations": 4,
        "pending_operations": 1,
        "inbound_quantity": 5,
        "outbound_quantity": 5,
        "net_quantity": 0,
    }

    alice = consumable_operation_service.query_consumable_operations({"keeper": "alice"})
    assert alice["total"] == 2
    assert {item["consumable_name"] for item in alice["items"]} == {"A4 paper"}

    outbound = consumable_operation_service.query_consumable_operations({"types": ["outbound"], "keyword": "toner"})
    assert outbound["total"] == 1
    assert outbound["items"][0]["consumable_id"] == toner.id

    paged = consumable_operation_service.query_consumable_operations({"page": 2, "page_size": 3})
    assert paged["page_size"] == 3
    assert len(paged["items"]) == 1

    capped = consumable_operation_service.query_consumable_operations({"page_size": 5000})
    assert capped["page_size"] == 200

    with pytest.raises(ValidationError):
        consumable_operation_service.query_consumable_operations({"statuses": ["archived"]})
