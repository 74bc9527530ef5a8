"""
Approval decision orchestration tests.

Verifies:
- One decision moves approval, linked operation, asset/stock to one consistent state
- Purchase approval generates the pending inbound follow-up exactly once
- A second decision fails with "already processed" and changes nothing
- Any failure rolls the whole decision back (approval stays pending)
"""

import pytest

from assethub.errors import InvalidTransitionError, InvariantViolationError, ValidationError
from assethub.metadata import AUTO_GENERATED_FROM_APPROVAL_ID
from assethub.services import (
    approval_service,
    asset_operation_service,
    asset_service,
    consumable_operation_service,
    consumable_service,
)


def _request(approval_type="receive", **kwargs):
    kwargs.setdefault("title", f"{approval_type} request")
    kwargs.setdefault("applicant_id", "u1")
    kwargs.setdefault("applicant_name", "Alice")
    return approval_service.create_approval_request(approval_type=approval_type, **kwargs)


def _inbound_ops(asset_id):
    return [op for op in asset_operation_service.list_asset_operations(asset_id) if op.type == "inbound"]


# =============================================================================
# PURCHASE -> PENDING INBOUND
# =============================================================================


def test_purchase_approval_creates_asset_and_single_pending_inbound(db_session):
    approval = _request(
        "purchase",
        title="MacBook for design team",
        metadata={"newAsset": {"name": "MacBook Pro", "category": "laptop"}},
    )
    assert approval.asset_id is None
    assert approval.operation_id is None

    approval_service.decide(approval.id, "approve", actor_id="u2", actor_name="Bob")

    assert approval.status == "approved"
    assert approval.result == "Approved"
    assert approval.completed_at is not None
    assert approval.approver_id == "u2"

    asset = asset_service.get_asset(approval.asset_id)
    assert asset.name == "MacBook Pro"
    assert asset.status == "pending"
    assert asset.owner == "Alice"

    purchase_op = asset_operation_service.get_asset_operation(approval.operation_id)
    assert purchase_op.type == "purchase"
    assert purchase_op.status == "done"

    inbound = _inbound_ops(asset.id)
    assert len(inbound) == 1
    assert inbound[0].status == "pending"
    assert inbound[0].meta[AUTO_GENERATED_FROM_APPROVAL_ID] == approval.id

    # Second decision is rejected and does not duplicate the follow-up
    with pytest.raises(InvalidTransitionError, match="already processed"):
        approval_service.decide(approval.id, "approve", actor_id="u2", actor_name="Bob")
    assert len(_inbound_ops(asset.id)) == 1


def test_purchase_follow_up_opens_inbound_approval(db_session):
    approval = _request("purchase", metadata={"newAsset": {"name": "Monitor"}})
    approval_service.decide(approval.id, "approve", actor_id="u2", actor_name="Bob")

    inbound = _inbound_ops(approval.asset_id)[0]
    listed = approval_service.list_approval_requests({"type": ["inbound"]})

    assert listed["meta"]["total"] == 1
    follow_up = listed["data"][0]
    assert follow_up.operation_id == inbound.id
    assert follow_up.status == "pending"
    assert follow_up.approver_id == "u2"
    assert follow_up.applicant_id == "u1"
    assert follow_up.meta["configSnapshot"]["requiresApproval"] is True


def test_inbound_without_approval_skips_follow_up_approval(db_session, no_approval_for):
    no_approval_for("inbound")
    approval = _request("purchase", metadata={"newAsset": {"name": "Monitor"}})

    approval_service.decide(approval.id, "approve", actor_id="u2")

    assert len(_inbound_ops(approval.asset_id)) == 1
    assert approval_service.list_approval_requests({"type": ["inbound"]})["meta"]["total"] == 0


def test_purchase_of_existing_asset_mode_has_no_follow_up(make_asset):
    asset = make_asset()
    approval = _request("purchase", asset_id=asset.id, metadata={"purchaseAsset": {"mode": "existing"}})

    approval_service.decide(approval.id, "approve", actor_id="u2")

    assert _inbound_ops(asset.id) == []
    assert asset_service.get_asset(asset.id).status == "idle"


def test_sync_purchase_price_copies_template_cost(make_asset):
    asset = make_asset()
    approval = _request(
        "purchase",
        asset_id=asset.id,
        metadata={"operationTemplate": {"values": {"cost": "12,999.50"}}},
    )

    approval_service.decide(approval.id, "approve", actor_id="u2", sync_purchase_price=True)

    asset = asset_service.get_asset(asset.id)
    assert asset.purchase_price_cents == 1299950
    assert asset.purchase_currency == "CNY"
    assert approval.meta["syncPurchasePrice"] is True


def test_follow_up_inbound_prefers_operation_template(make_asset):
    asset = make_asset()
    op = asset_operation_service.create_asset_operation(
        asset.id,
        op_type="purchase",
        actor="Alice",
        status="pending",
        metadata={"operationTemplate": {"values": {"supplier": "Acme"}}},
    )
    approval = _request(
        "purchase",
        asset_id=asset.id,
        operation_id=op.id,
        metadata={"operationTemplate": {"values": {"supplier": "Globex"}}},
    )

    approval_service.decide(approval.id, "approve", actor_id="u2")

    (inbound,) = _inbound_ops(asset.id)
    assert inbound.meta["operationTemplate"]["values"] == {"supplier": "Acme"}


def test_consumable_purchase_never_creates_asset(make_consumable):
    consumable = make_consumable()
    approval = _request(
        "purchase",
        consumable_id=consumable.id,
        metadata={"newAsset": {"name": "Toner"}},
    )

    approval_service.decide(approval.id, "approve", actor_id="u2")

    assert approval.status == "approved"
    assert approval.asset_id is None
    assert approval.consumable_id == consumable.id
    assert asset_service.list_assets() == []


# =============================================================================
# ASSET STATUS INFERENCE
# =============================================================================


def test_receive_approval_moves_asset_in_use_with_receiver(make_asset):
    asset = make_asset()
    approval = _request(
        "receive",
        asset_id=asset.id,
        metadata={"operationTemplate": {"values": {"receiver": "Carol"}}},
    )
    op = asset_operation_service.get_asset_operation(approval.operation_id)
    assert op.status == "pending"
    assert op.meta[AUTO_GENERATED_FROM_APPROVAL_ID] == approval.id

    approval_service.decide(approval.id, "approve", actor_id="u2", comment="ok, hand it over")

    assert approval.result == "ok, hand it over"
    assert op.status == "done"
    asset = asset_service.get_asset(asset.id)
    assert asset.status == "in-use"
    assert asset.owner == "Carol"


@pytest.mark.parametrize(
    "approval_type,expected",
    [
        ("borrow", "borrowing"),
        ("return", "idle"),
        ("maintenance", "maintenance"),
        ("dispose", "scrapped"),
    ],
)
def test_asset_status_follows_operation_type(make_asset, approval_type, expected):
    asset = make_asset(status="in-use")
    approval = _request(approval_type, asset_id=asset.id)

    approval_service.decide(approval.id, "approve", actor_id="u2")

    assert asset_service.get_asset(asset.id).status == expected


def test_linked_transfer_keeps_asset_status(make_asset):
    asset = make_asset(status="in-use", owner="Alice")
    op = asset_operation_service.create_asset_operation(
        asset.id, op_type="transfer", actor="Alice", status="pending", metadata={"receiver": "Dan"}
    )
    approval = _request("other", asset_id=asset.id, operation_id=op.id)

    approval_service.decide(approval.id, "approve", actor_id="u2")

    assert op.status == "done"
    asset = asset_service.get_asset(asset.id)
    assert (asset.status, asset.owner) == ("in-use", "Alice")


@pytest.mark.parametrize("action,result", [("reject", "Rejected"), ("cancel", "Cancelled")])
def test_reject_and_cancel_cancel_the_operation(make_asset, action, result):
    asset = make_asset()
    approval = _request("receive", asset_id=asset.id)

    approval_service.decide(approval.id, action, actor_id="u2")

    assert approval.status == {"reject": "rejected", "cancel": "cancelled"}[action]
    assert approval.result == result
    assert asset_operation_service.get_asset_operation(approval.operation_id).status == "cancelled"
    assert asset_service.get_asset(asset.id).status == "idle"


def test_late_cancel_of_done_operation_rolls_back(make_asset):
    asset = make_asset()
    approval = _request("receive", asset_id=asset.id)
    asset_operation_service.update_asset_operation_status(approval.operation_id, "done")

    with pytest.raises(InvalidTransitionError):
        approval_service.decide(approval.id, "cancel", actor_id="u2")

    approval = approval_service.get_approval(approval.id)
    assert approval.status == "pending"
    assert approval.completed_at is None
    assert approval.result is None


def test_unknown_action_is_rejected(make_asset):
    approval = _request("receive", asset_id=make_asset().id)

    with pytest.raises(ValidationError):
        approval_service.decide(approval.id, "escalate", actor_id="u2")


# =============================================================================
# CONSUMABLE APPROVALS
# =============================================================================


def test_consumable_approval_applies_stock_on_approve(make_consumable):
    consumable = make_consumable(quantity=10, safety_stock=3)
    op = consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="outbound", actor="Alice", quantity_delta=-8
    )
    approval = _request("outbound", consumable_operation_id=op.id)
    assert approval.consumable_id == consumable.id

    approval_service.decide(approval.id, "approve", actor_id="u2")

    assert op.status == "done"
    consumable = consumable_service.get_consumable(consumable.id)
    assert consumable.quantity == 2
    assert consumable.status == "low-stock"


def test_consumable_approval_with_insufficient_stock_rolls_back(make_consumable):
    consumable = make_consumable(quantity=3)
    op = consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="outbound", actor="Alice", quantity_delta=-5
    )
    approval = _request("outbound", consumable_operation_id=op.id)

    with pytest.raises(InvariantViolationError):
        approval_service.decide(approval.id, "approve", actor_id="u2")

    assert approval_service.get_approval(approval.id).status == "pending"
    assert consumable_operation_service.get_consumable_operation(op.id).status == "pending"
    assert consumable_service.get_consumable(consumable.id).quantity == 3


def test_rejected_consumable_approval_leaves_stock(make_consumable):
    consumable = make_consumable(quantity=10)
    op = consumable_operation_service.create_consumable_operation(
        consumable.id, op_type="outbound", actor="Alice", quantity_delta=-4
    )
    approval = _request("outbound", consumable_operation_id=op.id)

    approval_service.decide(approval.id, "reject", actor_id="u2")

    assert op.status == "cancelled"
    assert consumable_service.get_consumable(consumable.id).quantity == 10
