"""
Asset directory and asset operation ledger tests.
"""

import pytest

from assethub.errors import (
    ApprovalRequiredError,
    InvalidTransitionError,
    MissingPreconditionError,
    NotFoundError,
    ValidationError,
)
from assethub.services import approval_service, asset_operation_service, asset_service


def test_create_operation_does_not_touch_asset(make_asset):
    asset = make_asset(owner="Alice")

    op = asset_operation_service.create_asset_operation(
        asset.id,
        op_type="receive",
        actor="Alice",
        description="  desk setup ",
        to_user_id="u7",
        metadata={"receiver": "Dan"},
    )

    assert op.id.startswith("OP-")
    assert op.status == "done"
    assert op.description == "desk setup"
    asset = asset_service.get_asset(asset.id)
    assert asset.status == "idle"
    assert asset.owner == "Alice"


def test_operation_requires_existing_asset(db_session):
    with pytest.raises(MissingPreconditionError):
        asset_operation_service.create_asset_operation("AST-NOPE", op_type="receive", actor="Alice")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"op_type": "teleport", "actor": "Alice"},
        {"op_type": "receive", "actor": "  "},
        {"op_type": "receive", "actor": "Alice", "status": "archived"},
        {"op_type": "receive", "actor": "Alice", "amount_cents": -1},
    ],
)
def test_operation_payload_validation(make_asset, kwargs):
    asset = make_asset()

    with pytest.raises(ValidationError):
        asset_operation_service.create_asset_operation(asset.id, **kwargs)


def test_done_is_terminal(make_asset):
    asset = make_asset()
    op = asset_operation_service.create_asset_operation(asset.id, op_type="borrow", actor="Alice", status="pending")

    asset_operation_service.update_asset_operation_status(op.id, "done")
    asset_operation_service.update_asset_operation_status(op.id, "done")

    for status in ("pending", "cancelled"):
        with pytest.raises(InvalidTransitionError):
            asset_operation_service.update_asset_operation_status(op.id, status)
    assert asset_operation_service.get_asset_operation(op.id).status == "done"


def test_cancelled_can_be_reopened(make_asset):
    asset = make_asset()
    op = asset_operation_service.create_asset_operation(asset.id, op_type="borrow", actor="Alice", status="pending")

    asset_operation_service.update_asset_operation_status(op.id, "cancelled")
    asset_operation_service.update_asset_operation_status(op.id, "pending")

    assert op.status == "pending"


def test_manual_status_change_respects_approval_flow(make_asset):
    asset = make_asset()
    approval = approval_service.create_approval_request(
        approval_type="borrow", title="Borrow projector", applicant_id="u1", asset_id=asset.id
    )

    with pytest.raises(ApprovalRequiredError):
        asset_operation_service.update_asset_operation_status(approval.operation_id, "done", manual=True)
    with pytest.raises(ApprovalRequiredError):
        asset_operation_service.update_asset_operation_status(approval.operation_id, "cancelled", manual=True)
    assert asset_operation_service.get_asset_operation(approval.operation_id).status == "pending"

    gated = asset_operation_service.create_asset_operation(
        asset.id, op_type="maintenance", actor="Alice", status="pending"
    )
    with pytest.raises(ApprovalRequiredError):
        asset_operation_service.update_asset_operation_status(gated.id, "done", manual=True)
    asset_operation_service.update_asset_operation_status(gated.id, "cancelled", manual=True)

    free = asset_operation_service.create_asset_operation(
        asset.id, op_type="transfer", actor="Alice", status="pending"
    )
    asset_operation_service.update_asset_operation_status(free.id, "done", manual=True)
    assert free.status == "done"


def test_list_operations_for_asset(make_asset):
    asset = make_asset()
    first = asset_operation_service.create_asset_operation(asset.id, op_type="inbound", actor="Alice")
    second = asset_operation_service.create_asset_operation(asset.id, op_type="receive", actor="Alice")

    ids = [op.id for op in asset_operation_service.list_asset_operations(asset.id)]

    assert set(ids) == {first.id, second.id}
    assert len(ids) == 2


def test_merge_operation_metadata_keeps_existing_keys(make_asset, db_session):
    asset = make_asset()
    op = asset_operation_service.create_asset_operation(
        asset.id, op_type="receive", actor="Alice", metadata={"receiver": "Dan"}
    )

    asset_operation_service.merge_operation_metadata(op, {"note": "badge issued"})
    db_session.commit()

    assert asset_operation_service.get_asset_operation(op.id).meta == {"receiver": "Dan", "note": "badge issued"}


def test_asset_patch_validation(make_asset):
    asset = make_asset()

    with pytest.raises(ValidationError):
        asset_service.update_asset(asset.id, {"status": "vanished"})
    with pytest.raises(ValidationError):
        asset_service.update_asset(asset.id, {"serial": "X"})
    with pytest.raises(NotFoundError):
        asset_service.update_asset("AST-NOPE", {"owner": "Bob"})

    asset_service.update_asset(asset.id, {"owner": "Bob", "location": "HQ"})
    assert (asset.owner, asset.location) == ("Bob", "HQ")


def test_list_assets_filters(make_asset):
    make_asset(name="A", owner="Alice")
    make_asset(name="B", owner="Bob", status="in-use")

    assert [a.name for a in asset_service.list_assets(owner="Alice")] == ["A"]
    assert [a.name for a in asset_service.list_assets(status="in-use")] == ["B"]
