"""
Concurrent writer tests.

Runs against a file-backed SQLite database so every app context gets its own
connection, the way separate requests would.

Verifies:
- Two outbound entries racing for the same stock: exactly one applies
- Two decisions racing on one approval: one wins, one inbound follow-up
- The losing unit of work leaves nothing behind
"""

import threading

import pytest

from assethub import create_app
from assethub.config import TestingConfig
from assethub.errors import ConflictError, InvariantViolationError
from assethub.extensions import db
from assethub.models import ApprovalRequest, ConsumableOperation
from assethub.services import (
    action_config_service,
    approval_service,
    asset_operation_service,
    asset_service,
    consumable_operation_service,
    consumable_service,
    orchestration_service,
)


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'assethub.sqlite3'}"

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def test_racing_outbound_entries_apply_once(file_app):
    with file_app.app_context():
        action_config_service.upsert_action_config("outbound", {"requires_approval": False})
        consumable_id = consumable_service.create_consumable(name="A4 paper", quantity=10, safety_stock=3).id

    barrier = threading.Barrier(2)
    results = []

    def take_eight():
        with file_app.app_context():
            barrier.wait(timeout=10)
            try:
                consumable_operation_service.create_consumable_operation(
                    consumable_id, op_type="outbound", actor="Alice", quantity_delta=-8
                )
                results.append("ok")
            except Exception as exc:
                results.append(type(exc).__name__)

    threads = [threading.Thread(target=take_eight) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    # The loser either saw a stale version or, arriving later, too little stock
    assert len(results) == 2
    assert results.count("ok") == 1
    (loser,) = [r for r in results if r != "ok"]
    assert loser in (ConflictError.__name__, InvariantViolationError.__name__)

    with file_app.app_context():
        stock = consumable_service.get_consumable(consumable_id)
        assert stock.quantity == 2
        assert stock.status == "low-stock"
        assert db.session.query(ConsumableOperation).count() == 1


def test_racing_decisions_create_one_follow_up(file_app, monkeypatch):
    with file_app.app_context():
        approval_id = approval_service.create_approval_request(
            approval_type="purchase",
            title="Laptop for new hire",
            applicant_id="u1",
            applicant_name="Alice",
            metadata={"newAsset": {"name": "ThinkPad X1"}},
        ).id

    real_mark_decided = orchestration_service.mark_decided
    raced = []

    def decided_elsewhere_first(approval, **kwargs):
        # The first decision has read the approval row; a second request
        # decides and commits before the first one writes.
        if not raced:
            raced.append(approval.id)
            with file_app.app_context():
                approval_service.decide(approval.id, "approve", actor_id="u3", actor_name="Cy")
        return real_mark_decided(approval, **kwargs)

    monkeypatch.setattr(orchestration_service, "mark_decided", decided_elsewhere_first)

    with file_app.app_context():
        with pytest.raises(ConflictError):
            approval_service.decide(approval_id, "approve", actor_id="u2", actor_name="Bo")

    with file_app.app_context():
        approval = approval_service.get_approval(approval_id)
        assert approval.status == "approved"
        assert approval.approver_id == "u3"

        (asset,) = asset_service.list_assets()
        assert approval.asset_id == asset.id
        inbound = [op for op in asset_operation_service.list_asset_operations(asset.id) if op.type == "inbound"]
        assert len(inbound) == 1
        assert inbound[0].status == "pending"

        follow_ups = db.session.query(ApprovalRequest).filter_by(type="inbound").all()
        assert len(follow_ups) == 1
