# Overview: Asset operation ledger; append entries and guard their status lifecycle.

"""
Asset operation ledger.

Inserting an entry never touches the asset itself. Asset status and owner
changes are applied by the approval orchestrator (or by the caller for
approval-free actions), keyed on the operation ``type``. Entries can exist
before their approval does, so the ledger stays side-effect free.
"""

from __future__ import annotations

from typing import Any

from ..asset_state import ASSET_OPERATION_TYPES
from ..errors import MissingPreconditionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ApprovalRequest, Asset, AssetOperation
from .action_config_service import ACTION_TYPES, get_action_config
from .concurrency import atomic, lock_for_update
from .lifecycle_service import (
    OP_DONE,
    ensure_manual_status_change,
    ensure_operation_transition,
    validate_operation_status,
)


def get_asset_operation(op_id: str, *, for_update: bool = False) -> AssetOperation:
    query = db.session.query(AssetOperation).filter_by(id=op_id)
    if for_update:
        query = lock_for_update(query)
    op = query.first()
    if op is None:
        raise NotFoundError(f"Asset operation {op_id} not found")
    return op


def linked_approval_id(op: AssetOperation) -> str | None:
    row = db.session.query(ApprovalRequest.id).filter(ApprovalRequest.operation_id == op.id).first()
    return row.id if row else None


def list_asset_operations(asset_id: str) -> list[AssetOperation]:
    return (
        db.session.query(AssetOperation)
        .filter(AssetOperation.asset_id == asset_id)
        .order_by(AssetOperation.created_at.desc(), AssetOperation.id.desc())
        .all()
    )


def create_asset_operation(
    asset_id: str,
    *,
    op_type: str,
    actor: str,
    status: str = OP_DONE,
    description: str | None = None,
    from_user_id: str | None = None,
    to_user_id: str | None = None,
    amount_cents: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> AssetOperation:
    """
    Append a ledger entry for an existing asset.

    Raises:
        MissingPreconditionError: the target asset does not exist
        ValidationError: unknown type/status, missing actor, bad amount
    """
    if op_type not in ASSET_OPERATION_TYPES:
        raise ValidationError(f"Invalid asset operation type: {op_type}")
    validate_operation_status(status)
    if not (actor or "").strip():
        raise ValidationError("actor is required")
    if amount_cents is not None and (
        not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents < 0
    ):
        raise ValidationError("amount_cents must be a non-negative integer")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")

    with atomic():
        asset = db.session.query(Asset).filter_by(id=asset_id).first()
        if asset is None:
            raise MissingPreconditionError(f"Asset operation requires an existing asset ({asset_id})")

        op = AssetOperation(
            asset_id=asset.id,
            type=op_type,
            status=status,
            description=(description or "").strip(),
            actor=actor.strip(),
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount_cents=amount_cents,
            meta=dict(metadata) if metadata else None,
        )
        db.session.add(op)
        db.session.flush()
    return op


def _gated_by_config(op_type: str) -> bool:
    # transfer, scrap, recycle, lost have no action config
    if op_type not in ACTION_TYPES:
        return False
    return get_action_config(op_type).requires_approval


def update_asset_operation_status(op_id: str, status: str, *, manual: bool = False) -> AssetOperation:
    """
    Move an entry along its lifecycle; ``done`` is terminal.

    Same-status calls are no-ops. ``manual`` marks a change requested directly
    by a user: entries linked to an approval are refused, and so is ``done``
    for approval-gated types.

    Raises:
        NotFoundError
        InvalidTransitionError: moving away from ``done``
        ApprovalRequiredError: manual change the approval flow owns
    """
    with atomic():
        op = get_asset_operation(op_id, for_update=True)
        ensure_operation_transition("asset", op.id, op.status, status)
        if manual and op.status != status:
            ensure_manual_status_change(
                "asset",
                op.id,
                status,
                linked_approval_id=linked_approval_id(op),
                requires_approval=_gated_by_config(op.type),
            )
        if op.status != status:
            op.status = status
            db.session.flush()
    return op


def merge_operation_metadata(op: AssetOperation, extra: dict[str, Any]) -> None:
    # JSON columns do not track in-place mutation; always assign a new dict
    op.meta = {**(op.meta or {}), **extra}
