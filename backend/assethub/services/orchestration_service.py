# Overview: Approval decision orchestrator; drives approval, ledgers, asset and stock to one consistent state.

"""
Approval Orchestrator

================================================================================
PURPOSE: Turn one human decision into one atomic set of consistent changes
================================================================================

apply_approval_action(id, action, actor, comment), all in ONE unit of work:

    1. Approval pending -> approved | rejected | cancelled
    2. Linked asset/consumable operation -> done (approve) | cancelled
       (consumable done applies stock effects)
    3. Approve only:
       a. purchase without asset + newAsset metadata -> create the asset
       b. optional purchase price sync from the operation template
       c. missing asset operation for an asset approval -> create it, done
          (must run before d/e, which read the materialized operation)
       d. asset status (and owner) inferred from the operation type
       e. purchase -> pending inbound follow-up, at most once per approval
          (marker: metadata.autoGeneratedFromApprovalId)
    4. Queue the task-tracker notification (outbox)

Any failure in 1-3 rolls everything back; the approval stays pending.
Delivery of 4 happens after commit and never affects the decision.
================================================================================
"""

from __future__ import annotations

from flask import current_app

from ..asset_state import ASSET_PENDING, infer_asset_status
from ..errors import ValidationError
from ..extensions import db
from ..metadata import (
    AUTO_GENERATED_FROM_APPROVAL_ID,
    ApprovalMetadata,
    OperationTemplate,
    extract_owner,
    parse_money_to_cents,
)
from ..models import ApprovalRequest, AssetOperation
from ..time_utils import utcnow
from . import outbox_service
from .action_config_service import APPROVER_TYPE_USER, get_action_config
from .approval_service import (
    APPROVAL_OPERATION_TYPES,
    operation_metadata_for,
    create_approval_request,
    get_approval,
    list_approval_requests,
    mark_decided,
)
from .asset_operation_service import (
    create_asset_operation,
    get_asset_operation,
    list_asset_operations,
    update_asset_operation_status,
)
from .asset_service import create_asset, get_asset, update_asset
from .concurrency import atomic
from .consumable_operation_service import get_consumable_operation, update_consumable_operation_status
from .consumable_service import update_consumable
from .lifecycle_service import (
    APPROVAL_APPROVED,
    DECISION_OPERATION_STATUS,
    OP_DONE,
    OP_PENDING,
    validate_decision_action,
)


PURCHASE_CURRENCY = "CNY"


def apply_approval_action(
    approval_id: str,
    *,
    action: str,
    actor_id: str,
    actor_name: str | None = None,
    comment: str | None = None,
    sync_purchase_price: bool | None = None,
) -> ApprovalRequest:
    """
    Decide an approval and apply every consequence atomically.

    Raises:
        NotFoundError: approval (or a linked row) missing
        ValidationError: unknown action
        InvalidTransitionError: approval already processed, or the linked
            operation cannot move (e.g. late cancel of a ``done`` entry)
        InvariantViolationError: stock effects of the linked consumable
            operation would break a stock invariant
        ConflictError: concurrent modification detected at commit
    """
    validate_decision_action(action)
    if not (actor_id or "").strip():
        raise ValidationError("actor is required")

    with atomic():
        approval = get_approval(approval_id, for_update=True)
        mark_decided(approval, action=action, actor_id=actor_id, actor_name=actor_name, comment=comment)

        if action == "approve" and isinstance(sync_purchase_price, bool):
            approval.meta = {**(approval.meta or {}), "syncPurchasePrice": sync_purchase_price}

        op_status = DECISION_OPERATION_STATUS[action]
        if approval.operation_id:
            update_asset_operation_status(approval.operation_id, op_status)
        if approval.consumable_operation_id:
            update_consumable_operation_status(approval.consumable_operation_id, op_status)

        if approval.status == APPROVAL_APPROVED:
            ensure_asset_created_for_purchase(approval)
            maybe_sync_purchase_price(approval)
            ensure_operation_record_for_approval(approval, actor_id=actor_id, actor_name=actor_name)
            apply_approval_success_effects(approval, actor_id=actor_id, actor_name=actor_name)

        db.session.flush()
        outbox_service.enqueue(
            outbox_service.EVENT_APPROVAL_DECIDED,
            {"approvalId": approval.id, "status": approval.status, "result": approval.result},
            aggregate_id=approval.id,
        )
        current_app.logger.info("Approval %s %s by %s", approval.id, approval.status, actor_id)
    return approval


def ensure_asset_created_for_purchase(approval: ApprovalRequest) -> None:
    """Purchase of a brand-new asset: create it (status pending) and link it."""
    if approval.asset_id or approval.consumable_id or approval.type != "purchase":
        return
    meta = ApprovalMetadata.from_dict(approval.meta)
    if not meta.wants_new_asset or not meta.new_asset:
        return

    data = meta.new_asset
    owner = data.get("owner")
    if not (isinstance(owner, str) and owner.strip()):
        owner = (approval.applicant_name or "").strip() or approval.applicant_id

    asset = create_asset(
        name=data.get("name") if isinstance(data.get("name"), str) else f"New Asset - {approval.title}",
        category=data.get("category") if isinstance(data.get("category"), str) else "general",
        company_code=data.get("companyCode") if isinstance(data.get("companyCode"), str) else "DEFAULT",
        status=ASSET_PENDING,
        owner=owner.strip(),
        location=data.get("location") if isinstance(data.get("location"), str) else "To Be Assigned",
        purchase_date=utcnow().date().isoformat(),
    )
    approval.asset_id = asset.id
    db.session.flush()
    current_app.logger.info("Created asset %s for purchase approval %s", asset.id, approval.id)


def maybe_sync_purchase_price(approval: ApprovalRequest) -> None:
    """Copy the template ``cost`` into the purchase price when requested."""
    if not approval.asset_id and not approval.consumable_id:
        return
    meta = ApprovalMetadata.from_dict(approval.meta)
    if not meta.sync_purchase_price:
        return
    cents = parse_money_to_cents(meta.template_values.get("cost"))
    if cents is None:
        return

    patch = {"purchase_price_cents": cents, "purchase_currency": PURCHASE_CURRENCY}
    if approval.asset_id:
        update_asset(approval.asset_id, patch)
    if approval.consumable_id:
        update_consumable(approval.consumable_id, patch)


def ensure_operation_record_for_approval(
    approval: ApprovalRequest,
    *,
    actor_id: str,
    actor_name: str | None = None,
) -> AssetOperation | None:
    """
    An approved asset approval without a ledger entry gets one now, already
    ``done`` (it was implicitly pending approval until this point).
    """
    if not approval.asset_id or approval.operation_id:
        return None
    op_type = APPROVAL_OPERATION_TYPES.get(approval.type)
    if op_type is None:
        return None

    meta = ApprovalMetadata.from_dict(approval.meta)
    payload = {}
    if meta.initiated_from:
        payload["initiatedFrom"] = meta.initiated_from
    if approval.reason:
        payload["reason"] = approval.reason
    if meta.operation_template is not None:
        payload["operationTemplate"] = meta.operation_template.to_dict()

    actor_label = approval.applicant_name or approval.applicant_id or actor_name or actor_id
    op = create_asset_operation(
        approval.asset_id,
        op_type=op_type,
        actor=actor_label,
        status=OP_DONE,
        description=approval.title,
        metadata=operation_metadata_for(approval, payload),
    )
    approval.operation_id = op.id
    db.session.flush()
    current_app.logger.info("Created %s operation %s for approval %s", op_type, op.id, approval.id)
    return op


def apply_approval_success_effects(
    approval: ApprovalRequest,
    *,
    actor_id: str,
    actor_name: str | None = None,
) -> None:
    if approval.asset_id:
        asset = get_asset(approval.asset_id)
        operation = get_asset_operation(approval.operation_id) if approval.operation_id else None

        op_type = operation.type if operation is not None else APPROVAL_OPERATION_TYPES.get(approval.type)
        target_status = infer_asset_status(op_type) if op_type else None
        if target_status:
            owner = extract_owner(operation.meta if operation is not None else None) or extract_owner(approval.meta)
            update_asset(asset.id, {"status": target_status, "owner": owner or asset.owner})

        meta = ApprovalMetadata.from_dict(approval.meta)
        if approval.type == "purchase" and meta.purchase_asset_mode != "existing":
            template = None
            if operation is not None:
                template = OperationTemplate.from_dict((operation.meta or {}).get("operationTemplate"))
            if template is None:
                template = meta.operation_template
            ensure_pending_inbound_operation(approval, template, actor_id=actor_id, actor_name=actor_name)
        return

    if approval.consumable_id and approval.consumable_operation_id:
        operation = get_consumable_operation(approval.consumable_operation_id)
        if operation.status != OP_DONE:
            update_consumable_operation_status(operation.id, OP_DONE)


def _find_follow_up_inbound(approval: ApprovalRequest) -> AssetOperation | None:
    for op in list_asset_operations(approval.asset_id):
        if op.type != "inbound":
            continue
        if (op.meta or {}).get(AUTO_GENERATED_FROM_APPROVAL_ID) == approval.id:
            return op
    return None


def ensure_pending_inbound_operation(
    approval: ApprovalRequest,
    template: OperationTemplate | None,
    *,
    actor_id: str,
    actor_name: str | None = None,
) -> AssetOperation | None:
    """
    "Approved to buy, still awaiting physical receipt": a pending inbound
    entry, created at most once per purchase approval.

    When inbound itself requires approval, an inbound approval request is
    opened for the new entry.
    """
    if not approval.asset_id:
        return None
    if _find_follow_up_inbound(approval) is not None:
        return None

    payload = {
        "ownerId": approval.applicant_id,
        "ownerName": approval.applicant_name,
    }
    if template is not None:
        payload["operationTemplate"] = template.to_dict()
    op_metadata = operation_metadata_for(approval, payload)

    op = create_asset_operation(
        approval.asset_id,
        op_type="inbound",
        actor=actor_name or actor_id or "system",
        status=OP_PENDING,
        description=f"Awaiting inbound - {approval.title}",
        metadata=op_metadata,
    )
    current_app.logger.info("Created pending inbound %s after purchase approval %s", op.id, approval.id)

    policy = get_action_config("inbound")
    if not policy.requires_approval:
        return op

    existing = list_approval_requests(
        {"asset_id": approval.asset_id, "operation_id": op.id, "type": ["inbound"]}
    )
    if existing["meta"]["total"]:
        return op

    approver_id = (
        (policy.default_approver_type == APPROVER_TYPE_USER and policy.default_approver_refs and policy.default_approver_refs[0])
        or approval.approver_id
        or actor_id
    )
    create_approval_request(
        approval_type="inbound",
        title=f"Inbound confirmation - {approval.title}",
        reason=approval.reason,
        asset_id=approval.asset_id,
        operation_id=op.id,
        applicant_id=approval.applicant_id,
        applicant_name=approval.applicant_name,
        approver={"id": approver_id, "name": approval.approver_name or actor_name} if approver_id else None,
        metadata={
            **op_metadata,
            "configSnapshot": {
                "id": policy.action,
                "requiresApproval": policy.requires_approval,
                "defaultApproverType": policy.default_approver_type,
                "allowOverride": policy.allow_override,
            },
        },
    )
    return op
