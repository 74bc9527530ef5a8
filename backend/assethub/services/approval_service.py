# Overview: Approval registry; create, read, list, reassign and the terminal transition.

"""
Approval Registry

An approval request gates one asset or consumable action. It may link to a
ledger entry (asset operation or consumable operation); while the request is
pending, the linked entry is kept ``pending`` as well.

STATE MACHINE:
    pending -> approved | rejected | cancelled   (terminal, decided once)

Deciding goes through the orchestrator (orchestration_service), which owns
the cross-entity consequences of a decision.
"""

from __future__ import annotations

from typing import Any

from flask import current_app

from ..errors import (
    ForbiddenError,
    InvalidTransitionError,
    MissingPreconditionError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..metadata import (
    AUTO_GENERATED_FROM_APPROVAL_ID,
    AUTO_GENERATED_FROM_APPROVAL_TYPE,
    SOURCE_APPROVAL_TITLE,
    ApprovalMetadata,
)
from ..models import ApprovalCcRecipient, ApprovalRequest, Asset, AssetOperation, Consumable, ConsumableOperation
from ..time_utils import to_utc_z, utcnow
from . import outbox_service
from .action_config_service import (
    ACTION_TYPES,
    APPROVER_TYPE_USER,
    get_action_config,
    resolve_approver,
)
from .asset_operation_service import create_asset_operation, update_asset_operation_status
from .concurrency import atomic, lock_for_update
from .consumable_operation_service import update_consumable_operation_status
from .lifecycle_service import (
    APPROVAL_PENDING,
    APPROVAL_STATUSES,
    DECISION_STATUS,
    DEFAULT_RESULT_TEXT,
    OP_PENDING,
    ensure_approval_transition,
    validate_decision_action,
)


# Approval type -> asset operation type it stands for
APPROVAL_OPERATION_TYPES = {
    "purchase": "purchase",
    "inbound": "inbound",
    "receive": "receive",
    "borrow": "borrow",
    "return": "return",
    "maintenance": "maintenance",
    "dispose": "dispose",
}

LIST_ROLES = {"my-requests", "my-tasks", "all"}
DEFAULT_PAGE_SIZE = 10


def get_approval(approval_id: str, *, for_update: bool = False) -> ApprovalRequest:
    query = db.session.query(ApprovalRequest).filter_by(id=approval_id)
    if for_update:
        query = lock_for_update(query)
    approval = query.first()
    if approval is None:
        raise NotFoundError(f"Approval {approval_id} not found")
    return approval


def _text(name: str, value: Any) -> str:
    """Stripped string value; None counts as empty."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value.strip()


def _approver_fields(approver: Any) -> tuple[str, str | None]:
    if not isinstance(approver, dict):
        raise ValidationError("approver must be an object with an id")
    approver_id = _text("approver id", approver.get("id"))
    approver_name = _text("approver name", approver.get("name")) or None
    return approver_id, approver_name


def _normalize_cc(cc: Any) -> list[dict]:
    if not cc:
        return []
    if not isinstance(cc, list):
        raise ValidationError("cc must be a list of {id, name}")
    seen = set()
    result = []
    for entry in cc:
        if not isinstance(entry, dict):
            continue
        user_id = str(entry.get("id") or "").strip()
        if not user_id or user_id in seen:
            continue
        seen.add(user_id)
        name = entry.get("name")
        result.append({"id": user_id, "name": name.strip() if isinstance(name, str) and name.strip() else None})
    return result


def operation_metadata_for(approval: ApprovalRequest, base: dict | None = None) -> dict:
    """Marker metadata stamped on ledger entries generated for an approval."""
    data = dict(base or {})
    data.update(
        {
            AUTO_GENERATED_FROM_APPROVAL_ID: approval.id,
            AUTO_GENERATED_FROM_APPROVAL_TYPE: approval.type,
            SOURCE_APPROVAL_TITLE: approval.title,
            "applicant": {"id": approval.applicant_id, "name": approval.applicant_name},
        }
    )
    return data


def create_approval_request(
    *,
    approval_type: str,
    title: str,
    applicant_id: str,
    applicant_name: str | None = None,
    reason: str | None = None,
    asset_id: str | None = None,
    consumable_id: str | None = None,
    operation_id: str | None = None,
    consumable_operation_id: str | None = None,
    approver: dict | None = None,
    cc: list[dict] | None = None,
    metadata: dict[str, Any] | None = None,
) -> ApprovalRequest:
    """
    Register a pending approval.

    - Resolves the approver from the action config for ``approval_type``.
    - With an asset but no operation, creates the pending asset operation the
      approval stands for and links it.
    - Pushes linked asset/consumable operations to ``pending``.
    - Queues an "approval created" notification for the task tracker.

    Raises:
        ValidationError: bad type/title/applicant, both asset and consumable,
            operation not belonging to the referenced asset/consumable
        NotFoundError: referenced asset/consumable/operation missing
        MissingPreconditionError: approver cannot be resolved
        InvalidTransitionError: a linked operation is already ``done``
    """
    if approval_type not in ACTION_TYPES:
        raise ValidationError(f"Invalid approval type: {approval_type}")
    title = _text("title", title)
    if not title:
        raise ValidationError("title is required")
    applicant_id = _text("applicant", applicant_id)
    if not applicant_id:
        raise ValidationError("applicant is required")
    reason = _text("reason", reason) or None
    for name, value in (
        ("asset_id", asset_id),
        ("consumable_id", consumable_id),
        ("operation_id", operation_id),
        ("consumable_operation_id", consumable_operation_id),
    ):
        _text(name, value)
    if approver is not None:
        _approver_fields(approver)
    if asset_id and consumable_id:
        raise ValidationError("An approval links to an asset or a consumable, not both")
    if operation_id and consumable_operation_id:
        raise ValidationError("An approval links to one operation at most")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")
    cc_entries = _normalize_cc(cc)

    policy = get_action_config(approval_type)
    resolved = resolve_approver(policy, approver)
    if resolved is None and policy.default_approver_type == APPROVER_TYPE_USER:
        raise MissingPreconditionError(
            f"Approval for '{approval_type}' requires an approver but none could be resolved"
        )

    with atomic():
        asset_op = None
        if operation_id:
            asset_op = db.session.get(AssetOperation, operation_id)
            if asset_op is None:
                raise NotFoundError(f"Asset operation {operation_id} not found")
            if asset_id and asset_op.asset_id != asset_id:
                raise ValidationError(f"Operation {operation_id} does not belong to asset {asset_id}")
            asset_id = asset_op.asset_id

        consumable_op = None
        if consumable_operation_id:
            consumable_op = db.session.get(ConsumableOperation, consumable_operation_id)
            if consumable_op is None:
                raise NotFoundError(f"Consumable operation {consumable_operation_id} not found")
            if consumable_id and consumable_op.consumable_id != consumable_id:
                raise ValidationError(
                    f"Operation {consumable_operation_id} does not belong to consumable {consumable_id}"
                )
            consumable_id = consumable_op.consumable_id

        if asset_id and db.session.get(Asset, asset_id) is None:
            raise NotFoundError(f"Asset {asset_id} not found")
        if consumable_id and db.session.get(Consumable, consumable_id) is None:
            raise NotFoundError(f"Consumable {consumable_id} not found")

        approval = ApprovalRequest(
            type=approval_type,
            status=APPROVAL_PENDING,
            title=title,
            reason=reason,
            applicant_id=applicant_id,
            applicant_name=applicant_name,
            approver_id=resolved.id if resolved else None,
            approver_name=resolved.name if resolved else None,
            asset_id=asset_id,
            consumable_id=consumable_id,
            consumable_operation_id=consumable_operation_id,
            meta=dict(metadata) if metadata else None,
        )
        db.session.add(approval)
        db.session.flush()

        op_type = APPROVAL_OPERATION_TYPES.get(approval_type)
        if asset_op is None and asset_id and op_type:
            asset_op = create_asset_operation(
                asset_id,
                op_type=op_type,
                actor=(applicant_name or "").strip() or applicant_id,
                status=OP_PENDING,
                description=title,
                metadata=operation_metadata_for(approval, metadata),
            )
            current_app.logger.info("Created pending %s operation %s for approval %s", op_type, asset_op.id, approval.id)
        if asset_op is not None:
            approval.operation_id = asset_op.id
            update_asset_operation_status(asset_op.id, OP_PENDING)
        if consumable_op is not None:
            update_consumable_operation_status(consumable_op.id, OP_PENDING)

        for entry in cc_entries:
            db.session.add(ApprovalCcRecipient(approval_id=approval.id, user_id=entry["id"], user_name=entry["name"]))
        db.session.flush()

        outbox_service.enqueue(
            outbox_service.EVENT_APPROVAL_CREATED,
            {
                "title": approval.title,
                "type": approval.type,
                "approvalId": approval.id,
                "approverId": approval.approver_id,
                "status": approval.status,
            },
            aggregate_id=approval.id,
        )
    return approval


def list_approval_requests(filters: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Filtered, paginated listing, newest first.

    Filters: status (list), type (list), role + user_id ("my-requests",
    "my-tasks", "all"), applicant_id, approver_id, asset_id, consumable_id,
    operation_id, consumable_operation_id, page, page_size.

    Returns:
        {"data": [ApprovalRequest, ...], "meta": {"total", "page", "page_size"}}
    """
    filters = filters or {}
    query = db.session.query(ApprovalRequest)

    statuses = filters.get("status") or []
    if statuses:
        unknown = set(statuses) - APPROVAL_STATUSES
        if unknown:
            raise ValidationError(f"Invalid approval statuses: {', '.join(sorted(unknown))}")
        query = query.filter(ApprovalRequest.status.in_(list(statuses)))

    types = filters.get("type") or []
    if types:
        query = query.filter(ApprovalRequest.type.in_(list(types)))

    role = filters.get("role")
    user_id = filters.get("user_id")
    if role and role not in LIST_ROLES:
        raise ValidationError(f"Invalid role view: {role}")
    if role == "my-requests" and user_id:
        query = query.filter(ApprovalRequest.applicant_id == user_id)
    elif role == "my-tasks" and user_id:
        query = query.filter(ApprovalRequest.approver_id == user_id)
    elif role == "all" and user_id:
        cc_ids = db.session.query(ApprovalCcRecipient.approval_id).filter(ApprovalCcRecipient.user_id == user_id)
        query = query.filter(
            db.or_(
                ApprovalRequest.applicant_id == user_id,
                ApprovalRequest.approver_id == user_id,
                ApprovalRequest.id.in_(cc_ids),
            )
        )
    else:
        if filters.get("applicant_id"):
            query = query.filter(ApprovalRequest.applicant_id == filters["applicant_id"])
        if filters.get("approver_id"):
            query = query.filter(ApprovalRequest.approver_id == filters["approver_id"])

    for key, column in (
        ("asset_id", ApprovalRequest.asset_id),
        ("consumable_id", ApprovalRequest.consumable_id),
        ("operation_id", ApprovalRequest.operation_id),
        ("consumable_operation_id", ApprovalRequest.consumable_operation_id),
    ):
        if filters.get(key):
            query = query.filter(column == filters[key])

    page = filters.get("page") or 1
    page_size = filters.get("page_size") or DEFAULT_PAGE_SIZE
    page = page if page > 0 else 1
    page_size = page_size if page_size > 0 else DEFAULT_PAGE_SIZE

    total = query.count()
    rows = (
        query.order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
        .all()
    )
    return {"data": rows, "meta": {"total": total, "page": page, "page_size": page_size}}


def reassign_approver(
    approval_id: str,
    *,
    approver_id: str,
    approver_name: str | None = None,
    actor_id: str,
    actor_name: str | None = None,
    comment: str | None = None,
) -> ApprovalRequest:
    """
    Change the approver of a pending request, keeping a reassignment history
    in ``metadata.approverReassignments``.

    The action config of the approval type decides whether an override is
    allowed at all and which approvers are eligible. An actual change is
    pushed to the task tracker through the outbox.

    Raises:
        NotFoundError
        InvalidTransitionError: request already decided
        ValidationError: blank or non-string approver id
        ForbiddenError: the action config disallows overriding the approver
        MissingPreconditionError: approver is not an allowed candidate
    """
    next_id, next_name = _approver_fields({"id": approver_id, "name": approver_name})
    if not next_id:
        raise ValidationError("approver id is required")
    note = _text("comment", comment) or None

    with atomic():
        approval = get_approval(approval_id, for_update=True)
        if approval.status != APPROVAL_PENDING:
            raise InvalidTransitionError(
                f"Approval {approval_id} is already processed; its approver cannot change"
            )

        policy = get_action_config(approval.type)
        if not policy.allow_override:
            raise ForbiddenError(f"The '{approval.type}' approval configuration does not allow changing the approver")
        resolved = resolve_approver(policy, {"id": next_id, "name": next_name})

        if approval.approver_id == resolved.id:
            approval.approver_name = resolved.name or approval.approver_name
            db.session.flush()
            return approval

        meta = dict(approval.meta or {})
        history = list(ApprovalMetadata.from_dict(meta).approver_reassignments)
        entry = {
            "at": to_utc_z(utcnow()),
            "from": {"id": approval.approver_id, "name": approval.approver_name},
            "to": {"id": resolved.id, "name": resolved.name},
            "actor": {"id": actor_id, "name": actor_name},
        }
        if note:
            entry["comment"] = note
        history.append(entry)
        meta["approverReassignments"] = history
        approval.meta = meta

        approval.approver_id = resolved.id
        approval.approver_name = resolved.name
        db.session.flush()

        outbox_service.enqueue(
            outbox_service.EVENT_APPROVAL_REASSIGNED,
            {"approvalId": approval.id, "approverId": resolved.id, "approverName": resolved.name},
            aggregate_id=approval.id,
        )
        current_app.logger.info("Approval %s reassigned to %s by %s", approval.id, resolved.id, actor_id)
    return approval


def mark_decided(
    approval: ApprovalRequest,
    *,
    action: str,
    actor_id: str,
    actor_name: str | None = None,
    comment: str | None = None,
) -> ApprovalRequest:
    """
    Terminal transition of a locked approval row.

    Stamps ``completed_at`` (exactly once), stores the result text and fills
    in the approver from the acting user when none was assigned.

    Raises:
        ValidationError: unknown action
        InvalidTransitionError: not pending ("already processed")
    """
    validate_decision_action(action)
    status = DECISION_STATUS[action]
    ensure_approval_transition(approval.id, approval.status, status)

    approval.status = status
    approval.result = (comment or "").strip() or DEFAULT_RESULT_TEXT[action]
    if not approval.approver_id:
        approval.approver_id = actor_id
        approval.approver_name = actor_name
    if approval.completed_at is None:
        approval.completed_at = utcnow()
    db.session.flush()
    return approval


def decide(
    approval_id: str,
    action: str,
    *,
    actor_id: str,
    actor_name: str | None = None,
    comment: str | None = None,
    sync_purchase_price: bool | None = None,
) -> ApprovalRequest:
    """Decide a pending approval; see orchestration_service.apply_approval_action."""
    from .orchestration_service import apply_approval_action

    return apply_approval_action(
        approval_id,
        action=action,
        actor_id=actor_id,
        actor_name=actor_name,
        comment=comment,
        sync_purchase_price=sync_purchase_price,
    )
