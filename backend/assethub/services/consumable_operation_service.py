# Overview: Consumable operation ledger and the stock ledger effects it drives.

"""
Consumable Operation / Stock Ledger

================================================================================
PURPOSE: Stock moves only by applying a ledger entry, and each entry at most once
================================================================================

EFFECT APPLICATION (apply_effects):
    1. Lock the consumable row
    2. next_quantity = quantity + quantity_delta          (must stay >= 0)
    3. next_reserved = reserved_quantity + reserved_delta (0 <= next_reserved <= next_quantity)
    4. Derive status (archived > out-of-stock > reserved > low-stock > in-stock)
    5. Persist stock, stamp the entry, sync alerts

Steps 1-5 run inside the caller's unit of work; a failed check rolls back
every write, so no partial quantity/reserved/status change is ever visible.

ENTRY LIFECYCLE:
    created done          -> effects applied immediately (approval not required)
    created pending       -> nothing happens until pending -> done
    pending -> cancelled  -> no stock effect
    done                  -> terminal (never re-applied, never reversed)
================================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ..errors import ApprovalRequiredError, InvariantViolationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ApprovalRequest, Consumable, ConsumableOperation
from ..time_utils import utcnow
from .action_config_service import get_action_config
from .alert_service import propagate_consumable_alert_result, sync_consumable_alert_snapshot
from .concurrency import atomic, lock_for_update
from .consumable_service import get_consumable, resolve_status_from_stock, snapshot_for
from .lifecycle_service import (
    OP_DONE,
    OP_PENDING,
    OPERATION_STATUSES,
    ensure_manual_status_change,
    ensure_operation_transition,
    validate_operation_status,
)


CONSUMABLE_OPERATION_TYPES = (
    "purchase",
    "inbound",
    "outbound",
    "reserve",
    "release",
    "adjust",
    "dispose",
)

MAX_QUERY_PAGE_SIZE = 200
DEFAULT_QUERY_PAGE_SIZE = 20


def _int_delta(name: str, value) -> int:
    if value is None:
        return 0
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    return value


def validate_deltas(op_type: str, quantity_delta: int, reserved_delta: int) -> None:
    """
    Per-type sign rules for new entries.

    Raises:
        ValidationError
    """
    if op_type not in CONSUMABLE_OPERATION_TYPES:
        raise ValidationError(f"Invalid consumable operation type: {op_type}")

    if op_type in ("purchase", "inbound") and quantity_delta <= 0:
        raise ValidationError(f"{op_type} requires a positive quantity_delta")
    if op_type in ("outbound", "dispose") and quantity_delta >= 0:
        raise ValidationError(f"{op_type} requires a negative quantity_delta")
    if op_type == "reserve" and reserved_delta <= 0:
        raise ValidationError("reserve requires a positive reserved_delta")
    if op_type == "release" and reserved_delta >= 0:
        raise ValidationError("release requires a negative reserved_delta")
    if op_type == "adjust" and quantity_delta == 0 and reserved_delta == 0:
        raise ValidationError("adjust requires a non-zero quantity_delta or reserved_delta")


def get_consumable_operation(op_id: str, *, for_update: bool = False) -> ConsumableOperation:
    query = db.session.query(ConsumableOperation).filter_by(id=op_id)
    if for_update:
        query = lock_for_update(query)
    op = query.first()
    if op is None:
        raise NotFoundError(f"Consumable operation {op_id} not found")
    return op


def apply_effects(op: ConsumableOperation) -> Consumable:
    """
    Apply one entry's deltas to the stock ledger. Internal: callers guarantee
    the entry has not been applied before (status guard).

    Raises:
        NotFoundError: consumable missing or deleted
        InvariantViolationError: insufficient stock, negative reserved,
            reserved above quantity
    """
    with atomic():
        stock = get_consumable(op.consumable_id, for_update=True)

        next_quantity = stock.quantity + (op.quantity_delta or 0)
        if next_quantity < 0:
            raise InvariantViolationError(
                f"Insufficient stock for {stock.name}: have {stock.quantity}, "
                f"requested {-(op.quantity_delta or 0)}"
            )

        next_reserved = stock.reserved_quantity + (op.reserved_delta or 0)
        if next_reserved < 0:
            raise InvariantViolationError(f"Reserved quantity for {stock.name} cannot be negative")
        if next_reserved > next_quantity:
            raise InvariantViolationError(
                f"Reserved quantity for {stock.name} ({next_reserved}) cannot exceed stock ({next_quantity})"
            )

        stock.quantity = next_quantity
        stock.reserved_quantity = next_reserved
        stock.status = resolve_status_from_stock(
            current_status=stock.status,
            quantity=next_quantity,
            reserved_quantity=next_reserved,
            safety_stock=stock.safety_stock,
        )
        op.applied_at = utcnow()
        db.session.flush()

        propagate_consumable_alert_result(sync_consumable_alert_snapshot(snapshot_for(stock)))
    return stock


def create_consumable_operation(
    consumable_id: str,
    *,
    op_type: str,
    actor: str,
    quantity_delta: int | None = 0,
    reserved_delta: int | None = 0,
    status: str | None = None,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> ConsumableOperation:
    """
    Append a ledger entry; a ``done`` entry applies its effects right away.

    When ``status`` is omitted it follows the action config: ``pending`` for
    approval-gated actions, ``done`` otherwise.

    Raises:
        ValidationError: bad type, deltas, status or actor
        ApprovalRequiredError: ``done`` requested for an approval-gated action
        NotFoundError: consumable missing or deleted
        InvariantViolationError: effects would break a stock invariant
    """
    quantity_delta = _int_delta("quantity_delta", quantity_delta)
    reserved_delta = _int_delta("reserved_delta", reserved_delta)
    validate_deltas(op_type, quantity_delta, reserved_delta)
    if not (actor or "").strip():
        raise ValidationError("actor is required")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")

    policy = get_action_config(op_type)
    if status is None:
        status = OP_PENDING if policy.requires_approval else OP_DONE
    validate_operation_status(status)
    if status == OP_DONE and policy.requires_approval:
        raise ApprovalRequiredError(f"{op_type} requires approval; create it as pending")

    with atomic():
        consumable = get_consumable(consumable_id)
        op = ConsumableOperation(
            consumable_id=consumable.id,
            type=op_type,
            status=status,
            description=(description or "").strip(),
            actor=actor.strip(),
            quantity_delta=quantity_delta,
            reserved_delta=reserved_delta,
            meta=dict(metadata) if metadata else None,
        )
        db.session.add(op)
        db.session.flush()

        if status == OP_DONE:
            apply_effects(op)
    return op


def linked_approval_id(op: ConsumableOperation) -> str | None:
    row = (
        db.session.query(ApprovalRequest.id)
        .filter(ApprovalRequest.consumable_operation_id == op.id)
        .first()
    )
    return row.id if row else None


def update_consumable_operation_status(op_id: str, status: str, *, manual: bool = False) -> ConsumableOperation:
    """
    Transition an entry. pending -> done applies effects exactly once;
    leaving ``done`` fails; same-status calls are no-ops.

    With ``manual`` (a user asking directly, not an approval decision) entries
    linked to an approval cannot move at all, and approval-gated types cannot
    reach ``done``.

    Raises:
        NotFoundError
        InvalidTransitionError
        ApprovalRequiredError: manual change the approval flow owns
        InvariantViolationError: from apply_effects (nothing is written)
    """
    with atomic():
        op = get_consumable_operation(op_id, for_update=True)
        ensure_operation_transition("consumable", op.id, op.status, status)
        if op.status == status:
            return op
        if manual:
            ensure_manual_status_change(
                "consumable",
                op.id,
                status,
                linked_approval_id=linked_approval_id(op),
                requires_approval=get_action_config(op.type).requires_approval,
            )

        if status == OP_DONE:
            apply_effects(op)
        op.status = status
        db.session.flush()
    return op


def list_consumable_operations(consumable_id: str) -> list[ConsumableOperation]:
    return (
        db.session.query(ConsumableOperation)
        .filter(ConsumableOperation.consumable_id == consumable_id)
        .order_by(ConsumableOperation.created_at.desc(), ConsumableOperation.id.desc())
        .all()
    )


def _audit_filters(query, filters: dict[str, Any]):
    types = filters.get("types") or []
    if types:
        query = query.filter(ConsumableOperation.type.in_(list(types)))

    statuses = filters.get("statuses") or []
    if statuses:
        unknown = set(statuses) - OPERATION_STATUSES
        if unknown:
            raise ValidationError(f"Invalid statuses: {', '.join(sorted(unknown))}")
        query = query.filter(ConsumableOperation.status.in_(list(statuses)))

    if filters.get("consumable_id"):
        query = query.filter(ConsumableOperation.consumable_id == filters["consumable_id"])
    if filters.get("keeper"):
        query = query.filter(Consumable.keeper.ilike(f"%{filters['keeper'].strip()}%"))
    if filters.get("actor"):
        query = query.filter(ConsumableOperation.actor.ilike(f"%{filters['actor'].strip()}%"))
    if filters.get("keyword"):
        pattern = f"%{filters['keyword'].strip()}%"
        query = query.filter(
            db.or_(
                Consumable.name.ilike(pattern),
                ConsumableOperation.description.ilike(pattern),
                ConsumableOperation.id.ilike(pattern),
            )
        )

    date_from: datetime | None = filters.get("date_from")
    date_to: datetime | None = filters.get("date_to")
    if date_from is not None:
        query = query.filter(ConsumableOperation.created_at >= date_from)
    if date_to is not None:
        query = query.filter(ConsumableOperation.created_at <= date_to)
    return query


def query_consumable_operations(filters: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Cross-consumable audit view of the ledger.

    Filters: types, statuses, consumable_id, keeper, actor, keyword,
    date_from, date_to (UTC-naive datetimes), page, page_size.

    Returns:
        {"items": [...], "total", "page", "page_size", "summary": {...}}
    """
    filters = filters or {}
    page = max(1, int(filters.get("page") or 1))
    page_size = min(MAX_QUERY_PAGE_SIZE, max(1, int(filters.get("page_size") or DEFAULT_QUERY_PAGE_SIZE)))

    base = (
        db.session.query(ConsumableOperation)
        .join(Consumable, Consumable.id == ConsumableOperation.consumable_id)
        .filter(Consumable.deleted_at.is_(None))
    )
    base = _audit_filters(base, filters)

    summary_row = base.with_entities(
        db.func.count(ConsumableOperation.id),
        db.func.sum(db.case((ConsumableOperation.status == OP_PENDING, 1), else_=0)),
        db.func.sum(
            db.case((ConsumableOperation.quantity_delta > 0, ConsumableOperation.quantity_delta), else_=0)
        ),
        db.func.sum(
            db.case((ConsumableOperation.quantity_delta < 0, -ConsumableOperation.quantity_delta), else_=0)
        ),
        db.func.sum(ConsumableOperation.quantity_delta),
    ).one()
    total, pending, inbound, outbound, net = summary_row

    rows = (
        base.with_entities(ConsumableOperation, Consumable)
        .order_by(ConsumableOperation.created_at.desc(), ConsumableOperation.id.desc())
        .limit(page_size)
        .offset((page - 1) * page_size)
        .all()
    )

    items = []
    for op, consumable in rows:
        item = op.to_dict()
        item.update(
            {
                "consumable_name": consumable.name,
                "consumable_category": consumable.category,
                "consumable_status": consumable.status,
                "keeper": consumable.keeper,
                "location": consumable.location,
            }
        )
        items.append(item)

    return {
        "items": items,
        "total": int(total or 0),
        "page": page,
        "page_size": page_size,
        "summary": {
            "total_operations": int(total or 0),
            "pending_operations": int(pending or 0),
            "inbound_quantity": int(inbound or 0),
            "outbound_quantity": int(outbound or 0),
            "net_quantity": int(net or 0),
        },
    }
