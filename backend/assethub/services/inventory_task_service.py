# Overview: Consumable inventory audit; snapshot expected stock, collect counts, compute variances.

"""
Consumable inventory audit (physical count reconciliation).

LIFECYCLE:
1. DRAFT: task created, expected quantity/reserved snapshotted per consumable
2. IN-PROGRESS: counting under way (first recorded entry moves a draft here)
3. COMPLETED: no entry is pending

Auto-completion is the only implicit transition. An explicit status passed in
the same update call wins over it. A task can never be completed while an
entry is still pending.

Audits never touch stock: variances are reported, not posted.
"""

from __future__ import annotations

from typing import Any

from ..errors import InvariantViolationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Consumable, ConsumableInventoryEntry, ConsumableInventoryTask
from .concurrency import atomic, lock_for_update


TASK_DRAFT = "draft"
TASK_IN_PROGRESS = "in-progress"
TASK_COMPLETED = "completed"
TASK_STATUSES = {TASK_DRAFT, TASK_IN_PROGRESS, TASK_COMPLETED}

ENTRY_PENDING = "pending"
ENTRY_RECORDED = "recorded"


def _validate_task_status(status: str) -> None:
    if status not in TASK_STATUSES:
        raise ValidationError(
            f"Invalid task status '{status}'. Must be one of: {', '.join(sorted(TASK_STATUSES))}"
        )


def _normalize_filters(filters: Any) -> dict:
    if filters is None:
        return {}
    if not isinstance(filters, dict):
        raise ValidationError("filters must be an object")

    normalized: dict[str, Any] = {}
    categories = filters.get("categories")
    if isinstance(categories, list):
        cleaned = [c.strip() for c in categories if isinstance(c, str) and c.strip()]
        if cleaned:
            normalized["categories"] = cleaned
    keeper = filters.get("keeper")
    if isinstance(keeper, str) and keeper.strip():
        normalized["keeper"] = keeper.strip()
    return normalized


def _select_consumables(filters: dict) -> list[Consumable]:
    query = db.session.query(Consumable).filter(Consumable.deleted_at.is_(None))
    if filters.get("categories"):
        query = query.filter(Consumable.category.in_(filters["categories"]))
    if filters.get("keeper"):
        query = query.filter(Consumable.keeper == filters["keeper"])
    return query.order_by(Consumable.name.asc(), Consumable.id.asc()).all()


def get_inventory_task(task_id: str, *, for_update: bool = False) -> ConsumableInventoryTask:
    query = db.session.query(ConsumableInventoryTask).filter_by(id=task_id)
    if for_update:
        query = lock_for_update(query)
    task = query.first()
    if task is None:
        raise NotFoundError(f"Inventory task {task_id} not found")
    return task


def task_stats(task: ConsumableInventoryTask) -> dict[str, int]:
    entries = task.entries
    return {
        "total_entries": len(entries),
        "recorded_entries": sum(1 for e in entries if e.status == ENTRY_RECORDED),
        "variance_entries": sum(1 for e in entries if e.has_variance),
    }


def task_detail(task: ConsumableInventoryTask) -> dict[str, Any]:
    data = task.to_dict()
    data["entries"] = [entry.to_dict() for entry in task.entries]
    data["stats"] = task_stats(task)
    return data


def create_inventory_task(
    *,
    name: str,
    filters: dict | None = None,
    scope: str | None = None,
    owner: str | None = None,
    description: str | None = None,
    status: str = TASK_DRAFT,
) -> ConsumableInventoryTask:
    """
    Snapshot expected stock for every consumable matching ``filters``.

    Raises:
        ValidationError: missing name, bad status or filters
        InvariantViolationError: the filter matches no consumable
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    status = status or TASK_DRAFT
    _validate_task_status(status)
    if status == TASK_COMPLETED:
        raise ValidationError("A new task cannot start completed")
    normalized = _normalize_filters(filters)

    with atomic():
        consumables = _select_consumables(normalized)
        if not consumables:
            raise InvariantViolationError("No consumables match the task filters; nothing to audit")

        task = ConsumableInventoryTask(
            name=name,
            scope=scope,
            filters=normalized or None,
            owner=owner,
            description=description,
            status=status,
        )
        db.session.add(task)
        db.session.flush()

        for item in consumables:
            db.session.add(
                ConsumableInventoryEntry(
                    task_id=task.id,
                    consumable_id=item.id,
                    consumable_name=item.name,
                    category=item.category,
                    keeper=item.keeper,
                    expected_quantity=item.quantity,
                    expected_reserved=item.reserved_quantity,
                    status=ENTRY_PENDING,
                )
            )
        db.session.flush()
    return task


def list_inventory_tasks() -> list[dict[str, Any]]:
    """Tasks newest first, each with entry stats."""
    tasks = (
        db.session.query(ConsumableInventoryTask)
        .order_by(ConsumableInventoryTask.created_at.desc(), ConsumableInventoryTask.id.desc())
        .all()
    )
    result = []
    for task in tasks:
        data = task.to_dict()
        data["stats"] = task_stats(task)
        result.append(data)
    return result


def _optional_count(name: str, value) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    value = int(value // 1)
    if value < 0:
        raise ValidationError(f"{name} cannot be negative")
    return value


def _record(task: ConsumableInventoryTask, entry_id: str, payload: dict[str, Any]) -> ConsumableInventoryEntry:
    entry = db.session.get(ConsumableInventoryEntry, entry_id)
    if entry is None:
        raise NotFoundError(f"Inventory entry {entry_id} not found")
    if entry.task_id != task.id:
        raise ValidationError(f"Entry {entry_id} does not belong to task {task.id}")

    actual_quantity = _optional_count("actual_quantity", payload.get("actual_quantity"))
    actual_reserved = _optional_count("actual_reserved", payload.get("actual_reserved"))
    note = payload.get("note")
    note = note.strip() if isinstance(note, str) and note.strip() else None

    if actual_quantity is None and actual_reserved is None and note is None:
        return entry

    entry.actual_quantity = actual_quantity
    entry.actual_reserved = actual_reserved
    entry.variance_quantity = None if actual_quantity is None else actual_quantity - entry.expected_quantity
    entry.variance_reserved = None if actual_reserved is None else actual_reserved - entry.expected_reserved
    entry.note = note
    entry.status = ENTRY_RECORDED
    return entry


def _pending_count(task_id: str) -> int:
    return (
        db.session.query(ConsumableInventoryEntry)
        .filter(ConsumableInventoryEntry.task_id == task_id, ConsumableInventoryEntry.status == ENTRY_PENDING)
        .count()
    )


def update_inventory_task(
    task_id: str,
    *,
    entries: list[dict[str, Any]] | None = None,
    status: str | None = None,
) -> ConsumableInventoryTask:
    """
    Record a batch of counts and/or set the task status.

    ``entries`` items: {"id", "actual_quantity", "actual_reserved", "note"}.

    Without an explicit ``status``, recording entries refreshes the task:
    no pending entry left -> completed, otherwise a draft moves to in-progress.

    Raises:
        NotFoundError: task or entry missing
        ValidationError: bad status, entry from another task, bad counts
        InvariantViolationError: completing a task with pending entries
    """
    entries = entries or []
    if not isinstance(entries, list):
        raise ValidationError("entries must be a list")
    if status is not None:
        _validate_task_status(status)

    with atomic():
        task = get_inventory_task(task_id, for_update=True)

        for item in entries:
            if not isinstance(item, dict) or not item.get("id"):
                raise ValidationError("Each entry needs an id")
            _record(task, item["id"], item)
        db.session.flush()

        pending = _pending_count(task.id)
        if status is not None:
            if status == TASK_COMPLETED and pending:
                raise InvariantViolationError(
                    f"Task {task.id} still has {pending} pending entries and cannot be completed"
                )
            task.status = status
        elif entries:
            if pending == 0:
                task.status = TASK_COMPLETED
            elif task.status == TASK_DRAFT:
                task.status = TASK_IN_PROGRESS
        db.session.flush()
    return task


def record_entry(
    task_id: str,
    entry_id: str,
    *,
    actual_quantity: int | None = None,
    actual_reserved: int | None = None,
    note: str | None = None,
) -> ConsumableInventoryEntry:
    """Record one count; the task auto-completes when it was the last pending entry."""
    update_inventory_task(
        task_id,
        entries=[
            {
                "id": entry_id,
                "actual_quantity": actual_quantity,
                "actual_reserved": actual_reserved,
                "note": note,
            }
        ],
    )
    return db.session.get(ConsumableInventoryEntry, entry_id)
