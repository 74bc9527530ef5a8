"""
Consumable inventory audit tests.

Verifies:
- Expected stock is snapshotted at creation; an empty filter is rejected
- Recording counts computes variances and drives draft -> in-progress -> completed
- An explicit status in the same call wins over auto-completion
"""

import pytest

from assethub.errors import InvariantViolationError, NotFoundError, ValidationError
from assethub.services import inventory_task_service


@pytest.fixture
def three_consumables(make_consumable):
    return [
        make_consumable(name="A4 paper", category="office", quantity=10, reserved_quantity=2, keeper="alice"),
        make_consumable(name="Pens", category="office", quantity=50, keeper="alice"),
        make_consumable(name="Toner", category="printer", quantity=4, keeper="bob"),
    ]


def _entries(task):
    return {entry.consumable_name: entry for entry in inventory_task_service.get_inventory_task(task.id).entries}


def test_recording_all_entries_completes_task(three_consumables):
    task = inventory_task_service.create_inventory_task(name="Q3 count")
    entries = _entries(task)
    assert task.status == "draft"
    assert len(entries) == 3

    inventory_task_service.record_entry(task.id, entries["A4 paper"].id, actual_quantity=9, actual_reserved=2)
    inventory_task_service.record_entry(task.id, entries["Pens"].id, actual_quantity=50)
    assert inventory_task_service.get_inventory_task(task.id).status == "in-progress"

    inventory_task_service.record_entry(task.id, entries["Toner"].id, actual_quantity=5, note="found a box")
    assert inventory_task_service.get_inventory_task(task.id).status == "completed"

    entries = _entries(task)
    assert entries["A4 paper"].variance_quantity == -1
    assert entries["A4 paper"].variance_reserved == 0
    assert entries["Pens"].variance_reserved is None
    assert entries["Toner"].variance_quantity == 1
    assert entries["Toner"].note == "found a box"

    stats = inventory_task_service.task_stats(inventory_task_service.get_inventory_task(task.id))
    assert stats == {"total_entries": 3, "recorded_entries": 3, "variance_entries": 2}


def test_filters_select_consumables_and_snapshot_expected(three_consumables):
    task = inventory_task_service.create_inventory_task(
        name="Office only", filters={"categories": ["office"], "keeper": "alice"}
    )

    entries = _entries(task)
    assert set(entries) == {"A4 paper", "Pens"}
    assert entries["A4 paper"].expected_quantity == 10
    assert entries["A4 paper"].expected_reserved == 2
    assert entries["A4 paper"].keeper == "alice"
    assert task.filters == {"categories": ["office"], "keeper": "alice"}


def test_empty_filter_match_is_rejected(three_consumables):
    with pytest.raises(InvariantViolationError):
        inventory_task_service.create_inventory_task(name="Nothing", filters={"categories": ["kitchen"]})

    assert inventory_task_service.list_inventory_tasks() == []


def test_task_cannot_start_completed(three_consumables):
    with pytest.raises(ValidationError):
        inventory_task_service.create_inventory_task(name="Done already", status="completed")
    with pytest.raises(ValidationError):
        inventory_task_service.create_inventory_task(name="Odd", status="paused")


def test_explicit_status_wins_over_auto_completion(three_consumables):
    task = inventory_task_service.create_inventory_task(name="Q3 count", filters={"categories": ["printer"]})
    (toner,) = _entries(task).values()

    inventory_task_service.update_inventory_task(
        task.id,
        entries=[{"id": toner.id, "actual_quantity": 4}],
        status="in-progress",
    )

    assert inventory_task_service.get_inventory_task(task.id).status == "in-progress"


def test_completing_with_pending_entries_is_rejected(three_consumables):
    task = inventory_task_service.create_inventory_task(name="Q3 count")

    with pytest.raises(InvariantViolationError):
        inventory_task_service.update_inventory_task(task.id, status="completed")

    assert inventory_task_service.get_inventory_task(task.id).status == "draft"


def test_entry_from_another_task_is_rejected(three_consumables):
    first = inventory_task_service.create_inventory_task(name="First")
    second = inventory_task_service.create_inventory_task(name="Second")
    foreign = next(iter(_entries(first).values()))

    with pytest.raises(ValidationError):
        inventory_task_service.record_entry(second.id, foreign.id, actual_quantity=1)


def test_blank_record_keeps_entry_pending(three_consumables):
    task = inventory_task_service.create_inventory_task(name="Q3 count")
    entry = _entries(task)["Pens"]

    inventory_task_service.record_entry(task.id, entry.id, note="   ")

    assert _entries(task)["Pens"].status == "pending"


def test_negative_count_is_rejected(three_consumables):
    task = inventory_task_service.create_inventory_task(name="Q3 count")
    entry = _entries(task)["Pens"]

    with pytest.raises(ValidationError):
        inventory_task_service.record_entry(task.id, entry.id, actual_quantity=-1)


def test_unknown_task_and_entry(three_consumables):
    task = inventory_task_service.create_inventory_task(name="Q3 count")

    with pytest.raises(NotFoundError):
        inventory_task_service.update_inventory_task("CINV-NOPE", status="in-progress")
    with pytest.raises(NotFoundError):
        inventory_task_service.record_entry(task.id, "CINE-NOPE", actual_quantity=1)


def test_list_tasks_includes_stats(three_consumables):
    task = inventory_task_service.create_inventory_task(name="Q3 count")
    entry = _entries(task)["Toner"]
    inventory_task_service.record_entry(task.id, entry.id, actual_quantity=3)

    (listed,) = inventory_task_service.list_inventory_tasks()

    assert listed["id"] == task.id
    assert listed["stats"] == {"total_entries": 3, "recorded_entries": 1, "variance_entries": 1}
