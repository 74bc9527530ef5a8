# Overview: Service-layer state machines for ledger entries and approvals.

"""
Asset Hub Lifecycle Service

================================================================================
PURPOSE: One explicit transition table per lifecycle, checked before any write
================================================================================

OPERATION LEDGER (asset and consumable rows):
    pending   -> done | cancelled
    cancelled -> pending | done
    done      -> (terminal)

    DONE is permanent. Its effects (asset status, stock deltas) were applied
    exactly once and cannot be replayed or reversed by re-transitioning.

APPROVAL REQUEST:
    pending -> approved | rejected | cancelled

    The three decided states are terminal. A second decision fails.

Same-state "transitions" are reported as allowed; callers treat them as
no-ops (no effects are re-applied).
================================================================================
"""

from __future__ import annotations

from typing import Literal

from ..errors import ApprovalRequiredError, InvalidTransitionError, ValidationError


# Operation ledger statuses
OP_PENDING = "pending"
OP_DONE = "done"
OP_CANCELLED = "cancelled"
OPERATION_STATUSES = {OP_PENDING, OP_DONE, OP_CANCELLED}
OperationStatus = Literal["pending", "done", "cancelled"]

OPERATION_TRANSITIONS = {
    (OP_PENDING, OP_DONE),
    (OP_PENDING, OP_CANCELLED),
    (OP_CANCELLED, OP_PENDING),
    (OP_CANCELLED, OP_DONE),
}

# Approval statuses
APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
APPROVAL_CANCELLED = "cancelled"
APPROVAL_STATUSES = {APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_CANCELLED}
APPROVAL_TERMINAL_STATUSES = {APPROVAL_APPROVED, APPROVAL_REJECTED, APPROVAL_CANCELLED}

APPROVAL_TRANSITIONS = {
    (APPROVAL_PENDING, APPROVAL_APPROVED),
    (APPROVAL_PENDING, APPROVAL_REJECTED),
    (APPROVAL_PENDING, APPROVAL_CANCELLED),
}

# Decision action -> terminal approval status
DECISION_STATUS = {
    "approve": APPROVAL_APPROVED,
    "reject": APPROVAL_REJECTED,
    "cancel": APPROVAL_CANCELLED,
}

# Decision action -> status of the linked operation
DECISION_OPERATION_STATUS = {
    "approve": OP_DONE,
    "reject": OP_CANCELLED,
    "cancel": OP_CANCELLED,
}

DEFAULT_RESULT_TEXT = {
    "approve": "Approved",
    "reject": "Rejected",
    "cancel": "Cancelled",
}


def validate_operation_status(status: str) -> None:
    if status not in OPERATION_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(OPERATION_STATUSES))}"
        )


def can_transition_operation(from_status: str, to_status: str) -> bool:
    validate_operation_status(from_status)
    validate_operation_status(to_status)

    if from_status == to_status:
        return True
    return (from_status, to_status) in OPERATION_TRANSITIONS


def ensure_operation_transition(kind: str, op_id: str, from_status: str, to_status: str) -> None:
    """
    Raises:
        ValidationError: unknown status
        InvalidTransitionError: the table forbids the move (e.g. leaving ``done``)
    """
    if not can_transition_operation(from_status, to_status):
        raise InvalidTransitionError(
            f"Cannot move {kind} operation {op_id} from '{from_status}' to '{to_status}'"
        )


def validate_decision_action(action: str) -> None:
    if action not in DECISION_STATUS:
        raise ValidationError(
            f"Invalid action '{action}'. Must be one of: {', '.join(sorted(DECISION_STATUS))}"
        )


def ensure_approval_transition(approval_id: str, from_status: str, to_status: str) -> None:
    if (from_status, to_status) not in APPROVAL_TRANSITIONS:
        raise InvalidTransitionError(
            f"Approval {approval_id} is already processed (status '{from_status}')"
        )


def ensure_manual_status_change(
    kind: str,
    op_id: str,
    to_status: str,
    *,
    linked_approval_id: str | None,
    requires_approval: bool,
) -> None:
    """
    Guard for status changes requested directly by a user rather than by an
    approval decision.

    Raises:
        ApprovalRequiredError: the entry belongs to an approval (only its
            decision may move it), or it is approval-gated and ``done`` was
            requested
    """
    if linked_approval_id:
        raise ApprovalRequiredError(
            f"{kind.capitalize()} operation {op_id} is governed by approval {linked_approval_id}; "
            "decide the approval instead"
        )
    if to_status == OP_DONE and requires_approval:
        raise ApprovalRequiredError(
            f"{kind.capitalize()} operation {op_id} requires approval before it can be done"
        )
