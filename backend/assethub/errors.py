"""
Domain error taxonomy.

Every service raises one of these; routes translate them into HTTP status
codes through ``http_status_for``. None of them are retried internally.
"""

from __future__ import annotations


class AssetHubError(ValueError):
    """Base class for business-rule failures surfaced to the caller."""

    code = "ASSET_HUB_ERROR"
    http_status = 400


class ValidationError(AssetHubError):
    """400-level input problem (bad payload shape, unknown enum value)."""

    code = "INVALID_PAYLOAD"
    http_status = 400


class NotFoundError(AssetHubError):
    """Referenced approval/operation/consumable/asset/task/entry does not exist."""

    code = "NOT_FOUND"
    http_status = 404


class InvalidTransitionError(AssetHubError):
    """
    A status change that the state machine forbids.

    Examples: deciding an approval that is no longer pending, moving a
    ledger entry away from ``done``.
    """

    code = "INVALID_TRANSITION"
    http_status = 409


class ConflictError(AssetHubError):
    """Concurrent modification detected by the optimistic version check."""

    code = "CONFLICT"
    http_status = 409


class InvariantViolationError(AssetHubError):
    """
    The requested change would break a stock or audit invariant.

    Examples: quantity or reserved would go negative, reserved would exceed
    quantity, an inventory task filter that matches nothing.
    """

    code = "INVARIANT_VIOLATION"
    http_status = 422


class MissingPreconditionError(AssetHubError):
    """A prerequisite is absent (no approver resolved, no target asset)."""

    code = "MISSING_PRECONDITION"
    http_status = 422


class ApprovalRequiredError(MissingPreconditionError):
    """The action is approval-gated; it cannot be recorded as done directly."""

    code = "APPROVAL_REQUIRED"
    http_status = 422


class ForbiddenError(AssetHubError):
    """The action configuration does not allow this change (e.g. approver override)."""

    code = "FORBIDDEN"
    http_status = 403


def http_status_for(exc: AssetHubError) -> int:
    return getattr(exc, "http_status", 400)


def error_body(exc: AssetHubError) -> dict:
    return {"error": getattr(exc, "code", "ASSET_HUB_ERROR"), "message": str(exc)}
