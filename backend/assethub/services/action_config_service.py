# Overview: Per-action approval policy (requires approval, default approver) and approver resolution.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..errors import MissingPreconditionError, ValidationError
from ..extensions import db
from ..models import ActionConfig
from .concurrency import atomic


ACTION_TYPES = (
    "purchase",
    "inbound",
    "receive",
    "borrow",
    "return",
    "maintenance",
    "dispose",
    "outbound",
    "reserve",
    "release",
    "adjust",
    "other",
)

APPROVER_TYPE_NONE = "none"
APPROVER_TYPE_USER = "user"
APPROVER_TYPES = {APPROVER_TYPE_NONE, APPROVER_TYPE_USER}

# Reservation bookkeeping is applied immediately; everything else is gated
_NO_APPROVAL_BY_DEFAULT = {"reserve", "release"}


@dataclass
class ActionPolicy:
    action: str
    requires_approval: bool = True
    default_approver_type: str = APPROVER_TYPE_NONE
    default_approver_refs: list[str] = field(default_factory=list)
    allow_override: bool = True
    metadata: dict | None = None

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "requires_approval": self.requires_approval,
            "default_approver_type": self.default_approver_type,
            "default_approver_refs": list(self.default_approver_refs),
            "allow_override": self.allow_override,
            "metadata": self.metadata,
        }


@dataclass
class ResolvedApprover:
    id: str
    name: str | None = None


DEFAULT_ACTION_CONFIGS = {
    action: ActionPolicy(action=action, requires_approval=action not in _NO_APPROVAL_BY_DEFAULT)
    for action in ACTION_TYPES
}


def _validate_action(action: str) -> None:
    if action not in ACTION_TYPES:
        raise ValidationError(f"Unknown action type: {action}")


def _policy_from_row(row: ActionConfig) -> ActionPolicy:
    return ActionPolicy(
        action=row.action,
        requires_approval=bool(row.requires_approval),
        default_approver_type=row.default_approver_type or APPROVER_TYPE_NONE,
        default_approver_refs=[str(ref) for ref in (row.default_approver_refs or [])],
        allow_override=bool(row.allow_override),
        metadata=row.meta,
    )


def get_action_config(action: str) -> ActionPolicy:
    """Stored policy for ``action``, or the built-in default."""
    _validate_action(action)
    row = db.session.query(ActionConfig).filter_by(action=action).first()
    if row is not None:
        return _policy_from_row(row)
    default = DEFAULT_ACTION_CONFIGS[action]
    return ActionPolicy(action=default.action, requires_approval=default.requires_approval)


def list_action_configs() -> list[ActionPolicy]:
    rows = {row.action: row for row in db.session.query(ActionConfig).all()}
    return [
        _policy_from_row(rows[action]) if action in rows else get_action_config(action)
        for action in ACTION_TYPES
    ]


def upsert_action_config(action: str, payload: dict[str, Any], *, updated_by: str | None = None) -> ActionPolicy:
    _validate_action(action)

    approver_type = payload.get("default_approver_type", APPROVER_TYPE_NONE)
    if approver_type not in APPROVER_TYPES:
        raise ValidationError(
            f"Invalid default_approver_type '{approver_type}'. Must be one of: {', '.join(sorted(APPROVER_TYPES))}"
        )

    refs = payload.get("default_approver_refs") or []
    if not isinstance(refs, list):
        raise ValidationError("default_approver_refs must be a list")
    refs = [str(ref).strip() for ref in refs if str(ref).strip()]

    metadata = payload.get("metadata")
    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")

    with atomic():
        row = db.session.query(ActionConfig).filter_by(action=action).first()
        if row is None:
            row = ActionConfig(action=action)
            db.session.add(row)
        row.requires_approval = bool(payload.get("requires_approval", True))
        row.default_approver_type = approver_type
        row.default_approver_refs = refs
        row.allow_override = bool(payload.get("allow_override", True))
        row.meta = metadata
        row.updated_by = updated_by
        db.session.flush()
        policy = _policy_from_row(row)
    return policy


def _normalize_requested(requested: dict | None) -> ResolvedApprover | None:
    if not isinstance(requested, dict):
        return None
    approver_id = requested.get("id")
    if not isinstance(approver_id, str) or not approver_id.strip():
        return None
    name = requested.get("name")
    return ResolvedApprover(
        id=approver_id.strip(),
        name=name.strip() if isinstance(name, str) and name.strip() else None,
    )


def resolve_approver(policy: ActionPolicy, requested: dict | None = None) -> ResolvedApprover | None:
    """
    Pick the approver for a new request.

    none: whoever was requested, or nobody.
    user: the requested id must be one of the configured candidates; with no
          request a single candidate is picked automatically, several leave the
          request unassigned.

    Raises:
        MissingPreconditionError: no candidates configured, or the requested
            approver is not a candidate
    """
    cleaned = _normalize_requested(requested)

    if policy.default_approver_type == APPROVER_TYPE_NONE:
        return cleaned

    if policy.default_approver_type == APPROVER_TYPE_USER:
        candidates = policy.default_approver_refs
        if not candidates:
            raise MissingPreconditionError(
                f"No approver candidates configured for action '{policy.action}'"
            )
        if cleaned is not None:
            if cleaned.id not in candidates:
                raise MissingPreconditionError(
                    f"Approver {cleaned.id} is not allowed for action '{policy.action}'"
                )
            return cleaned
        if len(candidates) == 1:
            return ResolvedApprover(id=candidates[0])
        return None

    raise ValidationError(f"Invalid approver configuration for action '{policy.action}'")
