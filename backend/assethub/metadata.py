"""
Typed view over the JSON metadata blobs carried by approvals and operations.

The stored shape stays camelCase (it is shared with the web client):

    {
      "operationTemplate": {"type": "...", "values": {...}, "attachments": [...]},
      "configSnapshot": {...},
      "newAsset": {...},
      "purchaseAsset": {"mode": "new" | "existing"},
      "syncPurchasePrice": true,
      "initiatedFrom": "...",
      "approverReassignments": [{"at", "from", "to", "actor"}],
      ...anything else is preserved in ``extra``
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any


# Operation metadata markers written when the orchestrator generates a row
AUTO_GENERATED_FROM_APPROVAL_ID = "autoGeneratedFromApprovalId"
AUTO_GENERATED_FROM_APPROVAL_TYPE = "autoGeneratedFromApprovalType"
SOURCE_APPROVAL_TITLE = "sourceApprovalTitle"

OWNER_KEYS = ("receiver", "borrower", "returner")

_KNOWN_KEYS = {
    "operationTemplate",
    "configSnapshot",
    "newAsset",
    "purchaseAsset",
    "syncPurchasePrice",
    "initiatedFrom",
    "approverReassignments",
}


@dataclass
class OperationTemplate:
    type: str | None = None
    values: dict[str, Any] = field(default_factory=dict)
    attachments: list[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Any) -> "OperationTemplate | None":
        if not isinstance(raw, dict):
            return None
        values = raw.get("values")
        attachments = raw.get("attachments")
        return cls(
            type=raw.get("type") if isinstance(raw.get("type"), str) else None,
            values=dict(values) if isinstance(values, dict) else {},
            attachments=list(attachments) if isinstance(attachments, list) else [],
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"values": dict(self.values)}
        if self.type:
            data["type"] = self.type
        if self.attachments:
            data["attachments"] = list(self.attachments)
        return data


@dataclass
class ApprovalMetadata:
    """Known approval metadata fields plus an opaque extension map."""

    operation_template: OperationTemplate | None = None
    config_snapshot: dict | None = None
    new_asset: dict | None = None
    purchase_asset_mode: str | None = None
    sync_purchase_price: bool = False
    initiated_from: str | None = None
    approver_reassignments: list[dict] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Any) -> "ApprovalMetadata":
        if not isinstance(raw, dict):
            return cls()

        purchase_asset = raw.get("purchaseAsset")
        mode = purchase_asset.get("mode") if isinstance(purchase_asset, dict) else None
        reassignments = raw.get("approverReassignments")

        return cls(
            operation_template=OperationTemplate.from_dict(raw.get("operationTemplate")),
            config_snapshot=raw.get("configSnapshot") if isinstance(raw.get("configSnapshot"), dict) else None,
            new_asset=raw.get("newAsset") if isinstance(raw.get("newAsset"), dict) else None,
            purchase_asset_mode=mode if isinstance(mode, str) else None,
            sync_purchase_price=raw.get("syncPurchasePrice") is True,
            initiated_from=raw.get("initiatedFrom") if isinstance(raw.get("initiatedFrom"), str) else None,
            approver_reassignments=[r for r in reassignments if isinstance(r, dict)]
            if isinstance(reassignments, list)
            else [],
            extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = dict(self.extra)
        if self.operation_template is not None:
            data["operationTemplate"] = self.operation_template.to_dict()
        if self.config_snapshot is not None:
            data["configSnapshot"] = self.config_snapshot
        if self.new_asset is not None:
            data["newAsset"] = self.new_asset
        if self.purchase_asset_mode is not None:
            data["purchaseAsset"] = {"mode": self.purchase_asset_mode}
        if self.sync_purchase_price:
            data["syncPurchasePrice"] = True
        if self.initiated_from is not None:
            data["initiatedFrom"] = self.initiated_from
        if self.approver_reassignments:
            data["approverReassignments"] = list(self.approver_reassignments)
        return data

    @property
    def template_values(self) -> dict[str, Any]:
        if self.operation_template is None:
            return {}
        return self.operation_template.values

    @property
    def wants_new_asset(self) -> bool:
        return self.new_asset is not None and self.purchase_asset_mode != "existing"


def extract_owner(meta: Any) -> str | None:
    """
    Target holder named in operation/approval metadata.

    Looks at the operation template values first, then top-level keys.
    """
    if not isinstance(meta, dict):
        return None

    template = OperationTemplate.from_dict(meta.get("operationTemplate"))
    sources = [template.values if template else {}, meta]
    for source in sources:
        for key in OWNER_KEYS:
            value = source.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
            if isinstance(value, dict):
                name = value.get("name") or value.get("id")
                if isinstance(name, str) and name.strip():
                    return name.strip()
    return None


def parse_money_to_cents(value: Any) -> int | None:
    """
    Convert "1234.5" / 1234.5 / "¥1,234.50" style input into integer cents.

    Returns None when the value is missing or not a non-negative amount.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        text = str(value)
    elif isinstance(value, str):
        text = "".join(ch for ch in value if ch.isdigit() or ch in ".-")
    else:
        return None
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if amount < 0:
        return None
    return int((amount * 100).quantize(Decimal("1")))
