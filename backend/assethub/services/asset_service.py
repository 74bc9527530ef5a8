# Overview: Asset directory; creation, lookup and patching of asset master data.

from __future__ import annotations

from ..asset_state import ASSET_IDLE, ASSET_STATUSES
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Asset
from .concurrency import atomic, lock_for_update


UPDATABLE_FIELDS = {
    "name",
    "category",
    "company_code",
    "status",
    "owner",
    "location",
    "purchase_date",
    "purchase_price_cents",
    "purchase_currency",
}


def get_asset(asset_id: str, *, for_update: bool = False) -> Asset:
    query = db.session.query(Asset).filter_by(id=asset_id)
    if for_update:
        query = lock_for_update(query)
    asset = query.first()
    if asset is None:
        raise NotFoundError(f"Asset {asset_id} not found")
    return asset


def list_assets(*, status: str | None = None, owner: str | None = None) -> list[Asset]:
    query = db.session.query(Asset)
    if status:
        query = query.filter(Asset.status == status)
    if owner:
        query = query.filter(Asset.owner == owner)
    return query.order_by(Asset.created_at.desc(), Asset.id.desc()).all()


def _validate_patch(patch: dict) -> None:
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown asset fields: {', '.join(sorted(unknown))}")

    if "name" in patch and not (patch["name"] or "").strip():
        raise ValidationError("name is required")

    status = patch.get("status")
    if status is not None and status not in ASSET_STATUSES:
        raise ValidationError(
            f"Invalid asset status '{status}'. Must be one of: {', '.join(sorted(ASSET_STATUSES))}"
        )

    price = patch.get("purchase_price_cents")
    if price is not None and (not isinstance(price, int) or isinstance(price, bool) or price < 0):
        raise ValidationError("purchase_price_cents must be a non-negative integer")


def create_asset(
    *,
    name: str,
    category: str = "general",
    company_code: str = "DEFAULT",
    status: str = ASSET_IDLE,
    owner: str | None = None,
    location: str | None = None,
    purchase_date: str | None = None,
    purchase_price_cents: int | None = None,
    purchase_currency: str | None = None,
) -> Asset:
    fields = {
        "name": (name or "").strip(),
        "category": (category or "general").strip(),
        "company_code": (company_code or "DEFAULT").strip(),
        "status": status or ASSET_IDLE,
        "owner": owner,
        "location": location,
        "purchase_date": purchase_date,
        "purchase_price_cents": purchase_price_cents,
        "purchase_currency": purchase_currency,
    }
    _validate_patch(fields)

    with atomic():
        asset = Asset(**fields)
        db.session.add(asset)
        db.session.flush()
    return asset


def update_asset(asset_id: str, patch: dict) -> Asset:
    """Apply a partial update; the orchestrator uses it for status/owner writes."""
    _validate_patch(patch)

    with atomic():
        asset = get_asset(asset_id, for_update=True)
        for key, value in patch.items():
            setattr(asset, key, value)
        db.session.flush()
    return asset
