# Overview: Consumable directory; master data, archive and soft delete.

from __future__ import annotations

from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Consumable
from ..time_utils import utcnow
from .alert_service import (
    AlertSnapshot,
    AlertSyncResult,
    propagate_consumable_alert_result,
    resolve_alerts_for_consumable,
    sync_consumable_alert_snapshot,
)
from .concurrency import atomic, lock_for_update


# Consumable statuses
STATUS_IN_STOCK = "in-stock"
STATUS_LOW_STOCK = "low-stock"
STATUS_OUT_OF_STOCK = "out-of-stock"
STATUS_RESERVED = "reserved"
STATUS_ARCHIVED = "archived"
CONSUMABLE_STATUSES = {
    STATUS_IN_STOCK,
    STATUS_LOW_STOCK,
    STATUS_OUT_OF_STOCK,
    STATUS_RESERVED,
    STATUS_ARCHIVED,
}

UPDATABLE_FIELDS = {
    "name",
    "category",
    "keeper",
    "location",
    "unit",
    "safety_stock",
    "purchase_price_cents",
    "purchase_currency",
}


def resolve_status_from_stock(
    *,
    current_status: str,
    quantity: int,
    reserved_quantity: int,
    safety_stock: int,
) -> str:
    """
    Derive the stock status. Precedence:
    archived (sticky) > out-of-stock > reserved > low-stock > in-stock
    """
    if current_status == STATUS_ARCHIVED:
        return STATUS_ARCHIVED
    if quantity <= 0:
        return STATUS_OUT_OF_STOCK
    if reserved_quantity >= quantity:
        return STATUS_RESERVED
    if safety_stock > 0 and quantity <= safety_stock:
        return STATUS_LOW_STOCK
    return STATUS_IN_STOCK


def get_consumable(consumable_id: str, *, for_update: bool = False, include_deleted: bool = False) -> Consumable:
    query = db.session.query(Consumable).filter(Consumable.id == consumable_id)
    if not include_deleted:
        query = query.filter(Consumable.deleted_at.is_(None))
    if for_update:
        query = lock_for_update(query)
    consumable = query.first()
    if consumable is None:
        raise NotFoundError(f"Consumable {consumable_id} not found")
    return consumable


def list_consumables(
    *,
    categories: list[str] | None = None,
    keeper: str | None = None,
    include_deleted: bool = False,
) -> list[Consumable]:
    query = db.session.query(Consumable)
    if not include_deleted:
        query = query.filter(Consumable.deleted_at.is_(None))
    if categories:
        query = query.filter(Consumable.category.in_(categories))
    if keeper:
        query = query.filter(Consumable.keeper == keeper)
    return query.order_by(Consumable.name.asc(), Consumable.id.asc()).all()


def _non_negative_int(name: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer")
    return value


def snapshot_for(consumable: Consumable) -> AlertSnapshot:
    return AlertSnapshot(
        consumable_id=consumable.id,
        consumable_name=consumable.name,
        keeper=consumable.keeper,
        status=consumable.status,
        quantity=consumable.quantity,
        reserved_quantity=consumable.reserved_quantity,
    )


def _sync_alerts(consumable: Consumable) -> None:
    propagate_consumable_alert_result(sync_consumable_alert_snapshot(snapshot_for(consumable)))


def create_consumable(
    *,
    name: str,
    category: str = "general",
    keeper: str | None = None,
    location: str | None = None,
    unit: str = "pcs",
    quantity: int = 0,
    reserved_quantity: int = 0,
    safety_stock: int = 0,
    purchase_price_cents: int | None = None,
    purchase_currency: str | None = None,
) -> Consumable:
    """Register a consumable with its opening stock; status is derived from it."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    quantity = _non_negative_int("quantity", quantity)
    reserved_quantity = _non_negative_int("reserved_quantity", reserved_quantity)
    safety_stock = _non_negative_int("safety_stock", safety_stock)
    if reserved_quantity > quantity:
        raise ValidationError("reserved_quantity cannot exceed quantity")
    if purchase_price_cents is not None:
        _non_negative_int("purchase_price_cents", purchase_price_cents)

    with atomic():
        consumable = Consumable(
            name=name,
            category=(category or "general").strip(),
            keeper=keeper,
            location=location,
            unit=(unit or "pcs").strip(),
            quantity=quantity,
            reserved_quantity=reserved_quantity,
            safety_stock=safety_stock,
            status=resolve_status_from_stock(
                current_status=STATUS_IN_STOCK,
                quantity=quantity,
                reserved_quantity=reserved_quantity,
                safety_stock=safety_stock,
            ),
            purchase_price_cents=purchase_price_cents,
            purchase_currency=purchase_currency,
        )
        db.session.add(consumable)
        db.session.flush()
        _sync_alerts(consumable)
    return consumable


def update_consumable(consumable_id: str, patch: dict) -> Consumable:
    """
    Patch master data. Stock fields are not writable here; they only move
    through the operation ledger. A safety stock change re-derives status.
    """
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not updatable: {', '.join(sorted(unknown))}")
    if "name" in patch and not (patch["name"] or "").strip():
        raise ValidationError("name is required")
    if "safety_stock" in patch:
        _non_negative_int("safety_stock", patch["safety_stock"])
    if patch.get("purchase_price_cents") is not None:
        _non_negative_int("purchase_price_cents", patch["purchase_price_cents"])

    with atomic():
        consumable = get_consumable(consumable_id, for_update=True)
        for key, value in patch.items():
            setattr(consumable, key, value)
        next_status = resolve_status_from_stock(
            current_status=consumable.status,
            quantity=consumable.quantity,
            reserved_quantity=consumable.reserved_quantity,
            safety_stock=consumable.safety_stock,
        )
        if next_status != consumable.status:
            consumable.status = next_status
        db.session.flush()
        _sync_alerts(consumable)
    return consumable


def archive_consumable(consumable_id: str) -> Consumable:
    """Archive is sticky: later stock movements keep the status ``archived``."""
    with atomic():
        consumable = get_consumable(consumable_id, for_update=True)
        if consumable.status != STATUS_ARCHIVED:
            consumable.status = STATUS_ARCHIVED
            db.session.flush()
            _sync_alerts(consumable)
    return consumable


def delete_consumable(consumable_id: str, *, actor: str | None = None) -> Consumable:
    """Soft delete and resolve any open alerts."""
    with atomic():
        consumable = get_consumable(consumable_id, for_update=True, include_deleted=True)
        if consumable.deleted_at is not None:
            raise InvalidTransitionError(f"Consumable {consumable_id} is already deleted")
        consumable.deleted_at = utcnow()
        consumable.deleted_by = actor
        db.session.flush()
        resolved = resolve_alerts_for_consumable(consumable.id)
        propagate_consumable_alert_result(AlertSyncResult(resolved=resolved))
    return consumable
