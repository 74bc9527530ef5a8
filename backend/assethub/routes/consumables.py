# backend/assethub/routes/consumables.py
"""
Consumable directory, operation ledger and stock alert API routes.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import actor_label, require_actor
from ..errors import AssetHubError
from ..services import alert_service, consumable_operation_service, consumable_service
from ..time_utils import parse_range_bound
from .responses import bad_request, error_response, server_error


consumables_bp = Blueprint("consumables", __name__, url_prefix="/api/consumables")


def _csv_arg(name: str) -> list[str]:
    values = []
    for raw in request.args.getlist(name):
        values.extend(part.strip() for part in raw.split(",") if part.strip())
    return values


@consumables_bp.post("")
@require_actor
def create_consumable_route():
    """
    Register a consumable.

    Request body:
    {
        "name": "A4 paper",
        "category": "office",
        "keeper": "alice", "location": "Room 2", "unit": "box",
        "quantity": 10, "reserved_quantity": 0, "safety_stock": 3,
        "purchase_price_cents": 2500, "purchase_currency": "CNY"
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        consumable = consumable_service.create_consumable(
            name=data.get("name"),
            category=data.get("category") or "general",
            keeper=data.get("keeper"),
            location=data.get("location"),
            unit=data.get("unit") or "pcs",
            quantity=data.get("quantity", 0),
            reserved_quantity=data.get("reserved_quantity", 0),
            safety_stock=data.get("safety_stock", 0),
            purchase_price_cents=data.get("purchase_price_cents"),
            purchase_currency=data.get("purchase_currency"),
        )
        return jsonify({"consumable": consumable.to_dict()}), 201

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to create consumable")


@consumables_bp.get("")
@require_actor
def list_consumables_route():
    consumables = consumable_service.list_consumables(
        categories=_csv_arg("category"),
        keeper=request.args.get("keeper"),
    )
    return jsonify({"consumables": [c.to_dict() for c in consumables]}), 200


@consumables_bp.get("/<consumable_id>")
@require_actor
def get_consumable_route(consumable_id: str):
    try:
        consumable = consumable_service.get_consumable(consumable_id)
        return jsonify({"consumable": consumable.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)


@consumables_bp.patch("/<consumable_id>")
@require_actor
def update_consumable_route(consumable_id: str):
    """Patch master data (name, category, keeper, location, unit, safety_stock, price)."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        consumable = consumable_service.update_consumable(consumable_id, data)
        return jsonify({"consumable": consumable.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to update consumable")


@consumables_bp.post("/<consumable_id>/archive")
@require_actor
def archive_consumable_route(consumable_id: str):
    try:
        consumable = consumable_service.archive_consumable(consumable_id)
        return jsonify({"consumable": consumable.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to archive consumable")


@consumables_bp.delete("/<consumable_id>")
@require_actor
def delete_consumable_route(consumable_id: str):
    try:
        consumable = consumable_service.delete_consumable(consumable_id, actor=g.actor_id)
        return jsonify({"consumable": consumable.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to delete consumable")


@consumables_bp.post("/<consumable_id>/operations")
@require_actor
def create_consumable_operation_route(consumable_id: str):
    """
    Record a stock operation.

    Request body:
    {
        "type": "outbound",
        "quantity_delta": -2,
        "reserved_delta": 0,
        "status": "pending" | "done",   (optional; defaults from action config)
        "description": "...",
        "metadata": {...}
    }

    Returns:
        201: Operation recorded (done operations already applied to stock)
        400: Invalid deltas for the operation type
        422: APPROVAL_REQUIRED, or stock invariant violation
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        op = consumable_operation_service.create_consumable_operation(
            consumable_id,
            op_type=data.get("type"),
            actor=actor_label(),
            quantity_delta=data.get("quantity_delta", 0),
            reserved_delta=data.get("reserved_delta", 0),
            status=data.get("status"),
            description=data.get("description"),
            metadata=data.get("metadata"),
        )
        consumable = consumable_service.get_consumable(consumable_id)
        return jsonify({"operation": op.to_dict(), "consumable": consumable.to_dict()}), 201

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to create consumable operation")


@consumables_bp.get("/<consumable_id>/operations")
@require_actor
def list_consumable_operations_route(consumable_id: str):
    try:
        consumable_service.get_consumable(consumable_id)
        ops = consumable_operation_service.list_consumable_operations(consumable_id)
        return jsonify({"operations": [op.to_dict() for op in ops]}), 200
    except AssetHubError as e:
        return error_response(e)


@consumables_bp.patch("/operations/<op_id>")
@require_actor
def update_consumable_operation_status_route(op_id: str):
    """
    Request body: {"status": "done" | "cancelled" | "pending"}

    For entries outside the approval flow. Entries linked to an approval, and
    "done" on approval-gated types, are refused with 422 APPROVAL_REQUIRED.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get("status"):
        return bad_request("status is required")

    try:
        op = consumable_operation_service.update_consumable_operation_status(
            op_id, data["status"], manual=True
        )
        return jsonify({"operation": op.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to update consumable operation")


@consumables_bp.get("/operations")
@require_actor
def query_consumable_operations_route():
    """
    Ledger audit view across consumables.

    Query params: types, statuses (comma separated), consumable_id, keeper,
    actor, keyword, date_from, date_to (ISO-8601; a bare date_to day is
    inclusive), page, page_size (max 200).
    """
    try:
        filters = {
            "types": _csv_arg("types"),
            "statuses": _csv_arg("statuses"),
            "consumable_id": request.args.get("consumable_id"),
            "keeper": request.args.get("keeper"),
            "actor": request.args.get("actor"),
            "keyword": request.args.get("keyword"),
            "date_from": parse_range_bound(request.args.get("date_from")),
            "date_to": parse_range_bound(request.args.get("date_to"), end=True),
            "page": int(request.args.get("page") or 1),
            "page_size": int(request.args.get("page_size") or 20),
        }
    except ValueError as e:
        return bad_request(f"Invalid query parameter: {e}")

    try:
        return jsonify(consumable_operation_service.query_consumable_operations(filters)), 200
    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to query consumable operations")


@consumables_bp.get("/alerts")
@require_actor
def list_alerts_route():
    try:
        alerts = alert_service.list_alerts(status=request.args.get("status"))
        return jsonify({"alerts": [alert.to_dict() for alert in alerts]}), 200
    except AssetHubError as e:
        return error_response(e)


@consumables_bp.post("/alerts/<alert_id>/resolve")
@require_actor
def resolve_alert_route(alert_id: str):
    try:
        alert = alert_service.resolve_alert(alert_id)
        return jsonify({"alert": alert.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to resolve alert")
