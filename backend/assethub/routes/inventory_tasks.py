# backend/assethub/routes/inventory_tasks.py
"""
Consumable inventory audit API routes.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor
from ..errors import AssetHubError
from ..services import inventory_task_service
from .responses import bad_request, error_response, server_error


inventory_tasks_bp = Blueprint("inventory_tasks", __name__, url_prefix="/api/consumables/inventory-tasks")


@inventory_tasks_bp.post("")
@require_actor
def create_inventory_task_route():
    """
    Create an audit task over the matching consumables.

    Request body:
    {
        "name": "Q3 office supplies",
        "filters": {"categories": ["office"], "keeper": "alice"},   (optional)
        "scope": "...", "owner": "...", "description": "...",       (optional)
        "status": "draft" | "in-progress"                            (optional)
    }

    Returns:
        201: Task created with its entries
        422: Filter matches no consumables
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        task = inventory_task_service.create_inventory_task(
            name=data.get("name"),
            filters=data.get("filters"),
            scope=data.get("scope"),
            owner=data.get("owner") or g.actor_name or g.actor_id,
            description=data.get("description"),
            status=data.get("status") or "draft",
        )
        return jsonify({"task": inventory_task_service.task_detail(task)}), 201

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to create inventory task")


@inventory_tasks_bp.get("")
@require_actor
def list_inventory_tasks_route():
    return jsonify({"tasks": inventory_task_service.list_inventory_tasks()}), 200


@inventory_tasks_bp.get("/<task_id>")
@require_actor
def get_inventory_task_route(task_id: str):
    try:
        task = inventory_task_service.get_inventory_task(task_id)
        return jsonify({"task": inventory_task_service.task_detail(task)}), 200
    except AssetHubError as e:
        return error_response(e)


@inventory_tasks_bp.patch("/<task_id>")
@require_actor
def update_inventory_task_route(task_id: str):
    """
    Record counts and/or set the task status.

    Request body:
    {
        "entries": [
            {"id": "CINE-...", "actual_quantity": 8, "actual_reserved": 0, "note": "..."}
        ],
        "status": "in-progress"    (optional; overrides auto-completion)
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        task = inventory_task_service.update_inventory_task(
            task_id,
            entries=data.get("entries"),
            status=data.get("status"),
        )
        return jsonify({"task": inventory_task_service.task_detail(task)}), 200

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to update inventory task")
