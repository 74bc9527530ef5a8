# backend/assethub/routes/action_configs.py
"""
Per-action approval policy API routes.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor
from ..errors import AssetHubError
from ..services import action_config_service
from .responses import bad_request, error_response, server_error


action_configs_bp = Blueprint("action_configs", __name__, url_prefix="/api/action-configs")


@action_configs_bp.get("")
@require_actor
def list_action_configs_route():
    configs = action_config_service.list_action_configs()
    return jsonify({"configs": [config.to_dict() for config in configs]}), 200


@action_configs_bp.get("/<action>")
@require_actor
def get_action_config_route(action: str):
    try:
        config = action_config_service.get_action_config(action)
        return jsonify({"config": config.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)


@action_configs_bp.put("/<action>")
@require_actor
def upsert_action_config_route(action: str):
    """
    Store the approval policy for one action.

    Request body:
    {
        "requires_approval": true,
        "default_approver_type": "none" | "user",
        "default_approver_refs": ["u1", "u2"],
        "allow_override": true,
        "metadata": {...}
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        config = action_config_service.upsert_action_config(action, data, updated_by=g.actor_id)
        return jsonify({"config": config.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to save action config")
