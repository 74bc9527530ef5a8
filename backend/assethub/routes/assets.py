# backend/assethub/routes/assets.py
"""
Asset directory and asset operation ledger API routes.
"""
from flask import Blueprint, jsonify, request

from ..decorators import actor_label, require_actor
from ..errors import AssetHubError
from ..services import asset_operation_service, asset_service
from .responses import bad_request, error_response, server_error


assets_bp = Blueprint("assets", __name__, url_prefix="/api/assets")


@assets_bp.post("")
@require_actor
def create_asset_route():
    """
    Create an asset.

    Request body:
    {
        "name": "ThinkPad X1",
        "category": "laptop",
        "company_code": "HQ",
        "status": "idle",
        "owner": "...", "location": "...",
        "purchase_date": "2024-05-01",
        "purchase_price_cents": 799900,
        "purchase_currency": "CNY"
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        asset = asset_service.create_asset(
            name=data.get("name"),
            category=data.get("category") or "general",
            company_code=data.get("company_code") or "DEFAULT",
            status=data.get("status") or "idle",
            owner=data.get("owner"),
            location=data.get("location"),
            purchase_date=data.get("purchase_date"),
            purchase_price_cents=data.get("purchase_price_cents"),
            purchase_currency=data.get("purchase_currency"),
        )
        return jsonify({"asset": asset.to_dict()}), 201

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to create asset")


@assets_bp.get("")
@require_actor
def list_assets_route():
    assets = asset_service.list_assets(
        status=request.args.get("status"),
        owner=request.args.get("owner"),
    )
    return jsonify({"assets": [asset.to_dict() for asset in assets]}), 200


@assets_bp.get("/<asset_id>")
@require_actor
def get_asset_route(asset_id: str):
    try:
        asset = asset_service.get_asset(asset_id)
        return jsonify({"asset": asset.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)


@assets_bp.post("/<asset_id>/operations")
@require_actor
def create_asset_operation_route(asset_id: str):
    """
    Append an operation to the asset ledger.

    Request body:
    {
        "type": "transfer",
        "status": "pending" | "done",     (default "done")
        "description": "...",
        "from_user_id": "u1", "to_user_id": "u2",
        "amount_cents": 1000,
        "metadata": {...}
    }

    Recording an operation never changes the asset itself.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        op = asset_operation_service.create_asset_operation(
            asset_id,
            op_type=data.get("type"),
            actor=actor_label(),
            status=data.get("status") or "done",
            description=data.get("description"),
            from_user_id=data.get("from_user_id"),
            to_user_id=data.get("to_user_id"),
            amount_cents=data.get("amount_cents"),
            metadata=data.get("metadata"),
        )
        return jsonify({"operation": op.to_dict()}), 201

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to create asset operation")


@assets_bp.get("/<asset_id>/operations")
@require_actor
def list_asset_operations_route(asset_id: str):
    try:
        asset_service.get_asset(asset_id)
        ops = asset_operation_service.list_asset_operations(asset_id)
        return jsonify({"operations": [op.to_dict() for op in ops]}), 200
    except AssetHubError as e:
        return error_response(e)


@assets_bp.patch("/operations/<op_id>")
@require_actor
def update_asset_operation_status_route(op_id: str):
    """
    Request body: {"status": "done" | "cancelled" | "pending"}

    For entries outside the approval flow. Entries linked to an approval, and
    "done" on approval-gated types, are refused with 422 APPROVAL_REQUIRED.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get("status"):
        return bad_request("status is required")

    try:
        op = asset_operation_service.update_asset_operation_status(op_id, data["status"], manual=True)
        return jsonify({"operation": op.to_dict()}), 200

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to update asset operation")
