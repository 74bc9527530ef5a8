# backend/assethub/routes/approvals.py
"""
Approval request API routes.

Deciding an approval runs the whole orchestration (operation status, asset
status, stock effects, follow-up inbound) in one transaction.
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor
from ..errors import AssetHubError
from ..services import approval_service, orchestration_service
from .responses import bad_request, error_response, server_error


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")


def _csv_arg(name: str) -> list[str]:
    values = []
    for raw in request.args.getlist(name):
        values.extend(part.strip() for part in raw.split(",") if part.strip())
    return values


def _int_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer")


@approvals_bp.post("")
@require_actor
def create_approval_route():
    """
    Create an approval request.

    Request body:
    {
        "type": "receive",
        "title": "Laptop for new hire",
        "reason": "...",                      (optional)
        "asset_id": "AST-...",                (optional)
        "consumable_id": "CSM-...",           (optional)
        "operation_id": "OP-...",             (optional)
        "consumable_operation_id": "COP-...", (optional)
        "approver": {"id": "u2", "name": "Bo"},  (optional)
        "cc": [{"id": "u3", "name": "Cy"}],   (optional)
        "metadata": {...}                     (optional)
    }

    The applicant is the acting user.

    Returns:
        201: Approval created
        400/404/409/422: see error code
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return bad_request("JSON body required")

    try:
        approval = approval_service.create_approval_request(
            approval_type=data.get("type"),
            title=data.get("title"),
            reason=data.get("reason"),
            applicant_id=g.actor_id,
            applicant_name=g.actor_name,
            asset_id=data.get("asset_id"),
            consumable_id=data.get("consumable_id"),
            operation_id=data.get("operation_id"),
            consumable_operation_id=data.get("consumable_operation_id"),
            approver=data.get("approver"),
            cc=data.get("cc"),
            metadata=data.get("metadata"),
        )
        return jsonify({"approval": approval.to_dict()}), 201

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to create approval")


@approvals_bp.get("")
@require_actor
def list_approvals_route():
    """
    List approvals, newest first.

    Query params: status, type (comma separated), role (my-requests |
    my-tasks | all, scoped to the acting user), applicant_id, approver_id,
    asset_id, consumable_id, operation_id, consumable_operation_id,
    page, page_size.
    """
    try:
        filters = {
            "status": _csv_arg("status"),
            "type": _csv_arg("type"),
            "role": request.args.get("role"),
            "user_id": g.actor_id,
            "applicant_id": request.args.get("applicant_id"),
            "approver_id": request.args.get("approver_id"),
            "asset_id": request.args.get("asset_id"),
            "consumable_id": request.args.get("consumable_id"),
            "operation_id": request.args.get("operation_id"),
            "consumable_operation_id": request.args.get("consumable_operation_id"),
            "page": _int_arg("page"),
            "page_size": _int_arg("page_size"),
        }
    except ValueError as e:
        return bad_request(str(e))

    try:
        result = approval_service.list_approval_requests(filters)
        return jsonify({
            "data": [approval.to_dict() for approval in result["data"]],
            "meta": result["meta"],
        }), 200

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to list approvals")


@approvals_bp.get("/<approval_id>")
@require_actor
def get_approval_route(approval_id: str):
    try:
        approval = approval_service.get_approval(approval_id)
        return jsonify({"approval": approval.to_dict()}), 200
    except AssetHubError as e:
        return error_response(e)


@approvals_bp.post("/<approval_id>/actions")
@require_actor
def approval_action_route(approval_id: str):
    """
    Decide an approval.

    Request body:
    {
        "action": "approve" | "reject" | "cancel",
        "comment": "...",              (optional)
        "sync_purchase_price": true    (optional, approve only)
    }

    Returns:
        200: Approval decided
        409: Already processed, or linked operation cannot move
        422: Stock invariant would break
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get("action"):
        return bad_request("action is required")

    try:
        approval = orchestration_service.apply_approval_action(
            approval_id,
            action=data["action"],
            actor_id=g.actor_id,
            actor_name=g.actor_name,
            comment=data.get("comment"),
            sync_purchase_price=data.get("sync_purchase_price"),
        )
        return jsonify({"approval": approval.to_dict()}), 200

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to apply approval action")


@approvals_bp.put("/<approval_id>/approver")
@require_actor
def reassign_approver_route(approval_id: str):
    """
    Reassign the approver of a pending approval.

    Request body: {"approver": {"id": "u9", "name": "Ivy"}, "comment": "..."}

    Returns:
        200: Approver set
        403: The action config does not allow overriding the approver
        409: Already processed
        422: Approver is not an allowed candidate
    """
    data = request.get_json(silent=True)
    approver = data.get("approver") if isinstance(data, dict) else None
    if not isinstance(approver, dict):
        return bad_request("approver is required")

    try:
        approval = approval_service.reassign_approver(
            approval_id,
            approver_id=approver.get("id"),
            approver_name=approver.get("name"),
            actor_id=g.actor_id,
            actor_name=g.actor_name,
            comment=data.get("comment"),
        )
        return jsonify({"approval": approval.to_dict()}), 200

    except AssetHubError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to reassign approver")
