# Overview: Flask API routes for inter-location stock transfers.

"""
Stock transfer API routes.

Each workflow step is POST /api/transfers/<id>/<action>. The route checks
the step's permission (logged on denial) and the service enforces status,
location access and separation of duties.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import permission_service, transfer_service
from ..services.permission_service import PermissionDeniedError
from ..time_utils import parse_iso_datetime
from . import json_body, json_error


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


ACTION_PERMISSIONS = {
    "submit-for-check": Perm.STOCK_TRANSFER_CREATE,
    "check-approve": Perm.STOCK_TRANSFER_CHECK,
    "check-reject": Perm.STOCK_TRANSFER_CHECK,
    "send": Perm.STOCK_TRANSFER_SEND,
    "mark-arrived": Perm.STOCK_TRANSFER_RECEIVE,
    "start-verification": Perm.STOCK_TRANSFER_VERIFY,
    "verify-item": Perm.STOCK_TRANSFER_VERIFY,
    "complete": Perm.STOCK_TRANSFER_COMPLETE,
    "cancel": Perm.STOCK_TRANSFER_CANCEL,
}


@transfers_bp.get("")
@require_auth
@require_permission(Perm.STOCK_TRANSFER_VIEW)
def list_transfers_route():
    transfers = transfer_service.list_transfers(
        g.current_user,
        status=request.args.get("status"),
        location_id=request.args.get("location_id", type=int),
    )
    return jsonify({"transfers": [t.to_dict(include_items=False) for t in transfers], "count": len(transfers)}), 200


@transfers_bp.post("")
@require_auth
@require_permission(Perm.STOCK_TRANSFER_CREATE)
def create_transfer_route():
    """
    Create a draft transfer.

    Request body:
    {
        "from_location_id": int,
        "to_location_id": int,
        "items": [{"variation_id": int, "quantity": int}],
        "notes": str (optional),
        "transfer_date": ISO-8601 str (optional)
    }

    Returns:
        201: Transfer created
        400: Same location, bad lines, insufficient stock
        403: Origin not accessible
    """
    try:
        data = json_body()
        transfer = transfer_service.create_transfer(
            g.current_user,
            from_location_id=int(data["from_location_id"]),
            to_location_id=int(data["to_location_id"]),
            items=data["items"],
            notes=data.get("notes"),
            transfer_date=parse_iso_datetime(data.get("transfer_date")),
        )
        return jsonify(transfer.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@transfers_bp.get("/<int:transfer_id>")
@require_auth
@require_permission(Perm.STOCK_TRANSFER_VIEW)
def get_transfer_route(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(g.current_user, transfer_id)
        return jsonify(transfer.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@transfers_bp.put("/<int:transfer_id>")
@require_auth
@require_permission(Perm.STOCK_TRANSFER_CREATE)
def update_transfer_route(transfer_id: int):
    """Edit notes / transfer_date while the transfer is draft or pending check."""
    try:
        changes = json_body()
        if "transfer_date" in changes:
            changes["transfer_date"] = parse_iso_datetime(changes["transfer_date"])
        transfer = transfer_service.update_transfer(g.current_user, transfer_id, changes)
        return jsonify(transfer.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@transfers_bp.post("/<int:transfer_id>/<action>")
@require_auth
def transfer_action_route(transfer_id: int, action: str):
    """
    Run one workflow step.

    draft -> pending_check -> checked -> in_transit -> arrived
          -> verifying -> completed; cancel from any non-final state.

    verify-item body: {"item_id": int, "received_quantity": int, "notes": str (optional)}
    check-reject / cancel body: {"reason": str}
    check-approve body: {"notes": str (optional)}
    """
    permission_code = ACTION_PERMISSIONS.get(action)
    if permission_code is None:
        return jsonify({"error": f"Unknown transfer action: {action}"}), 404

    try:
        permission_service.require_permission(
            user_id=g.current_user.id,
            permission_code=permission_code,
            resource=request.path,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            business_id=g.business_id,
        )
    except PermissionDeniedError as e:
        return jsonify({
            "error": "Permission denied",
            "required_permission": permission_code,
            "message": str(e)
        }), 403

    try:
        data = request.get_json(silent=True) or {}
        if action == "verify-item":
            transfer = transfer_service.verify_item(
                g.current_user,
                transfer_id,
                item_id=int(data["item_id"]),
                received_quantity=int(data["received_quantity"]),
                notes=data.get("notes"),
            )
        else:
            func, fields = transfer_service.TRANSFER_ACTIONS[action]
            transfer = func(g.current_user, transfer_id, **{f: data.get(f) for f in fields})
        return jsonify(transfer.to_dict()), 200
    except Exception as exc:
        return json_error(exc)
