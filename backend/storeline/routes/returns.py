# Overview: Flask API routes for customer returns and supplier returns.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import return_service
from . import json_body, json_error


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.get("/customer")
@require_auth
@require_permission(Perm.SELL_VIEW)
def list_customer_returns_route():
    returns = return_service.list_customer_returns(
        g.current_user,
        sale_id=request.args.get("sale_id", type=int),
        shift_id=request.args.get("shift_id", type=int),
        location_id=request.args.get("location_id", type=int),
    )
    return jsonify({"returns": [r.to_dict() for r in returns], "count": len(returns)}), 200


@returns_bp.post("/customer")
@require_auth
@require_permission(Perm.SELL_RETURN)
def create_customer_return_route():
    """
    Take items back from a completed sale and refund from the open shift.

    Request body:
    {
        "sale_id": int,
        "items": [{"sale_item_id": int, "quantity": int, "condition": "resellable"|"damaged"}],
        "reason": str,
        "refund_method": "cash"|"card"|"gcash"|"bank_transfer" (default cash),
        "manager_password": str
    }

    Returns:
        201: Return processed
        400: Not returnable, too many units, no open shift, short drawer
        403: Manager password rejected
    """
    try:
        data = json_body()
        customer_return = return_service.create_customer_return(
            g.current_user,
            sale_id=int(data["sale_id"]),
            items=data["items"],
            reason=data["reason"],
            manager_password=data.get("manager_password"),
            refund_method=data.get("refund_method", "cash"),
        )
        return jsonify(customer_return.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@returns_bp.get("/customer/<int:return_id>")
@require_auth
@require_permission(Perm.SELL_VIEW)
def get_customer_return_route(return_id: int):
    try:
        return jsonify(return_service.get_customer_return(g.current_user, return_id).to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@returns_bp.get("/supplier")
@require_auth
@require_permission(Perm.PURCHASE_RETURN_VIEW)
def list_supplier_returns_route():
    returns = return_service.list_supplier_returns(
        g.current_user,
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return jsonify({"returns": [r.to_dict() for r in returns], "count": len(returns)}), 200


@returns_bp.post("/supplier")
@require_auth
@require_permission(Perm.PURCHASE_RETURN_CREATE)
def create_supplier_return_route():
    """
    Record a pending supplier return.

    Request body:
    {
        "supplier_id": int,
        "location_id": int,
        "purchase_id": int (optional),
        "return_reason": str,
        "items": [{"variation_id": int, "quantity": int, "condition": str, "unit_cost_cents": int}],
        "notes": str (optional)
    }
    """
    try:
        data = json_body()
        supplier_return = return_service.create_supplier_return(
            g.current_user,
            supplier_id=int(data["supplier_id"]),
            location_id=int(data["location_id"]),
            items=data["items"],
            return_reason=data["return_reason"],
            purchase_id=int(data["purchase_id"]) if data.get("purchase_id") is not None else None,
            notes=data.get("notes"),
        )
        return jsonify(supplier_return.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@returns_bp.get("/supplier/<int:return_id>")
@require_auth
@require_permission(Perm.PURCHASE_RETURN_VIEW)
def get_supplier_return_route(return_id: int):
    try:
        return jsonify(return_service.get_supplier_return(g.current_user, return_id).to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@returns_bp.post("/supplier/<int:return_id>/approve")
@require_auth
@require_permission(Perm.PURCHASE_RETURN_APPROVE)
def approve_supplier_return_route(return_id: int):
    """
    Returns:
        200: Approved, stock deducted
        400: Not pending, insufficient stock
        403: Approver created the return (SOD_RETURN_CREATOR_CANNOT_APPROVE)
    """
    try:
        supplier_return = return_service.approve_supplier_return(g.current_user, return_id)
        return jsonify(supplier_return.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@returns_bp.post("/supplier/<int:return_id>/cancel")
@require_auth
@require_permission(Perm.PURCHASE_RETURN_APPROVE)
def cancel_supplier_return_route(return_id: int):
    try:
        data = json_body()
        supplier_return = return_service.cancel_supplier_return(g.current_user, return_id, data["reason"])
        return jsonify(supplier_return.to_dict()), 200
    except Exception as exc:
        return json_error(exc)
