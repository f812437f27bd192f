# Overview: Flask API routes for suppliers, purchase orders and goods receipts (GRN).

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import purchase_service
from . import json_body, json_error


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("/suppliers")
@require_auth
@require_permission(Perm.PURCHASE_VIEW)
def list_suppliers_route():
    suppliers = purchase_service.list_suppliers(g.business_id)
    return jsonify({"suppliers": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200


@purchases_bp.post("/suppliers")
@require_auth
@require_permission(Perm.PURCHASE_CREATE)
def create_supplier_route():
    try:
        data = json_body()
        supplier = purchase_service.create_supplier(
            g.current_user,
            name=data["name"],
            contact_name=data.get("contact_name"),
            phone=data.get("phone"),
            email=data.get("email"),
        )
        return jsonify(supplier.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@purchases_bp.get("")
@require_auth
@require_permission(Perm.PURCHASE_VIEW)
def list_purchases_route():
    purchases = purchase_service.list_purchases(
        g.business_id,
        status=request.args.get("status"),
        location_id=request.args.get("location_id", type=int),
    )
    return jsonify({"purchases": [p.to_dict(include_items=False) for p in purchases], "count": len(purchases)}), 200


@purchases_bp.post("")
@require_auth
@require_permission(Perm.PURCHASE_CREATE)
def create_purchase_route():
    """
    Create a draft purchase order.

    Request body:
    {
        "supplier_id": int,
        "location_id": int,
        "items": [{"variation_id": int, "quantity": int, "unit_cost_cents": int}],
        "notes": str (optional)
    }
    """
    try:
        data = json_body()
        purchase = purchase_service.create_purchase(
            g.current_user,
            supplier_id=int(data["supplier_id"]),
            location_id=int(data["location_id"]),
            items=data["items"],
            notes=data.get("notes"),
        )
        return jsonify(purchase.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_permission(Perm.PURCHASE_VIEW)
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(g.current_user, purchase_id)
        data = purchase.to_dict()
        data["receipts"] = [r.to_dict() for r in purchase.receipts]
        return jsonify(data), 200
    except Exception as exc:
        return json_error(exc)


@purchases_bp.post("/<int:purchase_id>/approve")
@require_auth
@require_permission(Perm.PURCHASE_APPROVE)
def approve_purchase_route(purchase_id: int):
    """
    Approve a draft PO.

    Returns:
        200: Approved
        400: Invalid state
        403: Creator may not approve (SOD)
    """
    try:
        purchase = purchase_service.approve_purchase(g.current_user, purchase_id)
        return jsonify(purchase.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_auth
@require_permission(Perm.PURCHASE_APPROVE)
def cancel_purchase_route(purchase_id: int):
    try:
        data = request.get_json(silent=True) or {}
        purchase = purchase_service.cancel_purchase(g.current_user, purchase_id, reason=data.get("reason"))
        return jsonify(purchase.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@purchases_bp.post("/<int:purchase_id>/receipts")
@require_auth
@require_permission(Perm.PURCHASE_RECEIPT_CREATE)
def create_receipt_route(purchase_id: int):
    """
    Record a pending goods receipt.

    Request body:
    {
        "items": [{"purchase_item_id": int, "quantity_received": int}],
        "notes": str (optional)
    }
    """
    try:
        data = json_body()
        receipt = purchase_service.create_receipt(
            g.current_user,
            purchase_id,
            items=data["items"],
            notes=data.get("notes"),
        )
        return jsonify(receipt.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@purchases_bp.post("/receipts/<int:receipt_id>/approve")
@require_auth
@require_permission(Perm.PURCHASE_RECEIPT_APPROVE)
def approve_receipt_route(receipt_id: int):
    """Approve a GRN and post its quantities to stock."""
    try:
        receipt = purchase_service.approve_receipt(g.current_user, receipt_id)
        return jsonify(receipt.to_dict()), 200
    except Exception as exc:
        return json_error(exc)
