# Overview: Flask API routes for stock balances, availability checks, corrections and ledger consistency.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission, require_any_permission
from ..permissions import Perm
from ..services import inventory_service, stock_service
from ..services.tenant_service import require_location_in_business
from . import json_body, json_error


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/stock")
@require_auth
@require_permission(Perm.PRODUCT_VIEW)
def list_stock_route():
    try:
        location_id = request.args.get("location_id", type=int)
        if location_id is not None:
            require_location_in_business(location_id, g.business_id)
        rows = stock_service.list_stock(g.business_id, location_id)
        return jsonify({"stock": [r.to_dict() for r in rows], "count": len(rows)}), 200
    except Exception as exc:
        return json_error(exc)


@inventory_bp.post("/check-availability")
@require_auth
@require_any_permission(Perm.SELL_CREATE, Perm.STOCK_TRANSFER_CREATE, Perm.PRODUCT_VIEW)
def check_availability_route():
    """
    Check stock for several lines at one location.

    Request body:
    {
        "location_id": int,
        "items": [{"variation_id": int, "quantity": int}]
    }
    """
    try:
        data = json_body()
        location_id = int(data["location_id"])
        require_location_in_business(location_id, g.business_id)
        results = stock_service.batch_check_stock_availability(data["items"], location_id)
        return jsonify({
            "location_id": location_id,
            "all_available": all(r["available"] for r in results),
            "items": results,
        }), 200
    except Exception as exc:
        return json_error(exc)


@inventory_bp.get("/corrections")
@require_auth
@require_any_permission(Perm.INVENTORY_CORRECTION_CREATE, Perm.INVENTORY_CORRECTION_APPROVE)
def list_corrections_route():
    corrections = inventory_service.list_corrections(
        g.business_id,
        status=request.args.get("status"),
        location_id=request.args.get("location_id", type=int),
    )
    return jsonify({"corrections": [c.to_dict() for c in corrections], "count": len(corrections)}), 200


@inventory_bp.post("/corrections")
@require_auth
@require_permission(Perm.INVENTORY_CORRECTION_CREATE)
def create_correction_route():
    """
    Record a physical count.

    Request body:
    {
        "variation_id": int,
        "location_id": int,
        "physical_count": int,
        "reason": str
    }
    """
    try:
        data = json_body()
        correction = inventory_service.create_correction(
            g.current_user,
            variation_id=int(data["variation_id"]),
            location_id=int(data["location_id"]),
            physical_count=int(data["physical_count"]),
            reason=data["reason"],
        )
        return jsonify(correction.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@inventory_bp.post("/corrections/<int:correction_id>/approve")
@require_auth
@require_permission(Perm.INVENTORY_CORRECTION_APPROVE)
def approve_correction_route(correction_id: int):
    try:
        correction = inventory_service.approve_correction(g.current_user, correction_id)
        return jsonify(correction.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@inventory_bp.get("/consistency")
@require_auth
@require_permission(Perm.INVENTORY_LEDGER_VIEW)
def consistency_route():
    """Cached balances against both ledgers, plus duplicated history rows."""
    try:
        location_id = request.args.get("location_id", type=int)
        if location_id is not None:
            require_location_in_business(location_id, g.business_id)
        report = stock_service.verify_ledger_consistency(g.business_id, location_id)
        report["duplicate_history"] = stock_service.find_duplicate_history(g.business_id)
        return jsonify(report), 200
    except Exception as exc:
        return json_error(exc)
