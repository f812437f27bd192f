# Overview: Flask API routes for cashier shifts, cash movements and X/Z readings.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import shift_service
from . import json_body, json_error


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.get("")
@require_auth
@require_permission(Perm.SHIFT_VIEW)
def list_shifts_route():
    shifts = shift_service.list_shifts(
        g.current_user,
        status=request.args.get("status"),
        location_id=request.args.get("location_id", type=int),
    )
    return jsonify({"shifts": [s.to_dict() for s in shifts], "count": len(shifts)}), 200


@shifts_bp.post("")
@require_auth
@require_permission(Perm.SHIFT_OPEN)
def open_shift_route():
    """
    Open a shift for the caller.

    Request body:
    {
        "location_id": int,
        "beginning_cash_cents": int,
        "notes": str (optional)
    }

    Returns:
        201: Shift opened
        400: Caller already has an open shift
        403: Location not accessible
    """
    try:
        data = json_body()
        shift = shift_service.open_shift(
            g.current_user,
            location_id=int(data["location_id"]),
            beginning_cash_cents=int(data["beginning_cash_cents"]),
            notes=data.get("notes"),
        )
        return jsonify(shift.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@shifts_bp.get("/current")
@require_auth
@require_permission(Perm.SHIFT_VIEW)
def current_shift_route():
    shift = shift_service.get_current_shift(g.current_user)
    if not shift:
        return jsonify({"shift": None}), 200
    data = shift.to_dict()
    data["system_cash_cents"] = shift_service.compute_system_cash(shift)
    return jsonify({"shift": data}), 200


@shifts_bp.get("/<int:shift_id>")
@require_auth
@require_permission(Perm.SHIFT_VIEW)
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(g.current_user, shift_id)
        data = shift.to_dict()
        data["cash_movements"] = [m.to_dict() for m in shift.cash_movements]
        return jsonify(data), 200
    except Exception as exc:
        return json_error(exc)


@shifts_bp.post("/<int:shift_id>/cash-in-out")
@require_auth
@require_permission(Perm.CASH_IN_OUT)
def cash_in_out_route(shift_id: int):
    """Body: {"type": "cash_in"|"cash_out", "amount_cents": int, "reason": str}"""
    try:
        data = json_body()
        movement = shift_service.record_cash_in_out(
            g.current_user,
            shift_id,
            type=data["type"],
            amount_cents=int(data["amount_cents"]),
            reason=data["reason"],
        )
        return jsonify(movement.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@shifts_bp.post("/<int:shift_id>/close")
@require_auth
@require_permission(Perm.SHIFT_CLOSE)
def close_shift_route(shift_id: int):
    """
    Reconcile and close a shift.

    Request body:
    {
        "ending_cash_cents": int,
        "manager_password": str,
        "denominations": {"<cents>": count} (optional),
        "notes": str (optional)
    }

    Returns:
        200: {"shift", "variance", "x_reading", "z_reading"}
        400: Already closed or denominations do not match
        403: Manager password rejected
    """
    try:
        data = json_body()
        result = shift_service.close_shift(
            g.current_user,
            shift_id,
            ending_cash_cents=int(data["ending_cash_cents"]),
            manager_password=data.get("manager_password"),
            denominations=data.get("denominations"),
            notes=data.get("notes"),
        )
        return jsonify(result), 200
    except Exception as exc:
        return json_error(exc)


@shifts_bp.get("/<int:shift_id>/x-reading")
@require_auth
@require_permission(Perm.X_READING)
def x_reading_route(shift_id: int):
    try:
        return jsonify(shift_service.x_reading(g.current_user, shift_id)), 200
    except Exception as exc:
        return json_error(exc)
