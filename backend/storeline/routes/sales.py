# Overview: Flask API routes for POS sales, voids and accounts-receivable payments.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import sales_service
from . import json_body, json_error


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
@require_permission(Perm.SELL_VIEW)
def list_sales_route():
    sales = sales_service.list_sales(
        g.current_user,
        location_id=request.args.get("location_id", type=int),
        shift_id=request.args.get("shift_id", type=int),
        status=request.args.get("status"),
        limit=request.args.get("limit", 200, type=int),
    )
    return jsonify({"sales": [s.to_dict(include_items=False) for s in sales], "count": len(sales)}), 200


@sales_bp.post("")
@require_auth
@require_permission(Perm.SELL_CREATE)
def create_sale_route():
    """
    Ring a sale on the caller's open shift.

    Request body:
    {
        "location_id": int,
        "items": [{"variation_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "payments": [{"method": "cash"|"card"|"gcash"|"bank_transfer", "amount_cents": int}],
        "discount_type": "regular"|"senior"|"pwd" (optional),
        "discount_cents": int (optional, regular sales only),
        "is_credit": bool (optional),
        "customer_name": str (optional, required for credit)
    }

    Returns:
        201: Sale completed
        400: No open shift, short stock, underpayment
        403: Location not accessible
    """
    try:
        data = json_body()
        sale = sales_service.create_sale(
            g.current_user,
            location_id=int(data["location_id"]),
            items=data["items"],
            payments=data.get("payments", []),
            discount_type=data.get("discount_type", "regular"),
            discount_cents=int(data.get("discount_cents", 0)),
            is_credit=bool(data.get("is_credit", False)),
            customer_name=data.get("customer_name"),
        )
        return jsonify(sale.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission(Perm.SELL_VIEW)
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.current_user, sale_id)
        return jsonify(sale.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_permission(Perm.SELL_VOID)
def void_sale_route(sale_id: int):
    """
    Void a completed sale with manager approval.

    Request body:
    {
        "reason": str,
        "manager_password": str
    }

    Returns:
        200: Voided
        400: Already voided, closed shift, AR payments recorded
        403: Manager password rejected
        409: Concurrent void
    """
    try:
        data = json_body()
        sale = sales_service.void_sale(
            g.current_user,
            sale_id,
            reason=data["reason"],
            manager_password=data.get("manager_password"),
        )
        return jsonify(sale.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@sales_bp.post("/<int:sale_id>/payments")
@require_auth
@require_permission(Perm.SELL_CREATE)
def record_payment_route(sale_id: int):
    """
    Collect payment against a credit sale.

    Request body:
    {
        "amount_cents": int,
        "method": str,
        "shift_id": int (optional, defaults to the caller's open shift),
        "reference": str (optional)
    }
    """
    try:
        data = json_body()
        shift_id = data.get("shift_id")
        payment = sales_service.record_ar_payment(
            g.current_user,
            sale_id,
            amount_cents=int(data["amount_cents"]),
            method=data["method"],
            shift_id=int(shift_id) if shift_id is not None else None,
            reference=data.get("reference"),
        )
        sale = sales_service.get_sale(g.current_user, sale_id)
        return jsonify({"payment": payment.to_dict(), "sale": sale.to_dict(include_items=False)}), 201
    except Exception as exc:
        return json_error(exc)
