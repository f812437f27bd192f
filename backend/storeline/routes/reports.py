# Overview: Flask API routes for read-only reports.

from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth, require_permission, require_any_permission
from ..permissions import Perm
from ..services import report_service
from . import arg_datetime, json_error


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/inventory-ledger")
@require_auth
@require_permission(Perm.INVENTORY_LEDGER_VIEW)
def inventory_ledger_report():
    """
    Movement ledger for one variation at one location.

    Query: variation_id, location_id (required); start, end (ISO-8601, optional)
    """
    variation_id = request.args.get("variation_id", type=int)
    location_id = request.args.get("location_id", type=int)
    if not variation_id or not location_id:
        return jsonify({"error": "variation_id and location_id are required"}), 400

    try:
        report = report_service.inventory_ledger(
            g.business_id,
            variation_id=variation_id,
            location_id=location_id,
            start=arg_datetime("start"),
            end=arg_datetime("end"),
        )
        return jsonify(report), 200
    except Exception as exc:
        return json_error(exc)


@reports_bp.get("/shift-summary/<int:shift_id>")
@require_auth
@require_any_permission(Perm.SHIFT_VIEW, Perm.REPORT_VIEW)
def shift_summary_report(shift_id: int):
    try:
        return jsonify(report_service.shift_summary(g.current_user, shift_id)), 200
    except Exception as exc:
        return json_error(exc)


@reports_bp.get("/sales-summary")
@require_auth
@require_permission(Perm.REPORT_VIEW)
def sales_summary_report():
    try:
        report = report_service.sales_summary(
            g.business_id,
            location_id=request.args.get("location_id", type=int),
            start=arg_datetime("start"),
            end=arg_datetime("end"),
        )
        return jsonify(report), 200
    except Exception as exc:
        return json_error(exc)


@reports_bp.get("/stock-valuation")
@require_auth
@require_permission(Perm.REPORT_VIEW)
def stock_valuation_report():
    try:
        report = report_service.stock_valuation(
            g.business_id,
            location_id=request.args.get("location_id", type=int),
        )
        return jsonify(report), 200
    except Exception as exc:
        return json_error(exc)
