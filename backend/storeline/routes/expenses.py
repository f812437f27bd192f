# Overview: Flask API routes for expenses and expense categories.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import expense_service
from ..time_utils import parse_iso_datetime
from . import arg_datetime, json_body, json_error


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("/categories")
@require_auth
@require_permission(Perm.EXPENSE_VIEW)
def list_categories_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    categories = expense_service.list_categories(g.business_id, include_inactive=include_inactive)
    return jsonify({"categories": [c.to_dict() for c in categories], "count": len(categories)}), 200


@expenses_bp.post("/categories")
@require_auth
@require_permission(Perm.EXPENSE_CREATE)
def create_category_route():
    try:
        data = json_body()
        category = expense_service.create_category(g.current_user, data["name"], data.get("description"))
        return jsonify(category.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@expenses_bp.put("/categories/<int:category_id>")
@require_auth
@require_permission(Perm.EXPENSE_UPDATE)
def update_category_route(category_id: int):
    try:
        data = json_body()
        category = expense_service.update_category(
            g.current_user,
            category_id,
            name=data.get("name"),
            description=data.get("description"),
            is_active=data.get("is_active"),
        )
        return jsonify(category.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@expenses_bp.get("")
@require_auth
@require_permission(Perm.EXPENSE_VIEW)
def list_expenses_route():
    try:
        include_void = request.args.get("include_void", "false").lower() == "true"
        expenses = expense_service.list_expenses(
            g.business_id,
            location_id=request.args.get("location_id", type=int),
            category_id=request.args.get("category_id", type=int),
            start=arg_datetime("start"),
            end=arg_datetime("end"),
            include_void=include_void,
        )
        return jsonify({"expenses": [e.to_dict() for e in expenses], "count": len(expenses)}), 200
    except Exception as exc:
        return json_error(exc)


@expenses_bp.post("")
@require_auth
@require_permission(Perm.EXPENSE_CREATE)
def create_expense_route():
    """
    Record an expense.

    Request body:
    {
        "location_id": int,
        "category_id": int,
        "amount_cents": int,
        "expense_date": ISO-8601 str (optional, defaults to now),
        "payee": str (optional),
        "description": str (optional),
        "reference_number": str (optional)
    }
    """
    try:
        data = json_body()
        expense = expense_service.create_expense(
            g.current_user,
            location_id=int(data["location_id"]),
            category_id=int(data["category_id"]),
            amount_cents=int(data["amount_cents"]),
            expense_date=parse_iso_datetime(data.get("expense_date")),
            payee=data.get("payee"),
            description=data.get("description"),
            reference_number=data.get("reference_number"),
        )
        return jsonify(expense.to_dict()), 201
    except Exception as exc:
        return json_error(exc)


@expenses_bp.get("/summary")
@require_auth
@require_permission(Perm.EXPENSE_VIEW)
def expense_summary_route():
    try:
        summary = expense_service.expense_summary(
            g.business_id,
            location_id=request.args.get("location_id", type=int),
            start=arg_datetime("start"),
            end=arg_datetime("end"),
        )
        return jsonify(summary), 200
    except Exception as exc:
        return json_error(exc)


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_permission(Perm.EXPENSE_VIEW)
def get_expense_route(expense_id: int):
    try:
        return jsonify(expense_service.get_expense(g.current_user, expense_id).to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@expenses_bp.put("/<int:expense_id>")
@require_auth
@require_permission(Perm.EXPENSE_UPDATE)
def update_expense_route(expense_id: int):
    try:
        changes = json_body()
        if "expense_date" in changes:
            changes["expense_date"] = parse_iso_datetime(changes["expense_date"])
        expense = expense_service.update_expense(g.current_user, expense_id, changes)
        return jsonify(expense.to_dict()), 200
    except Exception as exc:
        return json_error(exc)


@expenses_bp.post("/<int:expense_id>/void")
@require_auth
@require_permission(Perm.EXPENSE_DELETE)
def void_expense_route(expense_id: int):
    try:
        data = json_body()
        expense = expense_service.void_expense(g.current_user, expense_id, data["reason"])
        return jsonify(expense.to_dict()), 200
    except Exception as exc:
        return json_error(exc)
