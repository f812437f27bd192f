# Overview: Shared helpers for API blueprints; request parsing and exception-to-status mapping.

from __future__ import annotations

from flask import current_app, jsonify, request
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..services.auth_service import ManagerApprovalError, PasswordValidationError
from ..services.document_service import DocumentSequenceError
from ..services.expense_service import ExpenseError
from ..services.inventory_service import CorrectionError
from ..services.opening_stock_service import OpeningStockError, OpeningStockLockedError
from ..services.permission_service import PermissionDeniedError
from ..services.product_service import ProductError
from ..services.purchase_service import PurchaseError
from ..services.return_service import ReturnError
from ..services.sales_service import SaleError
from ..services.shift_service import ShiftError
from ..services.sod_service import SODViolationError
from ..services.stock_service import StockError
from ..services.tenant_service import LocationAccessError, TenantAccessError
from ..services.transfer_service import TransferError
from ..time_utils import parse_iso_datetime


DOMAIN_ERRORS = (
    StockError,
    OpeningStockError,
    CorrectionError,
    ShiftError,
    SaleError,
    TransferError,
    PurchaseError,
    ReturnError,
    ExpenseError,
    ProductError,
    PasswordValidationError,
    DocumentSequenceError,
    ValueError,
    TypeError,
)

FORBIDDEN_ERRORS = (PermissionDeniedError, LocationAccessError, ManagerApprovalError)


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("JSON object body required")
    return data


def arg_datetime(name: str):
    value = request.args.get(name)
    return parse_iso_datetime(value) if value else None


def json_error(exc: Exception):
    """
    Map a service exception to a JSON error response.

    Rolls the session back before building the response.
    """
    db.session.rollback()

    if isinstance(exc, OpeningStockLockedError):
        return jsonify({"error": str(exc), "locked": True}), 403
    if isinstance(exc, SODViolationError):
        return jsonify({"error": str(exc), "code": exc.code}), 403
    if isinstance(exc, FORBIDDEN_ERRORS):
        return jsonify({"error": str(exc)}), 403
    if isinstance(exc, TenantAccessError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, KeyError):
        return jsonify({"error": f"Missing required field: {exc.args[0]}"}), 400
    if isinstance(exc, IntegrityError):
        return jsonify({"error": "Conflicting record already exists"}), 409
    if isinstance(exc, DOMAIN_ERRORS):
        return jsonify({"error": str(exc)}), 400

    current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": "Internal server error"}), 500
