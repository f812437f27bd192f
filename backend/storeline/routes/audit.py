# Overview: Flask API routes for the business audit trail.

from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services.audit_service import list_audit_logs


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@require_auth
@require_permission(Perm.AUDIT_LOG_VIEW)
def list_audit_logs_route():
    logs = list_audit_logs(
        business_id=g.business_id,
        action=request.args.get("action"),
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id", type=int),
        user_id=request.args.get("user_id", type=int),
        limit=request.args.get("limit", 200, type=int),
    )
    return jsonify({"audit_logs": [log.to_dict() for log in logs], "count": len(logs)}), 200
