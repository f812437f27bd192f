# Overview: Flask API routes for business settings (separation of duties).

from flask import Blueprint, jsonify, g

from ..decorators import require_auth, require_permission
from ..extensions import db
from ..permissions import Perm
from ..services import sod_service
from . import json_body, json_error


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/sod")
@require_auth
def get_sod_settings_route():
    """Current separation-of-duties rules; defaults are stored on first read."""
    settings = sod_service.get_sod_settings(g.business_id)
    db.session.commit()
    return jsonify(settings.to_dict()), 200


@settings_bp.put("/sod")
@require_auth
@require_permission(Perm.SOD_SETTINGS_UPDATE)
def update_sod_settings_route():
    """
    Update separation-of-duties rules.

    Request body: any of the allow_* / enforce_* booleans, plus
    "exempt_roles": [role name, ...] or comma-separated str.

    Returns:
        200: Updated settings
        400: Unknown key or non-boolean flag
    """
    try:
        settings = sod_service.update_sod_settings(g.business_id, g.current_user, json_body())
        return jsonify(settings.to_dict()), 200
    except Exception as exc:
        return json_error(exc)
