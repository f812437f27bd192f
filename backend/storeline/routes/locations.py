# Overview: Flask API routes for business locations.

from flask import Blueprint, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import user_service
from ..services.tenant_service import get_business_locations
from . import json_body, json_error


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_auth
@require_permission(Perm.LOCATION_VIEW)
def list_locations_route():
    locations = get_business_locations(g.business_id)
    return jsonify({"locations": [loc.to_dict() for loc in locations], "count": len(locations)}), 200


@locations_bp.post("")
@require_auth
@require_permission(Perm.LOCATION_CREATE)
def create_location_route():
    """
    Create a location in the current business.

    Request body:
    {
        "name": str,
        "code": str (optional),
        "address": str (optional)
    }
    """
    try:
        data = json_body()
        location = user_service.create_location(
            g.current_user,
            name=data["name"],
            code=data.get("code"),
            address=data.get("address"),
        )
        return jsonify(location.to_dict()), 201
    except Exception as exc:
        return json_error(exc)
