# Overview: Flask API routes for business users, roles and role permissions.

from flask import Blueprint, jsonify, g

from ..decorators import require_auth, require_permission
from ..permissions import Perm
from ..services import user_service
from . import json_body, json_error


users_bp = Blueprint("users", __name__, url_prefix="/api")


@users_bp.get("/users")
@require_auth
@require_permission(Perm.USER_VIEW)
def list_users_route():
    users = user_service.list_users(g.business_id)
    return jsonify({"users": [user_service.user_to_dict(u) for u in users], "count": len(users)}), 200


@users_bp.post("/users")
@require_auth
@require_permission(Perm.USER_CREATE)
def create_user_route():
    """
    Create a user in the current business.

    Request body:
    {
        "username": str,
        "email": str,
        "password": str,
        "location_id": int (optional),
        "first_name": str (optional),
        "last_name": str (optional),
        "roles": [str] (optional),
        "location_ids": [int] (optional)
    }
    """
    try:
        user = user_service.create_business_user(g.current_user, json_body())
        return jsonify(user_service.user_to_dict(user)), 201
    except Exception as exc:
        return json_error(exc)


@users_bp.post("/users/<int:user_id>/roles")
@require_auth
@require_permission(Perm.USER_UPDATE)
def assign_role_route(user_id: int):
    try:
        data = json_body()
        roles = user_service.assign_user_role(g.current_user, user_id, data["role"])
        return jsonify({"user_id": user_id, "roles": roles}), 200
    except Exception as exc:
        return json_error(exc)


@users_bp.post("/users/<int:user_id>/locations")
@require_auth
@require_permission(Perm.USER_UPDATE)
def add_location_route(user_id: int):
    try:
        data = json_body()
        link = user_service.add_user_location(g.current_user, user_id, int(data["location_id"]))
        return jsonify({"user_id": link.user_id, "location_id": link.location_id}), 200
    except Exception as exc:
        return json_error(exc)


@users_bp.get("/roles")
@require_auth
@require_permission(Perm.ROLE_VIEW)
def list_roles_route():
    roles = user_service.list_roles(g.business_id)
    return jsonify({"roles": [user_service.role_to_dict(r) for r in roles], "count": len(roles)}), 200


@users_bp.post("/roles")
@require_auth
@require_permission(Perm.ROLE_CREATE)
def create_role_route():
    try:
        data = json_body()
        role = user_service.create_role(
            g.current_user,
            name=data["name"],
            description=data.get("description"),
            permission_codes=data.get("permissions"),
        )
        return jsonify(user_service.role_to_dict(role)), 201
    except Exception as exc:
        return json_error(exc)


@users_bp.put("/roles/<int:role_id>/permissions")
@require_auth
@require_permission(Perm.ROLE_UPDATE)
def update_role_permissions_route(role_id: int):
    """Replace a role's permission set. Body: {"permissions": [code, ...]}"""
    try:
        data = json_body()
        codes = user_service.update_role_permissions(g.current_user, role_id, data["permissions"])
        return jsonify({"role_id": role_id, "permissions": codes}), 200
    except Exception as exc:
        return json_error(exc)
