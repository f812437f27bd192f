# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Token-based sessions (Bearer), hashed at rest
- Failed logins recorded as security events
- Self-registration disabled; users are created by administrators
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services.user_service import user_profile
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "username": str (username or email),
        "password": str,
        "business_id": int (optional, disambiguates shared usernames)
    }

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(username, password, business_id=data.get("business_id"))

        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action="login",
                reason=f"Invalid credentials for {username}",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )

        return jsonify({
            "user": user_profile(user),
            "token": token,
            "session": session.to_dict(),
            "business_id": session.business_id,
            "location_id": session.location_id,
            "menus": permission_service.get_user_menu_keys(user.id),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    session_service.revoke_session(g.token, reason="User logout")
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type="LOGOUT",
        success=True,
        resource=request.path,
        action="logout",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        business_id=g.business_id,
    )
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user with roles, permissions and dashboard menus."""
    profile = user_profile(g.current_user)
    profile["menus"] = permission_service.get_user_menu_keys(g.current_user.id)
    return jsonify({"user": profile, "business_id": g.business_id, "location_id": g.location_id}), 200
