# Overview: Service-layer operations for permission; RBAC resolution and security event logging.

"""
Permission Checking and Security Event Logging

WHY: Enforce role-based access control and keep a trail of denials.

DESIGN PRINCIPLES:
- Fail closed: deny by default, require an explicit grant
- Log denials only: grants are not logged
- Tenant isolation: roles are business-scoped, so resolution never crosses tenants
"""

from ..extensions import db
from ..models import MenuPermission, Permission, Role, RolePermission, SecurityEvent, UserRole
from ..permissions import PERMISSION_DEFINITIONS
from ..time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""

    def __init__(self, message: str, permission_code: str | None = None):
        super().__init__(message)
        self.permission_code = permission_code


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    business_id: int | None = None,
) -> SecurityEvent:
    """
    Append a security event.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - LOGOUT
    - CROSS_TENANT_ACCESS_DENIED
    - LOCATION_ACCESS_DENIED
    """
    event = SecurityEvent(
        user_id=user_id,
        business_id=business_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user_id: int) -> set[str]:
    """Union of permission codes over all of the user's roles."""
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .distinct()
        .all()
    )
    return {code for (code,) in rows}


def user_has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    business_id: int | None = None,
) -> None:
    """
    Raise PermissionDeniedError (and log it) if the user lacks a permission.

    Used by the route decorators. Services that check permissions mid-operation
    call user_has_permission instead so a denial never commits half-done work.
    """
    if not user_has_permission(user_id, permission_code):
        log_security_event(
            user_id=user_id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=resource,
            action=permission_code,
            reason=f"Missing permission: {permission_code}",
            ip_address=ip_address,
            user_agent=user_agent,
            business_id=business_id,
        )
        raise PermissionDeniedError(f"Permission denied: {permission_code}", permission_code)


def check_permission(user_id: int, permission_code: str) -> None:
    """Service-level guard; raises without touching the session."""
    if not user_has_permission(user_id, permission_code):
        raise PermissionDeniedError(f"Permission denied: {permission_code}", permission_code)


def get_user_menu_keys(user_id: int) -> list[str]:
    rows = (
        db.session.query(MenuPermission.menu_key)
        .join(UserRole, UserRole.role_id == MenuPermission.role_id)
        .filter(UserRole.user_id == user_id)
        .distinct()
        .all()
    )
    return sorted(key for (key,) in rows)


def initialize_permissions() -> int:
    """
    Create Permission rows for every code in PERMISSION_DEFINITIONS.

    Idempotent: safe to run multiple times. Returns count created.
    """
    existing = {code for (code,) in db.session.query(Permission.code).all()}
    created_count = 0

    for code, name, description, category in PERMISSION_DEFINITIONS:
        if code in existing:
            continue
        db.session.add(Permission(code=code, name=name, description=description, category=category))
        created_count += 1

    db.session.commit()
    return created_count


def set_role_permissions(role: Role, permission_codes: list[str]) -> list[str]:
    """
    Replace a role's permission set.

    Unknown codes raise ValueError; nothing is changed in that case.
    """
    permissions = db.session.query(Permission).filter(Permission.code.in_(permission_codes)).all()
    found = {p.code for p in permissions}
    unknown = sorted(set(permission_codes) - found)
    if unknown:
        raise ValueError(f"Unknown permission codes: {', '.join(unknown)}")

    db.session.query(RolePermission).filter_by(role_id=role.id).delete()
    for permission in permissions:
        db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))

    db.session.commit()
    return sorted(found)


def grant_permission_to_role(role: Role, permission_code: str) -> RolePermission:
    """Grant a single permission to a role (idempotent)."""
    permission = db.session.query(Permission).filter_by(code=permission_code).first()
    if not permission:
        raise ValueError(f"Permission '{permission_code}' not found")

    existing = db.session.query(RolePermission).filter_by(
        role_id=role.id,
        permission_id=permission.id
    ).first()
    if existing:
        return existing

    role_permission = RolePermission(role_id=role.id, permission_id=permission.id)
    db.session.add(role_permission)
    db.session.commit()
    return role_permission
