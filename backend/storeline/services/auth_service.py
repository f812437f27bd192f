# Overview: Service-layer operations for auth; password hashing, users, roles and manager approval.

"""
Authentication Service with Multi-Tenant Support

WHY: Every action must be attributable. Uses bcrypt for password hashing
and validates password strength.

MULTI-TENANT: Users belong to exactly one business. Username/email
uniqueness is tenant-scoped.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12; BCRYPT_ROUNDS overrides)
- Minimum 8 characters, upper, lower, digit and special char
- Session tokens managed separately (see session_service.py)
- Manager approval re-verifies a manager's password on every use
"""

import re

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import (
    Business,
    BusinessLocation,
    MenuPermission,
    Permission,
    Role,
    RolePermission,
    User,
    UserRole,
)
from ..permissions import DEFAULT_ROLES, DEFAULT_ROLE_MENUS, DEFAULT_ROLE_PERMISSIONS
from ..time_utils import utcnow


# Role names containing any of these may authorise voids and shift closes
MANAGER_ROLE_KEYWORDS = ("manager", "admin")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class ManagerApprovalError(Exception):
    """Raised when a manager password is missing or does not match."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw is timing-safe. A malformed hash counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    business_id: int,
    location_id: int | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: If business doesn't exist, user exists, or location belongs elsewhere
        PasswordValidationError: If password doesn't meet requirements
    """
    business = db.session.query(Business).filter_by(id=business_id).first()
    if not business:
        raise ValueError("Business not found")
    if not business.is_active:
        raise ValueError("Business is not active")

    existing = db.session.query(User).filter(
        User.business_id == business_id,
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists in this business")

    if location_id is not None:
        location = db.session.query(BusinessLocation).filter_by(id=location_id).first()
        if not location or location.business_id != business_id:
            raise ValueError("Location does not belong to this business")

    user = User(
        business_id=business_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
        location_id=location_id,
        first_name=first_name,
        last_name=last_name,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, business_id: int | None = None) -> User | None:
    """
    Authenticate by username or email.

    Returns None for unknown users, inactive users, inactive businesses and
    bad passwords alike so callers cannot distinguish them.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active == True,  # noqa: E712
    )
    if business_id is not None:
        query = query.filter(User.business_id == business_id)
    user = query.first()

    if not user:
        return None

    business = db.session.query(Business).filter_by(id=user.business_id).first()
    if not business or not business.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def get_role_names(user_id: int) -> list[str]:
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return [name for (name,) in rows]


def is_manager(user_id: int) -> bool:
    return any(
        keyword in name.lower()
        for name in get_role_names(user_id)
        for keyword in MANAGER_ROLE_KEYWORDS
    )


def verify_manager_password(business_id: int, password: str | None) -> User:
    """
    Find the manager whose password was typed at the till.

    Checks every active user of the business holding a manager/admin role.
    Returns the approving manager, or raises ManagerApprovalError.
    """
    if not password:
        raise ManagerApprovalError("Manager password is required")

    candidates = (
        db.session.query(User)
        .join(UserRole, UserRole.user_id == User.id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(User.business_id == business_id, User.is_active == True)  # noqa: E712
        .filter(db.or_(*[Role.name.ilike(f"%{k}%") for k in MANAGER_ROLE_KEYWORDS]))
        .distinct()
        .all()
    )

    for manager in candidates:
        if verify_password(password, manager.password_hash):
            return manager

    raise ManagerApprovalError("Invalid manager password")


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign a role of the user's own business."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")

    role = db.session.query(Role).filter_by(business_id=user.business_id, name=role_name).first()
    if not role:
        raise ValueError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)
    db.session.add(user_role)
    db.session.commit()
    return user_role


def create_default_roles(business_id: int) -> list[Role]:
    """
    Create standard roles for a business with their default permissions and menus.

    Idempotent. Permissions must already be initialised
    (permission_service.initialize_permissions).
    """
    roles = []
    for name, desc in DEFAULT_ROLES:
        role = db.session.query(Role).filter_by(business_id=business_id, name=name).first()
        if not role:
            role = Role(business_id=business_id, name=name, description=desc)
            db.session.add(role)
            db.session.flush()
        roles.append(role)

        granted = {
            rp.permission_id
            for rp in db.session.query(RolePermission).filter_by(role_id=role.id).all()
        }
        codes = DEFAULT_ROLE_PERMISSIONS.get(name, [])
        for permission in db.session.query(Permission).filter(Permission.code.in_(codes)).all():
            if permission.id not in granted:
                db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))

        menus = {m.menu_key for m in db.session.query(MenuPermission).filter_by(role_id=role.id).all()}
        for key in DEFAULT_ROLE_MENUS.get(name, []):
            if key not in menus:
                db.session.add(MenuPermission(role_id=role.id, menu_key=key))

    db.session.commit()
    return roles
