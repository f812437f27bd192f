# Overview: Business administration: locations, users, roles and role permissions.

from __future__ import annotations

from ..extensions import db
from ..models import BusinessLocation, Permission, Role, RolePermission, User, UserLocation
from .audit_service import append_audit_log
from .auth_service import assign_role, create_user, get_role_names, is_manager
from .permission_service import get_user_permissions, set_role_permissions
from .tenant_service import TenantAccessError, require_location_in_business


def create_location(user: User, name: str, code: str | None = None, address: str | None = None) -> BusinessLocation:
    if not name or not name.strip():
        raise ValueError("Location name is required")

    location = BusinessLocation(business_id=user.business_id, name=name.strip(), code=code, address=address)
    db.session.add(location)
    db.session.flush()
    append_audit_log(
        business_id=user.business_id,
        location_id=location.id,
        user_id=user.id,
        action="location_create",
        entity_type="business_location",
        entity_id=location.id,
        description=f"Location {location.name} created",
    )
    db.session.commit()
    return location


def list_users(business_id: int) -> list[User]:
    return db.session.query(User).filter_by(business_id=business_id).order_by(User.username).all()


def user_to_dict(user: User) -> dict:
    data = user.to_dict()
    data["roles"] = get_role_names(user.id)
    data["is_manager"] = is_manager(user.id)
    data["location_ids"] = sorted(
        [loc.location_id for loc in user.extra_locations] + ([user.location_id] if user.location_id else [])
    )
    return data


def create_business_user(actor: User, payload: dict) -> User:
    """
    Create a user in the actor's business, then assign roles and extra locations.

    payload keys: username, email, password (required); location_id,
    first_name, last_name, roles, location_ids (optional).
    """
    user = create_user(
        username=payload["username"],
        email=payload["email"],
        password=payload["password"],
        business_id=actor.business_id,
        location_id=payload.get("location_id"),
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
    )
    for role_name in payload.get("roles", []):
        assign_role(user.id, role_name)
    for location_id in payload.get("location_ids", []):
        add_user_location(actor, user.id, int(location_id))

    append_audit_log(
        business_id=actor.business_id,
        user_id=actor.id,
        action="user_create",
        entity_type="user",
        entity_id=user.id,
        description=f"User {user.username} created",
        metadata={"roles": payload.get("roles", [])},
    )
    db.session.commit()
    return user


def add_user_location(actor: User, user_id: int, location_id: int) -> UserLocation:
    """Let a user act at an additional location."""
    target = db.session.query(User).filter_by(id=user_id).first()
    if not target or target.business_id != actor.business_id:
        raise TenantAccessError("User not found")
    require_location_in_business(location_id, actor.business_id)

    existing = db.session.query(UserLocation).filter_by(user_id=user_id, location_id=location_id).first()
    if existing:
        return existing

    link = UserLocation(user_id=user_id, location_id=location_id)
    db.session.add(link)
    db.session.commit()
    return link


def assign_user_role(actor: User, user_id: int, role_name: str) -> list[str]:
    target = db.session.query(User).filter_by(id=user_id).first()
    if not target or target.business_id != actor.business_id:
        raise TenantAccessError("User not found")
    assign_role(target.id, role_name)
    append_audit_log(
        business_id=actor.business_id,
        user_id=actor.id,
        action="user_role_assign",
        entity_type="user",
        entity_id=target.id,
        description=f"Role {role_name} assigned to {target.username}",
    )
    db.session.commit()
    return get_role_names(target.id)


def list_roles(business_id: int) -> list[Role]:
    return db.session.query(Role).filter_by(business_id=business_id).order_by(Role.name).all()


def create_role(actor: User, name: str, description: str | None = None, permission_codes: list[str] | None = None) -> Role:
    if not name or not name.strip():
        raise ValueError("Role name is required")
    if db.session.query(Role).filter_by(business_id=actor.business_id, name=name.strip()).first():
        raise ValueError(f"Role {name.strip()} already exists")

    role = Role(business_id=actor.business_id, name=name.strip(), description=description)
    db.session.add(role)
    db.session.flush()
    if permission_codes:
        set_role_permissions(role, permission_codes)

    append_audit_log(
        business_id=actor.business_id,
        user_id=actor.id,
        action="role_create",
        entity_type="role",
        entity_id=role.id,
        description=f"Role {role.name} created",
    )
    db.session.commit()
    return role


def update_role_permissions(actor: User, role_id: int, permission_codes: list[str]) -> list[str]:
    role = db.session.query(Role).filter_by(id=role_id).first()
    if not role or role.business_id != actor.business_id:
        raise TenantAccessError("Role not found")
    codes = set_role_permissions(role, permission_codes)
    append_audit_log(
        business_id=actor.business_id,
        user_id=actor.id,
        action="role_permissions_update",
        entity_type="role",
        entity_id=role.id,
        description=f"Permissions of {role.name} replaced",
        metadata={"permissions": codes},
    )
    db.session.commit()
    return codes


def role_to_dict(role: Role) -> dict:
    codes = [
        code for (code,) in db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == role.id)
        .order_by(Permission.code)
        .all()
    ]
    return {"id": role.id, "name": role.name, "description": role.description, "permissions": codes}


def user_profile(user: User) -> dict:
    data = user_to_dict(user)
    data["permissions"] = sorted(get_user_permissions(user.id))
    return data
