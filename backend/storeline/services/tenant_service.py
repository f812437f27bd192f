"""
Multi-Tenant Service: Tenant Validation and Location Access

WHY: Centralize tenant and location checks for reuse across services.
Every request is scoped to a business; cross-tenant access is reported
as not-found so other tenants' ids are never confirmed.

LOCATION ACCESS:
- Origin actions (create/check/send a transfer, ring a sale) require the
  user's primary location, or access_all_locations.
- Destination actions (receive/verify/complete) require the destination to
  be the user's primary location or one of their UserLocation rows. A user
  with access_all_locations qualifies only if their primary location is not
  the origin, so one user cannot both ship and receive.
"""

from ..extensions import db
from ..models import BusinessLocation, User, UserLocation
from ..permissions import Perm
from .permission_service import user_has_permission


class TenantAccessError(Exception):
    """Raised when a record from another business (or no record) is requested."""
    pass


class LocationAccessError(Exception):
    """Raised when a user may not act at a location."""
    pass


def require_location_in_business(location_id: int, business_id: int) -> BusinessLocation:
    location = db.session.query(BusinessLocation).filter_by(id=location_id).first()
    if not location or location.business_id != business_id:
        raise TenantAccessError("Location not found")
    return location


def require_in_business(model, record_id: int, business_id: int):
    """
    Load a business-owned row by id or raise TenantAccessError.

    The row's own business_id column is compared, so this works for any
    model that carries one.
    """
    record = db.session.query(model).filter_by(id=record_id).first()
    if not record or record.business_id != business_id:
        raise TenantAccessError(f"{model.__name__} not found")
    return record


def get_business_locations(business_id: int, active_only: bool = True) -> list[BusinessLocation]:
    query = db.session.query(BusinessLocation).filter_by(business_id=business_id)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(BusinessLocation.id).all()


def get_user_location_ids(user: User) -> set[int]:
    """Primary location plus any extra assigned locations."""
    ids = {
        location_id
        for (location_id,) in db.session.query(UserLocation.location_id).filter_by(user_id=user.id).all()
    }
    if user.location_id:
        ids.add(user.location_id)
    return ids


def has_all_locations_access(user: User) -> bool:
    return user_has_permission(user.id, Perm.ACCESS_ALL_LOCATIONS)


def can_access_location(user: User, location_id: int) -> bool:
    return has_all_locations_access(user) or location_id in get_user_location_ids(user)


def require_location_access(user: User, location_id: int) -> None:
    if not can_access_location(user, location_id):
        raise LocationAccessError("You do not have access to this location")


def require_origin_access(user: User, from_location_id: int) -> None:
    if user.location_id == from_location_id or has_all_locations_access(user):
        return
    raise LocationAccessError("Only users at the origin location can perform this action")


def require_destination_access(user: User, to_location_id: int, from_location_id: int) -> None:
    if to_location_id in get_user_location_ids(user):
        return
    if has_all_locations_access(user) and user.location_id != from_location_id:
        return
    raise LocationAccessError("Only users at the destination location can perform this action")
