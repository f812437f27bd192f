# Overview: Opening stock posting with post-once locking.

"""
Opening Stock

WHY: The first balance of a variation at a location is the baseline every
later movement builds on. It is posted once, through the stock ledger, and
then locked.

RULES:
1. Requires product.opening_stock and access to the location
2. A locked row needs product.unlock_opening_stock or
   product.modify_locked_stock (OpeningStockLockedError otherwise)
3. Any existing ledger entry for the variation/location blocks posting:
   later changes go through inventory corrections
4. Posting auto-locks the row and writes an audit entry
"""

from __future__ import annotations

from ..extensions import db
from ..models import ProductVariation, StockTransaction, User
from ..permissions import Perm
from ..time_utils import utcnow
from .audit_service import append_audit_log
from .concurrency import run_with_retry
from .permission_service import check_permission, user_has_permission
from .stock_service import StockMovement, add_stock, get_or_create_location_details
from .tenant_service import TenantAccessError, require_location_access, require_location_in_business


class OpeningStockError(Exception):
    """Raised when opening stock cannot be posted."""
    pass


class OpeningStockLockedError(Exception):
    """Raised when a locked opening stock row is touched without unlock rights."""
    pass


def _load_variation(business_id: int, product_id: int, variation_id: int) -> ProductVariation:
    variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
    if not variation or variation.product_id != product_id or variation.product.business_id != business_id:
        raise TenantAccessError("Product variation not found")
    return variation


def can_modify_locked(user_id: int) -> bool:
    return (
        user_has_permission(user_id, Perm.PRODUCT_UNLOCK_OPENING_STOCK)
        or user_has_permission(user_id, Perm.PRODUCT_MODIFY_LOCKED_STOCK)
    )


def set_opening_stock(
    user: User,
    product_id: int,
    variation_id: int,
    location_id: int,
    quantity: int,
    unit_cost_cents: int | None = None,
) -> StockMovement:
    """
    Post opening stock for one variation at one location.

    Returns:
        StockMovement: the ledger entry written

    Raises:
        PermissionDeniedError, LocationAccessError, OpeningStockLockedError,
        OpeningStockError
    """
    def _op():
        check_permission(user.id, Perm.PRODUCT_OPENING_STOCK)
        require_location_in_business(location_id, user.business_id)
        require_location_access(user, location_id)
        variation = _load_variation(user.business_id, product_id, variation_id)

        if quantity <= 0:
            raise OpeningStockError("Opening stock quantity must be positive")
        if unit_cost_cents is not None and unit_cost_cents < 0:
            raise OpeningStockError("Unit cost must not be negative")

        details = get_or_create_location_details(variation_id, location_id)
        if details.opening_stock_locked and not can_modify_locked(user.id):
            raise OpeningStockLockedError(
                "Opening stock is locked for this product at this location. "
                "A user with unlock permission must unlock it first."
            )

        has_ledger = db.session.query(StockTransaction.id).filter_by(
            variation_id=variation_id,
            location_id=location_id,
        ).first()
        if has_ledger:
            raise OpeningStockError(
                "Stock movements already exist for this product at this location. "
                "Use an inventory correction instead."
            )

        cost = unit_cost_cents if unit_cost_cents is not None else variation.cost_cents
        movement = add_stock(
            business_id=user.business_id,
            variation_id=variation_id,
            location_id=location_id,
            quantity=quantity,
            transaction_type="opening_stock",
            user_id=user.id,
            reference_type="opening_stock",
            reference_id=details.id,
            unit_cost_cents=cost,
            notes="Opening stock",
        )

        details.opening_stock_locked = True
        details.opening_stock_set_at = utcnow()
        details.opening_stock_set_by = user.id

        append_audit_log(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            action="opening_stock_set",
            entity_type="variation_location_details",
            entity_id=details.id,
            description=f"Opening stock {quantity} for {variation.product.name} ({variation.name})",
            metadata={"product_id": product_id, "variation_id": variation_id, "quantity": quantity, "unit_cost_cents": cost},
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def unlock_opening_stock(user: User, variation_id: int, location_id: int, reason: str | None) -> dict:
    """Clear the opening stock lock; requires product.unlock_opening_stock and a reason."""
    def _op():
        check_permission(user.id, Perm.PRODUCT_UNLOCK_OPENING_STOCK)
        require_location_in_business(location_id, user.business_id)
        if not reason or not reason.strip():
            raise OpeningStockError("A reason is required to unlock opening stock")

        variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
        if not variation or variation.product.business_id != user.business_id:
            raise TenantAccessError("Product variation not found")

        details = get_or_create_location_details(variation_id, location_id)
        if not details.opening_stock_locked:
            raise OpeningStockError("Opening stock is not locked")

        details.opening_stock_locked = False
        append_audit_log(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            action="opening_stock_unlock",
            entity_type="variation_location_details",
            entity_id=details.id,
            description=f"Opening stock unlocked: {reason.strip()}",
            metadata={"variation_id": variation_id, "reason": reason.strip()},
        )
        db.session.commit()
        return details.to_dict()

    return run_with_retry(_op)


def lock_opening_stock(user: User, variation_id: int, location_id: int) -> dict:
    def _op():
        check_permission(user.id, Perm.PRODUCT_OPENING_STOCK)
        require_location_in_business(location_id, user.business_id)
        variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
        if not variation or variation.product.business_id != user.business_id:
            raise TenantAccessError("Product variation not found")

        details = get_or_create_location_details(variation_id, location_id)
        if details.opening_stock_locked:
            return details.to_dict()

        details.opening_stock_locked = True
        details.opening_stock_set_at = details.opening_stock_set_at or utcnow()
        details.opening_stock_set_by = details.opening_stock_set_by or user.id
        append_audit_log(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            action="opening_stock_lock",
            entity_type="variation_location_details",
            entity_id=details.id,
            description="Opening stock locked",
        )
        db.session.commit()
        return details.to_dict()

    return run_with_retry(_op)
