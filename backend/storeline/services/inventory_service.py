# Overview: Physical count corrections posted through the stock ledger.

from __future__ import annotations

from ..extensions import db
from ..models import InventoryCorrection, ProductVariation, User
from ..permissions import Perm
from ..time_utils import utcnow
from .audit_service import append_audit_log
from .concurrency import lock_for_update, run_with_retry
from .permission_service import check_permission
from .sod_service import validate_correction_approval
from .stock_service import get_current_stock, update_stock
from .tenant_service import (
    TenantAccessError,
    require_in_business,
    require_location_access,
    require_location_in_business,
)


class CorrectionError(Exception):
    """Raised when an inventory correction is invalid."""
    pass


def create_correction(
    user: User,
    variation_id: int,
    location_id: int,
    physical_count: int,
    reason: str,
) -> InventoryCorrection:
    """
    Record a physical count against the current system balance.

    Nothing is posted until approve_correction.
    """
    def _op():
        check_permission(user.id, Perm.INVENTORY_CORRECTION_CREATE)
        require_location_in_business(location_id, user.business_id)
        require_location_access(user, location_id)

        variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
        if not variation or variation.product.business_id != user.business_id:
            raise TenantAccessError("Product variation not found")
        if physical_count < 0:
            raise CorrectionError("Physical count must not be negative")
        if not reason or not reason.strip():
            raise CorrectionError("Reason is required")

        system_count = get_current_stock(variation_id, location_id)
        correction = InventoryCorrection(
            business_id=user.business_id,
            location_id=location_id,
            product_id=variation.product_id,
            variation_id=variation_id,
            system_count=system_count,
            physical_count=physical_count,
            difference=physical_count - system_count,
            reason=reason.strip(),
            status="pending",
            created_by=user.id,
        )
        db.session.add(correction)
        db.session.flush()

        append_audit_log(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            action="inventory_correction_create",
            entity_type="inventory_correction",
            entity_id=correction.id,
            description=f"Count {physical_count} vs system {system_count}",
        )
        db.session.commit()
        return correction

    return run_with_retry(_op)


def approve_correction(user: User, correction_id: int) -> InventoryCorrection:
    """
    Post a pending correction.

    The posted quantity is physical - current, taken at approval time, so
    movements between count and approval are not double counted. The resulting
    balance is the physical count.
    """
    def _op():
        check_permission(user.id, Perm.INVENTORY_CORRECTION_APPROVE)
        correction = require_in_business(InventoryCorrection, correction_id, user.business_id)
        correction = lock_for_update(
            db.session.query(InventoryCorrection).filter_by(id=correction.id)
        ).first()

        if correction.status != "pending":
            raise CorrectionError(f"Correction is already {correction.status}")
        validate_correction_approval(correction, user).raise_if_denied()

        current = get_current_stock(correction.variation_id, correction.location_id)
        delta = correction.physical_count - current
        if delta != 0:
            movement = update_stock(
                business_id=correction.business_id,
                variation_id=correction.variation_id,
                location_id=correction.location_id,
                quantity=delta,
                transaction_type="correction",
                user_id=user.id,
                reference_type="inventory_correction",
                reference_id=correction.id,
                notes=correction.reason,
            )
            correction.stock_transaction_id = movement.transaction.id

        correction.system_count = current
        correction.difference = delta
        correction.status = "approved"
        correction.approved_by = user.id
        correction.approved_at = utcnow()

        append_audit_log(
            business_id=correction.business_id,
            location_id=correction.location_id,
            user_id=user.id,
            action="inventory_correction_approve",
            entity_type="inventory_correction",
            entity_id=correction.id,
            description=f"Correction approved, posted {delta:+d}",
            metadata={"difference": delta, "physical_count": correction.physical_count},
        )
        db.session.commit()
        return correction

    return run_with_retry(_op)


def list_corrections(business_id: int, status: str | None = None, location_id: int | None = None) -> list[InventoryCorrection]:
    query = db.session.query(InventoryCorrection).filter_by(business_id=business_id)
    if status:
        query = query.filter_by(status=status)
    if location_id is not None:
        query = query.filter_by(location_id=location_id)
    return query.order_by(InventoryCorrection.id.desc()).all()
