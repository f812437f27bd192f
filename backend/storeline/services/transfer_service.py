# Overview: Inter-location stock transfer workflow with separation of duties.

"""
Stock Transfer Service

WHY: Move stock between branches with a multi-party workflow so no single
user can ship and receive goods alone.

LIFECYCLE:
1. draft: created at the origin, editable
2. pending_check: submitted for checking
3. checked: an origin checker approved the pick list
4. in_transit: sent; source stock deducted (transfer_out)
5. arrived: destination acknowledged arrival
6. verifying: destination counting items
7. verified: every item counted
8. completed: destination stock added (transfer_in)
cancelled: from any state before completed; deducted stock is restored.

Every transition re-reads the transfer under lock, checks permission,
location access and SOD, writes an audit entry, and commits once.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import ProductVariation, StockTransfer, StockTransferItem, User
from ..permissions import Perm
from ..time_utils import utcnow
from .audit_service import append_audit_log
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .permission_service import check_permission
from .sod_service import validate_transfer_sod
from .stock_service import add_stock, batch_check_stock_availability, deduct_stock
from .tenant_service import (
    TenantAccessError,
    get_user_location_ids,
    has_all_locations_access,
    require_destination_access,
    require_location_in_business,
    require_origin_access,
)


class TransferError(Exception):
    """Raised when transfer operations fail."""
    pass


EDITABLE_STATUSES = ("draft", "pending_check")
UPDATABLE_FIELDS = ("notes", "transfer_date")


def _load_transfer(user: User, transfer_id: int) -> StockTransfer:
    transfer = lock_for_update(db.session.query(StockTransfer).filter_by(id=transfer_id)).first()
    if not transfer or transfer.business_id != user.business_id:
        raise TenantAccessError("Transfer not found")
    return transfer


def _require_status(transfer: StockTransfer, *statuses: str) -> None:
    if transfer.status not in statuses:
        allowed = " or ".join(statuses)
        raise TransferError(f"Transfer is {transfer.status}; this action requires {allowed}")


def _audit(transfer: StockTransfer, user: User, action: str, description: str, metadata: dict | None = None) -> None:
    append_audit_log(
        business_id=transfer.business_id,
        location_id=transfer.from_location_id,
        user_id=user.id,
        action=f"transfer_{action}",
        entity_type="stock_transfer",
        entity_id=transfer.id,
        description=f"{transfer.transfer_number}: {description}",
        metadata=metadata,
    )


def _normalize_items(business_id: int, items: list[dict]) -> list[tuple[ProductVariation, int]]:
    """Validate item lines and merge repeated variations into one line."""
    if not items:
        raise TransferError("A transfer needs at least one item")

    merged: dict[int, int] = {}
    for item in items:
        variation_id = int(item["variation_id"])
        quantity = int(item["quantity"])
        if quantity <= 0:
            raise TransferError("Item quantities must be positive")
        merged[variation_id] = merged.get(variation_id, 0) + quantity

    lines = []
    for variation_id, quantity in merged.items():
        variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
        if not variation or variation.product.business_id != business_id:
            raise TransferError(f"Product variation {variation_id} not found")
        lines.append((variation, quantity))
    return lines


def _check_source_stock(transfer_items: list[dict], from_location_id: int) -> None:
    shortages = [r for r in batch_check_stock_availability(transfer_items, from_location_id) if not r["available"]]
    if shortages:
        detail = ", ".join(
            f"variation {r['variation_id']}: current {r['current_stock']}, requested {r['requested']}"
            for r in shortages
        )
        raise TransferError(f"Insufficient stock at source location ({detail})")


def create_transfer(
    user: User,
    from_location_id: int,
    to_location_id: int,
    items: list[dict],
    notes: str | None = None,
    transfer_date: datetime | None = None,
) -> StockTransfer:
    """
    Create a draft transfer at the origin.

    Args:
        items: [{"variation_id": int, "quantity": int}, ...]

    Raises:
        TransferError: same location, empty or invalid items, short stock
        LocationAccessError: user is not at the origin
    """
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_CREATE)
        if from_location_id == to_location_id:
            raise TransferError("Source and destination locations must be different")
        require_location_in_business(from_location_id, user.business_id)
        require_location_in_business(to_location_id, user.business_id)
        require_origin_access(user, from_location_id)

        lines = _normalize_items(user.business_id, items)
        _check_source_stock(
            [{"variation_id": v.id, "quantity": q} for v, q in lines],
            from_location_id,
        )

        transfer = StockTransfer(
            business_id=user.business_id,
            transfer_number=next_document_number(business_id=user.business_id, document_type="transfer"),
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            status="draft",
            transfer_date=transfer_date or utcnow(),
            notes=notes,
            created_by=user.id,
        )
        db.session.add(transfer)
        db.session.flush()

        for variation, quantity in lines:
            db.session.add(StockTransferItem(
                transfer_id=transfer.id,
                product_id=variation.product_id,
                variation_id=variation.id,
                quantity=quantity,
            ))
        db.session.flush()

        _audit(transfer, user, "create", "created", {"to_location_id": to_location_id, "items": len(lines)})
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def update_transfer(user: User, transfer_id: int, changes: dict) -> StockTransfer:
    """Edit notes / transfer_date while the transfer is still draft or pending_check."""
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_CREATE)
        transfer = _load_transfer(user, transfer_id)
        _require_status(transfer, *EDITABLE_STATUSES)
        require_origin_access(user, transfer.from_location_id)

        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise TransferError(f"Only notes and transfer_date can be changed (got {', '.join(unknown)})")

        if "notes" in changes:
            transfer.notes = changes["notes"]
        if "transfer_date" in changes:
            if not isinstance(changes["transfer_date"], datetime):
                raise TransferError("transfer_date must be a datetime")
            transfer.transfer_date = changes["transfer_date"]

        _audit(transfer, user, "update", "updated", {"fields": sorted(changes)})
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def submit_for_check(user: User, transfer_id: int) -> StockTransfer:
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_CREATE)
        transfer = _load_transfer(user, transfer_id)
        _require_status(transfer, "draft")
        require_origin_access(user, transfer.from_location_id)

        transfer.status = "pending_check"
        transfer.submitted_by = user.id
        transfer.submitted_at = utcnow()

        _audit(transfer, user, "submit", "submitted for checking")
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def check_approve(user: User, transfer_id: int, notes: str | None = None) -> StockTransfer:
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_CHECK)
        transfer = _load_transfer(user, transfer_id)
        _require_status(transfer, "pending_check")
        require_origin_access(user, transfer.from_location_id)
        validate_transfer_sod(transfer, user, "check").raise_if_denied()

        transfer.status = "checked"
        transfer.checked_by = user.id
        transfer.checked_at = utcnow()
        transfer.check_notes = notes

        _audit(transfer, user, "check_approve", "check approved")
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def check_reject(user: User, transfer_id: int, reason: str) -> StockTransfer:
    """Send a transfer back to draft with the checker's reason."""
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_CHECK)
        transfer = _load_transfer(user, transfer_id)
        _require_status(transfer, "pending_check")
        require_origin_access(user, transfer.from_location_id)
        if not reason or not reason.strip():
            raise TransferError("A rejection reason is required")

        transfer.status = "draft"
        transfer.check_notes = reason.strip()
        transfer.checked_by = None
        transfer.checked_at = None

        _audit(transfer, user, "check_reject", "check rejected", {"reason": reason.strip()})
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def send_transfer(user: User, transfer_id: int) -> StockTransfer:
    """Ship a checked transfer; source stock is deducted here."""
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_SEND)
        transfer = _load_transfer(user, transfer_id)
        _require_status(transfer, "checked")
        require_origin_access(user, transfer.from_location_id)
        validate_transfer_sod(transfer, user, "send").raise_if_denied()
        if transfer.stock_deducted:
            raise TransferError("Stock has already been deducted for this transfer")

        _check_source_stock(
            [{"variation_id": i.variation_id, "quantity": i.quantity} for i in transfer.items],
            transfer.from_location_id,
        )
        for item in transfer.items:
            deduct_stock(
                business_id=transfer.business_id,
                variation_id=item.variation_id,
                location_id=transfer.from_location_id,
                quantity=item.quantity,
                transaction_type="transfer_out",
                user_id=user.id,
                reference_type="stock_transfer",
                reference_id=transfer.id,
                reference_number=transfer.transfer_number,
                notes=f"Transfer {transfer.transfer_number} to {transfer.to_location.name}",
            )

        transfer.status = "in_transit"
        transfer.stock_deducted = True
        transfer.sent_by = user.id
        transfer.sent_at = utcnow()

        _audit(transfer, user, "send", "sent")
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def mark_arrived(user: User, transfer_id: int) -> StockTransfer:
    """Destination acknowledges the shipment; the acting user becomes the receiver."""
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_RECEIVE)
        transfer = _load_transfer(user, transfer_id)
        _require_status(transfer, "in_transit")
        require_destination_access(user, transfer.to_location_id, transfer.from_location_id)
        validate_transfer_sod(transfer, user, "receive").raise_if_denied()

        now = utcnow()
        transfer.status = "arrived"
        transfer.arrived_by = user.id
        transfer.arrived_at = now
        transfer.received_by = user.id

        _audit(transfer, user, "arrive", "arrived at destination")
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def start_verification(user: User, transfer_id: int) -> StockTransfer:
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_VERIFY)
        transfer = _load_transfer(user, transfer_id)
        _require_status(transfer, "arrived")
        require_destination_access(user, transfer.to_location_id, transfer.from_location_id)

        transfer.status = "verifying"
        transfer.verifier_id = user.id
        transfer.verification_started_at = utcnow()

        _audit(transfer, user, "start_verification", "verification started")
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def verify_item(
    user: User,
    transfer_id: int,
    item_id: int,
    received_quantity: int,
    notes: str | None = None,
) -> StockTransfer:
    """
    Record the counted quantity of one item.

    A count different from the sent quantity flags has_discrepancy. More
    than was sent cannot be received. Once every item is verified the
    transfer becomes verified.
    """
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_VERIFY)
        transfer = _load_transfer(user, transfer_id)
        _require_status(transfer, "verifying")
        require_destination_access(user, transfer.to_location_id, transfer.from_location_id)

        item = next((i for i in transfer.items if i.id == item_id), None)
        if item is None:
            raise TransferError(f"Item {item_id} is not part of this transfer")
        if received_quantity < 0:
            raise TransferError("Received quantity must not be negative")
        if received_quantity > item.quantity:
            raise TransferError(
                f"Cannot receive more than was sent. Sent: {item.quantity}, Received: {received_quantity}"
            )

        now = utcnow()
        item.received_quantity = received_quantity
        item.has_discrepancy = received_quantity != item.quantity
        item.discrepancy_notes = notes if item.has_discrepancy else None
        item.verified = True
        item.verified_by = user.id
        item.verified_at = now

        if all(i.verified for i in transfer.items):
            transfer.status = "verified"
            transfer.verified_at = now

        _audit(
            transfer, user, "verify_item", f"item {item.id} verified",
            {"item_id": item.id, "sent": item.quantity, "received": received_quantity},
        )
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def complete_transfer(user: User, transfer_id: int) -> StockTransfer:
    """Add the received quantities at the destination and close the transfer."""
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_COMPLETE)
        transfer = _load_transfer(user, transfer_id)
        if transfer.status == "verifying" and not all(i.verified for i in transfer.items):
            raise TransferError("All items must be verified before completing the transfer")
        _require_status(transfer, "verified")
        require_destination_access(user, transfer.to_location_id, transfer.from_location_id)
        validate_transfer_sod(transfer, user, "complete").raise_if_denied()

        for item in transfer.items:
            if item.received_quantity:
                add_stock(
                    business_id=transfer.business_id,
                    variation_id=item.variation_id,
                    location_id=transfer.to_location_id,
                    quantity=item.received_quantity,
                    transaction_type="transfer_in",
                    user_id=user.id,
                    reference_type="stock_transfer",
                    reference_id=transfer.id,
                    reference_number=transfer.transfer_number,
                    notes=f"Transfer {transfer.transfer_number} from {transfer.from_location.name}",
                )

        transfer.status = "completed"
        transfer.completed_by = user.id
        transfer.completed_at = utcnow()

        discrepancies = [i.id for i in transfer.items if i.has_discrepancy]
        _audit(transfer, user, "complete", "completed", {"discrepancy_item_ids": discrepancies})
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def cancel_transfer(user: User, transfer_id: int, reason: str | None = None) -> StockTransfer:
    """Cancel before completion, putting back any stock already deducted."""
    def _op():
        check_permission(user.id, Perm.STOCK_TRANSFER_CANCEL)
        transfer = _load_transfer(user, transfer_id)
        if transfer.status in ("completed", "cancelled"):
            raise TransferError(f"Cannot cancel a {transfer.status} transfer")
        require_origin_access(user, transfer.from_location_id)

        if transfer.stock_deducted:
            for item in transfer.items:
                add_stock(
                    business_id=transfer.business_id,
                    variation_id=item.variation_id,
                    location_id=transfer.from_location_id,
                    quantity=item.quantity,
                    transaction_type="adjustment",
                    user_id=user.id,
                    reference_type="transfer_cancel",
                    reference_id=transfer.id,
                    reference_number=transfer.transfer_number,
                    notes=f"Transfer {transfer.transfer_number} cancelled",
                )
            transfer.stock_deducted = False

        previous_status = transfer.status
        transfer.status = "cancelled"
        transfer.cancelled_by = user.id
        transfer.cancelled_at = utcnow()
        transfer.cancel_reason = reason

        _audit(transfer, user, "cancel", "cancelled", {"previous_status": previous_status, "reason": reason})
        db.session.commit()
        return transfer

    return run_with_retry(_op)


def get_transfer(user: User, transfer_id: int) -> StockTransfer:
    transfer = db.session.query(StockTransfer).filter_by(id=transfer_id).first()
    if not transfer or transfer.business_id != user.business_id:
        raise TenantAccessError("Transfer not found")
    return transfer


def list_transfers(user: User, status: str | None = None, location_id: int | None = None) -> list[StockTransfer]:
    """Transfers touching the user's locations; all of them with access_all_locations."""
    query = db.session.query(StockTransfer).filter_by(business_id=user.business_id)
    if status:
        query = query.filter_by(status=status)
    if location_id is not None:
        query = query.filter(db.or_(
            StockTransfer.from_location_id == location_id,
            StockTransfer.to_location_id == location_id,
        ))
    if not has_all_locations_access(user):
        location_ids = list(get_user_location_ids(user))
        query = query.filter(db.or_(
            StockTransfer.from_location_id.in_(location_ids),
            StockTransfer.to_location_id.in_(location_ids),
        ))
    return query.order_by(StockTransfer.id.desc()).all()


# Route action name -> (function, extra JSON fields it takes)
TRANSFER_ACTIONS = {
    "submit-for-check": (submit_for_check, ()),
    "check-approve": (check_approve, ("notes",)),
    "check-reject": (check_reject, ("reason",)),
    "send": (send_transfer, ()),
    "mark-arrived": (mark_arrived, ()),
    "start-verification": (start_verification, ()),
    "complete": (complete_transfer, ()),
    "cancel": (cancel_transfer, ("reason",)),
}
