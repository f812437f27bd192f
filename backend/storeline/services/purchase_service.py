# Overview: Purchase orders and goods receipts (GRN).

"""
Purchase Order and Goods Receipt Service

LIFECYCLE (Purchase):
- draft -> approved -> partially_received -> received
- draft/approved -> cancelled (only while nothing has been received)

LIFECYCLE (PurchaseReceipt / GRN):
- pending: quantities recorded, no stock effect
- approved: stock posted as `purchase` ledger entries at the PO location,
  received quantities rolled up to the PO lines

Approvals are subject to separation of duties: the PO creator cannot approve
the PO and the GRN creator cannot approve the GRN, unless relaxed in
SODSettings or the approver holds an exempt role.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Purchase, PurchaseItem, PurchaseReceipt, PurchaseReceiptItem, ProductVariation, Supplier, User
from ..permissions import Perm
from ..time_utils import utcnow
from .audit_service import append_audit_log
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .permission_service import check_permission
from .sod_service import validate_purchase_sod
from .stock_service import add_stock
from .tenant_service import TenantAccessError, require_in_business, require_location_access, require_location_in_business


class PurchaseError(Exception):
    """Raised when purchase or receipt operations fail."""
    pass


RECEIVABLE_STATUSES = ("approved", "partially_received")


def create_supplier(user: User, name: str, contact_name: str | None = None,
                    phone: str | None = None, email: str | None = None) -> Supplier:
    check_permission(user.id, Perm.PURCHASE_CREATE)
    if not name or not name.strip():
        raise PurchaseError("Supplier name is required")

    supplier = Supplier(
        business_id=user.business_id,
        name=name.strip(),
        contact_name=contact_name,
        phone=phone,
        email=email,
    )
    db.session.add(supplier)
    db.session.flush()
    append_audit_log(
        business_id=user.business_id,
        user_id=user.id,
        action="supplier_create",
        entity_type="supplier",
        entity_id=supplier.id,
        description=f"Supplier {supplier.name} created",
    )
    db.session.commit()
    return supplier


def list_suppliers(business_id: int) -> list[Supplier]:
    return db.session.query(Supplier).filter_by(business_id=business_id, is_active=True).order_by(Supplier.name).all()


def create_purchase(
    user: User,
    supplier_id: int,
    location_id: int,
    items: list[dict],
    notes: str | None = None,
) -> Purchase:
    """
    Create a draft purchase order.

    Args:
        items: [{"variation_id": int, "quantity": int, "unit_cost_cents": int}, ...]
    """
    def _op():
        check_permission(user.id, Perm.PURCHASE_CREATE)
        require_in_business(Supplier, supplier_id, user.business_id)
        require_location_in_business(location_id, user.business_id)
        require_location_access(user, location_id)
        if not items:
            raise PurchaseError("A purchase order needs at least one item")

        purchase = Purchase(
            business_id=user.business_id,
            location_id=location_id,
            supplier_id=supplier_id,
            purchase_number=next_document_number(business_id=user.business_id, document_type="purchase"),
            status="draft",
            notes=notes,
            created_by=user.id,
        )
        db.session.add(purchase)
        db.session.flush()

        total = 0
        for item in items:
            variation_id = int(item["variation_id"])
            quantity = int(item["quantity"])
            unit_cost = int(item["unit_cost_cents"])
            if quantity <= 0:
                raise PurchaseError("Item quantities must be positive")
            if unit_cost < 0:
                raise PurchaseError("Unit cost must not be negative")

            variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
            if not variation or variation.product.business_id != user.business_id:
                raise PurchaseError(f"Product variation {variation_id} not found")

            db.session.add(PurchaseItem(
                purchase_id=purchase.id,
                product_id=variation.product_id,
                variation_id=variation_id,
                quantity=quantity,
                unit_cost_cents=unit_cost,
            ))
            total += quantity * unit_cost

        purchase.total_cents = total
        db.session.flush()

        append_audit_log(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            action="purchase_create",
            entity_type="purchase",
            entity_id=purchase.id,
            description=f"{purchase.purchase_number} created",
            metadata={"supplier_id": supplier_id, "total_cents": total},
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def _load_purchase(user: User, purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if not purchase or purchase.business_id != user.business_id:
        raise TenantAccessError("Purchase not found")
    return purchase


def approve_purchase(user: User, purchase_id: int) -> Purchase:
    def _op():
        check_permission(user.id, Perm.PURCHASE_APPROVE)
        purchase = _load_purchase(user, purchase_id)
        if purchase.status != "draft":
            raise PurchaseError(f"Cannot approve a purchase in {purchase.status} status")
        validate_purchase_sod(purchase, user, "approve_po").raise_if_denied()

        purchase.status = "approved"
        purchase.approved_by = user.id
        purchase.approved_at = utcnow()

        append_audit_log(
            business_id=purchase.business_id,
            location_id=purchase.location_id,
            user_id=user.id,
            action="purchase_approve",
            entity_type="purchase",
            entity_id=purchase.id,
            description=f"{purchase.purchase_number} approved",
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def cancel_purchase(user: User, purchase_id: int, reason: str | None = None) -> Purchase:
    def _op():
        check_permission(user.id, Perm.PURCHASE_APPROVE)
        purchase = _load_purchase(user, purchase_id)
        if purchase.status not in ("draft", "approved"):
            raise PurchaseError(f"Cannot cancel a purchase in {purchase.status} status")
        if any(i.quantity_received for i in purchase.items):
            raise PurchaseError("Cannot cancel a purchase that has received items")
        if any(r.status == "pending" for r in purchase.receipts):
            raise PurchaseError("Cannot cancel a purchase with pending goods receipts")

        purchase.status = "cancelled"
        append_audit_log(
            business_id=purchase.business_id,
            location_id=purchase.location_id,
            user_id=user.id,
            action="purchase_cancel",
            entity_type="purchase",
            entity_id=purchase.id,
            description=f"{purchase.purchase_number} cancelled",
            metadata={"reason": reason},
        )
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def _pending_quantities(purchase: Purchase) -> dict[int, int]:
    """Quantities on pending receipts, per purchase item."""
    pending: dict[int, int] = {}
    for receipt in purchase.receipts:
        if receipt.status != "pending":
            continue
        for line in receipt.items:
            pending[line.purchase_item_id] = pending.get(line.purchase_item_id, 0) + line.quantity_received
    return pending


def create_receipt(user: User, purchase_id: int, items: list[dict], notes: str | None = None) -> PurchaseReceipt:
    """
    Record a pending goods receipt against an approved PO.

    Args:
        items: [{"purchase_item_id": int, "quantity_received": int}, ...]

    Quantities may not exceed what is still outstanding, counting other
    pending receipts for the same PO.
    """
    def _op():
        check_permission(user.id, Perm.PURCHASE_RECEIPT_CREATE)
        purchase = _load_purchase(user, purchase_id)
        if purchase.status not in RECEIVABLE_STATUSES:
            raise PurchaseError(f"Cannot receive against a purchase in {purchase.status} status")
        require_location_access(user, purchase.location_id)
        if not items:
            raise PurchaseError("A goods receipt needs at least one item")

        lines = {line.id: line for line in purchase.items}
        pending = _pending_quantities(purchase)

        receipt = PurchaseReceipt(
            business_id=purchase.business_id,
            purchase_id=purchase.id,
            location_id=purchase.location_id,
            receipt_number=next_document_number(business_id=purchase.business_id, document_type="receipt"),
            status="pending",
            notes=notes,
            created_by=user.id,
        )
        db.session.add(receipt)
        db.session.flush()

        for item in items:
            purchase_item_id = int(item["purchase_item_id"])
            quantity = int(item["quantity_received"])
            line = lines.get(purchase_item_id)
            if line is None:
                raise PurchaseError(f"Purchase item {purchase_item_id} is not on this purchase")
            if quantity <= 0:
                raise PurchaseError("Received quantities must be positive")

            outstanding = line.quantity_outstanding - pending.get(purchase_item_id, 0)
            if quantity > outstanding:
                raise PurchaseError(
                    f"Cannot receive {quantity} of purchase item {purchase_item_id}; outstanding: {outstanding}"
                )
            pending[purchase_item_id] = pending.get(purchase_item_id, 0) + quantity

            db.session.add(PurchaseReceiptItem(
                receipt_id=receipt.id,
                purchase_item_id=purchase_item_id,
                quantity_received=quantity,
            ))
        db.session.flush()

        append_audit_log(
            business_id=purchase.business_id,
            location_id=purchase.location_id,
            user_id=user.id,
            action="purchase_receipt_create",
            entity_type="purchase_receipt",
            entity_id=receipt.id,
            description=f"{receipt.receipt_number} recorded for {purchase.purchase_number}",
        )
        db.session.commit()
        return receipt

    return run_with_retry(_op)


def approve_receipt(user: User, receipt_id: int) -> PurchaseReceipt:
    """Post a pending GRN to stock and roll received quantities up to the PO."""
    def _op():
        check_permission(user.id, Perm.PURCHASE_RECEIPT_APPROVE)
        receipt = lock_for_update(db.session.query(PurchaseReceipt).filter_by(id=receipt_id)).first()
        if not receipt or receipt.business_id != user.business_id:
            raise TenantAccessError("Goods receipt not found")
        if receipt.status != "pending":
            raise PurchaseError(f"Goods receipt is already {receipt.status}")
        validate_purchase_sod(receipt, user, "approve_grn").raise_if_denied()

        purchase = _load_purchase(user, receipt.purchase_id)
        if purchase.status not in RECEIVABLE_STATUSES:
            raise PurchaseError(f"Cannot receive against a purchase in {purchase.status} status")

        for line in receipt.items:
            purchase_item = line.purchase_item
            if line.quantity_received > purchase_item.quantity_outstanding:
                raise PurchaseError(f"Receipt exceeds outstanding quantity for purchase item {purchase_item.id}")

            add_stock(
                business_id=receipt.business_id,
                variation_id=purchase_item.variation_id,
                location_id=receipt.location_id,
                quantity=line.quantity_received,
                transaction_type="purchase",
                user_id=user.id,
                reference_type="purchase_receipt",
                reference_id=receipt.id,
                reference_number=receipt.receipt_number,
                unit_cost_cents=purchase_item.unit_cost_cents,
                notes=f"{receipt.receipt_number} for {purchase.purchase_number}",
            )
            purchase_item.quantity_received += line.quantity_received

        if all(i.quantity_outstanding == 0 for i in purchase.items):
            purchase.status = "received"
        else:
            purchase.status = "partially_received"

        receipt.status = "approved"
        receipt.approved_by = user.id
        receipt.approved_at = utcnow()

        append_audit_log(
            business_id=receipt.business_id,
            location_id=receipt.location_id,
            user_id=user.id,
            action="purchase_receipt_approve",
            entity_type="purchase_receipt",
            entity_id=receipt.id,
            description=f"{receipt.receipt_number} approved; {purchase.purchase_number} now {purchase.status}",
        )
        db.session.commit()
        return receipt

    return run_with_retry(_op)


def get_purchase(user: User, purchase_id: int) -> Purchase:
    return require_in_business(Purchase, purchase_id, user.business_id)


def list_purchases(business_id: int, status: str | None = None, location_id: int | None = None) -> list[Purchase]:
    query = db.session.query(Purchase).filter_by(business_id=business_id)
    if status:
        query = query.filter_by(status=status)
    if location_id is not None:
        query = query.filter_by(location_id=location_id)
    return query.order_by(Purchase.id.desc()).all()
