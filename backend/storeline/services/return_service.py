# Overview: Customer returns against completed sales and stock returned to suppliers.

"""
Return Service

CUSTOMER RETURNS:
One step, authorised by a manager's password (same check as a void):
- the sale must be completed and fully paid; quantities per sale line are
  limited to what was sold less earlier returns
- the refund is the returned units' share of the sale total, so discounts
  and the senior/PWD VAT exemption are refunded pro rata; the return that
  takes back the last unit refunds whatever of the total is left
- the refund comes out of the processing cashier's open shift at the sale's
  location; a cash refund cannot exceed the cash in the drawer
- resellable units are restocked as customer_return ledger entries, damaged
  units are refunded without restocking

SUPPLIER RETURNS:
- pending: recorded with the stock still on hand, no ledger effect
- approved: stock deducted as supplier_return ledger entries; the approver
  must differ from the creator under the purchase SOD settings
- cancelled: only while pending
Linked to a purchase order, quantities are limited to what that PO
delivered less other returns against it.
"""

from __future__ import annotations

from ..extensions import db
from ..models import (
    CashierShift,
    CustomerReturn,
    CustomerReturnItem,
    ProductVariation,
    Purchase,
    RETURN_CONDITIONS,
    Sale,
    SUPPLIER_RETURN_CONDITIONS,
    Supplier,
    SupplierReturn,
    SupplierReturnItem,
    User,
)
from ..permissions import Perm
from ..time_utils import utcnow
from .audit_service import append_audit_log
from .auth_service import verify_manager_password
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .permission_service import check_permission
from .sales_service import TENDER_METHODS
from .shift_service import compute_system_cash, get_current_shift, record_refund
from .sod_service import validate_purchase_sod
from .stock_service import add_stock, batch_check_stock_availability, deduct_stock
from .tenant_service import (
    TenantAccessError,
    require_in_business,
    require_location_access,
    require_location_in_business,
)


class ReturnError(Exception):
    """Raised when customer or supplier return operations fail."""
    pass


RETURNABLE_PURCHASE_STATUSES = ("partially_received", "received")


# =============================================================================
# Customer returns
# =============================================================================

def _returned_quantities(sale: Sale) -> dict[int, int]:
    """Units already taken back, per sale item."""
    returned: dict[int, int] = {}
    for existing in sale.returns:
        if existing.status != "completed":
            continue
        for line in existing.items:
            returned[line.sale_item_id] = returned.get(line.sale_item_id, 0) + line.quantity
    return returned


def _line_refund(sale: Sale, line_total_cents: int, sold: int, quantity: int) -> int:
    if not sale.subtotal_cents:
        return 0
    return (line_total_cents * quantity * sale.total_cents) // (sold * sale.subtotal_cents)


def create_customer_return(
    user: User,
    sale_id: int,
    items: list[dict],
    reason: str,
    manager_password: str | None,
    refund_method: str = "cash",
) -> CustomerReturn:
    """
    Take items back from a completed sale and refund the customer.

    Args:
        items: [{"sale_item_id": int, "quantity": int, "condition": "resellable"|"damaged" (optional)}]

    Raises:
        ReturnError: sale not returnable, quantities exceed what is left, no open shift, short drawer
        ManagerApprovalError: manager password missing or wrong
    """
    def _op():
        check_permission(user.id, Perm.SELL_RETURN)
        if not reason or not reason.strip():
            raise ReturnError("Return reason is required")
        if refund_method not in TENDER_METHODS:
            raise ReturnError(f"Refund method must be one of {', '.join(TENDER_METHODS)}")
        if not items:
            raise ReturnError("A return needs at least one item")

        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale or sale.business_id != user.business_id:
            raise TenantAccessError("Sale not found")
        if sale.status != "completed":
            raise ReturnError(f"Only completed sales can be returned; {sale.invoice_number} is {sale.status}")
        if sale.balance_due_cents > 0:
            raise ReturnError("Settle the credit balance before returning items")
        require_location_access(user, sale.location_id)

        current = get_current_shift(user)
        shift = None
        if current:
            shift = lock_for_update(db.session.query(CashierShift).filter_by(id=current.id)).first()
        if not shift or shift.status != "open" or shift.location_id != sale.location_id:
            raise ReturnError("Refunds are paid from an open shift at the sale's location")

        manager = verify_manager_password(sale.business_id, manager_password)

        sale_items = {i.id: i for i in sale.items}
        returned = _returned_quantities(sale)
        requested: dict[int, int] = {}
        lines = []
        for item in items:
            sale_item_id = int(item["sale_item_id"])
            quantity = int(item["quantity"])
            condition = item.get("condition") or "resellable"
            sale_item = sale_items.get(sale_item_id)
            if sale_item is None:
                raise ReturnError(f"Sale item {sale_item_id} is not on {sale.invoice_number}")
            if quantity <= 0:
                raise ReturnError("Return quantities must be positive")
            if condition not in RETURN_CONDITIONS:
                raise ReturnError(f"condition must be one of {', '.join(RETURN_CONDITIONS)}")

            requested[sale_item_id] = requested.get(sale_item_id, 0) + quantity
            already = returned.get(sale_item_id, 0)
            if requested[sale_item_id] > sale_item.quantity - already:
                raise ReturnError(
                    f"Cannot return {requested[sale_item_id]} of sale item {sale_item_id}. "
                    f"Sold: {sale_item.quantity}, already returned: {already}, "
                    f"available: {sale_item.quantity - already}"
                )
            lines.append((sale_item, CustomerReturnItem(
                sale_item_id=sale_item.id,
                product_id=sale_item.product_id,
                variation_id=sale_item.variation_id,
                quantity=quantity,
                condition=condition,
                unit_price_cents=sale_item.unit_price_cents,
                refund_cents=_line_refund(sale, sale_item.line_total_cents, sale_item.quantity, quantity),
            )))

        fully_returned = all(
            returned.get(i.id, 0) + requested.get(i.id, 0) == i.quantity for i in sale.items
        )
        if fully_returned:
            refunded_before = sum(r.refund_cents for r in sale.returns if r.status == "completed")
            remainder = sale.total_cents - refunded_before - sum(line.refund_cents for _, line in lines)
            lines[-1][1].refund_cents += remainder

        refund = sum(line.refund_cents for _, line in lines)
        if refund_method == "cash" and refund > compute_system_cash(shift):
            raise ReturnError(f"Not enough cash in the drawer for a refund of {refund}")

        customer_return = CustomerReturn(
            business_id=sale.business_id,
            location_id=sale.location_id,
            sale=sale,
            shift_id=shift.id,
            return_number=next_document_number(business_id=sale.business_id, document_type="customer_return"),
            status="completed",
            reason=reason.strip(),
            refund_method=refund_method,
            refund_cents=refund,
            created_by=user.id,
            approved_by=manager.id,
        )
        db.session.add(customer_return)
        for _, line in lines:
            customer_return.items.append(line)
        db.session.flush()

        restock: dict[int, int] = {}
        costs: dict[int, int] = {}
        for sale_item, line in lines:
            if line.condition != "resellable":
                continue
            restock[line.variation_id] = restock.get(line.variation_id, 0) + line.quantity
            costs[line.variation_id] = sale_item.unit_cost_cents
        for variation_id, quantity in restock.items():
            add_stock(
                business_id=sale.business_id,
                variation_id=variation_id,
                location_id=sale.location_id,
                quantity=quantity,
                transaction_type="customer_return",
                user_id=user.id,
                reference_type="customer_return",
                reference_id=customer_return.id,
                reference_number=customer_return.return_number,
                unit_cost_cents=costs[variation_id],
                notes=f"Return {customer_return.return_number} of {sale.invoice_number}",
            )

        record_refund(shift, refund)

        append_audit_log(
            business_id=sale.business_id,
            location_id=sale.location_id,
            user_id=user.id,
            action="customer_return",
            entity_type="sale",
            entity_id=sale.id,
            description=f"{customer_return.return_number} refunded {refund} ({refund_method}) on {sale.invoice_number}",
            metadata={
                "return_id": customer_return.id,
                "approved_by": manager.id,
                "shift_id": shift.id,
                "restocked": sum(restock.values()),
            },
        )
        db.session.commit()
        return customer_return

    return run_with_retry(_op)


def get_customer_return(user: User, return_id: int) -> CustomerReturn:
    return require_in_business(CustomerReturn, return_id, user.business_id)


def list_customer_returns(
    user: User,
    sale_id: int | None = None,
    shift_id: int | None = None,
    location_id: int | None = None,
) -> list[CustomerReturn]:
    query = db.session.query(CustomerReturn).filter_by(business_id=user.business_id)
    if sale_id is not None:
        query = query.filter_by(sale_id=sale_id)
    if shift_id is not None:
        query = query.filter_by(shift_id=shift_id)
    if location_id is not None:
        query = query.filter_by(location_id=location_id)
    return query.order_by(CustomerReturn.id.desc()).all()


# =============================================================================
# Supplier returns
# =============================================================================

def _purchase_returnable(purchase: Purchase, exclude_id: int | None = None) -> dict[int, int]:
    """Delivered quantity per variation on the PO, less pending/approved returns against it."""
    delivered: dict[int, int] = {}
    for line in purchase.items:
        delivered[line.variation_id] = delivered.get(line.variation_id, 0) + line.quantity_received
    for existing in purchase.supplier_returns:
        if existing.status == "cancelled" or existing.id == exclude_id:
            continue
        for line in existing.items:
            delivered[line.variation_id] = delivered.get(line.variation_id, 0) - line.quantity
    return delivered


def create_supplier_return(
    user: User,
    supplier_id: int,
    location_id: int,
    items: list[dict],
    return_reason: str,
    purchase_id: int | None = None,
    notes: str | None = None,
) -> SupplierReturn:
    """
    Record a pending return of stock to a supplier.

    Args:
        items: [{"variation_id": int, "quantity": int, "condition": "damaged"|"defective"|"warranty_claim",
                 "unit_cost_cents": int (optional with purchase_id), "notes": str (optional)}]
    """
    def _op():
        check_permission(user.id, Perm.PURCHASE_RETURN_CREATE)
        supplier = require_in_business(Supplier, supplier_id, user.business_id)
        require_location_in_business(location_id, user.business_id)
        require_location_access(user, location_id)
        if not return_reason or not return_reason.strip():
            raise ReturnError("Return reason is required")
        if not items:
            raise ReturnError("A supplier return needs at least one item")

        purchase = None
        po_costs: dict[int, int] = {}
        if purchase_id is not None:
            purchase = require_in_business(Purchase, purchase_id, user.business_id)
            if purchase.supplier_id != supplier.id:
                raise ReturnError(f"{purchase.purchase_number} was not ordered from {supplier.name}")
            if purchase.location_id != location_id:
                raise ReturnError(f"{purchase.purchase_number} was delivered to a different location")
            if purchase.status not in RETURNABLE_PURCHASE_STATUSES:
                raise ReturnError(f"Nothing has been received on {purchase.purchase_number}")
            po_costs = {line.variation_id: line.unit_cost_cents for line in purchase.items}

        lines = []
        for item in items:
            variation_id = int(item["variation_id"])
            quantity = int(item["quantity"])
            condition = item.get("condition")
            if quantity <= 0:
                raise ReturnError("Return quantities must be positive")
            if condition not in SUPPLIER_RETURN_CONDITIONS:
                raise ReturnError(f"condition must be one of {', '.join(SUPPLIER_RETURN_CONDITIONS)}")
            variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
            if not variation or variation.product.business_id != user.business_id:
                raise ReturnError(f"Product variation {variation_id} not found")
            if purchase is not None and variation_id not in po_costs:
                raise ReturnError(f"Variation {variation_id} is not on {purchase.purchase_number}")

            if "unit_cost_cents" in item:
                unit_cost = int(item["unit_cost_cents"])
            elif purchase is not None:
                unit_cost = po_costs[variation_id]
            else:
                raise ReturnError("unit_cost_cents is required without a purchase order")
            if unit_cost < 0:
                raise ReturnError("Unit cost must not be negative")

            lines.append(SupplierReturnItem(
                product_id=variation.product_id,
                variation_id=variation_id,
                quantity=quantity,
                unit_cost_cents=unit_cost,
                condition=condition,
                notes=item.get("notes"),
            ))

        if purchase is not None:
            returnable = _purchase_returnable(purchase)
            requested: dict[int, int] = {}
            for line in lines:
                requested[line.variation_id] = requested.get(line.variation_id, 0) + line.quantity
            for variation_id, quantity in requested.items():
                if quantity > returnable.get(variation_id, 0):
                    raise ReturnError(
                        f"Cannot return {quantity} of variation {variation_id} against "
                        f"{purchase.purchase_number}; returnable: {max(returnable.get(variation_id, 0), 0)}"
                    )

        shortages = [
            r for r in batch_check_stock_availability(
                [{"variation_id": l.variation_id, "quantity": l.quantity} for l in lines],
                location_id,
            )
            if not r["available"]
        ]
        if shortages:
            r = shortages[0]
            raise ReturnError(
                f"Insufficient stock for variation {r['variation_id']}. "
                f"Current: {r['current_stock']}, Requested: {r['requested']}, Shortage: {r['shortage']}"
            )

        supplier_return = SupplierReturn(
            business_id=user.business_id,
            location_id=location_id,
            supplier_id=supplier.id,
            purchase=purchase,
            return_number=next_document_number(business_id=user.business_id, document_type="supplier_return"),
            status="pending",
            return_reason=return_reason.strip(),
            total_cents=sum(l.quantity * l.unit_cost_cents for l in lines),
            notes=notes,
            created_by=user.id,
        )
        db.session.add(supplier_return)
        for line in lines:
            supplier_return.items.append(line)
        db.session.flush()

        append_audit_log(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            action="supplier_return_create",
            entity_type="supplier_return",
            entity_id=supplier_return.id,
            description=f"{supplier_return.return_number} created for {supplier.name}",
            metadata={
                "supplier_id": supplier.id,
                "purchase_id": supplier_return.purchase_id,
                "total_cents": supplier_return.total_cents,
            },
        )
        db.session.commit()
        return supplier_return

    return run_with_retry(_op)


def _load_supplier_return(user: User, return_id: int) -> SupplierReturn:
    supplier_return = lock_for_update(db.session.query(SupplierReturn).filter_by(id=return_id)).first()
    if not supplier_return or supplier_return.business_id != user.business_id:
        raise TenantAccessError("Supplier return not found")
    return supplier_return


def approve_supplier_return(user: User, return_id: int) -> SupplierReturn:
    """Deduct the returned stock; the balance is re-checked at approval."""
    def _op():
        check_permission(user.id, Perm.PURCHASE_RETURN_APPROVE)
        supplier_return = _load_supplier_return(user, return_id)
        if supplier_return.status != "pending":
            raise ReturnError(f"Supplier return is already {supplier_return.status}")
        require_location_access(user, supplier_return.location_id)
        validate_purchase_sod(supplier_return, user, "approve_supplier_return").raise_if_denied()

        if supplier_return.purchase_id is not None:
            returnable = _purchase_returnable(supplier_return.purchase, exclude_id=supplier_return.id)
            for line in supplier_return.items:
                if line.quantity > returnable.get(line.variation_id, 0):
                    raise ReturnError(
                        f"Variation {line.variation_id} exceeds what "
                        f"{supplier_return.purchase.purchase_number} delivered"
                    )

        for line in supplier_return.items:
            deduct_stock(
                business_id=supplier_return.business_id,
                variation_id=line.variation_id,
                location_id=supplier_return.location_id,
                quantity=line.quantity,
                transaction_type="supplier_return",
                user_id=user.id,
                reference_type="supplier_return",
                reference_id=supplier_return.id,
                reference_number=supplier_return.return_number,
                unit_cost_cents=line.unit_cost_cents,
                notes=f"{supplier_return.return_number} to {supplier_return.supplier.name} ({line.condition})",
            )

        supplier_return.status = "approved"
        supplier_return.approved_by = user.id
        supplier_return.approved_at = utcnow()

        append_audit_log(
            business_id=supplier_return.business_id,
            location_id=supplier_return.location_id,
            user_id=user.id,
            action="supplier_return_approve",
            entity_type="supplier_return",
            entity_id=supplier_return.id,
            description=f"{supplier_return.return_number} approved; stock deducted",
            metadata={"total_cents": supplier_return.total_cents},
        )
        db.session.commit()
        return supplier_return

    return run_with_retry(_op)


def cancel_supplier_return(user: User, return_id: int, reason: str) -> SupplierReturn:
    def _op():
        check_permission(user.id, Perm.PURCHASE_RETURN_APPROVE)
        if not reason or not reason.strip():
            raise ReturnError("Cancellation reason is required")
        supplier_return = _load_supplier_return(user, return_id)
        if supplier_return.status != "pending":
            raise ReturnError(f"Only pending supplier returns can be cancelled; this one is {supplier_return.status}")

        supplier_return.status = "cancelled"
        supplier_return.cancelled_by = user.id
        supplier_return.cancelled_at = utcnow()
        supplier_return.cancel_reason = reason.strip()

        append_audit_log(
            business_id=supplier_return.business_id,
            location_id=supplier_return.location_id,
            user_id=user.id,
            action="supplier_return_cancel",
            entity_type="supplier_return",
            entity_id=supplier_return.id,
            description=f"{supplier_return.return_number} cancelled",
            metadata={"reason": reason.strip()},
        )
        db.session.commit()
        return supplier_return

    return run_with_retry(_op)


def get_supplier_return(user: User, return_id: int) -> SupplierReturn:
    return require_in_business(SupplierReturn, return_id, user.business_id)


def list_supplier_returns(
    user: User,
    status: str | None = None,
    supplier_id: int | None = None,
) -> list[SupplierReturn]:
    query = db.session.query(SupplierReturn).filter_by(business_id=user.business_id)
    if status:
        query = query.filter_by(status=status)
    if supplier_id is not None:
        query = query.filter_by(supplier_id=supplier_id)
    return query.order_by(SupplierReturn.id.desc()).all()
