# Overview: Point-of-sale transactions, voids and accounts-receivable collections.

"""
Sales Service

WHY: Ring sales against an open cashier shift, keeping stock, payments and
the shift's running totals in one transaction.

VAT:
Prices are VAT-inclusive (VAT_RATE, default 12%).
- regular: vatable = total / (1 + rate), vat = total - vatable
- senior / pwd: VAT-exempt; 20% discount on the VAT-exclusive amount

VOID:
Requires a manager password. The sale row is re-read under lock and its
status checked inside the transaction; VoidTransaction.sale_id is unique,
so a second concurrent void fails at commit even where row locks are not
honoured.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..models import (
    CashierShift,
    DISCOUNT_TYPES,
    PAYMENT_METHODS,
    Payment,
    ProductVariation,
    Sale,
    SaleItem,
    User,
    VoidTransaction,
)
from ..permissions import Perm
from .audit_service import append_audit_log
from .auth_service import verify_manager_password
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .permission_service import check_permission, user_has_permission
from .shift_service import decrement_running_totals, get_current_shift, increment_running_totals
from .stock_service import add_stock, batch_check_stock_availability, deduct_stock
from .tenant_service import TenantAccessError, require_location_access, require_location_in_business


class SaleError(Exception):
    """Raised when sale operations fail."""
    pass


STATUTORY_DISCOUNT_RATE = Decimal("0.20")
TENDER_METHODS = tuple(m for m in PAYMENT_METHODS if m != "credit")


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _vat_rate() -> Decimal:
    return Decimal(str(current_app.config.get("VAT_RATE", 0.12)))


def compute_sale_amounts(subtotal_cents: int, discount_type: str = "regular", discount_cents: int = 0) -> dict:
    """
    Work out discount, VAT split and total for a VAT-inclusive subtotal.

    Example (12% VAT, subtotal 11200):
    - regular: vatable 10000, vat 1200, total 11200
    - senior:  vat_exempt 10000, discount 2000, total 8000
    """
    rate = _vat_rate()
    if discount_type in ("senior", "pwd"):
        vat_exclusive = _round_cents(Decimal(subtotal_cents) / (1 + rate))
        discount = _round_cents(Decimal(vat_exclusive) * STATUTORY_DISCOUNT_RATE)
        total = vat_exclusive - discount
        return {
            "subtotal_cents": subtotal_cents,
            "discount_cents": discount,
            "vatable_sales_cents": 0,
            "vat_cents": 0,
            "vat_exempt_cents": vat_exclusive,
            "total_cents": total,
        }

    if discount_cents < 0 or discount_cents > subtotal_cents:
        raise SaleError("Discount must be between zero and the subtotal")
    total = subtotal_cents - discount_cents
    vatable = _round_cents(Decimal(total) / (1 + rate))
    return {
        "subtotal_cents": subtotal_cents,
        "discount_cents": discount_cents,
        "vatable_sales_cents": vatable,
        "vat_cents": total - vatable,
        "vat_exempt_cents": 0,
        "total_cents": total,
    }


def _variation_totals(lines) -> dict[int, int]:
    """Quantity per variation, so repeated lines move stock once."""
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.variation_id] = totals.get(line.variation_id, 0) + line.quantity
    return totals


def create_sale(
    user: User,
    location_id: int,
    items: list[dict],
    payments: list[dict],
    discount_type: str = "regular",
    discount_cents: int = 0,
    is_credit: bool = False,
    customer_name: str | None = None,
) -> Sale:
    """
    Ring a sale on the user's open shift.

    Args:
        items: [{"variation_id": int, "quantity": int, "unit_price_cents": int (optional)}]
        payments: [{"method": str, "amount_cents": int, "reference": str (optional)}]

    Raises:
        SaleError: no open shift here, bad lines, short stock, underpayment
    """
    def _op():
        check_permission(user.id, Perm.SELL_CREATE)
        require_location_in_business(location_id, user.business_id)
        require_location_access(user, location_id)

        current = get_current_shift(user)
        if not current:
            raise SaleError("No open shift. Open a shift before selling.")
        shift = lock_for_update(db.session.query(CashierShift).filter_by(id=current.id)).first()
        if shift.status != "open":
            raise SaleError("No open shift. Open a shift before selling.")
        if shift.location_id != location_id:
            raise SaleError("Your open shift is at a different location")

        if discount_type not in DISCOUNT_TYPES:
            raise SaleError(f"discount_type must be one of {', '.join(DISCOUNT_TYPES)}")
        if not items:
            raise SaleError("A sale needs at least one item")

        sale_lines = []
        for item in items:
            variation_id = int(item["variation_id"])
            quantity = int(item["quantity"])
            if quantity <= 0:
                raise SaleError("Item quantities must be positive")
            variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
            if not variation or variation.product.business_id != user.business_id:
                raise SaleError(f"Product variation {variation_id} not found")
            unit_price = int(item.get("unit_price_cents", variation.price_cents))
            if unit_price < 0:
                raise SaleError("Unit price must not be negative")
            sale_lines.append(SaleItem(
                product_id=variation.product_id,
                variation_id=variation_id,
                quantity=quantity,
                unit_price_cents=unit_price,
                unit_cost_cents=variation.cost_cents,
                line_total_cents=unit_price * quantity,
            ))

        shortages = [
            r for r in batch_check_stock_availability(
                [{"variation_id": l.variation_id, "quantity": l.quantity} for l in sale_lines],
                location_id,
            )
            if not r["available"]
        ]
        if shortages:
            r = shortages[0]
            raise SaleError(
                f"Insufficient stock for variation {r['variation_id']}. "
                f"Current: {r['current_stock']}, Requested: {r['requested']}, Shortage: {r['shortage']}"
            )

        amounts = compute_sale_amounts(
            sum(l.line_total_cents for l in sale_lines),
            discount_type,
            int(discount_cents or 0),
        )

        tendered = []
        for p in payments or []:
            method = p["method"]
            amount = int(p["amount_cents"])
            if method not in TENDER_METHODS:
                raise SaleError(f"Unknown payment method: {method}")
            if amount <= 0:
                raise SaleError("Payment amounts must be positive")
            tendered.append(Payment(
                shift_id=shift.id,
                method=method,
                amount_cents=amount,
                reference=p.get("reference"),
                created_by=user.id,
            ))

        paid = sum(p.amount_cents for p in tendered)
        if is_credit:
            if not customer_name:
                raise SaleError("Customer name is required for credit sales")
            balance = amounts["total_cents"] - paid
            if balance > 0:
                tendered.append(Payment(
                    shift_id=shift.id,
                    method="credit",
                    amount_cents=balance,
                    created_by=user.id,
                ))
        elif paid < amounts["total_cents"]:
            raise SaleError(f"Insufficient payment. Total: {amounts['total_cents']}, Paid: {paid}")

        sale = Sale(
            business_id=user.business_id,
            location_id=location_id,
            shift_id=shift.id,
            invoice_number=next_document_number(business_id=user.business_id, document_type="invoice"),
            status="completed",
            discount_type=discount_type,
            is_credit=is_credit,
            customer_name=customer_name,
            created_by=user.id,
            **amounts,
        )
        db.session.add(sale)
        for line in sale_lines:
            sale.items.append(line)
        for payment in tendered:
            sale.payments.append(payment)
        db.session.flush()

        costs = {l.variation_id: l.unit_cost_cents for l in sale_lines}
        for variation_id, quantity in _variation_totals(sale_lines).items():
            deduct_stock(
                business_id=user.business_id,
                variation_id=variation_id,
                location_id=location_id,
                quantity=quantity,
                transaction_type="sale",
                user_id=user.id,
                reference_type="sale",
                reference_id=sale.id,
                reference_number=sale.invoice_number,
                unit_cost_cents=costs[variation_id],
                notes=f"Sale {sale.invoice_number}",
            )

        increment_running_totals(shift, sale, tendered)

        append_audit_log(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            action="sale_create",
            entity_type="sale",
            entity_id=sale.id,
            description=f"{sale.invoice_number} total {sale.total_cents}",
            metadata={"shift_id": shift.id, "discount_type": discount_type, "is_credit": is_credit},
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)


def _load_sale(user: User, sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale or sale.business_id != user.business_id:
        raise TenantAccessError("Sale not found")
    return sale


def void_sale(user: User, sale_id: int, reason: str, manager_password: str | None) -> Sale:
    """
    Void a completed sale: restore stock, reverse shift totals, record who approved.

    Raises:
        SaleError: already voided, cancelled, closed shift, AR payments or returns exist
        ManagerApprovalError: manager password missing or wrong
    """
    def _op():
        check_permission(user.id, Perm.SELL_VOID)
        if not reason or not reason.strip():
            raise SaleError("Void reason is required")

        sale = _load_sale(user, sale_id)
        if sale.status == "voided":
            raise SaleError("Sale is already voided")
        if sale.status == "cancelled":
            raise SaleError("Cancelled sales cannot be voided")
        if any(p.is_ar_payment for p in sale.payments):
            raise SaleError("Sales with collected AR payments cannot be voided")
        if any(r.status == "completed" for r in sale.returns):
            raise SaleError("Sales with processed returns cannot be voided")

        manager = verify_manager_password(sale.business_id, manager_password)

        shift = None
        if sale.shift_id:
            shift = lock_for_update(db.session.query(CashierShift).filter_by(id=sale.shift_id)).first()
            if shift.status != "open":
                raise SaleError("Cannot void a sale from a closed shift")

        for variation_id, quantity in _variation_totals(sale.items).items():
            add_stock(
                business_id=sale.business_id,
                variation_id=variation_id,
                location_id=sale.location_id,
                quantity=quantity,
                transaction_type="adjustment",
                user_id=user.id,
                reference_type="sale_void",
                reference_id=sale.id,
                reference_number=sale.invoice_number,
                notes=f"Void of {sale.invoice_number}: {reason.strip()}",
            )

        db.session.add(VoidTransaction(
            business_id=sale.business_id,
            sale_id=sale.id,
            shift_id=sale.shift_id,
            reason=reason.strip(),
            original_total_cents=sale.total_cents,
            voided_by=user.id,
            approved_by=manager.id,
        ))
        sale.status = "voided"
        if shift is not None:
            decrement_running_totals(shift, sale)

        append_audit_log(
            business_id=sale.business_id,
            location_id=sale.location_id,
            user_id=user.id,
            action="sale_void",
            entity_type="sale",
            entity_id=sale.id,
            description=f"{sale.invoice_number} voided: {reason.strip()}",
            metadata={"approved_by": manager.id, "total_cents": sale.total_cents},
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)


def record_ar_payment(
    user: User,
    sale_id: int,
    amount_cents: int,
    method: str,
    shift_id: int | None = None,
    reference: str | None = None,
) -> Payment:
    """
    Collect payment on a credit sale during an open shift.

    The payment belongs to the collecting shift, so cash collected counts
    toward that shift's system cash.
    """
    def _op():
        check_permission(user.id, Perm.SELL_CREATE)
        sale = _load_sale(user, sale_id)
        if not sale.is_credit:
            raise SaleError("Only credit sales take AR payments")
        if sale.status != "completed":
            raise SaleError(f"Cannot collect payment on a {sale.status} sale")
        if method not in TENDER_METHODS:
            raise SaleError(f"Unknown payment method: {method}")
        if amount_cents <= 0:
            raise SaleError("Payment amount must be positive")
        if amount_cents > sale.balance_due_cents:
            raise SaleError(f"Payment exceeds balance due ({sale.balance_due_cents})")

        if shift_id is not None:
            shift = lock_for_update(db.session.query(CashierShift).filter_by(id=shift_id)).first()
            if not shift or shift.business_id != user.business_id:
                raise TenantAccessError("Shift not found")
            if shift.user_id != user.id and not user_has_permission(user.id, Perm.SHIFT_VIEW_ALL):
                raise SaleError("Payments can only be collected on your own shift")
        else:
            shift = get_current_shift(user)
        if not shift or shift.status != "open":
            raise SaleError("AR payments must be collected during an open shift")

        payment = Payment(
            sale_id=sale.id,
            shift_id=shift.id,
            method=method,
            amount_cents=amount_cents,
            reference=reference,
            is_ar_payment=True,
            created_by=user.id,
        )
        sale.payments.append(payment)
        db.session.flush()

        append_audit_log(
            business_id=sale.business_id,
            location_id=shift.location_id,
            user_id=user.id,
            action="ar_payment",
            entity_type="sale",
            entity_id=sale.id,
            description=f"AR payment {amount_cents} ({method}) on {sale.invoice_number}",
            metadata={"payment_id": payment.id, "shift_id": shift.id},
        )
        db.session.commit()
        return payment

    return run_with_retry(_op)


def get_sale(user: User, sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale or sale.business_id != user.business_id:
        raise TenantAccessError("Sale not found")
    return sale


def list_sales(
    user: User,
    location_id: int | None = None,
    shift_id: int | None = None,
    status: str | None = None,
    limit: int = 200,
) -> list[Sale]:
    query = db.session.query(Sale).filter_by(business_id=user.business_id)
    if location_id is not None:
        query = query.filter_by(location_id=location_id)
    if shift_id is not None:
        query = query.filter_by(shift_id=shift_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Sale.id.desc()).limit(min(limit, 1000)).all()
