# Overview: Cashier shifts, cash movements, reconciliation and X/Z readings.

"""
Cashier Shift Service

WHY: Cash accountability per till session. The system works out how much
cash should be in the drawer; the cashier counts what is there; the
difference is recorded as over/short under a manager's sign-off.

SYSTEM CASH:
    beginning cash
  + cash retained from non-voided sales rung on the shift
  + cash_in - cash_out
  + cash AR payments collected on the shift
  - cash refunds paid out for customer returns

Cash retained: when tendered payments exceed the sale total (change was
given), each tender counts in proportion: amount * sale_total / tendered.

RUNNING TOTALS:
Sales, voids and customer returns adjust CashierShift.running_* in their own
transaction (increment_running_totals / decrement_running_totals /
record_refund). Close and readings recompute from the sales themselves;
running totals are for quick display.
"""

from __future__ import annotations

import json

from ..extensions import db
from ..models import (
    CashDenomination,
    CashierShift,
    CashInOut,
    CustomerReturn,
    DENOMINATIONS_CENTS,
    Payment,
    Sale,
    User,
    ZReading,
)
from ..permissions import Perm
from ..time_utils import to_utc_z, utcnow
from .audit_service import append_audit_log
from .auth_service import verify_manager_password
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .permission_service import PermissionDeniedError, check_permission, user_has_permission
from .tenant_service import TenantAccessError, require_location_access, require_location_in_business


class ShiftError(Exception):
    """Raised when shift operations fail."""
    pass


CASH_MOVEMENT_TYPES = ("cash_in", "cash_out")
OTHER_TENDER_METHODS = ("gcash", "bank_transfer")


# =============================================================================
# Payment allocation
# =============================================================================

def allocate_payments(total_cents: int, payments) -> dict[str, int]:
    """
    Split a sale's payments into retained amounts per method.

    Credit (charge) amounts are reported as-is. Tendered amounts are scaled
    down proportionally when they exceed the sale total.
    """
    tendered = [p for p in payments if p.method != "credit"]
    paid = sum(p.amount_cents for p in tendered)

    by_method: dict[str, int] = {}
    for payment in tendered:
        amount = payment.amount_cents
        if paid > total_cents > 0:
            amount = amount * total_cents // paid
        elif total_cents <= 0:
            amount = 0
        by_method[payment.method] = by_method.get(payment.method, 0) + amount

    credit = sum(p.amount_cents for p in payments if p.method == "credit")
    if credit:
        by_method["credit"] = credit
    return by_method


def _sale_payments(sale: Sale) -> list[Payment]:
    """Payments taken when the sale was rung (AR collections excluded)."""
    return [p for p in sale.payments if not p.is_ar_payment]


def _apply_running_totals(shift: CashierShift, sale: Sale, payments, sign: int) -> None:
    allocated = allocate_payments(sale.total_cents, payments)
    shift.running_gross_sales_cents += sign * sale.subtotal_cents
    shift.running_net_sales_cents += sign * sale.total_cents
    shift.running_discounts_cents += sign * sale.discount_cents
    shift.running_vat_cents += sign * sale.vat_cents
    shift.running_cash_sales_cents += sign * allocated.get("cash", 0)
    shift.running_card_sales_cents += sign * allocated.get("card", 0)
    shift.running_other_sales_cents += sign * sum(allocated.get(m, 0) for m in OTHER_TENDER_METHODS)
    shift.running_credit_sales_cents += sign * allocated.get("credit", 0)
    shift.running_transactions += sign


def increment_running_totals(shift: CashierShift, sale: Sale, payments) -> None:
    _apply_running_totals(shift, sale, payments, 1)


def decrement_running_totals(shift: CashierShift, sale: Sale) -> None:
    _apply_running_totals(shift, sale, _sale_payments(sale), -1)
    shift.running_void_cents += sale.total_cents
    shift.running_void_count += 1


def record_refund(shift: CashierShift, refund_cents: int) -> None:
    shift.running_refund_cents += refund_cents
    shift.running_return_count += 1


# =============================================================================
# Lookups
# =============================================================================

def get_current_shift(user: User) -> CashierShift | None:
    return db.session.query(CashierShift).filter_by(user_id=user.id, status="open").first()


def get_shift(user: User, shift_id: int) -> CashierShift:
    shift = db.session.query(CashierShift).filter_by(id=shift_id).first()
    if not shift or shift.business_id != user.business_id:
        raise TenantAccessError("Shift not found")
    _require_owner_or_view_all(user, shift)
    return shift


def _load_shift(user: User, shift_id: int) -> CashierShift:
    shift = lock_for_update(db.session.query(CashierShift).filter_by(id=shift_id)).first()
    if not shift or shift.business_id != user.business_id:
        raise TenantAccessError("Shift not found")
    return shift


def _require_owner_or_view_all(user: User, shift: CashierShift) -> None:
    if shift.user_id != user.id and not user_has_permission(user.id, Perm.SHIFT_VIEW_ALL):
        raise PermissionDeniedError("Only the shift owner or a supervisor can do this", Perm.SHIFT_VIEW_ALL)


def _shift_sales(shift: CashierShift) -> list[Sale]:
    return db.session.query(Sale).filter_by(shift_id=shift.id).order_by(Sale.id).all()


def _ar_cash_collected(shift: CashierShift) -> int:
    total = (
        db.session.query(db.func.coalesce(db.func.sum(Payment.amount_cents), 0))
        .join(Sale, Sale.id == Payment.sale_id)
        .filter(
            Payment.shift_id == shift.id,
            Payment.is_ar_payment == True,  # noqa: E712
            Payment.method == "cash",
            Sale.status != "voided",
        )
        .scalar()
    )
    return int(total or 0)


def _refund_totals(shift: CashierShift) -> tuple[int, int, int]:
    """(all refunds, cash refunds, return count) paid out on the shift."""
    returns = db.session.query(CustomerReturn).filter_by(shift_id=shift.id, status="completed").all()
    total = sum(r.refund_cents for r in returns)
    cash = sum(r.refund_cents for r in returns if r.refund_method == "cash")
    return total, cash, len(returns)


def _cash_movement_totals(shift: CashierShift) -> tuple[int, int]:
    cash_in = sum(m.amount_cents for m in shift.cash_movements if m.type == "cash_in")
    cash_out = sum(m.amount_cents for m in shift.cash_movements if m.type == "cash_out")
    return cash_in, cash_out


def compute_system_cash(shift: CashierShift) -> int:
    """Expected cash in the drawer right now."""
    cash_sales = 0
    for sale in _shift_sales(shift):
        if sale.status != "completed":
            continue
        cash_sales += allocate_payments(sale.total_cents, _sale_payments(sale)).get("cash", 0)

    cash_in, cash_out = _cash_movement_totals(shift)
    _, cash_refunds, _ = _refund_totals(shift)
    return (
        shift.beginning_cash_cents + cash_sales + cash_in - cash_out
        + _ar_cash_collected(shift) - cash_refunds
    )


# =============================================================================
# Open / cash in-out
# =============================================================================

def open_shift(user: User, location_id: int, beginning_cash_cents: int, notes: str | None = None) -> CashierShift:
    """
    Open a till session at a location.

    Raises:
        ShiftError: user already has an open shift, or negative beginning cash
    """
    def _op():
        check_permission(user.id, Perm.SHIFT_OPEN)
        require_location_in_business(location_id, user.business_id)
        require_location_access(user, location_id)

        if beginning_cash_cents < 0:
            raise ShiftError("Beginning cash must not be negative")
        if get_current_shift(user):
            raise ShiftError("You already have an open shift. Close it before opening a new one.")

        shift = CashierShift(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            shift_number=next_document_number(business_id=user.business_id, document_type="shift"),
            status="open",
            opened_at=utcnow(),
            beginning_cash_cents=beginning_cash_cents,
            notes=notes,
        )
        db.session.add(shift)
        db.session.flush()

        append_audit_log(
            business_id=user.business_id,
            location_id=location_id,
            user_id=user.id,
            action="shift_open",
            entity_type="cashier_shift",
            entity_id=shift.id,
            description=f"{shift.shift_number} opened with {beginning_cash_cents} cents",
        )
        db.session.commit()
        return shift

    return run_with_retry(_op)


def record_cash_in_out(user: User, shift_id: int, type: str, amount_cents: int, reason: str) -> CashInOut:
    def _op():
        check_permission(user.id, Perm.CASH_IN_OUT)
        shift = _load_shift(user, shift_id)
        _require_owner_or_view_all(user, shift)
        if shift.status != "open":
            raise ShiftError("Cash movements can only be recorded on an open shift")
        if type not in CASH_MOVEMENT_TYPES:
            raise ShiftError("type must be cash_in or cash_out")
        if amount_cents <= 0:
            raise ShiftError("Amount must be positive")
        if not reason or not reason.strip():
            raise ShiftError("Reason is required")
        if type == "cash_out":
            available = compute_system_cash(shift)
            if amount_cents > available:
                raise ShiftError(f"Cash out exceeds cash in drawer. Available: {available}, Requested: {amount_cents}")

        movement = CashInOut(
            business_id=shift.business_id,
            location_id=shift.location_id,
            shift_id=shift.id,
            type=type,
            amount_cents=amount_cents,
            reason=reason.strip(),
            created_by=user.id,
        )
        db.session.add(movement)
        db.session.flush()

        append_audit_log(
            business_id=shift.business_id,
            location_id=shift.location_id,
            user_id=user.id,
            action=type,
            entity_type="cashier_shift",
            entity_id=shift.id,
            description=f"{type.replace('_', ' ')} {amount_cents} cents: {reason.strip()}",
            metadata={"cash_in_out_id": movement.id, "amount_cents": amount_cents},
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


# =============================================================================
# Readings
# =============================================================================

def sales_breakdown(shift: CashierShift) -> dict:
    completed = []
    voided = []
    for sale in _shift_sales(shift):
        if sale.status == "completed":
            completed.append(sale)
        elif sale.status == "voided":
            voided.append(sale)

    payments_by_method: dict[str, int] = {}
    discounts_by_type = {"regular": 0, "senior": 0, "pwd": 0}
    for sale in completed:
        for method, amount in allocate_payments(sale.total_cents, _sale_payments(sale)).items():
            payments_by_method[method] = payments_by_method.get(method, 0) + amount
        if sale.discount_cents:
            key = sale.discount_type or "regular"
            discounts_by_type[key] = discounts_by_type.get(key, 0) + sale.discount_cents

    cash_in, cash_out = _cash_movement_totals(shift)
    refunds, cash_refunds, return_count = _refund_totals(shift)
    return {
        "gross_sales_cents": sum(s.subtotal_cents for s in completed),
        "total_discounts_cents": sum(s.discount_cents for s in completed),
        "discounts_by_type": discounts_by_type,
        "net_sales_cents": sum(s.total_cents for s in completed),
        "vatable_sales_cents": sum(s.vatable_sales_cents for s in completed),
        "vat_cents": sum(s.vat_cents for s in completed),
        "vat_exempt_sales_cents": sum(s.vat_exempt_cents for s in completed),
        "payments_by_method": payments_by_method,
        "transaction_count": len(completed),
        "void_count": len(voided),
        "void_cents": sum(s.total_cents for s in voided),
        "cash_in_cents": cash_in,
        "cash_out_cents": cash_out,
        "ar_cash_collected_cents": _ar_cash_collected(shift),
        "refund_cents": refunds,
        "cash_refund_cents": cash_refunds,
        "return_count": return_count,
    }


def generate_x_reading(shift: CashierShift) -> dict:
    """
    Mid-shift snapshot. Increments x_reading_count; the caller commits.
    """
    shift.x_reading_count += 1
    breakdown = sales_breakdown(shift)
    return {
        "type": "X",
        "reading_number": shift.x_reading_count,
        "shift_id": shift.id,
        "shift_number": shift.shift_number,
        "location_id": shift.location_id,
        "cashier_id": shift.user_id,
        "opened_at": to_utc_z(shift.opened_at),
        "generated_at": to_utc_z(utcnow()),
        "beginning_cash_cents": shift.beginning_cash_cents,
        **breakdown,
        "expected_cash_cents": compute_system_cash(shift),
        "running_totals": shift.running_totals(),
    }


def x_reading(user: User, shift_id: int) -> dict:
    def _op():
        check_permission(user.id, Perm.X_READING)
        shift = _load_shift(user, shift_id)
        _require_owner_or_view_all(user, shift)
        reading = generate_x_reading(shift)
        append_audit_log(
            business_id=shift.business_id,
            location_id=shift.location_id,
            user_id=user.id,
            action="x_reading",
            entity_type="cashier_shift",
            entity_id=shift.id,
            description=f"X reading #{reading['reading_number']} for {shift.shift_number}",
        )
        db.session.commit()
        return reading

    return run_with_retry(_op)


def generate_z_reading(shift: CashierShift, user: User) -> ZReading:
    """
    Store the end-of-shift reading. z_counter and the accumulated grand
    total carry forward per location.
    """
    if db.session.query(ZReading.id).filter_by(shift_id=shift.id).first():
        raise ShiftError("A Z reading already exists for this shift")

    previous = lock_for_update(
        db.session.query(ZReading).filter_by(location_id=shift.location_id).order_by(ZReading.z_counter.desc())
    ).first()
    previous_accumulated = previous.accumulated_sales_cents if previous else 0
    breakdown = sales_breakdown(shift)
    sales_for_the_day = breakdown["net_sales_cents"]

    reading = ZReading(
        business_id=shift.business_id,
        location_id=shift.location_id,
        shift_id=shift.id,
        z_counter=(previous.z_counter + 1) if previous else 1,
        previous_accumulated_sales_cents=previous_accumulated,
        sales_for_the_day_cents=sales_for_the_day,
        accumulated_sales_cents=previous_accumulated + sales_for_the_day,
        reading_json=json.dumps(breakdown, sort_keys=True),
        generated_by=user.id,
    )
    db.session.add(reading)
    db.session.flush()
    return reading


# =============================================================================
# Close
# =============================================================================

def _store_denominations(shift: CashierShift, user: User, denominations: dict, ending_cash_cents: int) -> CashDenomination:
    counts: dict[str, int] = {}
    total = 0
    for key, count in denominations.items():
        value = int(key)
        count = int(count)
        if value not in DENOMINATIONS_CENTS:
            raise ShiftError(f"Unknown denomination: {key}")
        if count < 0:
            raise ShiftError("Denomination counts must not be negative")
        if count:
            counts[str(value)] = count
            total += value * count

    if total != ending_cash_cents:
        raise ShiftError(f"Denomination total {total} does not match ending cash {ending_cash_cents}")

    record = CashDenomination(
        shift_id=shift.id,
        counts_json=json.dumps(counts, sort_keys=True),
        total_cents=total,
        counted_by=user.id,
    )
    db.session.add(record)
    return record


def close_shift(
    user: User,
    shift_id: int,
    ending_cash_cents: int,
    manager_password: str | None,
    denominations: dict | None = None,
    notes: str | None = None,
) -> dict:
    """
    Reconcile and close a shift.

    Returns:
        {"shift": ..., "variance": cents, "x_reading": ..., "z_reading": ...}

    Raises:
        ShiftError: already closed, negative count, bad denominations
        ManagerApprovalError: manager password missing or wrong
        PermissionDeniedError: not the owner and no shift.view_all
    """
    def _op():
        check_permission(user.id, Perm.SHIFT_CLOSE)
        shift = _load_shift(user, shift_id)
        _require_owner_or_view_all(user, shift)
        if shift.status == "closed":
            raise ShiftError("Shift is already closed")
        if ending_cash_cents < 0:
            raise ShiftError("Ending cash must not be negative")

        manager = verify_manager_password(shift.business_id, manager_password)

        if denominations:
            _store_denominations(shift, user, denominations, ending_cash_cents)

        system_cash = compute_system_cash(shift)
        variance = ending_cash_cents - system_cash
        breakdown = sales_breakdown(shift)

        x = generate_x_reading(shift)

        shift.status = "closed"
        shift.closed_at = utcnow()
        shift.closed_by = user.id
        shift.approved_by = manager.id
        shift.ending_cash_cents = ending_cash_cents
        shift.system_cash_cents = system_cash
        shift.cash_over_cents = max(variance, 0)
        shift.cash_short_cents = max(-variance, 0)
        shift.total_sales_cents = breakdown["net_sales_cents"]
        shift.total_discounts_cents = breakdown["total_discounts_cents"]
        shift.total_void_cents = breakdown["void_cents"]
        shift.transaction_count = breakdown["transaction_count"]
        if notes:
            shift.notes = f"{shift.notes}\n{notes}" if shift.notes else notes

        z = generate_z_reading(shift, user)

        append_audit_log(
            business_id=shift.business_id,
            location_id=shift.location_id,
            user_id=user.id,
            action="shift_close",
            entity_type="cashier_shift",
            entity_id=shift.id,
            description=f"{shift.shift_number} closed; variance {variance} cents",
            metadata={
                "system_cash_cents": system_cash,
                "ending_cash_cents": ending_cash_cents,
                "variance_cents": variance,
                "approved_by": manager.id,
                "z_counter": z.z_counter,
            },
        )
        db.session.commit()
        return {
            "shift": shift.to_dict(),
            "variance": variance,
            "x_reading": x,
            "z_reading": z.to_dict(),
        }

    return run_with_retry(_op)


def list_shifts(user: User, status: str | None = None, location_id: int | None = None) -> list[CashierShift]:
    """Own shifts; every shift in the business with shift.view_all."""
    query = db.session.query(CashierShift).filter_by(business_id=user.business_id)
    if not user_has_permission(user.id, Perm.SHIFT_VIEW_ALL):
        query = query.filter_by(user_id=user.id)
    if status:
        query = query.filter_by(status=status)
    if location_id is not None:
        query = query.filter_by(location_id=location_id)
    return query.order_by(CashierShift.id.desc()).all()
