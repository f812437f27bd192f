# Overview: Read-only reports: inventory ledger, shift summary, sales summary, stock valuation.

"""
Reporting Service

All reports are read-only and tenant-scoped. Monetary values are cents.

INVENTORY LEDGER BASELINE:
- start given: opening balance is the ledger balance just before start.
  If an approved correction precedes start it is named as the source.
- no start: the last approved correction is the baseline (its physical
  count), and only movements after it are listed.
- no correction either: zero, listing from the first movement.
The report reconciles when the computed ending balance matches the system
quantity (the current balance, or the recorded balance at end).
"""

from __future__ import annotations

import json
from datetime import datetime

from ..extensions import db
from ..models import (
    CashDenomination,
    CustomerReturn,
    InventoryCorrection,
    Payment,
    ProductHistory,
    ProductVariation,
    Sale,
    StockTransaction,
    User,
    VariationLocationDetails,
    ZReading,
)
from ..time_utils import to_utc_z
from .shift_service import allocate_payments, compute_system_cash, get_shift, sales_breakdown
from .stock_service import get_current_stock
from .tenant_service import TenantAccessError, require_location_in_business


# =============================================================================
# Inventory ledger
# =============================================================================

def _last_txn_before(variation_id: int, location_id: int, moment: datetime) -> StockTransaction | None:
    return (
        db.session.query(StockTransaction)
        .filter(
            StockTransaction.variation_id == variation_id,
            StockTransaction.location_id == location_id,
            StockTransaction.created_at < moment,
        )
        .order_by(StockTransaction.id.desc())
        .first()
    )


def _last_correction(variation_id: int, location_id: int, before: datetime | None = None) -> InventoryCorrection | None:
    query = db.session.query(InventoryCorrection).filter(
        InventoryCorrection.variation_id == variation_id,
        InventoryCorrection.location_id == location_id,
        InventoryCorrection.status == "approved",
    )
    if before is not None:
        query = query.filter(InventoryCorrection.approved_at < before)
    return query.order_by(InventoryCorrection.approved_at.desc(), InventoryCorrection.id.desc()).first()


def inventory_ledger(
    business_id: int,
    variation_id: int,
    location_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """
    Movement-by-movement ledger for one variation at one location.

    Returns:
        {baseline: {...}, rows: [...], ending_balance, system_quantity, reconciled, ...}
    """
    variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
    if not variation or variation.product.business_id != business_id:
        raise TenantAccessError("Product variation not found")
    location = require_location_in_business(location_id, business_id)

    query = db.session.query(StockTransaction).filter(
        StockTransaction.variation_id == variation_id,
        StockTransaction.location_id == location_id,
    )

    if start is not None:
        previous = _last_txn_before(variation_id, location_id, start)
        baseline_qty = previous.balance_qty if previous else 0
        correction = _last_correction(variation_id, location_id, before=start)
        if correction:
            source = f"Opening balance since correction #{correction.id} ({correction.reason})"
        else:
            source = "Opening balance calculated from movements before start date"
        baseline = {"quantity": baseline_qty, "source": source, "as_of": to_utc_z(start),
                    "correction_id": correction.id if correction else None}
        query = query.filter(StockTransaction.created_at >= start)
    else:
        correction = _last_correction(variation_id, location_id)
        if correction:
            if correction.stock_transaction_id:
                cutoff_id = correction.stock_transaction_id
            else:
                cutoff_id = (
                    db.session.query(db.func.max(StockTransaction.id))
                    .filter(
                        StockTransaction.variation_id == variation_id,
                        StockTransaction.location_id == location_id,
                        StockTransaction.created_at <= correction.approved_at,
                    )
                    .scalar()
                ) or 0
            baseline = {"quantity": correction.physical_count,
                        "source": f"Last inventory correction ({correction.reason})",
                        "as_of": to_utc_z(correction.approved_at),
                        "correction_id": correction.id}
            query = query.filter(StockTransaction.id > cutoff_id)
        else:
            baseline = {"quantity": 0, "source": "No correction found; starting from first movement",
                        "as_of": None, "correction_id": None}

    if end is not None:
        query = query.filter(StockTransaction.created_at <= end)

    transactions = query.order_by(StockTransaction.id).all()
    reference_numbers = {
        txn_id: number
        for txn_id, number in db.session.query(ProductHistory.stock_transaction_id, ProductHistory.reference_number)
        .filter(ProductHistory.stock_transaction_id.in_([t.id for t in transactions] or [0]))
        .all()
    }

    running = baseline["quantity"]
    rows = []
    total_in = 0
    total_out = 0
    for txn in transactions:
        running += txn.quantity
        qty_in = txn.quantity if txn.quantity > 0 else 0
        qty_out = -txn.quantity if txn.quantity < 0 else 0
        total_in += qty_in
        total_out += qty_out
        rows.append({
            "date": to_utc_z(txn.created_at),
            "type": txn.type,
            "reference_type": txn.reference_type,
            "reference_id": txn.reference_id,
            "reference_number": reference_numbers.get(txn.id),
            "notes": txn.notes,
            "quantity_in": qty_in,
            "quantity_out": qty_out,
            "running_balance": running,
            "recorded_balance": txn.balance_qty,
            "created_by": txn.created_by,
        })

    system_quantity = get_current_stock(variation_id, location_id)
    if end is not None:
        last = _last_txn_before(variation_id, location_id, end) if not transactions else transactions[-1]
        expected = last.balance_qty if last else 0
    else:
        expected = system_quantity

    return {
        "product_id": variation.product_id,
        "product_name": variation.product.name,
        "variation_id": variation_id,
        "variation_name": variation.name,
        "location_id": location_id,
        "location_name": location.name,
        "baseline": baseline,
        "rows": rows,
        "total_in": total_in,
        "total_out": total_out,
        "ending_balance": running,
        "system_quantity": system_quantity,
        "reconciled": running == expected,
        "variance": running - expected,
    }


# =============================================================================
# Shifts and sales
# =============================================================================

def shift_summary(user: User, shift_id: int) -> dict:
    shift = get_shift(user, shift_id)
    z = db.session.query(ZReading).filter_by(shift_id=shift.id).first()
    denominations = db.session.query(CashDenomination).filter_by(shift_id=shift.id).first()

    return {
        "shift": shift.to_dict(),
        "sales": sales_breakdown(shift),
        "system_cash_cents": shift.system_cash_cents if shift.status == "closed" else compute_system_cash(shift),
        "cash_movements": [m.to_dict() for m in shift.cash_movements],
        "x_reading_count": shift.x_reading_count,
        "z_reading": z.to_dict() if z else None,
        "denominations": json.loads(denominations.counts_json) if denominations else None,
    }


def sales_summary(
    business_id: int,
    location_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """Completed sales totals, by payment method and by day.

    Refunds are reported beside the sales they came from, not netted out.
    """
    query = db.session.query(Sale).filter(Sale.business_id == business_id, Sale.status == "completed")
    if location_id is not None:
        query = query.filter(Sale.location_id == location_id)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    sales = query.order_by(Sale.created_at).all()

    by_method: dict[str, int] = {}
    by_day: dict[str, dict] = {}
    for sale in sales:
        tendered = [p for p in sale.payments if not p.is_ar_payment]
        for method, amount in allocate_payments(sale.total_cents, tendered).items():
            by_method[method] = by_method.get(method, 0) + amount

        day = sale.created_at.date().isoformat()
        bucket = by_day.setdefault(day, {"date": day, "count": 0, "net_sales_cents": 0, "vat_cents": 0, "discounts_cents": 0})
        bucket["count"] += 1
        bucket["net_sales_cents"] += sale.total_cents
        bucket["vat_cents"] += sale.vat_cents
        bucket["discounts_cents"] += sale.discount_cents

    void_query = db.session.query(db.func.count(Sale.id), db.func.coalesce(db.func.sum(Sale.total_cents), 0)).filter(
        Sale.business_id == business_id, Sale.status == "voided"
    )
    if location_id is not None:
        void_query = void_query.filter(Sale.location_id == location_id)
    if start is not None:
        void_query = void_query.filter(Sale.created_at >= start)
    if end is not None:
        void_query = void_query.filter(Sale.created_at <= end)
    void_count, void_total = void_query.one()

    ar_query = db.session.query(db.func.coalesce(db.func.sum(Payment.amount_cents), 0)).join(
        Sale, Sale.id == Payment.sale_id
    ).filter(Sale.business_id == business_id, Payment.is_ar_payment == True)  # noqa: E712
    if location_id is not None:
        ar_query = ar_query.filter(Sale.location_id == location_id)
    if start is not None:
        ar_query = ar_query.filter(Payment.created_at >= start)
    if end is not None:
        ar_query = ar_query.filter(Payment.created_at <= end)

    refund_query = db.session.query(
        db.func.count(CustomerReturn.id), db.func.coalesce(db.func.sum(CustomerReturn.refund_cents), 0)
    ).filter(CustomerReturn.business_id == business_id, CustomerReturn.status == "completed")
    if location_id is not None:
        refund_query = refund_query.filter(CustomerReturn.location_id == location_id)
    if start is not None:
        refund_query = refund_query.filter(CustomerReturn.created_at >= start)
    if end is not None:
        refund_query = refund_query.filter(CustomerReturn.created_at <= end)
    return_count, refund_total = refund_query.one()

    return {
        "transaction_count": len(sales),
        "gross_sales_cents": sum(s.subtotal_cents for s in sales),
        "discounts_cents": sum(s.discount_cents for s in sales),
        "net_sales_cents": sum(s.total_cents for s in sales),
        "vatable_sales_cents": sum(s.vatable_sales_cents for s in sales),
        "vat_cents": sum(s.vat_cents for s in sales),
        "vat_exempt_cents": sum(s.vat_exempt_cents for s in sales),
        "by_payment_method": by_method,
        "by_day": list(by_day.values()),
        "void_count": void_count,
        "void_cents": int(void_total),
        "ar_collected_cents": int(ar_query.scalar() or 0),
        "return_count": return_count,
        "refund_cents": int(refund_total),
    }


def stock_valuation(business_id: int, location_id: int | None = None) -> dict:
    """On-hand quantity times unit cost, per variation and location."""
    query = (
        db.session.query(VariationLocationDetails, ProductVariation)
        .join(ProductVariation, ProductVariation.id == VariationLocationDetails.variation_id)
        .filter(VariationLocationDetails.qty_available != 0)
    )
    if location_id is not None:
        require_location_in_business(location_id, business_id)
        query = query.filter(VariationLocationDetails.location_id == location_id)

    items = []
    for details, variation in query.order_by(VariationLocationDetails.location_id, ProductVariation.id).all():
        if variation.product.business_id != business_id:
            continue
        items.append({
            "product_id": variation.product_id,
            "product_name": variation.product.name,
            "variation_id": variation.id,
            "variation_name": variation.name,
            "location_id": details.location_id,
            "quantity": details.qty_available,
            "unit_cost_cents": variation.cost_cents,
            "value_cents": details.qty_available * variation.cost_cents,
        })

    return {
        "items": items,
        "total_quantity": sum(i["quantity"] for i in items),
        "total_value_cents": sum(i["value_cents"] for i in items),
    }
