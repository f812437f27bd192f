# Overview: Stock ledger; the only writer of StockTransaction and ProductHistory.

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func

from ..extensions import db
from ..models import (
    Product,
    ProductHistory,
    ProductVariation,
    STOCK_TRANSACTION_TYPES,
    StockTransaction,
    VariationLocationDetails,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update
"""
Stock Ledger Invariants (authoritative)

- VariationLocationDetails.qty_available is a cached balance; the ledgers are the record.
- Every stock change goes through update_stock, which in one flush:
    1. moves qty_available
    2. appends one StockTransaction with balance_qty = new balance
    3. appends one ProductHistory row mirroring it (stock_transaction_id links them)
- Balances never go negative. A correction posts physical - current, so
  its new balance is the counted quantity.
- update_stock never commits; the calling operation owns the transaction,
  so a failed sale/transfer leaves no half-written ledger rows.
- verify_ledger_consistency and find_duplicate_history detect drift between
  the cache and the two ledgers.
"""


class StockError(Exception):
    """Raised for stock ledger errors (insufficient stock, bad quantities)."""
    pass


@dataclass
class StockMovement:
    """Result of one update_stock call."""
    transaction: StockTransaction
    history: ProductHistory
    previous_qty: int
    new_qty: int


def _variation(variation_id: int) -> ProductVariation:
    variation = db.session.query(ProductVariation).filter_by(id=variation_id).first()
    if not variation:
        raise StockError(f"Variation {variation_id} not found")
    return variation


def get_location_details(variation_id: int, location_id: int) -> VariationLocationDetails | None:
    return db.session.query(VariationLocationDetails).filter_by(
        variation_id=variation_id,
        location_id=location_id,
    ).first()


def get_or_create_location_details(variation_id: int, location_id: int) -> VariationLocationDetails:
    details = lock_for_update(
        db.session.query(VariationLocationDetails).filter_by(
            variation_id=variation_id,
            location_id=location_id,
        )
    ).first()
    if details:
        return details

    variation = _variation(variation_id)
    details = VariationLocationDetails(
        product_id=variation.product_id,
        variation_id=variation_id,
        location_id=location_id,
        qty_available=0,
    )
    db.session.add(details)
    db.session.flush()
    return details


def get_current_stock(variation_id: int, location_id: int) -> int:
    details = get_location_details(variation_id, location_id)
    return details.qty_available if details else 0


def check_stock_availability(variation_id: int, location_id: int, quantity: int) -> dict:
    current = get_current_stock(variation_id, location_id)
    return {
        "variation_id": variation_id,
        "available": current >= quantity,
        "current_stock": current,
        "requested": quantity,
        "shortage": max(quantity - current, 0),
    }


def batch_check_stock_availability(items: list[dict], location_id: int) -> list[dict]:
    """
    Check several lines at once.

    Lines for the same variation are summed first, so two lines of 3 against
    a balance of 5 are reported as a shortage of 1.
    """
    requested: dict[int, int] = {}
    for item in items:
        variation_id = int(item["variation_id"])
        requested[variation_id] = requested.get(variation_id, 0) + int(item["quantity"])

    return [
        check_stock_availability(variation_id, location_id, quantity)
        for variation_id, quantity in requested.items()
    ]


def update_stock(
    *,
    business_id: int,
    variation_id: int,
    location_id: int,
    quantity: int,
    transaction_type: str,
    user_id: int | None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    reference_number: str | None = None,
    unit_cost_cents: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Apply a signed stock change and write both ledgers.

    Raises StockError("Insufficient stock. Current: X, Requested: Y, Shortage: Z")
    when the balance would go negative.
    """
    if transaction_type not in STOCK_TRANSACTION_TYPES:
        raise StockError(f"Unknown stock transaction type: {transaction_type}")
    if quantity == 0:
        raise StockError("Quantity must not be zero")

    details = get_or_create_location_details(variation_id, location_id)
    previous_qty = details.qty_available
    new_qty = previous_qty + quantity

    if new_qty < 0:
        requested = -quantity
        raise StockError(
            f"Insufficient stock. Current: {previous_qty}, "
            f"Requested: {requested}, Shortage: {requested - previous_qty}"
        )

    details.qty_available = new_qty

    now = utcnow()
    txn = StockTransaction(
        business_id=business_id,
        location_id=location_id,
        product_id=details.product_id,
        variation_id=variation_id,
        type=transaction_type,
        quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        balance_qty=new_qty,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=user_id,
        created_at=now,
    )
    db.session.add(txn)
    db.session.flush()

    history = ProductHistory(
        business_id=business_id,
        location_id=location_id,
        product_id=details.product_id,
        variation_id=variation_id,
        stock_transaction_id=txn.id,
        transaction_type=transaction_type,
        transaction_date=now,
        reference_type=reference_type,
        reference_id=reference_id,
        reference_number=reference_number,
        quantity_change=quantity,
        balance_quantity=new_qty,
        unit_cost_cents=unit_cost_cents,
        created_by=user_id,
        reason=notes,
    )
    db.session.add(history)
    db.session.flush()

    return StockMovement(transaction=txn, history=history, previous_qty=previous_qty, new_qty=new_qty)


def add_stock(*, quantity: int, **kwargs) -> StockMovement:
    if quantity <= 0:
        raise StockError("Quantity must be positive")
    return update_stock(quantity=quantity, **kwargs)


def deduct_stock(*, quantity: int, **kwargs) -> StockMovement:
    if quantity <= 0:
        raise StockError("Quantity must be positive")
    return update_stock(quantity=-quantity, **kwargs)


def list_stock(business_id: int, location_id: int | None = None) -> list[VariationLocationDetails]:
    query = (
        db.session.query(VariationLocationDetails)
        .join(Product, Product.id == VariationLocationDetails.product_id)
        .filter(Product.business_id == business_id)
    )
    if location_id is not None:
        query = query.filter(VariationLocationDetails.location_id == location_id)
    return query.order_by(VariationLocationDetails.variation_id, VariationLocationDetails.location_id).all()


# =============================================================================
# Ledger consistency
# =============================================================================

def verify_ledger_consistency(business_id: int, location_id: int | None = None) -> dict:
    """
    Compare cached balances against both ledgers.

    For each variation/location with ledger activity, reports:
    - SUM_MISMATCH: qty_available != sum of StockTransaction quantities
    - BALANCE_MISMATCH: qty_available != balance_qty of the latest StockTransaction
    - HISTORY_BALANCE_MISMATCH: qty_available != balance_quantity of the latest ProductHistory
    - LEDGER_COUNT_MISMATCH / LEDGER_TOTAL_MISMATCH: the two ledgers disagree
    """
    txn_query = db.session.query(
        StockTransaction.variation_id,
        StockTransaction.location_id,
        func.count(StockTransaction.id),
        func.coalesce(func.sum(StockTransaction.quantity), 0),
        func.max(StockTransaction.id),
    ).filter(StockTransaction.business_id == business_id)
    hist_query = db.session.query(
        ProductHistory.variation_id,
        ProductHistory.location_id,
        func.count(ProductHistory.id),
        func.coalesce(func.sum(ProductHistory.quantity_change), 0),
        func.max(ProductHistory.id),
    ).filter(ProductHistory.business_id == business_id)
    if location_id is not None:
        txn_query = txn_query.filter(StockTransaction.location_id == location_id)
        hist_query = hist_query.filter(ProductHistory.location_id == location_id)

    txn_stats = {
        (v, loc): (count, total, last_id)
        for v, loc, count, total, last_id in txn_query.group_by(
            StockTransaction.variation_id, StockTransaction.location_id
        ).all()
    }
    hist_stats = {
        (v, loc): (count, total, last_id)
        for v, loc, count, total, last_id in hist_query.group_by(
            ProductHistory.variation_id, ProductHistory.location_id
        ).all()
    }

    issues = []
    checked = 0
    for key in sorted(set(txn_stats) | set(hist_stats)):
        variation_id, loc_id = key
        checked += 1
        cached = get_current_stock(variation_id, loc_id)

        def issue(code: str, **extra):
            issues.append({"code": code, "variation_id": variation_id, "location_id": loc_id, **extra})

        txn = txn_stats.get(key)
        hist = hist_stats.get(key)

        if txn:
            count, total, last_id = txn
            if int(total) != cached:
                issue("SUM_MISMATCH", cached_qty=cached, ledger_sum=int(total))
            last_balance = db.session.query(StockTransaction.balance_qty).filter_by(id=last_id).scalar()
            if last_balance != cached:
                issue("BALANCE_MISMATCH", cached_qty=cached, last_balance=last_balance)
        if hist:
            last_history_balance = db.session.query(ProductHistory.balance_quantity).filter_by(id=hist[2]).scalar()
            if last_history_balance != cached:
                issue("HISTORY_BALANCE_MISMATCH", cached_qty=cached, last_balance=last_history_balance)

        txn_count, txn_total = (txn[0], int(txn[1])) if txn else (0, 0)
        hist_count, hist_total = (hist[0], int(hist[1])) if hist else (0, 0)
        if txn_count != hist_count:
            issue("LEDGER_COUNT_MISMATCH", transactions=txn_count, history_rows=hist_count)
        if txn_total != hist_total:
            issue("LEDGER_TOTAL_MISMATCH", transactions_total=txn_total, history_total=hist_total)

    # Balances with no ledger behind them at all
    for details in list_stock(business_id, location_id):
        key = (details.variation_id, details.location_id)
        if key not in txn_stats and key not in hist_stats and details.qty_available != 0:
            checked += 1
            issues.append({
                "code": "UNLEDGERED_BALANCE",
                "variation_id": details.variation_id,
                "location_id": details.location_id,
                "cached_qty": details.qty_available,
            })

    return {"consistent": not issues, "checked": checked, "issues": issues}


def find_duplicate_history(business_id: int) -> list[dict]:
    """
    ProductHistory rows that repeat the same movement.

    Each movement writes exactly one history row linked to its
    StockTransaction. A group of identical history rows (same location,
    variation, reference and quantity) is a duplicate when it holds more
    rows than distinct ledger transactions behind them: two rows sharing
    one stock_transaction_id, or a row whose link is missing or points
    nowhere. Identical rows backed by separate transactions (two GRN lines
    for the same variation) are legitimate.
    """
    rows = (
        db.session.query(
            ProductHistory.location_id,
            ProductHistory.variation_id,
            ProductHistory.transaction_type,
            ProductHistory.reference_type,
            ProductHistory.reference_id,
            ProductHistory.quantity_change,
            func.count(ProductHistory.id),
            func.count(func.distinct(StockTransaction.id)),
        )
        .outerjoin(StockTransaction, StockTransaction.id == ProductHistory.stock_transaction_id)
        .filter(ProductHistory.business_id == business_id)
        .group_by(
            ProductHistory.location_id,
            ProductHistory.variation_id,
            ProductHistory.transaction_type,
            ProductHistory.reference_type,
            ProductHistory.reference_id,
            ProductHistory.quantity_change,
        )
        .having(func.count(ProductHistory.id) > func.count(func.distinct(StockTransaction.id)))
        .all()
    )
    return [
        {
            "location_id": loc,
            "variation_id": variation_id,
            "transaction_type": txn_type,
            "reference_type": ref_type,
            "reference_id": ref_id,
            "quantity_change": qty,
            "occurrences": count,
            "ledger_transactions": linked,
        }
        for loc, variation_id, txn_type, ref_type, ref_id, qty, count, linked in rows
    ]
