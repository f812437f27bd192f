from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


STOCK_TRANSACTION_TYPES = (
    "opening_stock",
    "purchase",
    "sale",
    "transfer_in",
    "transfer_out",
    "adjustment",
    "customer_return",
    "supplier_return",
    "correction",
)


class StockTransaction(db.Model):
    """
    Stock movement ledger.

    One row per movement of one variation at one location. quantity is
    signed (+in / -out) and balance_qty is the on-hand balance immediately
    after the movement.

    IMMUTABLE: Append-only. Mistakes are fixed by posting a correction.
    """
    __tablename__ = "stock_transactions"
    __table_args__ = (
        db.Index("ix_stock_txn_variation_location", "variation_id", "location_id", "id"),
        db.Index("ix_stock_txn_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)

    type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    balance_qty = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "type": self.type,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "balance_qty": self.balance_qty,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class ProductHistory(db.Model):
    """
    Per-product stock history as shown on the product card.

    Overlaps StockTransaction: both are written
    by stock_service.update_stock in the same flush, one row each. Any other
    writer produces the double-counting that find_duplicate_history reports.

    IMMUTABLE: Append-only.
    """
    __tablename__ = "product_history"
    __table_args__ = (
        db.Index("ix_product_history_variation_location", "variation_id", "location_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)
    stock_transaction_id = db.Column(db.Integer, db.ForeignKey("stock_transactions.id"), nullable=True)

    transaction_type = db.Column(db.String(32), nullable=False)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)

    quantity_change = db.Column(db.Integer, nullable=False)
    balance_quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reason = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "stock_transaction_id": self.stock_transaction_id,
            "transaction_type": self.transaction_type,
            "transaction_date": to_utc_z(self.transaction_date),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "reference_number": self.reference_number,
            "quantity_change": self.quantity_change,
            "balance_quantity": self.balance_quantity,
            "created_by": self.created_by,
            "reason": self.reason,
        }


class InventoryCorrection(db.Model):
    """
    Physical count correction.

    LIFECYCLE:
    - pending: counted, nothing posted
    - approved: difference posted as a `correction` ledger entry

    An approved correction is also the starting baseline of the
    inventory ledger report.
    """
    __tablename__ = "inventory_corrections"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)

    system_count = db.Column(db.Integer, nullable=False)
    physical_count = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    stock_transaction_id = db.Column(db.Integer, db.ForeignKey("stock_transactions.id"), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "system_count": self.system_count,
            "physical_count": self.physical_count,
            "difference": self.difference,
            "reason": self.reason,
            "status": self.status,
            "stock_transaction_id": self.stock_transaction_id,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
        }
