from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


RETURN_CONDITIONS = ("resellable", "damaged")
SUPPLIER_RETURN_CONDITIONS = ("damaged", "defective", "warranty_claim")


class CustomerReturn(db.Model):
    """
    Goods brought back against a completed sale.

    Processed in one step under a manager's password: the refund is paid
    from the processing cashier's open shift and resellable units go back
    on the shelf as customer_return ledger entries. Damaged units are
    refunded but not restocked.

    refund_cents is the share of the sale total the returned units carried,
    so sale-level discounts are refunded pro rata.
    """
    __tablename__ = "customer_returns"
    __table_args__ = (
        db.UniqueConstraint("business_id", "return_number", name="uq_customer_returns_business_number"),
        db.Index("ix_customer_returns_shift_method", "shift_id", "refund_method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=False)

    return_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")
    reason = db.Column(db.Text, nullable=False)
    refund_method = db.Column(db.String(16), nullable=False, default="cash")
    refund_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True, order_by="CustomerReturn.id"))
    items = db.relationship("CustomerReturnItem", backref="customer_return", lazy=True,
                            order_by="CustomerReturnItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "location_id": self.location_id,
            "sale_id": self.sale_id,
            "invoice_number": self.sale.invoice_number if self.sale else None,
            "shift_id": self.shift_id,
            "return_number": self.return_number,
            "status": self.status,
            "reason": self.reason,
            "refund_method": self.refund_method,
            "refund_cents": self.refund_cents,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "created_at": to_utc_z(self.created_at),
            "items": [i.to_dict() for i in self.items],
        }


class CustomerReturnItem(db.Model):
    __tablename__ = "customer_return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("customer_returns.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    condition = db.Column(db.String(16), nullable=False, default="resellable")
    unit_price_cents = db.Column(db.Integer, nullable=False)
    refund_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_item_id": self.sale_item_id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "condition": self.condition,
            "unit_price_cents": self.unit_price_cents,
            "refund_cents": self.refund_cents,
        }


class SupplierReturn(db.Model):
    """
    Stock sent back to a supplier.

    LIFECYCLE:
    - pending: recorded, no stock effect
    - approved: stock deducted at the return location (supplier_return)
    - cancelled: only while pending

    purchase_id is optional; when set, quantities are limited to what the
    purchase order actually delivered less earlier returns against it.
    """
    __tablename__ = "supplier_returns"
    __table_args__ = (
        db.UniqueConstraint("business_id", "return_number", name="uq_supplier_returns_business_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)

    return_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    return_reason = db.Column(db.Text, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.Text, nullable=True)

    supplier = db.relationship("Supplier")
    purchase = db.relationship("Purchase", backref=db.backref("supplier_returns", lazy=True))
    items = db.relationship("SupplierReturnItem", backref="supplier_return", lazy=True,
                            order_by="SupplierReturnItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "location_id": self.location_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "purchase_id": self.purchase_id,
            "return_number": self.return_number,
            "status": self.status,
            "return_reason": self.return_reason,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "cancelled_by": self.cancelled_by,
            "cancel_reason": self.cancel_reason,
            "items": [i.to_dict() for i in self.items],
        }


class SupplierReturnItem(db.Model):
    __tablename__ = "supplier_return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_return_id = db.Column(db.Integer, db.ForeignKey("supplier_returns.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    condition = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "condition": self.condition,
            "notes": self.notes,
        }
