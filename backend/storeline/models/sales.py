from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


PAYMENT_METHODS = ("cash", "card", "gcash", "bank_transfer", "credit")
DISCOUNT_TYPES = ("regular", "senior", "pwd")


class Sale(db.Model):
    """
    Point-of-sale invoice.

    LIFECYCLE:
    - completed: stock deducted, counted in the shift's running totals
    - voided: stock restored, running totals reversed (see VoidTransaction)
    - cancelled: abandoned before completion; cannot be voided

    Amounts are cents, VAT-inclusive. senior/pwd sales are VAT-exempt.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("business_id", "invoice_number", name="uq_sales_business_invoice"),
        db.Index("ix_sales_shift_status", "shift_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=True, index=True)

    invoice_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    discount_type = db.Column(db.String(16), nullable=True)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    vatable_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    vat_cents = db.Column(db.Integer, nullable=False, default=0)
    vat_exempt_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Credit (charge) sales are collected later as AR payments
    is_credit = db.Column(db.Boolean, nullable=False, default=False)
    customer_name = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")
    payments = db.relationship("Payment", backref="sale", lazy=True, order_by="Payment.id")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def amount_paid_cents(self) -> int:
        return sum(p.amount_cents for p in self.payments if p.method != "credit")

    @property
    def balance_due_cents(self) -> int:
        return max(self.total_cents - self.amount_paid_cents, 0)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "location_id": self.location_id,
            "shift_id": self.shift_id,
            "invoice_number": self.invoice_number,
            "status": self.status,
            "discount_type": self.discount_type,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "vatable_sales_cents": self.vatable_sales_cents,
            "vat_cents": self.vat_cents,
            "vat_exempt_cents": self.vat_exempt_cents,
            "total_cents": self.total_cents,
            "is_credit": self.is_credit,
            "customer_name": self.customer_name,
            "balance_due_cents": self.balance_due_cents,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class Payment(db.Model):
    """
    Payment tender against a sale.

    shift_id is the shift that physically collected the money. For an AR
    payment (is_ar_payment=True) that can be a later shift than the sale's.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_shift_method", "shift_id", "method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=True)
    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    is_ar_payment = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "shift_id": self.shift_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "is_ar_payment": self.is_ar_payment,
            "created_at": to_utc_z(self.created_at),
        }


class VoidTransaction(db.Model):
    """Record of a voided sale and the manager who authorised it. Append-only."""
    __tablename__ = "void_transactions"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_void_transactions_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=True)
    reason = db.Column(db.Text, nullable=False)
    original_total_cents = db.Column(db.Integer, nullable=False)

    voided_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "shift_id": self.shift_id,
            "reason": self.reason,
            "original_total_cents": self.original_total_cents,
            "voided_by": self.voided_by,
            "approved_by": self.approved_by,
            "created_at": to_utc_z(self.created_at),
        }
