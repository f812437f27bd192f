from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("business_id", "name", name="uq_suppliers_business_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    contact_name = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "contact_name": self.contact_name,
            "phone": self.phone,
            "email": self.email,
            "is_active": self.is_active,
        }


class Purchase(db.Model):
    """
    Purchase order.

    LIFECYCLE:
    - draft: editable, no stock effect
    - approved: may be received against (GRN)
    - partially_received / received: driven by approved receipts
    - cancelled: only while nothing has been received
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("business_id", "purchase_number", name="uq_purchases_business_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False)

    purchase_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(24), nullable=False, default="draft", index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    supplier = db.relationship("Supplier")
    items = db.relationship("PurchaseItem", backref="purchase", lazy=True, order_by="PurchaseItem.id")

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "location_id": self.location_id,
            "supplier_id": self.supplier_id,
            "purchase_number": self.purchase_number,
            "status": self.status,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    @property
    def quantity_outstanding(self) -> int:
        return self.quantity - self.quantity_received

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "quantity_received": self.quantity_received,
            "unit_cost_cents": self.unit_cost_cents,
        }


class PurchaseReceipt(db.Model):
    """
    Goods Receipt Note (GRN).

    A pending receipt records what arrived. Stock moves only when the
    receipt is approved, by someone other than its creator unless the
    business relaxes that rule.
    """
    __tablename__ = "purchase_receipts"
    __table_args__ = (
        db.UniqueConstraint("business_id", "receipt_number", name="uq_purchase_receipts_business_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)

    receipt_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    purchase = db.relationship("Purchase", backref=db.backref("receipts", lazy=True))
    items = db.relationship("PurchaseReceiptItem", backref="receipt", lazy=True, order_by="PurchaseReceiptItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_id": self.purchase_id,
            "location_id": self.location_id,
            "receipt_number": self.receipt_number,
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "items": [i.to_dict() for i in self.items],
        }


class PurchaseReceiptItem(db.Model):
    __tablename__ = "purchase_receipt_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("purchase_receipts.id"), nullable=False, index=True)
    purchase_item_id = db.Column(db.Integer, db.ForeignKey("purchase_items.id"), nullable=False)
    quantity_received = db.Column(db.Integer, nullable=False)

    purchase_item = db.relationship("PurchaseItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_item_id": self.purchase_item_id,
            "variation_id": self.purchase_item.variation_id if self.purchase_item else None,
            "quantity_received": self.quantity_received,
        }
