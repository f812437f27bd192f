from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


TRANSFER_STATUSES = (
    "draft",
    "pending_check",
    "checked",
    "in_transit",
    "arrived",
    "verifying",
    "verified",
    "completed",
    "cancelled",
)


class StockTransfer(db.Model):
    """
    Inter-location stock transfer.

    LIFECYCLE:
    1. draft: created at the origin, editable
    2. pending_check: submitted for checking
    3. checked: origin checker approved the pick list
    4. in_transit: sent; source stock deducted (stock_deducted=True)
    5. arrived: destination acknowledged arrival
    6. verifying: destination counting items
    7. verified: every item verified
    8. completed: destination stock added
    cancelled: allowed from any state before completed; restores source
    stock when it had been deducted.

    Each step stores its actor so separation-of-duties rules can compare
    them. Transfer numbers are TR-YYYYMM-NNNN, unique per business.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.UniqueConstraint("business_id", "transfer_number", name="uq_stock_transfers_business_number"),
        db.Index("ix_stock_transfers_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    transfer_number = db.Column(db.String(32), nullable=False)

    from_location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    to_location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="draft", index=True)
    stock_deducted = db.Column(db.Boolean, nullable=False, default=False)

    transfer_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    submitted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    checked_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    checked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    check_notes = db.Column(db.Text, nullable=True)
    sent_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    arrived_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    arrived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verifier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verification_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("StockTransferItem", backref="transfer", lazy=True, order_by="StockTransferItem.id")
    from_location = db.relationship("BusinessLocation", foreign_keys=[from_location_id])
    to_location = db.relationship("BusinessLocation", foreign_keys=[to_location_id])

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "transfer_number": self.transfer_number,
            "from_location_id": self.from_location_id,
            "to_location_id": self.to_location_id,
            "status": self.status,
            "stock_deducted": self.stock_deducted,
            "transfer_date": to_utc_z(self.transfer_date),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "checked_by": self.checked_by,
            "checked_at": to_utc_z(self.checked_at) if self.checked_at else None,
            "check_notes": self.check_notes,
            "sent_by": self.sent_by,
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "arrived_by": self.arrived_by,
            "arrived_at": to_utc_z(self.arrived_at) if self.arrived_at else None,
            "verifier_id": self.verifier_id,
            "verified_at": to_utc_z(self.verified_at) if self.verified_at else None,
            "received_by": self.received_by,
            "completed_by": self.completed_by,
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data


class StockTransferItem(db.Model):
    __tablename__ = "stock_transfer_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variation_id = db.Column(db.Integer, db.ForeignKey("product_variations.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    received_quantity = db.Column(db.Integer, nullable=True)
    has_discrepancy = db.Column(db.Boolean, nullable=False, default=False)
    discrepancy_notes = db.Column(db.Text, nullable=True)
    verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variation_id": self.variation_id,
            "quantity": self.quantity,
            "received_quantity": self.received_quantity,
            "has_discrepancy": self.has_discrepancy,
            "discrepancy_notes": self.discrepancy_notes,
            "verified": self.verified,
            "verified_by": self.verified_by,
            "verified_at": to_utc_z(self.verified_at) if self.verified_at else None,
        }
