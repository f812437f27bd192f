from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ExpenseCategory(db.Model):
    __tablename__ = "expense_categories"
    __table_args__ = (
        db.UniqueConstraint("business_id", "name", name="uq_expense_categories_business_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


class Expense(db.Model):
    """
    Operating expense.

    Expenses are voided, never deleted, so the books keep the trail.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_business_date", "business_id", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("expense_categories.id"), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    payee = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)
    reference_number = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="posted", index=True)
    void_reason = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    category = db.relationship("ExpenseCategory")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "location_id": self.location_id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "amount_cents": self.amount_cents,
            "expense_date": to_utc_z(self.expense_date),
            "payee": self.payee,
            "description": self.description,
            "reference_number": self.reference_number,
            "status": self.status,
            "void_reason": self.void_reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
