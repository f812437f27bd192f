from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


# Philippine peso bills and coins counted at close, in cents
DENOMINATIONS_CENTS = (100000, 50000, 20000, 10000, 5000, 2000, 1000, 500, 100, 25)


class CashierShift(db.Model):
    """
    Cashier shift (till session).

    WHY: Cash accountability. Each shift has beginning cash, all sales and
    cash movements during the shift, and a counted ending cash.

    LIFECYCLE:
    - open: may take sales and cash in/out
    - closed: reconciled; system cash, over/short and totals frozen

    RUNNING TOTALS:
    running_* columns are maintained incrementally by sales, voids and
    customer returns in the same transaction, so X readings do not rescan
    every sale. Close recomputes totals from the sales themselves.

    CONCURRENCY: version_id guards running totals against lost updates.
    """
    __tablename__ = "cashier_shifts"
    __table_args__ = (
        db.UniqueConstraint("business_id", "shift_number", name="uq_cashier_shifts_business_number"),
        db.Index("ix_cashier_shifts_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    shift_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="open", index=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    beginning_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    ending_cash_cents = db.Column(db.Integer, nullable=True)
    system_cash_cents = db.Column(db.Integer, nullable=True)
    cash_over_cents = db.Column(db.Integer, nullable=True)
    cash_short_cents = db.Column(db.Integer, nullable=True)

    total_sales_cents = db.Column(db.Integer, nullable=True)
    total_discounts_cents = db.Column(db.Integer, nullable=True)
    total_void_cents = db.Column(db.Integer, nullable=True)
    transaction_count = db.Column(db.Integer, nullable=True)

    running_gross_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    running_net_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    running_discounts_cents = db.Column(db.Integer, nullable=False, default=0)
    running_vat_cents = db.Column(db.Integer, nullable=False, default=0)
    running_cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    running_card_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    running_other_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    running_credit_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    running_transactions = db.Column(db.Integer, nullable=False, default=0)
    running_void_cents = db.Column(db.Integer, nullable=False, default=0)
    running_void_count = db.Column(db.Integer, nullable=False, default=0)
    running_refund_cents = db.Column(db.Integer, nullable=False, default=0)
    running_return_count = db.Column(db.Integer, nullable=False, default=0)

    x_reading_count = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id])
    location = db.relationship("BusinessLocation")
    cash_movements = db.relationship("CashInOut", backref="shift", lazy=True, order_by="CashInOut.id")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def variance_cents(self) -> int | None:
        if self.ending_cash_cents is None or self.system_cash_cents is None:
            return None
        return self.ending_cash_cents - self.system_cash_cents

    def running_totals(self) -> dict:
        return {
            "gross_sales_cents": self.running_gross_sales_cents,
            "net_sales_cents": self.running_net_sales_cents,
            "discounts_cents": self.running_discounts_cents,
            "vat_cents": self.running_vat_cents,
            "cash_sales_cents": self.running_cash_sales_cents,
            "card_sales_cents": self.running_card_sales_cents,
            "other_sales_cents": self.running_other_sales_cents,
            "credit_sales_cents": self.running_credit_sales_cents,
            "transactions": self.running_transactions,
            "void_cents": self.running_void_cents,
            "void_count": self.running_void_count,
            "refund_cents": self.running_refund_cents,
            "return_count": self.running_return_count,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "shift_number": self.shift_number,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by": self.closed_by,
            "approved_by": self.approved_by,
            "beginning_cash_cents": self.beginning_cash_cents,
            "ending_cash_cents": self.ending_cash_cents,
            "system_cash_cents": self.system_cash_cents,
            "cash_over_cents": self.cash_over_cents,
            "cash_short_cents": self.cash_short_cents,
            "variance_cents": self.variance_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_discounts_cents": self.total_discounts_cents,
            "total_void_cents": self.total_void_cents,
            "transaction_count": self.transaction_count,
            "running_totals": self.running_totals(),
            "x_reading_count": self.x_reading_count,
            "notes": self.notes,
        }


class CashInOut(db.Model):
    """
    Cash moved into or out of the drawer outside of sales (float top-up,
    pickup, petty cash). Append-only.
    """
    __tablename__ = "cash_in_out"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)  # cash_in, cash_out
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class CashDenomination(db.Model):
    """Counted bills and coins at shift close."""
    __tablename__ = "cash_denominations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=False, unique=True)
    # JSON object {"<denomination cents>": count}
    counts_json = db.Column(db.Text, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    counted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)


class ZReading(db.Model):
    """
    End-of-shift Z reading.

    z_counter increments per location and never resets. accumulated_sales
    carries the grand total forward: previous accumulated + sales for the day.

    IMMUTABLE: Append-only.
    """
    __tablename__ = "z_readings"
    __table_args__ = (
        db.UniqueConstraint("location_id", "z_counter", name="uq_z_readings_location_counter"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("business_locations.id"), nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("cashier_shifts.id"), nullable=False, unique=True)

    z_counter = db.Column(db.Integer, nullable=False)
    previous_accumulated_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    sales_for_the_day_cents = db.Column(db.Integer, nullable=False, default=0)
    accumulated_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    reading_json = db.Column(db.Text, nullable=True)

    generated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "shift_id": self.shift_id,
            "z_counter": self.z_counter,
            "previous_accumulated_sales_cents": self.previous_accumulated_sales_cents,
            "sales_for_the_day_cents": self.sales_for_the_day_cents,
            "accumulated_sales_cents": self.accumulated_sales_cents,
            "generated_by": self.generated_by,
            "generated_at": to_utc_z(self.generated_at),
        }
