from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per-business counters for human-readable document numbers.

    period is "" for running sequences and "YYYYMM" for ones that reset
    monthly (transfer numbers).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_id", "document_type", "period", name="uq_document_sequences_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    period = db.Column(db.String(8), nullable=False, default="")
    next_number = db.Column(db.Integer, nullable=False, default=1)
