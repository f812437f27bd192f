# Overview: Human-readable document numbers (invoices, shifts, POs, GRNs, transfers, returns).

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import month_stamp


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


# document_type -> (prefix, pad, resets monthly)
DOCUMENT_FORMATS = {
    "transfer": ("TR", 4, True),
    "invoice": ("INV", 6, False),
    "shift": ("SHIFT", 5, False),
    "purchase": ("PO", 5, False),
    "receipt": ("GRN", 5, False),
    "customer_return": ("RET", 6, False),
    "supplier_return": ("SR", 4, True),
}


def _allocate(business_id: int, document_type: str, period: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.business_id == business_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(business_id=business_id, document_type=document_type, period=period)
            .scalar()
        )
        return current - 1

    db.session.add(DocumentSequence(
        business_id=business_id,
        document_type=document_type,
        period=period,
        next_number=2,
    ))
    db.session.flush()
    return 1


def next_document_number(*, business_id: int, document_type: str) -> str:
    """
    Allocate the next number for a business/document type.

    Runs inside the caller's transaction: the counter only advances if the
    document itself commits. Monthly formats render as PREFIX-YYYYMM-NNNN
    (e.g. TR-202601-0001); running formats as PREFIX-NNNNNN.
    """
    if not business_id:
        raise DocumentSequenceError("business_id is required")
    if document_type not in DOCUMENT_FORMATS:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")

    prefix, pad, monthly = DOCUMENT_FORMATS[document_type]
    period = month_stamp() if monthly else ""
    number = _allocate(business_id, document_type, period)

    if monthly:
        return f"{prefix}-{period}-{number:0{pad}d}"
    return f"{prefix}-{number:0{pad}d}"
