# Overview: Service-layer operations for human-readable document numbers (S-0001, REF-0001).

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


SALE_PREFIX = "S"
REFUND_PREFIX = "REF"


def next_document_number(
    *,
    branch_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a branch/type.

    The counter row is bumped with a single UPDATE so two writers in the same
    branch cannot read the same value. Runs inside the caller's transaction;
    callers wrap their whole unit of work in run_with_retry.
    """
    if not branch_id:
        raise DocumentSequenceError("branch_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(branch_id=branch_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(DocumentSequence(branch_id=branch_id, document_type=document_type, next_number=2))
        db.session.flush()
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"
