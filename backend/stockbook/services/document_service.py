# Overview: Atomic allocation of per-business document numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import RetryableConflict


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def ensure_sequence(business_id: int, document_type: str) -> DocumentSequence:
    """Create the counter row for a business/type if missing. Caller commits."""
    seq = (
        db.session.query(DocumentSequence)
        .filter_by(business_id=business_id, document_type=document_type)
        .first()
    )
    if seq is None:
        seq = DocumentSequence(business_id=business_id, document_type=document_type, next_number=1)
        db.session.add(seq)
        db.session.flush()
    return seq


def next_document_number(*, business_id: int, document_type: str) -> int:
    """
    Allocate the next number for a business/type inside the caller's transaction.

    The counter is bumped with a single UPDATE ... SET next_number = next_number + 1,
    so two concurrent callers can never read the same value. If the counter row
    does not exist yet, it is inserted; losing that insert race raises
    RetryableConflict and the caller's run_with_retry starts over.
    """
    if not business_id:
        raise DocumentSequenceError("business_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.business_id == business_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(business_id=business_id, document_type=document_type)
            .scalar()
        )
        return current - 1

    seq = DocumentSequence(business_id=business_id, document_type=document_type, next_number=2)
    db.session.add(seq)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise RetryableConflict("document sequence created concurrently") from exc
    return 1
