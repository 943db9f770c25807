# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence

DOCUMENT_TYPE_ORDER = "ORDER"
DOCUMENT_TYPE_REFUND = "REFUND"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    location_id: int,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for a location/type.

    The counter is bumped with one UPDATE statement, so two transactions can
    never read the same value. Must run first in a unit of work: creating
    the counter row for a new location may roll the session back when
    another terminal created it at the same moment.
    """
    if not location_id:
        raise DocumentSequenceError("location_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.location_id == location_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(location_id, document_type) - 1
    else:
        seq = DocumentSequence(location_id=location_id, document_type=document_type, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
            next_num = 1
        except IntegrityError:
            db.session.rollback()
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_number(location_id, document_type) - 1

    return f"{prefix}-{location_id:03d}-{next_num:0{pad}d}"


def _current_number(location_id: int, document_type: str) -> int:
    db.session.flush()
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(location_id=location_id, document_type=document_type)
        .scalar()
    )
