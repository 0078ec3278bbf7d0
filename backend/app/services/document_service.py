# Overview: Atomic per-day document numbers for bills, returns and purchase orders.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationError
from ..models import DocumentSequence
from app.time_utils import utcnow
from .concurrency import run_with_retry


def _allocate(document_type: str, sequence_date: str) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == sequence_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, sequence_date=sequence_date)
            .scalar()
        )
        return current - 1

    seq = DocumentSequence(document_type=document_type, sequence_date=sequence_date, next_number=2)
    db.session.add(seq)
    try:
        db.session.flush()
        return 1
    except IntegrityError:
        db.session.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, sequence_date=sequence_date)
            .scalar()
        )
        return current - 1


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    on_date: date | datetime | None = None,
    pad: int = 4,
) -> str:
    """
    Atomically allocate the next document number for a type and day.

    Format: PREFIX-YYYYMMDD-NNNN. Numbers restart at 1 each day and are
    strictly increasing within the day. Return bills use it when the
    caller does not supply a number.
    """
    if not document_type:
        raise ValidationError("document_type is required")
    if not prefix:
        raise ValidationError("prefix is required")

    day = on_date or utcnow()
    sequence_date = day.strftime("%Y%m%d")

    def _op() -> str:
        number = _allocate(document_type, sequence_date)
        db.session.commit()
        return f"{prefix}-{sequence_date}-{number:0{pad}d}"

    return run_with_retry(_op)
