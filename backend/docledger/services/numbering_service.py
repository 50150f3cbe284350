# Overview: Sequential document numbering per tenant, numerator and year.

"""
Document Numbering Service

Numbers are strictly increasing and gapless per (tenant, numerator, year)
under normal operation. Allocation runs inside the caller's transaction:
a rolled-back finalization gives its number back.

Allocation is one atomic UPDATE ... SET next_number = next_number + 1,
which takes the row lock. The first allocation of a year inserts the
sequence row; if two transactions race on that insert, the loser gets an
IntegrityError and the enclosing finalize retry replays it.

A manually supplied number is accepted only if no document of the same
series holds it, and it pushes the sequence past itself so later automatic
numbers never collide with it.
"""

from __future__ import annotations

from sqlalchemy import case, update

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Document, DocumentSequence


def _validate_series(org_id: int, numerator_code: str, year: int) -> None:
    if not org_id:
        raise ValidationError("org_id is required", field="org_id")
    if not numerator_code:
        raise ValidationError("numerator_code is required", org_id=org_id, field="numerator_code")
    if not isinstance(year, int) or isinstance(year, bool) or year < 1900 or year > 9999:
        raise ValidationError("year is out of range", org_id=org_id, field="year")


def next_number(*, org_id: int, numerator_code: str, year: int) -> int:
    """
    Allocate the next number of a series inside the current transaction.
    """
    _validate_series(org_id, numerator_code, year)

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.numerator_code == numerator_code,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(org_id=org_id, numerator_code=numerator_code, year=year)
            .scalar()
        )
        return current - 1

    seq = DocumentSequence(org_id=org_id, numerator_code=numerator_code, year=year, next_number=2)
    db.session.add(seq)
    db.session.flush()
    return 1


def claim_number(*, org_id: int, numerator_code: str, year: int, number: int) -> int:
    """
    Reserve a manually chosen number.

    Raises:
        ValidationError if the number is not a positive integer
        ConflictError if a document of the series already holds it
    """
    _validate_series(org_id, numerator_code, year)
    if not isinstance(number, int) or isinstance(number, bool) or number < 1:
        raise ValidationError("number must be a positive integer", org_id=org_id, field="number")

    taken = (
        db.session.query(Document.id)
        .filter_by(org_id=org_id, numerator_code=numerator_code, fiscal_year=year, number=number)
        .first()
    )
    if taken:
        raise ConflictError(
            f"Number {number} is already used in {numerator_code}/{year}",
            org_id=org_id,
            document_id=taken.id,
            field="number",
        )

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.numerator_code == numerator_code,
            DocumentSequence.year == year,
        )
        .values(
            next_number=case(
                (DocumentSequence.next_number <= number, number + 1),
                else_=DocumentSequence.next_number,
            )
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        db.session.add(
            DocumentSequence(org_id=org_id, numerator_code=numerator_code, year=year, next_number=number + 1)
        )
        db.session.flush()
    return number


def peek_next_number(*, org_id: int, numerator_code: str, year: int) -> int:
    """Number the next automatic allocation would return. Consumes nothing."""
    _validate_series(org_id, numerator_code, year)
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(org_id=org_id, numerator_code=numerator_code, year=year)
        .scalar()
    )
    return current or 1
