# Overview: Reads, annotation edits and soft deletion of finalized documents.

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping

from sqlalchemy import or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Document, PaymentAllocation, Installment
from ..time_utils import utcnow
from .stock_service import reverse_document_movements
from .tenant_service import RequestContext, require_write, validate_org_active
from .valuation_service import replay_year

logger = logging.getLogger(__name__)

# Everything else on a finalized document is frozen
MUTABLE_FIELDS = {"notes"}

SORT_FIELDS = {
    "date": Document.date,
    "number": Document.number,
    "created_at": Document.created_at,
    "id": Document.id,
}

UpdateDocumentInput = Mapping[str, Any]


def get_document(org_id: int, document_id: int, *, include_deleted: bool = True) -> Document:
    document = db.session.get(Document, document_id)
    if document is None or document.org_id != org_id:
        raise NotFoundError("Document not found", org_id=org_id, document_id=document_id)
    if document.is_deleted and not include_deleted:
        raise NotFoundError("Document not found", org_id=org_id, document_id=document_id)
    return document


def list_documents(
    *,
    org_id: int,
    document_type_id: int | None = None,
    counterparty_id: int | None = None,
    fiscal_year: int | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    search: str | None = None,
    include_deleted: bool = False,
    sort: str = "date",
    direction: str = "desc",
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Document], int]:
    """
    List documents with filters and pagination.

    Returns:
        Tuple of (documents, total_count)
    """
    if sort not in SORT_FIELDS:
        raise ValidationError(f"sort must be one of: {', '.join(sorted(SORT_FIELDS))}", org_id=org_id, field="sort")
    if direction not in ("asc", "desc"):
        raise ValidationError("direction must be asc or desc", org_id=org_id, field="direction")

    query = db.session.query(Document).filter(Document.org_id == org_id)

    if not include_deleted:
        query = query.filter(Document.is_deleted.is_(False))
    if document_type_id is not None:
        query = query.filter(Document.document_type_id == document_type_id)
    if counterparty_id is not None:
        query = query.filter(Document.counterparty_id == counterparty_id)
    if fiscal_year is not None:
        query = query.filter(Document.fiscal_year == fiscal_year)
    if from_date is not None:
        query = query.filter(Document.date >= from_date)
    if to_date is not None:
        query = query.filter(Document.date <= to_date)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Document.counterparty_name.ilike(pattern),
                Document.notes.ilike(pattern),
                Document.type_code.ilike(pattern),
            )
        )

    total = query.count()

    column = SORT_FIELDS[sort]
    ordering = column.asc() if direction == "asc" else column.desc()
    tiebreak = Document.id.asc() if direction == "asc" else Document.id.desc()
    documents = query.order_by(ordering, tiebreak).offset(offset).limit(limit).all()

    return documents, total


def update_document(ctx: RequestContext, document_id: int, changes: UpdateDocumentInput) -> Document:
    """
    Apply annotation-only changes to a finalized document.

    Raises:
        ValidationError if any frozen field is present in changes
    """
    require_write(ctx)
    validate_org_active(ctx.org_id)
    document = get_document(ctx.org_id, document_id)

    if document.is_deleted:
        raise ValidationError("Deleted documents cannot be edited", org_id=ctx.org_id, document_id=document.id)

    frozen = sorted(set(changes) - MUTABLE_FIELDS)
    if frozen:
        raise ValidationError(
            f"Finalized documents are immutable; issue a corrective document to change: {', '.join(frozen)}",
            org_id=ctx.org_id,
            document_id=document.id,
            field=frozen[0],
        )

    if "notes" in changes:
        notes = changes["notes"]
        if notes is not None and not isinstance(notes, str):
            raise ValidationError("notes must be a string", org_id=ctx.org_id, document_id=document.id, field="notes")
        document.notes = notes

    db.session.commit()
    return document


def delete_document(ctx: RequestContext, document_id: int) -> Document:
    """
    Soft-delete a finalized document.

    Stock is given back through compensating movements; the document's
    valuation year is rebuilt without it. Its number stays taken.

    Raises:
        ValidationError if the document is already deleted
        ConflictError if it has recorded payments
    """
    require_write(ctx)
    validate_org_active(ctx.org_id)
    document = get_document(ctx.org_id, document_id)

    if document.is_deleted:
        raise ValidationError("Document is already deleted", org_id=ctx.org_id, document_id=document.id)

    paid = (
        db.session.query(PaymentAllocation.id)
        .join(Installment, Installment.id == PaymentAllocation.installment_id)
        .filter(Installment.document_id == document.id)
        .first()
    )
    if paid:
        raise ConflictError(
            "Document has recorded payments and cannot be deleted",
            org_id=ctx.org_id,
            document_id=document.id,
        )

    try:
        reversals = reverse_document_movements(document, user_id=ctx.user_id)

        document.is_deleted = True
        document.deleted_at = utcnow()
        document.deleted_by_user_id = ctx.user_id
        document.installments.clear()
        db.session.flush()

        if document.impacts_valuation:
            replay_year(ctx.org_id, document.fiscal_year)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Deleted document %s (id=%s) for org %s: %d compensating movements",
        document.display_number, document.id, ctx.org_id, len(reversals),
    )
    return document
