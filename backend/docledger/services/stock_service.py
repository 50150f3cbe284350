# Overview: Append-only stock ledger; current stock is a fold over movements.

"""
Stock Ledger Service

INVARIANTS:
- Movements are inserted, never updated or deleted.
- current_stock(product, warehouse) == sum of signed_quantity over its movements.
- Undoing a document inserts compensating rows (reversal_of_id -> original).

The fold runs in Python over exact Decimals rather than SQL SUM, so SQLite's
float arithmetic never touches quantities.
"""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import or_

from ..errors import ValidationError
from ..extensions import db
from ..money import parse_signed_quantity, parse_quantity, ZERO
from ..models import Document, StockMovement
from ..time_utils import utcnow
from .document_type_service import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_INITIAL_LOAD,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TYPES,
)
from .tenant_service import (
    RequestContext,
    require_product_in_org,
    require_warehouse_in_org,
    require_write,
    validate_org_active,
)

MANUAL_MOVEMENT_TYPES = {MOVEMENT_INITIAL_LOAD, MOVEMENT_ADJUSTMENT}

SORT_FIELDS = {
    "occurred_at": StockMovement.occurred_at,
    "id": StockMovement.id,
    "movement_type": StockMovement.movement_type,
    "product_id": StockMovement.product_id,
    "warehouse_id": StockMovement.warehouse_id,
    "document_number": StockMovement.document_number_snapshot,
}


def append_movement(
    *,
    org_id: int,
    product_id: int,
    warehouse_id: int,
    signed_quantity: Decimal,
    movement_type: str,
    document: Document | None = None,
    occurred_at: datetime | None = None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
    reversal_of_id: int | None = None,
) -> StockMovement:
    """
    Insert one movement into the current transaction (flushes, does not commit).
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement_type {movement_type!r}", org_id=org_id, field="movement_type")
    if not isinstance(signed_quantity, Decimal) or signed_quantity == ZERO:
        raise ValidationError("signed_quantity must be a non-zero Decimal", org_id=org_id, field="signed_quantity")

    movement = StockMovement(
        org_id=org_id,
        product_id=product_id,
        warehouse_id=warehouse_id,
        signed_quantity=signed_quantity,
        movement_type=movement_type,
        document_id=document.id if document is not None else None,
        document_number_snapshot=document.display_number if document is not None else None,
        occurred_at=occurred_at or utcnow(),
        notes=notes,
        created_by_user_id=created_by_user_id,
        reversal_of_id=reversal_of_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def current_stock(org_id: int, product_id: int, warehouse_id: int | None = None) -> Decimal:
    """Signed sum of movements, optionally for a single warehouse."""
    query = db.session.query(StockMovement.signed_quantity).filter(
        StockMovement.org_id == org_id,
        StockMovement.product_id == product_id,
    )
    if warehouse_id is not None:
        query = query.filter(StockMovement.warehouse_id == warehouse_id)
    return sum((qty for (qty,) in query.all()), ZERO)


def current_stocks(org_id: int, product_ids: list[int], warehouse_id: int | None = None) -> dict[int, Decimal]:
    """current_stock for many products in one query; unknown products map to 0."""
    totals = {pid: ZERO for pid in product_ids}
    if not product_ids:
        return totals
    query = db.session.query(StockMovement.product_id, StockMovement.signed_quantity).filter(
        StockMovement.org_id == org_id,
        StockMovement.product_id.in_(product_ids),
    )
    if warehouse_id is not None:
        query = query.filter(StockMovement.warehouse_id == warehouse_id)
    for product_id, qty in query.all():
        totals[product_id] += qty
    return totals


def stock_by_warehouse(org_id: int, product_id: int) -> dict[int, Decimal]:
    totals: dict[int, Decimal] = {}
    rows = (
        db.session.query(StockMovement.warehouse_id, StockMovement.signed_quantity)
        .filter(StockMovement.org_id == org_id, StockMovement.product_id == product_id)
        .all()
    )
    for warehouse_id, qty in rows:
        totals[warehouse_id] = totals.get(warehouse_id, ZERO) + qty
    return totals


def _manual_quantity(product, value, *, signed: bool) -> Decimal:
    scale = product.quantity_decimals
    if signed:
        return parse_signed_quantity(value, scale=scale)
    return parse_quantity(value, scale=scale)


def record_adjustment(
    ctx: RequestContext,
    *,
    product_id: int,
    warehouse_id: int,
    quantity,
    movement_type: str = MOVEMENT_ADJUSTMENT,
    notes: str | None = None,
    occurred_at: datetime | None = None,
) -> StockMovement:
    """
    Manual stock correction outside any document (initial load or inventory adjustment).

    quantity is signed: positive adds stock, negative removes it.
    """
    require_write(ctx)
    validate_org_active(ctx.org_id)

    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(
            f"movement_type must be one of: {', '.join(sorted(MANUAL_MOVEMENT_TYPES))}",
            org_id=ctx.org_id,
            field="movement_type",
        )
    product = require_product_in_org(product_id, ctx.org_id)
    if not product.manage_stock:
        raise ValidationError(f"Product {product.code} does not manage stock", org_id=ctx.org_id, field="product_id")
    require_warehouse_in_org(warehouse_id, ctx.org_id)
    qty = _manual_quantity(product, quantity, signed=True)

    movement = append_movement(
        org_id=ctx.org_id,
        product_id=product.id,
        warehouse_id=warehouse_id,
        signed_quantity=qty,
        movement_type=movement_type,
        occurred_at=occurred_at,
        notes=notes,
        created_by_user_id=ctx.user_id,
    )
    db.session.commit()
    return movement


def record_transfer(
    ctx: RequestContext,
    *,
    product_id: int,
    from_warehouse_id: int,
    to_warehouse_id: int,
    quantity,
    notes: str | None = None,
    occurred_at: datetime | None = None,
) -> tuple[StockMovement, StockMovement]:
    """Move stock between two warehouses as a TRANSFER_OUT / TRANSFER_IN pair."""
    require_write(ctx)
    validate_org_active(ctx.org_id)

    if from_warehouse_id == to_warehouse_id:
        raise ValidationError("Source and destination warehouse must differ", org_id=ctx.org_id, field="to_warehouse_id")
    product = require_product_in_org(product_id, ctx.org_id)
    if not product.manage_stock:
        raise ValidationError(f"Product {product.code} does not manage stock", org_id=ctx.org_id, field="product_id")
    require_warehouse_in_org(from_warehouse_id, ctx.org_id, field="from_warehouse_id")
    require_warehouse_in_org(to_warehouse_id, ctx.org_id, field="to_warehouse_id")
    qty = _manual_quantity(product, quantity, signed=False)

    when = occurred_at or utcnow()
    out_movement = append_movement(
        org_id=ctx.org_id,
        product_id=product.id,
        warehouse_id=from_warehouse_id,
        signed_quantity=-qty,
        movement_type=MOVEMENT_TRANSFER_OUT,
        occurred_at=when,
        notes=notes,
        created_by_user_id=ctx.user_id,
    )
    in_movement = append_movement(
        org_id=ctx.org_id,
        product_id=product.id,
        warehouse_id=to_warehouse_id,
        signed_quantity=qty,
        movement_type=MOVEMENT_TRANSFER_IN,
        occurred_at=when,
        notes=notes,
        created_by_user_id=ctx.user_id,
    )
    db.session.commit()
    return out_movement, in_movement


def reverse_document_movements(document: Document, *, user_id: int | None = None) -> list[StockMovement]:
    """
    Insert compensating rows for every not-yet-reversed movement of a document.

    Runs inside the caller's transaction.
    """
    originals = (
        db.session.query(StockMovement)
        .filter(
            StockMovement.org_id == document.org_id,
            StockMovement.document_id == document.id,
            StockMovement.reversal_of_id.is_(None),
        )
        .order_by(StockMovement.id)
        .all()
    )
    already_reversed = {
        rid for (rid,) in db.session.query(StockMovement.reversal_of_id)
        .filter(StockMovement.reversal_of_id.in_([m.id for m in originals]))
        .all()
    } if originals else set()

    when = utcnow()
    reversals = []
    for original in originals:
        if original.id in already_reversed:
            continue
        reversals.append(
            append_movement(
                org_id=original.org_id,
                product_id=original.product_id,
                warehouse_id=original.warehouse_id,
                signed_quantity=-original.signed_quantity,
                movement_type=original.movement_type,
                document=document,
                occurred_at=when,
                notes=f"Reversal of movement {original.id}",
                created_by_user_id=user_id,
                reversal_of_id=original.id,
            )
        )
    return reversals


def list_movements(
    *,
    org_id: int,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    movement_type: str | None = None,
    document_id: int | None = None,
    from_date: date | datetime | None = None,
    to_date: date | datetime | None = None,
    search: str | None = None,
    sort: str = "occurred_at",
    direction: str = "desc",
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    """
    Filtered, sorted, paginated movement listing for audit screens.

    Date bounds are inclusive; a plain date as to_date covers that whole day.
    search matches the document number snapshot or the notes.

    Returns:
        Tuple of (movements, total_count)
    """
    if sort not in SORT_FIELDS:
        raise ValidationError(f"sort must be one of: {', '.join(sorted(SORT_FIELDS))}", org_id=org_id, field="sort")
    if direction not in ("asc", "desc"):
        raise ValidationError("direction must be asc or desc", org_id=org_id, field="direction")
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement_type {movement_type!r}", org_id=org_id, field="movement_type")

    query = db.session.query(StockMovement).filter(StockMovement.org_id == org_id)

    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(StockMovement.warehouse_id == warehouse_id)
    if movement_type is not None:
        query = query.filter(StockMovement.movement_type == movement_type)
    if document_id is not None:
        query = query.filter(StockMovement.document_id == document_id)
    if from_date is not None:
        if not isinstance(from_date, datetime):
            from_date = datetime.combine(from_date, time.min)
        query = query.filter(StockMovement.occurred_at >= from_date)
    if to_date is not None:
        if not isinstance(to_date, datetime):
            to_date = datetime.combine(to_date, time.max)
        query = query.filter(StockMovement.occurred_at <= to_date)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                StockMovement.document_number_snapshot.ilike(pattern),
                StockMovement.notes.ilike(pattern),
            )
        )

    total = query.count()

    column = SORT_FIELDS[sort]
    ordering = column.asc() if direction == "asc" else column.desc()
    tiebreak = StockMovement.id.asc() if direction == "asc" else StockMovement.id.desc()
    items = query.order_by(ordering, tiebreak).offset(offset).limit(limit).all()

    return items, total
