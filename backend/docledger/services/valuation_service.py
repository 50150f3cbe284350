# Overview: Per-product annual purchase/sale statistics and weighted average cost (CMP).

"""
Valuation Engine

ProductAnnualStat is a cache over finalized, non-deleted, valuation-impacting
documents. Two paths maintain it and both go through fold_line(), so they
agree to the last digit:

- apply_document(): incremental update during finalization
- rebuild_year(): delete the year's rows and replay its documents ordered by
  (date, id)

Folding rules for one line (quantity q, unit price p, net n):
- sign > 0: purchased_quantity += q, purchased_amount += n, last_cost = p,
  weighted_average_cost = round4(purchased_amount / purchased_quantity)
  computed on the updated totals; left unchanged if that quantity <= 0
- sign < 0: sold_quantity += q, sold_amount += n; costs untouched
- sign > 0 on a SALE-direction document (customer credit note): sold_quantity
  -= q, sold_amount -= n; costs untouched

last_cost depends on fold order, so a document dated before another live
document of its year is not folded incrementally: the year is replayed.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import and_, func, or_

from ..errors import ConsistencyError, ValidationError
from ..extensions import db
from ..money import round_cost, ZERO
from ..models import Document, Product, ProductAnnualStat
from ..time_utils import utcnow, year_bounds
from .concurrency import lock_for_update, lock_valuation_year
from .document_type_service import DIRECTION_SALE
from .stock_service import current_stock
from .tenant_service import RequestContext, require_admin, require_product_in_org, validate_org_active

logger = logging.getLogger(__name__)

STAT_SORT_FIELDS = {
    "product_code": Product.code,
    "product_name": Product.name,
    "product_id": ProductAnnualStat.product_id,
    "updated_at": ProductAnnualStat.updated_at,
}


def _empty_stat(org_id: int, product_id: int, year: int) -> ProductAnnualStat:
    return ProductAnnualStat(
        org_id=org_id,
        product_id=product_id,
        year=year,
        purchased_quantity=Decimal("0.0000"),
        purchased_amount=Decimal("0.00"),
        sold_quantity=Decimal("0.0000"),
        sold_amount=Decimal("0.00"),
        weighted_average_cost=Decimal("0.0000"),
        last_cost=Decimal("0.0000"),
    )


def fold_line(
    stat: ProductAnnualStat,
    *,
    operation_sign: int,
    direction: str,
    quantity: Decimal,
    unit_price: Decimal,
    net: Decimal,
) -> None:
    """Apply one document line to a stat row in place."""
    if operation_sign > 0 and direction == DIRECTION_SALE:
        # Goods coming back from a customer undo part of a sale
        stat.sold_quantity = stat.sold_quantity - quantity
        stat.sold_amount = stat.sold_amount - net
    elif operation_sign > 0:
        new_quantity = stat.purchased_quantity + quantity
        new_amount = stat.purchased_amount + net
        if new_quantity > ZERO:
            stat.weighted_average_cost = round_cost(new_amount / new_quantity)
        stat.purchased_quantity = new_quantity
        stat.purchased_amount = new_amount
        stat.last_cost = round_cost(unit_price)
    else:
        stat.sold_quantity = stat.sold_quantity + quantity
        stat.sold_amount = stat.sold_amount + net


def _get_or_create_stat(org_id: int, product_id: int, year: int) -> ProductAnnualStat:
    query = db.session.query(ProductAnnualStat).filter_by(org_id=org_id, product_id=product_id, year=year)
    stat = lock_for_update(query).first()
    if stat is None:
        stat = _empty_stat(org_id, product_id, year)
        db.session.add(stat)
        db.session.flush()
    return stat


def _has_later_documents(document: Document) -> bool:
    """True if a live valuation document of the same year sorts after this one by (date, id)."""
    later = (
        db.session.query(Document.id)
        .filter(
            Document.org_id == document.org_id,
            Document.fiscal_year == document.fiscal_year,
            Document.impacts_valuation.is_(True),
            Document.is_deleted.is_(False),
            Document.id != document.id,
            or_(
                Document.date > document.date,
                and_(Document.date == document.date, Document.id > document.id),
            ),
        )
        .first()
    )
    return later is not None


def apply_document(document: Document) -> int:
    """
    Incremental path: fold a freshly finalized document into its year's stats.

    Runs inside the finalize transaction; the caller commits. Returns the
    number of lines folded.
    """
    if not document.impacts_valuation:
        return 0

    if _has_later_documents(document):
        logger.info(
            "Document %s (id=%s) is backdated; replaying valuation for org %s year %s",
            document.display_number, document.id, document.org_id, document.fiscal_year,
        )
        replay_year(document.org_id, document.fiscal_year)
        return sum(1 for line in document.lines if line.product_id is not None)

    lock_valuation_year(document.org_id, document.fiscal_year, exclusive=False)

    folded = 0
    stats: dict[int, ProductAnnualStat] = {}
    for line in document.lines:
        if line.product_id is None:
            continue
        stat = stats.get(line.product_id)
        if stat is None:
            stat = _get_or_create_stat(document.org_id, line.product_id, document.fiscal_year)
            stats[line.product_id] = stat
        fold_line(
            stat,
            operation_sign=document.operation_sign,
            direction=document.direction,
            quantity=line.quantity,
            unit_price=line.unit_price,
            net=line.net_amount,
        )
        folded += 1

    db.session.flush()
    return folded


def replay_year(org_id: int, year: int) -> int:
    """
    Delete and replay one tenant/year inside the current transaction.

    Raises:
        ConsistencyError when a replayed document has no policy or references a missing product
    """
    db.session.flush()
    lock = lock_valuation_year(org_id, year, exclusive=True)

    db.session.query(ProductAnnualStat).filter_by(org_id=org_id, year=year).delete()

    start, end = year_bounds(year)
    documents = (
        db.session.query(Document)
        .filter(
            Document.org_id == org_id,
            Document.impacts_valuation.is_(True),
            Document.is_deleted.is_(False),
            Document.date >= start,
            Document.date <= end,
        )
        .order_by(Document.date.asc(), Document.id.asc())
        .all()
    )

    known_products: set[int] = set()
    stats: dict[int, ProductAnnualStat] = {}
    for document in documents:
        if document.operation_sign not in (1, -1) or document.document_type is None:
            raise ConsistencyError(
                f"Document {document.display_number} has no usable document type policy",
                org_id=org_id,
                document_id=document.id,
                field="document_type_id",
            )
        for line in document.lines:
            if line.product_id is None:
                continue
            if line.product_id not in known_products:
                exists = (
                    db.session.query(Product.id)
                    .filter(Product.id == line.product_id, Product.org_id == org_id)
                    .first()
                )
                if exists is None:
                    raise ConsistencyError(
                        f"Document {document.display_number} references missing product {line.product_id}",
                        org_id=org_id,
                        document_id=document.id,
                        field="product_id",
                    )
                known_products.add(line.product_id)
            stat = stats.get(line.product_id)
            if stat is None:
                stat = _empty_stat(org_id, line.product_id, year)
                db.session.add(stat)
                stats[line.product_id] = stat
            fold_line(
                stat,
                operation_sign=document.operation_sign,
                direction=document.direction,
                quantity=line.quantity,
                unit_price=line.unit_price,
                net=line.net_amount,
            )

    lock.last_rebuilt_at = utcnow()
    lock.last_rebuild_documents = len(documents)
    db.session.flush()
    return len(documents)


def rebuild_year(*, org_id: int, year: int) -> int:
    """
    Recompute every ProductAnnualStat of a tenant/year from its documents.

    Idempotent. Holds the exclusive valuation lock for the (tenant, year)
    for the whole delete-and-replay. Commits on success, rolls back on error.

    Returns:
        Number of documents replayed
    """
    if not isinstance(year, int) or isinstance(year, bool) or year < 1900 or year > 9999:
        raise ValidationError("year is out of range", org_id=org_id, field="year")
    try:
        processed = replay_year(org_id, year)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Rebuilt valuation for org %s year %s: %d documents replayed", org_id, year, processed)
    return processed


def rebuild_year_for(ctx: RequestContext, year: int) -> int:
    """Admin-only entry point used by the HTTP layer."""
    require_admin(ctx)
    validate_org_active(ctx.org_id)
    return rebuild_year(org_id=ctx.org_id, year=year)


def get_product_stat(org_id: int, product_id: int, year: int) -> dict:
    """
    Stats for one product and year plus its current stock.

    A product with no valuation activity in the year reports zeros.
    """
    product = require_product_in_org(product_id, org_id)
    stat = (
        db.session.query(ProductAnnualStat)
        .filter_by(org_id=org_id, product_id=product_id, year=year)
        .first()
    )
    data = (stat or _empty_stat(org_id, product_id, year)).to_dict()
    data["product_code"] = product.code
    data["product_name"] = product.name
    data["current_stock"] = str(current_stock(org_id, product_id))
    return data


def list_product_stats(
    *,
    org_id: int,
    year: int,
    search: str | None = None,
    sort: str = "product_code",
    direction: str = "asc",
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[ProductAnnualStat], int]:
    if sort not in STAT_SORT_FIELDS:
        raise ValidationError(f"sort must be one of: {', '.join(sorted(STAT_SORT_FIELDS))}", org_id=org_id, field="sort")
    if direction not in ("asc", "desc"):
        raise ValidationError("direction must be asc or desc", org_id=org_id, field="direction")

    query = (
        db.session.query(ProductAnnualStat)
        .join(Product, Product.id == ProductAnnualStat.product_id)
        .filter(ProductAnnualStat.org_id == org_id, ProductAnnualStat.year == year)
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.code.ilike(pattern), Product.name.ilike(pattern)))

    total = query.with_entities(func.count(ProductAnnualStat.id)).scalar()

    column = STAT_SORT_FIELDS[sort]
    ordering = column.asc() if direction == "asc" else column.desc()
    items = query.order_by(ordering, ProductAnnualStat.id.asc()).offset(offset).limit(limit).all()
    return items, total
