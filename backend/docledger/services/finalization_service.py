# Overview: Document finalization pipeline; the single write path that creates documents.

"""
Document Finalization Pipeline

DRAFT (input only) -> FINALIZING (inside one transaction) -> FINALIZED.

Steps, all in one transaction, all-or-nothing:
1. Validate: write permission, active tenant, at least one line, policy
   resolvable, counterparty/products/warehouses in the tenant, decimal scales.
   Installments are planned here too so a bad schedule fails before writes.
2. Snapshot the counterparty onto the document.
3. Per line: resolve warehouse, net = round2(q * p), vat = round2(net * rate);
   accumulate totals.
4. Number the document (automatic or claimed manual number).
5. Policy moves stock: one movement per stock-managed product line with
   signed_quantity = operation_sign * quantity.
6. Policy impacts valuation: fold lines into ProductAnnualStat.
7. Payment condition present: persist installments from the gross total.
8. Mark FINALIZED and commit.

The whole transaction is retried on lock timeouts, version clashes and
unique-key races; exhausting retries raises ConflictError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConfigurationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..money import line_totals, parse_price, parse_quantity, parse_vat_rate, ZERO
from ..models import Document, DocumentLine
from ..time_utils import parse_iso_date, utcnow
from . import numbering_service, stock_service, valuation_service
from .concurrency import RETRYABLE_ERRORS, run_with_retry
from .document_type_service import resolve_policy, ResolvedPolicy
from .payment_schedule_service import expand, persist_installments
from .tenant_service import (
    RequestContext,
    require_counterparty_in_org,
    require_payment_condition_in_org,
    require_product_in_org,
    require_warehouse_in_org,
    require_write,
    validate_org_active,
)
from .warehouse_service import resolve_warehouse

logger = logging.getLogger(__name__)

STATUS_FINALIZED = "FINALIZED"

MAX_LINES = 1000


@dataclass
class LineInput:
    quantity: Any
    unit_price: Any
    vat_rate: Any = "0"
    product_id: int | None = None
    description: str | None = None
    warehouse_id: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "LineInput":
        return cls(
            quantity=data.get("quantity"),
            unit_price=data.get("unit_price"),
            vat_rate=data.get("vat_rate", "0"),
            product_id=data.get("product_id"),
            description=data.get("description"),
            warehouse_id=data.get("warehouse_id"),
        )


@dataclass
class CreateDocumentInput:
    document_type_id: int
    date: Any
    lines: list[LineInput] = field(default_factory=list)
    counterparty_id: int | None = None
    main_warehouse_id: int | None = None
    payment_condition_id: int | None = None
    number: int | None = None
    notes: str | None = None
    source_document_id: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "CreateDocumentInput":
        raw_lines = data.get("lines") or []
        if not isinstance(raw_lines, list) or not all(isinstance(line, dict) for line in raw_lines):
            raise ValidationError("lines must be a list of objects", field="lines")
        return cls(
            document_type_id=data.get("document_type_id"),
            date=data.get("date"),
            lines=[LineInput.from_dict(line) for line in raw_lines],
            counterparty_id=data.get("counterparty_id"),
            main_warehouse_id=data.get("main_warehouse_id"),
            payment_condition_id=data.get("payment_condition_id"),
            number=data.get("number"),
            notes=data.get("notes"),
            source_document_id=data.get("source_document_id"),
        )


@dataclass
class _PreparedLine:
    position: int
    product: Any
    description: str | None
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal
    warehouse_id: int | None
    net: Decimal
    vat: Decimal
    gross: Decimal

    @property
    def moves_stock(self) -> bool:
        return self.product is not None and bool(self.product.manage_stock)


def _snapshot_fields(counterparty) -> dict:
    if counterparty is None:
        return {
            "counterparty_id": None,
            "counterparty_name": None,
            "counterparty_vat_number": None,
            "counterparty_fiscal_code": None,
            "counterparty_sdi_code": None,
            "counterparty_address": None,
            "counterparty_city": None,
            "counterparty_province": None,
            "counterparty_zip_code": None,
            "counterparty_country": None,
        }
    return {
        "counterparty_id": counterparty.id,
        "counterparty_name": counterparty.business_name,
        "counterparty_vat_number": counterparty.vat_number,
        "counterparty_fiscal_code": counterparty.fiscal_code,
        "counterparty_sdi_code": counterparty.sdi_code,
        "counterparty_address": counterparty.address,
        "counterparty_city": counterparty.city,
        "counterparty_province": counterparty.province,
        "counterparty_zip_code": counterparty.zip_code,
        "counterparty_country": counterparty.country or "IT",
    }


def _prepare_lines(ctx: RequestContext, data: CreateDocumentInput, policy: ResolvedPolicy) -> list[_PreparedLine]:
    default_scale = current_app.config.get("DEFAULT_QUANTITY_DECIMALS", 4)
    prepared = []
    for i, line in enumerate(data.lines):
        prefix = f"lines[{i}]"
        product = None
        if line.product_id is not None:
            product = require_product_in_org(line.product_id, ctx.org_id, field=f"{prefix}.product_id")
        elif not (line.description or "").strip():
            raise ValidationError("Free-text lines need a description", org_id=ctx.org_id, field=f"{prefix}.description")

        scale = product.quantity_decimals if product is not None else default_scale
        quantity = parse_quantity(line.quantity, field=f"{prefix}.quantity", scale=scale)
        unit_price = parse_price(line.unit_price, field=f"{prefix}.unit_price")
        vat_rate = parse_vat_rate(line.vat_rate, field=f"{prefix}.vat_rate")

        if line.warehouse_id is not None:
            require_warehouse_in_org(line.warehouse_id, ctx.org_id, field=f"{prefix}.warehouse_id")

        needs_warehouse = policy.moves_stock and product is not None and product.manage_stock
        if needs_warehouse:
            try:
                warehouse_id = resolve_warehouse(line, product, data, field=f"{prefix}.warehouse_id")
            except ConfigurationError as exc:
                exc.org_id = ctx.org_id
                raise
        else:
            warehouse_id = line.warehouse_id or (product.default_warehouse_id if product is not None else None) or data.main_warehouse_id

        net, vat, gross = line_totals(quantity, unit_price, vat_rate)
        prepared.append(
            _PreparedLine(
                position=i + 1,
                product=product,
                description=line.description or (product.name if product is not None else None),
                quantity=quantity,
                unit_price=unit_price,
                vat_rate=vat_rate,
                warehouse_id=warehouse_id,
                net=net,
                vat=vat,
                gross=gross,
            )
        )
    return prepared


def _finalize(ctx: RequestContext, data: CreateDocumentInput) -> Document:
    # 1. Validate (no writes before this block completes)
    require_write(ctx)
    validate_org_active(ctx.org_id)

    if not data.lines:
        raise ValidationError("A document needs at least one line", org_id=ctx.org_id, field="lines")
    if len(data.lines) > MAX_LINES:
        raise ValidationError(f"A document may have at most {MAX_LINES} lines", org_id=ctx.org_id, field="lines")

    policy = resolve_policy(ctx.org_id, data.document_type_id)

    try:
        doc_date = parse_iso_date(data.date)
    except ValueError:
        raise ValidationError("date must be an ISO date (YYYY-MM-DD)", org_id=ctx.org_id, field="date")
    if doc_date is None:
        raise ValidationError("date is required", org_id=ctx.org_id, field="date")

    counterparty = None
    if data.counterparty_id is not None:
        counterparty = require_counterparty_in_org(data.counterparty_id, ctx.org_id)
    if data.main_warehouse_id is not None:
        require_warehouse_in_org(data.main_warehouse_id, ctx.org_id, field="main_warehouse_id")
    if data.source_document_id is not None:
        source = db.session.get(Document, data.source_document_id)
        if source is None or source.org_id != ctx.org_id:
            raise NotFoundError("Source document not found", org_id=ctx.org_id, field="source_document_id")

    prepared = _prepare_lines(ctx, data, policy)

    net_total = sum((p.net for p in prepared), Decimal("0.00"))
    vat_total = sum((p.vat for p in prepared), Decimal("0.00"))
    gross_total = net_total + vat_total

    plans = []
    if data.payment_condition_id is not None:
        condition = require_payment_condition_in_org(data.payment_condition_id, ctx.org_id)
        if not condition.is_active:
            raise ValidationError("Payment condition is not active", org_id=ctx.org_id, field="payment_condition_id")
        if gross_total > ZERO:
            plans = expand(
                condition,
                doc_date,
                gross_total,
                max_backdate_days=current_app.config.get("INSTALLMENT_MAX_BACKDATE_DAYS", 365),
            )

    # 4. Number
    year = doc_date.year
    if data.number is not None:
        number = numbering_service.claim_number(
            org_id=ctx.org_id, numerator_code=policy.numerator_code, year=year, number=data.number
        )
    else:
        number = numbering_service.next_number(
            org_id=ctx.org_id, numerator_code=policy.numerator_code, year=year
        )

    # 2-3. Header with snapshot and totals, then lines
    document = Document(
        org_id=ctx.org_id,
        document_type_id=policy.id,
        numerator_code=policy.numerator_code,
        fiscal_year=year,
        number=number,
        date=doc_date,
        status="FINALIZING",
        type_code=policy.code,
        direction=policy.direction,
        moves_stock=policy.moves_stock,
        impacts_valuation=policy.impacts_valuation,
        operation_sign=policy.operation_sign,
        movement_type=policy.movement_type,
        main_warehouse_id=data.main_warehouse_id,
        payment_condition_id=data.payment_condition_id,
        source_document_id=data.source_document_id,
        net_total=net_total,
        vat_total=vat_total,
        gross_total=gross_total,
        notes=data.notes,
        created_by_user_id=ctx.user_id,
        **_snapshot_fields(counterparty),
    )
    db.session.add(document)
    db.session.flush()

    for p in prepared:
        document.lines.append(
            DocumentLine(
                position=p.position,
                product_id=p.product.id if p.product is not None else None,
                product_code=p.product.code if p.product is not None else None,
                description=p.description,
                quantity=p.quantity,
                unit_price=p.unit_price,
                vat_rate=p.vat_rate,
                warehouse_id=p.warehouse_id,
                net_amount=p.net,
                vat_amount=p.vat,
                gross_amount=p.gross,
            )
        )
    db.session.flush()

    # 5. Stock
    if policy.moves_stock:
        for p in prepared:
            if not p.moves_stock:
                continue
            stock_service.append_movement(
                org_id=ctx.org_id,
                product_id=p.product.id,
                warehouse_id=p.warehouse_id,
                signed_quantity=p.quantity * policy.operation_sign,
                movement_type=policy.movement_type,
                document=document,
                created_by_user_id=ctx.user_id,
            )

    # 6. Valuation
    if policy.impacts_valuation:
        valuation_service.apply_document(document)

    # 7. Installments
    if plans:
        persist_installments(document, plans)

    # 8. Done
    document.status = STATUS_FINALIZED
    document.finalized_at = utcnow()
    db.session.flush()
    return document


def finalize_document(ctx: RequestContext, data: CreateDocumentInput) -> Document:
    """
    Create and finalize a document atomically.

    Raises:
        ValidationError, ConfigurationError, PermissionDeniedError,
        TenantAccessError, NotFoundError before anything is written
        ConflictError when a manual number is taken or retries are exhausted
    """
    attempts = current_app.config.get("FINALIZE_RETRY_ATTEMPTS", 5)
    backoff = current_app.config.get("FINALIZE_RETRY_BACKOFF", 0.05)

    def _op() -> Document:
        document = _finalize(ctx, data)
        db.session.commit()
        return document

    try:
        document = run_with_retry(_op, attempts=attempts, backoff_base=backoff, retry_on=RETRYABLE_ERRORS)
    except (OperationalError, StaleDataError, IntegrityError) as exc:
        raise ConflictError(
            "Could not finalize the document because of concurrent updates; retry",
            org_id=ctx.org_id,
        ) from exc
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Finalized document %s (id=%s) for org %s: gross %s",
        document.display_number, document.id, ctx.org_id, document.gross_total,
    )
    return document


def issue_corrective_document(
    ctx: RequestContext,
    *,
    source_document_id: int,
    document_type_id: int,
    lines: list[LineInput] | None = None,
    date=None,
    notes: str | None = None,
    payment_condition_id: int | None = None,
) -> Document:
    """
    Correct a finalized document by issuing a new one (e.g. a credit note).

    The source is never modified. The corrective document takes the
    source's counterparty and warehouse and, unless lines are given, a copy
    of its lines. It is finalized through the normal pipeline, so it moves
    stock and valuation according to its own type.
    """
    source = db.session.get(Document, source_document_id)
    if source is None or source.org_id != ctx.org_id:
        raise NotFoundError("Source document not found", org_id=ctx.org_id, field="source_document_id")
    if source.is_deleted:
        raise ValidationError("Cannot correct a deleted document", org_id=ctx.org_id, document_id=source.id)

    if lines is None:
        lines = [
            LineInput(
                quantity=line.quantity,
                unit_price=line.unit_price,
                vat_rate=line.vat_rate,
                product_id=line.product_id,
                description=line.description,
                warehouse_id=line.warehouse_id,
            )
            for line in source.lines
        ]

    data = CreateDocumentInput(
        document_type_id=document_type_id,
        date=date or source.date,
        lines=lines,
        counterparty_id=source.counterparty_id,
        main_warehouse_id=source.main_warehouse_id,
        payment_condition_id=payment_condition_id,
        notes=notes or f"Corrects {source.display_number}",
        source_document_id=source.id,
    )
    return finalize_document(ctx, data)
