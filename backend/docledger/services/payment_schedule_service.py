# Overview: Payment conditions, installment schedules and payment allocation.

"""
Payment Condition Scheduler

expand() turns a condition into dated installments:
- n = number_of_dues, base = floor(gross_total / n, 2)
- installments 1..n-1 get base, the last gets gross_total - (n - 1) * base,
  so the amounts always sum exactly to gross_total
- due date i (0-based) = document_date + days_to_first_due + i * gap_between_dues,
  moved to the last day of its month when is_end_of_month
- n == 1 ignores the gap

Installment status is derived from payment allocations:
PENDING (nothing paid), PARTIAL, PAID (fully covered).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..money import floor_money, parse_amount, ZERO
from ..models import Document, Installment, Payment, PaymentAllocation, PaymentCondition
from ..time_utils import end_of_month, parse_iso_date
from .concurrency import lock_for_update
from .document_type_service import DIRECTION_PURCHASE
from .tenant_service import (
    RequestContext,
    require_admin,
    require_payment_condition_in_org,
    require_write,
    validate_org_active,
)

MIN_DUES = 1
MAX_DUES = 24
DEFAULT_MAX_BACKDATE_DAYS = 365

DIRECTION_INFLOW = "INFLOW"
DIRECTION_OUTFLOW = "OUTFLOW"

PAYMENT_TYPES = {"CASH", "BANK_TRANSFER", "CARD", "DIRECT_DEBIT", "BANK_RECEIPT", "CHEQUE", "OTHER"}


@dataclass(frozen=True)
class InstallmentPlan:
    sequence: int
    due_date: date
    amount: Decimal


def expand(
    condition,
    document_date: date,
    gross_total: Decimal,
    *,
    max_backdate_days: int = DEFAULT_MAX_BACKDATE_DAYS,
) -> list[InstallmentPlan]:
    """
    Compute the installment plan for a document.

    condition may be a PaymentCondition row or anything exposing
    number_of_dues, days_to_first_due, gap_between_dues and is_end_of_month.

    Raises:
        ValidationError for n outside [1, 24], a non-positive total, or a due
        date earlier than document_date - max_backdate_days
    """
    n = condition.number_of_dues
    if not isinstance(n, int) or isinstance(n, bool) or n < MIN_DUES or n > MAX_DUES:
        raise ValidationError(f"number_of_dues must be between {MIN_DUES} and {MAX_DUES}", field="number_of_dues")
    if not isinstance(gross_total, Decimal) or gross_total <= ZERO:
        raise ValidationError("gross_total must be a positive Decimal", field="gross_total")

    days_to_first_due = condition.days_to_first_due or 0
    gap = (condition.gap_between_dues or 0) if n > 1 else 0
    earliest = document_date - timedelta(days=max_backdate_days)

    base = floor_money(gross_total / n)
    plans = []
    for i in range(n):
        due = document_date + timedelta(days=days_to_first_due + i * gap)
        if condition.is_end_of_month:
            due = end_of_month(due)
        if due < earliest:
            raise ValidationError(
                f"Installment {i + 1} would fall due on {due.isoformat()}, "
                f"more than {max_backdate_days} days before the document date",
                field="payment_condition_id",
            )
        amount = base if i < n - 1 else gross_total - base * (n - 1)
        plans.append(InstallmentPlan(sequence=i + 1, due_date=due, amount=amount))
    return plans


def persist_installments(document: Document, plans: list[InstallmentPlan]) -> list[Installment]:
    """Materialize a plan for a document inside the current transaction."""
    rows = []
    for plan in plans:
        row = Installment(
            org_id=document.org_id,
            document_id=document.id,
            sequence=plan.sequence,
            due_date=plan.due_date,
            amount=plan.amount,
        )
        db.session.add(row)
        rows.append(row)
    db.session.flush()
    return rows


# =============================================================================
# Payment conditions
# =============================================================================


def _int_field(data: dict, key: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", field=key)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be at least {minimum}", field=key)
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be at most {maximum}", field=key)
    return value


def _validate_condition_fields(data: dict, *, partial: bool) -> dict:
    cleaned = {}
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise ValidationError("name must not be empty", field="name")
        cleaned["name"] = name
    elif not partial:
        raise ValidationError("name is required", field="name")

    if "payment_type" in data:
        if data["payment_type"] not in PAYMENT_TYPES:
            raise ValidationError(f"payment_type must be one of: {', '.join(sorted(PAYMENT_TYPES))}", field="payment_type")
        cleaned["payment_type"] = data["payment_type"]

    if "number_of_dues" in data:
        cleaned["number_of_dues"] = _int_field(data, "number_of_dues", minimum=MIN_DUES, maximum=MAX_DUES)
    elif not partial:
        raise ValidationError("number_of_dues is required", field="number_of_dues")

    # Zero or negative offsets are allowed; expand() bounds the resulting dates
    for key in ("days_to_first_due", "gap_between_dues"):
        if key in data:
            cleaned[key] = _int_field(data, key, minimum=-3650, maximum=3650)

    for key in ("is_end_of_month", "is_active"):
        if key in data:
            if not isinstance(data[key], bool):
                raise ValidationError(f"{key} must be a boolean", field=key)
            cleaned[key] = data[key]
    return cleaned


def create_payment_condition(ctx: RequestContext, data: dict) -> PaymentCondition:
    require_admin(ctx)
    validate_org_active(ctx.org_id)
    fields = _validate_condition_fields(data, partial=False)

    condition = PaymentCondition(org_id=ctx.org_id, **fields)
    db.session.add(condition)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Payment condition {fields['name']!r} already exists", org_id=ctx.org_id, field="name")
    return condition


def update_payment_condition(ctx: RequestContext, condition_id: int, data: dict) -> PaymentCondition:
    """Edit a condition. Installments already generated are not touched."""
    require_admin(ctx)
    validate_org_active(ctx.org_id)
    condition = get_payment_condition(ctx.org_id, condition_id)
    fields = _validate_condition_fields(data, partial=True)
    for key, value in fields.items():
        setattr(condition, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Payment condition name already exists", org_id=ctx.org_id, field="name")
    return condition


def deactivate_payment_condition(ctx: RequestContext, condition_id: int) -> PaymentCondition:
    return update_payment_condition(ctx, condition_id, {"is_active": False})


def get_payment_condition(org_id: int, condition_id: int) -> PaymentCondition:
    condition = db.session.get(PaymentCondition, condition_id)
    if condition is None or condition.org_id != org_id:
        raise NotFoundError("Payment condition not found", org_id=org_id, field="payment_condition_id")
    return condition


def list_payment_conditions(org_id: int, *, include_inactive: bool = False) -> list[PaymentCondition]:
    query = db.session.query(PaymentCondition).filter_by(org_id=org_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(PaymentCondition.name).all()


def preview_schedule(org_id: int, condition_id: int, document_date, gross_total) -> list[InstallmentPlan]:
    """Plan a schedule without persisting anything (used by the editor UI)."""
    condition = require_payment_condition_in_org(condition_id, org_id)
    try:
        when = parse_iso_date(document_date)
    except ValueError:
        raise ValidationError("document_date must be an ISO date", org_id=org_id, field="document_date")
    if when is None:
        raise ValidationError("document_date is required", org_id=org_id, field="document_date")
    total = parse_amount(gross_total, field="gross_total")
    return expand(condition, when, total)


# =============================================================================
# Installments and payments
# =============================================================================


def expected_payment_direction(document: Document) -> str:
    return DIRECTION_OUTFLOW if document.direction == DIRECTION_PURCHASE else DIRECTION_INFLOW


def list_installments(
    *,
    org_id: int,
    document_id: int | None = None,
    status: str | None = None,
    due_from: date | None = None,
    due_to: date | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Installment], int]:
    """
    Installments of live documents, by due date.

    Paged in SQL; a status filter is applied after loading because status
    is derived from allocations.
    """
    if status is not None and status not in ("PENDING", "PARTIAL", "PAID"):
        raise ValidationError("status must be PENDING, PARTIAL or PAID", org_id=org_id, field="status")

    query = (
        db.session.query(Installment)
        .join(Document, Document.id == Installment.document_id)
        .filter(Installment.org_id == org_id, Document.is_deleted.is_(False))
    )
    if document_id is not None:
        query = query.filter(Installment.document_id == document_id)
    if due_from is not None:
        query = query.filter(Installment.due_date >= due_from)
    if due_to is not None:
        query = query.filter(Installment.due_date <= due_to)

    query = query.order_by(Installment.due_date.asc(), Installment.id.asc())
    if status is None:
        total = query.count()
        return query.offset(offset).limit(limit).all(), total

    rows = [row for row in query.all() if row.status == status]
    return rows[offset:offset + limit], len(rows)


def record_payment(
    ctx: RequestContext,
    *,
    document_id: int,
    amount,
    payment_date=None,
    direction: str | None = None,
    reference: str | None = None,
    allocations: list[dict] | None = None,
) -> Payment:
    """
    Register a payment against a document's installments.

    Without explicit allocations the amount is spread over open installments
    in due-date order. An allocation can never exceed the installment's
    residual, and allocations together can never exceed the payment.

    Raises:
        ValidationError for a direction that does not match the document,
        over-allocation, or an amount larger than what is still owed
    """
    require_write(ctx)
    validate_org_active(ctx.org_id)

    document = db.session.get(Document, document_id)
    if document is None or document.org_id != ctx.org_id or document.is_deleted:
        raise NotFoundError("Document not found", org_id=ctx.org_id, document_id=document_id)

    total = parse_amount(amount)
    expected = expected_payment_direction(document)
    if direction is None:
        direction = expected
    if direction != expected:
        raise ValidationError(
            f"A {document.direction} document takes {expected} payments",
            org_id=ctx.org_id, document_id=document.id, field="direction",
        )

    try:
        when = parse_iso_date(payment_date) or date.today()
    except ValueError:
        raise ValidationError("payment_date must be an ISO date", org_id=ctx.org_id, field="payment_date")

    installments = lock_for_update(
        db.session.query(Installment).filter_by(org_id=ctx.org_id, document_id=document.id)
    ).order_by(Installment.due_date.asc(), Installment.sequence.asc()).all()
    if not installments:
        raise ValidationError("Document has no installments", org_id=ctx.org_id, document_id=document.id)
    by_id = {inst.id: inst for inst in installments}

    plan: list[tuple[Installment, Decimal]] = []
    if allocations is None:
        remaining = total
        for inst in installments:
            if remaining <= ZERO:
                break
            residual = inst.residual_amount
            if residual <= ZERO:
                continue
            portion = min(residual, remaining)
            plan.append((inst, portion))
            remaining -= portion
        if remaining > ZERO:
            raise ValidationError(
                "Payment exceeds the amount still owed on the document",
                org_id=ctx.org_id, document_id=document.id, field="amount",
            )
    else:
        if not isinstance(allocations, list) or not all(isinstance(a, dict) for a in allocations):
            raise ValidationError("allocations must be a list of objects", org_id=ctx.org_id, field="allocations")
        allocated = ZERO
        seen = set()
        for i, alloc in enumerate(allocations):
            inst = by_id.get(alloc.get("installment_id"))
            if inst is None:
                raise ValidationError(
                    "Installment not found on this document",
                    org_id=ctx.org_id, document_id=document.id, field=f"allocations[{i}].installment_id",
                )
            if inst.id in seen:
                raise ValidationError(
                    "Installment allocated twice",
                    org_id=ctx.org_id, document_id=document.id, field=f"allocations[{i}].installment_id",
                )
            seen.add(inst.id)
            portion = parse_amount(alloc.get("amount"), field=f"allocations[{i}].amount")
            if portion > inst.residual_amount:
                raise ValidationError(
                    f"Allocation exceeds the residual of installment {inst.sequence}",
                    org_id=ctx.org_id, document_id=document.id, field=f"allocations[{i}].amount",
                )
            allocated += portion
            plan.append((inst, portion))
        if allocated > total:
            raise ValidationError(
                "Allocations exceed the payment amount",
                org_id=ctx.org_id, document_id=document.id, field="allocations",
            )

    payment = Payment(
        org_id=ctx.org_id,
        document_id=document.id,
        direction=direction,
        amount=total,
        payment_date=when,
        reference=reference,
        created_by_user_id=ctx.user_id,
    )
    db.session.add(payment)
    db.session.flush()
    for inst, portion in plan:
        db.session.add(PaymentAllocation(payment_id=payment.id, installment_id=inst.id, amount=portion))
    db.session.commit()
    return payment
