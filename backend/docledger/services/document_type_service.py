# Overview: Service-layer operations for document type policies.

"""
Document Type Policy Service

A policy answers, per tenant and document type: does it move stock, does it
impact valuation, which sign does it fold with, which numerator numbers it.

The finalization pipeline resolves the policy ONCE into a frozen
ResolvedPolicy and passes that value through every step; nothing re-reads
the policy row mid-pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..errors import ConfigurationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import DocumentTypePolicy
from .tenant_service import RequestContext, require_admin, validate_org_active

CATEGORY_QUOTE = "QUOTE"
CATEGORY_ORDER = "ORDER"
CATEGORY_DELIVERY_NOTE = "DELIVERY_NOTE"
CATEGORY_INVOICE = "INVOICE"
CATEGORY_CREDIT_NOTE = "CREDIT_NOTE"
CATEGORY_GOODS_RECEIPT = "GOODS_RECEIPT"
CATEGORY_RETURN = "RETURN"

CATEGORIES = {
    CATEGORY_QUOTE,
    CATEGORY_ORDER,
    CATEGORY_DELIVERY_NOTE,
    CATEGORY_INVOICE,
    CATEGORY_CREDIT_NOTE,
    CATEGORY_GOODS_RECEIPT,
    CATEGORY_RETURN,
}

DIRECTION_SALE = "SALE"
DIRECTION_PURCHASE = "PURCHASE"
DIRECTION_INTERNAL = "INTERNAL"

DIRECTIONS = {DIRECTION_SALE, DIRECTION_PURCHASE, DIRECTION_INTERNAL}

# Stock movement kinds
MOVEMENT_INITIAL_LOAD = "INITIAL_LOAD"
MOVEMENT_SUPPLIER_RECEIPT = "SUPPLIER_RECEIPT"
MOVEMENT_SALE_ISSUE = "SALE_ISSUE"
MOVEMENT_DELIVERY_ISSUE = "DELIVERY_ISSUE"
MOVEMENT_CUSTOMER_RETURN = "CUSTOMER_RETURN"
MOVEMENT_SUPPLIER_RETURN = "SUPPLIER_RETURN"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"

MOVEMENT_TYPES = {
    MOVEMENT_INITIAL_LOAD,
    MOVEMENT_SUPPLIER_RECEIPT,
    MOVEMENT_SALE_ISSUE,
    MOVEMENT_DELIVERY_ISSUE,
    MOVEMENT_CUSTOMER_RETURN,
    MOVEMENT_SUPPLIER_RETURN,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
}

# Standard catalogue installed by seed_default_document_types()
DEFAULT_DOCUMENT_TYPES = [
    {"code": "QUO", "description": "Quote", "category": CATEGORY_QUOTE, "direction": DIRECTION_SALE,
     "moves_stock": False, "impacts_valuation": False, "operation_sign": -1, "numerator_code": "QUO"},
    {"code": "ORD", "description": "Customer order", "category": CATEGORY_ORDER, "direction": DIRECTION_SALE,
     "moves_stock": False, "impacts_valuation": False, "operation_sign": -1, "numerator_code": "ORD"},
    {"code": "DN", "description": "Delivery note", "category": CATEGORY_DELIVERY_NOTE, "direction": DIRECTION_SALE,
     "moves_stock": True, "impacts_valuation": False, "operation_sign": -1, "numerator_code": "DN"},
    {"code": "INV", "description": "Immediate invoice", "category": CATEGORY_INVOICE, "direction": DIRECTION_SALE,
     "moves_stock": True, "impacts_valuation": True, "operation_sign": -1, "numerator_code": "INV"},
    {"code": "DINV", "description": "Deferred invoice", "category": CATEGORY_INVOICE, "direction": DIRECTION_SALE,
     "moves_stock": False, "impacts_valuation": True, "operation_sign": -1, "numerator_code": "INV"},
    {"code": "CN", "description": "Credit note", "category": CATEGORY_CREDIT_NOTE, "direction": DIRECTION_SALE,
     "moves_stock": True, "impacts_valuation": True, "operation_sign": 1, "numerator_code": "INV"},
    {"code": "GRN", "description": "Supplier goods receipt", "category": CATEGORY_GOODS_RECEIPT, "direction": DIRECTION_PURCHASE,
     "moves_stock": True, "impacts_valuation": True, "operation_sign": 1, "numerator_code": "GRN"},
    {"code": "RTS", "description": "Return to supplier", "category": CATEGORY_RETURN, "direction": DIRECTION_PURCHASE,
     "moves_stock": True, "impacts_valuation": False, "operation_sign": -1, "numerator_code": "RTS"},
]


@dataclass(frozen=True)
class ResolvedPolicy:
    """Policy values in force for one finalization."""
    id: int
    org_id: int
    code: str
    category: str
    direction: str
    moves_stock: bool
    impacts_valuation: bool
    operation_sign: int
    numerator_code: str
    movement_type: str


def derive_movement_type(*, category: str, direction: str, operation_sign: int) -> str:
    """
    Stock movement kind for a document type without an explicit override.

    Inbound sale-side documents are customer returns, outbound purchase-side
    documents are supplier returns, delivery notes issue as deliveries.
    """
    if direction == DIRECTION_INTERNAL:
        return MOVEMENT_ADJUSTMENT
    if category == CATEGORY_CREDIT_NOTE:
        return MOVEMENT_CUSTOMER_RETURN if operation_sign > 0 else MOVEMENT_SUPPLIER_RETURN
    if operation_sign > 0:
        return MOVEMENT_CUSTOMER_RETURN if direction == DIRECTION_SALE else MOVEMENT_SUPPLIER_RECEIPT
    if direction == DIRECTION_PURCHASE:
        return MOVEMENT_SUPPLIER_RETURN
    if category == CATEGORY_DELIVERY_NOTE:
        return MOVEMENT_DELIVERY_ISSUE
    return MOVEMENT_SALE_ISSUE


def resolve_policy(org_id: int, document_type_id: int) -> ResolvedPolicy:
    """
    Load and freeze the policy for a document type.

    Raises:
        ConfigurationError if the type is unknown to the tenant, inactive or has no numerator
    """
    row = db.session.get(DocumentTypePolicy, document_type_id) if document_type_id else None
    if row is None or row.org_id != org_id:
        raise ConfigurationError("Document type not found", org_id=org_id, field="document_type_id")
    if not row.is_active:
        raise ConfigurationError(f"Document type {row.code} is not active", org_id=org_id, field="document_type_id")
    if not row.numerator_code:
        raise ConfigurationError(f"Document type {row.code} has no numerator", org_id=org_id, field="numerator_code")
    if row.operation_sign not in (1, -1):
        raise ConfigurationError(f"Document type {row.code} has an invalid sign", org_id=org_id, field="operation_sign")

    return ResolvedPolicy(
        id=row.id,
        org_id=row.org_id,
        code=row.code,
        category=row.category,
        direction=row.direction,
        moves_stock=bool(row.moves_stock),
        impacts_valuation=bool(row.impacts_valuation),
        operation_sign=row.operation_sign,
        numerator_code=row.numerator_code,
        movement_type=row.movement_type or derive_movement_type(
            category=row.category,
            direction=row.direction,
            operation_sign=row.operation_sign,
        ),
    )


def _validate_fields(data: dict, *, partial: bool) -> dict:
    cleaned = {}

    def _present(key):
        return key in data and data[key] is not None

    for key in ("code", "description", "numerator_code"):
        if _present(key):
            value = str(data[key]).strip()
            if not value:
                raise ValidationError(f"{key} must not be empty", field=key)
            cleaned[key] = value.upper() if key in ("code", "numerator_code") else value
        elif not partial:
            raise ValidationError(f"{key} is required", field=key)

    if _present("category"):
        if data["category"] not in CATEGORIES:
            raise ValidationError(f"category must be one of: {', '.join(sorted(CATEGORIES))}", field="category")
        cleaned["category"] = data["category"]
    elif not partial:
        raise ValidationError("category is required", field="category")

    if _present("direction"):
        if data["direction"] not in DIRECTIONS:
            raise ValidationError(f"direction must be one of: {', '.join(sorted(DIRECTIONS))}", field="direction")
        cleaned["direction"] = data["direction"]
    elif not partial:
        raise ValidationError("direction is required", field="direction")

    if _present("operation_sign"):
        sign = data["operation_sign"]
        if isinstance(sign, bool) or sign not in (1, -1):
            raise ValidationError("operation_sign must be 1 or -1", field="operation_sign")
        cleaned["operation_sign"] = sign
    elif not partial:
        raise ValidationError("operation_sign is required", field="operation_sign")

    for key in ("moves_stock", "impacts_valuation", "is_active"):
        if _present(key):
            if not isinstance(data[key], bool):
                raise ValidationError(f"{key} must be a boolean", field=key)
            cleaned[key] = data[key]

    if "movement_type" in data:
        mt = data["movement_type"]
        if mt is not None and mt not in MOVEMENT_TYPES:
            raise ValidationError(f"movement_type must be one of: {', '.join(sorted(MOVEMENT_TYPES))}", field="movement_type")
        cleaned["movement_type"] = mt

    return cleaned


def create_document_type(ctx: RequestContext, data: dict) -> DocumentTypePolicy:
    require_admin(ctx)
    validate_org_active(ctx.org_id)
    fields = _validate_fields(data, partial=False)

    existing = db.session.query(DocumentTypePolicy).filter_by(org_id=ctx.org_id, code=fields["code"]).first()
    if existing:
        raise ConflictError(f"Document type {fields['code']} already exists", org_id=ctx.org_id, field="code")

    row = DocumentTypePolicy(org_id=ctx.org_id, **fields)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Document type {fields['code']} already exists", org_id=ctx.org_id, field="code")
    return row


def update_document_type(ctx: RequestContext, document_type_id: int, data: dict) -> DocumentTypePolicy:
    """
    Edit a policy. Finalized documents keep the flags they were finalized
    with, so this only affects documents finalized afterwards.
    """
    require_admin(ctx)
    validate_org_active(ctx.org_id)
    row = get_document_type(ctx.org_id, document_type_id)

    if "code" in data and data["code"] != row.code:
        raise ValidationError("code cannot be changed", field="code")

    fields = _validate_fields(data, partial=True)
    for key, value in fields.items():
        setattr(row, key, value)
    db.session.commit()
    return row


def get_document_type(org_id: int, document_type_id: int) -> DocumentTypePolicy:
    row = db.session.get(DocumentTypePolicy, document_type_id)
    if row is None or row.org_id != org_id:
        raise NotFoundError("Document type not found", org_id=org_id, field="document_type_id")
    return row


def get_document_type_by_code(org_id: int, code: str) -> DocumentTypePolicy:
    row = db.session.query(DocumentTypePolicy).filter_by(org_id=org_id, code=code).first()
    if row is None:
        raise NotFoundError(f"Document type {code} not found", org_id=org_id, field="code")
    return row


def list_document_types(org_id: int, *, include_inactive: bool = False) -> list[DocumentTypePolicy]:
    query = db.session.query(DocumentTypePolicy).filter_by(org_id=org_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(DocumentTypePolicy.code).all()


def seed_default_document_types(org_id: int) -> list[DocumentTypePolicy]:
    """
    Install the standard document types for a tenant.

    Idempotent: codes that already exist are left untouched.
    Returns the rows created by this call.
    """
    existing = {
        code for (code,) in db.session.query(DocumentTypePolicy.code).filter_by(org_id=org_id).all()
    }
    created = []
    for spec in DEFAULT_DOCUMENT_TYPES:
        if spec["code"] in existing:
            continue
        row = DocumentTypePolicy(org_id=org_id, **spec)
        db.session.add(row)
        created.append(row)
    db.session.commit()
    return created
