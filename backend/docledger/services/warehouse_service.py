# Overview: Warehouse resolution for document lines and warehouse lookups.

from __future__ import annotations

from ..errors import ConfigurationError
from ..extensions import db
from ..models import Warehouse


def resolve_warehouse(line, product, document, *, field: str = "warehouse_id") -> int:
    """
    Pick the warehouse a document line moves stock in.

    First match wins:
    1. the line's explicit warehouse_id
    2. the product's default_warehouse_id
    3. the document's main_warehouse_id

    Any object exposing those attributes works (inputs or ORM rows); product
    may be None for free-text lines.

    Raises:
        ConfigurationError when no level supplies a warehouse
    """
    line_warehouse_id = getattr(line, "warehouse_id", None)
    if line_warehouse_id:
        return line_warehouse_id

    product_warehouse_id = getattr(product, "default_warehouse_id", None) if product is not None else None
    if product_warehouse_id:
        return product_warehouse_id

    document_warehouse_id = getattr(document, "main_warehouse_id", None)
    if document_warehouse_id:
        return document_warehouse_id

    raise ConfigurationError(
        "No warehouse on the line, the product or the document",
        org_id=getattr(document, "org_id", None),
        document_id=getattr(document, "id", None),
        field=field,
    )


def list_warehouses(org_id: int, *, active_only: bool = True) -> list[Warehouse]:
    query = db.session.query(Warehouse).filter_by(org_id=org_id)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Warehouse.code).all()
