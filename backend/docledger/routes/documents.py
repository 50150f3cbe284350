# Overview: Flask API routes for document finalization and document reads.

"""
Document Routes

All routes require a tenant context (see require_context).
- Reads are open to every role
- Finalize, annotate, correct and delete require a writer role (admin, operator)

Finalized documents are immutable: PATCH accepts only notes; everything
else is corrected by POST /<id>/corrective.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_context, require_writer
from ..errors import DocLedgerError, ValidationError
from ..services import document_service, finalization_service, numbering_service
from ..services.document_type_service import get_document_type
from ..services.finalization_service import CreateDocumentInput, LineInput
from .common import date_arg, error_response, json_body, pagination_args


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.get("")
@require_context
def list_documents_route():
    """
    List documents for the current tenant.

    Query parameters:
    - document_type_id, counterparty_id, fiscal_year: exact filters
    - from_date / to_date: inclusive document-date bounds (YYYY-MM-DD)
    - search: matches counterparty name, notes, type code
    - include_deleted: "true" to include soft-deleted documents
    - sort: date | number | created_at | id, direction: asc | desc
    - limit (1..500, default 100), offset

    Returns:
        {items: Document[], count: int, limit: int, offset: int}
    """
    limit, offset = pagination_args()
    try:
        documents, total = document_service.list_documents(
            org_id=g.org_id,
            document_type_id=request.args.get("document_type_id", type=int),
            counterparty_id=request.args.get("counterparty_id", type=int),
            fiscal_year=request.args.get("fiscal_year", type=int),
            from_date=date_arg("from_date"),
            to_date=date_arg("to_date"),
            search=request.args.get("search"),
            include_deleted=request.args.get("include_deleted", "false").lower() == "true",
            sort=request.args.get("sort", "date"),
            direction=request.args.get("direction", "desc"),
            limit=limit,
            offset=offset,
        )
    except DocLedgerError as e:
        return error_response(e)

    return jsonify({
        "items": [d.to_dict() for d in documents],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@documents_bp.post("")
@require_context
@require_writer
def finalize_document_route():
    """
    Create and finalize a document.

    Request body:
    {
        "document_type_id": 1,            // required
        "date": "2024-01-15",             // required
        "counterparty_id": 1,             // optional
        "main_warehouse_id": 1,           // optional
        "payment_condition_id": 1,        // optional
        "number": 42,                     // optional manual number
        "notes": "...",                   // optional
        "lines": [                        // at least one
            {"product_id": 1, "quantity": "10", "unit_price": "5.00", "vat_rate": "0.22",
             "warehouse_id": null, "description": "..."}
        ]
    }

    Decimal fields should be sent as strings; floats are rejected.
    """
    try:
        data = CreateDocumentInput.from_dict(json_body())
        document = finalization_service.finalize_document(g.ctx, data)
        return jsonify(document.to_dict(include_lines=True, include_installments=True)), 201
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to finalize document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/next-number")
@require_context
def next_number_route():
    """
    Propose the number the next document of a type would get in a year.

    Query parameters: document_type_id (required), year (required)
    """
    document_type_id = request.args.get("document_type_id", type=int)
    year = request.args.get("year", type=int)
    if not document_type_id:
        return jsonify({"error": "document_type_id is required"}), 400
    if not year:
        return jsonify({"error": "year is required"}), 400
    try:
        doc_type = get_document_type(g.org_id, document_type_id)
        number = numbering_service.peek_next_number(
            org_id=g.org_id, numerator_code=doc_type.numerator_code, year=year
        )
    except DocLedgerError as e:
        return error_response(e)
    return jsonify({"numerator_code": doc_type.numerator_code, "year": year, "number": number})


@documents_bp.get("/<int:document_id>")
@require_context
def get_document_route(document_id: int):
    try:
        document = document_service.get_document(g.org_id, document_id)
    except DocLedgerError as e:
        return error_response(e)
    return jsonify(document.to_dict(include_lines=True, include_installments=True))


@documents_bp.patch("/<int:document_id>")
@require_context
@require_writer
def update_document_route(document_id: int):
    """Annotate a finalized document. Only "notes" is accepted."""
    try:
        document = document_service.update_document(g.ctx, document_id, json_body())
        return jsonify(document.to_dict())
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.delete("/<int:document_id>")
@require_context
@require_writer
def delete_document_route(document_id: int):
    """Soft-delete; stock is compensated and the valuation year rebuilt."""
    try:
        document = document_service.delete_document(g.ctx, document_id)
        return jsonify(document.to_dict())
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/corrective")
@require_context
@require_writer
def corrective_document_route(document_id: int):
    """
    Issue a corrective document (e.g. credit note) against a finalized one.

    Request body:
    {
        "document_type_id": 7,   // required, type of the corrective document
        "date": "2024-02-01",    // optional, defaults to the source date
        "lines": [...],          // optional, defaults to a copy of the source lines
        "notes": "..."           // optional
    }
    """
    try:
        data = json_body()
        if not data.get("document_type_id"):
            raise ValidationError("document_type_id is required", field="document_type_id")
        lines = data.get("lines")
        if lines is not None:
            if not isinstance(lines, list) or not all(isinstance(line, dict) for line in lines):
                raise ValidationError("lines must be a list of objects", field="lines")
            lines = [LineInput.from_dict(line) for line in lines]
        document = finalization_service.issue_corrective_document(
            g.ctx,
            source_document_id=document_id,
            document_type_id=data["document_type_id"],
            lines=lines,
            date=data.get("date"),
            notes=data.get("notes"),
            payment_condition_id=data.get("payment_condition_id"),
        )
        return jsonify(document.to_dict(include_lines=True, include_installments=True)), 201
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to issue corrective document")
        return jsonify({"error": "Internal server error"}), 500
