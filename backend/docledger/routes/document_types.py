# Overview: Flask API routes for per-tenant document type policies.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin_role, require_context
from ..errors import DocLedgerError
from ..services import document_type_service
from .common import error_response, json_body


document_types_bp = Blueprint("document_types", __name__, url_prefix="/api/document-types")


@document_types_bp.get("")
@require_context
def list_document_types_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    rows = document_type_service.list_document_types(g.org_id, include_inactive=include_inactive)
    return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)})


@document_types_bp.post("")
@require_context
@require_admin_role
def create_document_type_route():
    """
    Request body:
    {
        "code": "GRN", "description": "Goods receipt",
        "category": "GOODS_RECEIPT", "direction": "PURCHASE",
        "moves_stock": true, "impacts_valuation": true,
        "operation_sign": 1, "numerator_code": "GRN",
        "movement_type": null
    }
    """
    try:
        row = document_type_service.create_document_type(g.ctx, json_body())
        return jsonify(row.to_dict()), 201
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create document type")
        return jsonify({"error": "Internal server error"}), 500


@document_types_bp.patch("/<int:document_type_id>")
@require_context
@require_admin_role
def update_document_type_route(document_type_id: int):
    """Edits apply to documents finalized afterwards only."""
    try:
        row = document_type_service.update_document_type(g.ctx, document_type_id, json_body())
        return jsonify(row.to_dict())
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update document type")
        return jsonify({"error": "Internal server error"}), 500


@document_types_bp.post("/seed")
@require_context
@require_admin_role
def seed_document_types_route():
    """Install the standard document types; existing codes are left alone."""
    created = document_type_service.seed_default_document_types(g.org_id)
    return jsonify({"created": [r.to_dict() for r in created], "count": len(created)}), 201
