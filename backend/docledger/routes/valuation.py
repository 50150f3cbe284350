# Overview: Flask API routes for product valuation statistics and rebuilds.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin_role, require_context
from ..errors import DocLedgerError, ValidationError
from ..services import valuation_service
from .common import error_response, json_body, pagination_args


valuation_bp = Blueprint("valuation", __name__, url_prefix="/api/valuation")


@valuation_bp.get("/stats")
@require_context
def list_stats_route():
    """
    Annual statistics for every product with valuation activity in a year.

    Query parameters: year (required), search, sort, direction, limit, offset
    """
    year = request.args.get("year", type=int)
    if not year:
        return jsonify({"error": "year is required"}), 400
    limit, offset = pagination_args()
    try:
        stats, total = valuation_service.list_product_stats(
            org_id=g.org_id,
            year=year,
            search=request.args.get("search"),
            sort=request.args.get("sort", "product_code"),
            direction=request.args.get("direction", "asc"),
            limit=limit,
            offset=offset,
        )
    except DocLedgerError as e:
        return error_response(e)
    return jsonify({
        "items": [s.to_dict() for s in stats],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@valuation_bp.get("/products/<int:product_id>")
@require_context
def product_stat_route(product_id: int):
    """Stats for one product in ?year=, zeros if it had no activity, plus current stock."""
    year = request.args.get("year", type=int)
    if not year:
        return jsonify({"error": "year is required"}), 400
    try:
        return jsonify(valuation_service.get_product_stat(g.org_id, product_id, year))
    except DocLedgerError as e:
        return error_response(e)


@valuation_bp.post("/rebuild")
@require_context
@require_admin_role
def rebuild_route():
    """
    Recompute a fiscal year's statistics from its documents.

    Request body: {"year": 2024}
    Returns: {"year": 2024, "documents_processed": n}
    """
    try:
        data = json_body()
        year = data.get("year")
        if not isinstance(year, int) or isinstance(year, bool):
            raise ValidationError("year must be an integer", field="year")
        processed = valuation_service.rebuild_year_for(g.ctx, year)
        return jsonify({"year": year, "documents_processed": processed})
    except DocLedgerError as e:
        if e.status_code >= 500:
            current_app.logger.error("Valuation rebuild failed: %s", e.message)
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to rebuild valuation")
        return jsonify({"error": "Internal server error"}), 500
