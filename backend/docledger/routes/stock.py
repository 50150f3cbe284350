# Overview: Flask API routes for the stock ledger; parses input and returns JSON responses.

"""
Stock Routes

- GET  /api/stock-movements              audit listing with filters and paging
- POST /api/stock-movements/adjustments  manual INITIAL_LOAD / ADJUSTMENT (writers)
- POST /api/stock-movements/transfers    warehouse-to-warehouse transfer (writers)
- GET  /api/stock/<product_id>           current stock, total and per warehouse
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_context, require_writer
from ..errors import DocLedgerError, ValidationError
from ..money import format_decimal, QUANTITY_SCALE
from ..services import stock_service
from ..services.document_type_service import MOVEMENT_ADJUSTMENT
from ..services.tenant_service import require_product_in_org
from .common import date_arg, error_response, json_body, pagination_args
from ..time_utils import parse_iso_datetime


stock_bp = Blueprint("stock", __name__, url_prefix="/api")


@stock_bp.get("/stock-movements")
@require_context
def list_movements_route():
    """
    Query parameters:
    - product_id, warehouse_id, movement_type, document_id
    - from_date / to_date (YYYY-MM-DD, inclusive)
    - search: document number or notes
    - sort: occurred_at | id | movement_type | product_id | warehouse_id | document_number
    - direction: asc | desc (default desc)
    - limit (1..500), offset
    """
    limit, offset = pagination_args()
    try:
        movements, total = stock_service.list_movements(
            org_id=g.org_id,
            product_id=request.args.get("product_id", type=int),
            warehouse_id=request.args.get("warehouse_id", type=int),
            movement_type=request.args.get("movement_type"),
            document_id=request.args.get("document_id", type=int),
            from_date=date_arg("from_date"),
            to_date=date_arg("to_date"),
            search=request.args.get("search"),
            sort=request.args.get("sort", "occurred_at"),
            direction=request.args.get("direction", "desc"),
            limit=limit,
            offset=offset,
        )
    except DocLedgerError as e:
        return error_response(e)

    return jsonify({
        "items": [m.to_dict() for m in movements],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


def _occurred_at(data: dict):
    raw = data.get("occurred_at")
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError("occurred_at must be an ISO-8601 datetime", field="occurred_at")
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("occurred_at must be an ISO-8601 datetime", field="occurred_at")


@stock_bp.post("/stock-movements/adjustments")
@require_context
@require_writer
def create_adjustment_route():
    """
    Request body:
    {
        "product_id": 1,            // required
        "warehouse_id": 1,          // required
        "quantity": "-2.5",         // required, signed, non-zero
        "movement_type": "ADJUSTMENT",  // or INITIAL_LOAD
        "notes": "..."
    }
    """
    data = json_body()
    if not data.get("product_id"):
        return jsonify({"error": "product_id is required"}), 400
    if not data.get("warehouse_id"):
        return jsonify({"error": "warehouse_id is required"}), 400
    try:
        movement = stock_service.record_adjustment(
            g.ctx,
            product_id=data["product_id"],
            warehouse_id=data["warehouse_id"],
            quantity=data.get("quantity"),
            movement_type=data.get("movement_type", MOVEMENT_ADJUSTMENT),
            notes=data.get("notes"),
            occurred_at=_occurred_at(data),
        )
        return jsonify(movement.to_dict()), 201
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock adjustment")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/stock-movements/transfers")
@require_context
@require_writer
def create_transfer_route():
    """
    Request body:
    {"product_id": 1, "from_warehouse_id": 1, "to_warehouse_id": 2, "quantity": "3", "notes": "..."}
    """
    data = json_body()
    for key in ("product_id", "from_warehouse_id", "to_warehouse_id"):
        if not data.get(key):
            return jsonify({"error": f"{key} is required"}), 400
    try:
        out_movement, in_movement = stock_service.record_transfer(
            g.ctx,
            product_id=data["product_id"],
            from_warehouse_id=data["from_warehouse_id"],
            to_warehouse_id=data["to_warehouse_id"],
            quantity=data.get("quantity"),
            notes=data.get("notes"),
            occurred_at=_occurred_at(data),
        )
        return jsonify({"out": out_movement.to_dict(), "in": in_movement.to_dict()}), 201
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record stock transfer")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stock/<int:product_id>")
@require_context
def get_stock_route(product_id: int):
    """Current stock for a product; ?warehouse_id= narrows the total to one warehouse."""
    warehouse_id = request.args.get("warehouse_id", type=int)
    try:
        product = require_product_in_org(product_id, g.org_id)
    except DocLedgerError as e:
        return error_response(e)

    total = stock_service.current_stock(g.org_id, product.id, warehouse_id)
    by_warehouse = stock_service.stock_by_warehouse(g.org_id, product.id)
    return jsonify({
        "product_id": product.id,
        "product_code": product.code,
        "warehouse_id": warehouse_id,
        "quantity": format_decimal(total, QUANTITY_SCALE),
        "by_warehouse": {
            str(wid): format_decimal(qty, QUANTITY_SCALE) for wid, qty in sorted(by_warehouse.items())
        },
    })
