# Overview: Flask API routes for payment conditions, installments and payments.

"""
Payment Routes

- /api/payment-conditions   list (all roles), create/update/deactivate (admin)
- /api/payment-conditions/<id>/preview   schedule preview, nothing persisted
- /api/installments         installments with derived status
- /api/payments             record a payment against a document (writers)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin_role, require_context, require_writer
from ..errors import DocLedgerError
from ..money import format_decimal, MONEY_SCALE
from ..services import payment_schedule_service
from .common import date_arg, error_response, json_body, pagination_args


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


@payments_bp.get("/payment-conditions")
@require_context
def list_conditions_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    conditions = payment_schedule_service.list_payment_conditions(g.org_id, include_inactive=include_inactive)
    return jsonify({"items": [c.to_dict() for c in conditions], "count": len(conditions)})


@payments_bp.post("/payment-conditions")
@require_context
@require_admin_role
def create_condition_route():
    """
    Request body:
    {
        "name": "30/60/90 EOM",       // required, unique per tenant
        "payment_type": "BANK_TRANSFER",
        "number_of_dues": 3,          // required, 1..24
        "days_to_first_due": 30,
        "gap_between_dues": 30,
        "is_end_of_month": true
    }
    """
    try:
        condition = payment_schedule_service.create_payment_condition(g.ctx, json_body())
        return jsonify(condition.to_dict()), 201
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create payment condition")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.patch("/payment-conditions/<int:condition_id>")
@require_context
@require_admin_role
def update_condition_route(condition_id: int):
    try:
        condition = payment_schedule_service.update_payment_condition(g.ctx, condition_id, json_body())
        return jsonify(condition.to_dict())
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment condition")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.delete("/payment-conditions/<int:condition_id>")
@require_context
@require_admin_role
def deactivate_condition_route(condition_id: int):
    try:
        condition = payment_schedule_service.deactivate_payment_condition(g.ctx, condition_id)
        return jsonify(condition.to_dict())
    except DocLedgerError as e:
        return error_response(e)


@payments_bp.post("/payment-conditions/<int:condition_id>/preview")
@require_context
def preview_schedule_route(condition_id: int):
    """
    Request body: {"document_date": "2024-01-15", "gross_total": "100.00"}
    """
    try:
        data = json_body()
        plans = payment_schedule_service.preview_schedule(
            g.org_id, condition_id, data.get("document_date"), data.get("gross_total")
        )
    except DocLedgerError as e:
        return error_response(e)
    return jsonify({
        "installments": [
            {
                "sequence": p.sequence,
                "due_date": p.due_date.isoformat(),
                "amount": format_decimal(p.amount, MONEY_SCALE),
            }
            for p in plans
        ]
    })


@payments_bp.get("/installments")
@require_context
def list_installments_route():
    """
    Query parameters: document_id, status (PENDING | PARTIAL | PAID),
    due_from / due_to (YYYY-MM-DD), limit, offset
    """
    limit, offset = pagination_args()
    try:
        installments, total = payment_schedule_service.list_installments(
            org_id=g.org_id,
            document_id=request.args.get("document_id", type=int),
            status=request.args.get("status"),
            due_from=date_arg("due_from"),
            due_to=date_arg("due_to"),
            limit=limit,
            offset=offset,
        )
    except DocLedgerError as e:
        return error_response(e)
    return jsonify({
        "items": [i.to_dict() for i in installments],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@payments_bp.post("/payments")
@require_context
@require_writer
def record_payment_route():
    """
    Request body:
    {
        "document_id": 1,               // required
        "amount": "50.00",              // required
        "payment_date": "2024-02-14",
        "direction": "INFLOW",          // optional, must match the document
        "reference": "...",
        "allocations": [{"installment_id": 3, "amount": "50.00"}]  // optional
    }
    """
    data = json_body()
    if not data.get("document_id"):
        return jsonify({"error": "document_id is required"}), 400
    try:
        payment = payment_schedule_service.record_payment(
            g.ctx,
            document_id=data["document_id"],
            amount=data.get("amount"),
            payment_date=data.get("payment_date"),
            direction=data.get("direction"),
            reference=data.get("reference"),
            allocations=data.get("allocations"),
        )
        return jsonify(payment.to_dict()), 201
    except DocLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500
