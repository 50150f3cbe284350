# Overview: Shared request parsing and error rendering for the API blueprints.

from flask import jsonify, request

from ..errors import DocLedgerError, ValidationError
from ..time_utils import parse_iso_date


def error_response(exc: DocLedgerError):
    return jsonify(exc.to_dict()), exc.status_code


def pagination_args(default_limit: int = 100) -> tuple[int, int]:
    """limit clamped to 1..500, offset to >= 0."""
    limit = request.args.get("limit", default_limit, type=int)
    offset = request.args.get("offset", 0, type=int)
    limit = max(1, min(limit, 500))
    offset = max(0, offset)
    return limit, offset


def date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)", field=name)


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
