# Overview: Request context decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .services.tenant_service import RequestContext, ROLES, ROLE_ADMIN, WRITE_ROLES


def _parse_context():
    raw_org = request.headers.get("X-Org-Id", "").strip()
    raw_user = request.headers.get("X-User-Id", "").strip()
    role = request.headers.get("X-Role", "").strip().lower()

    if not raw_org.isdigit():
        return None, "Tenant context required"
    if raw_user and not raw_user.isdigit():
        return None, "Invalid user id"
    if role not in ROLES:
        return None, "Invalid role"

    return RequestContext(
        org_id=int(raw_org),
        user_id=int(raw_user) if raw_user else None,
        role=role,
    ), None


def require_context(f):
    """
    Establish tenant context from the upstream gateway.

    Authentication happens before requests reach this service; the gateway
    forwards X-Org-Id, X-User-Id and X-Role. Sets:
    - g.ctx: RequestContext passed to every service call
    - g.org_id: tenant id, for scoping reads

    Returns 401 when the headers are missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_app.config.get("TRUST_CONTEXT_HEADERS", True):
            return jsonify({"error": "Request context provider not configured"}), 401

        context, error = _parse_context()
        if context is None:
            return jsonify({"error": error}), 401

        g.ctx = context
        g.org_id = context.org_id
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles. Must be stacked under @require_context."""
    allowed = set(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            ctx = getattr(g, "ctx", None)
            if ctx is None:
                return jsonify({"error": "Tenant context required"}), 401
            if ctx.role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(allowed),
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator


require_writer = require_role(*WRITE_ROLES)
require_admin_role = require_role(ROLE_ADMIN)
