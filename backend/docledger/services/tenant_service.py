"""
Multi-Tenant Service: Request Context and Tenant Scoping Helpers

Every mutating call receives a RequestContext {org_id, user_id, role}
resolved upstream (authentication is not handled here). These helpers
check write permission, tenant activity, and that ids taken from client
input belong to the caller's tenant.

SECURITY INVARIANTS:
1. Every service call is scoped to ctx.org_id
2. Ids from client input are validated against ctx.org_id before use
3. A foreign id is reported as "not found", never as "belongs to another tenant"
4. Cross-tenant attempts are logged

USAGE:
    from docledger.services.tenant_service import require_product_in_org

    product = require_product_in_org(product_id, ctx.org_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import PermissionDeniedError, TenantAccessError
from ..extensions import db
from ..models import Counterparty, Organization, PaymentCondition, Product, Warehouse

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_OPERATOR = "operator"
ROLE_VIEWER = "viewer"

ROLES = {ROLE_ADMIN, ROLE_OPERATOR, ROLE_VIEWER}
WRITE_ROLES = {ROLE_ADMIN, ROLE_OPERATOR}


@dataclass(frozen=True)
class RequestContext:
    org_id: int
    user_id: int | None
    role: str

    @property
    def can_write(self) -> bool:
        return self.role in WRITE_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def require_write(ctx: RequestContext) -> None:
    """Raise unless the caller may mutate tenant data."""
    if not ctx.can_write:
        raise PermissionDeniedError(
            f"Role {ctx.role!r} may not modify data", org_id=ctx.org_id
        )


def require_admin(ctx: RequestContext) -> None:
    """Raise unless the caller is a tenant admin (policies, conditions, rebuilds)."""
    if not ctx.is_admin:
        raise PermissionDeniedError(
            "Administrator role required", org_id=ctx.org_id
        )


def validate_org_active(org_id: int) -> Organization:
    """
    Validate that an organization exists and is active.

    Raises:
        TenantAccessError if org doesn't exist
        PermissionDeniedError if it is deactivated (reads still work, writes don't)
    """
    org = db.session.get(Organization, org_id)

    if not org:
        raise TenantAccessError("Organization not found", org_id=org_id)

    if not org.is_active:
        raise PermissionDeniedError("Organization is not active", org_id=org_id)

    return org


def _require_owned(model, entity_id: int, org_id: int, *, label: str, field: str):
    entity = db.session.get(model, entity_id)

    if not entity:
        raise TenantAccessError(f"{label} not found", org_id=org_id, field=field)

    if entity.org_id != org_id:
        logger.warning(
            "Cross-tenant access denied: %s %s belongs to org %s, not %s",
            label, entity_id, entity.org_id, org_id,
        )
        raise TenantAccessError(f"{label} not found", org_id=org_id, field=field)

    return entity


def require_warehouse_in_org(warehouse_id: int, org_id: int, *, field: str = "warehouse_id") -> Warehouse:
    warehouse = _require_owned(Warehouse, warehouse_id, org_id, label="Warehouse", field=field)
    if not warehouse.is_active:
        raise TenantAccessError("Warehouse is not active", org_id=org_id, field=field)
    return warehouse


def require_product_in_org(product_id: int, org_id: int, *, field: str = "product_id") -> Product:
    return _require_owned(Product, product_id, org_id, label="Product", field=field)


def require_counterparty_in_org(counterparty_id: int, org_id: int, *, field: str = "counterparty_id") -> Counterparty:
    return _require_owned(Counterparty, counterparty_id, org_id, label="Counterparty", field=field)


def require_payment_condition_in_org(condition_id: int, org_id: int, *, field: str = "payment_condition_id") -> PaymentCondition:
    return _require_owned(PaymentCondition, condition_id, org_id, label="Payment condition", field=field)
