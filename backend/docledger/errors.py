# Overview: Error taxonomy shared by services, routes and the CLI.

"""
Every error raised by a write path carries the tenant, the document and the
offending field where known, so callers can act on it without parsing the
message. Routes turn these into JSON bodies using status_code and to_dict().
"""

from __future__ import annotations


class DocLedgerError(Exception):
    """Base class for domain errors."""

    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        org_id: int | None = None,
        document_id: int | None = None,
        field: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.org_id = org_id
        self.document_id = document_id
        self.field = field

    def to_dict(self) -> dict:
        payload = {"error": self.message, "type": type(self).__name__}
        if self.field is not None:
            payload["field"] = self.field
        if self.document_id is not None:
            payload["document_id"] = self.document_id
        return payload


class ValidationError(DocLedgerError, ValueError):
    """400-level input problem, raised before any write."""


class NotFoundError(DocLedgerError):
    status_code = 404


class TenantAccessError(NotFoundError):
    """Cross-tenant access; reported as not-found so existence is not leaked."""


class PermissionDeniedError(DocLedgerError):
    status_code = 403


class ConfigurationError(DocLedgerError):
    """Missing warehouse, policy or numerator."""

    status_code = 422


class ConflictError(DocLedgerError):
    """Numbering or locking collision; the caller may retry the whole operation."""

    status_code = 409


class ConsistencyError(DocLedgerError):
    """Ledger replay found a document whose policy or product is gone."""

    status_code = 500
