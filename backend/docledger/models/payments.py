from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import format_decimal, MONEY_SCALE
from ..time_utils import to_iso_date, to_utc_z
from .types import Money


class PaymentCondition(db.Model):
    """
    Payment terms template, e.g. "30/60/90 days end of month".

    Pure configuration: editing a condition only affects documents
    finalized afterwards, because installments are materialized.
    """
    __tablename__ = "payment_conditions"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_payment_conditions_org_name"),
        db.CheckConstraint("number_of_dues BETWEEN 1 AND 24", name="number_of_dues_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    payment_type = db.Column(db.String(32), nullable=False, default="BANK_TRANSFER")

    days_to_first_due = db.Column(db.Integer, nullable=False, default=0)
    gap_between_dues = db.Column(db.Integer, nullable=False, default=0)
    number_of_dues = db.Column(db.Integer, nullable=False, default=1)
    is_end_of_month = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "payment_type": self.payment_type,
            "days_to_first_due": self.days_to_first_due,
            "gap_between_dues": self.gap_between_dues,
            "number_of_dues": self.number_of_dues,
            "is_end_of_month": self.is_end_of_month,
            "is_active": self.is_active,
            "version_id": self.version_id,
        }


class Installment(db.Model):
    """
    Scheduled payment for a finalized document.

    Status is computed from allocations on read; nothing stores it.
    """
    __tablename__ = "installments"
    __table_args__ = (
        db.UniqueConstraint("document_id", "sequence", name="uq_installments_document_sequence"),
        db.Index("ix_installments_org_due", "org_id", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    amount = db.Column(Money(), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    allocations = db.relationship("PaymentAllocation", backref="installment", lazy=True)

    @property
    def paid_amount(self) -> Decimal:
        return sum((a.amount for a in self.allocations), Decimal("0.00"))

    @property
    def residual_amount(self) -> Decimal:
        return self.amount - self.paid_amount

    @property
    def status(self) -> str:
        paid = self.paid_amount
        if paid >= self.amount:
            return "PAID"
        if paid > 0:
            return "PARTIAL"
        return "PENDING"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "document_id": self.document_id,
            "sequence": self.sequence,
            "due_date": to_iso_date(self.due_date),
            "amount": format_decimal(self.amount, MONEY_SCALE),
            "paid_amount": format_decimal(self.paid_amount, MONEY_SCALE),
            "residual_amount": format_decimal(self.residual_amount, MONEY_SCALE),
            "status": self.status,
        }


class Payment(db.Model):
    """Money received (INFLOW) or paid out (OUTFLOW) against a document's installments."""
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_org_date", "org_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    direction = db.Column(db.String(8), nullable=False)  # INFLOW, OUTFLOW
    amount = db.Column(Money(), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    allocations = db.relationship(
        "PaymentAllocation",
        backref="payment",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "document_id": self.document_id,
            "direction": self.direction,
            "amount": format_decimal(self.amount, MONEY_SCALE),
            "payment_date": to_iso_date(self.payment_date),
            "reference": self.reference,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "allocations": [a.to_dict() for a in self.allocations],
        }


class PaymentAllocation(db.Model):
    __tablename__ = "payment_allocations"
    __table_args__ = (
        db.UniqueConstraint("payment_id", "installment_id", name="uq_payment_allocations_payment_installment"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, index=True)
    installment_id = db.Column(db.Integer, db.ForeignKey("installments.id"), nullable=False, index=True)
    amount = db.Column(Money(), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "installment_id": self.installment_id,
            "amount": format_decimal(self.amount, MONEY_SCALE),
        }
