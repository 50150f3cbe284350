from __future__ import annotations

from ..extensions import db
from ..money import format_decimal, MONEY_SCALE, PRICE_SCALE, QUANTITY_SCALE, RATE_SCALE
from ..time_utils import to_iso_date, to_utc_z
from .types import Money, Quantity, Rate


class DocumentTypePolicy(db.Model):
    """
    Per-tenant document type configuration.

    Decides whether a document type moves stock, impacts valuation, which
    sign it folds with and which numerator it draws from. Finalized
    documents keep a copy of these flags, so editing a policy never changes
    history.
    """
    __tablename__ = "document_types"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_document_types_org_code"),
        db.CheckConstraint("operation_sign IN (1, -1)", name="operation_sign_unit"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=False)

    category = db.Column(db.String(32), nullable=False)  # QUOTE, ORDER, DELIVERY_NOTE, INVOICE, CREDIT_NOTE, GOODS_RECEIPT, RETURN
    direction = db.Column(db.String(16), nullable=False)  # SALE, PURCHASE, INTERNAL

    moves_stock = db.Column(db.Boolean, nullable=False, default=False)
    impacts_valuation = db.Column(db.Boolean, nullable=False, default=False)
    operation_sign = db.Column(db.Integer, nullable=False, default=1)
    numerator_code = db.Column(db.String(32), nullable=False)
    movement_type = db.Column(db.String(32), nullable=True)  # explicit override of the derived kind

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<DocumentTypePolicy id={self.id} code={self.code!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "description": self.description,
            "category": self.category,
            "direction": self.direction,
            "moves_stock": self.moves_stock,
            "impacts_valuation": self.impacts_valuation,
            "operation_sign": self.operation_sign,
            "numerator_code": self.numerator_code,
            "movement_type": self.movement_type,
            "is_active": self.is_active,
            "version_id": self.version_id,
        }


class Document(db.Model):
    """
    Finalized business document.

    Money fields, counterparty snapshot, number, date, type and lines are
    frozen once status is FINALIZED. Only notes may change afterwards;
    corrections are separate corrective documents pointing at the source
    through source_document_id. Deletion is soft and leaves the number taken.
    """
    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint(
            "org_id", "numerator_code", "fiscal_year", "number",
            name="uq_documents_org_numerator_year_number",
        ),
        db.Index("ix_documents_org_date", "org_id", "date"),
        db.Index("ix_documents_org_year_valuation", "org_id", "fiscal_year", "impacts_valuation"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_type_id = db.Column(db.Integer, db.ForeignKey("document_types.id"), nullable=False, index=True)

    numerator_code = db.Column(db.String(32), nullable=False)
    fiscal_year = db.Column(db.Integer, nullable=False)
    number = db.Column(db.Integer, nullable=False)
    date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="FINALIZED")

    # Policy flags in force at finalization
    type_code = db.Column(db.String(32), nullable=False)
    direction = db.Column(db.String(16), nullable=False)
    moves_stock = db.Column(db.Boolean, nullable=False)
    impacts_valuation = db.Column(db.Boolean, nullable=False)
    operation_sign = db.Column(db.Integer, nullable=False)
    movement_type = db.Column(db.String(32), nullable=True)

    # Counterparty snapshot
    counterparty_id = db.Column(db.Integer, db.ForeignKey("counterparties.id"), nullable=True, index=True)
    counterparty_name = db.Column(db.String(255), nullable=True)
    counterparty_vat_number = db.Column(db.String(32), nullable=True)
    counterparty_fiscal_code = db.Column(db.String(32), nullable=True)
    counterparty_sdi_code = db.Column(db.String(16), nullable=True)
    counterparty_address = db.Column(db.String(255), nullable=True)
    counterparty_city = db.Column(db.String(120), nullable=True)
    counterparty_province = db.Column(db.String(8), nullable=True)
    counterparty_zip_code = db.Column(db.String(16), nullable=True)
    counterparty_country = db.Column(db.String(2), nullable=True)

    main_warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)
    payment_condition_id = db.Column(db.Integer, db.ForeignKey("payment_conditions.id"), nullable=True)
    source_document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=True, index=True)

    net_total = db.Column(Money(), nullable=False)
    vat_total = db.Column(Money(), nullable=False)
    gross_total = db.Column(Money(), nullable=False)

    notes = db.Column(db.Text, nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by_user_id = db.Column(db.Integer, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    document_type = db.relationship("DocumentTypePolicy")
    counterparty = db.relationship("Counterparty")
    lines = db.relationship(
        "DocumentLine",
        backref="document",
        order_by="DocumentLine.position",
        lazy=True,
        cascade="all, delete-orphan",
    )
    installments = db.relationship(
        "Installment",
        backref="document",
        order_by="Installment.sequence",
        lazy=True,
        cascade="all, delete-orphan",
    )
    source_document = db.relationship("Document", remote_side=[id])

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def display_number(self) -> str:
        return f"{self.numerator_code}/{self.fiscal_year}/{self.number:06d}"

    def __repr__(self) -> str:
        return f"<Document id={self.id} number={self.display_number!r} org_id={self.org_id}>"

    def snapshot_dict(self) -> dict:
        return {
            "counterparty_id": self.counterparty_id,
            "business_name": self.counterparty_name,
            "vat_number": self.counterparty_vat_number,
            "fiscal_code": self.counterparty_fiscal_code,
            "sdi_code": self.counterparty_sdi_code,
            "address": self.counterparty_address,
            "city": self.counterparty_city,
            "province": self.counterparty_province,
            "zip_code": self.counterparty_zip_code,
            "country": self.counterparty_country,
        }

    def to_dict(self, *, include_lines: bool = False, include_installments: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "document_type_id": self.document_type_id,
            "type_code": self.type_code,
            "direction": self.direction,
            "numerator_code": self.numerator_code,
            "fiscal_year": self.fiscal_year,
            "number": self.number,
            "display_number": self.display_number,
            "date": to_iso_date(self.date),
            "status": self.status,
            "moves_stock": self.moves_stock,
            "impacts_valuation": self.impacts_valuation,
            "operation_sign": self.operation_sign,
            "counterparty": self.snapshot_dict(),
            "main_warehouse_id": self.main_warehouse_id,
            "payment_condition_id": self.payment_condition_id,
            "source_document_id": self.source_document_id,
            "net_total": format_decimal(self.net_total, MONEY_SCALE),
            "vat_total": format_decimal(self.vat_total, MONEY_SCALE),
            "gross_total": format_decimal(self.gross_total, MONEY_SCALE),
            "notes": self.notes,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_by_user_id": self.created_by_user_id,
            "finalized_at": to_utc_z(self.finalized_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        if include_installments:
            data["installments"] = [inst.to_dict() for inst in self.installments]
        return data


class DocumentLine(db.Model):
    """One row of a document. product_id is optional for free-text lines."""
    __tablename__ = "document_lines"
    __table_args__ = (
        db.UniqueConstraint("document_id", "position", name="uq_document_lines_document_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(db.Integer, db.ForeignKey("documents.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_code = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)

    quantity = db.Column(Quantity(), nullable=False)
    unit_price = db.Column(Money(), nullable=False)
    vat_rate = db.Column(Rate(), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)

    net_amount = db.Column(Money(), nullable=False)
    vat_amount = db.Column(Money(), nullable=False)
    gross_amount = db.Column(Money(), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "position": self.position,
            "product_id": self.product_id,
            "product_code": self.product_code,
            "description": self.description,
            "quantity": format_decimal(self.quantity, QUANTITY_SCALE),
            "unit_price": format_decimal(self.unit_price, PRICE_SCALE),
            "vat_rate": format_decimal(self.vat_rate, RATE_SCALE),
            "warehouse_id": self.warehouse_id,
            "net_amount": format_decimal(self.net_amount, MONEY_SCALE),
            "vat_amount": format_decimal(self.vat_amount, MONEY_SCALE),
            "gross_amount": format_decimal(self.gross_amount, MONEY_SCALE),
        }


class DocumentSequence(db.Model):
    """
    Per-tenant, per-numerator, per-year counter.

    next_number is the number the next automatic allocation will return.
    Allocation is a single atomic UPDATE ... SET next_number = next_number + 1.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "numerator_code", "year", name="uq_document_sequences_org_numerator_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    numerator_code = db.Column(db.String(32), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "numerator_code": self.numerator_code,
            "year": self.year,
            "next_number": self.next_number,
        }
