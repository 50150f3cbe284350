"""Initial document ledger schema

Revision ID: 20261019_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

from docledger.models.types import ExactDecimal


# revision identifiers, used by Alembic.
revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False)


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organizations_code", "organizations", ["code"], unique=True)
    op.create_index("ix_organizations_is_active", "organizations", ["is_active"], unique=False)

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_warehouses_org_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_warehouses_org_id", "warehouses", ["org_id"], unique=False)

    op.create_table(
        "counterparties",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("business_name", sa.String(length=255), nullable=False),
        sa.Column("vat_number", sa.String(length=32), nullable=True),
        sa.Column("fiscal_code", sa.String(length=32), nullable=True),
        sa.Column("sdi_code", sa.String(length=16), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=120), nullable=True),
        sa.Column("province", sa.String(length=8), nullable=True),
        sa.Column("zip_code", sa.String(length=16), nullable=True),
        sa.Column("country", sa.String(length=2), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_counterparties_org_id", "counterparties", ["org_id"], unique=False)
    op.create_index("ix_counterparties_org_name", "counterparties", ["org_id", "business_name"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("manage_stock", sa.Boolean(), nullable=False),
        sa.Column("default_warehouse_id", sa.Integer(), nullable=True),
        sa.Column("quantity_decimals", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.CheckConstraint("quantity_decimals BETWEEN 0 AND 4", name="ck_products_quantity_decimals_range"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["default_warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_products_org_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_org_id", "products", ["org_id"], unique=False)

    op.create_table(
        "document_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("moves_stock", sa.Boolean(), nullable=False),
        sa.Column("impacts_valuation", sa.Boolean(), nullable=False),
        sa.Column("operation_sign", sa.Integer(), nullable=False),
        sa.Column("numerator_code", sa.String(length=32), nullable=False),
        sa.Column("movement_type", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.CheckConstraint("operation_sign IN (1, -1)", name="ck_document_types_operation_sign_unit"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_document_types_org_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_types_org_id", "document_types", ["org_id"], unique=False)

    op.create_table(
        "payment_conditions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("payment_type", sa.String(length=32), nullable=False),
        sa.Column("days_to_first_due", sa.Integer(), nullable=False),
        sa.Column("gap_between_dues", sa.Integer(), nullable=False),
        sa.Column("number_of_dues", sa.Integer(), nullable=False),
        sa.Column("is_end_of_month", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.CheckConstraint("number_of_dues BETWEEN 1 AND 24", name="ck_payment_conditions_number_of_dues_range"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "name", name="uq_payment_conditions_org_name"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payment_conditions_org_id", "payment_conditions", ["org_id"], unique=False)

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("document_type_id", sa.Integer(), nullable=False),
        sa.Column("numerator_code", sa.String(length=32), nullable=False),
        sa.Column("fiscal_year", sa.Integer(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("type_code", sa.String(length=32), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("moves_stock", sa.Boolean(), nullable=False),
        sa.Column("impacts_valuation", sa.Boolean(), nullable=False),
        sa.Column("operation_sign", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(length=32), nullable=True),
        sa.Column("counterparty_id", sa.Integer(), nullable=True),
        sa.Column("counterparty_name", sa.String(length=255), nullable=True),
        sa.Column("counterparty_vat_number", sa.String(length=32), nullable=True),
        sa.Column("counterparty_fiscal_code", sa.String(length=32), nullable=True),
        sa.Column("counterparty_sdi_code", sa.String(length=16), nullable=True),
        sa.Column("counterparty_address", sa.String(length=255), nullable=True),
        sa.Column("counterparty_city", sa.String(length=120), nullable=True),
        sa.Column("counterparty_province", sa.String(length=8), nullable=True),
        sa.Column("counterparty_zip_code", sa.String(length=16), nullable=True),
        sa.Column("counterparty_country", sa.String(length=2), nullable=True),
        sa.Column("main_warehouse_id", sa.Integer(), nullable=True),
        sa.Column("payment_condition_id", sa.Integer(), nullable=True),
        sa.Column("source_document_id", sa.Integer(), nullable=True),
        sa.Column("net_total", ExactDecimal(15, 2), nullable=False),
        sa.Column("vat_total", ExactDecimal(15, 2), nullable=False),
        sa.Column("gross_total", ExactDecimal(15, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["document_type_id"], ["document_types.id"]),
        sa.ForeignKeyConstraint(["counterparty_id"], ["counterparties.id"]),
        sa.ForeignKeyConstraint(["main_warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["payment_condition_id"], ["payment_conditions.id"]),
        sa.ForeignKeyConstraint(["source_document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "org_id", "numerator_code", "fiscal_year", "number",
            name="uq_documents_org_numerator_year_number",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_documents_org_id", "documents", ["org_id"], unique=False)
    op.create_index("ix_documents_document_type_id", "documents", ["document_type_id"], unique=False)
    op.create_index("ix_documents_counterparty_id", "documents", ["counterparty_id"], unique=False)
    op.create_index("ix_documents_source_document_id", "documents", ["source_document_id"], unique=False)
    op.create_index("ix_documents_is_deleted", "documents", ["is_deleted"], unique=False)
    op.create_index("ix_documents_created_at", "documents", ["created_at"], unique=False)
    op.create_index("ix_documents_org_date", "documents", ["org_id", "date"], unique=False)
    op.create_index("ix_documents_org_year_valuation", "documents", ["org_id", "fiscal_year", "impacts_valuation"], unique=False)

    op.create_table(
        "document_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_code", sa.String(length=64), nullable=True),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("quantity", ExactDecimal(12, 4), nullable=False),
        sa.Column("unit_price", ExactDecimal(15, 2), nullable=False),
        sa.Column("vat_rate", ExactDecimal(5, 4), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=True),
        sa.Column("net_amount", ExactDecimal(15, 2), nullable=False),
        sa.Column("vat_amount", ExactDecimal(15, 2), nullable=False),
        sa.Column("gross_amount", ExactDecimal(15, 2), nullable=False),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", "position", name="uq_document_lines_document_position"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_lines_document_id", "document_lines", ["document_id"], unique=False)
    op.create_index("ix_document_lines_product_id", "document_lines", ["product_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("numerator_code", sa.String(length=32), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "numerator_code", "year", name="uq_document_sequences_org_numerator_year"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_document_sequences_org_id", "document_sequences", ["org_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("signed_quantity", ExactDecimal(12, 4), nullable=False),
        sa.Column("movement_type", sa.String(length=32), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=True),
        sa.Column("document_number_snapshot", sa.String(length=64), nullable=True),
        sa.Column("reversal_of_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["reversal_of_id"], ["stock_movements.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_movements_org_id", "stock_movements", ["org_id"], unique=False)
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"], unique=False)
    op.create_index("ix_stock_movements_warehouse_id", "stock_movements", ["warehouse_id"], unique=False)
    op.create_index("ix_stock_movements_movement_type", "stock_movements", ["movement_type"], unique=False)
    op.create_index("ix_stock_movements_document_id", "stock_movements", ["document_id"], unique=False)
    op.create_index("ix_stock_movements_reversal_of_id", "stock_movements", ["reversal_of_id"], unique=False)
    op.create_index(
        "ix_stock_movements_org_product_warehouse", "stock_movements",
        ["org_id", "product_id", "warehouse_id"], unique=False,
    )
    op.create_index("ix_stock_movements_org_occurred", "stock_movements", ["org_id", "occurred_at"], unique=False)

    op.create_table(
        "product_annual_stats",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("purchased_quantity", ExactDecimal(12, 4), nullable=False),
        sa.Column("purchased_amount", ExactDecimal(15, 2), nullable=False),
        sa.Column("sold_quantity", ExactDecimal(12, 4), nullable=False),
        sa.Column("sold_amount", ExactDecimal(15, 2), nullable=False),
        sa.Column("weighted_average_cost", ExactDecimal(15, 4), nullable=False),
        sa.Column("last_cost", ExactDecimal(15, 4), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "product_id", "year", name="uq_product_annual_stats_org_product_year"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_product_annual_stats_org_id", "product_annual_stats", ["org_id"], unique=False)
    op.create_index("ix_product_annual_stats_product_id", "product_annual_stats", ["product_id"], unique=False)
    op.create_index("ix_product_annual_stats_org_year", "product_annual_stats", ["org_id", "year"], unique=False)

    op.create_table(
        "valuation_locks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_rebuilt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_rebuild_documents", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "year", name="uq_valuation_locks_org_year"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_valuation_locks_org_id", "valuation_locks", ["org_id"], unique=False)

    op.create_table(
        "installments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount", ExactDecimal(15, 2), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_id", "sequence", name="uq_installments_document_sequence"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_installments_org_id", "installments", ["org_id"], unique=False)
    op.create_index("ix_installments_document_id", "installments", ["document_id"], unique=False)
    op.create_index("ix_installments_org_due", "installments", ["org_id", "due_date"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(length=8), nullable=False),
        sa.Column("amount", ExactDecimal(15, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("reference", sa.String(length=128), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["document_id"], ["documents.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payments_org_id", "payments", ["org_id"], unique=False)
    op.create_index("ix_payments_document_id", "payments", ["document_id"], unique=False)
    op.create_index("ix_payments_org_date", "payments", ["org_id", "payment_date"], unique=False)

    op.create_table(
        "payment_allocations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("installment_id", sa.Integer(), nullable=False),
        sa.Column("amount", ExactDecimal(15, 2), nullable=False),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.ForeignKeyConstraint(["installment_id"], ["installments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_id", "installment_id", name="uq_payment_allocations_payment_installment"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_payment_allocations_payment_id", "payment_allocations", ["payment_id"], unique=False)
    op.create_index("ix_payment_allocations_installment_id", "payment_allocations", ["installment_id"], unique=False)


def downgrade():
    for table in (
        "payment_allocations",
        "payments",
        "installments",
        "valuation_locks",
        "product_annual_stats",
        "stock_movements",
        "document_sequences",
        "document_lines",
        "documents",
        "payment_conditions",
        "document_types",
        "products",
        "counterparties",
        "warehouses",
        "organizations",
    ):
        op.drop_table(table)
