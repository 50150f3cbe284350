# Overview: Pytest coverage for annual product statistics and their rebuild.

"""
Valuation Engine Tests

The incremental path (finalization) and the rebuild path (delete and
replay) must produce identical ProductAnnualStat rows.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text

from docledger.errors import ConsistencyError, PermissionDeniedError, ValidationError
from docledger.models import ProductAnnualStat, ValuationLock
from docledger.services import valuation_service
from docledger.services.finalization_service import CreateDocumentInput, LineInput, finalize_document


def _finalize(ctx, doc_type, date, *lines):
    return finalize_document(ctx, CreateDocumentInput(
        document_type_id=doc_type.id,
        date=date,
        lines=[LineInput(product_id=p.id, quantity=q, unit_price=u) for p, q, u in lines],
    ))


def _snapshot(db_session, org_id, year):
    rows = (
        db_session.query(ProductAnnualStat)
        .filter_by(org_id=org_id, year=year)
        .order_by(ProductAnnualStat.product_id)
        .all()
    )
    return {row.product_id: row.values() for row in rows}


@pytest.fixture
def history(db_session, operator_a, types_a, product_a, product_a_nowh, warehouse_a):
    """A year of mixed activity for two products, finalized in date order."""
    def run():
        gadget = product_a_nowh
        gadget.default_warehouse_id = warehouse_a.id
        db_session.commit()
        _finalize(operator_a, types_a["GRN"], "2024-01-05", (product_a, "10", "5.00"), (gadget, "3", "19.99"))
        _finalize(operator_a, types_a["INV"], "2024-01-20", (product_a, "4", "8.00"))
        _finalize(operator_a, types_a["GRN"], "2024-02-10", (product_a, "7", "6.35"))
        _finalize(operator_a, types_a["DINV"], "2024-03-01", (gadget, "1", "30.00"))
        _finalize(operator_a, types_a["CN"], "2024-03-15", (product_a, "1", "8.00"))
        _finalize(operator_a, types_a["GRN"], "2024-04-01", (gadget, "7", "21.33"))
        # Not valuation-impacting
        _finalize(operator_a, types_a["DN"], "2024-04-02", (product_a, "2", "8.00"))
        _finalize(operator_a, types_a["RTS"], "2024-04-03", (product_a, "1", "6.35"))
    return run


class TestFold:
    def test_first_purchase_sets_average(self):
        stat = valuation_service._empty_stat(1, 1, 2024)
        valuation_service.fold_line(stat, operation_sign=1, direction="PURCHASE", quantity=Decimal("10"), unit_price=Decimal("5.00"), net=Decimal("50.00"))
        assert stat.weighted_average_cost == Decimal("5.0000")
        assert stat.last_cost == Decimal("5.0000")

    def test_sale_does_not_touch_costs(self):
        stat = valuation_service._empty_stat(1, 1, 2024)
        valuation_service.fold_line(stat, operation_sign=1, direction="PURCHASE", quantity=Decimal("3"), unit_price=Decimal("1.00"), net=Decimal("3.00"))
        valuation_service.fold_line(stat, operation_sign=-1, direction="SALE", quantity=Decimal("2"), unit_price=Decimal("9.00"), net=Decimal("18.00"))
        assert stat.weighted_average_cost == Decimal("1.0000")
        assert stat.last_cost == Decimal("1.0000")
        assert stat.sold_quantity == Decimal("2")
        assert stat.sold_amount == Decimal("18.00")

    def test_customer_credit_note_reduces_sales(self):
        stat = valuation_service._empty_stat(1, 1, 2024)
        valuation_service.fold_line(stat, operation_sign=1, direction="PURCHASE", quantity=Decimal("10"), unit_price=Decimal("5.00"), net=Decimal("50.00"))
        valuation_service.fold_line(stat, operation_sign=-1, direction="SALE", quantity=Decimal("2"), unit_price=Decimal("8.00"), net=Decimal("16.00"))
        valuation_service.fold_line(stat, operation_sign=1, direction="SALE", quantity=Decimal("1"), unit_price=Decimal("8.00"), net=Decimal("8.00"))
        assert stat.purchased_quantity == Decimal("10")
        assert stat.weighted_average_cost == Decimal("5.0000")
        assert stat.last_cost == Decimal("5.0000")
        assert stat.sold_quantity == Decimal("1")
        assert stat.sold_amount == Decimal("8.00")

    def test_average_rounds_to_four_places(self):
        stat = valuation_service._empty_stat(1, 1, 2024)
        valuation_service.fold_line(stat, operation_sign=1, direction="PURCHASE", quantity=Decimal("3"), unit_price=Decimal("3.33"), net=Decimal("10.00"))
        assert stat.weighted_average_cost == Decimal("3.3333")


class TestIncrementalMatchesRebuild:
    def test_rebuild_reproduces_incremental_rows(self, db_session, org_a, history):
        history()
        incremental = _snapshot(db_session, org_a.id, 2024)
        assert len(incremental) == 2

        processed = valuation_service.rebuild_year(org_id=org_a.id, year=2024)
        assert processed == 6
        assert _snapshot(db_session, org_a.id, 2024) == incremental

    def test_expected_figures(self, db_session, org_a, product_a, history):
        history()
        stat = db_session.query(ProductAnnualStat).filter_by(org_id=org_a.id, product_id=product_a.id, year=2024).one()
        # receipts 10 @ 5.00 and 7 @ 6.35; the credit note takes 1 @ 8.00 off the sale
        assert stat.purchased_quantity == Decimal("17")
        assert stat.purchased_amount == Decimal("94.45")
        assert stat.weighted_average_cost == Decimal("5.5559")
        assert stat.last_cost == Decimal("6.35")
        assert stat.sold_quantity == Decimal("3")
        assert stat.sold_amount == Decimal("24.00")

    def test_backdated_receipt_matches_rebuild(self, db_session, org_a, operator_a, types_a, product_a):
        _finalize(operator_a, types_a["GRN"], "2024-03-01", (product_a, "10", "6.00"))
        _finalize(operator_a, types_a["GRN"], "2024-01-10", (product_a, "10", "5.00"))
        incremental = _snapshot(db_session, org_a.id, 2024)
        stat = db_session.query(ProductAnnualStat).filter_by(org_id=org_a.id, product_id=product_a.id).one()
        assert stat.weighted_average_cost == Decimal("5.5000")
        # the March receipt is the latest by date
        assert stat.last_cost == Decimal("6.00")

        valuation_service.rebuild_year(org_id=org_a.id, year=2024)
        assert _snapshot(db_session, org_a.id, 2024) == incremental

    def test_same_day_documents_fold_by_id(self, db_session, org_a, operator_a, types_a, product_a):
        _finalize(operator_a, types_a["GRN"], "2024-02-01", (product_a, "5", "4.00"))
        _finalize(operator_a, types_a["GRN"], "2024-02-01", (product_a, "5", "6.00"))
        _finalize(operator_a, types_a["INV"], "2024-01-15", (product_a, "2", "9.00"))
        incremental = _snapshot(db_session, org_a.id, 2024)

        valuation_service.rebuild_year(org_id=org_a.id, year=2024)
        assert _snapshot(db_session, org_a.id, 2024) == incremental
        stat = db_session.query(ProductAnnualStat).filter_by(org_id=org_a.id, product_id=product_a.id).one()
        assert stat.last_cost == Decimal("6.00")
        assert stat.sold_quantity == Decimal("2")

    def test_credit_note_keeps_average_cost(self, db_session, org_a, operator_a, types_a, product_a):
        _finalize(operator_a, types_a["GRN"], "2024-01-05", (product_a, "10", "5.00"))
        _finalize(operator_a, types_a["INV"], "2024-01-10", (product_a, "1", "8.00"))
        _finalize(operator_a, types_a["CN"], "2024-01-12", (product_a, "1", "8.00"))

        stat = db_session.query(ProductAnnualStat).filter_by(org_id=org_a.id, product_id=product_a.id).one()
        assert stat.weighted_average_cost == Decimal("5.0000")
        assert stat.last_cost == Decimal("5.00")
        assert stat.purchased_quantity == Decimal("10")
        assert stat.sold_quantity == Decimal("0")
        assert stat.sold_amount == Decimal("0.00")

    def test_rebuild_is_idempotent(self, db_session, org_a, history):
        history()
        valuation_service.rebuild_year(org_id=org_a.id, year=2024)
        first = _snapshot(db_session, org_a.id, 2024)
        valuation_service.rebuild_year(org_id=org_a.id, year=2024)
        assert _snapshot(db_session, org_a.id, 2024) == first

    def test_rebuild_repairs_a_corrupted_row(self, db_session, org_a, product_a, history):
        history()
        expected = _snapshot(db_session, org_a.id, 2024)
        stat = db_session.query(ProductAnnualStat).filter_by(org_id=org_a.id, product_id=product_a.id).one()
        stat.weighted_average_cost = Decimal("999.0000")
        db_session.commit()

        valuation_service.rebuild_year(org_id=org_a.id, year=2024)
        assert _snapshot(db_session, org_a.id, 2024) == expected

    def test_rebuild_records_lock_metadata(self, db_session, org_a, history):
        history()
        valuation_service.rebuild_year(org_id=org_a.id, year=2024)
        lock = db_session.query(ValuationLock).filter_by(org_id=org_a.id, year=2024).one()
        assert lock.last_rebuild_documents == 6
        assert lock.last_rebuilt_at is not None

    def test_rebuild_of_empty_year(self, db_session, org_a):
        assert valuation_service.rebuild_year(org_id=org_a.id, year=2030) == 0

    def test_rebuild_leaves_other_tenants_alone(self, db_session, org_a, admin_b, types_b, product_b, history):
        history()
        _finalize(admin_b, types_b["GRN"], "2024-01-05", (product_b, "2", "3.00"))
        before = _snapshot(db_session, admin_b.org_id, 2024)
        valuation_service.rebuild_year(org_id=org_a.id, year=2024)
        assert _snapshot(db_session, admin_b.org_id, 2024) == before


class TestConsistency:
    def test_missing_product_fails_and_keeps_stats(self, db_session, org_a, operator_a, types_a, product_a):
        _finalize(operator_a, types_a["GRN"], "2024-01-05", (product_a, "10", "5.00"))
        org_id = org_a.id
        before = _snapshot(db_session, org_id, 2024)
        product_id = product_a.id
        db_session.execute(text("DELETE FROM products WHERE id = :id"), {"id": product_id})
        db_session.commit()
        db_session.expunge_all()

        with pytest.raises(ConsistencyError) as exc:
            valuation_service.rebuild_year(org_id=org_id, year=2024)
        assert exc.value.field == "product_id"
        assert exc.value.document_id is not None
        assert exc.value.status_code == 500
        assert _snapshot(db_session, org_id, 2024) == before

    def test_invalid_year(self, db_session, org_a):
        with pytest.raises(ValidationError):
            valuation_service.rebuild_year(org_id=org_a.id, year=12)


class TestAccess:
    def test_rebuild_requires_admin(self, db_session, operator_a):
        with pytest.raises(PermissionDeniedError):
            valuation_service.rebuild_year_for(operator_a, 2024)

    def test_product_stat_defaults_to_zero(self, db_session, org_a, product_a):
        data = valuation_service.get_product_stat(org_a.id, product_a.id, 2024)
        assert data["purchased_quantity"] == "0.0000"
        assert data["weighted_average_cost"] == "0.0000"
        assert data["current_stock"] == "0"
        assert data["product_code"] == product_a.code

    def test_list_product_stats(self, db_session, org_a, history):
        history()
        items, total = valuation_service.list_product_stats(org_id=org_a.id, year=2024)
        assert total == 2
        assert [s.product.code for s in items] == ["P-A-001", "P-A-002"]
        items, total = valuation_service.list_product_stats(org_id=org_a.id, year=2024, search="gadget")
        assert total == 1
