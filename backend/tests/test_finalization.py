# Overview: Pytest coverage for the document finalization pipeline.

"""
Finalization Pipeline Tests

Covers:
- Supplier receipt then sale: stock movements and annual stats
- Totals, rounding and line snapshots
- Counterparty snapshot immutability
- All-or-nothing behavior on validation and configuration failures
- Permission checks
- Frozen fields, corrective documents and soft deletion
"""

from datetime import date
from decimal import Decimal

import pytest

from docledger.errors import (
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from docledger.models import Document, DocumentSequence, Installment, ProductAnnualStat, StockMovement
from docledger.services import document_service, stock_service
from docledger.services.document_type_service import (
    MOVEMENT_CUSTOMER_RETURN,
    MOVEMENT_SALE_ISSUE,
    MOVEMENT_SUPPLIER_RECEIPT,
)
from docledger.services.finalization_service import (
    CreateDocumentInput,
    LineInput,
    finalize_document,
    issue_corrective_document,
)


def _doc(doc_type, *lines, date="2024-01-10", **kwargs):
    return CreateDocumentInput(document_type_id=doc_type.id, date=date, lines=list(lines), **kwargs)


def _line(product, quantity, unit_price, vat_rate="0", **kwargs):
    return LineInput(
        product_id=product.id if product is not None else None,
        quantity=quantity,
        unit_price=unit_price,
        vat_rate=vat_rate,
        **kwargs,
    )


def _stat(db_session, org_id, product_id, year=2024):
    return db_session.query(ProductAnnualStat).filter_by(org_id=org_id, product_id=product_id, year=year).one()


class TestReceiptThenSale:
    def test_supplier_receipt_moves_stock_and_sets_cost(self, db_session, operator_a, types_a, product_a, supplier_a):
        doc = finalize_document(
            operator_a,
            _doc(types_a["GRN"], _line(product_a, "10", "5.00"), counterparty_id=supplier_a.id),
        )

        assert doc.status == "FINALIZED"
        assert doc.display_number == "GRN/2024/000001"
        movements = db_session.query(StockMovement).filter_by(document_id=doc.id).all()
        assert len(movements) == 1
        assert movements[0].signed_quantity == Decimal("10")
        assert movements[0].movement_type == MOVEMENT_SUPPLIER_RECEIPT
        assert movements[0].warehouse_id == product_a.default_warehouse_id

        stat = _stat(db_session, operator_a.org_id, product_a.id)
        assert stat.purchased_quantity == Decimal("10")
        assert stat.purchased_amount == Decimal("50.00")
        assert stat.last_cost == Decimal("5.00")
        assert stat.weighted_average_cost == Decimal("5.00")

    def test_sale_leaves_cost_and_reduces_stock(self, db_session, operator_a, types_a, product_a, customer_a):
        finalize_document(operator_a, _doc(types_a["GRN"], _line(product_a, "10", "5.00")))
        sale = finalize_document(
            operator_a,
            _doc(types_a["INV"], _line(product_a, "4", "8.00"), date="2024-01-20", counterparty_id=customer_a.id),
        )

        movement = db_session.query(StockMovement).filter_by(document_id=sale.id).one()
        assert movement.signed_quantity == Decimal("-4")
        assert movement.movement_type == MOVEMENT_SALE_ISSUE

        stat = _stat(db_session, operator_a.org_id, product_a.id)
        assert stat.sold_quantity == Decimal("4")
        assert stat.sold_amount == Decimal("32.00")
        assert stat.weighted_average_cost == Decimal("5.00")
        assert stock_service.current_stock(operator_a.org_id, product_a.id) == Decimal("6")

    def test_second_receipt_averages_cost(self, db_session, operator_a, types_a, product_a):
        finalize_document(operator_a, _doc(types_a["GRN"], _line(product_a, "10", "5.00")))
        finalize_document(operator_a, _doc(types_a["GRN"], _line(product_a, "20", "8.00"), date="2024-02-01"))

        stat = _stat(db_session, operator_a.org_id, product_a.id)
        assert stat.purchased_quantity == Decimal("30")
        assert stat.purchased_amount == Decimal("210.00")
        assert stat.weighted_average_cost == Decimal("7.0000")
        assert stat.last_cost == Decimal("8.00")

    def test_stats_are_per_fiscal_year(self, db_session, operator_a, types_a, product_a):
        finalize_document(operator_a, _doc(types_a["GRN"], _line(product_a, "10", "5.00"), date="2023-12-31"))
        finalize_document(operator_a, _doc(types_a["GRN"], _line(product_a, "10", "9.00"), date="2024-01-01"))

        assert _stat(db_session, operator_a.org_id, product_a.id, 2023).weighted_average_cost == Decimal("5.00")
        assert _stat(db_session, operator_a.org_id, product_a.id, 2024).weighted_average_cost == Decimal("9.00")


class TestTotalsAndLines:
    def test_totals_and_vat(self, db_session, operator_a, types_a, product_a, service_a):
        doc = finalize_document(
            operator_a,
            _doc(
                types_a["INV"],
                _line(product_a, "3", "0.35", "0.22"),
                _line(service_a, "1", "100.00", "0.22"),
            ),
        )
        assert doc.net_total == Decimal("101.05")
        assert doc.vat_total == Decimal("22.23")
        assert doc.gross_total == Decimal("123.28")
        assert [line.position for line in doc.lines] == [1, 2]
        assert doc.lines[0].product_code == product_a.code

    def test_service_lines_do_not_move_stock(self, db_session, operator_a, types_a, service_a, warehouse_a):
        doc = finalize_document(
            operator_a,
            _doc(types_a["INV"], _line(service_a, "2", "50.00")),
        )
        assert db_session.query(StockMovement).filter_by(document_id=doc.id).count() == 0

    def test_free_text_line(self, db_session, operator_a, types_a):
        doc = finalize_document(
            operator_a,
            _doc(types_a["INV"], _line(None, "1", "12.50", description="Consulting")),
        )
        assert doc.lines[0].product_id is None
        assert doc.lines[0].description == "Consulting"
        assert doc.gross_total == Decimal("12.50")

    def test_quote_moves_nothing(self, db_session, operator_a, types_a, product_a):
        doc = finalize_document(operator_a, _doc(types_a["QUO"], _line(product_a, "5", "8.00")))
        assert db_session.query(StockMovement).filter_by(document_id=doc.id).count() == 0
        assert db_session.query(ProductAnnualStat).count() == 0

    def test_delivery_note_moves_stock_without_valuation(self, db_session, operator_a, types_a, product_a):
        finalize_document(operator_a, _doc(types_a["DN"], _line(product_a, "2", "8.00")))
        assert stock_service.current_stock(operator_a.org_id, product_a.id) == Decimal("-2")
        assert db_session.query(ProductAnnualStat).count() == 0

    def test_document_main_warehouse_fallback(self, db_session, operator_a, types_a, product_a_nowh, warehouse_a2):
        doc = finalize_document(
            operator_a,
            _doc(types_a["GRN"], _line(product_a_nowh, "3", "1.00"), main_warehouse_id=warehouse_a2.id),
        )
        movement = db_session.query(StockMovement).filter_by(document_id=doc.id).one()
        assert movement.warehouse_id == warehouse_a2.id


class TestSnapshot:
    def test_counterparty_edits_do_not_reach_finalized_documents(self, db_session, operator_a, types_a, product_a, customer_a):
        doc = finalize_document(
            operator_a,
            _doc(types_a["INV"], _line(product_a, "1", "10.00"), counterparty_id=customer_a.id),
        )
        doc_id = doc.id

        customer_a.business_name = "Renamed S.p.A."
        customer_a.city = "Roma"
        db_session.commit()

        reloaded = db_session.get(Document, doc_id)
        assert reloaded.counterparty_name == "Rossi S.r.l."
        assert reloaded.counterparty_city == "Milano"
        assert reloaded.counterparty_vat_number == "IT01234567890"
        assert reloaded.snapshot_dict()["business_name"] == "Rossi S.r.l."

    def test_policy_edits_do_not_reach_finalized_documents(self, db_session, admin_a, types_a, product_a):
        doc = finalize_document(admin_a, _doc(types_a["INV"], _line(product_a, "1", "10.00")))
        types_a["INV"].impacts_valuation = False
        db_session.commit()

        assert db_session.get(Document, doc.id).impacts_valuation is True


class TestAllOrNothing:
    def _counts(self, db_session):
        return (
            db_session.query(Document).count(),
            db_session.query(StockMovement).count(),
            db_session.query(ProductAnnualStat).count(),
            db_session.query(DocumentSequence).count(),
            db_session.query(Installment).count(),
        )

    def test_missing_warehouse_writes_nothing(self, db_session, operator_a, types_a, product_a, product_a_nowh):
        before = self._counts(db_session)
        with pytest.raises(ConfigurationError) as exc:
            finalize_document(
                operator_a,
                _doc(types_a["GRN"], _line(product_a, "1", "1.00"), _line(product_a_nowh, "1", "1.00")),
            )
        assert exc.value.field == "lines[1].warehouse_id"
        assert exc.value.org_id == operator_a.org_id
        assert self._counts(db_session) == before

    def test_invalid_line_writes_nothing(self, db_session, operator_a, types_a, product_a):
        before = self._counts(db_session)
        with pytest.raises(ValidationError) as exc:
            finalize_document(
                operator_a,
                _doc(types_a["GRN"], _line(product_a, "1", "1.00"), _line(product_a, "1", "1.001")),
            )
        assert exc.value.field == "lines[1].unit_price"
        assert self._counts(db_session) == before

    def test_quantity_scale_follows_product(self, db_session, operator_a, types_a, product_a_nowh, warehouse_a):
        with pytest.raises(ValidationError) as exc:
            finalize_document(
                operator_a,
                _doc(types_a["GRN"], _line(product_a_nowh, "1.5", "1.00"), main_warehouse_id=warehouse_a.id),
            )
        assert exc.value.field == "lines[0].quantity"

    def test_no_lines(self, db_session, operator_a, types_a):
        with pytest.raises(ValidationError):
            finalize_document(operator_a, _doc(types_a["INV"]))

    def test_bad_date(self, db_session, operator_a, types_a, product_a):
        with pytest.raises(ValidationError) as exc:
            finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00"), date="15/01/2024"))
        assert exc.value.field == "date"

    def test_inactive_policy(self, db_session, operator_a, types_a, product_a):
        types_a["INV"].is_active = False
        db_session.commit()
        with pytest.raises(ConfigurationError):
            finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))

    def test_unknown_policy(self, db_session, operator_a, product_a):
        with pytest.raises(ConfigurationError):
            finalize_document(
                operator_a,
                CreateDocumentInput(document_type_id=99999, date="2024-01-10", lines=[_line(product_a, "1", "1.00")]),
            )

    def test_backdated_schedule_writes_nothing(self, db_session, operator_a, types_a, product_a, condition_a):
        condition_a.days_to_first_due = -400
        db_session.commit()
        before = self._counts(db_session)
        with pytest.raises(ValidationError):
            finalize_document(
                operator_a,
                _doc(types_a["INV"], _line(product_a, "1", "10.00"), payment_condition_id=condition_a.id),
            )
        assert self._counts(db_session) == before


class TestPermissions:
    def test_viewer_cannot_finalize(self, db_session, viewer_a, types_a, product_a):
        with pytest.raises(PermissionDeniedError):
            finalize_document(viewer_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))

    def test_inactive_org_cannot_finalize(self, db_session, org_a, operator_a, types_a, product_a):
        org_a.is_active = False
        db_session.commit()
        with pytest.raises(PermissionDeniedError):
            finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))


class TestFrozenDocuments:
    def test_only_notes_can_change(self, db_session, operator_a, types_a, product_a):
        doc = finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "10.00")))

        updated = document_service.update_document(operator_a, doc.id, {"notes": "Delivered by courier"})
        assert updated.notes == "Delivered by courier"

        for changes in ({"gross_total": "1.00"}, {"date": "2024-05-01"}, {"counterparty_id": 1}):
            with pytest.raises(ValidationError) as exc:
                document_service.update_document(operator_a, doc.id, changes)
            assert exc.value.document_id == doc.id
        assert db_session.get(Document, doc.id).gross_total == Decimal("10.00")


class TestCorrectiveDocuments:
    def test_credit_note_returns_stock_and_keeps_source(self, db_session, operator_a, types_a, product_a, customer_a):
        finalize_document(operator_a, _doc(types_a["GRN"], _line(product_a, "10", "5.00")))
        invoice = finalize_document(
            operator_a,
            _doc(types_a["INV"], _line(product_a, "4", "8.00"), date="2024-01-20", counterparty_id=customer_a.id),
        )

        credit = issue_corrective_document(
            operator_a,
            source_document_id=invoice.id,
            document_type_id=types_a["CN"].id,
            date="2024-01-25",
        )

        assert credit.source_document_id == invoice.id
        assert credit.counterparty_name == "Rossi S.r.l."
        assert credit.numerator_code == "INV"
        assert credit.number == invoice.number + 1
        assert credit.gross_total == invoice.gross_total

        movement = db_session.query(StockMovement).filter_by(document_id=credit.id).one()
        assert movement.signed_quantity == Decimal("4")
        assert movement.movement_type == MOVEMENT_CUSTOMER_RETURN
        assert stock_service.current_stock(operator_a.org_id, product_a.id) == Decimal("10")

        source = db_session.get(Document, invoice.id)
        assert source.is_deleted is False
        assert source.gross_total == Decimal("32.00")

    def test_partial_correction(self, db_session, operator_a, types_a, product_a):
        invoice = finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "4", "8.00")))
        credit = issue_corrective_document(
            operator_a,
            source_document_id=invoice.id,
            document_type_id=types_a["CN"].id,
            lines=[_line(product_a, "1", "8.00")],
        )
        assert credit.gross_total == Decimal("8.00")
        assert credit.date == date(2024, 1, 10)

    def test_foreign_source(self, db_session, admin_b, types_b, product_b, operator_a, types_a):
        foreign = finalize_document(admin_b, _doc(types_b["INV"], _line(product_b, "1", "1.00")))
        with pytest.raises(NotFoundError):
            issue_corrective_document(operator_a, source_document_id=foreign.id, document_type_id=types_a["CN"].id)


class TestSoftDelete:
    def test_delete_compensates_stock_and_rebuilds_valuation(self, db_session, operator_a, types_a, product_a):
        finalize_document(operator_a, _doc(types_a["GRN"], _line(product_a, "10", "5.00")))
        second = finalize_document(operator_a, _doc(types_a["GRN"], _line(product_a, "10", "7.00"), date="2024-02-01"))
        assert _stat(db_session, operator_a.org_id, product_a.id).weighted_average_cost == Decimal("6.0000")

        deleted = document_service.delete_document(operator_a, second.id)

        assert deleted.is_deleted is True
        assert deleted.deleted_by_user_id == operator_a.user_id
        assert stock_service.current_stock(operator_a.org_id, product_a.id) == Decimal("10")
        movements = db_session.query(StockMovement).filter_by(document_id=second.id).order_by(StockMovement.id).all()
        assert [m.signed_quantity for m in movements] == [Decimal("10"), Decimal("-10")]
        assert movements[1].reversal_of_id == movements[0].id

        stat = _stat(db_session, operator_a.org_id, product_a.id)
        assert stat.purchased_quantity == Decimal("10")
        assert stat.weighted_average_cost == Decimal("5.0000")
        assert stat.last_cost == Decimal("5.00")

    def test_number_stays_taken(self, db_session, operator_a, types_a, product_a):
        first = finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))
        document_service.delete_document(operator_a, first.id)
        second = finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))
        assert second.number == first.number + 1

    def test_delete_twice(self, db_session, operator_a, types_a, product_a):
        doc = finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))
        document_service.delete_document(operator_a, doc.id)
        with pytest.raises(ValidationError):
            document_service.delete_document(operator_a, doc.id)

    def test_delete_removes_installments(self, db_session, operator_a, types_a, product_a, condition_a):
        doc = finalize_document(
            operator_a,
            _doc(types_a["INV"], _line(product_a, "1", "90.00"), payment_condition_id=condition_a.id),
        )
        assert db_session.query(Installment).filter_by(document_id=doc.id).count() == 3
        document_service.delete_document(operator_a, doc.id)
        assert db_session.query(Installment).filter_by(document_id=doc.id).count() == 0

    def test_deleted_documents_hidden_from_listing(self, db_session, operator_a, types_a, product_a):
        keep = finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))
        gone = finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))
        document_service.delete_document(operator_a, gone.id)

        items, total = document_service.list_documents(org_id=operator_a.org_id)
        assert [d.id for d in items] == [keep.id]
        assert total == 1
        _, with_deleted = document_service.list_documents(org_id=operator_a.org_id, include_deleted=True)
        assert with_deleted == 2

    def test_cross_tenant_delete(self, db_session, admin_b, operator_a, types_a, product_a):
        doc = finalize_document(operator_a, _doc(types_a["INV"], _line(product_a, "1", "1.00")))
        with pytest.raises(NotFoundError):
            document_service.delete_document(admin_b, doc.id)
