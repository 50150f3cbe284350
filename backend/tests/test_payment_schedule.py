# Overview: Pytest coverage for payment condition expansion, installments and payments.

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from docledger.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from docledger.models import Installment
from docledger.services import payment_schedule_service
from docledger.services.finalization_service import CreateDocumentInput, LineInput, finalize_document
from docledger.services.payment_schedule_service import expand


def _condition(**kwargs):
    values = {"number_of_dues": 1, "days_to_first_due": 0, "gap_between_dues": 0, "is_end_of_month": False}
    values.update(kwargs)
    return SimpleNamespace(**values)


class TestExpand:
    def test_three_dues_thirty_days_apart(self):
        plans = expand(
            _condition(days_to_first_due=30, gap_between_dues=30, number_of_dues=3),
            date(2024, 1, 15),
            Decimal("100.00"),
        )
        assert [(p.sequence, p.due_date, p.amount) for p in plans] == [
            (1, date(2024, 2, 14), Decimal("33.33")),
            (2, date(2024, 3, 15), Decimal("33.33")),
            (3, date(2024, 4, 14), Decimal("33.34")),
        ]

    @pytest.mark.parametrize("total,n", [
        ("100.00", 3),
        ("0.01", 2),
        ("99999.99", 7),
        ("1234.57", 24),
        ("10.00", 1),
    ])
    def test_amounts_sum_to_total(self, total, n):
        gross = Decimal(total)
        plans = expand(_condition(number_of_dues=n, gap_between_dues=30), date(2024, 6, 1), gross)
        assert len(plans) == n
        assert sum(p.amount for p in plans) == gross
        assert all(p.amount >= 0 for p in plans)

    def test_end_of_month(self):
        plans = expand(
            _condition(days_to_first_due=30, gap_between_dues=30, number_of_dues=2, is_end_of_month=True),
            date(2024, 1, 15),
            Decimal("50.00"),
        )
        assert [p.due_date for p in plans] == [date(2024, 2, 29), date(2024, 3, 31)]

    def test_single_due_ignores_gap(self):
        plans = expand(_condition(days_to_first_due=10, gap_between_dues=90), date(2024, 1, 1), Decimal("5.00"))
        assert [(p.due_date, p.amount) for p in plans] == [(date(2024, 1, 11), Decimal("5.00"))]

    def test_immediate_payment(self):
        plans = expand(_condition(), date(2024, 1, 1), Decimal("5.00"))
        assert plans[0].due_date == date(2024, 1, 1)

    def test_backdated_due_rejected(self):
        with pytest.raises(ValidationError):
            expand(_condition(days_to_first_due=-366), date(2024, 1, 1), Decimal("5.00"))
        plans = expand(_condition(days_to_first_due=-365), date(2024, 1, 1), Decimal("5.00"))
        assert plans[0].due_date == date(2023, 1, 1)

    def test_dues_out_of_range(self):
        for n in (0, 25):
            with pytest.raises(ValidationError):
                expand(_condition(number_of_dues=n), date(2024, 1, 1), Decimal("5.00"))

    def test_total_must_be_positive(self):
        with pytest.raises(ValidationError):
            expand(_condition(), date(2024, 1, 1), Decimal("0.00"))


class TestInstallmentsOnFinalize:
    def test_installments_are_materialized(self, db_session, operator_a, types_a, product_a, condition_a):
        doc = finalize_document(operator_a, CreateDocumentInput(
            document_type_id=types_a["INV"].id,
            date="2024-01-15",
            payment_condition_id=condition_a.id,
            lines=[LineInput(product_id=product_a.id, quantity="1", unit_price="100.00")],
        ))
        rows = db_session.query(Installment).filter_by(document_id=doc.id).order_by(Installment.sequence).all()
        assert [(r.due_date, r.amount, r.status) for r in rows] == [
            (date(2024, 2, 14), Decimal("33.33"), "PENDING"),
            (date(2024, 3, 15), Decimal("33.33"), "PENDING"),
            (date(2024, 4, 14), Decimal("33.34"), "PENDING"),
        ]

    def test_condition_edits_do_not_touch_existing_installments(
        self, db_session, admin_a, types_a, product_a, condition_a
    ):
        doc = finalize_document(admin_a, CreateDocumentInput(
            document_type_id=types_a["INV"].id,
            date="2024-01-15",
            payment_condition_id=condition_a.id,
            lines=[LineInput(product_id=product_a.id, quantity="1", unit_price="100.00")],
        ))
        payment_schedule_service.update_payment_condition(admin_a, condition_a.id, {"number_of_dues": 1})
        assert db_session.query(Installment).filter_by(document_id=doc.id).count() == 3

    def test_zero_total_creates_no_installments(self, db_session, operator_a, types_a, product_a, condition_a):
        doc = finalize_document(operator_a, CreateDocumentInput(
            document_type_id=types_a["INV"].id,
            date="2024-01-15",
            payment_condition_id=condition_a.id,
            lines=[LineInput(product_id=product_a.id, quantity="1", unit_price="0.00")],
        ))
        assert db_session.query(Installment).filter_by(document_id=doc.id).count() == 0

    def test_inactive_condition_rejected(self, db_session, admin_a, types_a, product_a, condition_a):
        payment_schedule_service.deactivate_payment_condition(admin_a, condition_a.id)
        with pytest.raises(ValidationError):
            finalize_document(admin_a, CreateDocumentInput(
                document_type_id=types_a["INV"].id,
                date="2024-01-15",
                payment_condition_id=condition_a.id,
                lines=[LineInput(product_id=product_a.id, quantity="1", unit_price="10.00")],
            ))


class TestPayments:
    @pytest.fixture
    def invoice(self, db_session, operator_a, types_a, product_a, condition_a, customer_a):
        return finalize_document(operator_a, CreateDocumentInput(
            document_type_id=types_a["INV"].id,
            date="2024-01-15",
            counterparty_id=customer_a.id,
            payment_condition_id=condition_a.id,
            lines=[LineInput(product_id=product_a.id, quantity="1", unit_price="100.00")],
        ))

    def _statuses(self, db_session, document_id):
        db_session.expire_all()
        rows = db_session.query(Installment).filter_by(document_id=document_id).order_by(Installment.sequence).all()
        return [(r.status, r.residual_amount) for r in rows]

    def test_auto_allocation_in_due_order(self, db_session, operator_a, invoice):
        payment = payment_schedule_service.record_payment(
            operator_a, document_id=invoice.id, amount="50.00", payment_date="2024-02-14",
        )
        assert payment.direction == "INFLOW"
        assert sorted(a.amount for a in payment.allocations) == [Decimal("16.67"), Decimal("33.33")]
        assert self._statuses(db_session, invoice.id) == [
            ("PAID", Decimal("0.00")),
            ("PARTIAL", Decimal("16.66")),
            ("PENDING", Decimal("33.34")),
        ]

    def test_explicit_allocation(self, db_session, operator_a, invoice):
        last = invoice.installments[-1]
        payment_schedule_service.record_payment(
            operator_a, document_id=invoice.id, amount="33.34",
            allocations=[{"installment_id": last.id, "amount": "33.34"}],
        )
        assert [s for s, _ in self._statuses(db_session, invoice.id)] == ["PENDING", "PENDING", "PAID"]

    def test_over_allocation_rejected(self, db_session, operator_a, invoice):
        first = invoice.installments[0]
        with pytest.raises(ValidationError):
            payment_schedule_service.record_payment(
                operator_a, document_id=invoice.id, amount="40.00",
                allocations=[{"installment_id": first.id, "amount": "40.00"}],
            )
        with pytest.raises(ValidationError):
            payment_schedule_service.record_payment(
                operator_a, document_id=invoice.id, amount="10.00",
                allocations=[{"installment_id": first.id, "amount": "20.00"}],
            )

    def test_overpayment_rejected(self, db_session, operator_a, invoice):
        with pytest.raises(ValidationError):
            payment_schedule_service.record_payment(operator_a, document_id=invoice.id, amount="100.01")

    def test_direction_must_match_document(self, db_session, operator_a, invoice):
        with pytest.raises(ValidationError) as exc:
            payment_schedule_service.record_payment(
                operator_a, document_id=invoice.id, amount="10.00", direction="OUTFLOW",
            )
        assert exc.value.field == "direction"

    def test_purchase_documents_take_outflows(self, db_session, operator_a, types_a, product_a, condition_a):
        receipt = finalize_document(operator_a, CreateDocumentInput(
            document_type_id=types_a["GRN"].id,
            date="2024-01-15",
            payment_condition_id=condition_a.id,
            lines=[LineInput(product_id=product_a.id, quantity="3", unit_price="10.00")],
        ))
        payment = payment_schedule_service.record_payment(operator_a, document_id=receipt.id, amount="10.00")
        assert payment.direction == "OUTFLOW"

    def test_paid_documents_cannot_be_deleted(self, db_session, operator_a, invoice):
        from docledger.services import document_service

        payment_schedule_service.record_payment(operator_a, document_id=invoice.id, amount="10.00")
        with pytest.raises(ConflictError):
            document_service.delete_document(operator_a, invoice.id)

    def test_viewer_cannot_pay(self, db_session, viewer_a, invoice):
        with pytest.raises(PermissionDeniedError):
            payment_schedule_service.record_payment(viewer_a, document_id=invoice.id, amount="10.00")

    def test_foreign_document(self, db_session, admin_b, invoice):
        with pytest.raises(NotFoundError):
            payment_schedule_service.record_payment(admin_b, document_id=invoice.id, amount="10.00")

    def test_list_installments_by_status(self, db_session, operator_a, invoice):
        payment_schedule_service.record_payment(operator_a, document_id=invoice.id, amount="33.33")
        items, total = payment_schedule_service.list_installments(org_id=operator_a.org_id, status="PENDING")
        assert total == 2
        assert [i.sequence for i in items] == [2, 3]

    def test_list_installments_pages_in_due_order(self, db_session, operator_a, invoice):
        items, total = payment_schedule_service.list_installments(org_id=operator_a.org_id, limit=1, offset=1)
        assert total == 3
        assert [i.sequence for i in items] == [2]

        items, total = payment_schedule_service.list_installments(org_id=operator_a.org_id, limit=5, offset=3)
        assert total == 3
        assert items == []


class TestConditions:
    def test_create_and_preview(self, db_session, admin_a):
        condition = payment_schedule_service.create_payment_condition(admin_a, {
            "name": "60 EOM",
            "number_of_dues": 1,
            "days_to_first_due": 60,
            "is_end_of_month": True,
        })
        plans = payment_schedule_service.preview_schedule(admin_a.org_id, condition.id, "2024-01-15", "10.00")
        assert [(p.due_date, p.amount) for p in plans] == [(date(2024, 3, 31), Decimal("10.00"))]

    def test_duplicate_name(self, db_session, admin_a, condition_a):
        with pytest.raises(ConflictError):
            payment_schedule_service.create_payment_condition(admin_a, {"name": "30/60/90", "number_of_dues": 3})

    def test_validation(self, db_session, admin_a):
        with pytest.raises(ValidationError):
            payment_schedule_service.create_payment_condition(admin_a, {"name": "Bad", "number_of_dues": 30})
        with pytest.raises(ValidationError):
            payment_schedule_service.create_payment_condition(admin_a, {"name": "Bad", "number_of_dues": "3"})

    def test_operator_cannot_manage_conditions(self, db_session, operator_a):
        with pytest.raises(PermissionDeniedError):
            payment_schedule_service.create_payment_condition(operator_a, {"name": "X", "number_of_dues": 1})
