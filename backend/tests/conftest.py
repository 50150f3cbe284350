"""
Pytest fixtures for docledger backend tests.

Provides test database setup, two tenants with their master data, request
contexts for each role, and a test client with gateway headers.
"""

import pytest

from docledger import create_app
from docledger.extensions import db
from docledger.models import Counterparty, Organization, PaymentCondition, Product, Warehouse
from docledger.services.document_type_service import get_document_type_by_code, seed_default_document_types
from docledger.services.tenant_service import RequestContext, ROLE_ADMIN, ROLE_OPERATOR, ROLE_VIEWER


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'FINALIZE_RETRY_BACKOFF': 0.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant) with the standard document types."""
    org = Organization(name="Org A - Acme Corp", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    seed_default_document_types(org.id)
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant) with the standard document types."""
    org = Organization(name="Org B - Beta Inc", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    seed_default_document_types(org.id)
    return org


@pytest.fixture(scope='function')
def warehouse_a(db_session, org_a):
    warehouse = Warehouse(org_id=org_a.id, code="MAIN", name="Main warehouse A")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse_a2(db_session, org_a):
    warehouse = Warehouse(org_id=org_a.id, code="SHOP", name="Shop floor A")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def warehouse_b(db_session, org_b):
    warehouse = Warehouse(org_id=org_b.id, code="MAIN", name="Main warehouse B")
    db_session.add(warehouse)
    db_session.commit()
    return warehouse


@pytest.fixture(scope='function')
def product_a(db_session, org_a, warehouse_a):
    """Stock-managed product in Organization A, stored in warehouse_a by default."""
    product = Product(
        org_id=org_a.id,
        code="P-A-001",
        name="Widget A",
        manage_stock=True,
        default_warehouse_id=warehouse_a.id,
        quantity_decimals=4,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a_nowh(db_session, org_a):
    """Stock-managed product in Organization A without a default warehouse."""
    product = Product(org_id=org_a.id, code="P-A-002", name="Gadget A", manage_stock=True, quantity_decimals=0)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def service_a(db_session, org_a):
    """Service product in Organization A: never moves stock."""
    product = Product(org_id=org_a.id, code="SRV-A", name="Installation", manage_stock=False)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, org_b, warehouse_b):
    product = Product(
        org_id=org_b.id,
        code="P-B-001",
        name="Widget B",
        manage_stock=True,
        default_warehouse_id=warehouse_b.id,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    counterparty = Counterparty(
        org_id=org_a.id,
        kind="CUSTOMER",
        business_name="Rossi S.r.l.",
        vat_number="IT01234567890",
        address="Via Roma 1",
        city="Milano",
        province="MI",
        zip_code="20100",
    )
    db_session.add(counterparty)
    db_session.commit()
    return counterparty


@pytest.fixture(scope='function')
def supplier_a(db_session, org_a):
    counterparty = Counterparty(org_id=org_a.id, kind="SUPPLIER", business_name="Fornitore SpA")
    db_session.add(counterparty)
    db_session.commit()
    return counterparty


@pytest.fixture(scope='function')
def customer_b(db_session, org_b):
    counterparty = Counterparty(org_id=org_b.id, kind="CUSTOMER", business_name="Beta Customer")
    db_session.add(counterparty)
    db_session.commit()
    return counterparty


@pytest.fixture(scope='function')
def condition_a(db_session, org_a):
    """Three dues, 30 days apart, starting 30 days after the document date."""
    condition = PaymentCondition(
        org_id=org_a.id,
        name="30/60/90",
        payment_type="BANK_TRANSFER",
        days_to_first_due=30,
        gap_between_dues=30,
        number_of_dues=3,
        is_end_of_month=False,
    )
    db_session.add(condition)
    db_session.commit()
    return condition


@pytest.fixture(scope='function')
def types_a(db_session, org_a):
    """Standard document types of Organization A keyed by code."""
    return {
        code: get_document_type_by_code(org_a.id, code)
        for code in ("QUO", "ORD", "DN", "INV", "DINV", "CN", "GRN", "RTS")
    }


@pytest.fixture(scope='function')
def types_b(db_session, org_b):
    return {code: get_document_type_by_code(org_b.id, code) for code in ("INV", "GRN")}


@pytest.fixture(scope='function')
def admin_a(org_a):
    return RequestContext(org_id=org_a.id, user_id=1, role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def operator_a(org_a):
    return RequestContext(org_id=org_a.id, user_id=2, role=ROLE_OPERATOR)


@pytest.fixture(scope='function')
def viewer_a(org_a):
    return RequestContext(org_id=org_a.id, user_id=3, role=ROLE_VIEWER)


@pytest.fixture(scope='function')
def admin_b(org_b):
    return RequestContext(org_id=org_b.id, user_id=10, role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def headers():
    """Helper to create the gateway headers for a tenant/user/role."""
    def _headers(org_id: int, role: str = ROLE_ADMIN, user_id: int = 1) -> dict:
        return {
            'X-Org-Id': str(org_id),
            'X-User-Id': str(user_id),
            'X-Role': role,
        }
    return _headers
