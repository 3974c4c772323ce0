"""
Pytest fixtures for pointonsale backend tests.

Provides test database setup, a four-level scope tree, a second company for
isolation checks, catalog fixtures and a test client with caller headers.
"""

import pytest

from pointonsale import create_app
from pointonsale.extensions import db
from pointonsale.models import Product, ProductAssignment
from pointonsale.models.tenancy import SCOPE_LEVEL_DISTRICT, SCOPE_LEVEL_LOCAL, SCOPE_LEVEL_STATE
from pointonsale.permissions import PERMISSION_CODES
from pointonsale.services import inventory_service, scope_service, wallet_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSIENT_RETRY_BACKOFF': 0,
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
def company(db_session):
    """COMPANY root scope of tenant A."""
    return scope_service.create_company("Acme Retail", "ACME")


@pytest.fixture(scope='function')
def state(company):
    return scope_service.create_scope(company.id, SCOPE_LEVEL_STATE, "North State")


@pytest.fixture(scope='function')
def district(state):
    return scope_service.create_scope(state.id, SCOPE_LEVEL_DISTRICT, "Lake District")


@pytest.fixture(scope='function')
def local(district):
    return scope_service.create_scope(district.id, SCOPE_LEVEL_LOCAL, "Harbour Shop")


@pytest.fixture(scope='function')
def other_company(db_session):
    """COMPANY root scope of tenant B."""
    return scope_service.create_company("Beta Stores", "BETA")


@pytest.fixture(scope='function')
def product(db_session, company):
    """Product with a default price of 10.00 and 5% GST."""
    product = Product(
        company_id=company.company_id,
        sku="SKU-001",
        name="Rice 1kg",
        price_cents=1000,
        gst_percent=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def second_product(db_session, company):
    """Product with a default price of 2.50 and no GST."""
    product = Product(
        company_id=company.company_id,
        sku="SKU-002",
        name="Salt 500g",
        price_cents=250,
        gst_percent=0,
    )
    db_session.add(product)
    db_session.commit()
    return product


def assign(db_session, scope_id, product_id, price_override_cents=None, is_allowed=True):
    """Helper to attach a product to a scope."""
    assignment = ProductAssignment(
        scope_id=scope_id,
        product_id=product_id,
        price_override_cents=price_override_cents,
        is_allowed=is_allowed,
    )
    db_session.add(assignment)
    db_session.commit()
    return assignment


def seed_fund(scope_id, amount_cents, wallet_type="FUND"):
    """Helper to book external money into a scope account."""
    return wallet_service.credit_account(scope_id, wallet_type, amount_cents, "Seed", str(scope_id))


def seed_stock(scope_id, product_id, qty):
    """Helper to put opening stock on a scope."""
    return inventory_service.move(scope_id, product_id, qty, "ADJUSTMENT", "Seed", str(scope_id))


def balance_of(scope_id, wallet_type="FUND"):
    return wallet_service.get_or_create_account(scope_id, wallet_type).balance_cents


def caller_headers(scope_id, *permissions) -> dict:
    """Helper to create gateway caller headers (all permissions when none given)."""
    codes = permissions or sorted(PERMISSION_CODES)
    return {'X-Scope-Id': str(scope_id), 'X-Permissions': ",".join(codes)}
