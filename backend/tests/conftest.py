"""
Pytest fixtures for stockbook backend tests.

Provides test database setup, two tenants, catalog and client fixtures, and a
test client that sends the identity header.
"""

import pytest
from stockbook import create_app
from stockbook.extensions import db
from stockbook.models import Category, Client, Product
from stockbook.services.tenant_service import create_business


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def business_a(db_session):
    """Business A (first tenant)."""
    return create_business(email="owner@alpha.test", name="Alpha Pharmacy", address="1 Main St")


@pytest.fixture(scope='function')
def business_b(db_session):
    """Business B (second tenant)."""
    return create_business(email="owner@beta.test", name="Beta Supplies", address="2 Side St")


@pytest.fixture(scope='function')
def headers_a(business_a):
    return {"X-Authenticated-Email": business_a.email}


@pytest.fixture(scope='function')
def headers_b(business_b):
    return {"X-Authenticated-Email": business_b.email}


@pytest.fixture(scope='function')
def category_a(db_session, business_a):
    category = Category(business_id=business_a.id, name="Medicines")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def category_b(db_session, business_b):
    category = Category(business_id=business_b.id, name="Hardware")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: seed a product with a starting quantity (no ledger row)."""
    def _make(business, category, *, name="Paracetamol 500mg", quantity=0, price_cents=1000,
              purchase_price_cents=None, unit="box"):
        product = Product(
            business_id=business.id,
            category_id=category.id,
            name=name,
            unit=unit,
            quantity=quantity,
            price_cents=price_cents,
            purchase_price_cents=purchase_price_cents,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def client_a(db_session, business_a):
    c = Client(
        business_id=business_a.id,
        name="Jane Customer",
        email="jane@example.test",
        phone="+33 1 23 45 67 89",
        address="10 Rue de la Paix, Paris",
    )
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def client_b(db_session, business_b):
    c = Client(business_id=business_b.id, name="Bob Buyer", address="5 Elm Rd")
    db_session.add(c)
    db_session.commit()
    return c
