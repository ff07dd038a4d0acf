"""
Pytest fixtures for DocTrail backend tests.

Provides test database setup, two isolated stores, counterparties,
stocked inventory units and a memo factory.
"""

import pytest
from doctrail import create_app
from doctrail.extensions import db
from doctrail.models import Store, Vendor, Customer, Product, InventoryUnit
from doctrail.services import document_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSITION_RETRY_BACKOFF': 0,
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

        db.session.rollback()


@pytest.fixture(scope='function')
def store_a(db_session):
    """Store A, 8% default tax."""
    store = Store(name="Store A", code="A1", tax_rate_bps=800)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    """Store B, no default tax."""
    store = Store(name="Store B", code="B1", tax_rate_bps=0)
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def vendor_a(db_session, store_a):
    vendor = Vendor(store_id=store_a.id, name="Ada Diamonds", company_name="Ada LLC")
    db_session.add(vendor)
    db_session.commit()
    return vendor


@pytest.fixture(scope='function')
def customer_a(db_session, store_a):
    customer = Customer(store_id=store_a.id, first_name="Grace", last_name="Hopper")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def product_a(db_session, store_a):
    """$100.00 ring in Store A."""
    product = Product(
        store_id=store_a.id,
        sku="RING-001",
        name="Gold Ring",
        price_cents=10000,
        cost_cents=4000,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def unit_a(db_session, store_a, product_a):
    """10 rings on hand in Store A."""
    unit = InventoryUnit(store_id=store_a.id, product_id=product_a.id, quantity=10)
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def unit_b(db_session, store_b):
    """5 units of a product in Store B."""
    product = Product(store_id=store_b.id, sku="WATCH-001", name="Watch", price_cents=25000)
    db_session.add(product)
    db_session.commit()
    unit = InventoryUnit(store_id=store_b.id, product_id=product.id, quantity=5)
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def make_memo(store_a, vendor_a, unit_a):
    """Factory: pending memo in Store A drawing `quantity` rings per item."""
    def _make(quantities=(1,), **extra):
        data = {
            "vendor_id": vendor_a.id,
            "tenure_days": 30,
            "items": [
                {"inventory_unit_id": unit_a.id, "quantity": qty}
                for qty in quantities
            ],
        }
        data.update(extra)
        return document_service.create_document(store_a.id, "memo", data)
    return _make


@pytest.fixture(scope='function')
def make_repair(store_a, vendor_a, customer_a, unit_a):
    """Factory: pending repair in Store A billed to customer_a."""
    def _make(quantities=(1,), with_customer=True, is_appraisal=False, **extra):
        data = {
            "vendor_id": vendor_a.id,
            "items": [
                {"inventory_unit_id": unit_a.id, "quantity": qty}
                for qty in quantities
            ],
        }
        if with_customer:
            data["customer_id"] = customer_a.id
        data.update(extra)
        return document_service.create_document(store_a.id, "repair", data, is_appraisal=is_appraisal)
    return _make
