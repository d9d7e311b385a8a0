"""
Pytest fixtures for the suitcase settlement backend tests.

Provides test database setup, domain object factories, and test client.
"""

from collections import namedtuple
from decimal import Decimal

import pytest
from maleta import create_app
from maleta.extensions import db
from maleta.models import InventoryItem, Seller, Suitcase, User
from maleta.services import suitcase_item_service


StockedItem = namedtuple("StockedItem", ["id", "inventory_id", "price_cents"])


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_BASE': 0,
        'RECEIPT_DIR': str(tmp_path_factory.mktemp('receipts')),
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
        app.config['REVERSAL_SOLD_ITEMS_POLICY'] = 'purge'


@pytest.fixture(scope='function')
def admin_user(db_session):
    user = User(username="admin", email="admin@maleta.local", role="admin")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def operator_user(db_session):
    user = User(username="operador", email="operador@maleta.local", role="operator")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def seller(db_session):
    """Seller with the usual 30% commission."""
    seller = Seller(name="Maria", commission_rate=Decimal("0.3"))
    db_session.add(seller)
    db_session.commit()
    return seller


@pytest.fixture(scope='function')
def suitcase(db_session, seller):
    suitcase = Suitcase(code="MAL-001", seller_id=seller.id, city="Sao Paulo")
    db_session.add(suitcase)
    db_session.commit()
    return suitcase


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(price_cents, quantity=10, unit_cost_cents=None)."""
    counter = {"n": 0}

    def _make(price_cents, quantity=10, unit_cost_cents=None):
        counter["n"] += 1
        product = InventoryItem(
            sku=f"SKU-{counter['n']:03d}",
            name=f"Produto {counter['n']}",
            price_cents=price_cents,
            unit_cost_cents=unit_cost_cents,
            quantity=quantity,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def loaded_suitcase(suitcase, make_product):
    """
    Suitcase holding three items priced 10.00, 20.00 and 30.00.

    Returns (suitcase, [item_10, item_20, item_30]) where each item is a
    StockedItem snapshot: settlement cleanup deletes the rows themselves.
    """
    items = []
    for price, cost in ((1000, 400), (2000, 800), (3000, 1000)):
        product = make_product(price, quantity=5, unit_cost_cents=cost)
        item = suitcase_item_service.add_item_to_suitcase(suitcase.id, product.id, 1)
        items.append(StockedItem(item.id, product.id, price))
    return suitcase, items


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return {"X-User-Id": str(admin_user.id)}


@pytest.fixture(scope='function')
def operator_headers(operator_user):
    return {"X-User-Id": str(operator_user.id)}
