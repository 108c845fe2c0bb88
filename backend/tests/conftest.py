"""
Pytest fixtures for the point-of-sale core tests.

Provides the application on an in-memory database, a per-test table wipe,
a controllable clock and the catalog rows most tests need.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from bakery_pos import create_app
from bakery_pos.extensions import db
from bakery_pos.services import (
    cash_movement_service,
    payment_method_service,
    product_service,
    sales_service,
    shift_service,
    stock_service,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STORE_TIMEZONE': 'UTC',
        'TX_RETRY_ATTEMPTS': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all data but keep schema."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


class FrozenClock:
    """Stand-in for time_utils.utcnow; only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture(scope='function')
def clock(monkeypatch):
    clock = FrozenClock(datetime(2026, 3, 14, 9, 0, 0))
    for module in (sales_service, shift_service, cash_movement_service, stock_service):
        monkeypatch.setattr(module, "utcnow", clock)
    return clock


@pytest.fixture(scope='function')
def cash_method(db_session):
    return payment_method_service.create_payment_method("Efectivo", is_cash=True)


@pytest.fixture(scope='function')
def card_method(db_session):
    return payment_method_service.create_payment_method("Débito", is_cash=False)


@pytest.fixture(scope='function')
def bread(db_session):
    """Product priced 100.00 with 10 units in stock."""
    product = product_service.create_product("Pan de campo", Decimal("100.00"))
    stock_service.initialize_stock(product.id, 10)
    return product


@pytest.fixture(scope='function')
def croissant(db_session):
    """Product priced 35.50 with 5 units in stock."""
    product = product_service.create_product("Medialuna", "35.50")
    stock_service.initialize_stock(product.id, 5)
    return product


def make_product(name: str, price, quantity: int | None = None):
    """Create a product, optionally with its stock record."""
    product = product_service.create_product(name, price)
    if quantity is not None:
        stock_service.initialize_stock(product.id, quantity)
    return product


@pytest.fixture(scope='function')
def product_factory(db_session):
    return make_product
