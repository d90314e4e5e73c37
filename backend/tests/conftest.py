"""
Pytest fixtures for the POS engine tests.

Provides the application, a per-test wiped database, a test client and
small factories for products, members and cashiers.
"""

from datetime import datetime
from decimal import Decimal
from itertools import count

import pytest

from posengine import create_app
from posengine.config import TestingConfig
from posengine.extensions import db
from posengine.models import Product, User
from posengine.services import settings_service
from posengine.services.customer_service import register_member


# Fixed clock for time-dependent operations
NOW = datetime(2026, 3, 2, 12, 0, 0)

_sku_counter = count(1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

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
def no_tax(db_session):
    """Tax 0% and a single zero-rate credit term, so payable == subtotal."""
    settings_service.update_store_settings(tax_rate="0", tax_type="EXCLUSIVE", credit_markup_rate="0")
    settings_service.replace_credit_terms([{"code": "net-7", "name": "Net 7", "days": 7, "rate": "0"}])


@pytest.fixture(scope='function')
def exclusive_tax(db_session):
    """10% exclusive tax with the default credit terms from config."""
    settings_service.update_store_settings(tax_rate="10", tax_type="EXCLUSIVE")


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(stock=5, price_cents=1000, cost_cents=400, allow_decimal=False)."""
    def _make(
        name: str = "Widget",
        stock="5",
        price_cents: int = 1000,
        cost_cents: int = 400,
        allow_decimal: bool = False,
        min_stock_level="0",
        unit: str = "each",
    ) -> Product:
        product = Product(
            sku=f"SKU-{next(_sku_counter):05d}",
            name=name,
            category="General",
            unit=unit,
            price_cents=price_cents,
            cost_cents=cost_cents,
            stock=Decimal(str(stock)),
            reserved_quantity=Decimal("0"),
            min_stock_level=Decimal(str(min_stock_level)),
            allow_decimal=allow_decimal,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_member(db_session):
    """Factory: make_member(name) -> MEMBER with zero balance."""
    def _make(name: str = "Avery Chen", phone: str | None = "555-0101", email: str | None = None):
        return register_member(name, phone=phone, email=email)

    return _make


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(username="cashier", name="Front Counter", role="CASHIER")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def now():
    return NOW
