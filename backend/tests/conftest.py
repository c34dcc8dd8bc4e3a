"""
Pytest fixtures for ricebook backend tests.

Provides an in-memory application, a per-test clean database, a test client
and small builders for customers and stock.
"""

import pytest

from ricebook import create_app
from ricebook.extensions import db
from ricebook.services import customer_service, inventory_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_ATTEMPTS': 3,
        'LEDGER_RETRY_BACKOFF': 0,
        'RICEBOOK_BRANDS': 'Sona Masoori,Basmati,Ponni Rice',
        'RICEBOOK_DEFAULT_COSTS': 'Sona Masoori=1000;Basmati=1400',
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
def customer(db_session):
    """Customer with a zero balance."""
    return customer_service.create_customer(name="Ravi Kumar", phone="9876543210", location="Guntur")


@pytest.fixture(scope='function')
def stocked_brand(db_session):
    """
    Sona Masoori with two batches:
    5 bags at 1000 (2026-01-01) then 5 bags at 1200 (2026-02-01).
    """
    inventory_service.add_stock(
        product_id="Sona Masoori", bags=5, unit_cost=1000, occurred_at="2026-01-01T00:00:00Z"
    )
    inventory_service.add_stock(
        product_id="Sona Masoori", bags=5, unit_cost=1200, occurred_at="2026-02-01T00:00:00Z"
    )
    return "Sona Masoori"


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """
    Application on a temp-file SQLite database.

    Unlike the in-memory app, a second connection from db.engine is a real
    concurrent writer: its commits survive our session's rollback.
    """
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_ATTEMPTS': 3,
        'LEDGER_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.engine.dispose()
