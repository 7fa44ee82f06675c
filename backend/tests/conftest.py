"""
Pytest fixtures for ledgerdesk backend tests.

Provides test database setup, account fixtures, and test client.
"""

import pytest
from ledgerdesk import create_app
from ledgerdesk.extensions import db
from ledgerdesk.services import account_service, shift_service


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'LEDGER_RETRY_BACKOFF': 0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
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
def allow_overpayment(app, monkeypatch):
    """Switch the over-payment policy to 'allow' for one test."""
    monkeypatch.setitem(app.config, 'LEDGER_OVERPAYMENT_POLICY', 'allow')


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer account with a zero balance."""
    return account_service.create_account("Corner Cafe", phone="0555000001")


@pytest.fixture(scope='function')
def other_customer(db_session):
    return account_service.create_account("Bakery Two", phone="0555000002")


@pytest.fixture(scope='function')
def supplier(db_session):
    """Supplier account (we owe them on their invoices)."""
    return account_service.create_account("Flour Mill", phone="0555000099", kind="supplier")


@pytest.fixture(scope='function')
def open_shift(db_session):
    """A shift opened with 5000 in the drawer."""
    return shift_service.start_shift(5000, operator_id="cashier-1")
