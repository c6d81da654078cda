"""
Pytest fixtures for RetailPOS backend tests.

Provides test database setup, catalog/user factories, a recording
broadcaster on the sale engine, and the test client.
"""

import pytest

from retailpos import create_app
from retailpos.extensions import db
from retailpos.models import (
    Client,
    EntityStatus,
    Location,
    Role,
)
from retailpos.services import auth_service, pricing_service, stock_service
from retailpos.services.broadcast import RecordingBroadcaster
from retailpos.services.session_service import Identity


TEST_PASSWORD = "Password123"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'STOCK_RESERVE_RETRY_BACKOFF_SECONDS': 0,
    'TRANSACTION_RETRY_BACKOFF_SECONDS': 0,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

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
def engine(app):
    """The app's sale engine with a RecordingBroadcaster swapped in."""
    sale_engine = app.extensions["sale_engine"]
    original = sale_engine.broadcaster
    sale_engine.broadcaster = RecordingBroadcaster()
    yield sale_engine
    sale_engine.broadcaster = original


@pytest.fixture(scope='function')
def broadcaster(engine):
    return engine.broadcaster


# =============================================================================
# FACTORIES
# =============================================================================

@pytest.fixture(scope='function')
def make_location(db_session):
    def _make(name="Centro", status=EntityStatus.ACTIVE):
        location = Location(name=name, status=status)
        db_session.add(location)
        db_session.commit()
        return location
    return _make


@pytest.fixture(scope='function')
def make_user(db_session):
    def _make(username, role=Role.SELLER, location=None, password=TEST_PASSWORD):
        return auth_service.create_user(
            username,
            password,
            role,
            location.id if location is not None else None,
        )
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(name="Product X", cost_cents=1000, vat_bps=2100, margin_bps=3000, price_cents=None, **kwargs):
        return pricing_service.create_product(
            name=name,
            cost_cents=cost_cents,
            vat_bps=vat_bps,
            margin_bps=margin_bps,
            price_cents=price_cents,
            **kwargs,
        )
    return _make


@pytest.fixture(scope='function')
def set_stock(db_session):
    def _set(product, location, quantity, min_quantity=None):
        return stock_service.set_stock(product.id, location.id, quantity, min_quantity)
    return _set


@pytest.fixture(scope='function')
def make_client(db_session):
    def _make(name="Ana", loyalty_points=0, status=EntityStatus.ACTIVE):
        client = Client(name=name, loyalty_points=loyalty_points, status=status)
        db_session.add(client)
        db_session.commit()
        return client
    return _make


# =============================================================================
# COMMON SCENARIO: two locations, a seller at each, an admin
# =============================================================================

@pytest.fixture(scope='function')
def loc_a(make_location):
    return make_location("Location A")


@pytest.fixture(scope='function')
def loc_b(make_location):
    return make_location("Location B")


@pytest.fixture(scope='function')
def seller(make_user, loc_a):
    return make_user("seller_a", Role.SELLER, loc_a)


@pytest.fixture(scope='function')
def other_seller(make_user, loc_b):
    return make_user("seller_b", Role.SELLER, loc_b)


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin", Role.ADMIN)


@pytest.fixture(scope='function')
def seller_identity(seller):
    return Identity.for_user(seller)


@pytest.fixture(scope='function')
def other_seller_identity(other_seller):
    return Identity.for_user(other_seller)


@pytest.fixture(scope='function')
def admin_identity(admin):
    return Identity.for_user(admin)


# =============================================================================
# HTTP HELPERS
# =============================================================================

def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def seller_headers(client, seller):
    return auth_headers(get_auth_token(client, seller.username))


@pytest.fixture(scope='function')
def other_seller_headers(client, other_seller):
    return auth_headers(get_auth_token(client, other_seller.username))


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.username))
