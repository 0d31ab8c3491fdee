"""
Pytest fixtures for theater back office tests.

Provides test database setup, theater/product fixtures, and identity header helpers.
"""

import pytest

from theaterpos import create_app
from theaterpos.extensions import db
from theaterpos.models import Theater, Product
from theaterpos.services.role_service import create_default_roles, roles
from theaterpos.services.page_access_service import seed_page_access
from theaterpos.services.theater_user_service import theater_users


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
    'LOG_LEVEL': 'WARNING',
    'STOCK_SWEEP_TIMEZONE': 'Asia/Kolkata',
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
def theater(db_session):
    """Theater A (first tenant)."""
    theater = Theater(name="Theater A - Galaxy Cinemas", code="GALAXY", is_active=True)
    db_session.add(theater)
    db_session.commit()
    return theater


@pytest.fixture(scope='function')
def other_theater(db_session):
    """Theater B (second tenant)."""
    theater = Theater(name="Theater B - Orion Screens", code="ORION", is_active=True)
    db_session.add(theater)
    db_session.commit()
    return theater


@pytest.fixture(scope='function')
def seeded_theater(theater):
    """Theater A with default roles and page access."""
    create_default_roles(theater.id)
    seed_page_access(theater.id)
    return theater


@pytest.fixture(scope='function')
def admin_role(seeded_theater):
    return find_role(seeded_theater.id, "Theater Admin")


@pytest.fixture(scope='function')
def kiosk_role(seeded_theater):
    return find_role(seeded_theater.id, "Kiosk Screen")


@pytest.fixture(scope='function')
def admin_user(seeded_theater, admin_role):
    """Theater user holding the Theater Admin role."""
    return theater_users.add_item(seeded_theater.id, user_payload("manager", role=admin_role["_id"]))


@pytest.fixture(scope='function')
def kiosk_user(seeded_theater, kiosk_role):
    """Theater user holding the Kiosk Screen role."""
    return theater_users.add_item(seeded_theater.id, user_payload("kiosk01", role=kiosk_role["_id"]))


@pytest.fixture(scope='function')
def product(db_session, theater):
    """Product in Theater A."""
    product = Product(theater_id=theater.id, sku="POP-L", name="Popcorn Large", current_stock=0)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(db_session, theater):
    """Second product in Theater A."""
    product = Product(theater_id=theater.id, sku="COKE-M", name="Cola Medium", current_stock=0)
    db_session.add(product)
    db_session.commit()
    return product


def find_role(theater_id: int, name: str) -> dict:
    listing = roles.list_items(theater_id, filters={"search": name}, limit=100)
    return next(r for r in listing["items"] if r["name"] == name)


def user_payload(username: str, **overrides) -> dict:
    payload = {
        "username": username,
        "email": f"{username}@galaxy.test",
        "password": "Password123!",
        "full_name": username.title(),
        "phone_number": "9876543210",
    }
    payload.update(overrides)
    return payload


def identity_headers(theater_id, user_id, user_type=None) -> dict:
    """Identity headers as set by the upstream authentication layer."""
    headers = {'X-User-Id': str(user_id)}
    if theater_id is not None:
        headers['X-Theater-Id'] = str(theater_id)
    if user_type:
        headers['X-User-Type'] = user_type
    return headers
