"""
Pytest fixtures for deskhub backend tests.

Provides an in-memory database, test client, staff accounts with token
headers, and small factories for desks, items and bookings.
"""

from datetime import datetime

import bcrypt
import pytest

from deskhub import create_app
from deskhub.extensions import db
from deskhub.models import Desk, User
from deskhub.services import booking_service, inventory_service
from deskhub.services.token_service import issue_staff_token

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'JWT_SECRET': 'test-staff-secret',
    'JWT_PUBLIC_SECRET': 'test-public-secret',
    'DESKHUB_ENV': 'testing',
    'PUBLIC_BASE_URL': 'http://desk.test',
}

PASSWORD = "Password123"


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


def _make_user(session, email: str, role: str) -> User:
    user = User(
        email=email,
        name=email.split("@")[0].title(),
        role=role,
        # Low cost factor keeps the suite fast; verification is identical
        password_hash=bcrypt.hashpw(PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8"),
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin@deskhub.test", "admin")


@pytest.fixture(scope='function')
def staff_user(db_session):
    return _make_user(db_session, "staff@deskhub.test", "staff")


@pytest.fixture(scope='function')
def customer_user(db_session):
    return _make_user(db_session, "customer@deskhub.test", "customer")


def headers_for(user: User) -> dict:
    token = issue_staff_token(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture(scope='function')
def staff_headers(staff_user):
    return headers_for(staff_user)


@pytest.fixture(scope='function')
def desk(db_session):
    """Desk D1 at the default rate (10.00/h)."""
    d = Desk(label="D1", status="available", hourly_rate_cents=1000)
    db_session.add(d)
    db_session.commit()
    return d


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory: make_item(sku, price_cents=..., quantity=..., category=..., included_items=...)."""
    def _make(sku: str, price_cents: int = 0, quantity: int = 10, category: str = "food", **extra):
        included = extra.pop("included_items", None)
        patch = {"sku": sku, "name": extra.pop("name", sku.title()), "category": category,
                 "price_cents": price_cents, "quantity": quantity}
        patch.update(extra)
        return inventory_service.create_item(patch, included_items=included)
    return _make


@pytest.fixture(scope='function')
def make_booking(db_session):
    """Factory: make_booking(desk, start, end, **kwargs) -> Booking."""
    def _make(desk, start: datetime, end: datetime | None = None, **kwargs):
        customer = kwargs.pop("customer", {"name": "Ada", "email": "ada@example.com", "phone": "555-0100"})
        receipt = booking_service.create_booking(
            desk_id=desk.id,
            customer=customer,
            start_time=start,
            end_time=end,
            **kwargs,
        )
        return receipt.booking
    return _make
