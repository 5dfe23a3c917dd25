"""
Shared fixtures: an app on in-memory SQLite with side effects run inline,
so audit rows and activity bumps are visible as soon as the call returns.
"""
import pytest

from app import create_app
from config import TestConfig
from models import db
from models.customer import Customer
from security.password import hash_password


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def engine(app):
    return app.extensions["trust_engine"]


@pytest.fixture
def make_customer(app):
    def _make(email="player@example.com", password="correct-horse-battery"):
        customer = Customer(email=email, password_hash=hash_password(password))
        db.session.add(customer)
        db.session.commit()
        return customer
    return _make


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": TestConfig.ADMIN_API_TOKEN, "X-Admin-Actor": "ops@example.com"}


@pytest.fixture
def cron_headers():
    return {"X-Cron-Secret": TestConfig.CRON_SECRET}
