"""
Pytest fixtures for the fulfillment backend tests.

Provides the app on in-memory SQLite, per-test table wipe, a fake vendor API
behind httpx.MockTransport, and order/profile factories.
"""

import json
import uuid

import httpx
import pytest

from fulfillment import create_app
from fulfillment.extensions import db
from fulfillment.models import Order, CustomerProfile


ADMIN_TOKEN = "test-admin-token"


class FakeVendor:
    """
    In-process stand-in for the vendor REST API.

    Tests flip the attributes to script balance and order responses and read
    `orders` to see exactly what was submitted.
    """

    def __init__(self):
        self.balance_dollars = 10000
        self.balance_status = 200
        self.order_status = 200
        self.order_error = None
        self.raise_on_order = None
        self.orders = []
        self.balance_calls = 0
        self._counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path.endswith("/addax/balance"):
            self.balance_calls += 1
            if self.balance_status != 200:
                return httpx.Response(self.balance_status, json={"message": "balance service down"})
            return httpx.Response(200, json={"balance": self.balance_dollars})

        if request.method == "POST" and path.endswith("/orders"):
            body = json.loads(request.content)
            self.orders.append(body)
            if self.raise_on_order is not None:
                raise self.raise_on_order
            if self.order_status >= 400:
                return httpx.Response(self.order_status, json=self.order_error or {"message": "error"})
            self._counter += 1
            return httpx.Response(200, json={"request_id": f"req-{self._counter:04d}"})

        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ZINC_API_KEY': 'test-key',
        'ZINC_API_BASE_URL': 'https://vendor.test/v1',
        'WEBHOOK_BASE_URL': 'https://hooks.test',
        'ADMIN_API_TOKEN': ADMIN_TOKEN,
        'SUBMISSION_RATE_LIMIT': 100,
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
        db.session.expunge_all()


@pytest.fixture(scope='function')
def vendor(app, monkeypatch):
    """Route every vendor call through a FakeVendor."""
    fake = FakeVendor()
    monkeypatch.setitem(app.config, 'ZINC_HTTP_TRANSPORT', httpx.MockTransport(fake.handler))
    return fake


@pytest.fixture(scope='function')
def purchaser(db_session):
    profile = CustomerProfile(
        user_id="user-1",
        display_name="Alex Buyer",
        email="alex@example.com",
        phone="555-0100",
    )
    db_session.add(profile)
    db_session.commit()
    return profile


def complete_address(**overrides) -> dict:
    address = {
        "name": "Jamie Recipient",
        "address_line1": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "country": "US",
        "phone": "555-0199",
    }
    address.update(overrides)
    return address


@pytest.fixture(scope='function')
def make_order(db_session):
    """Factory for persisted orders (paid, $50 total, one valid ASIN by default)."""
    def _make(**fields):
        values = {
            "order_number": f"ORD-{uuid.uuid4().hex[:8].upper()}",
            "user_id": "user-1",
            "payment_status": "paid",
            "total_amount_cents": 5000,
            "line_items": [{"product_id": "B0TESTASIN", "quantity": 1, "unit_price_cents": 5000}],
            "shipping_address": complete_address(),
        }
        values.update(fields)
        order = Order(**values)
        db_session.add(order)
        db_session.commit()
        return order
    return _make


@pytest.fixture(scope='function')
def admin_headers():
    """Trusted-caller headers."""
    return {'X-Admin-Token': ADMIN_TOKEN}
