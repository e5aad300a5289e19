"""Shared fixtures for order service tests."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from mock_services import mock_payment_service
from order_service.catalog import PriceTier, add_product
from order_service.clients import PaymentClient
from order_service.database import Database
from order_service.main import create_app
from order_service.security import Caller, issue_token


@pytest.fixture
def db(tmp_path):
    """File-backed SQLite database with the full schema."""
    database = Database(f"sqlite:///{tmp_path / 'orders.db'}")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def product_7(db):
    """The reference product: stock 10, one tier 1..9 at 1000, VAT 16%, cashback 5%."""
    return add_product(
        db,
        name="Cooking Oil 20L",
        tiers=[PriceTier(1, 9, Decimal("1000"))],
        stock_units=10,
        vat_rate=Decimal("16"),
        cashback_rate=Decimal("5"),
        product_id=7,
    )


@pytest.fixture
def customer():
    return Caller(id=42, user_type="customer", email="buyer@example.com")


@pytest.fixture
def admin():
    return Caller(id=1, user_type="admin", email="admin@example.com")


@pytest.fixture
def gateway_client():
    """HTTP client bound to the in-process mock KCB Buni gateway."""
    client = TestClient(mock_payment_service.app)
    yield client
    client.close()


@pytest.fixture
def payment_client(gateway_client):
    return PaymentClient(
        client=gateway_client,
        client_id="test-client",
        client_secret="test-secret",
        callback_url="http://testserver/orders/callback",
    )


@pytest.fixture
def api_client(db, payment_client):
    app = create_app(database=db, payment_client=payment_client)
    return TestClient(app)


def auth_headers(user_id: int, user_type: str = "customer") -> dict:
    return {"Authorization": f"Bearer {issue_token(user_id, f'user{user_id}@example.com', user_type)}"}
