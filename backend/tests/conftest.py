"""
Pytest fixtures for Linato backend tests.

Provides test database setup, staff/menu/table fixtures, and test client.
"""

from decimal import Decimal

import pytest
from linato import create_app
from linato.extensions import db
from linato.models import Category, Product, DiningTable
from linato.services import auth_service, inventory_service, order_service


ADMIN_PIN = "1234"
PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'BUSINESS_TIMEZONE': 'UTC',
        'CANCEL_RESTORES_STOCK': False,
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


# =============================================================================
# STAFF
# =============================================================================

@pytest.fixture(scope='function')
def admin(db_session):
    """Admin with void PIN 1234."""
    return auth_service.create_user(
        name="Admin",
        email="admin@linato.test",
        password=PASSWORD,
        role=auth_service.ROLE_ADMIN,
        pin=ADMIN_PIN,
    )


@pytest.fixture(scope='function')
def cashier(db_session):
    return auth_service.create_user(
        name="Cashier",
        email="cashier@linato.test",
        password=PASSWORD,
        role=auth_service.ROLE_CASHIER,
    )


@pytest.fixture(scope='function')
def kitchen(db_session):
    return auth_service.create_user(
        name="Kitchen",
        email="kitchen@linato.test",
        password=PASSWORD,
        role=auth_service.ROLE_KITCHEN,
    )


# =============================================================================
# MENU / FLOOR
# =============================================================================

@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Pasta")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def product_a(db_session, category):
    """Product A: 280.00, 10 in stock."""
    product = Product(category_id=category.id, sku="PA-001", name="Spaghetti Bolognese", price=Decimal("280.00"))
    db_session.add(product)
    db_session.commit()
    inventory_service.update_stock(product.id, current_stock=10, reorder_level=2)
    return product


@pytest.fixture(scope='function')
def product_b(db_session, category):
    """Product B: 260.00, 5 in stock."""
    product = Product(category_id=category.id, sku="PA-002", name="Carbonara", price=Decimal("260.00"))
    db_session.add(product)
    db_session.commit()
    inventory_service.update_stock(product.id, current_stock=5, reorder_level=2)
    return product


@pytest.fixture(scope='function')
def table(db_session):
    table = DiningTable(name="T1", capacity=4)
    db_session.add(table)
    db_session.commit()
    return table


@pytest.fixture(scope='function')
def make_order(cashier):
    """Factory: create an order through the service with sensible defaults."""
    def _make(items, dine_type="takeout", cashier_id=None, shift_id=None, **fields):
        body = {"dine_type": dine_type, "items": items, **fields}
        payload = order_service.parse_order_payload(body)
        return order_service.create_order(
            payload,
            cashier_id=cashier_id or cashier.id,
            shift_id=shift_id,
        )
    return _make


# =============================================================================
# HTTP HELPERS
# =============================================================================

def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin):
    return auth_headers(get_auth_token(client, admin.email))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier):
    return auth_headers(get_auth_token(client, cashier.email))


@pytest.fixture(scope='function')
def kitchen_headers(client, kitchen):
    return auth_headers(get_auth_token(client, kitchen.email))
