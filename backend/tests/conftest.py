"""
Pytest fixtures for StockPilot backend tests.

Provides test database setup, users with each role, catalog/customer
factories, fake collaborators and the test client.
"""

from datetime import timedelta

import pytest

from stockpilot import create_app
from stockpilot.collaborators import (
    IMAGE_STORE_KEY,
    REORDER_ADVISOR_KEY,
    ImageStore,
    ReorderAdvisor,
    ReorderSuggestion,
    StoredImage,
)
from stockpilot.errors import InfrastructureError
from stockpilot.extensions import db
from stockpilot.models import Customer, Product, User
from stockpilot.models.inventory import MOVEMENT_STOCK_IN
from stockpilot.permissions import ROLE_ADMIN, ROLE_EMPLOYEE
from stockpilot.services import inventory_service, session_service
from stockpilot.services.auth_service import hash_password
from stockpilot.time_utils import today as utc_today


class FakeImageStore(ImageStore):
    """Keeps uploads in memory."""

    def __init__(self):
        self.uploaded = []
        self.deleted = []
        self.fail_uploads = False

    def upload(self, data: bytes, folder: str) -> StoredImage:
        if self.fail_uploads:
            raise InfrastructureError("Image upload failed. Please try again.", status_code=503)
        public_id = f"{folder}/img{len(self.uploaded) + 1}"
        self.uploaded.append((public_id, data))
        return StoredImage(url=f"https://images.test/{public_id}.jpg", public_id=public_id)

    def delete(self, public_id: str) -> None:
        self.deleted.append(public_id)


class FakeReorderAdvisor(ReorderAdvisor):
    """Answers with lead-time demand plus safety stock minus stock on hand."""

    def __init__(self):
        self.contexts = []

    def suggest_reorder_quantity(self, context):
        self.contexts.append(context)
        demand = context.average_daily_sales * context.lead_time_in_days
        quantity = max(int(round(demand + context.desired_safety_stock_level - context.current_stock_level)), 0)
        return ReorderSuggestion(reorder_quantity=quantity, reasoning="lead-time demand plus safety stock")


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'STOCK_RETRY_ATTEMPTS': 2,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    app.extensions.pop(IMAGE_STORE_KEY, None)
    app.extensions.pop(REORDER_ADVISOR_KEY, None)

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def image_store(app, db_session):
    store = FakeImageStore()
    app.extensions[IMAGE_STORE_KEY] = store
    return store


@pytest.fixture
def reorder_advisor(app, db_session):
    advisor = FakeReorderAdvisor()
    app.extensions[REORDER_ADVISOR_KEY] = advisor
    return advisor


def make_user(name: str, email: str, role: str, password: str = "secret123") -> User:
    user = User(name=name, email=email, password_hash=hash_password(password), role=role)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin(db_session):
    return make_user("Alice Admin", "admin@stockpilot.test", ROLE_ADMIN)


@pytest.fixture
def employee(db_session):
    return make_user("Evan Employee", "employee@stockpilot.test", ROLE_EMPLOYEE)


def auth_headers(user: User) -> dict:
    """Helper to create Authorization headers."""
    _, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def employee_headers(employee):
    return auth_headers(employee)


def make_product(
    name: str = "Green Tea",
    *,
    price_cents: int = 1000,
    cost_cents: int = 400,
    low_stock_threshold: int = 5,
    sku: str | None = None,
    batches=(),
    actor: User | None = None,
) -> Product:
    """
    Product with stock received as batches: batches is a list of
    (quantity, expiry_date or None).
    """
    product = Product(
        name=name,
        sku=sku,
        price_cents=price_cents,
        cost_cents=cost_cents,
        low_stock_threshold=low_stock_threshold,
        stock=0,
        is_active=True,
    )
    db.session.add(product)
    db.session.flush()
    for quantity, expiry in batches:
        inventory_service.add_batch(
            product=product,
            quantity=quantity,
            expiry_date=expiry,
            actor=actor,
            movement_type=MOVEMENT_STOCK_IN,
        )
    db.session.commit()
    return product


def make_customer(name: str = "Lan Nguyen", email: str | None = None, phone: str | None = None) -> Customer:
    customer = Customer(name=name, email=email, phone=phone)
    db.session.add(customer)
    db.session.commit()
    return customer


@pytest.fixture
def customer(db_session):
    return make_customer()


@pytest.fixture
def dated_product(db_session, admin):
    """Two batches: 5 units expiring in 10 days, 10 units expiring in 40 days."""
    today = utc_today()
    return make_product(
        "Oolong",
        price_cents=1000,
        cost_cents=400,
        batches=[(10, today + timedelta(days=40)), (5, today + timedelta(days=10))],
        actor=admin,
    )
