"""
Shared fixtures: a throwaway SQLite database wired into the app, plus
factories for users, products and coupons.
"""

from datetime import timedelta

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import config
import models
from database import Base, get_db
from main import app
from notifications import get_notification_service

TEST_DATABASE_URL = "sqlite:///./test_store.db"

test_engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeNotifier:
    """Records confirmations instead of talking to SendGrid / Twilio."""

    def __init__(self, results=None, fail=False):
        self.results = results or {"email": True, "sms": True, "whatsapp": False}
        self.fail = fail
        self.sent = []

    def send_order_confirmation(self, order, user):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append((order.id, user.email))
        return dict(self.results)


@pytest.fixture(autouse=True)
def setup_db():
    """Create fresh tables before each test and drop them after."""
    Base.metadata.create_all(bind=test_engine)
    app.dependency_overrides[get_db] = override_get_db
    yield
    Base.metadata.drop_all(bind=test_engine)
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    fake = FakeNotifier()
    app.dependency_overrides[get_notification_service] = lambda: fake
    return fake


# ══════════════════════════════════════════════
#  Factories
# ══════════════════════════════════════════════

def auth_headers(user):
    token = jwt.encode({"userId": user.id}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(db):
    def _make(name="Priya Sharma", email="priya@gmail.com", is_admin=False, **fields):
        user = models.User(name=name, email=email, is_admin=is_admin, **fields)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(name="Store Admin", email="admin@janucollections.com", is_admin=True)


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def make_product(db):
    def _make(name="Banarasi Silk Saree", price=1000, category="sarees", **fields):
        fields.setdefault("description", "Handwoven silk saree with zari border")
        fields.setdefault("images", ["https://cdn.janucollections.com/saree-1.jpg"])
        product = models.Product(name=name, price=price, category=category, **fields)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make


@pytest.fixture
def make_coupon(db):
    """Defaults describe WELCOME10: 10% off, min 500, capped at 200, one use per user."""
    def _make(code="WELCOME10", **fields):
        now = models.utcnow()
        values = {
            "description": "Get 10% off on your first order",
            "discount_type": "percentage",
            "discount_value": 10,
            "minimum_order_amount": 500,
            "maximum_discount_amount": 200,
            "usage_limit": 100,
            "used_count": 0,
            "user_usage_limit": 1,
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
            "is_active": True,
            "applicable_categories": [],
            "excluded_categories": [],
        }
        values.update(fields)
        coupon = models.Coupon(code=code, **values)
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
        return coupon
    return _make


SHIPPING_INFO = {
    "fullName": "Priya Sharma",
    "email": "priya@gmail.com",
    "phone": "+919876543210",
    "doorNumber": "12",
    "street": "MG Road",
    "village": "Anekal",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}
