"""Pytest fixtures for testing"""

import hashlib
import hmac
import json
import time
import uuid
import pytest
from datetime import date, datetime
from typing import Any, Callable, Dict, Generator, Optional
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from muaythai_gateway.api.main import create_app
from muaythai_gateway.api.dependencies import get_clock, get_email_client, get_security_config
from muaythai_gateway.config import Environment, SecurityConfig
from muaythai_gateway.infrastructure.clients.email import EmailClient
from muaythai_gateway.infrastructure.database.models import (
    AffiliateConversion,
    Base,
    Booking,
    Gym,
    Order,
    Payment,
)
from muaythai_gateway.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

WEBHOOK_SECRET = "whsec_test_secret"
CRON_SECRET = "cron_test_secret"

# 2026-03-10 09:00 in Bangkok (UTC+7)
FIXED_NOW = datetime(2026, 3, 10, 2, 0, 0)


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe v1 signature header for a raw payload"""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def security() -> SecurityConfig:
    """Production config with both secrets set"""
    return SecurityConfig(
        environment=Environment.PRODUCTION,
        webhook_secret=WEBHOOK_SECRET,
        cron_secret=CRON_SECRET,
    )


@pytest.fixture
def email_client() -> MagicMock:
    """Email client whose sends always succeed"""
    client = MagicMock(spec=EmailClient)
    client.is_configured = True
    client.send = AsyncMock(return_value="re_msg_123")
    return client


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def make_client(db: Session, email_client: MagicMock, now: datetime) -> Callable[..., TestClient]:
    """Build a test client; security and clock can be swapped per test"""

    def _make(security: SecurityConfig, clock_value: Optional[datetime] = None) -> TestClient:
        app = create_app()

        def override_get_db():
            try:
                yield db
            finally:
                pass

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_security_config] = lambda: security
        app.dependency_overrides[get_email_client] = lambda: email_client
        app.dependency_overrides[get_clock] = lambda: (lambda: clock_value or now)
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client: Callable[..., TestClient], security: SecurityConfig) -> TestClient:
    """Create FastAPI test client with test database"""
    return make_client(security)


@pytest.fixture
def post_event(client: TestClient) -> Callable[..., Any]:
    """POST a signed Stripe event to the webhook endpoint"""

    def _post(event_type: str, data_object: Dict[str, Any], event_id: Optional[str] = None):
        payload = json.dumps(
            {
                "id": event_id or f"evt_{uuid.uuid4().hex[:12]}",
                "object": "event",
                "type": event_type,
                "data": {"object": data_object},
            }
        )
        return client.post(
            "/api/webhooks/stripe",
            content=payload,
            headers={"stripe-signature": sign_payload(payload), "content-type": "application/json"},
        )

    return _post


@pytest.fixture
def gym(db: Session) -> Gym:
    gym = Gym(gym_name="ค่ายมวยทดสอบ", gym_name_english="Test Muay Thai Gym", address="Bangkok", phone="02-000-0000")
    db.add(gym)
    db.commit()
    return gym


@pytest.fixture
def make_booking(db: Session, gym: Gym) -> Callable[..., Booking]:
    def _make(**overrides) -> Booking:
        fields = dict(
            booking_number=f"BK{uuid.uuid4().hex[:6].upper()}",
            user_id=uuid.uuid4(),
            gym_id=gym.id,
            customer_name="Somchai",
            customer_email="somchai@example.com",
            package_name="Private Training 10 Sessions",
            start_date=date(2026, 3, 20),
            price_paid=4500.0,
            status="pending",
            payment_status="pending",
        )
        fields.update(overrides)
        booking = Booking(**fields)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def make_payment(db: Session) -> Callable[..., Payment]:
    def _make(intent_id: str, with_order: bool = True, order_status: str = "pending", **overrides) -> Payment:
        fields = dict(
            stripe_payment_intent_id=intent_id,
            amount=450000,
            currency="thb",
            status="pending",
            payment_type="gym_booking",
            metadata_={},
        )
        fields.update(overrides)
        payment = Payment(**fields)
        db.add(payment)
        db.flush()
        if with_order:
            db.add(Order(user_id=payment.user_id, payment_id=payment.id, status=order_status))
        db.commit()
        return payment

    return _make


@pytest.fixture
def make_conversion(db: Session) -> Callable[..., AffiliateConversion]:
    def _make(booking: Booking, **overrides) -> AffiliateConversion:
        fields = dict(
            affiliate_user_id=uuid.uuid4(),
            referred_user_id=booking.user_id,
            conversion_type="booking",
            reference_type="booking",
            reference_id=str(booking.id),
            status="pending",
            commission_amount=225.0,
            metadata_={},
        )
        fields.update(overrides)
        conversion = AffiliateConversion(**fields)
        db.add(conversion)
        db.commit()
        return conversion

    return _make
