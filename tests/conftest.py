import os
from datetime import timedelta
from decimal import Decimal

# Configure the app for tests before anything imports the settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_SCHEMA"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["PAYMENT_GATEWAY_URL"] = "https://gateway.test/v1"
os.environ["PAYMENT_KEY_ID"] = "rzp_test_key"
os.environ["PAYMENT_KEY_SECRET"] = "rzp_test_secret"
os.environ["SEAT_HOLD_MINUTES"] = "10"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.config import settings
from src.database import Base, get_db
from src.main import app
from src.models import Booking, Bus, Offer, User
from src.auth.utils import get_password_hash
from src.payments.gateway import PaymentGateway, get_payment_gateway
from src.utils import today, utcnow
from tests.helpers import GatewayStub, auth_headers


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway_stub():
    return GatewayStub()


@pytest.fixture
def gateway(gateway_stub):
    gateway = PaymentGateway(
        base_url=settings.PAYMENT_GATEWAY_URL,
        key_id=settings.PAYMENT_KEY_ID,
        key_secret=settings.PAYMENT_KEY_SECRET,
        timeout=1.0,
        transport=httpx.MockTransport(gateway_stub),
    )
    yield gateway
    gateway.close()


@pytest.fixture
def client(session_factory, gateway):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_user(db, email: str, role: str = "user", name: str = "Test User") -> User:
    user = User(
        name=name,
        email=email,
        phone="9876543210",
        password=get_password_hash("secret123"),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return _create_user(db, "rider@example.com", name="Asha Rider")


@pytest.fixture
def other_user(db):
    return _create_user(db, "other@example.com", name="Other Rider")


@pytest.fixture
def admin(db):
    return _create_user(db, "admin@example.com", role="admin", name="Admin User")


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def other_headers(other_user):
    return auth_headers(other_user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def bus(db):
    bus = Bus(
        bus_name="Volvo Express",
        bus_number="MH12AB1234",
        bus_type="AC",
        from_city="Mumbai",
        to_city="Pune",
        departure_time="08:00",
        arrival_time="11:30",
        duration="3h 30m",
        price=Decimal("500"),
        total_seats=40,
        amenities=["WiFi"],
        operating_days=[],
        status="active",
    )
    db.add(bus)
    db.commit()
    db.refresh(bus)
    return bus


@pytest.fixture
def journey_date():
    return today() + timedelta(days=7)


@pytest.fixture
def make_booking(db):
    """Insert a booking row directly, bypassing the booking rules"""
    counter = {"n": 0}

    def factory(user, bus, seats, journey_date, booking_status="confirmed", payment_status="pending",
                payment_method="cash", created_at=None, **fields):
        counter["n"] += 1
        fields.setdefault("refund_amount", Decimal("0"))
        booking = Booking(
            booking_id=f"BKGTEST{counter['n']:04d}",
            user_id=user.id,
            bus_id=bus.id,
            passenger_name="Asha Rider",
            passenger_age=30,
            passenger_gender="Female",
            passenger_phone="9876543210",
            seats=seats,
            journey_date=journey_date,
            boarding_point="Dadar",
            dropping_point="Swargate",
            total_amount=Decimal(str(bus.price)) * len(seats),
            payment_method=payment_method,
            payment_status=payment_status,
            booking_status=booking_status,
            created_at=created_at or utcnow(),
            **fields
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return factory


@pytest.fixture
def make_offer(db):
    def factory(code="SAVE10", discount_type="percentage", discount_value="10", max_discount="100", **fields):
        now = utcnow()
        values = dict(
            code=code,
            title=f"{code} offer",
            description="Test offer",
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            max_discount=Decimal(max_discount) if max_discount is not None else None,
            min_booking_amount=Decimal("0"),
            valid_from=now - timedelta(days=1),
            valid_till=now + timedelta(days=30),
            user_usage_limit=1,
            applicable_routes=[],
            applicable_buses=[],
            is_active=True,
        )
        values.update(fields)
        offer = Offer(**values)
        db.add(offer)
        db.commit()
        db.refresh(offer)
        return offer

    return factory
