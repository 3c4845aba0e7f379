from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.database import Base
from src.models import Booking, Bus, User
from src.bookings.booking_service import BookingService
from src.bookings.schemas import BookingCreate
from src.exceptions import SeatConflictError
from src.utils import today


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'concurrency.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def riders_and_bus(file_session_factory):
    session = file_session_factory()
    riders = [
        User(name=f"Rider {n}", email=f"rider{n}@example.com", phone="9000000000", password="x", role="user")
        for n in range(8)
    ]
    bus = Bus(
        bus_name="Night Rider", bus_number="KA01ZZ0001", bus_type="Sleeper",
        from_city="Bangalore", to_city="Chennai", departure_time="22:00", arrival_time="05:00",
        duration="7h", price=Decimal("800"), total_seats=30, amenities=[], operating_days=[], status="active",
    )
    session.add_all(riders + [bus])
    session.commit()
    ids = [rider.id for rider in riders], bus.id
    session.close()
    return ids


def _attempt(session_factory, user_id, bus_id, seats, journey_date):
    session = session_factory()
    try:
        request = BookingCreate(
            bus_id=bus_id,
            passenger_details={"name": "Rider", "age": 28, "gender": "Male", "phone": "9000000000"},
            seats=seats,
            journey_date=journey_date,
            boarding_point="Majestic",
            dropping_point="Koyambedu",
        )
        BookingService(session).create_booking(request, session.get(User, user_id))
        return "booked"
    except SeatConflictError:
        return "conflict"
    finally:
        session.close()


def test_overlapping_requests_book_each_seat_once(file_session_factory, riders_and_bus):
    user_ids, bus_id = riders_and_bus
    journey_date = today() + timedelta(days=3)

    with ThreadPoolExecutor(max_workers=len(user_ids)) as pool:
        outcomes = list(pool.map(
            lambda user_id: _attempt(file_session_factory, user_id, bus_id, ["S1", "S2"], journey_date),
            user_ids
        ))

    assert outcomes.count("booked") == 1
    assert outcomes.count("conflict") == len(user_ids) - 1

    session = file_session_factory()
    bookings = session.query(Booking).filter(Booking.bus_id == bus_id).all()
    session.close()
    assert len(bookings) == 1


def test_disjoint_requests_all_succeed(file_session_factory, riders_and_bus):
    user_ids, bus_id = riders_and_bus
    journey_date = today() + timedelta(days=3)

    with ThreadPoolExecutor(max_workers=len(user_ids)) as pool:
        outcomes = list(pool.map(
            lambda pair: _attempt(file_session_factory, pair[1], bus_id, [f"S{pair[0] + 1}"], journey_date),
            enumerate(user_ids)
        ))

    assert outcomes == ["booked"] * len(user_ids)
