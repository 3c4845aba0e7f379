from datetime import datetime, timedelta

import pytest

from src.buses.seat_ledger import SeatLedger, normalize_journey_date, seat_numbers, is_valid_seat
from src.exceptions import ValidationError
from src.locks import LockRegistry
from src.utils import utcnow


def test_occupied_seats_is_union_of_confirmed_bookings(db, user, bus, journey_date, make_booking):
    make_booking(user, bus, ["S1", "S2"], journey_date)
    make_booking(user, bus, ["S7"], journey_date)

    assert SeatLedger(db).occupied_seats(bus, journey_date) == {"S1", "S2", "S7"}


def test_cancelled_and_failed_bookings_free_their_seats(db, user, bus, journey_date, make_booking):
    make_booking(user, bus, ["S1"], journey_date, booking_status="cancelled")
    make_booking(user, bus, ["S2"], journey_date, booking_status="failed", payment_status="failed",
                 payment_method="online")
    make_booking(user, bus, ["S3"], journey_date)

    assert SeatLedger(db).occupied_seats(bus, journey_date) == {"S3"}


def test_pending_payment_holds_seats_only_inside_hold_window(db, user, bus, journey_date, make_booking):
    make_booking(user, bus, ["S4"], journey_date, booking_status="pending_payment", payment_method="online")
    make_booking(user, bus, ["S5"], journey_date, booking_status="pending_payment", payment_method="online",
                 created_at=utcnow() - timedelta(minutes=11))

    assert SeatLedger(db).occupied_seats(bus, journey_date) == {"S4"}


def test_occupancy_is_scoped_to_journey_date(db, user, bus, journey_date, make_booking):
    make_booking(user, bus, ["S1", "S2"], journey_date)

    ledger = SeatLedger(db)
    assert ledger.occupied_seats(bus, journey_date + timedelta(days=1)) == set()
    assert "S1" in ledger.available_seats(bus, journey_date + timedelta(days=1))


def test_available_seats_keeps_seat_order(db, user, bus, journey_date, make_booking):
    make_booking(user, bus, ["S2", "S10"], journey_date)

    available = SeatLedger(db).available_seats(bus, journey_date)
    assert len(available) == 38
    assert available[:3] == ["S1", "S3", "S4"]
    assert "S10" not in available


def test_check_availability_reports_only_requested_conflicts(db, user, bus, journey_date, make_booking):
    make_booking(user, bus, ["S1", "S2"], journey_date)

    result = SeatLedger(db).check_availability(bus, journey_date, ["S2", "S3"])
    assert result == {"available": False, "conflicting_seats": ["S2"]}

    result = SeatLedger(db).check_availability(bus, journey_date, ["S3", "S4"])
    assert result == {"available": True, "conflicting_seats": []}


def test_check_availability_rejects_unknown_seats(db, bus, journey_date):
    with pytest.raises(ValidationError) as exc_info:
        SeatLedger(db).check_availability(bus, journey_date, ["S41"])
    assert exc_info.value.code == "INVALID_SEAT"


def test_seat_layout_marks_booked_seats(db, user, bus, journey_date, make_booking):
    make_booking(user, bus, ["S3"], journey_date)

    layout = SeatLedger(db).seat_layout(bus, journey_date)
    assert len(layout) == 40
    assert layout[2] == {"seat_number": "S3", "is_booked": True}
    assert layout[0] == {"seat_number": "S1", "is_booked": False}


def test_datetime_input_matches_calendar_day(db, user, bus, journey_date, make_booking):
    make_booking(user, bus, ["S9"], journey_date)

    late_evening = datetime.combine(journey_date, datetime.min.time()) + timedelta(hours=23)
    assert SeatLedger(db).occupied_seats(bus, late_evening) == {"S9"}
    assert SeatLedger(db).occupied_seats(bus, f"{journey_date.isoformat()}T18:30:00.000Z") == {"S9"}


def test_normalize_journey_date_rejects_garbage():
    with pytest.raises(ValidationError) as exc_info:
        normalize_journey_date("next tuesday")
    assert exc_info.value.code == "INVALID_JOURNEY_DATE"


def test_seat_identifiers():
    assert seat_numbers(3) == ["S1", "S2", "S3"]
    assert is_valid_seat("S40", 40)
    assert not is_valid_seat("S0", 40)
    assert not is_valid_seat("S41", 40)
    assert not is_valid_seat("s1", 40)
    assert not is_valid_seat("S01", 40)


def test_lock_registry_drops_released_keys():
    registry = LockRegistry()
    with registry.hold(("seats", 1, "2030-01-01")):
        assert len(registry) == 1
    assert len(registry) == 0
