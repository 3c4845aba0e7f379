"""Seat occupancy for one bus on one travel date.

Nothing about seats is stored on the bus. Occupancy is the union of the seat
lists of every booking for the (bus, date) pair that is confirmed, or still
waiting for its online payment inside the hold window. Cancelled and failed
bookings free their seats simply by no longer matching that query.
"""

import re
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Union

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from src.bookings.state_machine import BookingStatus
from src.config import settings
from src.exceptions import ValidationError
from src.locks import lock_registry
from src.models import Booking, Bus
from src.utils import utcnow

SEAT_PATTERN = re.compile(r"^S([1-9][0-9]*)$")


def normalize_journey_date(value: Union[str, date, datetime]) -> date:
    """Reduce a date, datetime or ISO string to its calendar day"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(f"Invalid journey date: {value}", code="INVALID_JOURNEY_DATE")


def seat_numbers(total_seats: int) -> List[str]:
    return [f"S{index}" for index in range(1, total_seats + 1)]


def is_valid_seat(seat: str, total_seats: int) -> bool:
    match = SEAT_PATTERN.match(seat) if isinstance(seat, str) else None
    return bool(match) and int(match.group(1)) <= total_seats


def seat_sort_key(seat: str) -> int:
    return int(seat[1:])


def holds_seats(now: Optional[datetime] = None):
    """SQL condition for bookings that occupy their seats: confirmed, or unpaid inside the hold window"""
    hold_cutoff = (now or utcnow()) - timedelta(minutes=settings.SEAT_HOLD_MINUTES)
    return or_(
        Booking.booking_status == BookingStatus.CONFIRMED.value,
        and_(
            Booking.booking_status == BookingStatus.PENDING_PAYMENT.value,
            Booking.created_at > hold_cutoff
        )
    )


class SeatLedger:
    """Read-only seat occupancy computed from bookings at call time"""

    def __init__(self, db: Session):
        self.db = db

    def occupied_seats(
        self,
        bus: Bus,
        journey_date: Union[str, date, datetime],
        exclude_booking_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Set[str]:
        """Seats taken on this bus for this date"""
        journey_day = normalize_journey_date(journey_date)

        query = select(Booking.seats).where(
            Booking.bus_id == bus.id,
            Booking.journey_date == journey_day,
            holds_seats(now)
        )
        if exclude_booking_id is not None:
            query = query.where(Booking.id != exclude_booking_id)

        occupied: Set[str] = set()
        for seats in self.db.execute(query).scalars():
            occupied.update(seats or [])
        return occupied

    def available_seats(self, bus: Bus, journey_date: Union[str, date, datetime]) -> List[str]:
        occupied = self.occupied_seats(bus, journey_date)
        return [seat for seat in seat_numbers(bus.total_seats) if seat not in occupied]

    def check_availability(
        self,
        bus: Bus,
        journey_date: Union[str, date, datetime],
        requested: Iterable[str],
        exclude_booking_id: Optional[int] = None
    ) -> Dict[str, object]:
        """Report which of the requested seats are already taken"""
        requested = list(requested)
        invalid = [seat for seat in requested if not is_valid_seat(seat, bus.total_seats)]
        if invalid:
            raise ValidationError(
                f"Invalid seat numbers for this bus: {', '.join(map(str, invalid))}",
                code="INVALID_SEAT"
            )

        occupied = self.occupied_seats(bus, journey_date, exclude_booking_id=exclude_booking_id)
        conflicting = sorted({seat for seat in requested if seat in occupied}, key=seat_sort_key)
        return {"available": not conflicting, "conflicting_seats": conflicting}

    def seat_layout(self, bus: Bus, journey_date: Union[str, date, datetime]) -> List[Dict[str, object]]:
        occupied = self.occupied_seats(bus, journey_date)
        return [
            {"seat_number": seat, "is_booked": seat in occupied}
            for seat in seat_numbers(bus.total_seats)
        ]


@contextmanager
def seat_reservation_lock(db: Session, bus_id: int, journey_date: Union[str, date, datetime]):
    """Serialise check-then-insert for one (bus, date).

    The in-process lock covers threads of this worker; the bus row lock covers
    other workers on databases that support ``FOR UPDATE``. The row lock lasts
    until the caller commits or rolls back, so commit inside this block.
    """
    journey_day = normalize_journey_date(journey_date)
    with lock_registry.hold(("seats", bus_id, journey_day)):
        db.execute(select(Bus.id).where(Bus.id == bus_id).with_for_update()).first()
        yield
