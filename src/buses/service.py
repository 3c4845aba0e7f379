from typing import List, Optional, Dict, Any
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from loguru import logger
from src.models import Bus, Booking
from src.buses.schemas import BusCreate, BusUpdate, WEEKDAYS
from src.buses.seat_ledger import SeatLedger, holds_seats, normalize_journey_date
from src.reviews.service import ReviewService
from src.exceptions import ConflictError, NotFoundError, ValidationError
from src.utils import today

class BusService:
    """Bus catalogue: search, details and admin maintenance"""

    def __init__(self, db: Session):
        self.db = db
        self.seat_ledger = SeatLedger(db)

    def get_bus(self, bus_id: int) -> Bus:
        bus = self.db.get(Bus, bus_id)
        if not bus:
            raise NotFoundError("Bus not found", code="BUS_NOT_FOUND")
        return bus

    def get_bus_detail(self, bus_id: int) -> Dict[str, Any]:
        """Bus with its aggregated rating"""
        bus = self.get_bus(bus_id)
        summary = ReviewService(self.db).rating_summary(bus.id)
        return {
            **self._as_dict(bus),
            "rating": summary["average_rating"],
            "total_reviews": summary["total_reviews"],
        }

    def list_buses(
        self,
        from_city: Optional[str] = None,
        to_city: Optional[str] = None,
        bus_type: Optional[str] = None,
        status: Optional[str] = None
    ) -> List[Bus]:
        """List buses, active ones unless another status is asked for"""
        query = self.db.query(Bus).filter(Bus.status == (status or "active"))
        if from_city:
            query = query.filter(Bus.from_city.ilike(f"%{from_city}%"))
        if to_city:
            query = query.filter(Bus.to_city.ilike(f"%{to_city}%"))
        if bus_type:
            query = query.filter(Bus.bus_type == bus_type)
        return query.order_by(Bus.departure_time).all()

    def search_buses(self, from_city: str, to_city: str, journey_date: Optional[str] = None) -> List[Dict[str, Any]]:
        """Active buses on a route, with seats left on the given date"""
        if not from_city or not to_city:
            raise ValidationError(
                "Please provide starting location and destination", code="MISSING_FIELDS"
            )

        buses = self.list_buses(from_city=from_city, to_city=to_city)
        if journey_date is None:
            return [{**self._as_dict(bus), "available_seats": bus.total_seats} for bus in buses]

        journey_day = normalize_journey_date(journey_date)
        weekday = WEEKDAYS[journey_day.weekday()]

        results = []
        for bus in buses:
            # No operating days means the bus runs daily
            if bus.operating_days and weekday not in bus.operating_days:
                continue
            results.append({
                **self._as_dict(bus),
                "journey_date": journey_day,
                "available_seats": len(self.seat_ledger.available_seats(bus, journey_day)),
            })
        return results

    def get_routes(self) -> Dict[str, List[str]]:
        """Distinct origins and destinations served by active buses"""
        from_locations = self.db.execute(
            select(Bus.from_city).where(Bus.status == "active").distinct()
        ).scalars().all()
        to_locations = self.db.execute(
            select(Bus.to_city).where(Bus.status == "active").distinct()
        ).scalars().all()
        return {"from_locations": sorted(from_locations), "to_locations": sorted(to_locations)}

    def get_seat_availability(self, bus_id: int, journey_date: str) -> Dict[str, Any]:
        bus = self.get_bus(bus_id)
        journey_day = normalize_journey_date(journey_date)
        layout = self.seat_ledger.seat_layout(bus, journey_day)
        return {
            "bus_name": bus.bus_name,
            "journey_date": journey_day,
            "seat_layout": layout,
            "available_seats": sum(1 for seat in layout if not seat["is_booked"]),
            "total_seats": bus.total_seats,
        }

    def create_bus(self, bus_data: BusCreate) -> Bus:
        bus = Bus(**bus_data.model_dump())
        try:
            self.db.add(bus)
            self.db.commit()
            self.db.refresh(bus)
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(
                f"Bus with number {bus_data.bus_number} already exists", code="DUPLICATE_BUS_NUMBER"
            )

        logger.info(f"Created bus {bus.bus_number} ({bus.from_city} -> {bus.to_city})")
        return bus

    def update_bus(self, bus_id: int, bus_data: BusUpdate) -> Bus:
        bus = self.get_bus(bus_id)

        updates = bus_data.model_dump(exclude_unset=True)
        if "total_seats" in updates and updates["total_seats"] < bus.total_seats:
            # Shrinking the bus would orphan seats held by live bookings
            live = self.db.query(func.count(Booking.id)).filter(
                Booking.bus_id == bus.id,
                holds_seats(),
                Booking.journey_date >= today()
            ).scalar()
            if live:
                raise ConflictError(
                    "Cannot reduce seats while the bus has upcoming bookings", code="BUS_HAS_BOOKINGS"
                )

        for field, value in updates.items():
            setattr(bus, field, value)

        self.db.commit()
        self.db.refresh(bus)
        logger.info(f"Updated bus {bus.bus_number}: {', '.join(updates) or 'no changes'}")
        return bus

    def delete_bus(self, bus_id: int) -> str:
        """Delete a bus, or retire it when bookings reference it"""
        bus = self.get_bus(bus_id)

        has_bookings = self.db.query(Booking.id).filter(Booking.bus_id == bus.id).first() is not None
        if has_bookings:
            bus.status = "inactive"
            self.db.commit()
            logger.info(f"Bus {bus.bus_number} has bookings, marked inactive")
            return "Bus has bookings and was marked inactive"

        self.db.delete(bus)
        self.db.commit()
        logger.info(f"Deleted bus {bus.bus_number}")
        return "Bus deleted successfully"

    @staticmethod
    def _as_dict(bus: Bus) -> Dict[str, Any]:
        return {column.name: getattr(bus, column.name) for column in Bus.__table__.columns}
