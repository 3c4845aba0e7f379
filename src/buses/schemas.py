from pydantic import Field, field_validator
from typing import List, Optional, Literal
from datetime import datetime, date
from decimal import Decimal
from src.schemas import CamelModel

BusType = Literal["AC", "Non-AC", "Sleeper", "Semi-Sleeper", "Luxury"]
BusStatus = Literal["active", "inactive", "maintenance"]

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

class BusBase(CamelModel):
    bus_name: str = Field(..., min_length=1, max_length=255)
    bus_number: str = Field(..., min_length=1, max_length=50)
    bus_type: BusType
    from_city: str = Field(..., alias="from", min_length=1, max_length=100)
    to_city: str = Field(..., alias="to", min_length=1, max_length=100)
    departure_time: str = Field(..., min_length=1, max_length=20)
    arrival_time: str = Field(..., min_length=1, max_length=20)
    duration: str = Field(..., min_length=1, max_length=30)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    total_seats: int = Field(40, ge=1, le=100)
    amenities: List[str] = []
    operating_days: List[str] = []

    @field_validator("bus_number")
    @classmethod
    def uppercase_bus_number(cls, v):
        return v.strip().upper()

    @field_validator("operating_days")
    @classmethod
    def validate_operating_days(cls, v):
        unknown = [day for day in v if day not in WEEKDAYS]
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
        return v

class BusCreate(BusBase):
    status: BusStatus = "active"

class BusUpdate(CamelModel):
    """Partial update; omitted fields keep their value"""
    bus_name: Optional[str] = Field(None, min_length=1, max_length=255)
    bus_type: Optional[BusType] = None
    from_city: Optional[str] = Field(None, alias="from", min_length=1, max_length=100)
    to_city: Optional[str] = Field(None, alias="to", min_length=1, max_length=100)
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    duration: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    total_seats: Optional[int] = Field(None, ge=1, le=100)
    amenities: Optional[List[str]] = None
    operating_days: Optional[List[str]] = None
    status: Optional[BusStatus] = None

    @field_validator("operating_days")
    @classmethod
    def validate_operating_days(cls, v):
        if v is not None:
            unknown = [day for day in v if day not in WEEKDAYS]
            if unknown:
                raise ValueError(f"Unknown weekday(s): {', '.join(unknown)}")
        return v

class Bus(CamelModel):
    id: int
    bus_name: str
    bus_number: str
    bus_type: str
    from_city: str = Field(..., alias="from")
    to_city: str = Field(..., alias="to")
    departure_time: str
    arrival_time: str
    duration: str
    price: float
    total_seats: int
    amenities: List[str] = []
    operating_days: List[str] = []
    status: str
    created_at: Optional[datetime] = None

class BusDetail(Bus):
    rating: float = 0.0
    total_reviews: int = 0

class BusSearchResult(Bus):
    journey_date: Optional[date] = None
    available_seats: int

class BusRoutes(CamelModel):
    from_locations: List[str]
    to_locations: List[str]

class SeatStatus(CamelModel):
    seat_number: str
    is_booked: bool

class SeatAvailability(CamelModel):
    bus_name: str
    journey_date: date
    seat_layout: List[SeatStatus]
    available_seats: int
    total_seats: int
