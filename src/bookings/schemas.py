from pydantic import Field, field_validator
from typing import List, Optional, Literal
from datetime import datetime, date
from src.schemas import CamelModel
from src.auth.schemas import UserSummary

class PassengerDetails(CamelModel):
    """Passenger travelling on the booking"""
    name: str = Field(..., min_length=1, max_length=255)
    age: int = Field(..., ge=1, le=120)
    gender: Literal["Male", "Female", "Other"]
    phone: str = Field(..., min_length=1, max_length=20)

class BookingCreate(CamelModel):
    """Request to book seats on a bus for one travel date"""
    bus_id: int
    passenger_details: PassengerDetails
    seats: List[str]
    journey_date: date
    boarding_point: str = Field(..., min_length=1, max_length=255)
    dropping_point: str = Field(..., min_length=1, max_length=255)
    payment_method: Literal["cash", "online"] = "cash"
    offer_code: Optional[str] = Field(None, max_length=50)

    @field_validator("journey_date", mode="before")
    @classmethod
    def journey_day_only(cls, v):
        # Travel dates are calendar days; drop any time component
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and len(v) > 10:
            return v[:10]
        return v

class BookingCancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)

class BusSummary(CamelModel):
    id: int
    bus_name: str
    bus_number: str
    bus_type: str
    from_city: str = Field(..., alias="from")
    to_city: str = Field(..., alias="to")
    departure_time: str
    arrival_time: str
    price: float

class OfferApplied(CamelModel):
    code: str
    discount: float
    original_amount: float

class PaymentDetails(CamelModel):
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None

class Cancellation(CamelModel):
    is_cancelled: bool
    cancelled_at: Optional[datetime] = None
    reason: Optional[str] = None
    refund_amount: float = 0
    refund_status: Optional[str] = None
    refund_id: Optional[str] = None
    refunded_amount: Optional[float] = None
    processed_at: Optional[datetime] = None

class Booking(CamelModel):
    id: int
    booking_id: str
    user: UserSummary
    bus: BusSummary
    passenger_details: PassengerDetails
    seats: List[str]
    journey_date: date
    boarding_point: str
    dropping_point: str
    total_amount: float
    payment_method: str
    payment_status: str
    booking_status: str
    offer_applied: Optional[OfferApplied] = None
    payment_details: Optional[PaymentDetails] = None
    cancellation: Cancellation
    created_at: datetime

class BookingStats(CamelModel):
    total_bookings: int
    confirmed_bookings: int
    cancelled_bookings: int
    pending_payment_bookings: int
    failed_bookings: int
    total_revenue: float
    total_refunds: float

class ExpiredHolds(CamelModel):
    expired: int
