from pydantic import Field, field_validator, model_validator
from typing import List, Optional, Literal
from datetime import datetime, timezone
from decimal import Decimal
from src.schemas import CamelModel

DiscountType = Literal["percentage", "fixed"]

def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

class RouteScope(CamelModel):
    from_city: str = Field(..., alias="from")
    to_city: str = Field(..., alias="to")

class OfferBase(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    discount_type: DiscountType
    discount_value: Decimal = Field(..., ge=0)
    max_discount: Optional[Decimal] = Field(None, ge=0)
    min_booking_amount: Decimal = Field(Decimal("0"), ge=0)
    valid_from: datetime
    valid_till: datetime
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: int = Field(1, ge=1)
    applicable_routes: List[RouteScope] = []
    applicable_buses: List[int] = []
    is_active: bool = True
    terms_and_conditions: Optional[str] = None

    @field_validator("valid_from", "valid_till")
    @classmethod
    def to_naive_utc(cls, v):
        return _naive_utc(v)

    @model_validator(mode="after")
    def check_offer(self):
        if self.valid_till <= self.valid_from:
            raise ValueError("validTill must be after validFrom")
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self

class OfferCreate(OfferBase):
    code: str = Field(..., min_length=1, max_length=50)

    @field_validator("code")
    @classmethod
    def uppercase_code(cls, v):
        return v.strip().upper()

class OfferUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    max_discount: Optional[Decimal] = Field(None, ge=0)
    min_booking_amount: Optional[Decimal] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_till: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: Optional[int] = Field(None, ge=1)
    applicable_routes: Optional[List[RouteScope]] = None
    applicable_buses: Optional[List[int]] = None
    is_active: Optional[bool] = None
    terms_and_conditions: Optional[str] = None

    @field_validator("valid_from", "valid_till")
    @classmethod
    def to_naive_utc(cls, v):
        return _naive_utc(v)

class Offer(CamelModel):
    id: int
    code: str
    title: str
    description: str
    discount_type: str
    discount_value: float
    max_discount: Optional[float] = None
    min_booking_amount: float
    valid_from: datetime
    valid_till: datetime
    usage_limit: Optional[int] = None
    user_usage_limit: int
    applicable_routes: List[RouteScope] = []
    applicable_buses: List[int] = []
    is_active: bool
    terms_and_conditions: Optional[str] = None
    created_at: Optional[datetime] = None

class OfferValidationRequest(CamelModel):
    code: str = Field(..., min_length=1)
    booking_amount: Decimal = Field(..., gt=0)
    bus_id: Optional[int] = None
    route: Optional[RouteScope] = None

class OfferEvaluation(CamelModel):
    """Outcome of checking an offer code against a booking"""
    applied: bool
    code: str
    reason: Optional[str] = None
    message: str
    discount: Decimal = Decimal("0")
    original_amount: Decimal
    final_amount: Decimal

class OfferValidationResponse(CamelModel):
    message: str
    code: str
    title: str
    discount_type: str
    discount_value: float
    discount: float
    original_amount: float
    final_amount: float
