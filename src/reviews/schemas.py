from pydantic import Field
from typing import List, Optional, Dict
from datetime import datetime
from src.schemas import CamelModel

class ReviewCategories(CamelModel):
    cleanliness: Optional[int] = Field(None, ge=1, le=5)
    comfort: Optional[int] = Field(None, ge=1, le=5)
    punctuality: Optional[int] = Field(None, ge=1, le=5)
    staff: Optional[int] = Field(None, ge=1, le=5)

class ReviewCreate(CamelModel):
    booking_id: str = Field(..., description="Human readable booking id (BKG...)")
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)
    categories: Optional[ReviewCategories] = None

class ReviewUpdate(CamelModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1, max_length=500)
    categories: Optional[ReviewCategories] = None

class AdminResponseRequest(CamelModel):
    comment: str = Field(..., min_length=1)

class Review(CamelModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    bus_id: int
    bus_name: Optional[str] = None
    booking_id: str
    rating: int
    comment: str
    categories: ReviewCategories
    is_verified: bool
    admin_response: Optional[str] = None
    admin_responded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class RatingSummary(CamelModel):
    average_rating: float
    total_reviews: int
    categories: Dict[str, Optional[float]]

class BusReviews(CamelModel):
    total: int
    page: int
    pages: int
    summary: RatingSummary
    reviews: List[Review]

class ReviewEligibility(CamelModel):
    can_review: bool
    message: str
    review: Optional[Review] = None
