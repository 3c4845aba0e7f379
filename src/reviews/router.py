from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List

from src.database import get_db
from src.auth.dependencies import get_current_user, require_admin
from src.reviews.schemas import (
    Review, ReviewCreate, ReviewUpdate, AdminResponseRequest, BusReviews, ReviewEligibility
)
from src.reviews.service import ReviewService
from src.schemas import MessageResponse

router = APIRouter()

@router.post("", response_model=Review, status_code=status.HTTP_201_CREATED)
def create_review(review: ReviewCreate, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """Review a travelled booking"""
    return ReviewService(db).create_review(review, current_user)

@router.get("/bus/{bus_id}", response_model=BusReviews)
def get_bus_reviews(
    bus_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """Reviews and rating summary of a bus"""
    return ReviewService(db).get_bus_reviews(bus_id, page, limit)

@router.get("/my-reviews", response_model=List[Review])
def get_my_reviews(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    return ReviewService(db).get_user_reviews(current_user)

@router.get("/can-review/{booking_id}", response_model=ReviewEligibility)
def can_review_booking(booking_id: str, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """Check whether a booking can be reviewed"""
    return ReviewService(db).can_review(booking_id, current_user)

@router.put("/{review_id}", response_model=Review)
def update_review(
    review_id: int,
    review: ReviewUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    return ReviewService(db).update_review(review_id, review, current_user)

@router.delete("/{review_id}", response_model=MessageResponse)
def delete_review(review_id: int, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    ReviewService(db).delete_review(review_id, current_user)
    return {"message": "Review deleted successfully"}

@router.put("/{review_id}/response", response_model=Review)
def respond_to_review(
    review_id: int,
    response: AdminResponseRequest,
    db: Session = Depends(get_db),
    admin=Depends(require_admin)
):
    """Add an operator response to a review (admin only)"""
    return ReviewService(db).respond_to_review(review_id, response.comment)
