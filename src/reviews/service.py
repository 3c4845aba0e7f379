from typing import Dict, Any, Optional
import math
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from loguru import logger
from src.models import Review, Booking, User
from src.reviews.schemas import ReviewCreate, ReviewUpdate
from src.bookings.state_machine import BookingStatus
from src.exceptions import ConflictError, ForbiddenError, NotFoundError, StateConflictError
from src.utils import today, utcnow

CATEGORY_FIELDS = ("cleanliness", "comfort", "punctuality", "staff")
REVIEWABLE_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value)

class ReviewService:
    """Reviews of travelled bookings"""

    def __init__(self, db: Session):
        self.db = db

    def rating_summary(self, bus_id: int) -> Dict[str, Any]:
        """Average rating, review count and per category averages for a bus"""
        row = self.db.query(
            func.count(Review.id),
            func.avg(Review.rating),
            *[func.avg(getattr(Review, name)) for name in CATEGORY_FIELDS]
        ).filter(Review.bus_id == bus_id).one()

        total, average, *category_averages = row
        return {
            "average_rating": round(float(average), 1) if average is not None else 0.0,
            "total_reviews": total,
            "categories": {
                name: round(float(value), 1) if value is not None else None
                for name, value in zip(CATEGORY_FIELDS, category_averages)
            },
        }

    def create_review(self, review_data: ReviewCreate, user: User) -> Dict[str, Any]:
        booking = self._get_owned_booking(review_data.booking_id, user)
        reason = self._review_block_reason(booking)
        if reason:
            raise StateConflictError(reason, code="NOT_REVIEWABLE")

        categories = review_data.categories.model_dump() if review_data.categories else {}
        review = Review(
            user_id=user.id,
            bus_id=booking.bus_id,
            booking_id=booking.id,
            rating=review_data.rating,
            comment=review_data.comment,
            is_verified=True,
            **{name: categories.get(name) for name in CATEGORY_FIELDS}
        )

        try:
            self.db.add(review)
            self.db.commit()
            self.db.refresh(review)
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("You have already reviewed this booking", code="ALREADY_REVIEWED")

        logger.info(f"User {user.id} reviewed bus {booking.bus_id} ({review.rating}/5)")
        return self.to_dict(review)

    def get_bus_reviews(self, bus_id: int, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        query = self.db.query(Review).filter(Review.bus_id == bus_id)
        total = query.count()
        reviews = query.order_by(Review.created_at.desc(), Review.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        return {
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit) if total else 0,
            "summary": self.rating_summary(bus_id),
            "reviews": [self.to_dict(review) for review in reviews],
        }

    def get_user_reviews(self, user: User):
        reviews = self.db.query(Review).filter(Review.user_id == user.id) \
            .order_by(Review.created_at.desc(), Review.id.desc()).all()
        return [self.to_dict(review) for review in reviews]

    def can_review(self, booking_id: str, user: User) -> Dict[str, Any]:
        """Whether the user may review this booking yet"""
        booking = self._get_owned_booking(booking_id, user)

        existing = self.db.query(Review).filter(
            Review.user_id == user.id, Review.booking_id == booking.id
        ).first()
        if existing:
            return {"can_review": False, "message": "Already reviewed", "review": self.to_dict(existing)}

        reason = self._review_block_reason(booking)
        if reason:
            return {"can_review": False, "message": reason}
        return {"can_review": True, "message": "Can review this booking"}

    def update_review(self, review_id: int, review_data: ReviewUpdate, user: User) -> Dict[str, Any]:
        review = self._get_review(review_id)
        if review.user_id != user.id:
            raise ForbiddenError("Not authorized to update this review")

        updates = review_data.model_dump(exclude_unset=True, exclude={"categories"})
        for field, value in updates.items():
            if value is not None:
                setattr(review, field, value)
        if review_data.categories is not None:
            for name, value in review_data.categories.model_dump(exclude_unset=True).items():
                setattr(review, name, value)

        self.db.commit()
        self.db.refresh(review)
        return self.to_dict(review)

    def delete_review(self, review_id: int, user: User) -> None:
        review = self._get_review(review_id)
        if review.user_id != user.id and not user.is_admin:
            raise ForbiddenError("Not authorized to delete this review")

        self.db.delete(review)
        self.db.commit()
        logger.info(f"Review {review_id} deleted by user {user.id}")

    def respond_to_review(self, review_id: int, comment: str) -> Dict[str, Any]:
        review = self._get_review(review_id)
        review.admin_response = comment
        review.admin_responded_at = utcnow()
        self.db.commit()
        self.db.refresh(review)
        return self.to_dict(review)

    def _get_review(self, review_id: int) -> Review:
        review = self.db.get(Review, review_id)
        if not review:
            raise NotFoundError("Review not found", code="REVIEW_NOT_FOUND")
        return review

    def _get_owned_booking(self, booking_id: str, user: User) -> Booking:
        booking = self.db.query(Booking).filter(Booking.booking_id == booking_id).first()
        if not booking:
            raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
        if booking.user_id != user.id:
            raise ForbiddenError("Not your booking")
        return booking

    @staticmethod
    def _review_block_reason(booking: Booking) -> Optional[str]:
        if booking.booking_status not in REVIEWABLE_STATUSES:
            return "Can only review completed journeys"
        if booking.journey_date > today():
            return "Journey not completed yet"
        return None

    @staticmethod
    def to_dict(review: Review) -> Dict[str, Any]:
        return {
            "id": review.id,
            "user_id": review.user_id,
            "user_name": review.user.name if review.user else None,
            "bus_id": review.bus_id,
            "bus_name": review.bus.bus_name if review.bus else None,
            "booking_id": review.booking.booking_id if review.booking else "",
            "rating": review.rating,
            "comment": review.comment,
            "categories": {name: getattr(review, name) for name in CATEGORY_FIELDS},
            "is_verified": bool(review.is_verified),
            "admin_response": review.admin_response,
            "admin_responded_at": review.admin_responded_at,
            "created_at": review.created_at,
        }
