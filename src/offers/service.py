from typing import List, Optional, Dict, Any, Tuple
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from loguru import logger
from src.models import Offer, Booking, User
from src.offers.schemas import OfferCreate, OfferUpdate, OfferEvaluation
from src.buses.seat_ledger import holds_seats
from src.exceptions import BookingSystemError, ConflictError, NotFoundError, ValidationError
from src.utils import to_money, utcnow

# Rejection reasons reported by the evaluator
OFFER_NOT_FOUND = "OFFER_NOT_FOUND"
OFFER_INVALID = "OFFER_INVALID"
OFFER_LIMIT_REACHED = "OFFER_LIMIT_REACHED"
OFFER_ROUTE_MISMATCH = "OFFER_ROUTE_MISMATCH"
OFFER_BUS_MISMATCH = "OFFER_BUS_MISMATCH"
OFFER_MIN_AMOUNT_NOT_MET = "OFFER_MIN_AMOUNT_NOT_MET"


def calculate_discount(offer: Offer, amount: Decimal) -> Decimal:
    """Discount in whole currency units, never negative and never above the amount"""
    value = Decimal(str(offer.discount_value))
    if offer.discount_type == "percentage":
        discount = amount * value / 100
        if offer.max_discount is not None:
            discount = min(discount, Decimal(str(offer.max_discount)))
    else:
        discount = value

    discount = discount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(Decimal("0"), min(discount, amount))


class OfferEvaluator:
    """Checks an offer code against a booking and computes its discount"""

    def __init__(self, db: Session):
        self.db = db

    def validate_and_apply(
        self,
        code: str,
        amount,
        bus_id: Optional[int] = None,
        route: Optional[Dict[str, str]] = None,
        user_id: Optional[int] = None
    ) -> OfferEvaluation:
        amount = to_money(amount)
        code = (code or "").strip().upper()

        offer = self.db.query(Offer).filter(Offer.code == code).first()
        if not offer:
            return self._reject(code, amount, OFFER_NOT_FOUND, "Invalid offer code")

        now = utcnow()
        if not offer.is_active:
            return self._reject(code, amount, OFFER_INVALID, "Offer is not active")
        if now < offer.valid_from:
            return self._reject(code, amount, OFFER_INVALID, "Offer has not started yet")
        if now > offer.valid_till:
            return self._reject(code, amount, OFFER_INVALID, "Offer has expired")
        exhausted = self.usage_rejection(offer, user_id)
        if exhausted:
            return self._reject(code, amount, *exhausted)

        if offer.applicable_routes:
            route = route or {}
            matches = any(
                scope.get("from") == route.get("from") and scope.get("to") == route.get("to")
                for scope in offer.applicable_routes
            )
            if not matches:
                return self._reject(code, amount, OFFER_ROUTE_MISMATCH, "Offer not applicable for this route")

        if offer.applicable_buses and bus_id not in offer.applicable_buses:
            return self._reject(code, amount, OFFER_BUS_MISMATCH, "Offer not applicable for this bus")

        if amount < Decimal(str(offer.min_booking_amount or 0)):
            return self._reject(
                code, amount, OFFER_MIN_AMOUNT_NOT_MET,
                f"Minimum booking amount of {offer.min_booking_amount} required"
            )

        discount = calculate_discount(offer, amount)
        return OfferEvaluation(
            applied=True,
            code=code,
            message="Offer applied successfully",
            discount=discount,
            original_amount=amount,
            final_amount=amount - discount
        )

    def usage_rejection(
        self,
        offer: Offer,
        user_id: Optional[int] = None,
        exclude_booking_id: Optional[int] = None
    ) -> Optional[Tuple[str, str]]:
        """Reason and message when the global or per-user usage limit is used up"""
        if offer.usage_limit is not None and \
                self.usage_count(offer.code, exclude_booking_id=exclude_booking_id) >= offer.usage_limit:
            return OFFER_INVALID, "Offer usage limit reached"
        if user_id is not None and \
                self.usage_count(offer.code, user_id, exclude_booking_id) >= offer.user_usage_limit:
            return OFFER_LIMIT_REACHED, "You have already used this offer maximum times"
        return None

    def usage_count(
        self,
        code: str,
        user_id: Optional[int] = None,
        exclude_booking_id: Optional[int] = None
    ) -> int:
        """Bookings carrying the code that are confirmed or still hold their seats"""
        query = self.db.query(func.count(Booking.id)).filter(
            Booking.offer_code == code,
            holds_seats()
        )
        if user_id is not None:
            query = query.filter(Booking.user_id == user_id)
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.scalar() or 0

    @staticmethod
    def _reject(code: str, amount: Decimal, reason: str, message: str) -> OfferEvaluation:
        logger.info(f"Offer {code or '<empty>'} rejected: {reason}")
        return OfferEvaluation(
            applied=False,
            code=code,
            reason=reason,
            message=message,
            original_amount=amount,
            final_amount=amount
        )


def rejection_error(evaluation: OfferEvaluation) -> BookingSystemError:
    """Exception matching an evaluator rejection"""
    if evaluation.reason == OFFER_NOT_FOUND:
        return NotFoundError(evaluation.message, code=evaluation.reason)
    return ValidationError(evaluation.message, code=evaluation.reason)


class OfferService:
    """Offer administration"""

    def __init__(self, db: Session):
        self.db = db

    def list_active_offers(self) -> List[Offer]:
        now = utcnow()
        return self.db.query(Offer).filter(
            Offer.is_active.is_(True),
            Offer.valid_from <= now,
            Offer.valid_till >= now
        ).order_by(Offer.created_at.desc(), Offer.id.desc()).all()

    def list_all_offers(self) -> List[Offer]:
        return self.db.query(Offer).order_by(Offer.created_at.desc(), Offer.id.desc()).all()

    def get_active_offer(self, code: str) -> Offer:
        offer = self.db.query(Offer).filter(
            Offer.code == code.strip().upper(),
            Offer.is_active.is_(True)
        ).first()
        if not offer:
            raise NotFoundError("Offer not found", code=OFFER_NOT_FOUND)
        return offer

    def create_offer(self, offer_data: OfferCreate, admin: User) -> Offer:
        values = offer_data.model_dump(exclude={"applicable_routes"})
        values["applicable_routes"] = [scope.model_dump(by_alias=True) for scope in offer_data.applicable_routes]
        offer = Offer(**values, created_by=admin.id)

        try:
            self.db.add(offer)
            self.db.commit()
            self.db.refresh(offer)
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"Offer code {offer_data.code} already exists", code="DUPLICATE_OFFER_CODE")

        logger.info(f"Offer {offer.code} created by admin {admin.id}")
        return offer

    def update_offer(self, offer_id: int, offer_data: OfferUpdate) -> Offer:
        offer = self._get_offer(offer_id)

        updates = offer_data.model_dump(exclude_unset=True, exclude={"applicable_routes"})
        if offer_data.applicable_routes is not None:
            updates["applicable_routes"] = [
                scope.model_dump(by_alias=True) for scope in offer_data.applicable_routes
            ]
        for field, value in updates.items():
            setattr(offer, field, value)

        if offer.valid_till <= offer.valid_from:
            self.db.rollback()
            raise ValidationError("validTill must be after validFrom")

        self.db.commit()
        self.db.refresh(offer)
        logger.info(f"Offer {offer.code} updated: {', '.join(updates)}")
        return offer

    def delete_offer(self, offer_id: int) -> None:
        offer = self._get_offer(offer_id)
        self.db.delete(offer)
        self.db.commit()
        logger.info(f"Offer {offer.code} deleted")

    def _get_offer(self, offer_id: int) -> Offer:
        offer = self.db.get(Offer, offer_id)
        if not offer:
            raise NotFoundError("Offer not found", code=OFFER_NOT_FOUND)
        return offer
