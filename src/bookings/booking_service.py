from typing import List, Optional, Dict, Any
from datetime import date, timedelta
from decimal import Decimal
import secrets
import time
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from loguru import logger

from src.config import settings
from src.models import Booking, Bus, User
from src.bookings.schemas import BookingCreate
from src.bookings import state_machine
from src.bookings.state_machine import BookingStatus, PaymentMethod, PaymentStatus
from src.buses.seat_ledger import SeatLedger, is_valid_seat, seat_reservation_lock
from src.offers.service import OfferEvaluator, rejection_error
from src.exceptions import (
    ForbiddenError, NotFoundError, SeatConflictError, StateConflictError, ValidationError
)
from src.locks import lock_registry
from src.utils import to_money, today, utcnow

BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_booking_id() -> str:
    """BKG + base36 millisecond timestamp + 8 random base36 characters"""
    suffix = "".join(secrets.choice(BASE36) for _ in range(8))
    return f"BKG{_base36(int(time.time() * 1000))}{suffix}".upper()


class BookingService:
    """Booking lifecycle: create, read, confirm, cancel and hold expiry"""

    def __init__(self, db: Session):
        self.db = db
        self.seat_ledger = SeatLedger(db)

    def create_booking(self, booking_data: BookingCreate, user: User) -> Booking:
        """Reserve seats for a passenger, atomically with respect to other bookings"""

        bus = self.db.get(Bus, booking_data.bus_id)
        if not bus:
            raise NotFoundError("Bus not found", code="BUS_NOT_FOUND")
        if bus.status != "active":
            raise ValidationError("Bus is not available for booking", code="BUS_UNAVAILABLE")

        seats = booking_data.seats
        self._validate_seats(seats, bus)
        if booking_data.journey_date < today():
            raise ValidationError("Journey date cannot be in the past", code="INVALID_JOURNEY_DATE")

        with seat_reservation_lock(self.db, bus.id, booking_data.journey_date):
            try:
                availability = self.seat_ledger.check_availability(bus, booking_data.journey_date, seats)
                if not availability["available"]:
                    raise SeatConflictError(availability["conflicting_seats"])

                total_amount = to_money(Decimal(len(seats)) * Decimal(str(bus.price)))
                offer_fields = {}
                if booking_data.offer_code:
                    evaluation = OfferEvaluator(self.db).validate_and_apply(
                        booking_data.offer_code,
                        total_amount,
                        bus_id=bus.id,
                        route={"from": bus.from_city, "to": bus.to_city},
                        user_id=user.id
                    )
                    if not evaluation.applied:
                        raise rejection_error(evaluation)
                    offer_fields = {
                        "offer_code": evaluation.code,
                        "offer_discount": evaluation.discount,
                        "offer_original_amount": evaluation.original_amount,
                    }
                    total_amount = evaluation.final_amount

                passenger = booking_data.passenger_details
                booking = Booking(
                    booking_id=self._new_booking_id(),
                    user_id=user.id,
                    bus_id=bus.id,
                    passenger_name=passenger.name,
                    passenger_age=passenger.age,
                    passenger_gender=passenger.gender,
                    passenger_phone=passenger.phone,
                    seats=list(seats),
                    journey_date=booking_data.journey_date,
                    boarding_point=booking_data.boarding_point,
                    dropping_point=booking_data.dropping_point,
                    total_amount=total_amount,
                    payment_method=booking_data.payment_method,
                    refund_amount=Decimal("0"),
                    created_at=utcnow(),
                    **state_machine.initial_statuses(PaymentMethod(booking_data.payment_method)),
                    **offer_fields
                )
                self.db.add(booking)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        logger.info(
            f"Booking {booking.booking_id} created: bus {bus.bus_number} on {booking.journey_date} "
            f"seats {', '.join(seats)} ({booking.booking_status}, {booking.total_amount})"
        )
        return booking

    def get_booking(self, booking_id: str, user: User) -> Booking:
        """Get a booking visible to its owner or an admin"""
        booking = self.get_by_booking_id(booking_id)
        self.ensure_access(booking, user)
        return booking

    def get_by_booking_id(self, booking_id: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.booking_id == booking_id).first()
        if not booking:
            raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
        return booking

    @staticmethod
    def ensure_access(booking: Booking, user: User) -> None:
        if booking.user_id != user.id and not user.is_admin:
            raise ForbiddenError("Not authorized to access this booking")

    def list_user_bookings(self, user: User) -> List[Booking]:
        return self.db.query(Booking).filter(Booking.user_id == user.id) \
            .order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    def list_bookings(
        self,
        status: Optional[str] = None,
        bus_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> List[Booking]:
        """Admin listing, filtered on status, bus and journey date range"""
        query = self.db.query(Booking)
        if status:
            query = query.filter(Booking.booking_status == status)
        if bus_id:
            query = query.filter(Booking.bus_id == bus_id)
        if date_from:
            query = query.filter(Booking.journey_date >= date_from)
        if date_to:
            query = query.filter(Booking.journey_date <= date_to)
        return query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    def get_stats(self) -> Dict[str, Any]:
        counts = dict(
            self.db.query(Booking.booking_status, func.count(Booking.id))
            .group_by(Booking.booking_status).all()
        )
        revenue = self.db.query(func.coalesce(func.sum(Booking.total_amount), 0)).filter(
            Booking.booking_status == BookingStatus.CONFIRMED.value
        ).scalar()
        refunds = self.db.query(func.coalesce(func.sum(Booking.refund_amount), 0)).filter(
            Booking.booking_status == BookingStatus.CANCELLED.value
        ).scalar()

        return {
            "total_bookings": sum(counts.values()),
            "confirmed_bookings": counts.get(BookingStatus.CONFIRMED.value, 0),
            "cancelled_bookings": counts.get(BookingStatus.CANCELLED.value, 0),
            "pending_payment_bookings": counts.get(BookingStatus.PENDING_PAYMENT.value, 0),
            "failed_bookings": counts.get(BookingStatus.FAILED.value, 0),
            "total_revenue": to_money(revenue),
            "total_refunds": to_money(refunds),
        }

    def confirm_booking(self, booking_id: str) -> Booking:
        """Record cash collected for a confirmed cash booking"""
        with lock_registry.hold(("booking", booking_id)):
            booking = self._get_for_update(booking_id)
            try:
                if booking.payment_method != PaymentMethod.CASH.value:
                    raise StateConflictError(
                        "Online bookings are confirmed by payment verification", code="NOT_CASH_BOOKING"
                    )
                if booking.payment_status != PaymentStatus.PENDING.value:
                    raise StateConflictError(
                        f"Payment is already {booking.payment_status}", code="PAYMENT_NOT_PENDING"
                    )
                state_machine.mark_paid(booking)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        return booking

    def cancel_booking(self, booking_id: str, user: User, reason: Optional[str] = None) -> Booking:
        """Cancel a confirmed booking before its journey date"""
        with lock_registry.hold(("booking", booking_id)):
            booking = self._get_for_update(booking_id)
            try:
                self.ensure_access(booking, user)
                if booking.booking_status == BookingStatus.CONFIRMED.value and booking.journey_date <= today():
                    raise StateConflictError(
                        "Bookings can only be cancelled before the journey date", code="JOURNEY_DATE_PASSED"
                    )
                state_machine.cancel(booking, reason or "User cancelled")
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        return booking

    def expire_stale_holds(self) -> int:
        """Fail online bookings whose payment never arrived inside the hold window"""
        cutoff = utcnow() - timedelta(minutes=settings.SEAT_HOLD_MINUTES)
        stale = self.db.execute(
            select(Booking).where(
                Booking.booking_status == BookingStatus.PENDING_PAYMENT.value,
                Booking.created_at <= cutoff
            ).with_for_update()
        ).scalars().all()

        for booking in stale:
            state_machine.mark_hold_expired(booking)
        self.db.commit()

        if stale:
            logger.info(f"Expired {len(stale)} unpaid booking hold(s)")
        return len(stale)

    def _get_for_update(self, booking_id: str) -> Booking:
        booking = self.db.execute(
            select(Booking).where(Booking.booking_id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not booking:
            self.db.rollback()
            raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
        return booking

    def _validate_seats(self, seats: List[str], bus: Bus) -> None:
        if not seats:
            raise ValidationError("Select at least one seat", code="INVALID_SEATS")
        if len(seats) > settings.MAX_SEATS_PER_BOOKING:
            raise ValidationError(
                f"Maximum {settings.MAX_SEATS_PER_BOOKING} seats per booking", code="INVALID_SEATS"
            )
        if len(set(seats)) != len(seats):
            raise ValidationError("Duplicate seats in booking", code="INVALID_SEATS")
        invalid = [seat for seat in seats if not is_valid_seat(seat, bus.total_seats)]
        if invalid:
            raise ValidationError(
                f"Invalid seat numbers for this bus: {', '.join(invalid)}", code="INVALID_SEATS"
            )

    def _new_booking_id(self) -> str:
        booking_id = generate_booking_id()
        while self.db.query(Booking.id).filter(Booking.booking_id == booking_id).first():
            booking_id = generate_booking_id()
        return booking_id

    @staticmethod
    def serialize(booking: Booking) -> Dict[str, Any]:
        """Response shape of a booking, with bus and user resolved"""
        offer_applied = None
        if booking.offer_code:
            offer_applied = {
                "code": booking.offer_code,
                "discount": booking.offer_discount,
                "original_amount": booking.offer_original_amount,
            }

        payment_details = None
        if booking.gateway_order_id or booking.gateway_payment_id:
            payment_details = {
                "order_id": booking.gateway_order_id,
                "payment_id": booking.gateway_payment_id,
                "paid_at": booking.paid_at,
            }

        return {
            "id": booking.id,
            "booking_id": booking.booking_id,
            "user": booking.user,
            "bus": booking.bus,
            "passenger_details": {
                "name": booking.passenger_name,
                "age": booking.passenger_age,
                "gender": booking.passenger_gender,
                "phone": booking.passenger_phone,
            },
            "seats": booking.seats,
            "journey_date": booking.journey_date,
            "boarding_point": booking.boarding_point,
            "dropping_point": booking.dropping_point,
            "total_amount": booking.total_amount,
            "payment_method": booking.payment_method,
            "payment_status": booking.payment_status,
            "booking_status": booking.booking_status,
            "offer_applied": offer_applied,
            "payment_details": payment_details,
            "cancellation": {
                "is_cancelled": bool(booking.is_cancelled),
                "cancelled_at": booking.cancelled_at,
                "reason": booking.cancellation_reason,
                "refund_amount": booking.refund_amount or 0,
                "refund_status": booking.refund_status,
                "refund_id": booking.refund_id,
                "refunded_amount": booking.refunded_amount,
                "processed_at": booking.refund_processed_at,
            },
            "created_at": booking.created_at,
        }
