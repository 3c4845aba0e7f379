from typing import Dict, Any, Tuple
from datetime import timedelta
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.orm import Session
from loguru import logger

from src.config import settings
from src.models import Booking, Offer, User
from src.bookings import state_machine
from src.bookings.booking_service import BookingService
from src.bookings.state_machine import BookingStatus
from src.buses.seat_ledger import SeatLedger, seat_reservation_lock
from src.offers.service import OfferEvaluator
from src.payments.gateway import PaymentGateway
from src.exceptions import (
    ForbiddenError, NotFoundError, PaymentVerificationError, SeatConflictError,
    StateConflictError, ValidationError
)
from src.locks import lock_registry
from src.utils import to_money, utcnow


class PaymentService:
    """Online payment flow of a booking: order, verification and refund"""

    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.bookings = BookingService(db)

    def create_order(self, booking_id: str, amount: Decimal, user: User) -> Dict[str, Any]:
        """Open a gateway order for a booking awaiting online payment"""
        booking = self.bookings.get_by_booking_id(booking_id)
        if booking.user_id != user.id:
            raise ForbiddenError("Not authorized to pay for this booking")
        if booking.booking_status != BookingStatus.PENDING_PAYMENT.value:
            raise StateConflictError(
                f"Booking is {booking.booking_status}, not awaiting payment", code="NOT_AWAITING_PAYMENT"
            )
        if to_money(amount) != to_money(booking.total_amount):
            raise ValidationError(
                f"Amount {to_money(amount)} does not match booking total {booking.total_amount}",
                code="AMOUNT_MISMATCH"
            )

        # Gateway errors propagate before anything is written
        order = self.gateway.create_order(booking.total_amount, booking.booking_id, user.id)

        booking.gateway_order_id = order["id"]
        self.db.commit()
        return {"order": order, "gateway_key": self.gateway.key_id}

    def verify_payment(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        booking_id: str,
        user: User
    ) -> Booking:
        """Apply a signed payment callback to its booking"""
        booking = self.bookings.get_by_booking_id(booking_id)
        self.bookings.ensure_access(booking, user)

        self._ensure_awaiting_payment(booking)
        if not booking.gateway_order_id:
            raise ValidationError("No payment order was opened for this booking", code="ORDER_MISMATCH")
        if booking.gateway_order_id != order_id:
            raise ValidationError("Order does not belong to this booking", code="ORDER_MISMATCH")
        self._ensure_payment_unused(payment_id, booking)

        if not self.gateway.verify_signature(order_id, payment_id, signature):
            with lock_registry.hold(("booking", booking.booking_id)):
                booking = self._lock_booking(booking.booking_id)
                try:
                    self._ensure_awaiting_payment(booking)
                    state_machine.mark_payment_failed(booking, "Payment verification failed")
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
            raise PaymentVerificationError("Payment verification failed")

        hold_cutoff = utcnow() - timedelta(minutes=settings.SEAT_HOLD_MINUTES)
        with lock_registry.hold(("booking", booking.booking_id)), \
                seat_reservation_lock(self.db, booking.bus_id, booking.journey_date):
            booking = self._lock_booking(booking.booking_id)
            try:
                self._ensure_awaiting_payment(booking)
                self._ensure_payment_unused(payment_id, booking)

                if booking.created_at <= hold_cutoff:
                    # Hold lapsed: the seats may have been sold to someone else meanwhile
                    availability = SeatLedger(self.db).check_availability(
                        booking.bus, booking.journey_date, booking.seats, exclude_booking_id=booking.id
                    )
                    if not availability["available"]:
                        booking.gateway_payment_id = payment_id
                        state_machine.mark_hold_expired(booking)
                        self.db.commit()
                        logger.warning(
                            f"Payment {payment_id} arrived after seats of {booking.booking_id} were resold"
                        )
                        raise SeatConflictError(availability["conflicting_seats"])

                if booking.offer_code:
                    # Another booking may have used up the offer while this one waited for payment
                    offer = self.db.query(Offer).filter(Offer.code == booking.offer_code).first()
                    exhausted = offer and OfferEvaluator(self.db).usage_rejection(
                        offer, booking.user_id, exclude_booking_id=booking.id
                    )
                    if exhausted:
                        reason, message = exhausted
                        booking.gateway_payment_id = payment_id
                        state_machine.mark_hold_expired(booking)
                        self.db.commit()
                        logger.warning(f"Payment {payment_id} for {booking.booking_id} rejected: {reason}")
                        raise ValidationError(message, code=reason)

                state_machine.mark_paid(booking, payment_id=payment_id, signature=signature)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        return booking

    def process_refund(self, booking_id: str, user: User) -> Tuple[Dict[str, Any], Booking]:
        """Refund the cancellation amount of a paid, cancelled booking through the gateway"""
        with lock_registry.hold(("booking", booking_id)):
            booking = self._lock_booking(booking_id)
            try:
                self.bookings.ensure_access(booking, user)
                if booking.booking_status != BookingStatus.CANCELLED.value:
                    raise StateConflictError(
                        "Only cancelled bookings are eligible for refund", code="NOT_CANCELLED"
                    )
                if booking.refund_status != state_machine.RefundStatus.PENDING.value:
                    raise StateConflictError(
                        f"Refund is {booking.refund_status or 'not due'}", code="REFUND_NOT_PENDING"
                    )
                if not booking.gateway_payment_id:
                    raise ValidationError("No online payment found for this booking", code="NO_PAYMENT")

                # A gateway failure leaves the refund pending so it can be retried
                refund = self.gateway.refund(booking.gateway_payment_id, booking.refund_amount, booking.booking_id)

                state_machine.mark_refund_processed(booking, refund["id"], refund["amount"])
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        self.db.refresh(booking)
        return refund, booking

    def _lock_booking(self, booking_id: str) -> Booking:
        booking = self.db.execute(
            select(Booking).where(Booking.booking_id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not booking:
            raise NotFoundError("Booking not found", code="BOOKING_NOT_FOUND")
        return booking

    def _ensure_payment_unused(self, payment_id: str, booking: Booking) -> None:
        used_by = self.db.query(Booking.booking_id).filter(
            Booking.gateway_payment_id == payment_id,
            Booking.id != booking.id
        ).first()
        if used_by:
            raise ValidationError(
                "Payment was already applied to another booking", code="PAYMENT_ALREADY_USED"
            )

    @staticmethod
    def _ensure_awaiting_payment(booking: Booking) -> None:
        if booking.booking_status != BookingStatus.PENDING_PAYMENT.value:
            if booking.payment_status == state_machine.PaymentStatus.COMPLETED.value:
                message = "Payment already verified for this booking"
            else:
                message = f"Booking is {booking.booking_status}, not awaiting payment"
            raise StateConflictError(message, code="NOT_AWAITING_PAYMENT")
