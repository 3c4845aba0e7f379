"""Booking lifecycle.

Booking status and payment status move together. Every mutation of either goes
through one of the functions below so the pair never ends up in a combination
such as a completed payment on a cancelled booking or a failed payment on a
confirmed one.

    pending_payment --verify--> confirmed --cancel--> cancelled
          |  \\--mismatch--> cancelled
          \\--hold expired--> failed

``completed`` is reserved for finished journeys and is never entered here.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional

from loguru import logger

from src.config import settings
from src.exceptions import StateConflictError
from src.models import Booking
from src.utils import to_money, utcnow


class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"

class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

class RefundStatus(str, Enum):
    """Refund status enumeration"""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"

class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"


BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING_PAYMENT: frozenset({
        BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.FAILED
    }),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.FAILED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}

def can_transition(current: str, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS[BookingStatus(current)]


def _move_booking(booking: Booking, target: BookingStatus) -> None:
    if not can_transition(booking.booking_status, target):
        raise StateConflictError(
            f"Cannot move booking {booking.booking_id} from {booking.booking_status} to {target.value}",
            code="INVALID_BOOKING_TRANSITION"
        )
    booking.booking_status = target.value


def _move_payment(booking: Booking, target: PaymentStatus) -> None:
    if target not in PAYMENT_TRANSITIONS[PaymentStatus(booking.payment_status)]:
        raise StateConflictError(
            f"Cannot move payment of {booking.booking_id} from {booking.payment_status} to {target.value}",
            code="INVALID_PAYMENT_TRANSITION"
        )
    booking.payment_status = target.value


def initial_statuses(payment_method: PaymentMethod) -> Dict[str, str]:
    """Statuses a freshly created booking starts in"""
    if payment_method == PaymentMethod.ONLINE:
        booking_status = BookingStatus.PENDING_PAYMENT
    else:
        booking_status = BookingStatus.CONFIRMED
    return {
        "booking_status": booking_status.value,
        "payment_status": PaymentStatus.PENDING.value,
    }


def calculate_refund(total_amount) -> Decimal:
    """Refund owed on cancellation, rounded half up to two decimals"""
    return to_money(Decimal(str(total_amount)) * Decimal(settings.REFUND_PERCENTAGE) / 100)


def mark_paid(booking: Booking, payment_id: Optional[str] = None, signature: Optional[str] = None) -> None:
    """Payment captured: online verification or cash collected at the counter"""
    if booking.booking_status == BookingStatus.PENDING_PAYMENT.value:
        _move_booking(booking, BookingStatus.CONFIRMED)
    elif booking.booking_status != BookingStatus.CONFIRMED.value:
        raise StateConflictError(
            f"Booking {booking.booking_id} is {booking.booking_status}", code="INVALID_BOOKING_TRANSITION"
        )
    _move_payment(booking, PaymentStatus.COMPLETED)

    if payment_id:
        booking.gateway_payment_id = payment_id
    if signature:
        booking.gateway_signature = signature
    booking.paid_at = utcnow()
    logger.info(f"Booking {booking.booking_id} paid ({booking.payment_method})")


def mark_payment_failed(booking: Booking, reason: str) -> None:
    """Signature mismatch: the payment is rejected and the booking released"""
    if booking.booking_status != BookingStatus.PENDING_PAYMENT.value:
        raise StateConflictError(
            f"Booking {booking.booking_id} is {booking.booking_status}, not awaiting payment",
            code="INVALID_BOOKING_TRANSITION"
        )
    _move_booking(booking, BookingStatus.CANCELLED)
    _move_payment(booking, PaymentStatus.FAILED)
    booking.is_cancelled = True
    booking.cancelled_at = utcnow()
    booking.cancellation_reason = reason
    booking.refund_amount = Decimal("0")
    logger.warning(f"Booking {booking.booking_id} cancelled: {reason}")


def mark_hold_expired(booking: Booking) -> None:
    """Online payment never arrived inside the hold window"""
    _move_booking(booking, BookingStatus.FAILED)
    _move_payment(booking, PaymentStatus.FAILED)
    logger.info(f"Booking {booking.booking_id} hold expired")


def cancel(booking: Booking, reason: str) -> Decimal:
    """Cancel a confirmed booking and record the refund owed"""
    if booking.booking_status != BookingStatus.CONFIRMED.value:
        raise StateConflictError(
            f"Booking {booking.booking_id} is {booking.booking_status} and cannot be cancelled",
            code="NOT_CANCELLABLE"
        )

    _move_booking(booking, BookingStatus.CANCELLED)
    if booking.payment_status == PaymentStatus.COMPLETED.value:
        _move_payment(booking, PaymentStatus.REFUNDED)

    refund = calculate_refund(booking.total_amount)
    booking.is_cancelled = True
    booking.cancelled_at = utcnow()
    booking.cancellation_reason = reason
    booking.refund_amount = refund
    booking.refund_status = RefundStatus.PENDING.value
    logger.info(f"Booking {booking.booking_id} cancelled, refund {refund}")
    return refund


def mark_refund_processed(booking: Booking, refund_id: str, refunded_amount: Decimal) -> None:
    if booking.refund_status != RefundStatus.PENDING.value:
        raise StateConflictError(
            f"Refund for {booking.booking_id} is {booking.refund_status or 'not due'}",
            code="REFUND_NOT_PENDING"
        )
    booking.refund_status = RefundStatus.PROCESSED.value
    booking.refund_id = refund_id
    booking.refunded_amount = refunded_amount
    booking.refund_processed_at = utcnow()
    logger.info(f"Refund {refund_id} processed for booking {booking.booking_id}")
