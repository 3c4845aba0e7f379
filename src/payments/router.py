from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from src.database import get_db
from src.auth.dependencies import get_current_user
from src.bookings.booking_service import BookingService
from src.notifications.email_service import booking_snapshot, send_booking_confirmation
from src.payments.gateway import PaymentGateway, get_payment_gateway
from src.payments.schemas import (
    CreateOrderRequest, CreateOrderResponse, VerifyPaymentRequest, VerifyPaymentResponse, RefundResponse
)
from src.payments.service import PaymentService

router = APIRouter()

@router.post("/create-order", response_model=CreateOrderResponse)
def create_order(
    request: CreateOrderRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user=Depends(get_current_user)
):
    """Create a gateway order for a booking awaiting payment"""
    return PaymentService(db, gateway).create_order(request.booking_id, request.amount, current_user)

@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    request: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user=Depends(get_current_user)
):
    """Verify the gateway signature and confirm the booking"""
    booking = PaymentService(db, gateway).verify_payment(
        request.order_id, request.payment_id, request.signature, request.booking_id, current_user
    )
    background_tasks.add_task(send_booking_confirmation, booking_snapshot(booking))
    return {"message": "Payment verified successfully", "booking": BookingService.serialize(booking)}

@router.post("/refund/{booking_id}", response_model=RefundResponse)
def process_refund(
    booking_id: str,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user=Depends(get_current_user)
):
    """Refund a cancelled online booking"""
    refund, booking = PaymentService(db, gateway).process_refund(booking_id, current_user)
    return {
        "message": "Refund processed successfully",
        "refund": refund,
        "booking": BookingService.serialize(booking),
    }
