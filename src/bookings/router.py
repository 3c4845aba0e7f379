from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from src.database import get_db
from src.auth.dependencies import get_current_user, require_admin
from src.bookings.schemas import (
    Booking, BookingCreate, BookingCancelRequest, BookingStats, ExpiredHolds
)
from src.bookings.booking_service import BookingService
from src.bookings.state_machine import PaymentMethod
from src.bookings.ticket_service import TicketService
from src.notifications.email_service import (
    booking_snapshot, send_booking_confirmation, send_cancellation_email
)

router = APIRouter()

@router.post("", response_model=Booking, status_code=status.HTTP_201_CREATED)
def create_booking(
    booking: BookingCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Book seats on a bus"""
    booking_service = BookingService(db)
    created = booking_service.create_booking(booking, current_user)

    # Online bookings are emailed once the payment is verified
    if created.payment_method == PaymentMethod.CASH.value:
        background_tasks.add_task(send_booking_confirmation, booking_snapshot(created))

    return booking_service.serialize(created)

@router.get("/my-bookings", response_model=List[Booking])
def get_my_bookings(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """Bookings of the current user, newest first"""
    booking_service = BookingService(db)
    return [booking_service.serialize(b) for b in booking_service.list_user_bookings(current_user)]

# Admin endpoints
@router.get("/admin/all", response_model=List[Booking])
def get_all_bookings(
    booking_status: Optional[str] = Query(None, alias="status"),
    bus_id: Optional[int] = Query(None, alias="busId"),
    date_from: Optional[date] = Query(None, alias="fromDate", description="Journey date from"),
    date_to: Optional[date] = Query(None, alias="toDate", description="Journey date to"),
    db: Session = Depends(get_db),
    admin=Depends(require_admin)
):
    """List bookings with filters (admin only)"""
    booking_service = BookingService(db)
    bookings = booking_service.list_bookings(booking_status, bus_id, date_from, date_to)
    return [booking_service.serialize(b) for b in bookings]

@router.get("/admin/stats", response_model=BookingStats)
def get_booking_stats(db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Booking counts, revenue and refunds (admin only)"""
    return BookingService(db).get_stats()

@router.post("/admin/expire-holds", response_model=ExpiredHolds)
def expire_holds(db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Fail unpaid online bookings past the hold window (admin only)"""
    return {"expired": BookingService(db).expire_stale_holds()}

@router.get("/{booking_id}", response_model=Booking)
def get_booking(booking_id: str, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """Get booking details"""
    booking_service = BookingService(db)
    return booking_service.serialize(booking_service.get_booking(booking_id, current_user))

@router.post("/{booking_id}/confirm", response_model=Booking)
def confirm_booking(booking_id: str, db: Session = Depends(get_db), admin=Depends(require_admin)):
    """Record cash payment collected for a booking (admin only)"""
    booking_service = BookingService(db)
    return booking_service.serialize(booking_service.confirm_booking(booking_id))

@router.put("/{booking_id}/cancel", response_model=Booking)
def cancel_booking(
    booking_id: str,
    background_tasks: BackgroundTasks,
    request: Optional[BookingCancelRequest] = Body(None),
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Cancel a booking; 80% of the amount is refunded"""
    booking_service = BookingService(db)
    booking = booking_service.cancel_booking(
        booking_id, current_user, request.reason if request else None
    )
    background_tasks.add_task(send_cancellation_email, booking_snapshot(booking))
    return booking_service.serialize(booking)

@router.get("/{booking_id}/download")
def download_ticket(booking_id: str, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """Download the e-ticket as PDF"""
    booking = BookingService(db).get_booking(booking_id, current_user)
    pdf = TicketService().generate_pdf_ticket(booking)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="ticket_{booking.booking_id}.pdf"'}
    )
