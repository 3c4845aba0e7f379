"""Booking confirmation and cancellation emails.

Emails go out as FastAPI background tasks after the booking transaction has
committed. They work from a plain snapshot of the booking because the request
session is closed by the time they run. Delivery problems are logged and never
reach the caller.
"""

import smtplib
import ssl
from email.message import EmailMessage
from typing import Any, Dict

from loguru import logger

from src.config import settings
from src.models import Booking


def booking_snapshot(booking: Booking) -> Dict[str, Any]:
    """Fields the email templates need, detached from the session"""
    bus = booking.bus
    return {
        "booking_id": booking.booking_id,
        "email": booking.user.email if booking.user else None,
        "passenger_name": booking.passenger_name,
        "passenger_age": booking.passenger_age,
        "passenger_gender": booking.passenger_gender,
        "passenger_phone": booking.passenger_phone,
        "bus_name": bus.bus_name,
        "bus_number": bus.bus_number,
        "route": f"{bus.from_city} -> {bus.to_city}",
        "departure_time": bus.departure_time,
        "journey_date": booking.journey_date.strftime("%d/%m/%Y"),
        "seats": ", ".join(booking.seats),
        "boarding_point": booking.boarding_point,
        "dropping_point": booking.dropping_point,
        "total_amount": booking.total_amount,
        "payment_status": booking.payment_status,
        "cancellation_reason": booking.cancellation_reason,
        "refund_amount": booking.refund_amount,
    }


def render_confirmation(snapshot: Dict[str, Any]) -> str:
    return (
        f"Dear {snapshot['passenger_name']},\n\n"
        "Your bus ticket has been confirmed. Booking details:\n\n"
        f"Booking ID:     {snapshot['booking_id']}\n"
        f"Bus:            {snapshot['bus_name']} ({snapshot['bus_number']})\n"
        f"Route:          {snapshot['route']}\n"
        f"Journey date:   {snapshot['journey_date']}\n"
        f"Departure:      {snapshot['departure_time']}\n"
        f"Seats:          {snapshot['seats']}\n"
        f"Boarding:       {snapshot['boarding_point']}\n"
        f"Dropping:       {snapshot['dropping_point']}\n"
        f"Total amount:   {settings.CURRENCY} {snapshot['total_amount']}\n"
        f"Payment status: {snapshot['payment_status']}\n\n"
        "Please reach the boarding point 15 minutes before departure and carry a valid ID.\n\n"
        f"Thank you for choosing {settings.PROJECT_NAME}."
    )


def render_cancellation(snapshot: Dict[str, Any]) -> str:
    return (
        f"Dear {snapshot['passenger_name']},\n\n"
        "Your booking has been cancelled.\n\n"
        f"Booking ID:     {snapshot['booking_id']}\n"
        f"Bus:            {snapshot['bus_name']} ({snapshot['bus_number']})\n"
        f"Journey date:   {snapshot['journey_date']}\n"
        f"Seats:          {snapshot['seats']}\n"
        f"Reason:         {snapshot['cancellation_reason']}\n"
        f"Refund amount:  {settings.CURRENCY} {snapshot['refund_amount']}\n\n"
        "The refund is credited to the original payment method once processed."
    )


def send_email(to_address: str, subject: str, body: str) -> bool:
    """Send one plain text email; returns whether it was handed to the SMTP server"""
    if not settings.EMAIL_ENABLED:
        logger.debug(f"Email disabled, not sending '{subject}' to {to_address}")
        return False
    if not to_address:
        logger.warning(f"No recipient for '{subject}'")
        return False

    message = EmailMessage()
    message["From"] = f"{settings.EMAIL_FROM_NAME} <{settings.SMTP_USER}>"
    message["To"] = to_address
    message["Subject"] = subject
    message.set_content(body)

    try:
        if settings.SMTP_PORT == 465:
            server = smtplib.SMTP_SSL(
                settings.SMTP_HOST, settings.SMTP_PORT,
                timeout=settings.SMTP_TIMEOUT_SECONDS, context=ssl.create_default_context()
            )
        else:
            server = smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=settings.SMTP_TIMEOUT_SECONDS)
            server.starttls(context=ssl.create_default_context())
        with server:
            if settings.SMTP_USER and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.send_message(message)
    except (smtplib.SMTPException, OSError):
        logger.exception(f"Failed to send '{subject}' to {to_address}")
        return False

    logger.info(f"Sent '{subject}' to {to_address}")
    return True


def send_booking_confirmation(snapshot: Dict[str, Any]) -> bool:
    return send_email(
        snapshot["email"],
        f"Booking Confirmation - {snapshot['booking_id']}",
        render_confirmation(snapshot)
    )


def send_cancellation_email(snapshot: Dict[str, Any]) -> bool:
    return send_email(
        snapshot["email"],
        f"Booking Cancelled - {snapshot['booking_id']}",
        render_cancellation(snapshot)
    )
