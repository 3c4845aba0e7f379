from io import BytesIO
import qrcode
from qrcode import constants
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, Image
from loguru import logger

from src.config import settings
from src.models import Booking
from src.bookings.state_machine import BookingStatus
from src.exceptions import StateConflictError

PRINTABLE_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.COMPLETED.value)

DETAIL_TABLE_STYLE = TableStyle([
    ('TEXTCOLOR', (0, 0), (-1, -1), colors.black),
    ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
    ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
    ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
    ('FONTSIZE', (0, 0), (-1, -1), 10),
    ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
])


class TicketService:
    """E-ticket PDF export"""

    def generate_qr_code_image(self, booking: Booking) -> BytesIO:
        """PNG QR code carrying the booking id"""
        qr = qrcode.QRCode(
            version=1,
            error_correction=constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(booking.booking_id)
        qr.make(fit=True)

        buffer = BytesIO()
        qr.make_image(fill_color="black", back_color="white").save(buffer)
        buffer.seek(0)
        return buffer

    def generate_pdf_ticket(self, booking: Booking) -> bytes:
        """Render the e-ticket of a confirmed booking as PDF bytes"""
        if booking.booking_status not in PRINTABLE_STATUSES:
            raise StateConflictError(
                f"No ticket for a {booking.booking_status} booking", code="TICKET_UNAVAILABLE"
            )

        bus = booking.bus
        output = BytesIO()
        doc = SimpleDocTemplate(output, pagesize=A4, title=f"Ticket {booking.booking_id}")
        styles = getSampleStyleSheet()
        story = []

        story.append(Paragraph(settings.PROJECT_NAME, styles['Title']))
        story.append(Paragraph("E-TICKET", styles['Heading2']))
        story.append(Paragraph(f"Booking ID: {booking.booking_id}", styles['Normal']))
        story.append(Spacer(1, 15))

        # Journey
        journey_info = [
            ["From:", bus.from_city, "To:", bus.to_city],
            ["Date:", booking.journey_date.strftime("%d/%m/%Y"), "Departure:", bus.departure_time],
            ["Bus:", f"{bus.bus_name} ({bus.bus_number})", "Type:", bus.bus_type],
            ["Boarding:", booking.boarding_point, "Dropping:", booking.dropping_point],
        ]
        journey_table = Table(journey_info, colWidths=[70, 170, 70, 170])
        journey_table.setStyle(DETAIL_TABLE_STYLE)
        journey_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, -1), colors.lightblue),
            ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
        ]))
        story.append(journey_table)
        story.append(Spacer(1, 12))

        # Passenger
        passenger_info = [
            ["Passenger:", booking.passenger_name],
            ["Age / Gender:", f"{booking.passenger_age} / {booking.passenger_gender}"],
            ["Phone:", booking.passenger_phone],
            ["Seats:", ", ".join(booking.seats)],
        ]
        passenger_table = Table(passenger_info, colWidths=[100, 380])
        passenger_table.setStyle(DETAIL_TABLE_STYLE)
        passenger_table.setStyle(TableStyle([('BACKGROUND', (0, 0), (-1, -1), colors.lightgrey)]))
        story.append(passenger_table)
        story.append(Spacer(1, 12))

        # Fare
        fare_info = []
        if booking.offer_code:
            fare_info.append(["Base Fare:", f"{settings.CURRENCY} {booking.offer_original_amount}"])
            fare_info.append([f"Offer ({booking.offer_code}):", f"- {settings.CURRENCY} {booking.offer_discount}"])
        fare_info.append(["Total Amount:", f"{settings.CURRENCY} {booking.total_amount}"])
        fare_info.append(["Payment:", f"{booking.payment_method} ({booking.payment_status})"])
        fare_table = Table(fare_info, colWidths=[100, 380])
        fare_table.setStyle(DETAIL_TABLE_STYLE)
        story.append(fare_table)
        story.append(Spacer(1, 20))

        story.append(Image(self.generate_qr_code_image(booking), width=120, height=120))
        story.append(Spacer(1, 10))
        story.append(Paragraph(
            "Please reach the boarding point 15 minutes before departure and carry a valid ID proof.",
            styles['Italic']
        ))

        doc.build(story)
        logger.debug(f"Rendered ticket PDF for {booking.booking_id}")
        return output.getvalue()
