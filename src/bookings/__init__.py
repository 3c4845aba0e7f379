"""
Bookings Module

Seat reservations on a bus for one travel date and everything that happens to
them afterwards:

- state_machine.py: booking and payment status transitions, refund arithmetic
- booking_service.py: create, read, confirm, cancel and hold expiry
- ticket_service.py: PDF e-tickets with a QR code of the booking id
- router.py: FastAPI endpoints under /bookings
- schemas.py: request and response models (camelCase on the wire)

Seat occupancy itself lives in ``src.buses.seat_ledger``; payments in
``src.payments``.
"""
