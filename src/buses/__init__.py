"""
Bus catalogue and seat inventory.

- service.py: search, details, route listing and admin maintenance of buses
- seat_ledger.py: seat occupancy per bus and travel date, derived from bookings
- router.py: FastAPI endpoints under /buses
"""
