"""
Online payments.

- gateway.py: HTTP adapter for the Razorpay compatible payment gateway
- service.py: order creation, payment verification and refunds for bookings
- router.py: FastAPI endpoints under /payment
"""
