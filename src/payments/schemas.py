from pydantic import AliasChoices, Field
from decimal import Decimal
from src.schemas import CamelModel
from src.bookings.schemas import Booking

class CreateOrderRequest(CamelModel):
    booking_id: str
    amount: Decimal = Field(..., gt=0)

class GatewayOrder(CamelModel):
    id: str
    amount: int
    currency: str

class CreateOrderResponse(CamelModel):
    order: GatewayOrder
    gateway_key: str

class VerifyPaymentRequest(CamelModel):
    """Checkout callback; accepts the gateway's own razorpay_* field names too"""
    order_id: str = Field(..., validation_alias=AliasChoices("orderId", "order_id", "razorpay_order_id"))
    payment_id: str = Field(..., validation_alias=AliasChoices("paymentId", "payment_id", "razorpay_payment_id"))
    signature: str = Field(..., validation_alias=AliasChoices("signature", "razorpay_signature"))
    booking_id: str = Field(..., validation_alias=AliasChoices("bookingId", "booking_id"))

class VerifyPaymentResponse(CamelModel):
    message: str
    booking: Booking

class Refund(CamelModel):
    id: str
    amount: float

class RefundResponse(CamelModel):
    message: str
    refund: Refund
    booking: Booking
