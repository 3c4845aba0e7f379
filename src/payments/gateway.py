"""Adapter for a Razorpay compatible payment gateway.

Amounts cross this boundary in integer minor units (paise). Every network or
HTTP failure is raised as ``GatewayError`` so callers never mark a booking paid
or refunded on a call that did not succeed.
"""

import hashlib
import hmac
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from src.config import settings
from src.exceptions import GatewayError
from src.utils import from_minor_units, to_minor_units


class PaymentGateway:
    def __init__(
        self,
        base_url: str,
        key_id: str,
        key_secret: str,
        timeout: float = 10.0,
        currency: str = "INR",
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.currency = currency
        self.timeout = timeout
        self.client = httpx.Client(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout,
            transport=transport
        )

    def create_order(self, amount: Decimal, booking_id: str, user_id: int) -> Dict[str, Any]:
        """Open a gateway order for the booking amount"""
        payload = {
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "receipt": f"booking_{booking_id}",
            "notes": {"bookingId": booking_id, "userId": str(user_id)},
        }
        order = self._post("/orders", payload)
        logger.info(f"Gateway order {order.get('id')} created for {booking_id} ({payload['amount']} minor units)")
        return {
            "id": order["id"],
            "amount": order.get("amount", payload["amount"]),
            "currency": order.get("currency", self.currency),
        }

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check the HMAC-SHA256 signature the gateway attached to a payment"""
        message = f"{order_id}|{payment_id}".encode()
        expected = hmac.new(self.key_secret.encode(), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature or "")

    def refund(self, payment_id: str, amount: Decimal, booking_id: str) -> Dict[str, Any]:
        """Refund part or all of a captured payment"""
        payload = {
            "amount": to_minor_units(amount),
            "speed": "normal",
            "notes": {"bookingId": booking_id, "reason": "Booking cancelled"},
        }
        refund = self._post(f"/payments/{payment_id}/refund", payload)
        logger.info(f"Gateway refund {refund.get('id')} issued for {booking_id}")
        return {
            "id": refund["id"],
            "amount": from_minor_units(refund.get("amount", payload["amount"])),
        }

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.client.post(path, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException:
            logger.error(f"Payment gateway timed out on {path}")
            raise GatewayError("Payment gateway timed out", code="GATEWAY_TIMEOUT")
        except httpx.HTTPStatusError as e:
            logger.error(f"Payment gateway rejected {path}: {e.response.status_code} {e.response.text}")
            raise GatewayError(
                f"Payment gateway returned {e.response.status_code}", code="GATEWAY_REJECTED"
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Payment gateway call {path} failed: {e}")
            raise GatewayError("Payment gateway unavailable")

        if "id" not in body:
            raise GatewayError("Malformed payment gateway response")
        return body

    def close(self) -> None:
        self.client.close()


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the configured gateway"""
    global _gateway
    if _gateway is None:
        _gateway = PaymentGateway(
            base_url=settings.PAYMENT_GATEWAY_URL,
            key_id=settings.PAYMENT_KEY_ID,
            key_secret=settings.PAYMENT_KEY_SECRET,
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
            currency=settings.CURRENCY
        )
    return _gateway
