import hashlib
import hmac
import json

import httpx

from src.config import settings
from src.auth.utils import create_access_token
from src.models import User


class GatewayStub:
    """Stands in for the payment gateway's HTTP API behind an httpx MockTransport"""

    def __init__(self):
        self.requests = []
        self.fail_with = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with == "timeout":
            raise httpx.ReadTimeout("timed out", request=request)
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"error": {"description": "rejected"}})

        body = json.loads(request.content)
        if request.url.path.endswith("/orders"):
            return httpx.Response(200, json={
                "id": f"order_{len(self.requests)}",
                "amount": body["amount"],
                "currency": body["currency"],
                "status": "created",
            })
        if request.url.path.endswith("/refund"):
            return httpx.Response(200, json={
                "id": f"rfnd_{len(self.requests)}",
                "amount": body["amount"],
                "status": "processed",
            })
        return httpx.Response(404, json={"error": {"description": "not found"}})


def sign(order_id: str, payment_id: str, secret: str = None) -> str:
    secret = secret or settings.PAYMENT_KEY_SECRET
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def auth_headers(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def booking_payload(bus, journey_date, seats, **overrides) -> dict:
    payload = {
        "busId": bus.id,
        "passengerDetails": {"name": "Asha Rider", "age": 30, "gender": "Female", "phone": "9876543210"},
        "seats": seats,
        "journeyDate": journey_date.isoformat(),
        "boardingPoint": "Dadar",
        "droppingPoint": "Swargate",
        "paymentMethod": "cash",
    }
    payload.update(overrides)
    return payload
