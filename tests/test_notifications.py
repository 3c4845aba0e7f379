import smtplib

import pytest

from src.config import settings
from src.notifications import email_service
from src.notifications.email_service import (
    booking_snapshot, render_cancellation, send_booking_confirmation, send_cancellation_email
)
from tests.helpers import booking_payload


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None, context=None):
        self.host = host
        self.port = port
        self.logged_in = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        pass

    def login(self, user, password):
        self.logged_in = user

    def send_message(self, message):
        FakeSMTP.sent.append(message)


class BrokenSMTP(FakeSMTP):
    def send_message(self, message):
        raise smtplib.SMTPServerDisconnected("connection dropped")


@pytest.fixture
def email_on(monkeypatch):
    FakeSMTP.sent = []
    monkeypatch.setattr(settings, "EMAIL_ENABLED", True)
    monkeypatch.setattr(settings, "SMTP_USER", "tickets@example.com")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "app-password")
    monkeypatch.setattr(email_service.smtplib, "SMTP_SSL", FakeSMTP)
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)


def test_confirmation_email_carries_booking_details(email_on, user, bus, journey_date, make_booking):
    booking = make_booking(user, bus, ["S4", "S5"], journey_date)

    assert send_booking_confirmation(booking_snapshot(booking)) is True

    message = FakeSMTP.sent[0]
    assert message["To"] == "rider@example.com"
    assert message["Subject"] == f"Booking Confirmation - {booking.booking_id}"
    body = message.get_content()
    assert "S4, S5" in body
    assert "Mumbai -> Pune" in body
    assert journey_date.strftime("%d/%m/%Y") in body


def test_cancellation_email_mentions_refund(user, bus, journey_date, make_booking):
    booking = make_booking(user, bus, ["S1"], journey_date, booking_status="cancelled",
                           cancellation_reason="Plans changed", refund_amount=400)

    body = render_cancellation(booking_snapshot(booking))

    assert "Plans changed" in body
    assert "400" in body


def test_email_disabled_sends_nothing(monkeypatch, user, bus, journey_date, make_booking):
    monkeypatch.setattr(email_service.smtplib, "SMTP_SSL", FakeSMTP)
    FakeSMTP.sent = []
    booking = make_booking(user, bus, ["S1"], journey_date)

    assert send_cancellation_email(booking_snapshot(booking)) is False
    assert FakeSMTP.sent == []


def test_smtp_failure_is_swallowed(email_on, monkeypatch, user, bus, journey_date, make_booking):
    monkeypatch.setattr(email_service.smtplib, "SMTP_SSL", BrokenSMTP)
    booking = make_booking(user, bus, ["S1"], journey_date)

    assert send_booking_confirmation(booking_snapshot(booking)) is False


def test_starttls_port(email_on, monkeypatch, user, bus, journey_date, make_booking):
    monkeypatch.setattr(settings, "SMTP_PORT", 587)
    booking = make_booking(user, bus, ["S1"], journey_date)

    assert send_booking_confirmation(booking_snapshot(booking)) is True
    assert len(FakeSMTP.sent) == 1


def test_cash_booking_triggers_confirmation_email(email_on, client, user_headers, bus, journey_date):
    response = client.post("/api/bookings", json=booking_payload(bus, journey_date, ["S8"]), headers=user_headers)

    assert response.status_code == 201
    assert [m["Subject"] for m in FakeSMTP.sent] == [f"Booking Confirmation - {response.json()['bookingId']}"]
