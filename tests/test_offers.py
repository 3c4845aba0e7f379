from datetime import timedelta
from decimal import Decimal

import pytest

from src.offers.service import (
    OFFER_BUS_MISMATCH,
    OFFER_INVALID,
    OFFER_LIMIT_REACHED,
    OFFER_MIN_AMOUNT_NOT_MET,
    OFFER_NOT_FOUND,
    OFFER_ROUTE_MISMATCH,
    OfferEvaluator,
    calculate_discount,
)
from src.models import Offer
from src.utils import utcnow


def test_percentage_offer_applies_ten_percent(db, make_offer):
    make_offer()

    evaluation = OfferEvaluator(db).validate_and_apply("save10", Decimal("1000"))

    assert evaluation.applied
    assert evaluation.code == "SAVE10"
    assert evaluation.discount == Decimal("100")
    assert evaluation.final_amount == Decimal("900.00")


def test_percentage_discount_is_capped(db, make_offer):
    make_offer(max_discount="100")

    evaluation = OfferEvaluator(db).validate_and_apply("SAVE10", Decimal("5000"))

    assert evaluation.discount == Decimal("100")
    assert evaluation.final_amount == Decimal("4900.00")


def test_fixed_discount_never_exceeds_amount(db, make_offer):
    make_offer(code="FLAT500", discount_type="fixed", discount_value="500", max_discount=None)

    evaluation = OfferEvaluator(db).validate_and_apply("FLAT500", Decimal("300"))

    assert evaluation.discount == Decimal("300.00")
    assert evaluation.final_amount == Decimal("0.00")


def test_discount_rounds_to_whole_units():
    offer = Offer(discount_type="percentage", discount_value=Decimal("12.5"), max_discount=None)
    assert calculate_discount(offer, Decimal("999")) == Decimal("125")


def test_unknown_code_is_not_found(db):
    evaluation = OfferEvaluator(db).validate_and_apply("NOPE", Decimal("1000"))

    assert not evaluation.applied
    assert evaluation.reason == OFFER_NOT_FOUND
    assert evaluation.final_amount == Decimal("1000.00")


@pytest.mark.parametrize("fields", [
    {"is_active": False},
    {"valid_from": utcnow() + timedelta(days=1), "valid_till": utcnow() + timedelta(days=2)},
    {"valid_from": utcnow() - timedelta(days=5), "valid_till": utcnow() - timedelta(days=1)},
])
def test_inactive_or_out_of_window_offers_are_invalid(db, make_offer, fields):
    make_offer(**fields)

    evaluation = OfferEvaluator(db).validate_and_apply("SAVE10", Decimal("1000"))

    assert not evaluation.applied
    assert evaluation.reason == OFFER_INVALID


def test_per_user_limit_counts_confirmed_bookings(db, user, other_user, bus, journey_date, make_offer, make_booking):
    make_offer(user_usage_limit=1)
    make_booking(user, bus, ["S1"], journey_date, offer_code="SAVE10")
    make_booking(other_user, bus, ["S2"], journey_date, offer_code="SAVE10", booking_status="cancelled")

    evaluator = OfferEvaluator(db)
    assert evaluator.validate_and_apply("SAVE10", Decimal("1000"), user_id=user.id).reason == OFFER_LIMIT_REACHED
    assert evaluator.validate_and_apply("SAVE10", Decimal("1000"), user_id=other_user.id).applied


def test_unpaid_holds_count_until_they_lapse(db, user, other_user, bus, journey_date, make_offer, make_booking):
    make_offer(user_usage_limit=1)
    make_booking(user, bus, ["S1"], journey_date, offer_code="SAVE10", booking_status="pending_payment",
                 payment_method="online")
    make_booking(other_user, bus, ["S2"], journey_date, offer_code="SAVE10", booking_status="pending_payment",
                 payment_method="online", created_at=utcnow() - timedelta(minutes=30))

    evaluator = OfferEvaluator(db)
    assert evaluator.validate_and_apply("SAVE10", Decimal("1000"), user_id=user.id).reason == OFFER_LIMIT_REACHED
    assert evaluator.validate_and_apply("SAVE10", Decimal("1000"), user_id=other_user.id).applied


def test_usage_count_can_leave_out_one_booking(db, user, bus, journey_date, make_offer, make_booking):
    offer = make_offer(user_usage_limit=1)
    held = make_booking(user, bus, ["S1"], journey_date, offer_code="SAVE10", booking_status="pending_payment",
                        payment_method="online")

    evaluator = OfferEvaluator(db)
    assert evaluator.usage_rejection(offer, user.id) == (
        OFFER_LIMIT_REACHED, "You have already used this offer maximum times"
    )
    assert evaluator.usage_rejection(offer, user.id, exclude_booking_id=held.id) is None


def test_global_usage_limit(db, user, other_user, bus, journey_date, make_offer, make_booking):
    make_offer(usage_limit=1)
    make_booking(user, bus, ["S1"], journey_date, offer_code="SAVE10")

    evaluation = OfferEvaluator(db).validate_and_apply("SAVE10", Decimal("1000"), user_id=other_user.id)
    assert evaluation.reason == OFFER_INVALID


def test_route_and_bus_scoping(db, bus, make_offer):
    make_offer(applicable_routes=[{"from": "Mumbai", "to": "Pune"}], applicable_buses=[bus.id])
    evaluator = OfferEvaluator(db)

    assert evaluator.validate_and_apply(
        "SAVE10", Decimal("1000"), bus.id, {"from": "Mumbai", "to": "Pune"}
    ).applied
    assert evaluator.validate_and_apply(
        "SAVE10", Decimal("1000"), bus.id, {"from": "Pune", "to": "Mumbai"}
    ).reason == OFFER_ROUTE_MISMATCH
    assert evaluator.validate_and_apply(
        "SAVE10", Decimal("1000"), bus.id + 1, {"from": "Mumbai", "to": "Pune"}
    ).reason == OFFER_BUS_MISMATCH


def test_minimum_booking_amount(db, make_offer):
    make_offer(min_booking_amount=Decimal("500"))

    evaluation = OfferEvaluator(db).validate_and_apply("SAVE10", Decimal("499.99"))
    assert evaluation.reason == OFFER_MIN_AMOUNT_NOT_MET
    assert OfferEvaluator(db).validate_and_apply("SAVE10", Decimal("500")).applied


def test_validate_endpoint(client, user_headers, make_offer):
    make_offer()

    response = client.post(
        "/api/offers/validate",
        json={"code": "save10", "bookingAmount": 1000},
        headers=user_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["code"] == "SAVE10"
    assert data["discount"] == 100
    assert data["finalAmount"] == 900
    assert data["originalAmount"] == 1000


def test_validate_endpoint_reports_rejection_codes(client, user_headers, make_offer):
    make_offer(min_booking_amount=Decimal("2000"))

    response = client.post("/api/offers/validate", json={"code": "NOPE", "bookingAmount": 1000},
                           headers=user_headers)
    assert response.status_code == 404
    assert response.json()["code"] == OFFER_NOT_FOUND

    response = client.post("/api/offers/validate", json={"code": "SAVE10", "bookingAmount": 1000},
                           headers=user_headers)
    assert response.status_code == 400
    assert response.json()["kind"] == "VALIDATION"
    assert response.json()["code"] == OFFER_MIN_AMOUNT_NOT_MET


def test_validate_requires_login(client, make_offer):
    make_offer()
    response = client.post("/api/offers/validate", json={"code": "SAVE10", "bookingAmount": 1000})
    assert response.status_code == 401


def test_public_listing_hides_inactive_offers(client, make_offer):
    make_offer(code="LIVE")
    make_offer(code="OFF", is_active=False)

    codes = [offer["code"] for offer in client.get("/api/offers").json()]

    assert codes == ["LIVE"]
    assert client.get("/api/offers/live").json()["code"] == "LIVE"
    assert client.get("/api/offers/OFF").status_code == 404


def _offer_body(**overrides):
    now = utcnow()
    body = {
        "code": "monsoon",
        "title": "Monsoon sale",
        "description": "15% off",
        "discountType": "percentage",
        "discountValue": 15,
        "maxDiscount": 200,
        "validFrom": (now - timedelta(hours=1)).isoformat(),
        "validTill": (now + timedelta(days=10)).isoformat(),
        "applicableRoutes": [{"from": "Mumbai", "to": "Pune"}],
    }
    body.update(overrides)
    return body


def test_admin_offer_crud(client, admin_headers):
    response = client.post("/api/offers", json=_offer_body(), headers=admin_headers)
    assert response.status_code == 201
    offer = response.json()
    assert offer["code"] == "MONSOON"
    assert offer["applicableRoutes"] == [{"from": "Mumbai", "to": "Pune"}]

    response = client.put(f"/api/offers/{offer['id']}", json={"isActive": False}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["isActive"] is False

    all_codes = [o["code"] for o in client.get("/api/offers/admin/all", headers=admin_headers).json()]
    assert "MONSOON" in all_codes

    response = client.delete(f"/api/offers/{offer['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert client.get("/api/offers/admin/all", headers=admin_headers).json() == []


def test_duplicate_offer_code_conflicts(client, admin_headers):
    assert client.post("/api/offers", json=_offer_body(), headers=admin_headers).status_code == 201

    response = client.post("/api/offers", json=_offer_body(), headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["code"] == "DUPLICATE_OFFER_CODE"


def test_offer_window_must_be_ordered(client, admin_headers):
    now = utcnow()
    body = _offer_body(validFrom=now.isoformat(), validTill=(now - timedelta(days=1)).isoformat())

    response = client.post("/api/offers", json=body, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_INPUT"


def test_offer_admin_routes_require_admin(client, user_headers):
    assert client.post("/api/offers", json=_offer_body(), headers=user_headers).status_code == 403
    assert client.get("/api/offers/admin/all", headers=user_headers).status_code == 403
