#!/usr/bin/env python3

from datetime import timedelta
from decimal import Decimal

from src.database import Base, SessionLocal, engine
from src.models import Bus, Offer, User
from src.auth.utils import get_password_hash
from src.utils import utcnow

ALL_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

SAMPLE_BUSES = [
    dict(bus_name="Volvo Express", bus_number="MH12AB1234", bus_type="AC", from_city="Mumbai",
         to_city="Pune", departure_time="08:00", arrival_time="11:30", duration="3h 30m",
         price=Decimal("500"), amenities=["WiFi", "Charging Point", "Water Bottle"]),
    dict(bus_name="Shivneri Deluxe", bus_number="MH14CD5678", bus_type="Non-AC", from_city="Pune",
         to_city="Mumbai", departure_time="14:00", arrival_time="17:30", duration="3h 30m",
         price=Decimal("350"), amenities=["Water Bottle", "Reading Light"]),
    dict(bus_name="Luxury Sleeper", bus_number="MH02EF9012", bus_type="Sleeper", from_city="Mumbai",
         to_city="Bangalore", departure_time="20:00", arrival_time="08:00", duration="12h",
         price=Decimal("1200"), amenities=["WiFi", "Charging Point", "Blanket", "Pillow", "Water Bottle"]),
    dict(bus_name="Express Metro", bus_number="DL05GH3456", bus_type="AC", from_city="Delhi",
         to_city="Jaipur", departure_time="06:30", arrival_time="11:30", duration="5h",
         price=Decimal("650"), amenities=["WiFi", "Water Bottle"]),
    dict(bus_name="Weekend Coastal", bus_number="GA01JK7890", bus_type="Semi-Sleeper", from_city="Mumbai",
         to_city="Goa", departure_time="21:00", arrival_time="09:00", duration="12h",
         price=Decimal("900"), amenities=["Blanket", "Charging Point"], operating_days=["Friday", "Saturday"]),
]

def create_seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        print("Creating seed data for the bus reservation system...")

        # 1. Admin user
        if not db.query(User).filter(User.email == "admin@busbooking.com").first():
            db.add(User(
                name="Admin User",
                email="admin@busbooking.com",
                phone="9999999999",
                password=get_password_hash("admin123"),
                role="admin"
            ))
            print("Created admin user admin@busbooking.com")
        db.flush()
        admin = db.query(User).filter(User.email == "admin@busbooking.com").one()

        # 2. Buses
        created_buses = 0
        for bus_data in SAMPLE_BUSES:
            if db.query(Bus).filter(Bus.bus_number == bus_data["bus_number"]).first():
                continue
            db.add(Bus(**{"total_seats": 40, "operating_days": ALL_DAYS, "status": "active", **bus_data}))
            created_buses += 1

        # 3. Offers
        created_offers = 0
        now = utcnow()
        offers = [
            Offer(code="SAVE10", title="Save 10%", description="10% off any booking, up to 100",
                  discount_type="percentage", discount_value=Decimal("10"), max_discount=Decimal("100"),
                  min_booking_amount=Decimal("0"), valid_from=now, valid_till=now + timedelta(days=90),
                  user_usage_limit=3, created_by=admin.id),
            Offer(code="FLAT50", title="Flat 50 off", description="50 off bookings of 500 or more",
                  discount_type="fixed", discount_value=Decimal("50"), min_booking_amount=Decimal("500"),
                  valid_from=now, valid_till=now + timedelta(days=30), usage_limit=500,
                  created_by=admin.id),
        ]
        for offer in offers:
            if not db.query(Offer).filter(Offer.code == offer.code).first():
                db.add(offer)
                created_offers += 1

        db.commit()
        print("Seed data created:")
        print(f"  - {created_buses} buses")
        print(f"  - {created_offers} offers")

    except Exception as e:
        print(f"Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
