from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Date, Text, ForeignKey, Numeric, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from src.database import Base

# SQLite only autoincrements INTEGER primary keys
PrimaryKey = BigInteger().with_variant(Integer, "sqlite")

# ================================
# Users
# ================================
class User(Base):
    __tablename__ = "users"

    id = Column(PrimaryKey, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(20))
    password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="user")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    bookings = relationship("Booking", back_populates="user")
    reviews = relationship("Review", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

# ================================
# Bus inventory
# ================================
class Bus(Base):
    __tablename__ = "buses"

    id = Column(PrimaryKey, primary_key=True, index=True)
    bus_name = Column(String(255), nullable=False)
    bus_number = Column(String(50), unique=True, nullable=False, index=True)
    bus_type = Column(String(30), nullable=False)
    from_city = Column(String(100), nullable=False, index=True)
    to_city = Column(String(100), nullable=False, index=True)
    departure_time = Column(String(20), nullable=False)
    arrival_time = Column(String(20), nullable=False)
    duration = Column(String(30), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    total_seats = Column(Integer, nullable=False, default=40)
    amenities = Column(JSON, default=list)
    operating_days = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default="active", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    bookings = relationship("Booking", back_populates="bus")
    reviews = relationship("Review", back_populates="bus")

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_bus_journey_status", "bus_id", "journey_date", "booking_status"),
    )

    id = Column(PrimaryKey, primary_key=True, index=True)
    booking_id = Column(String(40), unique=True, nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    bus_id = Column(BigInteger, ForeignKey("buses.id"), nullable=False, index=True)

    # Passenger
    passenger_name = Column(String(255), nullable=False)
    passenger_age = Column(Integer, nullable=False)
    passenger_gender = Column(String(10), nullable=False)
    passenger_phone = Column(String(20), nullable=False)

    seats = Column(JSON, nullable=False)
    journey_date = Column(Date, nullable=False)
    boarding_point = Column(String(255), nullable=False)
    dropping_point = Column(String(255), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)

    # Offer
    offer_code = Column(String(50), index=True)
    offer_discount = Column(Numeric(10, 2))
    offer_original_amount = Column(Numeric(10, 2))

    # Payment
    payment_method = Column(String(20), nullable=False, default="cash")
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    booking_status = Column(String(20), nullable=False, default="confirmed", index=True)
    gateway_order_id = Column(String(100), index=True)
    gateway_payment_id = Column(String(100))
    gateway_signature = Column(String(255))
    paid_at = Column(DateTime)

    # Cancellation
    is_cancelled = Column(Boolean, nullable=False, default=False)
    cancelled_at = Column(DateTime)
    cancellation_reason = Column(Text)
    refund_amount = Column(Numeric(10, 2), nullable=False, default=0)
    refund_status = Column(String(20))
    refund_id = Column(String(100))
    refunded_amount = Column(Numeric(10, 2))
    refund_processed_at = Column(DateTime)

    # Naive UTC, set by the application so hold-window arithmetic is backend independent
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="bookings")
    bus = relationship("Bus", back_populates="bookings")
    review = relationship("Review", back_populates="booking", uselist=False)

# ================================
# Offers
# ================================
class Offer(Base):
    __tablename__ = "offers"

    id = Column(PrimaryKey, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    max_discount = Column(Numeric(10, 2))
    min_booking_amount = Column(Numeric(10, 2), nullable=False, default=0)
    valid_from = Column(DateTime, nullable=False)
    valid_till = Column(DateTime, nullable=False)
    usage_limit = Column(Integer)
    user_usage_limit = Column(Integer, nullable=False, default=1)
    applicable_routes = Column(JSON, default=list)
    applicable_buses = Column(JSON, default=list)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    terms_and_conditions = Column(Text)
    created_by = Column(BigInteger, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

# ================================
# Reviews
# ================================
class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "booking_id", name="uq_review_user_booking"),
    )

    id = Column(PrimaryKey, primary_key=True, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    bus_id = Column(BigInteger, ForeignKey("buses.id"), nullable=False, index=True)
    booking_id = Column(BigInteger, ForeignKey("bookings.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(String(500), nullable=False)
    cleanliness = Column(Integer)
    comfort = Column(Integer)
    punctuality = Column(Integer)
    staff = Column(Integer)
    is_verified = Column(Boolean, default=False)
    admin_response = Column(Text)
    admin_responded_at = Column(DateTime)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="reviews")
    bus = relationship("Bus", back_populates="reviews")
    booking = relationship("Booking", back_populates="review")
