from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./bus_booking.db"
    AUTO_CREATE_SCHEMA: bool = True

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Application
    PROJECT_NAME: str = "Bus Reservation System"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Booking rules
    SEAT_HOLD_MINUTES: int = 10
    MAX_SEATS_PER_BOOKING: int = 5
    REFUND_PERCENTAGE: int = 80
    CURRENCY: str = "INR"

    # Payment gateway (Razorpay compatible REST API)
    PAYMENT_GATEWAY_URL: str = "https://api.razorpay.com/v1"
    PAYMENT_KEY_ID: str = ""
    PAYMENT_KEY_SECRET: str = ""
    PAYMENT_TIMEOUT_SECONDS: float = 10.0

    # Email
    EMAIL_ENABLED: bool = False
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 465
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_TIMEOUT_SECONDS: float = 10.0
    EMAIL_FROM_NAME: str = "BusBooking System"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
