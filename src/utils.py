from datetime import datetime, date, timezone
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")

def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the stored columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def today() -> date:
    return datetime.now(timezone.utc).date()

def to_money(value) -> Decimal:
    """Round an amount to two decimals, half up"""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)

def to_minor_units(amount) -> int:
    """Convert a currency amount to integer paise/cents"""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))

def from_minor_units(amount: int) -> Decimal:
    return to_money(Decimal(amount) / 100)
