"""
Utility helper functions
"""
from datetime import datetime, timezone
import uuid


def utcnow() -> datetime:
    """Naive UTC timestamp; every TIMESTAMP column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an incoming (possibly tz-aware) datetime to naive UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def format_date(date: datetime, format_str: str = "%d %b %Y, %H:%M") -> str:
    """Format datetime object"""
    if not date:
        return None
    return date.strftime(format_str)


def format_amount(amount: float) -> str:
    """Render a fee in rupees: 5000 -> '₹5,000', 1250.5 -> '₹1,250.50'"""
    if float(amount).is_integer():
        return f"₹{int(amount):,}"
    return f"₹{amount:,.2f}"


def generate_payment_reference(moment: datetime) -> str:
    """Reference for simulated payments: SIM-<epoch milliseconds>-<6 hex>"""
    epoch_ms = int(moment.replace(tzinfo=timezone.utc).timestamp() * 1000)
    return f"SIM-{epoch_ms}-{uuid.uuid4().hex[:6].upper()}"
