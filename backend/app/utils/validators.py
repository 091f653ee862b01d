"""
Custom validators
"""
from datetime import datetime
from typing import Optional

from app.core.config import settings
from app.utils.exceptions import LifecycleRuleError


def validate_hearing_duration(duration: Optional[int]) -> int:
    """
    Hearing duration in minutes, bounded by HEARING_MIN/MAX_DURATION_MINUTES.
    None falls back to the default duration.
    """
    if duration is None:
        return settings.HEARING_DEFAULT_DURATION_MINUTES
    low, high = settings.hearing_duration_bounds
    if duration < low or duration > high:
        raise LifecycleRuleError(
            f"Hearing duration must be between {low} and {high} minutes"
        )
    return int(duration)


def validate_future_date(value: datetime, now: datetime) -> datetime:
    """Hearing dates must be in the future at the time of scheduling"""
    if value < now:
        raise LifecycleRuleError("Hearing date must be in the future")
    return value


def validate_payment_amount(amount: Optional[float]) -> float:
    if amount is None:
        raise LifecycleRuleError("Payment amount is required")
    if amount <= 0:
        raise LifecycleRuleError("Payment amount must be greater than zero")
    return float(amount)
