"""Cancellation credit policy: hours-before-appointment to refund percentage."""
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from wellness.config import settings
from wellness.exceptions import CreditValidationError

# (minimum hours before the appointment, refund percentage), evaluated top-down.
# The first row whose threshold is <= hours_until wins.
CANCELLATION_TIERS = (
    (24, 100),
    (12, 75),
    (6, 50),
    (2, 25),
)

NO_CREDIT_MESSAGE = "Cancellations less than 2 hours before the appointment do not earn credit"
FULL_CREDIT_MESSAGE = "100% of the appointment value will be credited to your account"


@dataclass(frozen=True)
class CancellationCredit:
    """Outcome of the tier schedule for one cancellation."""

    credit_amount: int
    refund_percentage: int
    hours_until: float
    message: str


def refund_percentage_for(hours_until: float) -> int:
    """
    Map hours remaining before an appointment to a refund percentage.

    Examples:
        >>> refund_percentage_for(24.0)
        100
        >>> refund_percentage_for(11.99)
        50
        >>> refund_percentage_for(-3)
        0
    """
    for threshold, percentage in CANCELLATION_TIERS:
        if hours_until >= threshold:
            return percentage
    return 0


def clinic_now() -> datetime:
    """Current wall-clock time at the clinic, naive like stored booking times."""
    return datetime.now(ZoneInfo(settings.clinic_timezone)).replace(tzinfo=None)


def to_clinic_time(value: datetime) -> datetime:
    """Convert an aware datetime to naive clinic wall-clock time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(ZoneInfo(settings.clinic_timezone)).replace(tzinfo=None)


def _message_for(percentage: int) -> str:
    if percentage == 0:
        return NO_CREDIT_MESSAGE
    if percentage == 100:
        return FULL_CREDIT_MESSAGE
    return f"{percentage}% of the appointment value will be credited to your account"


def calculate_cancellation_credit(
    appointment_amount: int,
    appointment_at: datetime,
    now: Optional[datetime] = None,
) -> CancellationCredit:
    """
    Compute the credit earned by cancelling an appointment.

    Pure apart from the ``now`` default, which is the clinic's current
    wall-clock time. Both datetimes must be on the same clock.

    Args:
        appointment_amount: Price of the cancelled service in minor units
        appointment_at: Originally scheduled start of the appointment
        now: Instant the cancellation is requested

    Returns:
        CancellationCredit with the rounded credit amount and percentage

    Raises:
        CreditValidationError: If appointment_amount is negative

    Example:
        >>> calculate_cancellation_credit(100000, datetime(2025, 9, 15, 10), datetime(2025, 9, 14, 14)).credit_amount
        75000
    """
    if appointment_amount < 0:
        raise CreditValidationError(
            f"Appointment amount must be non-negative, got {appointment_amount}"
        )

    now = now or clinic_now()
    hours_until = (appointment_at - now).total_seconds() / 3600
    percentage = refund_percentage_for(hours_until)

    credit_amount = int(
        (Decimal(appointment_amount) * percentage / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )

    return CancellationCredit(
        credit_amount=credit_amount,
        refund_percentage=percentage,
        hours_until=hours_until,
        message=_message_for(percentage),
    )
