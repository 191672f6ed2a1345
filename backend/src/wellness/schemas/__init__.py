"""Pydantic schemas for API request/response validation."""

from wellness.schemas.booking import (
    AvailabilityQuery,
    AvailabilityResult,
    Booking,
    BookingCancel,
    BookingCancellation,
    BookingCreate,
    BookingReschedule,
    ResourcesAvailability,
    ResourcesAvailabilityQuery,
    Slot,
    SlotList,
)
from wellness.schemas.credit import (
    CancellationCreditCreate,
    CancellationQuote,
    CancellationQuoteResult,
    Credit,
    CreditBalance,
    CreditCreated,
    CreditsSummary,
    CreditTransaction,
    CreditUse,
    CreditUseResult,
    ExpirySweepResult,
    ManualCreditCreate,
)
from wellness.schemas.error import ErrorCode, ErrorDetail, ErrorResponse

__all__ = [
    # Booking schemas
    "AvailabilityQuery",
    "AvailabilityResult",
    "Booking",
    "BookingCancel",
    "BookingCancellation",
    "BookingCreate",
    "BookingReschedule",
    "ResourcesAvailability",
    "ResourcesAvailabilityQuery",
    "Slot",
    "SlotList",
    # Credit schemas
    "CancellationCreditCreate",
    "CancellationQuote",
    "CancellationQuoteResult",
    "Credit",
    "CreditBalance",
    "CreditCreated",
    "CreditsSummary",
    "CreditTransaction",
    "CreditUse",
    "CreditUseResult",
    "ExpirySweepResult",
    "ManualCreditCreate",
    # Error schemas
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
]
