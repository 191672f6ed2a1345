"""Domain exceptions raised by the credit and booking services."""
from typing import Sequence


class WellnessError(Exception):
    """Base exception for the wellness booking core."""


class CreditValidationError(WellnessError, ValueError):
    """Invalid credit input (negative amounts, missing identifiers)."""


class IntervalValidationError(WellnessError, ValueError):
    """Malformed time interval (start not before end)."""


class InsufficientCreditError(WellnessError):
    """Requested credit exceeds the user's available balance."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient credit: requested {requested}, available {available}"
        )


class BookingNotFoundError(WellnessError):
    """Booking does not exist."""


class InvalidBookingStateError(WellnessError, ValueError):
    """Operation not allowed in the booking's current status."""


class BookingConflictError(WellnessError):
    """Proposed interval overlaps active bookings of the same resource.

    ``conflicts`` holds detached booking snapshots, safe to read after rollback.
    """

    def __init__(self, conflicts: Sequence = ()):
        self.conflicts = list(conflicts)
        if self.conflicts:
            slots = ", ".join(
                f"{c.booking_date} {c.start_time:%H:%M}-{c.end_time:%H:%M}" for c in self.conflicts
            )
            message = f"Resource {self.conflicts[0].resource_id} already booked at {slots}"
        else:
            message = "Resource already booked for the requested time"
        super().__init__(message)
