"""Pydantic schemas for bookings and availability checks."""
from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from wellness.models.booking import BookingStatus, ResourceType
from wellness.utils.intervals import add_minutes


class _IntervalInput(BaseModel):
    """Start time plus either an end time or a duration."""

    booking_date: date
    start_time: time
    end_time: time | None = Field(default=None, description="End time (exclusive)")
    duration_minutes: int | None = Field(default=None, gt=0, description="Alternative to end_time")

    @model_validator(mode="after")
    def resolve_end_time(self):
        """Derive end_time from duration and check ordering."""
        if self.end_time is None:
            if self.duration_minutes is None:
                raise ValueError("Either end_time or duration_minutes is required")
            self.end_time = add_minutes(self.start_time, self.duration_minutes)
            if self.end_time is None:
                raise ValueError("Booking must end before midnight")
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class AvailabilityQuery(_IntervalInput):
    """Schema for checking one resource."""

    resource_id: UUID
    buffer_minutes: int = Field(default=0, ge=0, description="Preparation time after existing sessions")


class ResourcesAvailabilityQuery(_IntervalInput):
    """Schema for checking several resources for the same interval."""

    resource_ids: list[UUID] = Field(..., min_length=1)
    buffer_minutes: int = Field(default=0, ge=0)


class BookingCreate(_IntervalInput):
    """Schema for creating a booking."""

    resource_id: UUID
    resource_type: ResourceType = ResourceType.PROFESSIONAL
    status: BookingStatus = BookingStatus.SCHEDULED
    appointment_id: UUID | None = None
    user_id: UUID | None = None
    buffer_minutes: int = Field(default=0, ge=0)


class BookingReschedule(_IntervalInput):
    """Schema for moving a booking to a new date/time."""

    buffer_minutes: int = Field(default=0, ge=0)


class BookingCancel(BaseModel):
    """Schema for cancelling a booking, optionally earning credit."""

    appointment_amount: int | None = Field(
        default=None, ge=0, description="Price of the cancelled service; omit to skip crediting"
    )


class Booking(BaseModel):
    """Schema for returning booking data."""

    id: UUID
    resource_id: UUID
    resource_type: ResourceType
    booking_date: date
    start_time: time
    end_time: time
    status: BookingStatus
    appointment_id: UUID | None
    user_id: UUID | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AvailabilityResult(BaseModel):
    """Availability of one resource, with the bookings in the way."""

    resource_id: UUID
    available: bool
    conflicts: list[Booking] = Field(default_factory=list)


class ResourcesAvailability(BaseModel):
    """Availability of a set of resources; free only if all are."""

    available: bool
    resources: list[AvailabilityResult]


class Slot(BaseModel):
    """One slot picker entry."""

    time: time
    available: bool

    model_config = ConfigDict(from_attributes=True)


class SlotList(BaseModel):
    """Slot picker for one resource and day."""

    resource_id: UUID
    booking_date: date
    duration_minutes: int
    slots: list[Slot]


class BookingCancellation(BaseModel):
    """Result of cancelling a booking."""

    booking: Booking
    credit_amount: int = 0
    refund_percentage: int = 0
    credit_id: UUID | None = None
    message: str | None = None
