"""Booking model for time spans occupied on shared resources."""
from sqlalchemy import CheckConstraint, Column, Date, DateTime, Enum as SQLEnum, Index, Time, Uuid
import enum

from wellness.models.base import Base, enum_values


class BookingStatus(enum.Enum):
    """Booking lifecycle status."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Only these statuses occupy the resource
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.SCHEDULED,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
)


class ResourceType(enum.Enum):
    """Kind of bookable capacity unit."""

    PROFESSIONAL = "professional"
    ROOM = "room"
    CHAMBER = "chamber"
    STATION = "station"


class Booking(Base):
    """
    Interval of one resource occupied by an appointment, class or session.

    Rescheduling updates date and times in place after re-running the
    conflict check; cancelling keeps the row but frees the interval.
    """

    __tablename__ = "bookings"

    resource_id = Column(Uuid(as_uuid=True), nullable=False)
    resource_type = Column(SQLEnum(ResourceType, values_callable=enum_values), nullable=False, default=ResourceType.PROFESSIONAL)
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(SQLEnum(BookingStatus, values_callable=enum_values), nullable=False, default=BookingStatus.SCHEDULED, index=True)
    appointment_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    cancelled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_bookings_time_order"),
        Index("ix_bookings_resource_date", "resource_id", "booking_date"),
    )

    @property
    def is_active(self) -> bool:
        """Whether the booking still occupies its resource."""
        return self.status in ACTIVE_BOOKING_STATUSES

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Booking(id={self.id}, resource_id={self.resource_id}, date={self.booking_date}, "
            f"{self.start_time}-{self.end_time}, status={self.status.value})>"
        )
