"""Booking service: availability checks and booking lifecycle."""
from datetime import date, datetime, time
from typing import Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wellness.config import settings
from wellness.exceptions import BookingConflictError, BookingNotFoundError, InvalidBookingStateError
from wellness.metrics import booking_conflicts_total, bookings_cancelled_total, bookings_created_total
from wellness.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from wellness.schemas.booking import (
    AvailabilityResult,
    BookingCancellation,
    BookingCreate,
    BookingReschedule,
    ResourcesAvailability,
)
from wellness.schemas.booking import Booking as BookingSchema
from wellness.services.credit_service import CreditService
from wellness.utils.audit import audit_create, audit_update
from wellness.utils.cancellation import calculate_cancellation_credit, clinic_now
from wellness.utils.intervals import (
    SlotAvailability,
    TimeInterval,
    find_available_slots,
    find_conflicts,
    generate_candidate_times,
)

logger = structlog.get_logger(__name__)

# Name of the storage-level exclusion constraint on overlapping active bookings
OVERLAP_CONSTRAINT = "ex_bookings_resource_overlap"


class BookingService:
    """
    Service layer for booking operations.

    Conflict checks here are a read-then-decide pre-check for user feedback.
    Under concurrent writers the storage exclusion constraint is what keeps two
    active bookings of one resource from overlapping; its violation surfaces as
    BookingConflictError too.
    """

    def __init__(self, db: AsyncSession):
        """Initialize booking service with database session."""
        self.db = db

    async def get_booking(self, booking_id: UUID) -> Booking | None:
        """
        Get booking by ID.

        Args:
            booking_id: Booking UUID

        Returns:
            Booking or None if not found
        """
        result = await self.db.execute(select(Booking).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def _require_booking(self, booking_id: UUID) -> Booking:
        booking = await self.get_booking(booking_id)
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    async def get_active_intervals(
        self,
        resource_id: UUID,
        booking_date: date,
        exclude_booking_id: Optional[UUID] = None,
        lock: bool = False,
    ) -> list[Booking]:
        """
        Active bookings of one resource on one date, ordered by start time.

        Args:
            resource_id: Resource UUID
            booking_date: Day to inspect
            exclude_booking_id: Booking to leave out (the one being rescheduled)
            lock: Lock the returned rows for the rest of the transaction
        """
        conditions = [
            Booking.resource_id == resource_id,
            Booking.booking_date == booking_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        ]
        if exclude_booking_id is not None:
            conditions.append(Booking.id != exclude_booking_id)

        query = select(Booking).where(and_(*conditions)).order_by(Booking.start_time)
        if lock:
            query = query.with_for_update()

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def check_availability(
        self,
        resource_id: UUID,
        booking_date: date,
        start_time: time,
        end_time: time,
        buffer_minutes: int = 0,
        exclude_booking_id: Optional[UUID] = None,
    ) -> AvailabilityResult:
        """
        Check whether one resource is free for an interval.

        Returns:
            AvailabilityResult listing the bookings in the way, if any

        Raises:
            IntervalValidationError: If start_time is not before end_time
        """
        proposed = TimeInterval(start_time, end_time)
        existing = await self.get_active_intervals(resource_id, booking_date, exclude_booking_id)
        conflicts = find_conflicts(proposed, existing, buffer_minutes)

        return AvailabilityResult(
            resource_id=resource_id,
            available=not conflicts,
            conflicts=[BookingSchema.model_validate(booking) for booking in conflicts],
        )

    async def check_resources_availability(
        self,
        resource_ids: Sequence[UUID],
        booking_date: date,
        start_time: time,
        end_time: time,
        buffer_minutes: int = 0,
    ) -> ResourcesAvailability:
        """
        Check several resources for the same interval.

        The interval is free for the set only if every resource is free.
        """
        results = [
            await self.check_availability(resource_id, booking_date, start_time, end_time, buffer_minutes)
            for resource_id in resource_ids
        ]
        return ResourcesAvailability(
            available=all(result.available for result in results),
            resources=results,
        )

    async def get_available_slots(
        self,
        resource_id: UUID,
        booking_date: date,
        duration_minutes: Optional[int] = None,
        candidates: Optional[Sequence[time]] = None,
        buffer_minutes: int = 0,
    ) -> list[SlotAvailability]:
        """
        Slot picker for one resource and day.

        Candidates default to the configured opening-hours grid.
        """
        duration_minutes = duration_minutes or settings.default_session_minutes
        if candidates is None:
            candidates = generate_candidate_times(
                settings.slot_open_time,
                settings.slot_close_time,
                settings.slot_step_minutes,
                duration_minutes,
            )

        existing = await self.get_active_intervals(resource_id, booking_date)
        return find_available_slots(
            resource_id,
            booking_date,
            candidates,
            duration_minutes,
            existing,
            buffer_minutes,
        )

    async def _ensure_free(
        self,
        booking: Booking | BookingCreate | BookingReschedule,
        resource_id: UUID,
        resource_type_label: str,
        buffer_minutes: int,
        exclude_booking_id: Optional[UUID] = None,
    ) -> None:
        proposed = TimeInterval(booking.start_time, booking.end_time)
        existing = await self.get_active_intervals(
            resource_id, booking.booking_date, exclude_booking_id, lock=True
        )
        conflicts = find_conflicts(proposed, existing, buffer_minutes)
        if conflicts:
            booking_conflicts_total.labels(resource_type=resource_type_label).inc()
            logger.info(
                "booking_conflict_detected",
                resource_id=str(resource_id),
                booking_date=booking.booking_date.isoformat(),
                start_time=booking.start_time.isoformat(),
                end_time=booking.end_time.isoformat(),
                conflict_count=len(conflicts),
            )
            # Detached copies, readable after the caller rolls back
            raise BookingConflictError([BookingSchema.model_validate(c) for c in conflicts])

    async def _flush_checked(self, resource_type_label: str) -> None:
        try:
            await self.db.flush()
        except IntegrityError as exc:
            if OVERLAP_CONSTRAINT not in str(exc.orig):
                raise
            booking_conflicts_total.labels(resource_type=resource_type_label).inc()
            logger.warning("booking_overlap_constraint_violated", error=str(exc.orig))
            raise BookingConflictError() from exc

    @audit_create("booking")
    async def create_booking(self, booking_data: BookingCreate, current_user: Optional[dict] = None) -> Booking:
        """
        Create a booking after re-running the conflict check.

        Args:
            booking_data: Booking creation data
            current_user: Current user context for audit logging

        Returns:
            Created booking

        Raises:
            BookingConflictError: If the resource is already booked for an
                overlapping interval on that date
        """
        resource_type = booking_data.resource_type.value

        if booking_data.status in ACTIVE_BOOKING_STATUSES:
            await self._ensure_free(
                booking_data, booking_data.resource_id, resource_type, booking_data.buffer_minutes
            )

        booking = Booking(
            resource_id=booking_data.resource_id,
            resource_type=booking_data.resource_type,
            booking_date=booking_data.booking_date,
            start_time=booking_data.start_time,
            end_time=booking_data.end_time,
            status=booking_data.status,
            appointment_id=booking_data.appointment_id,
            user_id=booking_data.user_id,
        )

        self.db.add(booking)
        await self._flush_checked(resource_type)
        await self.db.refresh(booking)

        bookings_created_total.labels(resource_type=resource_type).inc()
        logger.info(
            "booking_created",
            booking_id=str(booking.id),
            resource_id=str(booking.resource_id),
            booking_date=booking.booking_date.isoformat(),
            start_time=booking.start_time.isoformat(),
            end_time=booking.end_time.isoformat(),
        )

        return booking

    @audit_update("booking")
    async def reschedule_booking(
        self,
        booking_id: UUID,
        reschedule_data: BookingReschedule,
        current_user: Optional[dict] = None,
    ) -> tuple[Booking, dict]:
        """
        Move an active booking to a new date and time.

        The conflict check ignores the booking itself, so shifting a session
        within its own slot is allowed.

        Raises:
            BookingNotFoundError: If the booking does not exist
            InvalidBookingStateError: If the booking is no longer active
            BookingConflictError: If the new interval is taken
        """
        booking = await self._require_booking(booking_id)
        if not booking.is_active:
            raise InvalidBookingStateError(
                f"Cannot reschedule booking with status {booking.status.value}"
            )

        resource_type = booking.resource_type.value
        await self._ensure_free(
            reschedule_data,
            booking.resource_id,
            resource_type,
            reschedule_data.buffer_minutes,
            exclude_booking_id=booking.id,
        )

        old_values = {
            "booking_date": booking.booking_date,
            "start_time": booking.start_time,
            "end_time": booking.end_time,
        }
        booking.booking_date = reschedule_data.booking_date
        booking.start_time = reschedule_data.start_time
        booking.end_time = reschedule_data.end_time

        await self._flush_checked(resource_type)

        logger.info(
            "booking_rescheduled",
            booking_id=str(booking.id),
            booking_date=booking.booking_date.isoformat(),
            start_time=booking.start_time.isoformat(),
            end_time=booking.end_time.isoformat(),
        )

        return booking, old_values

    @audit_update("booking")
    async def mark_cancelled(
        self,
        booking_id: UUID,
        current_user: Optional[dict] = None,
    ) -> tuple[Booking, dict]:
        """
        Set a booking's status to cancelled, freeing its interval.

        Raises:
            BookingNotFoundError: If the booking does not exist
            InvalidBookingStateError: If the booking is not active
        """
        booking = await self._require_booking(booking_id)
        if not booking.is_active:
            raise InvalidBookingStateError(
                f"Cannot cancel booking with status {booking.status.value}"
            )

        old_values = {"status": booking.status.value}
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = datetime.utcnow()
        await self.db.flush()

        return booking, old_values

    async def cancel_booking(
        self,
        booking_id: UUID,
        appointment_amount: Optional[int] = None,
        current_user: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> BookingCancellation:
        """
        Cancel a booking and, when a price is given, credit the patient.

        The credit follows the cancellation tier schedule measured from the
        booking's start. Booking update and credit issue share the caller's
        transaction.

        Args:
            booking_id: Booking UUID
            appointment_amount: Price of the cancelled service; None skips crediting
            current_user: Current user context
            now: Cancellation instant in clinic wall-clock time (defaults to now)

        Returns:
            BookingCancellation with the credit outcome

        Raises:
            BookingNotFoundError: If the booking does not exist
            InvalidBookingStateError: If the booking is not active
            CreditValidationError: If appointment_amount is negative; nothing is written
        """
        now = now or clinic_now()
        booking = await self._require_booking(booking_id)
        if not booking.is_active:
            raise InvalidBookingStateError(
                f"Cannot cancel booking with status {booking.status.value}"
            )

        policy = None
        if appointment_amount is not None:
            policy = calculate_cancellation_credit(
                appointment_amount,
                datetime.combine(booking.booking_date, booking.start_time),
                now,
            )

        booking = await self.mark_cancelled(booking_id, current_user=current_user)
        cancellation = BookingCancellation(booking=BookingSchema.model_validate(booking))
        credited = False

        if policy is not None:
            if policy.credit_amount > 0 and booking.user_id is None:
                cancellation.message = "No patient account is linked to this booking; no credit was issued"
            else:
                cancellation.credit_amount = policy.credit_amount
                cancellation.refund_percentage = policy.refund_percentage
                cancellation.message = policy.message

            if policy.credit_amount > 0 and booking.user_id is not None:
                cancellation.credit_id = await CreditService(self.db).create_cancellation_credit(
                    user_id=booking.user_id,
                    appointment_id=booking.appointment_id or booking.id,
                    amount=policy.credit_amount,
                    description=f"Cancellation credit ({policy.refund_percentage}%)",
                    current_user=current_user,
                )
                credited = True

        bookings_cancelled_total.labels(
            resource_type=booking.resource_type.value,
            credited=str(credited).lower(),
        ).inc()
        logger.info(
            "booking_cancelled",
            booking_id=str(booking.id),
            credit_amount=cancellation.credit_amount,
            refund_percentage=cancellation.refund_percentage,
        )

        return cancellation
