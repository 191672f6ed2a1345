"""Booking and availability API endpoints."""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from wellness.api.deps import get_current_user, get_db
from wellness.auth.rbac import Role, check_role_hierarchy, ensure_self_or_staff
from wellness.config import settings
from wellness.exceptions import BookingNotFoundError
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
from wellness.services.booking_service import BookingService
from wellness.services.credit_service import actor_id

router = APIRouter(prefix="/bookings", tags=["bookings"])


def _is_staff(current_user: dict) -> bool:
    return check_role_hierarchy(current_user.get("role"), [Role.STAFF])


async def _owned_booking(service: BookingService, booking_id: UUID, current_user: dict):
    """Load a booking, hiding other patients' bookings behind a 404."""
    booking = await service.get_booking(booking_id)
    if booking is None or not (_is_staff(current_user) or str(booking.user_id) == str(current_user.get("sub"))):
        raise BookingNotFoundError(f"Booking {booking_id} not found")
    return booking


@router.post("/availability", response_model=AvailabilityResult)
async def check_availability(
    query: AvailabilityQuery,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> AvailabilityResult:
    """
    Check whether a resource is free for an interval.

    Back-to-back sessions do not conflict; ``buffer_minutes`` adds
    preparation time after each existing session.
    """
    return await BookingService(db).check_availability(
        query.resource_id,
        query.booking_date,
        query.start_time,
        query.end_time,
        buffer_minutes=query.buffer_minutes,
    )


@router.post("/availability/resources", response_model=ResourcesAvailability)
async def check_resources_availability(
    query: ResourcesAvailabilityQuery,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> ResourcesAvailability:
    """Check a professional and a room (or any set of resources) at once."""
    return await BookingService(db).check_resources_availability(
        query.resource_ids,
        query.booking_date,
        query.start_time,
        query.end_time,
        buffer_minutes=query.buffer_minutes,
    )


@router.get("/slots", response_model=SlotList)
async def list_slots(
    resource_id: UUID = Query(..., description="Resource to list slots for"),
    booking_date: date = Query(..., description="Day in clinic time"),
    duration_minutes: Optional[int] = Query(None, gt=0, description="Session length (defaults to the configured length)"),
    buffer_minutes: int = Query(0, ge=0, description="Preparation time after existing sessions"),
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> SlotList:
    """Slot picker: every candidate start time of the day with its availability."""
    duration_minutes = duration_minutes or settings.default_session_minutes
    slots = await BookingService(db).get_available_slots(
        resource_id,
        booking_date,
        duration_minutes=duration_minutes,
        buffer_minutes=buffer_minutes,
    )
    return SlotList(
        resource_id=resource_id,
        booking_date=booking_date,
        duration_minutes=duration_minutes,
        slots=[Slot.model_validate(slot) for slot in slots],
    )


@router.post("", response_model=Booking, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Booking:
    """
    Book a resource.

    The conflict check is repeated at write time; a concurrent booking of
    the same slot results in 409.
    """
    if not _is_staff(current_user):
        if booking_data.user_id is None:
            booking_data.user_id = actor_id(current_user)
        ensure_self_or_staff(current_user, booking_data.user_id)

    service = BookingService(db)

    try:
        booking = await service.create_booking(booking_data, current_user=current_user)
        await db.commit()
        return Booking.model_validate(booking)
    except Exception:
        await db.rollback()
        raise


@router.get("/{booking_id}", response_model=Booking)
async def get_booking(
    booking_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Booking:
    """Get a booking by ID."""
    booking = await _owned_booking(BookingService(db), booking_id, current_user)
    return Booking.model_validate(booking)


@router.patch("/{booking_id}/reschedule", response_model=Booking)
async def reschedule_booking(
    booking_id: UUID,
    reschedule_data: BookingReschedule,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> Booking:
    """Move an active booking to a new date and time."""
    service = BookingService(db)
    await _owned_booking(service, booking_id, current_user)

    try:
        booking = await service.reschedule_booking(booking_id, reschedule_data, current_user=current_user)
        await db.commit()
        return Booking.model_validate(booking)
    except Exception:
        await db.rollback()
        raise


@router.post("/{booking_id}/cancel", response_model=BookingCancellation)
async def cancel_booking(
    booking_id: UUID,
    cancel_data: BookingCancel,
    db: AsyncSession = Depends(get_db),
    current_user: dict = Depends(get_current_user),
) -> BookingCancellation:
    """
    Cancel a booking.

    Staff may pass the appointment price to credit the patient according to
    the cancellation tier schedule.
    """
    if cancel_data.appointment_amount is not None and not _is_staff(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only staff can set the appointment amount",
        )

    service = BookingService(db)
    await _owned_booking(service, booking_id, current_user)

    try:
        cancellation = await service.cancel_booking(
            booking_id,
            appointment_amount=cancel_data.appointment_amount,
            current_user=current_user,
        )
        await db.commit()
        return cancellation
    except Exception:
        await db.rollback()
        raise
