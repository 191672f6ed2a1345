"""Half-open interval conflict checks for resource bookings.

All checks are resource-agnostic: callers pass only the active intervals of
one resource on one date. Intervals are ``[start_time, end_time)`` so
back-to-back bookings never conflict.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional, Protocol, Sequence, TypeVar
from uuid import UUID

from wellness.exceptions import IntervalValidationError


class Interval(Protocol):
    """Anything with a start and end time of day (bookings, proposals)."""

    start_time: time
    end_time: time


T = TypeVar("T", bound=Interval)


@dataclass(frozen=True)
class TimeInterval:
    """Validated ``[start_time, end_time)`` span within a single day."""

    start_time: time
    end_time: time

    def __post_init__(self) -> None:
        if self.start_time >= self.end_time:
            raise IntervalValidationError(
                f"Interval start {self.start_time:%H:%M} must be before end {self.end_time:%H:%M}"
            )

    @classmethod
    def from_duration(cls, start_time: time, duration_minutes: int) -> "TimeInterval":
        """
        Build an interval from a start time and a length in minutes.

        Raises:
            IntervalValidationError: If the duration is not positive or the
                interval would run past midnight
        """
        if duration_minutes <= 0:
            raise IntervalValidationError(f"Duration must be positive, got {duration_minutes} minutes")
        end_time = add_minutes(start_time, duration_minutes)
        if end_time is None:
            raise IntervalValidationError(
                f"A {duration_minutes} minute session starting at {start_time:%H:%M} ends after midnight"
            )
        return cls(start_time, end_time)


@dataclass(frozen=True)
class SlotAvailability:
    """One entry of a slot picker."""

    time: time
    available: bool


def add_minutes(value: time, minutes: int) -> Optional[time]:
    """
    Shift a time of day by a number of minutes.

    Returns None when the result leaves the day. Midnight as an end bound is
    not representable with ``datetime.time`` and is treated as leaving it.

    Examples:
        >>> add_minutes(time(9, 30), 45)
        datetime.time(10, 15)
        >>> add_minutes(time(23, 30), 60) is None
        True
    """
    anchor = datetime.combine(date.min, value)
    shifted = anchor + timedelta(minutes=minutes)
    if shifted.date() != date.min:
        return None
    return shifted.time()


def overlaps(proposed: Interval, existing: Interval, buffer_minutes: int = 0) -> bool:
    """
    Half-open overlap test, with an optional buffer after ``existing``.

    The buffer models preparation time the resource needs after a session.
    """
    existing_end = existing.end_time
    if buffer_minutes:
        # A buffer past midnight blocks the rest of the day
        existing_end = add_minutes(existing.end_time, buffer_minutes) or time.max
    return proposed.start_time < existing_end and proposed.end_time > existing.start_time


def find_conflicts(
    proposed: Interval,
    existing_intervals: Iterable[T],
    buffer_minutes: int = 0,
) -> list[T]:
    """Return the existing intervals that overlap ``proposed``, in input order."""
    return [
        existing for existing in existing_intervals if overlaps(proposed, existing, buffer_minutes)
    ]


def has_conflict(
    proposed: Interval,
    existing_intervals: Iterable[Interval],
    buffer_minutes: int = 0,
) -> bool:
    """
    Whether ``proposed`` overlaps any of ``existing_intervals``.

    O(n) scan; multi-resource checks call this once per resource and require
    every call to return False.

    Examples:
        >>> has_conflict(TimeInterval(time(10), time(11)), [TimeInterval(time(11), time(12))])
        False
        >>> has_conflict(TimeInterval(time(10), time(11)), [TimeInterval(time(10, 30), time(10, 45))])
        True
    """
    return any(overlaps(proposed, existing, buffer_minutes) for existing in existing_intervals)


def find_available_slots(
    resource_id: Optional[UUID],
    booking_date: Optional[date],
    candidate_start_times: Sequence[time],
    slot_duration_minutes: int,
    existing_intervals: Sequence[Interval],
    buffer_minutes: int = 0,
) -> list[SlotAvailability]:
    """
    Mark each candidate start time as available or not.

    ``resource_id`` and ``booking_date`` identify what ``existing_intervals``
    were filtered by; they are not used to filter here.

    Returns:
        One SlotAvailability per candidate, preserving input order
    """
    if slot_duration_minutes <= 0:
        raise IntervalValidationError(f"Slot duration must be positive, got {slot_duration_minutes} minutes")

    slots = []
    for start_time in candidate_start_times:
        end_time = add_minutes(start_time, slot_duration_minutes)
        if end_time is None:
            slots.append(SlotAvailability(time=start_time, available=False))
            continue
        candidate = TimeInterval(start_time, end_time)
        slots.append(
            SlotAvailability(
                time=start_time,
                available=not has_conflict(candidate, existing_intervals, buffer_minutes),
            )
        )
    return slots


def generate_candidate_times(
    open_time: time,
    close_time: time,
    step_minutes: int = 30,
    duration_minutes: int = 60,
) -> list[time]:
    """
    Start times on a fixed grid that leave room for a full session before closing.

    Example:
        >>> generate_candidate_times(time(8), time(10), 30, 60)
        [datetime.time(8, 0), datetime.time(8, 30), datetime.time(9, 0)]
    """
    if step_minutes <= 0 or duration_minutes <= 0:
        raise IntervalValidationError("Step and duration must be positive")

    candidates = []
    current = open_time
    while True:
        end_time = add_minutes(current, duration_minutes)
        if end_time is None or end_time > close_time:
            break
        candidates.append(current)
        current = add_minutes(current, step_minutes)
        if current is None:
            break
    return candidates
