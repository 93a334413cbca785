"""
Conflict checker — the single decision point for "may these rows be held
at this time on this slot?".

Pure computation: no ORM queries, no clock. Callers load the slot shape and
the slot's CONFIRMED bookings (inside a locked transaction when writing) and
pass them in.

Public API:
  booked_intervals(shape, bookings)
  check_booking(shape, candidate, existing, exclude_booking_id=None)
  find_conflicts(shape, candidate, existing, exclude_booking_id=None)
"""
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence

from apps.slots.intervals import minutes_to_hhmm, overlaps, to_minutes
from apps.slots.shapes import SlotShape, describe, durations_offered, is_within_window

from .exceptions import (
    DurationNotAllowedError,
    InvalidTimeFormatError,
    OutOfWindowError,
    RowOutOfRangeError,
    RowTimeConflictError,
    SlotInactiveError,
)
from .models import parse_rows


@dataclass(frozen=True)
class Candidate:
    start: int
    duration: int
    rows: FrozenSet[int]


@dataclass(frozen=True)
class BookedInterval:
    """An existing CONFIRMED booking reduced to what conflicts care about."""
    booking_id: object
    start: int
    duration: int
    rows: FrozenSet[int]

    @property
    def end(self) -> int:
        return self.start + self.duration


@dataclass(frozen=True)
class Conflict:
    booking_id: object
    rows: FrozenSet[int]
    window: Optional[tuple]


def booked_intervals(shape: SlotShape, bookings: Iterable) -> List[BookedInterval]:
    """
    Convert Booking rows into BookedIntervals.

    A booking without its own start/duration occupies the slot's start and
    duration_minutes (the whole window on window slots). Unreadable times or
    rows degrade to "no contribution" for that record.
    """
    intervals = []
    for b in bookings:
        rows = parse_rows(b.selected_rows)
        if not rows:
            continue
        try:
            start = to_minutes(b.booking_start_time) if b.booking_start_time is not None else shape.start
        except InvalidTimeFormatError:
            continue
        duration = b.booking_duration_minutes or shape.duration
        intervals.append(BookedInterval(booking_id=b.id, start=start, duration=duration, rows=rows))
    intervals.sort(key=lambda i: (i.start, i.duration))
    return intervals


def find_conflicts(shape: SlotShape, candidate: Candidate,
                   existing: Sequence[BookedInterval],
                   exclude_booking_id=None) -> List[Conflict]:
    """All existing bookings that share rows with the candidate at an overlapping time."""
    conflicts = []
    for booked in existing:
        if exclude_booking_id is not None and booked.booking_id == exclude_booking_id:
            continue
        # Legacy slots: every booking spans the whole slot, so only rows matter.
        if not shape.is_legacy and not overlaps(
            candidate.start, candidate.duration, booked.start, booked.duration
        ):
            continue
        shared = candidate.rows & booked.rows
        if shared:
            window = None if shape.is_legacy else (booked.start, booked.duration)
            conflicts.append(Conflict(booking_id=booked.booking_id, rows=shared, window=window))
    return conflicts


def check_booking(shape: SlotShape, candidate: Candidate,
                  existing: Sequence[BookedInterval],
                  exclude_booking_id=None) -> None:
    """
    Accept (return None) or reject (raise) a candidate booking.

    Checks run in a fixed order and the first failure wins:
      1. slot inactive          → SlotInactiveError
      2. outside window         → OutOfWindowError
      3. duration not offered   → DurationNotAllowedError
      4. rows outside range     → RowOutOfRangeError (all offending rows)
      5. row+time collision     → RowTimeConflictError (first colliding booking)
    """
    if not shape.is_active:
        raise SlotInactiveError('This exam slot is not accepting bookings.')

    if not is_within_window(shape, candidate.start, candidate.duration):
        if shape.is_legacy:
            raise OutOfWindowError(
                f"This slot only runs {describe(shape)}; "
                f"{minutes_to_hhmm(candidate.start)} for {candidate.duration} min is not available."
            )
        raise OutOfWindowError(
            f"Booking {minutes_to_hhmm(candidate.start)}–"
            f"{minutes_to_hhmm(candidate.start + candidate.duration)} "
            f"must fall within the slot window {describe(shape)}."
        )

    offered = durations_offered(shape)
    if candidate.duration not in offered:
        raise DurationNotAllowedError(
            f"Duration {candidate.duration} min is not allowed. "
            f"Allowed durations: {', '.join(str(d) for d in sorted(offered))} min.",
            allowed=offered,
        )

    invalid = sorted(r for r in candidate.rows if r < shape.row_start or r > shape.row_end)
    if invalid:
        raise RowOutOfRangeError(
            f"Invalid rows: {', '.join(map(str, invalid))}. "
            f"Valid range is {shape.row_start}-{shape.row_end}.",
            rows=invalid,
        )

    conflicts = find_conflicts(shape, candidate, existing, exclude_booking_id)
    if conflicts:
        first = conflicts[0]
        rows = ', '.join(map(str, sorted(first.rows)))
        if first.window is None:
            message = f"Rows {rows} are already booked."
        else:
            start, duration = first.window
            message = (
                f"Rows {rows} are already booked from "
                f"{minutes_to_hhmm(start)} to {minutes_to_hhmm(start + duration)}."
            )
        raise RowTimeConflictError(message, rows=first.rows, window=first.window)
