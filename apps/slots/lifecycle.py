"""
Slot lifecycle — the only writer of ExamSlot rows.

Public API:
  create_slot(...)
  bulk_create_slots(date_ranges, time_windows, location_name, row_start, row_end, ...)
  update_slot(slot_id, **changes)
  set_slots_active(slot_ids, is_active)
  delete_slot(slot_id)
  delete_slots(slot_ids)

Deleting a slot first cancels its CONFIRMED bookings and turns every
dependent booking into a tombstone (date/location copied onto the booking,
FK cleared), then removes the slot, all inside one transaction per slot.
"""
import logging
from dataclasses import dataclass, field
from datetime import date as date_type, timedelta
from typing import Iterable, List, Optional, Sequence

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.bookings.conflicts import Candidate, booked_intervals, find_conflicts
from apps.bookings.exceptions import (
    InvalidWindowError,
    RowOutOfRangeError,
    RowTimeConflictError,
    SlotNotFoundError,
)
from apps.bookings.models import Booking, BookingStatus
from apps.core.models import valid_uuids

from .intervals import minutes_to_hhmm, minutes_to_time, to_minutes
from .models import ExamSlot, sunday_weekday
from .shapes import describe, parse_durations, shape_of

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateRange:
    start: date_type
    end: date_type

    def days(self):
        day = self.start
        while day <= self.end:
            yield day
            day += timedelta(days=1)


@dataclass(frozen=True)
class TimeWindow:
    start_time: str
    end_time: str
    allowed_durations: Sequence[int] = ()


@dataclass
class DeletionResult:
    slot_id: object
    date: date_type
    location_name: str
    cancelled: list = field(default_factory=list)

    @property
    def cancelled_count(self) -> int:
        return len(self.cancelled)


# ── Validation ────────────────────────────────────────────────────────────────

def _validate_rows(row_start: int, row_end: int):
    if row_start < 1 or row_end < 1:
        raise RowOutOfRangeError('Row numbers start at 1.')
    if row_start > row_end:
        raise RowOutOfRangeError(
            f"Row range start ({row_start}) must not exceed its end ({row_end})."
        )


def _validate_window(start_time, end_time, allowed_durations) -> tuple:
    """Return (start, end, durations) in minutes or raise InvalidWindowError."""
    start, end = to_minutes(start_time), to_minutes(end_time)
    if end <= start:
        raise InvalidWindowError(
            f"Window end {minutes_to_hhmm(end)} must be after its start {minutes_to_hhmm(start)}."
        )
    durations = list(allowed_durations or ())
    bad = [
        d for d in durations
        if not isinstance(d, int) or isinstance(d, bool) or d <= 0 or d > end - start
    ]
    if bad:
        raise InvalidWindowError(
            f"Durations {', '.join(map(str, bad))} do not fit the "
            f"{minutes_to_hhmm(start)}–{minutes_to_hhmm(end)} window ({end - start} min)."
        )
    return start, end, sorted(set(durations))


def _validate_day_exceptions(day_exceptions) -> Optional[list]:
    if not day_exceptions:
        return None
    days = sorted(set(day_exceptions))
    if any(not isinstance(d, int) or d < 0 or d > 6 for d in days):
        raise InvalidWindowError('Day exceptions must be weekday numbers 0 (Sunday) to 6 (Saturday).')
    return days


# ── Create ────────────────────────────────────────────────────────────────────

@transaction.atomic
def create_slot(date: date_type, start_time, location_name: str, row_start: int, row_end: int,
                end_time=None, allowed_durations=None, duration_minutes: Optional[int] = None,
                default_seats_per_row: Optional[int] = None, is_active: bool = True,
                repeat_until: Optional[date_type] = None) -> List[ExamSlot]:
    """
    Create a legacy slot (no end_time, fixed duration_minutes) or a window
    slot (end_time + allowed_durations). With `repeat_until`, one slot is
    created per day from `date` through `repeat_until` inclusive.
    """
    _validate_rows(row_start, row_end)
    if end_time is not None:
        start, end, durations = _validate_window(start_time, end_time, allowed_durations)
        fields = {
            'start_time': minutes_to_time(start),
            'end_time': minutes_to_time(end),
            'allowed_durations': durations,
            'duration_minutes': end - start,
        }
    else:
        if not duration_minutes or duration_minutes <= 0:
            raise InvalidWindowError('A fixed-time slot needs a positive duration.')
        fields = {
            'start_time': minutes_to_time(to_minutes(start_time)),
            'end_time': None,
            'allowed_durations': [],
            'duration_minutes': duration_minutes,
        }

    last = repeat_until or date
    if last < date:
        raise InvalidWindowError('Repeat end date must not be before the start date.')

    slots = [
        ExamSlot.objects.create(
            date=day,
            location_name=location_name,
            row_start=row_start,
            row_end=row_end,
            default_seats_per_row=default_seats_per_row,
            is_active=is_active,
            **fields,
        )
        for day in DateRange(date, last).days()
    ]
    logger.info('Created %d exam slot(s) at %s', len(slots), location_name)
    return slots


@transaction.atomic
def bulk_create_slots(date_ranges: Iterable[DateRange], time_windows: Iterable[TimeWindow],
                      location_name: str, row_start: int, row_end: int,
                      day_exceptions: Optional[Iterable[int]] = None,
                      default_seats_per_row: Optional[int] = None,
                      is_active: bool = True) -> List[ExamSlot]:
    """
    One window slot per (date, time window), skipping dates whose weekday
    (0=Sunday … 6=Saturday) is in `day_exceptions`.

    All windows are validated before anything is written; one bad window
    rejects the whole batch with InvalidWindowError.
    """
    _validate_rows(row_start, row_end)
    date_ranges, time_windows = list(date_ranges), list(time_windows)
    if not date_ranges or not time_windows:
        raise InvalidWindowError('At least one date range and one time window are required.')

    for date_range in date_ranges:
        if date_range.end < date_range.start:
            raise InvalidWindowError(
                f"Date range {date_range.start} – {date_range.end} ends before it starts."
            )
    windows = [
        _validate_window(w.start_time, w.end_time, w.allowed_durations) for w in time_windows
    ]
    excepted = _validate_day_exceptions(day_exceptions)

    slots = []
    for date_range in date_ranges:
        for day in date_range.days():
            if excepted and sunday_weekday(day) in excepted:
                continue
            for start, end, durations in windows:
                slots.append(ExamSlot.objects.create(
                    date=day,
                    start_time=minutes_to_time(start),
                    end_time=minutes_to_time(end),
                    allowed_durations=durations,
                    duration_minutes=end - start,
                    location_name=location_name,
                    row_start=row_start,
                    row_end=row_end,
                    default_seats_per_row=default_seats_per_row,
                    is_active=is_active,
                    day_exceptions=excepted,
                ))

    logger.info(
        'Bulk created %d exam slots at %s (%d date ranges × %d windows, exceptions=%s)',
        len(slots), location_name, len(date_ranges), len(windows), excepted,
    )
    return slots


# ── Update ────────────────────────────────────────────────────────────────────

EDITABLE_FIELDS = {
    'date', 'start_time', 'end_time', 'allowed_durations', 'duration_minutes',
    'location_name', 'row_start', 'row_end', 'default_seats_per_row', 'is_active',
}


def _check_confirmed_bookings(slot: ExamSlot):
    """An edited slot must still hold every CONFIRMED booking without collisions."""
    shape = shape_of(slot)
    intervals = booked_intervals(
        shape, Booking.objects.filter(exam_slot=slot, status=BookingStatus.CONFIRMED)
    )
    for booked in intervals:
        if not shape.is_legacy and not (shape.start <= booked.start and booked.end <= shape.end):
            raise InvalidWindowError(
                f"A confirmed booking runs {minutes_to_hhmm(booked.start)}–{minutes_to_hhmm(booked.end)}, "
                f"outside the new window {describe(shape)}."
            )
        outside = sorted(r for r in booked.rows if r < shape.row_start or r > shape.row_end)
        if outside:
            raise InvalidWindowError(
                f"Confirmed bookings hold rows {', '.join(map(str, outside))} outside the new "
                f"range {shape.row_start}-{shape.row_end}."
            )
        candidate = Candidate(start=booked.start, duration=booked.duration, rows=booked.rows)
        conflicts = find_conflicts(shape, candidate, intervals, exclude_booking_id=booked.booking_id)
        if conflicts:
            first = conflicts[0]
            raise RowTimeConflictError(
                f"The change would give confirmed bookings shared rows "
                f"{', '.join(map(str, sorted(first.rows)))}.",
                rows=first.rows, window=first.window,
            )


@transaction.atomic
def update_slot(slot_id, **changes) -> ExamSlot:
    """
    Admin edit of a single slot. The resulting slot must still be valid and
    must still hold its CONFIRMED bookings without collisions.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot edit slot fields: {', '.join(sorted(unknown))}")
    try:
        slot = ExamSlot.objects.select_for_update().get(id=slot_id)
    except (ExamSlot.DoesNotExist, ValidationError):
        raise SlotNotFoundError('Exam slot not found.')

    for name, value in changes.items():
        if name in ('start_time', 'end_time') and isinstance(value, str):
            value = minutes_to_time(to_minutes(value))
        setattr(slot, name, value)

    _validate_rows(slot.row_start, slot.row_end)
    if slot.end_time is not None:
        start, end, durations = _validate_window(
            slot.start_time, slot.end_time, parse_durations(slot.allowed_durations),
        )
        slot.allowed_durations = durations
        slot.duration_minutes = end - start
    elif not slot.duration_minutes:
        raise InvalidWindowError('A fixed-time slot needs a positive duration.')

    _check_confirmed_bookings(slot)
    slot.save()
    logger.info('Exam slot %s updated (%s)', slot.id, ', '.join(sorted(changes)))
    return slot


def set_slots_active(slot_ids: Iterable, is_active: bool) -> int:
    """Flip the active flag. Existing bookings are left untouched."""
    count = ExamSlot.objects.filter(id__in=valid_uuids(slot_ids)).update(
        is_active=is_active, updated_at=timezone.now(),
    )
    logger.info('%s %d exam slot(s)', 'Activated' if is_active else 'Deactivated', count)
    return count


# ── Delete ────────────────────────────────────────────────────────────────────

@transaction.atomic
def delete_slot(slot_id) -> DeletionResult:
    """
    Cancel the slot's CONFIRMED bookings, tombstone every dependent booking,
    then delete the slot. All or nothing.
    """
    try:
        slot = ExamSlot.objects.select_for_update().get(id=slot_id)
    except (ExamSlot.DoesNotExist, ValidationError):
        raise SlotNotFoundError('Exam slot not found.')

    result = DeletionResult(slot_id=slot.id, date=slot.date, location_name=slot.location_name)
    dependents = list(Booking.objects.select_for_update().filter(exam_slot=slot))
    for booking in dependents:
        if booking.status == BookingStatus.CONFIRMED:
            booking.cancel(changed_by='system', reason='Exam slot deleted')
            result.cancelled.append(booking)
        # detach_from_slot reads booking.exam_slot, so hand it the locked instance.
        booking.exam_slot = slot
        booking.detach_from_slot()

    slot.delete()
    logger.info(
        'Deleted exam slot %s (%s, %s); cancelled %d booking(s)',
        result.slot_id, result.date, result.location_name, result.cancelled_count,
    )
    return result


def delete_slots(slot_ids: Iterable) -> List[DeletionResult]:
    """Delete several slots, each in its own transaction."""
    results = []
    for slot_id in slot_ids:
        try:
            results.append(delete_slot(slot_id))
        except SlotNotFoundError:
            logger.warning('Skipping delete of missing exam slot %s', slot_id)
    return results
