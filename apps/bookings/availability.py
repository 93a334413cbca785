"""
Availability aggregator — rolls slot shapes and their CONFIRMED bookings up
into the views that drive the date, duration, slot and start-time pickers.

Window slots are reported optimistically: before a start time is chosen the
full row range is shown as available, together with the existing booked
time ranges, and the precise check is left to the conflict checker.

Public API:
  available_durations(day)
  available_slots(day, duration=None, exclude_booking_id=None)
  available_dates(from_date, to_date)
  available_start_times(slot, duration, rows=None, exclude_booking_id=None)
  slot_stats(slot, bookings)
"""
from dataclasses import dataclass, field
from datetime import date as date_type
from typing import Iterable, List, Optional

from django.conf import settings
from django.db.models import Prefetch
from django.utils import timezone

from apps.slots.intervals import candidate_start_times, minutes_to_hhmm
from apps.slots.models import ExamSlot
from apps.slots.shapes import durations_offered, row_count, shape_of, slot_rows

from .conflicts import Candidate, booked_intervals, find_conflicts
from .exceptions import DurationNotAllowedError
from .models import Booking, BookingStatus


@dataclass
class SlotAvailability:
    id: object
    date: date_type
    start_time: str
    end_time: Optional[str]
    is_legacy: bool
    allowed_durations: List[int]
    duration_minutes: int
    location_name: str
    row_start: int
    row_end: int
    default_seats_per_row: Optional[int]
    booked_time_slots: List[dict] = field(default_factory=list)
    total_rows: int = 0
    booked_rows: List[int] = field(default_factory=list)
    available_rows: List[int] = field(default_factory=list)

    @property
    def remaining_rows(self) -> int:
        return len(self.available_rows)

    def as_dict(self) -> dict:
        return {
            'id': str(self.id),
            'date': self.date.isoformat(),
            'start_time': self.start_time,
            'end_time': self.end_time,
            'is_legacy': self.is_legacy,
            'allowed_durations': self.allowed_durations,
            'duration_minutes': self.duration_minutes,
            'location_name': self.location_name,
            'row_start': self.row_start,
            'row_end': self.row_end,
            'default_seats_per_row': self.default_seats_per_row,
            'booked_time_slots': self.booked_time_slots,
            'stats': {
                'total_rows': self.total_rows,
                'booked_rows': len(self.booked_rows),
                'remaining_rows': self.remaining_rows,
                'available_rows': self.available_rows,
                'booked_rows_list': self.booked_rows,
            },
        }


# ── Queries ───────────────────────────────────────────────────────────────────

def _today() -> date_type:
    return timezone.localdate()


def _confirmed_bookings(exclude_booking_id=None) -> Prefetch:
    qs = Booking.objects.filter(status=BookingStatus.CONFIRMED)
    if exclude_booking_id is not None:
        qs = qs.exclude(id=exclude_booking_id)
    return Prefetch('bookings', queryset=qs, to_attr='confirmed_bookings')


def _open_slots(exclude_booking_id=None, **filters):
    """Active slots with their CONFIRMED bookings prefetched."""
    return (
        ExamSlot.objects
        .filter(is_active=True, **filters)
        .prefetch_related(_confirmed_bookings(exclude_booking_id))
        .order_by('date', 'start_time')
    )


# ── Per-slot computation ──────────────────────────────────────────────────────

def slot_stats(slot: ExamSlot, bookings: Iterable[Booking]) -> SlotAvailability:
    """Availability view of one slot given the bookings that should count."""
    shape = shape_of(slot)
    intervals = booked_intervals(shape, bookings)
    booked = set()
    for interval in intervals:
        booked.update(r for r in interval.rows if shape.row_start <= r <= shape.row_end)

    if shape.is_legacy:
        available = [r for r in slot_rows(shape) if r not in booked]
        time_slots = []
        end_time = slot.end_time.strftime('%H:%M') if slot.end_time else None
    else:
        available = list(slot_rows(shape))
        time_slots = [
            {
                'start_time': minutes_to_hhmm(i.start),
                'end_time': minutes_to_hhmm(i.end),
                'rows': sorted(i.rows),
            }
            for i in intervals
        ]
        end_time = minutes_to_hhmm(shape.end)

    return SlotAvailability(
        id=slot.id,
        date=slot.date,
        start_time=minutes_to_hhmm(shape.start),
        end_time=end_time,
        is_legacy=shape.is_legacy,
        allowed_durations=sorted(durations_offered(shape)),
        duration_minutes=shape.duration,
        location_name=slot.location_name,
        row_start=slot.row_start,
        row_end=slot.row_end,
        default_seats_per_row=slot.default_seats_per_row,
        booked_time_slots=time_slots,
        total_rows=row_count(shape),
        booked_rows=sorted(booked) if shape.is_legacy else [],
        available_rows=available,
    )


# ── Aggregates ────────────────────────────────────────────────────────────────

def available_durations(day: date_type) -> List[int]:
    """Union of offered durations over the active, non-excepted slots on `day`."""
    if day < _today():
        return []
    durations = set()
    for slot in ExamSlot.objects.filter(date=day, is_active=True):
        if slot.is_excepted():
            continue
        durations.update(durations_offered(shape_of(slot)))
    return sorted(durations)


def available_slots(day: date_type, duration: Optional[int] = None,
                    exclude_booking_id=None) -> List[SlotAvailability]:
    """
    Availability for every active slot on `day`, optionally restricted to
    slots offering `duration`. `exclude_booking_id` removes that booking from
    all aggregation (reschedule previews).
    """
    if day < _today():
        return []

    views = []
    for slot in _open_slots(exclude_booking_id, date=day):
        if slot.is_excepted():
            continue
        if duration is not None and duration not in durations_offered(shape_of(slot)):
            continue
        views.append(slot_stats(slot, slot.confirmed_bookings))
    return views


def available_dates(from_date: Optional[date_type] = None,
                    to_date: Optional[date_type] = None) -> List[date_type]:
    """
    Ordered dates in [from_date, to_date] with at least one bookable slot.

    Legacy slots qualify while any row is unbooked; window slots qualify
    whenever they have rows at all. Past dates are never returned.
    """
    today = _today()
    start = max(from_date, today) if from_date else today
    filters = {'date__gte': start}
    if to_date:
        filters['date__lte'] = to_date

    dates = set()
    for slot in _open_slots(**filters):
        if slot.date in dates or slot.is_excepted():
            continue
        if slot_stats(slot, slot.confirmed_bookings).remaining_rows > 0:
            dates.add(slot.date)
    return sorted(dates)


def available_start_times(slot: ExamSlot, duration: int, rows: Optional[Iterable[int]] = None,
                          exclude_booking_id=None) -> List[dict]:
    """
    Candidate start times for `duration` on one slot.

    Each entry is {'start_time', 'end_time', 'available', 'conflicting_rows'}.
    Without `rows`, every fitting start is reported available; with `rows`,
    starts that would collide with an existing booking are flagged.
    """
    shape = shape_of(slot)
    if duration not in durations_offered(shape):
        raise DurationNotAllowedError(
            f"Duration {duration} min is not offered by this slot.",
            allowed=durations_offered(shape),
        )

    if shape.is_legacy:
        starts = [shape.start]
    else:
        granularity = settings.EXAM_BOOKING.get('START_TIME_GRANULARITY', 60)
        starts = candidate_start_times(shape.start, shape.end, duration, granularity)

    bookings = slot.bookings.filter(status=BookingStatus.CONFIRMED)
    intervals = booked_intervals(shape, bookings)
    wanted = frozenset(rows or ())

    result = []
    for start in starts:
        conflicting = set()
        if wanted:
            candidate = Candidate(start=start, duration=duration, rows=wanted)
            for conflict in find_conflicts(shape, candidate, intervals, exclude_booking_id):
                conflicting.update(conflict.rows)
        result.append({
            'start_time': minutes_to_hhmm(start),
            'end_time': minutes_to_hhmm(start + duration),
            'available': not conflicting,
            'conflicting_rows': sorted(conflicting),
        })
    return result
