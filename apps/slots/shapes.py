"""
Slot shapes — the explicit legacy/window variant the engine works with.

An ExamSlot row is converted once, by shape_of(), into either a LegacySlot
or a WindowSlot. Every availability and conflict decision is then made
against the shape rather than by probing nullable model fields.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import date as date_type
from typing import FrozenSet, Union

from django.conf import settings

from .intervals import minutes_to_hhmm, to_minutes

logger = logging.getLogger(__name__)


def _default_duration() -> int:
    return settings.EXAM_BOOKING.get('DEFAULT_DURATION_MINUTES', 60)


@dataclass(frozen=True)
class LegacySlot:
    """Single fixed start time and duration; time is never chosen by the booker."""
    id: object
    date: date_type
    start: int
    duration: int
    row_start: int
    row_end: int
    is_active: bool = True
    location_name: str = ''
    is_legacy: bool = field(default=True, init=False)


@dataclass(frozen=True)
class WindowSlot:
    """Open window [start, end); bookers pick a start and one allowed duration."""
    id: object
    date: date_type
    start: int
    end: int
    allowed_durations: FrozenSet[int]
    duration: int
    row_start: int
    row_end: int
    is_active: bool = True
    location_name: str = ''
    is_legacy: bool = field(default=False, init=False)


SlotShape = Union[LegacySlot, WindowSlot]


def parse_durations(raw) -> FrozenSet[int]:
    """
    Coerce a stored allowed_durations value into a set of positive ints.
    Older rows may hold a JSON string; anything unreadable becomes empty.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning('Ignoring unreadable allowed_durations value %r', raw)
            return frozenset()
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(
        d for d in raw
        if isinstance(d, int) and not isinstance(d, bool) and d > 0
    )


def shape_of(slot) -> SlotShape:
    """Build the tagged variant for an ExamSlot."""
    start = to_minutes(slot.start_time)
    durations = parse_durations(slot.allowed_durations)

    if slot.end_time is None or not durations:
        return LegacySlot(
            id=slot.id,
            date=slot.date,
            start=start,
            duration=slot.duration_minutes or _default_duration(),
            row_start=slot.row_start,
            row_end=slot.row_end,
            is_active=slot.is_active,
            location_name=slot.location_name,
        )

    end = to_minutes(slot.end_time)
    return WindowSlot(
        id=slot.id,
        date=slot.date,
        start=start,
        end=end,
        allowed_durations=durations,
        duration=slot.duration_minutes or (end - start),
        row_start=slot.row_start,
        row_end=slot.row_end,
        is_active=slot.is_active,
        location_name=slot.location_name,
    )


def is_legacy(slot: SlotShape) -> bool:
    return slot.is_legacy


def durations_offered(slot: SlotShape) -> FrozenSet[int]:
    if slot.is_legacy:
        return frozenset({slot.duration})
    # Fall back rather than strand a window slot with nothing to choose.
    return slot.allowed_durations or frozenset({slot.duration})


def row_count(slot: SlotShape) -> int:
    return slot.row_end - slot.row_start + 1


def is_within_window(slot: SlotShape, start: int, duration: int) -> bool:
    if slot.is_legacy:
        return start == slot.start and duration == slot.duration
    return slot.start <= start and start + duration <= slot.end


def window_bounds(slot: SlotShape) -> tuple:
    """(start, end) minute offsets covered by the slot."""
    if slot.is_legacy:
        return slot.start, slot.start + slot.duration
    return slot.start, slot.end


def slot_rows(slot: SlotShape) -> range:
    return range(slot.row_start, slot.row_end + 1)


def describe(slot: SlotShape) -> str:
    start, end = window_bounds(slot)
    return f"{minutes_to_hhmm(start)}–{minutes_to_hhmm(end)}"
