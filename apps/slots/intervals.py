"""
Wall-clock interval math shared by the slot and booking engines.

All arithmetic is done on integer minute offsets since midnight; ranges are
half-open, [start, start + duration).
"""
import re
from datetime import time as time_type
from typing import Iterator, Union

from apps.bookings.exceptions import InvalidTimeFormatError

_HHMM = re.compile(r'^(\d{2}):(\d{2})$')

MINUTES_PER_DAY = 24 * 60


def to_minutes(value: Union[str, time_type]) -> int:
    """Parse 'HH:MM' (or a time object) into minutes since midnight."""
    if isinstance(value, time_type):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise InvalidTimeFormatError(f"Expected an HH:MM time, got {value!r}.")

    match = _HHMM.match(value.strip())
    if not match:
        raise InvalidTimeFormatError(f"Time '{value}' must be in HH:MM format.")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidTimeFormatError(f"Time '{value}' is not a valid wall-clock time.")
    return hours * 60 + minutes


def minutes_to_hhmm(minutes: int) -> str:
    """Format a minute offset as 'HH:MM', wrapping past midnight."""
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_to_time(minutes: int) -> time_type:
    minutes %= MINUTES_PER_DAY
    return time_type(minutes // 60, minutes % 60)


def overlaps(start_a: int, dur_a: int, start_b: int, dur_b: int) -> bool:
    """True if [start_a, start_a+dur_a) overlaps [start_b, start_b+dur_b)."""
    return start_a < start_b + dur_b and start_b < start_a + dur_a


class CandidateStartTimes:
    """
    Ascending start offsets t with window_start <= t and t + duration <= window_end,
    stepping by `granularity` from window_start.

    Iterable any number of times; empty when the duration does not fit.
    """

    def __init__(self, window_start: int, window_end: int, duration: int, granularity: int = 60):
        if granularity <= 0:
            raise ValueError(f"granularity must be positive, got {granularity}")
        self.window_start = window_start
        self.window_end = window_end
        self.duration = duration
        self.granularity = granularity

    def __iter__(self) -> Iterator[int]:
        current = self.window_start
        while current + self.duration <= self.window_end:
            yield current
            current += self.granularity

    def __len__(self) -> int:
        span = self.window_end - self.window_start - self.duration
        if span < 0:
            return 0
        return span // self.granularity + 1

    def __contains__(self, start: int) -> bool:
        offset = start - self.window_start
        return (
            offset >= 0
            and offset % self.granularity == 0
            and start + self.duration <= self.window_end
        )

    def __repr__(self):
        return f"CandidateStartTimes({[minutes_to_hhmm(t) for t in self]})"


def candidate_start_times(window_start: int, window_end: int, duration: int,
                          granularity: int = 60) -> CandidateStartTimes:
    return CandidateStartTimes(window_start, window_end, duration, granularity)
