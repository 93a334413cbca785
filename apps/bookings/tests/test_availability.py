"""
Availability aggregation: dates, durations, per-slot stats and start times.
"""

from datetime import time

import pytest
from conftest import future_date

from apps.bookings.availability import (
    available_dates,
    available_durations,
    available_slots,
    available_start_times,
)
from apps.bookings.exceptions import DurationNotAllowedError
from apps.slots.models import sunday_weekday


@pytest.mark.django_db
class TestAvailableDates:

    def test_lists_dates_with_bookable_slots(self, exam_slot_factory):
        first, second = future_date(3), future_date(5)
        exam_slot_factory(date=second)
        exam_slot_factory(date=first)
        exam_slot_factory(date=first)
        assert available_dates() == [first, second]

    def test_past_and_inactive_slots_are_ignored(self, exam_slot_factory):
        exam_slot_factory(date=future_date(-2))
        exam_slot_factory(date=future_date(4), is_active=False)
        assert available_dates(future_date(-10), future_date(10)) == []

    def test_respects_range(self, exam_slot_factory):
        exam_slot_factory(date=future_date(2))
        exam_slot_factory(date=future_date(9))
        assert available_dates(future_date(5), future_date(12)) == [future_date(9)]

    def test_excepted_weekday_is_skipped(self, exam_slot_factory):
        day = future_date(6)
        exam_slot_factory(date=day, day_exceptions=[sunday_weekday(day)])
        assert available_dates() == []

    def test_full_legacy_slot_drops_its_date(self, legacy_slot_factory, booking_factory):
        day = future_date(3)
        slot = legacy_slot_factory(date=day, row_end=2)
        booking_factory(exam_slot=slot, selected_rows=[1, 2])
        assert available_dates() == []

    def test_booked_window_slot_still_listed(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory(row_end=2)
        booking_factory(exam_slot=slot, selected_rows=[1, 2])
        assert available_dates() == [slot.date]


@pytest.mark.django_db
class TestAvailableDurations:

    def test_union_of_active_slots(self, exam_slot_factory, legacy_slot_factory, exam_day):
        exam_slot_factory(date=exam_day, allowed_durations=[60, 90])
        exam_slot_factory(date=exam_day, allowed_durations=[120])
        legacy_slot_factory(date=exam_day, duration_minutes=45)
        exam_slot_factory(date=exam_day, allowed_durations=[30], is_active=False)
        assert available_durations(exam_day) == [45, 60, 90, 120]

    def test_past_day_is_empty(self, exam_slot_factory):
        day = future_date(-1)
        exam_slot_factory(date=day)
        assert available_durations(day) == []


@pytest.mark.django_db
class TestAvailableSlots:

    def test_duration_filter(self, exam_slot_factory, legacy_slot_factory, exam_day):
        short = exam_slot_factory(date=exam_day, allowed_durations=[60])
        legacy_slot_factory(date=exam_day, duration_minutes=120)
        assert [s.id for s in available_slots(exam_day, 60)] == [short.id]

    def test_legacy_slot_counts_booked_rows(self, legacy_slot_factory, booking_factory,
                                           cancelled_booking_factory, exam_day):
        slot = legacy_slot_factory(date=exam_day, row_end=5)
        booking_factory(exam_slot=slot, selected_rows=[1, 2])
        booking_factory(exam_slot=slot, selected_rows=[2, 4])
        cancelled_booking_factory(exam_slot=slot, selected_rows=[5])

        [view] = available_slots(exam_day)
        assert view.is_legacy
        assert view.booked_rows == [1, 2, 4]
        assert view.available_rows == [3, 5]
        assert view.as_dict()['stats'] == {
            'total_rows': 5,
            'booked_rows': 3,
            'remaining_rows': 2,
            'available_rows': [3, 5],
            'booked_rows_list': [1, 2, 4],
        }

    def test_window_slot_is_optimistic(self, exam_slot_factory, booking_factory, exam_day):
        slot = exam_slot_factory(date=exam_day, row_end=4)
        booking_factory(exam_slot=slot, booking_start_time=time(10, 0),
                        booking_duration_minutes=90, selected_rows=[3, 1])

        [view] = available_slots(exam_day)
        data = view.as_dict()
        assert data['stats']['available_rows'] == [1, 2, 3, 4]
        assert data['stats']['booked_rows'] == 0
        assert data['booked_time_slots'] == [
            {'start_time': '10:00', 'end_time': '11:30', 'rows': [1, 3]},
        ]
        assert data['end_time'] == '12:00'

    def test_exclude_booking_id(self, legacy_slot_factory, booking_factory, exam_day):
        slot = legacy_slot_factory(date=exam_day, row_end=3)
        mine = booking_factory(exam_slot=slot, selected_rows=[1])
        booking_factory(exam_slot=slot, selected_rows=[2])

        [view] = available_slots(exam_day, exclude_booking_id=mine.id)
        assert view.available_rows == [1, 3]

    def test_excepted_slot_hidden(self, exam_slot_factory, exam_day):
        exam_slot_factory(date=exam_day, day_exceptions=[sunday_weekday(exam_day)])
        assert available_slots(exam_day) == []

    def test_day_exceptions_other_weekday(self, exam_slot_factory, exam_day):
        other = (sunday_weekday(exam_day) + 1) % 7
        exam_slot_factory(date=exam_day, day_exceptions=[other])
        assert len(available_slots(exam_day)) == 1


@pytest.mark.django_db
class TestAvailableStartTimes:

    def test_lists_fitting_starts(self, exam_slot_factory):
        slot = exam_slot_factory()
        starts = available_start_times(slot, 90)
        assert [s['start_time'] for s in starts] == ['09:00', '10:00']
        assert all(s['available'] for s in starts)
        assert starts[1]['end_time'] == '11:30'

    def test_flags_conflicting_starts(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory()
        booking_factory(exam_slot=slot, booking_start_time=time(10, 0),
                        booking_duration_minutes=60, selected_rows=[2, 3])

        starts = {s['start_time']: s for s in available_start_times(slot, 60, rows=[3, 4])}
        assert starts['09:00']['available']
        assert not starts['10:00']['available']
        assert starts['10:00']['conflicting_rows'] == [3]
        assert starts['11:00']['available']

    def test_own_booking_excluded(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory()
        mine = booking_factory(exam_slot=slot, selected_rows=[1])
        starts = available_start_times(slot, 60, rows=[1], exclude_booking_id=mine.id)
        assert all(s['available'] for s in starts)

    def test_legacy_slot_has_one_start(self, legacy_slot_factory):
        slot = legacy_slot_factory()
        assert available_start_times(slot, 120) == [{
            'start_time': '09:00',
            'end_time': '11:00',
            'available': True,
            'conflicting_rows': [],
        }]

    def test_unknown_duration(self, exam_slot_factory):
        with pytest.raises(DurationNotAllowedError):
            available_start_times(exam_slot_factory(), 45)

    def test_granularity_setting(self, exam_slot_factory, settings):
        settings.EXAM_BOOKING = {**settings.EXAM_BOOKING, 'START_TIME_GRANULARITY': 30}
        starts = available_start_times(exam_slot_factory(), 120)
        assert [s['start_time'] for s in starts] == ['09:00', '09:30', '10:00']
