"""
Slot lifecycle: creation (single, repeated, bulk), edits, activation and
deletion with booking tombstones.
"""

from datetime import time, timedelta

import pytest
from conftest import future_date

from apps.bookings.availability import available_slots
from apps.bookings.exceptions import (
    InvalidTimeFormatError,
    InvalidWindowError,
    RowOutOfRangeError,
    RowTimeConflictError,
    SlotNotFoundError,
)
from apps.bookings.models import Booking, BookingStatus, BookingStatusLog
from apps.slots.lifecycle import (
    DateRange,
    TimeWindow,
    bulk_create_slots,
    create_slot,
    delete_slot,
    delete_slots,
    set_slots_active,
    update_slot,
)
from apps.slots.models import ExamSlot, sunday_weekday


def next_weekday(weekday, after=7):
    """First date at least `after` days out whose Sunday-based weekday is `weekday`."""
    day = future_date(after)
    return day + timedelta(days=(weekday - sunday_weekday(day)) % 7)


@pytest.mark.django_db
class TestCreateSlot:

    def test_window_slot(self, exam_day):
        [slot] = create_slot(
            exam_day, '09:00', 'Hall A', 1, 20,
            end_time='12:00', allowed_durations=[120, 60, 60],
        )
        assert slot.end_time == time(12, 0)
        assert slot.allowed_durations == [60, 120]
        assert slot.duration_minutes == 180
        assert slot.is_active

    def test_legacy_slot(self, exam_day):
        [slot] = create_slot(exam_day, '14:00', 'Hall C', 1, 5, duration_minutes=90)
        assert slot.end_time is None
        assert slot.allowed_durations == []
        assert slot.duration_minutes == 90

    def test_repeat_until_creates_one_per_day(self, exam_day):
        slots = create_slot(
            exam_day, '09:00', 'Hall A', 1, 5, duration_minutes=60,
            repeat_until=future_date(9),
        )
        assert [s.date for s in slots] == [future_date(7), future_date(8), future_date(9)]

    @pytest.mark.parametrize('kwargs', [
        {'end_time': '09:00', 'allowed_durations': [60]},
        {'end_time': '08:00', 'allowed_durations': [60]},
        {'end_time': '10:00', 'allowed_durations': [90]},
        {'end_time': '10:00', 'allowed_durations': [0]},
        {'end_time': '10:00', 'allowed_durations': [True]},
        {'duration_minutes': None},
    ])
    def test_invalid_shapes(self, exam_day, kwargs):
        with pytest.raises(InvalidWindowError):
            create_slot(exam_day, '09:00', 'Hall A', 1, 5, **kwargs)
        assert not ExamSlot.objects.exists()

    def test_invalid_rows(self, exam_day):
        with pytest.raises(RowOutOfRangeError):
            create_slot(exam_day, '09:00', 'Hall A', 6, 5, duration_minutes=60)

    def test_invalid_time(self, exam_day):
        with pytest.raises(InvalidTimeFormatError):
            create_slot(exam_day, '9am', 'Hall A', 1, 5, duration_minutes=60)

    def test_repeat_before_start(self, exam_day):
        with pytest.raises(InvalidWindowError):
            create_slot(exam_day, '09:00', 'Hall A', 1, 5, duration_minutes=60,
                        repeat_until=future_date(6))


@pytest.mark.django_db
class TestBulkCreate:

    def test_day_exceptions_skip_weekdays(self):
        start = next_weekday(0)  # a Sunday
        windows = [
            TimeWindow('09:00', '12:00', [60, 120]),
            TimeWindow('14:00', '17:00', [60, 90, 120]),
        ]
        slots = bulk_create_slots(
            [DateRange(start, start + timedelta(days=6))],
            windows, 'Hall A', 1, 20, day_exceptions=[5, 6],
        )

        assert len(slots) == 10
        assert all(sunday_weekday(s.date) not in (5, 6) for s in slots)
        morning = [s for s in slots if s.start_time == time(9, 0)]
        assert len(morning) == 5
        assert all(s.day_exceptions == [5, 6] for s in slots)

    def test_multiple_ranges(self, exam_day):
        slots = bulk_create_slots(
            [DateRange(exam_day, exam_day), DateRange(future_date(10), future_date(11))],
            [TimeWindow('10:00', '11:00', [60])], 'Hall B', 1, 3,
        )
        assert sorted(s.date for s in slots) == [exam_day, future_date(10), future_date(11)]

    def test_one_bad_window_rejects_the_batch(self, exam_day):
        with pytest.raises(InvalidWindowError):
            bulk_create_slots(
                [DateRange(exam_day, future_date(9))],
                [TimeWindow('09:00', '12:00', [60]), TimeWindow('14:00', '13:00', [60])],
                'Hall A', 1, 20,
            )
        assert not ExamSlot.objects.exists()

    def test_requires_ranges_and_windows(self, exam_day):
        with pytest.raises(InvalidWindowError):
            bulk_create_slots([], [TimeWindow('09:00', '10:00', [60])], 'Hall A', 1, 2)

    def test_bad_day_exception(self, exam_day):
        with pytest.raises(InvalidWindowError):
            bulk_create_slots(
                [DateRange(exam_day, exam_day)], [TimeWindow('09:00', '10:00', [60])],
                'Hall A', 1, 2, day_exceptions=[7],
            )


@pytest.mark.django_db
class TestUpdateSlot:

    def test_edit_window(self, exam_slot_factory):
        slot = exam_slot_factory()
        updated = update_slot(slot.id, end_time='13:00', allowed_durations=[60, 240])
        assert updated.end_time == time(13, 0)
        assert updated.allowed_durations == [60, 240]
        assert updated.duration_minutes == 240
        assert updated.was_modified

    def test_rejects_invalid_result(self, exam_slot_factory):
        slot = exam_slot_factory()
        with pytest.raises(InvalidWindowError):
            update_slot(slot.id, end_time='10:00')
        slot.refresh_from_db()
        assert slot.end_time == time(12, 0)

    def test_rejects_unknown_fields(self, exam_slot_factory):
        with pytest.raises(ValueError):
            update_slot(exam_slot_factory().id, day_exceptions=[1])

    def test_edit_keeps_existing_bookings_valid(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory()
        booking_factory(exam_slot=slot, booking_start_time=time(9, 0), selected_rows=[1])
        booking_factory(exam_slot=slot, booking_start_time=time(10, 0), selected_rows=[1])
        updated = update_slot(slot.id, end_time='11:00', row_end=4, allowed_durations=[60])
        assert updated.duration_minutes == 120

    def test_legacy_conversion_cannot_merge_bookings(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory()
        booking_factory(exam_slot=slot, booking_start_time=time(9, 0), selected_rows=[1])
        booking_factory(exam_slot=slot, booking_start_time=time(10, 0), selected_rows=[1])

        with pytest.raises(RowTimeConflictError) as exc_info:
            update_slot(slot.id, end_time=None, duration_minutes=60)

        assert exc_info.value.rows == [1]
        slot.refresh_from_db()
        assert slot.end_time == time(12, 0)

    def test_emptying_durations_cannot_merge_bookings(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory()
        booking_factory(exam_slot=slot, booking_start_time=time(9, 0), selected_rows=[2])
        booking_factory(exam_slot=slot, booking_start_time=time(11, 0), selected_rows=[2])
        with pytest.raises(RowTimeConflictError):
            update_slot(slot.id, allowed_durations=[])

    def test_window_cannot_shrink_past_a_booking(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory()
        booking_factory(exam_slot=slot, booking_start_time=time(11, 0), selected_rows=[1])
        with pytest.raises(InvalidWindowError):
            update_slot(slot.id, end_time='11:30', allowed_durations=[60])
        slot.refresh_from_db()
        assert slot.end_time == time(12, 0)

    def test_rows_cannot_shrink_past_a_booking(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory()
        booking_factory(exam_slot=slot, selected_rows=[8])
        with pytest.raises(InvalidWindowError):
            update_slot(slot.id, row_end=5)

    def test_cancelled_bookings_do_not_block_edits(self, exam_slot_factory, cancelled_booking_factory):
        slot = exam_slot_factory()
        cancelled_booking_factory(exam_slot=slot, selected_rows=[8])
        assert update_slot(slot.id, row_end=5).row_end == 5

    def test_missing_slot(self, db):
        with pytest.raises(SlotNotFoundError):
            update_slot('not-a-uuid', location_name='Hall Z')

    def test_set_active(self, exam_slot_factory):
        first, second = exam_slot_factory(), exam_slot_factory()
        assert set_slots_active([first.id, str(second.id), 'junk'], False) == 2
        assert not ExamSlot.objects.filter(is_active=True).exists()


@pytest.mark.django_db
class TestDeleteSlot:

    def test_cascade_cancels_and_tombstones(self, exam_slot_factory, booking_factory,
                                            cancelled_booking_factory):
        slot = exam_slot_factory(location_name='Hall 9')
        live = [booking_factory(exam_slot=slot), booking_factory(exam_slot=slot, selected_rows=[2])]
        old = cancelled_booking_factory(exam_slot=slot)

        result = delete_slot(slot.id)

        assert {b.id for b in result.cancelled} == {b.id for b in live}
        assert not ExamSlot.objects.filter(id=slot.id).exists()
        for booking in Booking.objects.all():
            assert booking.status == BookingStatus.CANCELLED
            assert booking.exam_slot_id is None
            assert booking.preserved_slot_date == slot.date
            assert booking.preserved_location_name == 'Hall 9'
            assert booking.effective_location_name == 'Hall 9'
        assert BookingStatusLog.objects.filter(changed_by='system').count() == 2
        assert not BookingStatusLog.objects.filter(booking=old).exists()
        assert available_slots(slot.date) == []

    def test_cascade_is_all_or_nothing(self, exam_slot_factory, booking_factory, monkeypatch):
        slot = exam_slot_factory()
        bookings = [booking_factory(exam_slot=slot), booking_factory(exam_slot=slot, selected_rows=[2])]
        detach = Booking.detach_from_slot
        detached = []

        def fail_on_second(booking):
            detached.append(booking.id)
            if len(detached) == 2:
                raise RuntimeError('database went away')
            detach(booking)

        monkeypatch.setattr(Booking, 'detach_from_slot', fail_on_second)
        with pytest.raises(RuntimeError):
            delete_slot(slot.id)

        assert ExamSlot.objects.filter(id=slot.id).exists()
        for booking in bookings:
            booking.refresh_from_db()
            assert booking.status == BookingStatus.CONFIRMED
            assert booking.exam_slot_id == slot.id
            assert booking.preserved_slot_date is None
        assert not BookingStatusLog.objects.exists()

    def test_missing_slot(self, db):
        with pytest.raises(SlotNotFoundError):
            delete_slot('00000000-0000-0000-0000-000000000000')

    def test_bulk_delete_skips_missing(self, exam_slot_factory, booking_factory):
        slot = exam_slot_factory()
        booking_factory(exam_slot=slot)
        results = delete_slots([slot.id, '00000000-0000-0000-0000-000000000000', 'junk'])
        assert [r.slot_id for r in results] == [slot.id]
        assert results[0].cancelled_count == 1
