"""
Management commands: send_reminders and seed_data.
"""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from apps.bookings.models import Booking
from apps.slots.models import ExamSlot, sunday_weekday


def run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestSendReminders:

    @pytest.fixture
    def tomorrow(self):
        return timezone.localdate() + timedelta(days=1)

    def test_sends_for_tomorrow_only(self, tomorrow, exam_slot_factory, booking_factory,
                                     cancelled_booking_factory, mailoutbox):
        slot = exam_slot_factory(date=tomorrow)
        due = booking_factory(exam_slot=slot)
        cancelled_booking_factory(exam_slot=slot)
        booking_factory()

        output = run('send_reminders')

        assert 'sent 1, failed 0' in output
        assert [m.to for m in mailoutbox] == [[due.email]]
        assert mailoutbox[0].subject.startswith('Reminder:')

    def test_dry_run_sends_nothing(self, tomorrow, exam_slot_factory, booking_factory, mailoutbox):
        booking = booking_factory(exam_slot=exam_slot_factory(date=tomorrow))
        output = run('send_reminders', '--dry-run')
        assert booking.booking_reference in output
        assert '1 bookings due' in output
        assert mailoutbox == []


@pytest.mark.django_db
class TestSeedData:

    def test_seeds_all_halls(self):
        output = run('seed_data', '--days', '7')
        assert 'Seed complete!' in output

        hall_a = ExamSlot.objects.filter(location_name='Hall A')
        hall_b = ExamSlot.objects.filter(location_name='Hall B')
        hall_c = ExamSlot.objects.filter(location_name='Hall C')
        assert hall_a.count() == 14
        assert hall_b.count() == 6
        assert all(sunday_weekday(slot.date) != 5 for slot in hall_b)
        assert hall_c.count() == 7
        assert all(slot.end_time is None for slot in hall_c)

    def test_flush_replaces_existing_data(self, booking_factory):
        booking_factory()
        run('seed_data', '--days', '1', '--flush')
        assert not Booking.objects.exists()
        assert ExamSlot.objects.filter(location_name__in=['Hall A', 'Hall C']).count() == 3
        assert not ExamSlot.objects.exclude(location_name__in=['Hall A', 'Hall B', 'Hall C']).exists()
