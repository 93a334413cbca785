"""
management command: send_reminders

Emails every CONFIRMED booking whose exam slot is tomorrow (local date).

Run via OS cron once a day:
  0 9 * * *  /path/to/venv/bin/python manage.py send_reminders

Use --dry-run to list the bookings without sending anything.
"""
from datetime import timedelta
from django.core.management.base import BaseCommand
from django.utils import timezone
from apps.bookings.models import Booking, BookingStatus
from apps.notifications.emails import send_booking_reminder


class Command(BaseCommand):
    help = "Send reminder emails for tomorrow's confirmed exam bookings"

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run', action='store_true',
            help='Only report which bookings would be reminded',
        )

    def handle(self, *args, **options):
        tomorrow = timezone.localdate() + timedelta(days=1)
        bookings = (
            Booking.objects
            .filter(status=BookingStatus.CONFIRMED, exam_slot__date=tomorrow)
            .select_related('exam_slot')
            .order_by('exam_slot__start_time', 'booking_start_time')
        )

        if options['dry_run']:
            for booking in bookings:
                self.stdout.write(f'  {booking.booking_reference}  {booking.email}')
            self.stdout.write(f'send_reminders: {len(bookings)} bookings due on {tomorrow}')
            return

        sent = failed = 0
        for booking in bookings:
            if send_booking_reminder(booking):
                sent += 1
            else:
                failed += 1

        style = self.style.SUCCESS if not failed else self.style.WARNING
        self.stdout.write(style(
            f'send_reminders: sent {sent}, failed {failed} for {tomorrow}'
        ))
