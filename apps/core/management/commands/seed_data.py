"""
Seed management command.

Populates the database with demo exam slots starting a week from today:
  - Hall A: two time-window slots per day (09:00–12:00, 14:00–17:00)
  - Hall B: one long time-window slot per day (10:00–16:00), Fridays off
  - Hall C: one fixed legacy slot per day (09:00, 120 min)

Usage:
    python manage.py seed_data
    python manage.py seed_data --days 14
    python manage.py seed_data --flush   # wipe slots and bookings first
"""
from datetime import timedelta
from django.core.management.base import BaseCommand
from django.utils import timezone
from apps.bookings.models import Booking
from apps.slots.lifecycle import DateRange, TimeWindow, bulk_create_slots, create_slot
from apps.slots.models import ExamSlot


class Command(BaseCommand):
    help = 'Seed demo exam slots (window and legacy)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--flush', action='store_true',
            help='Delete all existing slots and bookings before creating fresh records',
        )
        parser.add_argument(
            '--days', type=int, default=7,
            help='Number of consecutive days to seed (default 7)',
        )

    def handle(self, *args, **options):
        if options['flush']:
            self.stdout.write('Flushing existing data...')
            Booking.objects.all().delete()
            ExamSlot.objects.all().delete()

        start = timezone.localdate() + timedelta(days=7)
        days = DateRange(start, start + timedelta(days=max(options['days'], 1) - 1))

        # ── Hall A ────────────────────────────────────────────────────────────
        self.stdout.write('Seeding Hall A...')
        hall_a = bulk_create_slots(
            date_ranges=[days],
            time_windows=[
                TimeWindow('09:00', '12:00', [60, 120]),
                TimeWindow('14:00', '17:00', [60, 90, 120]),
            ],
            location_name='Hall A', row_start=1, row_end=20, default_seats_per_row=30,
        )
        self.stdout.write(self.style.SUCCESS(f'  ✔ {len(hall_a)} slots created'))

        # ── Hall B ────────────────────────────────────────────────────────────
        self.stdout.write('Seeding Hall B...')
        hall_b = bulk_create_slots(
            date_ranges=[days],
            time_windows=[TimeWindow('10:00', '16:00', [60, 120, 180])],
            location_name='Hall B', row_start=1, row_end=15, default_seats_per_row=25,
            day_exceptions=[5],   # Friday
        )
        self.stdout.write(self.style.SUCCESS(f'  ✔ {len(hall_b)} slots created'))

        # ── Hall C (legacy fixed slots) ───────────────────────────────────────
        self.stdout.write('Seeding Hall C...')
        hall_c = create_slot(
            date=days.start, start_time='09:00', location_name='Hall C',
            row_start=1, row_end=10, duration_minutes=120, repeat_until=days.end,
        )
        self.stdout.write(self.style.SUCCESS(f'  ✔ {len(hall_c)} slots created'))

        self.stdout.write(self.style.SUCCESS('\nSeed complete!'))
