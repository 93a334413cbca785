"""
Exam Room Booking test configuration: pytest fixtures and factories.

This module provides:
- factory_boy factories for users, exam slots and bookings
- shared fixtures exposing those factories and a logged-in staff client

Factories write rows directly and skip the booking engine; tests that care
about conflict rules go through apps.bookings.engine instead.

RUNNING TESTS:
    pip install -e ".[test]"
    pytest
    pytest -m unit          # pure computation only
"""

import secrets
import uuid
from datetime import time, timedelta

import pytest
from django.utils import timezone

import factory
from factory.django import DjangoModelFactory


def future_date(days=7):
    """A date safely in the future so availability queries include it."""
    return timezone.localdate() + timedelta(days=days)


# ============================================================================
# USER FACTORIES
# ============================================================================

class UserFactory(DjangoModelFactory):
    class Meta:
        model = 'auth.User'
        django_get_or_create = ('username',)

    username = factory.LazyAttribute(lambda o: f"user_{uuid.uuid4().hex[:8]}")
    email = factory.LazyAttribute(lambda o: f"{o.username}@example.com")
    password = factory.django.Password('testpass123')
    is_active = True
    is_staff = False


class StaffUserFactory(UserFactory):
    is_staff = True


# ============================================================================
# SLOT FACTORIES
# ============================================================================

class ExamSlotFactory(DjangoModelFactory):
    """Time-window slot: 09:00–12:00, rows 1–10, 60/90/120 minute bookings."""

    class Meta:
        model = 'slots.ExamSlot'

    date = factory.LazyFunction(future_date)
    start_time = time(9, 0)
    end_time = time(12, 0)
    allowed_durations = factory.LazyFunction(lambda: [60, 90, 120])
    duration_minutes = 180
    location_name = factory.Sequence(lambda n: f"Hall {n}")
    row_start = 1
    row_end = 10
    default_seats_per_row = 20
    is_active = True
    day_exceptions = None


class LegacySlotFactory(ExamSlotFactory):
    """Fixed slot: starts 09:00, lasts 120 minutes, no end_time."""

    end_time = None
    allowed_durations = factory.LazyFunction(list)
    duration_minutes = 120


# ============================================================================
# BOOKING FACTORIES
# ============================================================================

class BookingFactory(DjangoModelFactory):
    class Meta:
        model = 'bookings.Booking'

    booking_reference = factory.Sequence(lambda n: f"TEST{n:08d}")
    exam_slot = factory.SubFactory(ExamSlotFactory)
    booking_start_time = time(9, 0)
    booking_duration_minutes = 60
    selected_rows = factory.LazyFunction(lambda: [1])
    first_name = factory.Faker('first_name')
    last_name = factory.Faker('last_name')
    email = factory.LazyAttribute(lambda o: f"{o.first_name.lower()}.{o.last_name.lower()}@example.com")
    phone = '+1 555 0100'
    status = 'CONFIRMED'
    manage_token = factory.LazyFunction(lambda: secrets.token_hex(32))


class CancelledBookingFactory(BookingFactory):
    status = 'CANCELLED'


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def user_factory(db):
    return UserFactory


@pytest.fixture
def staff_user_factory(db):
    return StaffUserFactory


@pytest.fixture
def exam_slot_factory(db):
    return ExamSlotFactory


@pytest.fixture
def legacy_slot_factory(db):
    return LegacySlotFactory


@pytest.fixture
def booking_factory(db):
    return BookingFactory


@pytest.fixture
def cancelled_booking_factory(db):
    return CancelledBookingFactory


@pytest.fixture
def exam_day():
    return future_date()


@pytest.fixture
def staff_client(client, staff_user_factory):
    """Django test client logged in as a staff user."""
    client.force_login(staff_user_factory(), backend='django.contrib.auth.backends.ModelBackend')
    return client
