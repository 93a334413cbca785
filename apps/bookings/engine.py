"""
Booking engine — booking lifecycle, no HTTP/request awareness.

Every write locks the target ExamSlot row (SELECT ... FOR UPDATE) inside
one transaction and re-reads the slot's CONFIRMED bookings after the lock,
so two conflicting bookings can never both commit.

Public API:
  create_booking(slot_id, start, duration, rows, contact)
  reschedule_booking(booking_id, slot_id=None, start=None, duration=None, rows=None, contact=None)
  cancel_booking(booking_id, changed_by='user', reason='')
  update_contact(booking_id, contact)
  get_booking_by_token(token)
  find_bookings(reference, email)
  purge_bookings(booking_ids)
"""
import logging
import re
import secrets
import string
from dataclasses import dataclass, fields
from typing import Iterable, List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from apps.core.models import valid_uuids
from apps.slots.intervals import minutes_to_time, to_minutes
from apps.slots.models import ExamSlot
from apps.slots.shapes import SlotShape, shape_of

from .conflicts import Candidate, booked_intervals, check_booking
from .exceptions import (
    BookingCancelledError,
    BookingEngineError,
    BookingNotFoundError,
    DurationNotAllowedError,
    ReferenceGenerationExhaustedError,
    RowOutOfRangeError,
    SlotNotFoundError,
)
from .models import Booking, BookingStatus, BookingStatusLog

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class Contact:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    def changes(self) -> dict:
        """Only the fields that were actually supplied."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}


# ── Identifiers ───────────────────────────────────────────────────────────────

def generate_booking_reference() -> str:
    length = settings.EXAM_BOOKING.get('REFERENCE_LENGTH', 12)
    return ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))


def generate_manage_token() -> str:
    return secrets.token_hex(32)


def _reference_taken(reference: str) -> bool:
    return Booking.objects.filter(booking_reference=reference).exists()


def _insert_with_unique_reference(**fields) -> Booking:
    """
    Insert a booking under a freshly minted reference. A concurrent insert
    that claims the same reference first is caught in a savepoint and
    retried within the same attempt budget.
    """
    attempts = settings.EXAM_BOOKING.get('REFERENCE_MAX_ATTEMPTS', 10)
    for _ in range(attempts):
        reference = generate_booking_reference()
        if _reference_taken(reference):
            continue
        try:
            with transaction.atomic():
                return Booking.objects.create(
                    booking_reference=reference, manage_token=generate_manage_token(), **fields
                )
        except IntegrityError:
            logger.warning('Booking reference %s was claimed concurrently; retrying', reference)
    logger.error('Could not mint a unique booking reference after %d attempts', attempts)
    raise ReferenceGenerationExhaustedError(
        'Could not generate a unique booking reference. Please try again.'
    )


# ── Helpers ───────────────────────────────────────────────────────────────────

def _as_minutes(value) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return to_minutes(value)


def _lock_slot(slot_id) -> ExamSlot:
    try:
        return ExamSlot.objects.select_for_update().get(id=slot_id)
    except (ExamSlot.DoesNotExist, ValidationError, ValueError):
        raise SlotNotFoundError('Exam slot not found.')


def _lock_slots(slot_ids: Iterable) -> dict:
    """Lock several slots in a stable order so concurrent writers cannot deadlock."""
    locked = {}
    for slot_id in sorted({sid for sid in slot_ids if sid is not None}, key=str):
        locked[slot_id] = _lock_slot(slot_id)
    return locked


def _get_booking(booking_id, for_update=False) -> Booking:
    qs = Booking.objects.select_for_update() if for_update else Booking.objects
    try:
        return qs.get(id=booking_id)
    except (Booking.DoesNotExist, ValidationError, ValueError):
        raise BookingNotFoundError('Booking not found.')


def _resolve_time(shape: SlotShape, start, duration,
                  fallback_start=None, fallback_duration=None) -> tuple:
    """
    Effective (start, duration) in minutes for a booking on `shape`.
    Legacy slots default to the slot's own time; window slots fall back to
    the booking's previous values when rescheduling.
    """
    if shape.is_legacy:
        start_min = _as_minutes(start) if start is not None else shape.start
        return start_min, duration if duration is not None else shape.duration

    if start is None:
        start = fallback_start if fallback_start is not None else shape.start
    if duration is None:
        duration = fallback_duration
    if duration is None:
        raise DurationNotAllowedError(
            'Please choose a booking duration for this slot.',
            allowed=shape.allowed_durations,
        )
    return _as_minutes(start), duration


def _candidate(start: int, duration: int, rows) -> Candidate:
    rows = frozenset(rows or ())
    if not rows:
        raise RowOutOfRangeError('Please select at least one row.')
    return Candidate(start=start, duration=duration, rows=rows)


def _check(slot: ExamSlot, shape: SlotShape, candidate: Candidate, exclude_booking_id=None):
    existing = booked_intervals(
        shape, slot.bookings.filter(status=BookingStatus.CONFIRMED)
    )
    try:
        check_booking(shape, candidate, existing, exclude_booking_id=exclude_booking_id)
    except BookingEngineError as exc:
        logger.info('Booking rejected on slot %s [%s]: %s', slot.id, exc.code, exc)
        raise


# ── Create ────────────────────────────────────────────────────────────────────

@transaction.atomic
def create_booking(slot_id, start, duration, rows, contact: Contact) -> Booking:
    """
    Create a CONFIRMED booking after a conflict check under the slot lock.

    Raises:
      SlotNotFoundError, SlotInactiveError, OutOfWindowError,
      DurationNotAllowedError, RowOutOfRangeError, RowTimeConflictError,
      ReferenceGenerationExhaustedError
    """
    slot = _lock_slot(slot_id)
    shape = shape_of(slot)
    start_min, duration = _resolve_time(shape, start, duration)
    candidate = _candidate(start_min, duration, rows)

    _check(slot, shape, candidate)

    booking = _insert_with_unique_reference(
        exam_slot=slot,
        booking_start_time=minutes_to_time(candidate.start),
        booking_duration_minutes=candidate.duration,
        selected_rows=sorted(candidate.rows),
        first_name=contact.first_name or '',
        last_name=contact.last_name or '',
        email=contact.email or '',
        phone=contact.phone or '',
        status=BookingStatus.CONFIRMED,
    )
    BookingStatusLog.objects.create(
        booking=booking,
        from_status='',
        to_status=BookingStatus.CONFIRMED,
        changed_by='user',
        reason='Booking created',
    )
    logger.info(
        'Booking %s created on slot %s (%s, %d min, rows %s)',
        booking.booking_reference, slot.id, booking.booking_start_time,
        candidate.duration, booking.selected_rows,
    )
    return booking


# ── Reschedule ────────────────────────────────────────────────────────────────

@transaction.atomic
def reschedule_booking(booking_id, slot_id=None, start=None, duration=None, rows=None,
                       contact: Optional[Contact] = None, changed_by: str = 'user') -> Booking:
    """
    Move a booking to new time/rows/slot, re-running the conflict check
    against the target slot with this booking excluded. Omitted fields keep
    their current values.

    Raises BookingCancelledError for CANCELLED bookings; otherwise the same
    errors as create_booking.
    """
    current = _get_booking(booking_id)
    if current.status == BookingStatus.CANCELLED:
        raise BookingCancelledError('A cancelled booking cannot be rescheduled.')
    target_id = slot_id or current.exam_slot_id
    if target_id is None:
        raise SlotNotFoundError('This booking no longer has an exam slot; choose a new one.')

    # Slots first, then the booking, matching the lock order of slot deletion.
    locked = _lock_slots([current.exam_slot_id, target_id])
    slot = locked[target_id]
    booking = _get_booking(booking_id, for_update=True)

    if booking.status == BookingStatus.CANCELLED:
        raise BookingCancelledError('A cancelled booking cannot be rescheduled.')

    shape = shape_of(slot)
    fallback_start = booking.booking_start_time
    fallback_duration = booking.booking_duration_minutes
    start_min, duration = _resolve_time(shape, start, duration, fallback_start, fallback_duration)
    candidate = _candidate(start_min, duration, rows if rows is not None else booking.rows)

    _check(slot, shape, candidate, exclude_booking_id=booking.id)

    previous_slot = booking.exam_slot_id
    booking.exam_slot = slot
    booking.booking_start_time = minutes_to_time(candidate.start)
    booking.booking_duration_minutes = candidate.duration
    booking.selected_rows = sorted(candidate.rows)
    for name, value in (contact.changes() if contact else {}).items():
        setattr(booking, name, value)
    booking.save()

    logger.info(
        'Booking %s rescheduled by %s: slot %s -> %s (%s, %d min, rows %s)',
        booking.booking_reference, changed_by, previous_slot, slot.id,
        booking.booking_start_time, candidate.duration, booking.selected_rows,
    )
    return booking


# ── Cancel / contact ──────────────────────────────────────────────────────────

@transaction.atomic
def cancel_booking(booking_id, changed_by: str = 'user', reason: str = '') -> Booking:
    """Cancel a CONFIRMED booking. Raises AlreadyCancelledError if it is not."""
    booking = _get_booking(booking_id, for_update=True)
    booking.cancel(changed_by=changed_by, reason=reason)
    logger.info('Booking %s cancelled by %s', booking.booking_reference, changed_by)
    return booking


@transaction.atomic
def update_contact(booking_id, contact: Contact) -> Booking:
    """Update contact fields only. Contact data never takes part in conflicts."""
    booking = _get_booking(booking_id, for_update=True)
    if booking.status == BookingStatus.CANCELLED:
        raise BookingCancelledError('A cancelled booking cannot be edited.')
    changes = contact.changes()
    if changes:
        for name, value in changes.items():
            setattr(booking, name, value)
        booking.save(update_fields=list(changes))
    return booking


# ── Lookup ────────────────────────────────────────────────────────────────────

def get_booking_by_token(token: str) -> Booking:
    try:
        return Booking.objects.select_related('exam_slot').get(manage_token=token)
    except Booking.DoesNotExist:
        raise BookingNotFoundError('Booking not found.')


def normalize_reference(reference: str) -> str:
    return re.sub(r'[^A-Z0-9]', '', (reference or '').upper())


def normalize_email(email: str) -> str:
    return re.sub(r'\s+', '', (email or '').lower())


def find_bookings(reference: str, email: str) -> List[Booking]:
    """Self-service lookup by booking reference + email (case/space-insensitive)."""
    reference, email = normalize_reference(reference), normalize_email(email)
    if not reference or not email:
        return []
    return list(
        Booking.objects
        .select_related('exam_slot')
        .filter(booking_reference=reference, email__iexact=email)
        .order_by('-created_at')
    )


# ── Admin purge ───────────────────────────────────────────────────────────────

@transaction.atomic
def purge_bookings(booking_ids: Iterable) -> List[Booking]:
    """
    Permanently delete bookings (admin only). Returns the deleted records,
    still readable in memory, so callers can notify after commit.
    """
    bookings = list(
        Booking.objects.select_related('exam_slot').filter(id__in=valid_uuids(booking_ids))
    )
    if bookings:
        Booking.objects.filter(id__in=[b.id for b in bookings]).delete()
        logger.info('Purged %d bookings', len(bookings))
    return bookings
