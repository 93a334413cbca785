"""
Bookings app models:
  - Booking          : a claim on rows within a time range of one ExamSlot
  - BookingStatusLog : full audit trail of state transitions
"""
import json
import logging

from django.db import models
from django.core.validators import MinValueValidator

from apps.core.models import BaseModel, UUIDModel
from apps.slots.models import ExamSlot

from .exceptions import AlreadyCancelledError

logger = logging.getLogger(__name__)


def parse_rows(raw) -> frozenset:
    """
    Coerce a stored selected_rows value into a set of ints.

    Older records may hold a JSON string or junk; those contribute no rows
    rather than making the whole slot unbookable.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning('Ignoring unreadable selected_rows value %r', raw)
            return frozenset()
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset()
    return frozenset(r for r in raw if isinstance(r, int) and not isinstance(r, bool))


# ── Booking State Machine ─────────────────────────────────────────────────────

class BookingStatus(models.TextChoices):
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    CANCELLED = 'CANCELLED', 'Cancelled'


class Booking(BaseModel):
    """
    Core booking record. Created CONFIRMED by the engine after a conflict check.

    CONFIRMED → CANCELLED is the only transition and is one-way.

    When the owning slot is deleted, exam_slot becomes NULL and the slot's
    date/location are snapshotted into the preserved_* tombstone fields so the
    booking stays displayable. Tombstone fields are never used for conflicts.
    """
    booking_reference = models.CharField(max_length=12, unique=True, db_index=True)
    exam_slot = models.ForeignKey(
        ExamSlot, on_delete=models.SET_NULL, null=True, blank=True, related_name='bookings',
    )
    preserved_slot_date = models.DateField(null=True, blank=True)
    preserved_location_name = models.CharField(max_length=200, blank=True)

    booking_start_time = models.TimeField(null=True, blank=True)
    booking_duration_minutes = models.PositiveIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1)],
    )
    selected_rows = models.JSONField(default=list)

    first_name = models.CharField(max_length=120)
    last_name = models.CharField(max_length=120)
    email = models.EmailField(db_index=True)
    phone = models.CharField(max_length=30)

    status = models.CharField(
        max_length=20, choices=BookingStatus.choices,
        default=BookingStatus.CONFIRMED, db_index=True,
    )

    # Bearer credential for self-service manage links (emailed, no login)
    manage_token = models.CharField(max_length=64, unique=True, editable=False)

    class Meta:
        verbose_name = 'Booking'
        verbose_name_plural = 'Bookings'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['exam_slot', 'status'], name='ix_booking_slot_status'),
        ]

    def __str__(self):
        return f"#{self.booking_reference} | {self.full_name} | {self.effective_date}"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def rows(self) -> list:
        return sorted(parse_rows(self.selected_rows))

    @property
    def is_confirmed(self):
        return self.status == BookingStatus.CONFIRMED

    # ── Display fields (live slot, or tombstone once detached) ────────────────

    @property
    def effective_date(self):
        if self.exam_slot is not None:
            return self.exam_slot.date
        return self.preserved_slot_date

    @property
    def effective_location_name(self):
        if self.exam_slot is not None:
            return self.exam_slot.location_name
        return self.preserved_location_name

    @property
    def effective_start_time(self):
        if self.booking_start_time is not None:
            return self.booking_start_time
        if self.exam_slot is not None:
            return self.exam_slot.start_time
        return None

    @property
    def effective_duration_minutes(self):
        if self.booking_duration_minutes:
            return self.booking_duration_minutes
        if self.exam_slot is not None:
            return self.exam_slot.duration_minutes
        return None

    # ── State transition helpers ──────────────────────────────────────────────

    def cancel(self, changed_by='user', reason=''):
        if self.status == BookingStatus.CANCELLED:
            raise AlreadyCancelledError(
                f"Booking {self.booking_reference} is already cancelled."
            )
        self._transition(BookingStatus.CANCELLED, changed_by, reason)
        self.save(update_fields=['status'])

    def detach_from_slot(self):
        """Snapshot slot date/location into tombstone fields and sever the FK."""
        slot = self.exam_slot
        if slot is None:
            return
        self.preserved_slot_date = slot.date
        self.preserved_location_name = slot.location_name
        self.exam_slot = None
        self.save(update_fields=['preserved_slot_date', 'preserved_location_name', 'exam_slot'])

    def _transition(self, new_status, changed_by, reason=''):
        old_status = self.status
        self.status = new_status
        BookingStatusLog.objects.create(
            booking=self,
            from_status=old_status,
            to_status=new_status,
            changed_by=changed_by,
            reason=reason,
        )


# ── Booking Audit Log ─────────────────────────────────────────────────────────

class BookingStatusLog(UUIDModel):
    """Immutable audit trail of every status transition on a booking."""
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='status_logs')
    from_status = models.CharField(max_length=20, choices=BookingStatus.choices, blank=True)
    to_status = models.CharField(max_length=20, choices=BookingStatus.choices)
    changed_by = models.CharField(max_length=80, help_text='user / admin / system')
    reason = models.TextField(blank=True)
    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Booking Status Log'
        verbose_name_plural = 'Booking Status Logs'
        ordering = ['changed_at']

    def __str__(self):
        return f"Booking {str(self.booking_id)[:8]}: {self.from_status or '—'} → {self.to_status}"
