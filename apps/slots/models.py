"""
ExamSlot — a bookable block of rows at a named location on one date.

Two shapes share this table:
  - legacy slot : end_time is NULL, one fixed start time and duration
  - window slot : end_time set, bookers choose a start and one of allowed_durations
See apps.slots.shapes for the explicit tagged variant used by the engine.
"""
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from apps.core.models import BaseModel


# 0 = Sunday … 6 = Saturday, matching the admin UI's weekday numbering.
DAY_EXCEPTION_CHOICES = [
    (0, 'Sunday'), (1, 'Monday'), (2, 'Tuesday'), (3, 'Wednesday'),
    (4, 'Thursday'), (5, 'Friday'), (6, 'Saturday'),
]


def sunday_weekday(day) -> int:
    """Weekday index with 0 = Sunday (Python's date.weekday() has 0 = Monday)."""
    return (day.weekday() + 1) % 7


class ExamSlot(BaseModel):
    date = models.DateField(db_index=True)
    start_time = models.TimeField()
    end_time = models.TimeField(
        null=True, blank=True,
        help_text='Set for time-window slots; empty for legacy fixed slots.',
    )
    allowed_durations = models.JSONField(
        default=list, blank=True,
        help_text='Durations in minutes bookers may choose (window slots only).',
    )
    duration_minutes = models.PositiveIntegerField(
        null=True, blank=True,
        help_text='Fixed duration for legacy slots; full window length for window slots.',
    )

    location_name = models.CharField(max_length=200)
    row_start = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    row_end = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    default_seats_per_row = models.PositiveIntegerField(null=True, blank=True)

    is_active = models.BooleanField(default=True, db_index=True)
    day_exceptions = models.JSONField(
        null=True, blank=True,
        help_text='Weekdays (0=Sunday … 6=Saturday) skipped at bulk creation.',
    )

    class Meta:
        verbose_name = 'Exam Slot'
        verbose_name_plural = 'Exam Slots'
        ordering = ['date', 'start_time']
        constraints = [
            models.CheckConstraint(
                condition=Q(row_start__lte=F('row_end')),
                name='ck_exam_slot_row_range',
            ),
        ]

    def __str__(self):
        window = self.start_time.strftime('%H:%M')
        if self.end_time:
            window += f"–{self.end_time.strftime('%H:%M')}"
        return f"{self.location_name} | {self.date} {window}"

    @property
    def total_rows(self) -> int:
        return self.row_end - self.row_start + 1

    def is_excepted(self) -> bool:
        """True if this slot's own date falls on one of its excepted weekdays."""
        exceptions = self.day_exceptions
        if not isinstance(exceptions, list) or not exceptions:
            return False
        return sunday_weekday(self.date) in exceptions
