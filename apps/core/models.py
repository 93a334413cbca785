"""
Core base model mixins.
Slot and booking models inherit from these.
"""
import uuid
from django.db import models
from django.utils import timezone


class UUIDModel(models.Model):
    """Primary key is a UUID, not an auto-incrementing integer."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class TimestampedModel(models.Model):
    """
    Tracks creation and last-update timestamps.

    On insert both timestamps are identical; every later save bumps
    updated_at. A record whose updated_at differs from created_at has
    therefore been edited at least once.
    """
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self._state.adding:
            self.updated_at = self.created_at
        else:
            self.updated_at = timezone.now()
            update_fields = kwargs.get('update_fields')
            if update_fields is not None and 'updated_at' not in update_fields:
                kwargs['update_fields'] = list(update_fields) + ['updated_at']
        super().save(*args, **kwargs)

    @property
    def was_modified(self):
        return self.updated_at != self.created_at


class BaseModel(UUIDModel, TimestampedModel):
    """UUID pk + timestamps. Use this for all main business models."""
    class Meta:
        abstract = True


def valid_uuids(values) -> list:
    """Keep only the values that parse as UUIDs (bulk admin actions accept loose input)."""
    valid = []
    for value in values:
        try:
            valid.append(uuid.UUID(str(value)))
        except ValueError:
            continue
    return valid
