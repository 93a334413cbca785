"""
Plain-dict renderings of bookings for JSON responses and email context.
"""
from django.conf import settings
from django.urls import reverse

from apps.slots.intervals import minutes_to_hhmm, to_minutes


def manage_url(booking) -> str:
    path = reverse('bookings:manage', kwargs={'token': booking.manage_token})
    return f"{settings.SITE_URL.rstrip('/')}{path}"


def _time_range(booking):
    start = booking.effective_start_time
    if start is None:
        return None, None
    start_min = to_minutes(start)
    duration = booking.effective_duration_minutes
    end = minutes_to_hhmm(start_min + duration) if duration else None
    return minutes_to_hhmm(start_min), end


def booking_payload(booking, include_manage_url=False) -> dict:
    start, end = _time_range(booking)
    day = booking.effective_date
    data = {
        'id': str(booking.id),
        'booking_reference': booking.booking_reference,
        'status': booking.status,
        'exam_slot_id': str(booking.exam_slot_id) if booking.exam_slot_id else None,
        'date': day.isoformat() if day else None,
        'location_name': booking.effective_location_name,
        'start_time': start,
        'end_time': end,
        'duration_minutes': booking.effective_duration_minutes,
        'selected_rows': booking.rows,
        'first_name': booking.first_name,
        'last_name': booking.last_name,
        'email': booking.email,
        'phone': booking.phone,
        'created_at': booking.created_at.isoformat(),
        'updated_at': booking.updated_at.isoformat(),
        'was_modified': booking.was_modified,
    }
    if include_manage_url:
        data['manage_url'] = manage_url(booking)
    return data


def status_log_payload(log) -> dict:
    return {
        'from_status': log.from_status,
        'to_status': log.to_status,
        'changed_by': log.changed_by,
        'reason': log.reason,
        'changed_at': log.changed_at.isoformat(),
    }
