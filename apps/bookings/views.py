"""
Public booking API — JSON endpoints behind the candidate booking flow.

Read endpoints feed the date, duration, slot and start-time pickers.
Write endpoints go through the booking engine; emails are queued with
transaction.on_commit so they only describe committed state.
"""
import logging

from django.db import transaction
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.core.http import (
    InvalidJSONBody,
    bad_request,
    error_response,
    form_error_response,
    json_body,
)
from apps.notifications.emails import (
    send_booking_cancelled,
    send_booking_confirmed,
    send_booking_updated,
)
from apps.slots.models import ExamSlot

from .availability import available_dates, available_durations, available_slots, available_start_times
from .engine import (
    cancel_booking,
    create_booking,
    find_bookings,
    get_booking_by_token,
    reschedule_booking,
    update_contact,
)
from .exceptions import BookingEngineError, SlotNotFoundError
from .forms import (
    AvailabilityQueryForm,
    BookingForm,
    DateRangeQueryForm,
    RescheduleForm,
    SearchForm,
    StartTimesQueryForm,
)
from .serializers import booking_payload

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Availability
# ─────────────────────────────────────────────────────────────────────────────

@require_GET
def api_dates(request):
    """
    GET /bookings/api/dates/?from=YYYY-MM-DD&to=YYYY-MM-DD
    Dates with at least one bookable slot.
    """
    form = DateRangeQueryForm({'from_date': request.GET.get('from'), 'to_date': request.GET.get('to')})
    if not form.is_valid():
        return form_error_response(form)
    dates = available_dates(form.cleaned_data['from_date'], form.cleaned_data['to_date'])
    return JsonResponse({'dates': [d.isoformat() for d in dates]})


@require_GET
def api_durations(request):
    """GET /bookings/api/durations/?date=YYYY-MM-DD"""
    form = AvailabilityQueryForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)
    day = form.cleaned_data['date']
    return JsonResponse({'date': day.isoformat(), 'durations': available_durations(day)})


@require_GET
def api_slots(request):
    """
    GET /bookings/api/slots/?date=YYYY-MM-DD&duration=90&exclude_booking_id=<uuid>
    Per-slot availability for one date.
    """
    form = AvailabilityQueryForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)
    data = form.cleaned_data
    slots = available_slots(data['date'], data['duration'], data['exclude_booking_id'])
    return JsonResponse({
        'date': data['date'].isoformat(),
        'slots': [s.as_dict() for s in slots],
    })


@require_GET
def api_start_times(request):
    """
    GET /bookings/api/start-times/?slot_id=<uuid>&duration=90&rows=3,4
    Candidate start times for a duration; with rows, conflicting starts are flagged.
    """
    form = StartTimesQueryForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)
    data = form.cleaned_data

    try:
        slot = ExamSlot.objects.get(id=data['slot_id'], is_active=True)
    except ExamSlot.DoesNotExist:
        return error_response(SlotNotFoundError('Exam slot not found.'))

    try:
        start_times = available_start_times(
            slot, data['duration'], data['rows'], data['exclude_booking_id'],
        )
    except BookingEngineError as exc:
        return error_response(exc)
    return JsonResponse({'slot_id': str(slot.id), 'start_times': start_times})


# ─────────────────────────────────────────────────────────────────────────────
# Create
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
def create(request):
    """POST /bookings/create/. Returns the booking with its manage link."""
    try:
        form = BookingForm(json_body(request))
    except InvalidJSONBody as exc:
        return bad_request(str(exc))
    if not form.is_valid():
        return form_error_response(form)

    data = form.cleaned_data
    try:
        booking = create_booking(
            slot_id=data['exam_slot_id'],
            start=data['start_time'],
            duration=data['duration_minutes'],
            rows=data['selected_rows'],
            contact=form.contact(),
        )
    except BookingEngineError as exc:
        return error_response(exc)

    transaction.on_commit(lambda: send_booking_confirmed(booking))
    return JsonResponse({'booking': booking_payload(booking, include_manage_url=True)}, status=201)


# ─────────────────────────────────────────────────────────────────────────────
# Self-service lookup
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
def search(request):
    """POST /bookings/search/ {booking_reference, email}"""
    try:
        form = SearchForm(json_body(request))
    except InvalidJSONBody as exc:
        return bad_request(str(exc))
    if not form.is_valid():
        return form_error_response(form)

    bookings = find_bookings(form.cleaned_data['booking_reference'], form.cleaned_data['email'])
    return JsonResponse({
        'bookings': [booking_payload(b, include_manage_url=True) for b in bookings],
        'count': len(bookings),
    })


# ─────────────────────────────────────────────────────────────────────────────
# Manage by token (link from the confirmation email)
# ─────────────────────────────────────────────────────────────────────────────

@require_http_methods(['GET', 'PATCH', 'DELETE'])
def manage(request, token):
    """
    GET: booking details
    PATCH: reschedule (slot/start/duration/rows) and/or contact changes
    DELETE: cancel
    """
    try:
        booking = get_booking_by_token(token)
    except BookingEngineError as exc:
        return error_response(exc)

    if request.method == 'GET':
        return JsonResponse({'booking': booking_payload(booking, include_manage_url=True)})

    if request.method == 'DELETE':
        try:
            booking = cancel_booking(booking.id, changed_by='user', reason='Cancelled by candidate')
        except BookingEngineError as exc:
            return error_response(exc)
        transaction.on_commit(lambda: send_booking_cancelled(booking))
        return JsonResponse({'booking': booking_payload(booking)})

    try:
        form = RescheduleForm(json_body(request))
    except InvalidJSONBody as exc:
        return bad_request(str(exc))
    if not form.is_valid():
        return form_error_response(form)

    contact = form.contact()
    if not form.touches_schedule() and not contact.changes():
        return bad_request('Nothing to update.')

    try:
        if form.touches_schedule():
            booking = reschedule_booking(booking.id, contact=contact, changed_by='user', **form.schedule())
        else:
            booking = update_contact(booking.id, contact)
    except BookingEngineError as exc:
        return error_response(exc)

    transaction.on_commit(lambda: send_booking_updated(booking))
    return JsonResponse({'booking': booking_payload(booking, include_manage_url=True)})
