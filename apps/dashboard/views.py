"""
Admin dashboard API — staff-only JSON views over slots and bookings.

All writes go through apps.slots.lifecycle and apps.bookings.engine; emails
to affected candidates are queued with transaction.on_commit.
"""
import logging
from datetime import timedelta

from django.contrib.auth import authenticate, login, logout
from django.db import transaction
from django.db.models import Count, F, Q
from django.db.models.functions import Coalesce, TruncDate
from django.http import JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_date
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.bookings.availability import slot_stats
from apps.bookings.engine import cancel_booking, purge_bookings, reschedule_booking, update_contact
from apps.bookings.exceptions import BookingEngineError, BookingNotFoundError, SlotNotFoundError
from apps.bookings.forms import RescheduleForm
from apps.bookings.models import Booking, BookingStatus
from apps.bookings.serializers import booking_payload, status_log_payload
from apps.core.http import InvalidJSONBody, bad_request, error_response, form_error_response, json_body
from apps.core.models import valid_uuids
from apps.notifications.emails import send_booking_cancelled, send_booking_updated
from apps.slots.lifecycle import (
    bulk_create_slots,
    create_slot,
    delete_slot,
    delete_slots,
    set_slots_active,
    update_slot,
)
from apps.slots.models import ExamSlot

from .decorators import dashboard_admin_required
from .forms import BulkIdsForm, BulkSlotActionForm, BulkSlotForm, ExamSlotForm, ExamSlotUpdateForm

logger = logging.getLogger(__name__)


def _notify_cancelled(bookings, reason=''):
    """Queue one cancellation email per booking for after commit."""
    bookings = list(bookings)
    if bookings:
        transaction.on_commit(lambda: [send_booking_cancelled(b, reason) for b in bookings])


def _date_filters(request, field):
    filters = {}
    d_from = parse_date(request.GET.get('date_from', '') or '')
    d_to = parse_date(request.GET.get('date_to', '') or '')
    if d_from:
        filters[f'{field}__gte'] = d_from
    if d_to:
        filters[f'{field}__lte'] = d_to
    return filters


# ─────────────────────────────────────────────────────────────────────────────
# Auth views
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
def dashboard_login(request):
    """POST {username, password}. Repeated failures are locked out by django-axes."""
    try:
        data = json_body(request)
    except InvalidJSONBody as exc:
        return bad_request(str(exc))

    username = str(data.get('username', '')).strip()
    password = str(data.get('password', ''))
    if not username or not password:
        return bad_request('Username and password are required.')

    user = authenticate(request, username=username, password=password)
    if user is None:
        logger.warning('Failed dashboard login for %r', username)
        return JsonResponse({'error': 'Invalid username or password.', 'code': 'invalid_credentials'}, status=401)
    if not user.is_staff:
        return JsonResponse({'error': 'Your account does not have admin access.', 'code': 'forbidden'}, status=403)

    login(request, user)
    logger.info('Dashboard login: %s', user.get_username())
    return JsonResponse({'username': user.get_username()})


@require_POST
def dashboard_logout(request):
    logout(request)
    return JsonResponse({'logged_out': True})


def lockout_response(request, *args, **kwargs):
    """django-axes lockout callable."""
    return JsonResponse(
        {'error': 'Too many failed login attempts. Try again later.', 'code': 'locked_out'},
        status=429,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Overview / KPI dashboard
# ─────────────────────────────────────────────────────────────────────────────

def _status_counts() -> dict:
    return {
        'total': Count('id'),
        'confirmed': Count('id', filter=Q(status=BookingStatus.CONFIRMED)),
        'cancelled': Count('id', filter=Q(status=BookingStatus.CANCELLED)),
    }


def _counts_by_day(qs, key) -> list:
    """Per-day booking counts, ascending; rows with no day are skipped."""
    rows = qs.order_by().values(key).annotate(**_status_counts()).order_by(key)
    return [
        {
            'date': row[key].isoformat(),
            'total': row['total'],
            'confirmed': row['confirmed'],
            'cancelled': row['cancelled'],
        }
        for row in rows if row[key] is not None
    ]


@require_GET
@dashboard_admin_required
def overview(request):
    """
    KPI summary plus per-day counts. ?date_from / ?date_to restrict the
    bookings counted by their creation date.
    """
    today = timezone.localdate()

    qs = Booking.objects.filter(**_date_filters(request, 'created_at__date'))
    counts = qs.aggregate(
        modified=Count('id', filter=~Q(updated_at=F('created_at'))),
        **_status_counts(),
    )
    counts['unique_people'] = qs.order_by().values('email').distinct().count()

    by_created = _counts_by_day(qs.annotate(day=TruncDate('created_at')), 'day')
    # Exam day is the live slot date, or the tombstone once the slot is gone
    by_exam = _counts_by_day(
        qs.annotate(exam_date=Coalesce('exam_slot__date', 'preserved_slot_date')), 'exam_date',
    )

    todays_bookings = (
        Booking.objects
        .filter(exam_slot__date=today, status=BookingStatus.CONFIRMED)
        .select_related('exam_slot')
        .order_by('exam_slot__start_time', 'booking_start_time')
    )
    upcoming_slots = ExamSlot.objects.filter(
        date__gt=today, date__lte=today + timedelta(days=7), is_active=True,
    ).count()

    return JsonResponse({
        'today': today.isoformat(),
        'summary': counts,
        'bookings_by_date': by_created,
        'bookings_by_exam_date': by_exam,
        'upcoming_slots': upcoming_slots,
        'todays_bookings': [booking_payload(b) for b in todays_bookings],
    })


# ─────────────────────────────────────────────────────────────────────────────
# Exam slots
# ─────────────────────────────────────────────────────────────────────────────

def _slot_payload(slot) -> dict:
    bookings = slot.bookings.filter(status=BookingStatus.CONFIRMED)
    data = slot_stats(slot, bookings).as_dict()
    data.update({
        'is_active': slot.is_active,
        'day_exceptions': slot.day_exceptions,
        'created_at': slot.created_at.isoformat(),
        'updated_at': slot.updated_at.isoformat(),
    })
    return data


@require_http_methods(['GET', 'POST'])
@dashboard_admin_required
def slot_list(request):
    """
    GET: slots with availability stats (?date_from, ?date_to, ?active=1|0)
    POST: create one slot (optionally repeated daily) or, when the body has
          date_ranges, a bulk batch
    """
    if request.method == 'GET':
        qs = ExamSlot.objects.filter(**_date_filters(request, 'date'))
        active = request.GET.get('active')
        if active in ('0', '1'):
            qs = qs.filter(is_active=active == '1')
        return JsonResponse({'slots': [_slot_payload(s) for s in qs.order_by('date', 'start_time')]})

    try:
        data = json_body(request)
    except InvalidJSONBody as exc:
        return bad_request(str(exc))

    form = BulkSlotForm(data) if 'date_ranges' in data else ExamSlotForm(data)
    if not form.is_valid():
        return form_error_response(form)

    try:
        if isinstance(form, BulkSlotForm):
            slots = bulk_create_slots(**form.slot_kwargs())
        else:
            slots = create_slot(**form.slot_kwargs())
    except BookingEngineError as exc:
        return error_response(exc)

    return JsonResponse({'count': len(slots), 'slots': [_slot_payload(s) for s in slots]}, status=201)


@require_http_methods(['GET', 'PATCH', 'DELETE'])
@dashboard_admin_required
def slot_detail(request, slot_id):
    if request.method == 'DELETE':
        try:
            result = delete_slot(slot_id)
        except BookingEngineError as exc:
            return error_response(exc)
        _notify_cancelled(result.cancelled, 'The exam slot was removed.')
        return JsonResponse({
            'deleted': str(result.slot_id),
            'cancelled_bookings': result.cancelled_count,
        })

    if request.method == 'PATCH':
        try:
            form = ExamSlotUpdateForm(json_body(request))
        except InvalidJSONBody as exc:
            return bad_request(str(exc))
        if not form.is_valid():
            return form_error_response(form)
        try:
            slot = update_slot(slot_id, **form.changes())
        except BookingEngineError as exc:
            return error_response(exc)
        return JsonResponse({'slot': _slot_payload(slot)})

    try:
        slot = ExamSlot.objects.get(id=slot_id)
    except ExamSlot.DoesNotExist:
        return error_response(SlotNotFoundError('Exam slot not found.'))
    bookings = slot.bookings.select_related('exam_slot').order_by('booking_start_time', 'created_at')
    return JsonResponse({
        'slot': _slot_payload(slot),
        'bookings': [booking_payload(b) for b in bookings],
    })


@require_http_methods(['PATCH', 'DELETE'])
@dashboard_admin_required
def slot_bulk(request):
    """
    PATCH {ids, is_active}: activate or deactivate
    DELETE {ids}: delete with cascade, one transaction per slot
    """
    try:
        data = json_body(request)
    except InvalidJSONBody as exc:
        return bad_request(str(exc))

    if request.method == 'PATCH':
        form = BulkSlotActionForm(data)
        if not form.is_valid():
            return form_error_response(form)
        if 'is_active' not in data:
            return bad_request('is_active is required.')
        updated = set_slots_active(form.cleaned_data['ids'], form.cleaned_data['is_active'])
        return JsonResponse({'updated': updated})

    form = BulkIdsForm(data)
    if not form.is_valid():
        return form_error_response(form)
    results = delete_slots(form.cleaned_data['ids'])
    for result in results:
        _notify_cancelled(result.cancelled, 'The exam slot was removed.')
    return JsonResponse({
        'deleted': len(results),
        'cancelled_bookings': sum(r.cancelled_count for r in results),
    })


# ─────────────────────────────────────────────────────────────────────────────
# Bookings
# ─────────────────────────────────────────────────────────────────────────────

@require_GET
@dashboard_admin_required
def booking_list(request):
    """Filters: ?status, ?slot, ?q (reference/name/email), ?date_from, ?date_to."""
    qs = Booking.objects.select_related('exam_slot')

    status_filter = request.GET.get('status', '')
    slot_filter   = request.GET.get('slot', '')
    search        = request.GET.get('q', '').strip()

    if status_filter:
        qs = qs.filter(status=status_filter)
    if slot_filter:
        qs = qs.filter(exam_slot_id__in=valid_uuids([slot_filter]))
    if search:
        qs = qs.filter(
            Q(booking_reference__icontains=search) |
            Q(first_name__icontains=search) |
            Q(last_name__icontains=search) |
            Q(email__icontains=search)
        )

    # Date filters match the live slot date, or the tombstone once the slot is gone
    live = _date_filters(request, 'exam_slot__date')
    preserved = _date_filters(request, 'preserved_slot_date')
    if live:
        qs = qs.filter(Q(**live) | Q(exam_slot__isnull=True, **preserved))

    bookings = sorted(
        qs.order_by('-created_at'),
        key=lambda b: (b.effective_date is None, b.effective_date),
    )
    return JsonResponse({'bookings': [booking_payload(b) for b in bookings], 'count': len(bookings)})


@require_http_methods(['GET', 'PATCH', 'DELETE'])
@dashboard_admin_required
def booking_detail(request, booking_id):
    """
    GET: booking with its status history
    PATCH: admin reschedule and/or contact edit (same conflict rules as candidates)
    DELETE: cancel
    """
    try:
        booking = Booking.objects.select_related('exam_slot').get(id=booking_id)
    except Booking.DoesNotExist:
        return error_response(BookingNotFoundError('Booking not found.'))

    if request.method == 'GET':
        return JsonResponse({
            'booking': booking_payload(booking, include_manage_url=True),
            'status_logs': [status_log_payload(log) for log in booking.status_logs.all()],
        })

    if request.method == 'DELETE':
        reason = request.GET.get('reason', '').strip() or 'Cancelled by admin'
        try:
            booking = cancel_booking(booking.id, changed_by=request.user.get_username(), reason=reason)
        except BookingEngineError as exc:
            return error_response(exc)
        _notify_cancelled([booking], reason)
        return JsonResponse({'booking': booking_payload(booking)})

    try:
        form = RescheduleForm(json_body(request))
    except InvalidJSONBody as exc:
        return bad_request(str(exc))
    if not form.is_valid():
        return form_error_response(form)

    contact = form.contact()
    try:
        if form.touches_schedule():
            booking = reschedule_booking(
                booking.id, contact=contact, changed_by=request.user.get_username(), **form.schedule()
            )
        elif contact.changes():
            booking = update_contact(booking.id, contact)
        else:
            return bad_request('Nothing to update.')
    except BookingEngineError as exc:
        return error_response(exc)

    transaction.on_commit(lambda: send_booking_updated(booking))
    return JsonResponse({'booking': booking_payload(booking)})


@require_POST
@dashboard_admin_required
def booking_bulk_delete(request):
    """POST {ids}: permanently remove bookings; confirmed ones are told by email."""
    try:
        form = BulkIdsForm(json_body(request))
    except InvalidJSONBody as exc:
        return bad_request(str(exc))
    if not form.is_valid():
        return form_error_response(form)

    try:
        deleted = purge_bookings(form.cleaned_data['ids'])
    except BookingEngineError as exc:
        return error_response(exc)
    if not deleted:
        return error_response(BookingNotFoundError('No matching bookings found.'))

    _notify_cancelled([b for b in deleted if b.status == BookingStatus.CONFIRMED], 'Removed by admin')
    return JsonResponse({'deleted': len(deleted)})
