"""
Email notifications for exam room bookings.

All functions are synchronous and are called from views through
transaction.on_commit, so an email only ever describes committed state.
A failed send is logged and swallowed; it never undoes a booking change.

Public API:
  send_booking_confirmed(booking)
  send_booking_updated(booking)
  send_booking_cancelled(booking, reason='')
  send_booking_reminder(booking)
"""
import logging
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from apps.bookings.serializers import booking_payload, manage_url

logger = logging.getLogger(__name__)


def _booking_context(booking) -> dict:
    """Common template context for all booking emails."""
    details = booking_payload(booking)
    return {
        'full_name':     booking.full_name,
        'booking_ref':   booking.booking_reference,
        'exam_date':     booking.effective_date,
        'location_name': details['location_name'],
        'start_time':    details['start_time'],
        'end_time':      details['end_time'],
        'duration':      details['duration_minutes'],
        'rows':          ', '.join(map(str, booking.rows)),
        'manage_url':    manage_url(booking),
        'support_email': settings.DEFAULT_FROM_EMAIL,
    }


def _exam_day(booking) -> str:
    day = booking.effective_date
    return day.strftime('%d %b %Y') if day else 'your exam'


def _send(subject: str, to_email: str, template: str, context: dict) -> bool:
    """Build a multipart email (text + HTML) from emails/<template>.{txt,html}."""
    if not to_email:
        logger.warning('Email skipped — no address on booking %s', context.get('booking_ref'))
        return False

    try:
        text_body = render_to_string(f'emails/{template}.txt', context)
        html_body = render_to_string(f'emails/{template}.html', context)

        msg = EmailMultiAlternatives(
            subject=subject,
            body=text_body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=[to_email],
        )
        msg.attach_alternative(html_body, 'text/html')
        msg.send(fail_silently=False)
        logger.info('Email "%s" sent to %s', subject, to_email)
        return True
    except Exception:
        logger.exception('Failed to send email "%s" to %s', subject, to_email)
        return False


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def send_booking_confirmed(booking) -> bool:
    return _send(
        subject=f'Exam Booking Confirmed — {booking.booking_reference} on {_exam_day(booking)}',
        to_email=booking.email,
        template='booking_confirmed',
        context=_booking_context(booking),
    )


def send_booking_updated(booking) -> bool:
    """Triggered after a reschedule or a contact change."""
    return _send(
        subject=f'Exam Booking Updated — {booking.booking_reference}',
        to_email=booking.email,
        template='booking_updated',
        context=_booking_context(booking),
    )


def send_booking_cancelled(booking, reason: str = '') -> bool:
    """Triggered by self-service cancel, admin cancel/purge, or slot deletion."""
    ctx = _booking_context(booking)
    ctx['cancellation_reason'] = reason

    return _send(
        subject=f'Exam Booking Cancelled — {booking.booking_reference}',
        to_email=booking.email,
        template='booking_cancelled',
        context=ctx,
    )


def send_booking_reminder(booking) -> bool:
    return _send(
        subject=f'Reminder: your exam on {_exam_day(booking)}',
        to_email=booking.email,
        template='booking_reminder',
        context=_booking_context(booking),
    )
