"""
Custom exceptions for the booking engine.
Raised by the slot and booking services and mapped to JSON errors in views.
"""


class BookingEngineError(Exception):
    """Base exception for all booking engine errors."""
    code = 'booking_error'
    status_code = 400

    def as_dict(self) -> dict:
        return {'error': str(self), 'code': self.code}


class InvalidTimeFormatError(BookingEngineError):
    """Raised when a wall-clock value is not a valid HH:MM time."""
    code = 'invalid_time_format'


class SlotNotFoundError(BookingEngineError):
    code = 'slot_not_found'
    status_code = 404


class BookingNotFoundError(BookingEngineError):
    code = 'booking_not_found'
    status_code = 404


class SlotInactiveError(BookingEngineError):
    """Raised when a booking targets a slot that is not accepting bookings."""
    code = 'slot_inactive'


class OutOfWindowError(BookingEngineError):
    """Raised when start/duration fall outside the slot's bookable window."""
    code = 'out_of_window'


class DurationNotAllowedError(BookingEngineError):
    code = 'duration_not_allowed'

    def __init__(self, message, allowed=()):
        super().__init__(message)
        self.allowed = sorted(allowed)

    def as_dict(self) -> dict:
        data = super().as_dict()
        data['allowed_durations'] = self.allowed
        return data


class RowOutOfRangeError(BookingEngineError):
    """Raised when requested rows fall outside the slot's row range."""
    code = 'row_out_of_range'

    def __init__(self, message, rows=()):
        super().__init__(message)
        self.rows = sorted(rows)

    def as_dict(self) -> dict:
        data = super().as_dict()
        data['rows'] = self.rows
        return data


class RowTimeConflictError(BookingEngineError):
    """
    Raised when requested rows are already held by a CONFIRMED booking
    whose time range overlaps the requested one.

    `window` is the colliding booking's (start_minutes, duration_minutes),
    or None on legacy slots where time is not compared.
    """
    code = 'row_time_conflict'
    status_code = 409

    def __init__(self, message, rows=(), window=None):
        super().__init__(message)
        self.rows = sorted(rows)
        self.window = window

    def as_dict(self) -> dict:
        data = super().as_dict()
        data['rows'] = self.rows
        if self.window is not None:
            from apps.slots.intervals import minutes_to_hhmm
            start, duration = self.window
            data['conflicting_window'] = {
                'start': minutes_to_hhmm(start),
                'end': minutes_to_hhmm(start + duration),
            }
        return data


class AlreadyCancelledError(BookingEngineError):
    """Raised when cancelling a booking that is already CANCELLED."""
    code = 'already_cancelled'
    status_code = 409


class BookingCancelledError(BookingEngineError):
    """Raised when rescheduling or editing a CANCELLED booking."""
    code = 'booking_cancelled'
    status_code = 409


class InvalidWindowError(BookingEngineError):
    """Raised when a slot time window or its durations are inconsistent."""
    code = 'invalid_window'


class ReferenceGenerationExhaustedError(BookingEngineError):
    """Raised when no unique booking reference could be minted. Retryable."""
    code = 'reference_generation_exhausted'
    status_code = 503
