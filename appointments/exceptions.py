"""
Booking error taxonomy.

Every error carries a human readable ``message`` and a stable ``code``.
The API layer maps each class to an HTTP status via ``http_status_for``.
"""

from rest_framework import status


class BookingError(Exception):
    """Base exception for booking failures."""

    default_message = "The booking request could not be completed."
    default_code = "booking_error"

    def __init__(self, message=None, code=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        super().__init__(self.message)


class NotFoundError(BookingError):
    """Raised when a barber, service or appointment is missing or inactive."""

    default_message = "The requested resource was not found."
    default_code = "not_found"


class InvalidInputError(BookingError):
    """Raised for malformed dates, past dates and missing required values."""

    default_message = "Invalid input."
    default_code = "invalid_input"


class ForbiddenError(BookingError):
    """Raised when the actor's role does not allow the operation."""

    default_message = "You are not allowed to perform this action."
    default_code = "forbidden"


class InvalidTransitionError(BookingError):
    """Raised when a status change is not allowed by the state machine."""

    default_message = "This status change is not allowed."
    default_code = "invalid_transition"


class CancellationWindowClosedError(InvalidTransitionError):
    """Raised when cancelling too close to the appointment start."""

    default_message = "Appointments can only be cancelled at least 2 hours in advance."
    default_code = "cancellation_window_closed"


class BookingBlockedError(BookingError):
    """Raised when the client is serving a cancellation penalty."""

    default_code = "booking_blocked"

    def __init__(self, blocked_until, message=None):
        self.blocked_until = blocked_until
        super().__init__(
            message
            or f"Too many cancellations. You can book again after {blocked_until.isoformat()}."
        )


class InsufficientAdvanceNoticeError(BookingError):
    """Raised when the requested start is too close to now."""

    default_message = "Appointments must be booked at least 30 minutes in advance."
    default_code = "insufficient_advance_notice"


class ServiceExceedsWorkingHoursError(BookingError):
    """Raised when the service would end after the barber's shift."""

    default_message = "The service would end after the barber's working hours."
    default_code = "service_exceeds_working_hours"


class SlotUnavailableError(BookingError):
    """Raised when the requested slot is not (or no longer) available."""

    default_message = "This time slot is no longer available. Please select another slot."
    default_code = "slot_unavailable"

    def __init__(self, message=None, reason=None):
        self.reason = reason
        super().__init__(message)


class SlotTemporarilyLockedError(BookingError):
    """Raised when another client holds a live lock on the slot."""

    default_message = "This slot is being reserved by another client. Try again in a few minutes."
    default_code = "TEMPORARILY_LOCKED"


class OverlappingOwnAppointmentError(BookingError):
    """Raised when the client already has an overlapping active appointment."""

    default_message = "You already have an appointment that overlaps this time."
    default_code = "overlapping_appointment"


_HTTP_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionError, status.HTTP_400_BAD_REQUEST),
    (BookingBlockedError, status.HTTP_403_FORBIDDEN),
    (InsufficientAdvanceNoticeError, status.HTTP_400_BAD_REQUEST),
    (ServiceExceedsWorkingHoursError, status.HTTP_400_BAD_REQUEST),
    (SlotUnavailableError, status.HTTP_409_CONFLICT),
    (SlotTemporarilyLockedError, status.HTTP_409_CONFLICT),
    (OverlappingOwnAppointmentError, status.HTTP_409_CONFLICT),
)


def http_status_for(error: BookingError) -> int:
    for error_class, http_status in _HTTP_STATUS:
        if isinstance(error, error_class):
            return http_status
    return status.HTTP_400_BAD_REQUEST
