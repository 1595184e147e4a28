"""Booking rejection taxonomy

Every rejection is terminal and user-facing. The engine raises these
internally; BookingGate turns them into a ``BookingDecision`` so callers
always receive the specific reason.
"""

from typing import Optional

from fastapi import HTTPException


class BookingRejection(Exception):
    """Base class for every reason a booking request can be refused"""

    reason = "rejected"
    http_status = 400
    retryable = False
    default_message = "This time slot is not available."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"reason": self.reason, "message": self.message, "retryable": self.retryable}

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.http_status, detail=self.to_dict())


class ValidationError(BookingRejection):
    reason = "validation_error"
    default_message = "The booking request is missing required fields."


class PastTimeError(BookingRejection):
    reason = "past_time"
    default_message = "Cannot book a time slot in the past. Please select a future time."


class DayDisabledError(BookingRejection):
    reason = "day_disabled"
    default_message = (
        "This time slot is not available. The selected day is not enabled in availability settings."
    )


class OutsideHoursError(BookingRejection):
    reason = "outside_hours"
    default_message = "This time slot is outside available hours."


class BreakConflictError(BookingRejection):
    reason = "break_conflict"
    default_message = "This time slot conflicts with a break time."


class IndividualOverrideDeniedError(BookingRejection):
    reason = "individual_override_denied"
    default_message = "This time slot has been marked as unavailable."


class BookingConflictError(BookingRejection):
    reason = "booking_conflict"
    http_status = 409
    default_message = "This time slot is already booked. Please select another time."


class CalendarBusyError(BookingRejection):
    reason = "calendar_busy"
    http_status = 409
    default_message = (
        "This time slot is already booked or blocked in calendar. Please select another time."
    )


class StoreError(BookingRejection):
    """Configuration or booking store could not be read; fail closed"""

    reason = "store_error"
    http_status = 503
    retryable = True
    default_message = "Availability could not be verified right now. Please try again."


class InvalidTimezoneError(ValueError):
    """Raised by the timezone resolver; callers fall back instead of rejecting"""


class CalendarProviderError(Exception):
    """External calendar read failed; fail open (logged, treated as no busy periods)"""


REJECTION_TYPES = (
    ValidationError,
    PastTimeError,
    DayDisabledError,
    OutsideHoursError,
    BreakConflictError,
    IndividualOverrideDeniedError,
    BookingConflictError,
    CalendarBusyError,
    StoreError,
)
