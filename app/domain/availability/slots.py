"""Day slot previews for the booking widget and dashboard

A preview, not an authority: a slot shown as available can still be rejected
by BookingGate at submission (for example when someone else books it first).
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from .conflicts import BookingCandidate, BusyPeriod
from .engine import evaluate_interval
from .errors import (
    BookingConflictError,
    BookingRejection,
    BreakConflictError,
    CalendarBusyError,
    DayDisabledError,
    IndividualOverrideDeniedError,
    OutsideHoursError,
    PastTimeError,
)
from .schemas import DAY_NAMES, EffectiveSchedule, SlotPreview, format_minutes, format_minutes_12h
from .timezone_resolver import ensure_utc, local_datetime_to_instant

logger = logging.getLogger(__name__)

DEFAULT_SLOT_MINUTES = 30

SLOT_REASONS = {
    PastTimeError: "past",
    DayDisabledError: "day_disabled",
    OutsideHoursError: "outside_hours",
    BreakConflictError: "break",
    IndividualOverrideDeniedError: "unavailable",
    BookingConflictError: "booked",
    CalendarBusyError: "calendar",
}


def slot_reason(rejection: BookingRejection) -> str:
    return SLOT_REASONS.get(type(rejection), rejection.reason)


def generate_day_slots(
    schedule: EffectiveSchedule,
    day: date,
    tz_name: Optional[str],
    duration_minutes: Optional[int],
    bookings: Iterable[BookingCandidate] = (),
    busy_periods: Iterable[BusyPeriod] = (),
    provider_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[SlotPreview]:
    """
    Enumerate the day's candidate starts at the event duration's granularity.

    Starts run from the day's ``startTime`` in steps of the duration while the
    slot still ends by ``endTime``. Each slot gets the first rejection reason
    from the shared rule pipeline, or ``available=True``. A disabled or
    missing day yields no slots.
    """
    day_name = DAY_NAMES[(day.weekday() + 1) % 7]
    day_schedule = schedule.day(day_name)
    if day_schedule is None or not day_schedule.enabled:
        return []

    duration = duration_minutes if duration_minutes and duration_minutes > 0 else DEFAULT_SLOT_MINUTES
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    bookings = list(bookings)
    busy_periods = list(busy_periods)

    slots: list[SlotPreview] = []
    minute = day_schedule.start_minutes
    while minute + duration <= day_schedule.end_minutes:
        start_at = local_datetime_to_instant(day, minute, tz_name)
        end_at = start_at + timedelta(minutes=duration)

        reason = None
        try:
            evaluate_interval(
                schedule,
                start_at,
                end_at,
                tz_name,
                bookings,
                busy_periods,
                provider_id=provider_id,
                now=now,
            )
        except BookingRejection as rejection:
            reason = slot_reason(rejection)

        slots.append(
            SlotPreview(
                time=format_minutes(minute),
                display=format_minutes_12h(minute),
                start_at=start_at,
                end_at=end_at,
                available=reason is None,
                reason=reason,
            )
        )
        minute += duration

    logger.debug(
        f"Generated {len(slots)} slots for {day.isoformat()} "
        f"({sum(1 for s in slots if s.available)} available)"
    )
    return slots
