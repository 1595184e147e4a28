"""Overlap checks against existing bookings and external calendar busy periods

All arithmetic uses half-open intervals: ``[start, end)``. A booking without
an end is a point-in-time occupant (end = start). That is a deliberately
minimal conflict model: such a booking only blocks proposals that strictly
contain its instant, and never blocks another point-in-time proposal.
"""

from datetime import datetime
from typing import Iterable, NamedTuple, Optional

from .errors import BookingConflictError, CalendarBusyError
from .timezone_resolver import ensure_utc

INACTIVE_STATUSES = frozenset({"cancelled"})


class BookingCandidate(NamedTuple):
    start_at: datetime
    end_at: Optional[datetime] = None
    status: str = "pending"
    service_provider_id: Optional[str] = None
    id: Optional[str] = None


class BusyPeriod(NamedTuple):
    start_at: datetime
    end_at: datetime


def intervals_overlap(
    start: datetime, end: datetime, other_start: datetime, other_end: Optional[datetime]
) -> bool:
    other_start = ensure_utc(other_start)
    other_end = ensure_utc(other_end) if other_end is not None else other_start
    return ensure_utc(start) < other_end and ensure_utc(end) > other_start


def find_booking_conflict(
    start: datetime,
    end: datetime,
    candidates: Iterable[BookingCandidate],
    provider_id: Optional[str] = None,
    exclude_booking_id: Optional[str] = None,
) -> Optional[BookingCandidate]:
    """
    Return the first active booking overlapping ``[start, end)``.

    With a provider id only that provider's bookings count. Without one every
    booking in the candidate set counts, which makes unassigned requests
    conflict workspace-wide.
    """
    for candidate in candidates:
        if candidate.status in INACTIVE_STATUSES:
            continue
        if exclude_booking_id is not None and candidate.id == exclude_booking_id:
            continue
        if provider_id and str(candidate.service_provider_id or "") != str(provider_id):
            continue
        if intervals_overlap(start, end, candidate.start_at, candidate.end_at):
            return candidate
    return None


def find_calendar_conflict(
    start: datetime, end: datetime, busy_periods: Iterable[BusyPeriod]
) -> Optional[BusyPeriod]:
    for period in busy_periods:
        if intervals_overlap(start, end, period.start_at, period.end_at):
            return period
    return None


def check_conflicts(
    start: datetime,
    end: datetime,
    candidates: Iterable[BookingCandidate],
    busy_periods: Iterable[BusyPeriod],
    provider_id: Optional[str] = None,
    exclude_booking_id: Optional[str] = None,
) -> None:
    """Raise BookingConflictError or CalendarBusyError for the first overlap found"""
    if find_booking_conflict(start, end, candidates, provider_id, exclude_booking_id):
        raise BookingConflictError()
    if find_calendar_conflict(start, end, busy_periods):
        raise CalendarBusyError()
