"""Rule pipeline shared by BookingGate and the slot list generator

Both callers judge an interval through ``evaluate_interval`` so a slot shown
as available in a preview was judged by exactly the rules the gate applies at
submission time.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from .conflicts import BookingCandidate, BusyPeriod, check_conflicts
from .errors import PastTimeError
from .feasibility import evaluate_slot
from .schemas import EffectiveSchedule
from .timezone_resolver import ensure_utc, local_end_minutes, resolve_local_parts


def check_not_past(start_at: datetime, now: Optional[datetime] = None) -> None:
    """Reject starts strictly before now (process clock, timezone independent)"""
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    if ensure_utc(start_at) < now:
        raise PastTimeError()


def evaluate_interval(
    schedule: EffectiveSchedule,
    start_at: datetime,
    end_at: datetime,
    tz_name: Optional[str],
    candidates: Iterable[BookingCandidate] = (),
    busy_periods: Iterable[BusyPeriod] = (),
    provider_id: Optional[str] = None,
    now: Optional[datetime] = None,
    exclude_booking_id: Optional[str] = None,
) -> None:
    """
    Raise the first BookingRejection for ``[start_at, end_at)``.

    Order: past time, schedule feasibility (day, hours, breaks, individual
    override), existing bookings, calendar busy periods. ``tz_name`` must
    already be validated; None means host-local decomposition.
    """
    check_not_past(start_at, now)

    start_parts = resolve_local_parts(start_at, tz_name)
    end_parts = resolve_local_parts(end_at, tz_name)
    evaluate_slot(schedule, start_parts, local_end_minutes(start_parts, end_parts))

    check_conflicts(start_at, end_at, candidates, busy_periods, provider_id, exclude_booking_id)
