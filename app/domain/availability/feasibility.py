"""Single-slot feasibility against an effective schedule"""

from .errors import (
    BreakConflictError,
    DayDisabledError,
    IndividualOverrideDeniedError,
    OutsideHoursError,
)
from .schemas import EffectiveSchedule
from .timezone_resolver import LocalTimeParts


def individual_override_key(date_str: str, hour: int) -> str:
    """Key format shared with the availability editor: YYYY-MM-DD-H (hour not padded)"""
    return f"{date_str}-{hour}"


def evaluate_slot(schedule: EffectiveSchedule, start: LocalTimeParts, end_minutes: int) -> None:
    """
    Raise the first rule a proposed local interval breaks, or return None.

    Rules run in a fixed order: day enabled, within hours (boundaries
    inclusive), no break overlap, no individual deny for the start hour.
    ``end_minutes`` is measured from the start's local midnight.
    """
    start_minutes = start.minute_of_day

    day_schedule = schedule.day(start.day_name)
    if day_schedule is None or not day_schedule.enabled:
        raise DayDisabledError()

    if start_minutes < day_schedule.start_minutes or end_minutes > day_schedule.end_minutes:
        raise OutsideHoursError()

    # Every break is checked, so overlapping break windows behave as their union
    for break_window in day_schedule.breaks:
        if start_minutes < break_window.end_minutes and end_minutes > break_window.start_minutes:
            raise BreakConflictError()

    # One-hour granularity: only the start hour's key governs the slot
    key = individual_override_key(start.date_str, start.hour)
    if schedule.individual.get(key) is False:
        raise IndividualOverrideDeniedError()
