"""Local time decomposition for availability checks

Schedules, breaks and individual overrides are expressed in wall-clock time,
so every check works on the local parts of an instant in a given zone. A UTC
day boundary crossing must never change which weekday's schedule applies.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidTimezoneError
from .schemas import DAY_NAMES

logger = logging.getLogger(__name__)


class LocalTimeParts(NamedTuple):
    day_of_week: int  # 0=Sun .. 6=Sat
    hour: int
    minute: int
    minute_of_day: int
    date_str: str  # YYYY-MM-DD

    @property
    def day_name(self) -> str:
        return DAY_NAMES[self.day_of_week]


def get_zone(tz_name: str) -> ZoneInfo:
    """Load an IANA zone or raise InvalidTimezoneError"""
    if not isinstance(tz_name, str) or not tz_name.strip():
        raise InvalidTimezoneError(f"Invalid timezone: {tz_name!r}")
    try:
        return ZoneInfo(tz_name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidTimezoneError(f"Invalid timezone: {tz_name!r}") from e


def is_valid_timezone(tz_name: Optional[str]) -> bool:
    if not tz_name:
        return False
    try:
        get_zone(tz_name)
        return True
    except InvalidTimezoneError:
        return False


def ensure_utc(instant: datetime) -> datetime:
    """Naive datetimes are treated as UTC (the store and the API both speak UTC)"""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def parse_instant(value) -> datetime:
    """Parse an ISO-8601 instant ("Z" suffix accepted) into an aware UTC datetime"""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid instant: {value!r}")
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(raw))


def _parts_from_local(local: datetime) -> LocalTimeParts:
    # datetime.weekday() is Mon=0; shift so Sun=0
    day_of_week = (local.weekday() + 1) % 7
    return LocalTimeParts(
        day_of_week=day_of_week,
        hour=local.hour,
        minute=local.minute,
        minute_of_day=local.hour * 60 + local.minute,
        date_str=local.date().isoformat(),
    )


def resolve_local_parts(instant: datetime, tz_name: Optional[str] = None) -> LocalTimeParts:
    """
    Decompose an instant into local weekday, hour, minute-of-day and date.

    With ``tz_name`` the parts are computed in that zone. Without it, the
    process's local clock is used (legacy degraded path). An invalid zone
    raises InvalidTimezoneError so the caller can choose its fallback.
    """
    instant = ensure_utc(instant)
    if tz_name is not None:
        zone = get_zone(tz_name)
        return _parts_from_local(instant.astimezone(zone))

    # Degraded path: host-local decomposition
    return _parts_from_local(instant.astimezone())


def resolve_timezone(*candidates: Optional[str]) -> Optional[str]:
    """
    Pick the first valid zone from the candidates (client, workspace, default).

    Returns None when none is usable, which sends callers down the degraded
    host-local path.
    """
    for candidate in candidates:
        if not candidate:
            continue
        if is_valid_timezone(candidate):
            return candidate.strip()
        logger.warning(f"⚠️ Ignoring invalid timezone {candidate!r}, trying next fallback")
    return None


def local_end_minutes(start: LocalTimeParts, end: LocalTimeParts) -> int:
    """
    Minutes of the end instant measured from the start's local midnight.

    An interval ending on a later local date keeps counting past 1440 so it
    can never look like it ends early in the day.
    """
    day_offset = (date.fromisoformat(end.date_str) - date.fromisoformat(start.date_str)).days
    return day_offset * 1440 + end.minute_of_day


def local_datetime_to_instant(day: date, minute_of_day: int, tz_name: Optional[str]) -> datetime:
    """Build the UTC instant for a local wall-clock time on ``day``"""
    local_naive = datetime.combine(day, time.min) + timedelta(minutes=minute_of_day)
    if tz_name is not None:
        return local_naive.replace(tzinfo=get_zone(tz_name)).astimezone(timezone.utc)
    # Degraded path: interpret in the process's local zone
    return local_naive.astimezone().astimezone(timezone.utc)


def day_name(day_of_week: int) -> str:
    """0=Sun .. 6=Sat"""
    return DAY_NAMES[day_of_week % 7]
