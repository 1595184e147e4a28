"""Availability service - day slot previews built on the shared rule pipeline"""

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from ...config import CALENDAR_TIMEOUT_SECONDS, DEFAULT_EVENT_DURATION_MINUTES, DEFAULT_TIMEZONE
from .conflicts import BusyPeriod
from .errors import CalendarProviderError, ValidationError
from .schedule_merger import merge_schedule
from .schemas import DaySlotsResponse
from .slots import generate_day_slots
from .timezone_resolver import resolve_timezone

logger = logging.getLogger(__name__)

# Local days span at most UTC-12..UTC+14, so this padding around the UTC day
# covers the local day in any zone before the zone is known
ZONE_PADDING = timedelta(hours=14)


async def fetch_busy_periods(
    calendar_provider,
    workspace_id: int,
    range_start: datetime,
    range_end: datetime,
    timeout: float = CALENDAR_TIMEOUT_SECONDS,
) -> list[BusyPeriod]:
    """
    Read external busy periods, failing open.

    A provider error or a timeout is logged and treated as "no busy periods";
    a flaky calendar never blocks bookings.
    """
    if calendar_provider is None:
        return []
    try:
        return await asyncio.wait_for(
            calendar_provider.get_busy_slots(workspace_id, range_start, range_end), timeout
        )
    except asyncio.TimeoutError:
        logger.warning(
            f"⚠️ Calendar busy lookup for workspace {workspace_id} timed out after {timeout}s, ignoring"
        )
    except CalendarProviderError as e:
        logger.warning(f"⚠️ Calendar busy lookup failed for workspace {workspace_id}, ignoring: {e}")
    except Exception as e:
        logger.error(f"❌ Unexpected calendar error for workspace {workspace_id}, ignoring: {e}")
    return []


class AvailabilityService:
    """Service layer for availability previews"""

    def __init__(
        self,
        config_store,
        booking_store,
        calendar_provider=None,
        default_timezone: Optional[str] = DEFAULT_TIMEZONE,
        calendar_timeout: float = CALENDAR_TIMEOUT_SECONDS,
    ):
        self.config_store = config_store
        self.booking_store = booking_store
        self.calendar_provider = calendar_provider
        self.default_timezone = default_timezone
        self.calendar_timeout = calendar_timeout

    async def get_day_slots(
        self,
        workspace_id: int,
        day: date,
        provider_id: Optional[str] = None,
        event_type_id: Optional[int] = None,
        client_timezone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DaySlotsResponse:
        range_start = datetime.combine(day, time.min, tzinfo=timezone.utc) - ZONE_PADDING
        range_end = range_start + timedelta(days=1) + 2 * ZONE_PADDING

        settings, duration, bookings, busy_periods = await asyncio.gather(
            self.config_store.get_availability_settings(workspace_id),
            self.config_store.get_event_type_duration(workspace_id, event_type_id),
            self.booking_store.list_bookings_for_range(
                workspace_id, range_start, range_end, provider_id
            ),
            fetch_busy_periods(
                self.calendar_provider, workspace_id, range_start, range_end, self.calendar_timeout
            ),
        )
        if settings is None:
            raise ValidationError("Workspace not found.")

        tz_name = resolve_timezone(client_timezone, settings.timezone, self.default_timezone)
        if tz_name is None:
            logger.warning(
                f"⚠️ No usable timezone for workspace {workspace_id}, using host-local time for slots"
            )

        duration = duration or DEFAULT_EVENT_DURATION_MINUTES
        schedule = merge_schedule(settings, provider_id)
        slots = generate_day_slots(
            schedule,
            day,
            tz_name,
            duration,
            bookings,
            busy_periods,
            provider_id=provider_id,
            now=now,
        )
        return DaySlotsResponse(
            date=day.isoformat(), timezone=tz_name, duration_minutes=duration, slots=slots
        )
