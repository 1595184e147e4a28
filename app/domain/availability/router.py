"""Availability router - slot previews for the dashboard"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...auth import get_current_user
from ...models import User
from ...services.google_calendar_service import GoogleCalendarBusyProvider
from ..bookings.repository import SqlBookingStore
from .errors import BookingRejection
from .repository import SqlConfigurationStore
from .schemas import DaySlotsResponse
from .service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/availability", tags=["Availability"])


def get_availability_service() -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(
        config_store=SqlConfigurationStore(),
        booking_store=SqlBookingStore(),
        calendar_provider=GoogleCalendarBusyProvider(),
    )


@router.get("/slots", response_model=DaySlotsResponse)
async def get_day_slots(
    date: date = Query(..., description="Local date, YYYY-MM-DD"),
    service_provider_id: Optional[str] = Query(None),
    event_type_id: Optional[int] = Query(None),
    timezone: Optional[str] = Query(None, description="IANA zone the client displays"),
    current_user: User = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Slots for one day, each marked available or with the reason it is not"""
    try:
        return await service.get_day_slots(
            current_user.workspace_id,
            date,
            provider_id=service_provider_id,
            event_type_id=event_type_id,
            client_timezone=timezone,
        )
    except BookingRejection as rejection:
        raise rejection.to_http_exception() from rejection
