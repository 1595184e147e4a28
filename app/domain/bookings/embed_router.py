"""Embed router - public endpoints used by the booking widget on customer sites"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...config import EMBED_BOOKING_RATE_LIMIT, EMBED_BOOKING_RATE_WINDOW
from ...rate_limiter import create_rate_limiter
from ...services.google_calendar_service import GoogleCalendarBusyProvider
from ..availability.errors import BookingRejection, ValidationError
from ..availability.router import get_availability_service
from ..availability.schemas import DaySlotsResponse
from ..availability.service import AvailabilityService
from .router import busy_for_range, get_booking_gate, get_booking_service, get_calendar_provider
from .schemas import BookingListResponse, BookingRequest, BookingSummary, EmbedBookingCreate
from .service import BookingGate, BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/embed", tags=["Embed"])

embed_booking_limit = create_rate_limiter(
    limit=EMBED_BOOKING_RATE_LIMIT,
    window_seconds=EMBED_BOOKING_RATE_WINDOW,
    key_prefix="embed_booking",
)


@router.post("/bookings")
async def create_embed_booking(
    data: EmbedBookingCreate,
    gate: BookingGate = Depends(get_booking_gate),
    _: None = Depends(embed_booking_limit),
):
    """Public booking submission; same rules as the dashboard"""
    logger.info(f"📥 Embed booking request for workspace {data.workspace_id}")
    request = BookingRequest.from_create(data, data.workspace_id, source="embed")
    decision = await gate.evaluate_and_create(request)
    if not decision.accepted:
        raise decision.to_http_exception()

    return {
        "data": {
            "id": decision.booking_id,
            "status": decision.status,
            "start_at": decision.start_at,
            "end_at": decision.end_at,
        }
    }


@router.get("/bookings", response_model=BookingListResponse)
async def list_embed_bookings(
    workspace_id: Optional[int] = Query(None),
    date: Optional[date] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service_provider_id: Optional[str] = Query(None),
    service: BookingService = Depends(get_booking_service),
    calendar_provider: GoogleCalendarBusyProvider = Depends(get_calendar_provider),
):
    """Active bookings and calendar busy periods for widget availability previews"""
    try:
        if not workspace_id:
            raise ValidationError("Workspace ID is required.")
        bookings = service.list_bookings(
            workspace_id,
            day=date,
            start_date=start_date,
            end_date=end_date,
            provider_id=service_provider_id,
            include_cancelled=False,
        )
    except BookingRejection as rejection:
        raise rejection.to_http_exception() from rejection

    calendar_busy = await busy_for_range(calendar_provider, workspace_id, date, start_date, end_date)
    return BookingListResponse(
        data=[BookingSummary.model_validate(b) for b in bookings], calendar_busy=calendar_busy
    )


@router.get("/availability", response_model=DaySlotsResponse)
async def get_embed_availability(
    workspace_id: Optional[int] = Query(None),
    date: date = Query(..., description="Local date, YYYY-MM-DD"),
    service_provider_id: Optional[str] = Query(None),
    event_type_id: Optional[int] = Query(None),
    timezone: Optional[str] = Query(None),
    service: AvailabilityService = Depends(get_availability_service),
):
    try:
        if not workspace_id:
            raise ValidationError("Workspace ID is required.")
        return await service.get_day_slots(
            workspace_id,
            date,
            provider_id=service_provider_id,
            event_type_id=event_type_id,
            client_timezone=timezone,
        )
    except BookingRejection as rejection:
        raise rejection.to_http_exception() from rejection
