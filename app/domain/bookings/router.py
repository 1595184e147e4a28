"""Booking router - authenticated dashboard endpoints"""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...services.google_calendar_service import GoogleCalendarBusyProvider
from ..availability.errors import BookingRejection
from ..availability.repository import SqlConfigurationStore
from ..availability.schemas import BusyInterval
from ..availability.service import fetch_busy_periods
from ..availability.timezone_resolver import ensure_utc
from ..contacts.repository import SqlContactResolver
from .repository import SqlBookingStore
from .schemas import BookingCreate, BookingRequest, BookingResponse, BookingUpdate
from .service import BookingGate, BookingService, day_bounds_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_calendar_provider() -> GoogleCalendarBusyProvider:
    return GoogleCalendarBusyProvider()


def get_booking_gate() -> BookingGate:
    """Dependency injection for BookingGate (shared by dashboard and embed routes)"""
    return BookingGate(
        config_store=SqlConfigurationStore(),
        booking_store=SqlBookingStore(),
        calendar_provider=get_calendar_provider(),
        contact_resolver=SqlContactResolver(),
    )


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


async def busy_for_range(
    calendar_provider,
    workspace_id: int,
    day: Optional[date],
    start_date: Optional[date],
    end_date: Optional[date],
) -> list[BusyInterval]:
    """Calendar busy periods for a listing; empty when no date filter is given"""
    first = start_date or day
    if first is None:
        return []
    last = end_date or first
    range_start = day_bounds_utc(first)[0]
    range_end = day_bounds_utc(last)[0] + timedelta(days=1)
    periods = await fetch_busy_periods(calendar_provider, workspace_id, range_start, range_end)
    return [BusyInterval(start_at=p.start_at, end_at=p.end_at) for p in periods]


@router.post("")
async def create_booking(
    data: BookingCreate,
    current_user: User = Depends(get_current_user),
    gate: BookingGate = Depends(get_booking_gate),
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking for the caller's workspace"""
    logger.info(f"📥 Booking request from user {current_user.id} for workspace {current_user.workspace_id}")
    request = BookingRequest.from_create(
        data, current_user.workspace_id, source="dashboard", host_user_id=current_user.id
    )
    decision = await gate.evaluate_and_create(request)
    if not decision.accepted:
        raise decision.to_http_exception()

    booking = service.get_booking(current_user.workspace_id, decision.booking_id)
    return {"data": BookingResponse.model_validate(booking).model_dump(by_alias=True)}


@router.get("")
async def list_bookings(
    date: Optional[date] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    service_provider_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    calendar_provider: GoogleCalendarBusyProvider = Depends(get_calendar_provider),
):
    """List bookings (with calendar busy periods when a date filter is given)"""
    workspace_id = current_user.workspace_id
    try:
        bookings = service.list_bookings(
            workspace_id,
            day=date,
            start_date=start_date,
            end_date=end_date,
            provider_id=service_provider_id,
            status=status,
        )
    except BookingRejection as rejection:
        raise rejection.to_http_exception() from rejection

    calendar_busy = await busy_for_range(calendar_provider, workspace_id, date, start_date, end_date)
    return {
        "data": [BookingResponse.model_validate(b).model_dump(by_alias=True) for b in bookings],
        "calendar_busy": [b.model_dump() for b in calendar_busy],
    }


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    booking = service.get_booking(current_user.workspace_id, booking_id)
    return {"data": BookingResponse.model_validate(booking).model_dump(by_alias=True)}


@router.patch("/{booking_id}")
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    current_user: User = Depends(get_current_user),
    gate: BookingGate = Depends(get_booking_gate),
    service: BookingService = Depends(get_booking_service),
):
    """
    Change a booking's status, location or time.

    A time change goes back through BookingGate (excluding the booking
    itself) so a reschedule obeys exactly the rules of a new booking.
    """
    workspace_id = current_user.workspace_id
    booking = service.get_booking(workspace_id, booking_id)

    if data.start_at is not None or data.end_at is not None:
        if booking.status == "cancelled":
            raise HTTPException(status_code=400, detail="Cancelled bookings cannot be rescheduled")

        start_at = data.start_at or booking.start_at
        end_at = data.end_at
        if end_at is None and booking.end_at is not None:
            # Moving only the start keeps the booking's length
            end_at = ensure_utc(start_at) + (ensure_utc(booking.end_at) - ensure_utc(booking.start_at))

        request = BookingRequest(
            workspace_id=workspace_id,
            service_provider_id=booking.service_provider_id,
            event_type_id=booking.event_type_id,
            start_at=start_at,
            end_at=end_at,
            client_timezone=data.timezone,
            invitee_name=booking.invitee_name,
        )
        decision = await gate.evaluate_and_reschedule(booking_id, request)
        if not decision.accepted:
            raise decision.to_http_exception()
        # The reschedule committed in its own session
        service.db.refresh(booking)

    booking = service.update_booking(workspace_id, booking_id, data)
    return {"data": BookingResponse.model_validate(booking).model_dump(by_alias=True)}
