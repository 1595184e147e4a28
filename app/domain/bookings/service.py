"""Booking service - BookingGate decisions and dashboard booking operations"""

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import CALENDAR_TIMEOUT_SECONDS, DEFAULT_TIMEZONE, ENQUEUE_TIMEOUT_SECONDS
from ...models import Booking
from ...worker import SYNC_BOOKING_TASK, enqueue_job
from ..availability.engine import check_not_past, evaluate_interval
from ..availability.errors import BookingRejection, StoreError, ValidationError
from ..availability.schedule_merger import merge_schedule
from ..availability.service import fetch_busy_periods
from ..availability.timezone_resolver import ensure_utc, resolve_timezone
from .repository import BookingRepository
from .schemas import BookingAccepted, BookingDecision, BookingRejected, BookingRequest, BookingUpdate

logger = logging.getLogger(__name__)

# Candidate bookings and busy periods are read for a window around the request
# so the reads can start before the event duration and timezone are known
CANDIDATE_PADDING = timedelta(days=1)


class AcceptancePlan(NamedTuple):
    start_at: datetime
    end_at: Optional[datetime]
    status: str
    timezone: Optional[str]


def rejected(rejection: BookingRejection) -> BookingRejected:
    return BookingRejected(
        reason=rejection.reason,
        message=rejection.message,
        retryable=rejection.retryable,
        http_status=rejection.http_status,
    )


class BookingGate:
    """
    Single accept/reject seam for every booking request.

    Both the dashboard and the public widget call ``evaluate_and_create``.
    Rules run in a fixed order and the first failure is returned as a
    ``BookingRejected``; nothing is written unless every rule passes.
    """

    def __init__(
        self,
        config_store,
        booking_store,
        calendar_provider=None,
        contact_resolver=None,
        enqueue=enqueue_job,
        default_timezone: Optional[str] = DEFAULT_TIMEZONE,
        calendar_timeout: float = CALENDAR_TIMEOUT_SECONDS,
        enqueue_timeout: float = ENQUEUE_TIMEOUT_SECONDS,
    ):
        self.config_store = config_store
        self.booking_store = booking_store
        self.calendar_provider = calendar_provider
        self.contact_resolver = contact_resolver
        self.enqueue = enqueue
        self.default_timezone = default_timezone
        self.calendar_timeout = calendar_timeout
        self.enqueue_timeout = enqueue_timeout

    @staticmethod
    def validate_request(request: BookingRequest) -> tuple[datetime, Optional[datetime]]:
        if not request.workspace_id:
            raise ValidationError("Workspace ID is required.")
        if not request.invitee_name or not request.invitee_name.strip():
            raise ValidationError("Invitee name is required.")
        if request.start_at is None:
            raise ValidationError("Start time is required.")

        start_at = ensure_utc(request.start_at)
        end_at = ensure_utc(request.end_at) if request.end_at is not None else None
        if end_at is not None and end_at < start_at:
            raise ValidationError("End time must not be before start time.")
        return start_at, end_at

    async def _check(
        self,
        request: BookingRequest,
        now: Optional[datetime] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> AcceptancePlan:
        start_at, end_at = self.validate_request(request)
        check_not_past(start_at, now)

        workspace_id = request.workspace_id
        provider_id = request.service_provider_id
        range_start = start_at - CANDIDATE_PADDING
        range_end = (end_at or start_at) + CANDIDATE_PADDING

        settings, duration, candidates, busy_periods = await asyncio.gather(
            self.config_store.get_availability_settings(workspace_id),
            self.config_store.get_event_type_duration(workspace_id, request.event_type_id),
            self.booking_store.list_bookings_for_range(
                workspace_id, range_start, range_end, provider_id
            ),
            fetch_busy_periods(
                self.calendar_provider, workspace_id, range_start, range_end, self.calendar_timeout
            ),
        )
        if settings is None:
            raise ValidationError("Workspace not found.")

        if end_at is None and duration:
            end_at = start_at + timedelta(minutes=duration)

        tz_name = resolve_timezone(request.client_timezone, settings.timezone, self.default_timezone)
        if tz_name is None:
            logger.warning(
                f"⚠️ No usable timezone for workspace {workspace_id}, "
                f"checking availability in host-local time"
            )

        schedule = merge_schedule(settings, provider_id)
        evaluate_interval(
            schedule,
            start_at,
            end_at or start_at,
            tz_name,
            candidates,
            busy_periods,
            provider_id=provider_id,
            now=now,
            exclude_booking_id=exclude_booking_id,
        )

        status = "confirmed" if settings.auto_confirm else "pending"
        return AcceptancePlan(start_at=start_at, end_at=end_at, status=status, timezone=tz_name)

    def _log_rejection(self, request: BookingRequest, rejection: BookingRejection) -> None:
        logger.info(
            f"🚫 Booking rejected for workspace {request.workspace_id} "
            f"at {request.start_at}: {rejection.reason}"
        )

    async def evaluate(
        self,
        request: BookingRequest,
        now: Optional[datetime] = None,
        exclude_booking_id: Optional[str] = None,
    ) -> BookingDecision:
        """Run every rule without writing anything"""
        try:
            plan = await self._check(request, now, exclude_booking_id)
        except BookingRejection as rejection:
            self._log_rejection(request, rejection)
            return rejected(rejection)
        return BookingAccepted(
            status=plan.status, start_at=plan.start_at, end_at=plan.end_at, timezone=plan.timezone
        )

    async def evaluate_and_create(
        self, request: BookingRequest, now: Optional[datetime] = None
    ) -> BookingDecision:
        """Run every rule and, when all pass, store the booking under the workspace lock"""
        try:
            plan = await self._check(request, now)
            booking = await self.booking_store.insert(
                {
                    "workspace_id": request.workspace_id,
                    "event_type_id": request.event_type_id,
                    "service_provider_id": request.service_provider_id,
                    "department_id": request.department_id,
                    "host_user_id": request.host_user_id,
                    "invitee_name": request.invitee_name.strip(),
                    "invitee_email": request.invitee_email,
                    "invitee_phone": request.invitee_phone,
                    "start_at": plan.start_at,
                    "end_at": plan.end_at,
                    "status": plan.status,
                    "location": request.location,
                    "source": request.source,
                    "booking_metadata": request.metadata,
                }
            )
        except BookingRejection as rejection:
            self._log_rejection(request, rejection)
            return rejected(rejection)

        logger.info(
            f"✅ Booking {booking.id} accepted for workspace {request.workspace_id} ({plan.status})"
        )
        await self._after_accept(booking.id, request)
        return BookingAccepted(
            booking_id=booking.id,
            status=booking.status,
            start_at=plan.start_at,
            end_at=plan.end_at,
            timezone=plan.timezone,
        )

    async def evaluate_and_reschedule(
        self, booking_id: str, request: BookingRequest, now: Optional[datetime] = None
    ) -> BookingDecision:
        """Move an existing booking; it never conflicts with itself"""
        try:
            plan = await self._check(request, now, exclude_booking_id=booking_id)
            booking = await self.booking_store.reschedule(
                request.workspace_id, booking_id, plan.start_at, plan.end_at
            )
            if booking is None:
                raise ValidationError("Booking not found.")
        except BookingRejection as rejection:
            self._log_rejection(request, rejection)
            return rejected(rejection)

        logger.info(f"✅ Booking {booking_id} rescheduled to {plan.start_at.isoformat()}")
        return BookingAccepted(
            booking_id=booking.id,
            status=booking.status,
            start_at=plan.start_at,
            end_at=plan.end_at,
            timezone=plan.timezone,
        )

    async def _after_accept(self, booking_id: str, request: BookingRequest) -> None:
        """Best-effort side effects; a failure here never un-accepts the booking"""
        if self.contact_resolver is not None:
            try:
                contact_id = await self.contact_resolver.find_or_create(
                    request.workspace_id,
                    request.invitee_name,
                    request.invitee_email,
                    request.invitee_phone,
                )
                if contact_id:
                    await self.booking_store.set_contact(booking_id, contact_id)
            except Exception as e:
                logger.warning(f"⚠️ Could not link contact for booking {booking_id}: {e}")

        if self.enqueue is not None:
            try:
                await asyncio.wait_for(self.enqueue(SYNC_BOOKING_TASK, booking_id), self.enqueue_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"⚠️ Queuing calendar sync for booking {booking_id} timed out after {self.enqueue_timeout}s"
                )
            except Exception as e:
                logger.warning(f"⚠️ Could not queue calendar sync for booking {booking_id}: {e}")


def day_bounds_utc(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


class BookingService:
    """Service layer for booking reads and status changes"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()

    def list_bookings(
        self,
        workspace_id: int,
        day: Optional[date] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        provider_id: Optional[str] = None,
        status: Optional[str] = None,
        include_cancelled: bool = True,
    ) -> list[Booking]:
        range_start = range_end = None
        if day:
            range_start, range_end = day_bounds_utc(day)
        if start_date and end_date:
            range_start = day_bounds_utc(start_date)[0]
            range_end = day_bounds_utc(end_date)[1]
        try:
            return self.repo.get_bookings(
                self.db,
                workspace_id,
                range_start,
                range_end,
                provider_id=provider_id,
                status=status,
                include_cancelled=include_cancelled,
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to list bookings for workspace {workspace_id}: {e}")
            raise StoreError() from e

    def get_booking(self, workspace_id: int, booking_id: str) -> Booking:
        booking = self.repo.get_booking(self.db, workspace_id, booking_id)
        if not booking:
            raise HTTPException(status_code=404, detail="Booking not found")
        return booking

    def update_booking(self, workspace_id: int, booking_id: str, data: BookingUpdate) -> Booking:
        """Apply status and location changes (time changes go through BookingGate)"""
        booking = self.get_booking(workspace_id, booking_id)
        if booking.status == "cancelled" and data.status not in (None, "cancelled"):
            raise HTTPException(
                status_code=400,
                detail="Cancelled bookings cannot be reactivated. Please create a new booking.",
            )

        updates = {}
        if data.status is not None:
            updates["status"] = data.status
        if data.location is not None:
            updates["location"] = data.location
        if not updates:
            return booking

        logger.info(f"📝 Updating booking {booking_id}: {updates}")
        return self.repo.update_booking(self.db, booking, **updates)
