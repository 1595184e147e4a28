"""
Google Calendar Service
Busy-period reads for availability checks and event creation for accepted bookings
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
from cryptography.fernet import Fernet
from sqlalchemy.orm import Session

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, SECRET_KEY
from ..database import SessionLocal
from ..domain.availability.conflicts import BusyPeriod
from ..domain.availability.errors import CalendarProviderError
from ..domain.availability.timezone_resolver import ensure_utc, parse_instant
from ..models import Booking
from ..models_google_calendar import GoogleCalendarIntegration

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
HTTP_TIMEOUT_SECONDS = 10.0


def get_cipher() -> Fernet:
    return Fernet(SECRET_KEY.encode()[:44].ljust(44, b'='))


def get_integration(db: Session, workspace_id: int) -> Optional[GoogleCalendarIntegration]:
    return db.query(GoogleCalendarIntegration).filter(
        GoogleCalendarIntegration.workspace_id == workspace_id
    ).first()


def _utcnow_naive() -> datetime:
    # token_expires_at is stored as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_valid_access_token(integration: GoogleCalendarIntegration, db: Session) -> Optional[str]:
    """
    Get a valid access token, refreshing if necessary
    Returns None if refresh fails
    """
    try:
        cipher_suite = get_cipher()
        # Refresh when expired or about to expire (within 5 minutes)
        if integration.token_expires_at > _utcnow_naive() + timedelta(minutes=5):
            return cipher_suite.decrypt(integration.access_token.encode()).decode()

        logger.info(f"🔄 Google Calendar token expired for workspace {integration.workspace_id}, refreshing...")
        refresh_token = cipher_suite.decrypt(integration.refresh_token.encode()).decode()

        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": GOOGLE_CLIENT_ID,
                    "client_secret": GOOGLE_CLIENT_SECRET,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token"
                }
            )

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            return None

        tokens = response.json()
        new_access_token = tokens.get("access_token")
        expires_in = tokens.get("expires_in", 3600)

        if not new_access_token:
            logger.error("❌ No access token in refresh response")
            return None

        integration.access_token = cipher_suite.encrypt(new_access_token.encode()).decode()
        integration.token_expires_at = _utcnow_naive() + timedelta(seconds=expires_in)
        db.commit()

        logger.info("✅ Google Calendar token refreshed successfully")
        return new_access_token

    except Exception as e:
        logger.error(f"❌ Error getting valid access token: {str(e)}")
        return None


def parse_busy_response(payload: dict[str, Any], calendar_id: str) -> list[BusyPeriod]:
    """Extract busy periods from a freebusy response; malformed entries are skipped"""
    calendar = (payload.get("calendars") or {}).get(calendar_id) or {}
    if calendar.get("errors"):
        raise CalendarProviderError(f"Calendar {calendar_id} returned errors: {calendar['errors']}")

    periods = []
    for entry in calendar.get("busy") or []:
        try:
            periods.append(BusyPeriod(parse_instant(entry["start"]), parse_instant(entry["end"])))
        except (KeyError, TypeError, ValueError):
            logger.warning(f"⚠️ Skipping malformed busy entry from Google Calendar: {entry!r}")
    return periods


async def fetch_busy_slots(
    workspace_id: int, time_min: datetime, time_max: datetime, db: Session
) -> list[BusyPeriod]:
    """
    Read busy periods from the workspace's connected calendar.

    Returns [] when no calendar is connected or busy checks are disabled.
    Raises CalendarProviderError when the calendar cannot be read.
    """
    integration = get_integration(db, workspace_id)
    if not integration or not integration.check_busy_enabled:
        return []

    access_token = await get_valid_access_token(integration, db)
    if not access_token:
        raise CalendarProviderError(f"No valid Google Calendar token for workspace {workspace_id}")

    calendar_id = integration.google_calendar_id or "primary"
    body = {
        "timeMin": ensure_utc(time_min).isoformat(),
        "timeMax": ensure_utc(time_max).isoformat(),
        "items": [{"id": calendar_id}],
    }
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
            response = await client.post(
                f"{GOOGLE_CALENDAR_API}/freeBusy",
                headers={"Authorization": f"Bearer {access_token}"},
                json=body
            )
    except httpx.HTTPError as e:
        raise CalendarProviderError(f"Google Calendar free/busy request failed: {e}") from e

    if response.status_code != 200:
        raise CalendarProviderError(
            f"Google Calendar free/busy returned {response.status_code}: {response.text}"
        )

    try:
        payload = response.json()
    except ValueError as e:
        raise CalendarProviderError(f"Google Calendar free/busy returned invalid JSON: {e}") from e
    return parse_busy_response(payload, calendar_id)


class GoogleCalendarBusyProvider:
    """Calendar busy-slot provider used by BookingGate and the availability endpoints"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    async def get_busy_slots(
        self, workspace_id: int, time_min: datetime, time_max: datetime
    ) -> list[BusyPeriod]:
        db = self.session_factory()
        try:
            return await fetch_busy_slots(workspace_id, time_min, time_max, db)
        except CalendarProviderError:
            raise
        except Exception as e:
            raise CalendarProviderError(f"Calendar busy lookup failed: {e}") from e
        finally:
            db.close()


def build_event_data(booking: Booking) -> dict[str, Any]:
    event_title = booking.event_type.title if booking.event_type else "Appointment"
    start_at = ensure_utc(booking.start_at)
    end_at = ensure_utc(booking.end_at) if booking.end_at else start_at

    event_data = {
        "summary": f"{event_title} - {booking.invitee_name}",
        "description": f"Booked via {booking.source}",
        "start": {"dateTime": start_at.isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": end_at.isoformat(), "timeZone": "UTC"},
        "extendedProperties": {"shared": {"bookingId": booking.id}},
    }
    if booking.location:
        event_data["location"] = booking.location
    if booking.invitee_email:
        event_data["attendees"] = [{"email": booking.invitee_email}]
    return event_data


async def create_calendar_event(booking: Booking, db: Session) -> Optional[str]:
    """
    Create a Google Calendar event for an accepted booking
    Returns the Google Calendar event ID, or None when the workspace has no
    calendar to sync to. Raises CalendarProviderError when Google could not
    be reached or refused the event, so the caller can retry.
    """
    integration = get_integration(db, booking.workspace_id)
    if not integration or not integration.auto_sync_enabled:
        logger.info("ℹ️ Google Calendar not connected or auto-sync disabled")
        return None

    access_token = await get_valid_access_token(integration, db)
    if not access_token:
        logger.error("❌ Failed to get valid access token")
        raise CalendarProviderError(f"No valid Google Calendar token for workspace {booking.workspace_id}")

    calendar_id = integration.google_calendar_id or "primary"
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
            response = await client.post(
                f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events",
                headers={"Authorization": f"Bearer {access_token}"},
                params={"sendUpdates": "none"},
                json=build_event_data(booking)
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ Error creating calendar event: {str(e)}")
        raise CalendarProviderError(f"Google Calendar event request failed: {e}") from e

    if response.status_code not in [200, 201]:
        logger.error(f"❌ Failed to create calendar event: {response.text}")
        raise CalendarProviderError(
            f"Google Calendar event creation returned {response.status_code}: {response.text}"
        )

    event_id = response.json().get("id")
    logger.info(f"✅ Google Calendar event created: {event_id}")
    return event_id
