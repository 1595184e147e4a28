"""Booking repository - candidate lookups and serialized writes

Accepting a booking is check-then-insert. To keep two concurrent requests
from both passing the check, every write for a workspace runs under a
per-workspace asyncio lock (one process) and a ``SELECT ... FOR UPDATE`` on
the workspace row (across processes), and overlaps are checked again inside
that transaction before anything is written.
"""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ...database import SessionLocal
from ...models import Booking, Workspace
from ..availability.conflicts import INACTIVE_STATUSES, BookingCandidate, find_booking_conflict
from ..availability.errors import BookingConflictError, StoreError
from ..availability.timezone_resolver import ensure_utc

logger = logging.getLogger(__name__)

# Locks live only while a request holds or waits on them. They are bound to the
# event loop that first contends them, so one process serves from one loop.
_workspace_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def workspace_lock(workspace_id: int) -> asyncio.Lock:
    lock = _workspace_locks.get(workspace_id)
    if lock is None:
        lock = _workspace_locks[workspace_id] = asyncio.Lock()
    return lock


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def to_candidate(booking: Booking) -> BookingCandidate:
    return BookingCandidate(
        start_at=ensure_utc(booking.start_at),
        end_at=to_utc(booking.end_at),
        status=booking.status,
        service_provider_id=booking.service_provider_id,
        id=booking.id,
    )


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_overlap_candidates(
        db: Session,
        workspace_id: int,
        range_start: datetime,
        range_end: datetime,
        provider_id: Optional[str] = None,
    ) -> list[Booking]:
        """Active bookings that touch ``[range_start, range_end]`` (inclusive superset)"""
        query = db.query(Booking).filter(
            Booking.workspace_id == workspace_id,
            Booking.status.notin_(tuple(INACTIVE_STATUSES)),
            Booking.start_at <= to_utc(range_end),
            func.coalesce(Booking.end_at, Booking.start_at) >= to_utc(range_start),
        )
        if provider_id:
            query = query.filter(Booking.service_provider_id == str(provider_id))
        return query.order_by(Booking.start_at.asc()).all()

    @staticmethod
    def get_bookings(
        db: Session,
        workspace_id: int,
        range_start: Optional[datetime] = None,
        range_end: Optional[datetime] = None,
        provider_id: Optional[str] = None,
        status: Optional[str] = None,
        include_cancelled: bool = True,
    ) -> list[Booking]:
        """Bookings whose start falls in the optional range"""
        query = db.query(Booking).filter(Booking.workspace_id == workspace_id)
        if range_start is not None:
            query = query.filter(Booking.start_at >= to_utc(range_start))
        if range_end is not None:
            query = query.filter(Booking.start_at <= to_utc(range_end))
        if provider_id:
            query = query.filter(Booking.service_provider_id == str(provider_id))
        if status:
            query = query.filter(Booking.status == status)
        elif not include_cancelled:
            query = query.filter(Booking.status.notin_(tuple(INACTIVE_STATUSES)))
        return query.order_by(Booking.start_at.asc()).all()

    @staticmethod
    def get_booking(db: Session, workspace_id: int, booking_id: str) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.workspace_id == workspace_id)
            .first()
        )

    @staticmethod
    def lock_workspace(db: Session, workspace_id: int) -> Optional[Workspace]:
        """Row lock held until commit; a no-op on SQLite, which serializes writers anyway"""
        return db.query(Workspace).filter(Workspace.id == workspace_id).with_for_update().first()

    @staticmethod
    def update_booking(db: Session, booking: Booking, **updates) -> Booking:
        for key, value in updates.items():
            if value is not None and hasattr(booking, key):
                setattr(booking, key, value)
        db.commit()
        db.refresh(booking)
        return booking


class SqlBookingStore:
    """Booking store used by BookingGate; every call owns its session"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def _run(self, operation, description: str):
        db = self.session_factory()
        try:
            return operation(db)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to {description}: {e}")
            raise StoreError() from e
        finally:
            db.close()

    async def list_bookings_for_range(
        self,
        workspace_id: int,
        range_start: datetime,
        range_end: datetime,
        provider_id: Optional[str] = None,
    ) -> list[BookingCandidate]:
        """
        Candidate bookings for conflict checks.

        ``provider_id`` narrows the read; without it every booking in the
        workspace is returned, which is what makes unassigned requests
        conflict workspace-wide.
        """

        def operation(db: Session):
            bookings = BookingRepository.get_overlap_candidates(
                db, workspace_id, range_start, range_end, provider_id
            )
            return [to_candidate(b) for b in bookings]

        return await run_in_threadpool(
            self._run, operation, f"list bookings for workspace {workspace_id}"
        )

    def _insert_locked(self, booking_data: dict[str, Any]) -> Booking:
        workspace_id = booking_data["workspace_id"]
        start_at = to_utc(booking_data["start_at"])
        end_at = to_utc(booking_data.get("end_at"))
        provider_id = booking_data.get("service_provider_id")

        db = self.session_factory()
        try:
            BookingRepository.lock_workspace(db, workspace_id)
            candidates = [
                to_candidate(b)
                for b in BookingRepository.get_overlap_candidates(
                    db, workspace_id, start_at, end_at or start_at, provider_id
                )
            ]
            if find_booking_conflict(start_at, end_at or start_at, candidates, provider_id):
                db.rollback()
                logger.warning(
                    f"⚠️ Booking for workspace {workspace_id} at {start_at.isoformat()} "
                    f"lost the race to a concurrent booking"
                )
                raise BookingConflictError()

            booking = Booking(**{**booking_data, "start_at": start_at, "end_at": end_at})
            db.add(booking)
            db.commit()
            db.refresh(booking)
            return booking
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to insert booking for workspace {workspace_id}: {e}")
            raise StoreError() from e
        finally:
            db.close()

    async def insert(self, booking_data: dict[str, Any]) -> Booking:
        """Re-check overlaps and insert under the workspace's serialization point"""
        async with workspace_lock(booking_data["workspace_id"]):
            return await run_in_threadpool(self._insert_locked, booking_data)

    def _reschedule_locked(
        self, workspace_id: int, booking_id: str, start_at: datetime, end_at: Optional[datetime]
    ) -> Optional[Booking]:
        start_at = to_utc(start_at)
        end_at = to_utc(end_at)

        db = self.session_factory()
        try:
            BookingRepository.lock_workspace(db, workspace_id)
            booking = BookingRepository.get_booking(db, workspace_id, booking_id)
            if not booking:
                return None

            candidates = [
                to_candidate(b)
                for b in BookingRepository.get_overlap_candidates(
                    db, workspace_id, start_at, end_at or start_at, booking.service_provider_id
                )
            ]
            if find_booking_conflict(
                start_at,
                end_at or start_at,
                candidates,
                booking.service_provider_id,
                exclude_booking_id=booking_id,
            ):
                db.rollback()
                raise BookingConflictError()

            booking.start_at = start_at
            booking.end_at = end_at
            db.commit()
            db.refresh(booking)
            return booking
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"❌ Failed to reschedule booking {booking_id}: {e}")
            raise StoreError() from e
        finally:
            db.close()

    async def reschedule(
        self, workspace_id: int, booking_id: str, start_at: datetime, end_at: Optional[datetime]
    ) -> Optional[Booking]:
        """Move a booking, re-checking overlaps (excluding itself) under the workspace lock"""
        async with workspace_lock(workspace_id):
            return await run_in_threadpool(
                self._reschedule_locked, workspace_id, booking_id, start_at, end_at
            )

    async def set_contact(self, booking_id: str, contact_id: int) -> None:
        def operation(db: Session):
            booking = db.query(Booking).filter(Booking.id == booking_id).first()
            if booking:
                BookingRepository.update_booking(db, booking, contact_id=contact_id)

        await run_in_threadpool(self._run, operation, f"link contact to booking {booking_id}")
