"""Contact repository - find-or-create workspace contacts for bookings"""

import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ...database import SessionLocal
from ...models import Contact
from ...shared.validators import normalize_email, normalize_phone

logger = logging.getLogger(__name__)


class ContactRepository:
    """Repository for contact database operations"""

    @staticmethod
    def get_by_email(db: Session, workspace_id: int, email: str) -> Optional[Contact]:
        return (
            db.query(Contact)
            .filter(Contact.workspace_id == workspace_id, func.lower(Contact.email) == email)
            .first()
        )

    @staticmethod
    def get_by_phone(db: Session, workspace_id: int, phones: list[str]) -> Optional[Contact]:
        return (
            db.query(Contact)
            .filter(Contact.workspace_id == workspace_id, or_(*(Contact.phone == p for p in phones)))
            .first()
        )

    @staticmethod
    def create_contact(db: Session, workspace_id: int, **contact_data) -> Contact:
        contact = Contact(workspace_id=workspace_id, **contact_data)
        db.add(contact)
        db.commit()
        db.refresh(contact)
        return contact


def find_or_create_contact(
    db: Session,
    workspace_id: int,
    name: Optional[str],
    email: Optional[str],
    phone: Optional[str],
) -> Optional[int]:
    """
    Find a contact by email, then by phone, or create one.

    Email matches case-insensitively. Phones match on digits only, falling
    back to the raw value for contacts stored before normalization. Returns
    None when there is no identifier to link on.
    """
    email_norm = normalize_email(email)
    phone_norm = normalize_phone(phone)
    phone_raw = phone.strip() if phone and phone.strip() else None

    if not email_norm and not phone_norm:
        return None

    if email_norm:
        contact = ContactRepository.get_by_email(db, workspace_id, email_norm)
        if contact:
            return contact.id

    if phone_norm:
        phones = [phone_norm]
        if phone_raw and phone_raw != phone_norm:
            phones.append(phone_raw)
        contact = ContactRepository.get_by_phone(db, workspace_id, phones)
        if contact:
            return contact.id

    contact = ContactRepository.create_contact(
        db,
        workspace_id,
        name=name.strip() if name and name.strip() else None,
        email=email.strip() if email and email.strip() else None,
        phone=phone_norm or phone_raw,
    )
    logger.info(f"✅ Created contact {contact.id} for workspace {workspace_id}")
    return contact.id


class SqlContactResolver:
    """Async contact resolver used by BookingGate after a booking is stored"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def _find_or_create(self, workspace_id, name, email, phone) -> Optional[int]:
        db = self.session_factory()
        try:
            return find_or_create_contact(db, workspace_id, name, email, phone)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def find_or_create(
        self,
        workspace_id: int,
        name: Optional[str],
        email: Optional[str],
        phone: Optional[str],
    ) -> Optional[int]:
        return await run_in_threadpool(self._find_or_create, workspace_id, name, email, phone)
