import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed", "rescheduled")


def generate_booking_id() -> str:
    return str(uuid.uuid4())


class Workspace(Base):
    __tablename__ = "workspaces"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. "America/New_York"
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    configuration = relationship(
        "WorkspaceConfiguration", back_populates="workspace", uselist=False, cascade="all, delete-orphan"
    )
    event_types = relationship("EventType", back_populates="workspace", cascade="all, delete-orphan")
    departments = relationship("Department", back_populates="workspace", cascade="all, delete-orphan")
    service_providers = relationship(
        "ServiceProvider", back_populates="workspace", cascade="all, delete-orphan"
    )


class WorkspaceConfiguration(Base):
    """Per-workspace settings blob.

    ``settings["availability"]`` holds ``timesheet``, ``individual`` and
    ``providers``; ``settings["notifications"]["auto-confirm-booking"]``
    controls the initial booking status. The blob is validated into typed
    structures by the availability repository before the engine sees it.
    """

    __tablename__ = "configurations"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), unique=True, nullable=False)
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    workspace = relationship("Workspace", back_populates="configuration")


class User(Base):
    """Dashboard user; authenticated with a Firebase ID token"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    workspace = relationship("Workspace")


class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)

    workspace = relationship("Workspace", back_populates="departments")


class ServiceProvider(Base):
    __tablename__ = "service_providers"

    id = Column(String(64), primary_key=True)  # external user id (auth provider uid)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)

    workspace = relationship("Workspace", back_populates="service_providers")


class EventType(Base):
    __tablename__ = "event_types"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    workspace = relationship("Workspace", back_populates="event_types")


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True, index=True)  # digits only
    created_at = Column(DateTime, server_default=func.now())


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (Index("ix_bookings_workspace_start", "workspace_id", "start_at"),)

    id = Column(String(36), primary_key=True, default=generate_booking_id)
    workspace_id = Column(Integer, ForeignKey("workspaces.id"), nullable=False)
    event_type_id = Column(Integer, ForeignKey("event_types.id"), nullable=True)
    # No hard FK: providers may be removed while their bookings remain
    service_provider_id = Column(String(64), nullable=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    contact_id = Column(Integer, ForeignKey("contacts.id"), nullable=True)
    host_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    invitee_name = Column(String(255), nullable=False)
    invitee_email = Column(String(255), nullable=True)
    invitee_phone = Column(String(50), nullable=True)

    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=True)  # null = point-in-time booking
    status = Column(String(20), nullable=False, default="pending")
    location = Column(String(500), nullable=True)
    source = Column(String(20), nullable=False, default="dashboard")  # dashboard, embed
    booking_metadata = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    event_type = relationship("EventType")
    contact = relationship("Contact")
