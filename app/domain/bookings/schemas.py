"""Booking domain schemas - requests, decisions and responses"""

from datetime import datetime
from typing import Any, Literal, Optional, Union

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...models import BOOKING_STATUSES
from ...shared.validators import validate_email, validate_phone
from ..availability.schemas import BusyInterval
from ..availability.timezone_resolver import ensure_utc


class BookingCreate(BaseModel):
    """Schema for an authenticated dashboard booking (workspace comes from the caller)"""

    event_type_id: Optional[int] = None
    service_provider_id: Optional[str] = None
    department_id: Optional[int] = None
    invitee_name: str = ""
    invitee_email: Optional[str] = None
    invitee_phone: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    timezone: Optional[str] = None  # IANA zone the client picked the slot in
    location: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("invitee_email")
    @classmethod
    def check_email(cls, v):
        return validate_email(v)

    @field_validator("invitee_phone")
    @classmethod
    def check_phone(cls, v):
        return validate_phone(v)

    @field_validator("service_provider_id", mode="before")
    @classmethod
    def provider_id_as_string(cls, v):
        if v is None or v == "":
            return None
        return str(v)


class EmbedBookingCreate(BookingCreate):
    """Schema for public widget submissions"""

    workspace_id: Optional[int] = None
    intake_form: Optional[dict[str, Any]] = None


class BookingRequest(BaseModel):
    """
    Engine input shared by both ingress paths.

    Fields are deliberately loose; BookingGate performs the validation so
    that a missing field becomes a ``validation_error`` rejection rather than
    a framework error.
    """

    workspace_id: Optional[int] = None
    service_provider_id: Optional[str] = None
    event_type_id: Optional[int] = None
    department_id: Optional[int] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    client_timezone: Optional[str] = None
    invitee_name: Optional[str] = None
    invitee_email: Optional[str] = None
    invitee_phone: Optional[str] = None
    location: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    source: str = "dashboard"
    host_user_id: Optional[int] = None

    @classmethod
    def from_create(cls, data: BookingCreate, workspace_id: Optional[int], **extra) -> "BookingRequest":
        metadata = dict(data.metadata or {})
        intake_form = getattr(data, "intake_form", None)
        if intake_form:
            metadata["intake_form"] = intake_form
        return cls(
            workspace_id=workspace_id,
            service_provider_id=data.service_provider_id,
            event_type_id=data.event_type_id,
            department_id=data.department_id,
            start_at=data.start_at,
            end_at=data.end_at,
            client_timezone=data.timezone,
            invitee_name=data.invitee_name,
            invitee_email=data.invitee_email,
            invitee_phone=data.invitee_phone,
            location=data.location,
            metadata=metadata or None,
            **extra,
        )


class BookingAccepted(BaseModel):
    accepted: Literal[True] = True
    booking_id: Optional[str] = None  # None for a dry-run evaluation
    status: str
    start_at: datetime
    end_at: Optional[datetime] = None
    timezone: Optional[str] = None


class BookingRejected(BaseModel):
    accepted: Literal[False] = False
    reason: str
    message: str
    retryable: bool = False
    http_status: int = Field(default=400, exclude=True)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.http_status,
            detail={"reason": self.reason, "message": self.message, "retryable": self.retryable},
        )


BookingDecision = Union[BookingAccepted, BookingRejected]


class BookingUpdate(BaseModel):
    """Status and time changes from the dashboard"""

    status: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    timezone: Optional[str] = None
    location: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        if v is not None and v not in BOOKING_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(BOOKING_STATUSES)}")
        return v


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    workspace_id: int
    event_type_id: Optional[int] = None
    service_provider_id: Optional[str] = None
    department_id: Optional[int] = None
    contact_id: Optional[int] = None
    invitee_name: str
    invitee_email: Optional[str] = None
    invitee_phone: Optional[str] = None
    start_at: datetime
    end_at: Optional[datetime] = None
    status: str
    location: Optional[str] = None
    source: str
    booking_metadata: Optional[dict[str, Any]] = Field(default=None, serialization_alias="metadata")
    created_at: Optional[datetime] = None

    @field_validator("start_at", "end_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v) if v is not None else v


class BookingSummary(BaseModel):
    """Minimal booking shape exposed to the public widget for availability previews"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    start_at: datetime
    end_at: Optional[datetime] = None
    status: str
    service_provider_id: Optional[str] = None

    @field_validator("start_at", "end_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v) if v is not None else v


class BookingListResponse(BaseModel):
    data: list[BookingSummary]
    calendar_busy: list[BusyInterval] = Field(default_factory=list)
