"""Availability repository - workspace settings and event type lookups

The settings blob is user-edited JSON. It is validated here, once, into
``AvailabilitySettings``; anything malformed is dropped with a warning so the
engine only ever sees well-formed data and a broken day can only make a slot
unavailable, never available.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ...database import SessionLocal
from ...models import EventType, Workspace, WorkspaceConfiguration
from .errors import StoreError
from .schemas import (
    DAY_NAMES,
    INDIVIDUAL_KEY_RE,
    AvailabilitySettings,
    DaySchedule,
    IndividualOverrides,
    ProviderOverrideLayer,
    WeeklySchedule,
)
from .timezone_resolver import is_valid_timezone

logger = logging.getLogger(__name__)


def _parse_timesheet(raw: Any, owner: str) -> WeeklySchedule:
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning(f"⚠️ Ignoring non-object timesheet for {owner}")
        return {}

    timesheet: WeeklySchedule = {}
    for day_name, day_raw in raw.items():
        if day_name not in DAY_NAMES:
            logger.warning(f"⚠️ Ignoring unknown day {day_name!r} in timesheet for {owner}")
            continue
        try:
            timesheet[day_name] = DaySchedule.model_validate(day_raw)
        except PydanticValidationError as e:
            # Fail closed: a day we cannot read is a day nobody can book
            logger.warning(f"⚠️ Malformed {day_name} schedule for {owner}, treating as disabled: {e}")
            timesheet[day_name] = DaySchedule(enabled=False)
    return timesheet


def _parse_individual(raw: Any, owner: str) -> IndividualOverrides:
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning(f"⚠️ Ignoring non-object individual overrides for {owner}")
        return {}

    individual: IndividualOverrides = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not INDIVIDUAL_KEY_RE.match(key) or not isinstance(value, bool):
            logger.warning(f"⚠️ Ignoring malformed individual override {key!r}={value!r} for {owner}")
            continue
        date_part, _, hour = key.rpartition("-")
        if int(hour) > 23:
            logger.warning(f"⚠️ Ignoring individual override with hour out of range: {key!r}")
            continue
        # Stored keys may zero-pad the hour; the evaluator looks them up unpadded
        individual[f"{date_part}-{int(hour)}"] = value
    return individual


def parse_availability_settings(
    settings: Optional[dict], workspace_timezone: Optional[str] = None
) -> AvailabilitySettings:
    """
    Build typed availability settings from a workspace configuration blob.

    Reads ``settings["availability"]`` (``timesheet``, ``individual``,
    ``providers``) and ``settings["notifications"]["auto-confirm-booking"]``.
    A missing blob yields empty settings, which disables every day.
    """
    settings = settings if isinstance(settings, dict) else {}
    availability = settings.get("availability")
    if not isinstance(availability, dict):
        availability = {}

    providers: dict[str, ProviderOverrideLayer] = {}
    raw_providers = availability.get("providers")
    if isinstance(raw_providers, dict):
        for provider_id, layer in raw_providers.items():
            if not isinstance(layer, dict):
                logger.warning(f"⚠️ Ignoring malformed availability layer for provider {provider_id}")
                continue
            owner = f"provider {provider_id}"
            providers[str(provider_id)] = ProviderOverrideLayer(
                timesheet=_parse_timesheet(layer.get("timesheet"), owner) or None,
                individual=_parse_individual(layer.get("individual"), owner) or None,
            )

    timezone_name = availability.get("timezone") or settings.get("timezone") or workspace_timezone
    if timezone_name and not is_valid_timezone(timezone_name):
        logger.warning(f"⚠️ Workspace timezone {timezone_name!r} is not a valid IANA zone, ignoring")
        timezone_name = None

    notifications = settings.get("notifications")
    auto_confirm = (
        isinstance(notifications, dict) and notifications.get("auto-confirm-booking") is True
    )

    return AvailabilitySettings(
        timesheet=_parse_timesheet(availability.get("timesheet"), "workspace"),
        individual=_parse_individual(availability.get("individual"), "workspace"),
        providers=providers,
        timezone=timezone_name,
        auto_confirm=auto_confirm,
    )


class AvailabilityRepository:
    """Repository for availability-related database reads"""

    @staticmethod
    def get_workspace(db: Session, workspace_id: int) -> Optional[Workspace]:
        return db.query(Workspace).filter(Workspace.id == workspace_id).first()

    @staticmethod
    def get_configuration(db: Session, workspace_id: int) -> Optional[WorkspaceConfiguration]:
        return (
            db.query(WorkspaceConfiguration)
            .filter(WorkspaceConfiguration.workspace_id == workspace_id)
            .first()
        )

    @staticmethod
    def get_event_type(db: Session, workspace_id: int, event_type_id: int) -> Optional[EventType]:
        return (
            db.query(EventType)
            .filter(EventType.id == event_type_id, EventType.workspace_id == workspace_id)
            .first()
        )


class SqlConfigurationStore:
    """
    Configuration store backed by SQLAlchemy.

    Each call opens its own session in the threadpool so the gate can run
    reads concurrently. Database failures surface as StoreError (fail closed).
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def _run(self, operation, description: str):
        db = self.session_factory()
        try:
            return operation(db)
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to {description}: {e}")
            raise StoreError() from e
        finally:
            db.close()

    def _load_settings(self, workspace_id: int) -> Optional[AvailabilitySettings]:
        def operation(db: Session):
            workspace = AvailabilityRepository.get_workspace(db, workspace_id)
            if not workspace:
                return None
            configuration = AvailabilityRepository.get_configuration(db, workspace_id)
            blob = configuration.settings if configuration else None
            return parse_availability_settings(blob, workspace.timezone)

        return self._run(operation, f"load availability settings for workspace {workspace_id}")

    async def get_availability_settings(self, workspace_id: int) -> Optional[AvailabilitySettings]:
        """Typed settings for the workspace, or None when the workspace does not exist"""
        return await run_in_threadpool(self._load_settings, workspace_id)

    async def get_event_type_duration(
        self, workspace_id: int, event_type_id: Optional[int]
    ) -> Optional[int]:
        if not event_type_id:
            return None

        def operation(db: Session):
            event_type = AvailabilityRepository.get_event_type(db, workspace_id, event_type_id)
            if not event_type or not event_type.duration_minutes or event_type.duration_minutes <= 0:
                return None
            return event_type.duration_minutes

        return await run_in_threadpool(
            self._run, operation, f"load event type {event_type_id} for workspace {workspace_id}"
        )

    async def workspace_exists(self, workspace_id: int) -> bool:
        def operation(db: Session):
            return AvailabilityRepository.get_workspace(db, workspace_id) is not None

        return await run_in_threadpool(self._run, operation, f"look up workspace {workspace_id}")
