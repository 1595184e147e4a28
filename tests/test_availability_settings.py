from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.domain.availability.errors import StoreError
from app.domain.availability.repository import SqlConfigurationStore, parse_availability_settings
from conftest import seed_workspace, weekday_timesheet


def test_parses_full_blob():
    settings = parse_availability_settings(
        {
            "availability": {
                "timesheet": weekday_timesheet(),
                "individual": {"2024-06-10-09": False, "2024-06-11-14": True},
                "providers": {
                    7: {"timesheet": {"Mon": {"enabled": True, "startTime": "13:00", "endTime": "18:00"}}}
                },
            },
            "notifications": {"auto-confirm-booking": True},
        },
        "Europe/Berlin",
    )
    assert settings.timesheet["Mon"].breaks[0].start == "12:00"
    assert settings.timesheet["Sun"].enabled is False
    assert settings.individual == {"2024-06-10-9": False, "2024-06-11-14": True}
    assert settings.providers["7"].timesheet["Mon"].startTime == "13:00"
    assert settings.providers["7"].individual is None
    assert settings.timezone == "Europe/Berlin"
    assert settings.auto_confirm is True


@pytest.mark.parametrize("blob", [None, {}, {"availability": "nope"}, []])
def test_missing_blob_yields_empty_settings(blob):
    settings = parse_availability_settings(blob)
    assert settings.timesheet == {}
    assert settings.auto_confirm is False


def test_malformed_day_is_disabled():
    settings = parse_availability_settings(
        {
            "availability": {
                "timesheet": {
                    "Mon": {"enabled": True, "startTime": "17:00", "endTime": "09:00"},
                    "Tue": {"enabled": True, "startTime": "nine", "endTime": "17:00"},
                    "Wed": {"enabled": True, "startTime": "09:00", "endTime": "17:00",
                            "breaks": [{"start": "13:00", "end": "12:00"}]},
                    "Funday": {"enabled": True},
                }
            }
        }
    )
    assert settings.timesheet["Mon"].enabled is False
    assert settings.timesheet["Tue"].enabled is False
    assert settings.timesheet["Wed"].enabled is False
    assert "Funday" not in settings.timesheet


def test_malformed_individual_entries_are_dropped():
    settings = parse_availability_settings(
        {
            "availability": {
                "individual": {
                    "2024-06-10-9": False,
                    "2024-06-10": False,
                    "2024-06-10-25": False,
                    "2024-06-10-10": "no",
                }
            }
        }
    )
    assert settings.individual == {"2024-06-10-9": False}


def test_timezone_precedence_and_validation():
    blob = {"availability": {"timezone": "Asia/Tokyo"}, "timezone": "Europe/Paris"}
    assert parse_availability_settings(blob, "UTC").timezone == "Asia/Tokyo"
    assert parse_availability_settings({"timezone": "Europe/Paris"}, "UTC").timezone == "Europe/Paris"
    assert parse_availability_settings({}, "Not/AZone").timezone is None


def test_auto_confirm_requires_true():
    assert parse_availability_settings({"notifications": {"auto-confirm-booking": "yes"}}).auto_confirm is False


@pytest.mark.asyncio
async def test_sql_store_reads_workspace(session_factory):
    seed_workspace(session_factory, workspace_id=3, tz="Asia/Tokyo", event_type_minutes=45)
    store = SqlConfigurationStore(session_factory)

    settings = await store.get_availability_settings(3)
    assert settings.timezone == "Asia/Tokyo"
    assert settings.timesheet["Mon"].enabled
    assert await store.get_event_type_duration(3, 30) == 45
    assert await store.get_event_type_duration(3, None) is None
    assert await store.get_event_type_duration(3, 999) is None
    assert await store.workspace_exists(3)
    assert not await store.workspace_exists(4)
    assert await store.get_availability_settings(4) is None


@pytest.mark.asyncio
async def test_sql_store_ignores_non_positive_duration(session_factory):
    seed_workspace(session_factory, event_type_minutes=0)
    assert await SqlConfigurationStore(session_factory).get_event_type_duration(1, 10) is None


@pytest.mark.asyncio
async def test_sql_store_wraps_database_errors():
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    store = SqlConfigurationStore(lambda: session)

    with pytest.raises(StoreError):
        await store.get_availability_settings(1)
    session.close.assert_called()
