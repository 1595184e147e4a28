from datetime import date, datetime, timedelta, timezone

import time

import pytest

from app.domain.availability.errors import InvalidTimezoneError
from app.domain.availability.timezone_resolver import (
    day_name,
    get_zone,
    is_valid_timezone,
    local_datetime_to_instant,
    local_end_minutes,
    parse_instant,
    resolve_local_parts,
    resolve_timezone,
)
from conftest import utc


def test_resolves_parts_in_workspace_zone():
    parts = resolve_local_parts(utc(2024, 6, 10, 13, 30), "America/New_York")
    assert parts.day_name == "Mon"
    assert parts.day_of_week == 1
    assert (parts.hour, parts.minute) == (9, 30)
    assert parts.minute_of_day == 570
    assert parts.date_str == "2024-06-10"


def test_utc_monday_can_be_local_sunday():
    parts = resolve_local_parts(utc(2024, 6, 10, 2, 0), "America/New_York")
    assert parts.day_name == "Sun"
    assert parts.hour == 22
    assert parts.date_str == "2024-06-09"


def test_naive_instant_is_utc():
    naive = datetime(2024, 6, 10, 13, 30)
    assert resolve_local_parts(naive, "America/New_York") == resolve_local_parts(
        utc(2024, 6, 10, 13, 30), "America/New_York"
    )


@pytest.mark.parametrize("name", ["Not/AZone", "", "   ", "America", None])
def test_invalid_zones(name):
    assert not is_valid_timezone(name)
    if name:
        with pytest.raises(InvalidTimezoneError):
            get_zone(name)


def test_resolve_local_parts_rejects_invalid_zone():
    with pytest.raises(InvalidTimezoneError):
        resolve_local_parts(utc(2024, 6, 10, 12), "Mars/Olympus_Mons")


def test_timezone_precedence_skips_invalid_candidates():
    assert resolve_timezone("Bad/Zone", "Europe/Berlin", "UTC") == "Europe/Berlin"
    assert resolve_timezone(None, "", "Asia/Tokyo") == "Asia/Tokyo"
    assert resolve_timezone("Bad/Zone", None) is None


def test_parse_instant_accepts_z_suffix():
    assert parse_instant("2024-06-10T13:30:00Z") == utc(2024, 6, 10, 13, 30)
    assert parse_instant("2024-06-10T09:30:00-04:00") == utc(2024, 6, 10, 13, 30)
    with pytest.raises(ValueError):
        parse_instant("")


def test_end_on_next_local_day_keeps_counting():
    start = resolve_local_parts(utc(2024, 6, 11, 3, 0), "America/New_York")  # Mon 23:00
    end = resolve_local_parts(utc(2024, 6, 11, 5, 0), "America/New_York")  # Tue 01:00
    assert local_end_minutes(start, end) == 24 * 60 + 60


def test_local_datetime_round_trip():
    instant = local_datetime_to_instant(date(2024, 6, 10), 9 * 60, "Asia/Tokyo")
    assert instant == utc(2024, 6, 10, 0, 0)
    parts = resolve_local_parts(instant, "Asia/Tokyo")
    assert (parts.day_name, parts.minute_of_day, parts.date_str) == ("Mon", 540, "2024-06-10")


def test_day_name():
    assert [day_name(i) for i in range(7)] == ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def test_zone_result_ignores_host_timezone(host_tz):
    instant = utc(2024, 6, 10, 2, 0)
    parts = resolve_local_parts(instant, "America/New_York")
    assert (parts.day_name, parts.hour, parts.date_str) == ("Sun", 22, "2024-06-09")
    assert local_datetime_to_instant(date(2024, 6, 9), 22 * 60, "America/New_York") == instant


def test_degraded_path_uses_host_clock(host_tz):
    instant = utc(2024, 6, 10, 13, 30)
    expected = instant.astimezone()
    parts = resolve_local_parts(instant, None)
    assert (parts.hour, parts.minute) == (expected.hour, expected.minute)
    assert parts.date_str == expected.date().isoformat()


def test_degraded_path_under_japan_time(monkeypatch):
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "JST-9")
    time.tzset()
    try:
        parts = resolve_local_parts(utc(2024, 6, 10, 13, 30), None)
        assert (parts.day_name, parts.hour, parts.minute) == ("Mon", 22, 30)
        assert local_datetime_to_instant(date(2024, 6, 10), 22 * 60 + 30, None) == utc(2024, 6, 10, 13, 30)
    finally:
        monkeypatch.undo()
        time.tzset()


def test_dst_gap_slot_lands_on_real_instant():
    # 2024-03-10 02:30 does not exist in New York; zoneinfo resolves it with fold=0 (EST offset)
    instant = local_datetime_to_instant(date(2024, 3, 10), 2 * 60 + 30, "America/New_York")
    assert instant.tzinfo == timezone.utc
    assert instant - local_datetime_to_instant(date(2024, 3, 10), 60, "America/New_York") == timedelta(hours=1, minutes=30)
