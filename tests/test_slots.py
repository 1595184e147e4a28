from datetime import date, timedelta

import pytest

from app.domain.availability.conflicts import BookingCandidate, BusyPeriod
from app.domain.availability.engine import evaluate_interval
from app.domain.availability.errors import BookingRejection
from app.domain.availability.schedule_merger import merge_schedule
from app.domain.availability.slots import generate_day_slots, slot_reason
from conftest import MONDAY, NOW, WORKSPACE_TZ, make_settings, utc


def slots_for(schedule=None, day=MONDAY, duration=60, now=NOW, **kwargs):
    schedule = schedule or merge_schedule(make_settings())
    return generate_day_slots(schedule, day, WORKSPACE_TZ, duration, now=now, **kwargs)


def by_time(slots):
    return {slot.time: slot for slot in slots}


def test_hourly_monday():
    slots = slots_for()
    assert [s.time for s in slots] == [f"{h:02d}:00" for h in range(9, 17)]
    assert slots[0].display == "9:00 AM"
    assert slots[-1].display == "4:00 PM"
    assert slots[0].start_at == utc(2024, 6, 10, 13)
    assert slots[0].end_at == utc(2024, 6, 10, 14)

    lunch = by_time(slots)["12:00"]
    assert not lunch.available
    assert lunch.reason == "break"
    assert sum(1 for s in slots if s.available) == 7


def test_default_granularity_when_duration_unknown():
    slots = slots_for(duration=None)
    assert len(slots) == 16
    assert slots[1].time == "09:30"


def test_disabled_day_has_no_slots():
    assert slots_for(day=date(2024, 6, 9)) == []


def test_slot_reasons():
    schedule = merge_schedule(make_settings(individual={"2024-06-10-15": False}))
    bookings = [BookingCandidate(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15), "confirmed")]
    busy = [BusyPeriod(utc(2024, 6, 10, 18), utc(2024, 6, 10, 18, 30))]
    now = utc(2024, 6, 10, 13, 30)

    slots = by_time(slots_for(schedule, bookings=bookings, busy_periods=busy, now=now))
    assert slots["09:00"].reason == "past"
    assert slots["10:00"].reason == "booked"
    assert slots["11:00"].available
    assert slots["12:00"].reason == "break"
    assert slots["14:00"].reason == "calendar"
    assert slots["15:00"].reason == "unavailable"


def test_cancelled_booking_leaves_slot_open():
    bookings = [BookingCandidate(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15), "cancelled")]
    assert by_time(slots_for(bookings=bookings))["10:00"].available


def test_provider_scoped_bookings():
    bookings = [BookingCandidate(utc(2024, 6, 10, 14), utc(2024, 6, 10, 15), "confirmed", "8")]
    assert by_time(slots_for(bookings=bookings, provider_id="7"))["10:00"].available
    assert by_time(slots_for(bookings=bookings))["10:00"].reason == "booked"


def test_slots_match_gate_decisions():
    schedule = merge_schedule(make_settings(individual={"2024-06-10-15": False}))
    bookings = [BookingCandidate(utc(2024, 6, 10, 14, 30), utc(2024, 6, 10, 15, 30), "pending")]
    slots = slots_for(schedule, duration=45, bookings=bookings)

    for slot in slots:
        try:
            evaluate_interval(
                schedule,
                slot.start_at,
                slot.end_at,
                WORKSPACE_TZ,
                bookings,
                now=NOW,
            )
            decision = None
        except BookingRejection as rejection:
            decision = slot_reason(rejection)
        assert slot.reason == decision, slot.time


@pytest.mark.parametrize("tz_name, first_start", [("Asia/Tokyo", utc(2024, 6, 10, 0)), ("UTC", utc(2024, 6, 10, 9))])
def test_slot_instants_follow_zone(tz_name, first_start):
    slots = generate_day_slots(merge_schedule(make_settings()), MONDAY, tz_name, 60, now=NOW)
    assert slots[0].start_at == first_start
    assert slots[-1].end_at - slots[0].start_at == timedelta(hours=8)
