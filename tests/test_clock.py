from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from pygsds.clock import ReferenceClock, parse_time_to_minutes, seconds_until

NY = ZoneInfo("America/New_York")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("09:05", 9 * 60 + 5),
        ("9:05", 9 * 60 + 5),
        ("21:30:15", 21 * 60 + 30),
        ("1:30 pm", 13 * 60 + 30),
        ("1:30PM", 13 * 60 + 30),
        ("12:00 am", 0),
        ("12:15 pm", 12 * 60 + 15),
        ("starts 7:45am sharp", 7 * 60 + 45),
    ],
)
def test_parse_time_to_minutes(text: str, expected: int) -> None:
    assert parse_time_to_minutes(text) == expected


@pytest.mark.parametrize("text", [None, "", "noon", "25:00", "10:75", "9"])
def test_parse_time_to_minutes_rejects_garbage(text: str | None) -> None:
    assert parse_time_to_minutes(text) is None


def test_now_is_expressed_in_reference_zone_regardless_of_source_zone() -> None:
    utc_instant = datetime(2026, 3, 2, 14, 0, tzinfo=ZoneInfo("UTC"))
    clock = ReferenceClock("America/New_York", now=lambda: utc_instant)

    now = clock.now()

    assert now.tzinfo == NY
    assert (now.hour, now.minute) == (9, 0)
    assert clock.minutes_of_day() == 9 * 60
    assert clock.now_ms() == int(utc_instant.timestamp() * 1000)


def test_next_occurrence_today_or_tomorrow() -> None:
    clock = ReferenceClock("America/New_York")
    now = datetime(2026, 3, 2, 8, 56, tzinfo=NY)

    later_today = clock.next_occurrence("09:00", now)
    already_passed = clock.next_occurrence("08:00", now)
    exactly_now = clock.next_occurrence("08:56", now)

    assert later_today == datetime(2026, 3, 2, 9, 0, tzinfo=NY)
    assert already_passed == datetime(2026, 3, 3, 8, 0, tzinfo=NY)
    assert exactly_now == datetime(2026, 3, 3, 8, 56, tzinfo=NY)
    assert clock.next_occurrence("soon", now) is None


def test_next_midnight_adds_margin() -> None:
    clock = ReferenceClock("America/New_York")
    now = datetime(2026, 3, 2, 23, 59, 50, tzinfo=NY)

    assert clock.next_midnight(now) == datetime(2026, 3, 3, 0, 0, 5, tzinfo=NY)


def test_seconds_until_honours_dst_change() -> None:
    # 2026-03-08 02:00 EST -> 03:00 EDT: only 23 real hours in the day.
    before = datetime(2026, 3, 8, 0, 0, tzinfo=NY)
    after = datetime(2026, 3, 9, 0, 0, tzinfo=NY)

    assert seconds_until(after, before) == 23 * 3600
