"""Tests for schedule descriptors and notification windows."""

from __future__ import annotations

from datetime import datetime, time, timezone

import pytest
from pydantic import ValidationError

from printwatch.config import NotificationSchedule
from printwatch.core.schedule import (
    BUSINESS_DAYS,
    ScheduleDescriptor,
    next_fire_time,
    next_window_opening,
    schedule_allows,
)

UTC = timezone.utc


def at(day: int, hour: int, minute: int = 0) -> datetime:
    """A datetime in the week of Monday 2024-03-04 (day 0 = Monday)."""
    return datetime(2024, 3, 4 + day, hour, minute, tzinfo=UTC)


def test_next_fire_same_day_later():
    descriptor = ScheduleDescriptor(days=BUSINESS_DAYS, at=time(9, 0))
    assert next_fire_time(descriptor, at(0, 8)) == at(0, 9)


def test_next_fire_is_strictly_after():
    descriptor = ScheduleDescriptor(days=BUSINESS_DAYS, at=time(9, 0))
    assert next_fire_time(descriptor, at(0, 9)) == at(1, 9)


def test_next_fire_skips_weekend():
    descriptor = ScheduleDescriptor(days=BUSINESS_DAYS, at=time(9, 0))
    assert next_fire_time(descriptor, at(4, 10)) == at(7, 9)


def test_next_fire_weekly():
    descriptor = ScheduleDescriptor(days=frozenset({2}), at=time(7, 30))
    assert next_fire_time(descriptor, at(2, 7, 30)) == at(9, 7, 30)


def test_next_fire_without_days():
    assert next_fire_time(ScheduleDescriptor(days=frozenset(), at=time(9)), at(0, 0)) is None


def test_always_allows():
    schedule = NotificationSchedule(mode="always")
    assert schedule_allows(schedule, at(5, 3))


@pytest.mark.parametrize(
    "moment, allowed",
    [
        (at(0, 8), True),
        (at(0, 17, 59), True),
        (at(0, 18), False),
        (at(0, 7, 59), False),
        (at(5, 12), False),
        (at(6, 12), False),
    ],
)
def test_business_hours(moment, allowed):
    schedule = NotificationSchedule(mode="business-hours", start_time="08:00", end_time="18:00")
    assert schedule_allows(schedule, moment) is allowed


def test_scheduled_days():
    schedule = NotificationSchedule(mode="scheduled", days=[5, 6], start_time="10:00", end_time="14:00")
    assert schedule_allows(schedule, at(5, 11))
    assert not schedule_allows(schedule, at(0, 11))


def test_overnight_window_belongs_to_start_day():
    schedule = NotificationSchedule(mode="scheduled", days=[4], start_time="22:00", end_time="06:00")
    assert schedule_allows(schedule, at(4, 23))
    # Saturday 02:00 is still Friday's night shift
    assert schedule_allows(schedule, at(5, 2))
    assert not schedule_allows(schedule, at(4, 2))


def test_equal_start_and_end_means_all_day():
    schedule = NotificationSchedule(mode="business-hours", start_time="00:00", end_time="00:00")
    assert schedule_allows(schedule, at(2, 3))
    assert not schedule_allows(schedule, at(6, 3))


def test_next_window_opening():
    schedule = NotificationSchedule(mode="business-hours", start_time="08:00", end_time="18:00")
    assert next_window_opening(schedule, at(4, 19)) == at(7, 8)
    assert next_window_opening(schedule, at(1, 12)) == at(1, 12)


@pytest.mark.parametrize("field, value", [("start_time", "25:00"), ("end_time", "noon"), ("days", [7])])
def test_invalid_schedule_rejected(field, value):
    with pytest.raises(ValidationError):
        NotificationSchedule(**{field: value})
