"""Day-of-week/time-of-day schedules for notification gating."""

from __future__ import annotations

from datetime import datetime, time, timedelta

from pydantic import BaseModel, ConfigDict

from printwatch.config import NotificationSchedule, parse_hhmm

BUSINESS_DAYS = frozenset(range(5))  # Monday-Friday


class ScheduleDescriptor(BaseModel):
    """A set of weekdays (0 = Monday) and a time of day."""

    model_config = ConfigDict(frozen=True)

    days: frozenset[int]
    at: time


def next_fire_time(descriptor: ScheduleDescriptor, after: datetime) -> datetime | None:
    """First datetime strictly after ``after`` matching the descriptor."""
    if not descriptor.days:
        return None
    for offset in range(8):
        day = (after + timedelta(days=offset)).date()
        if day.weekday() not in descriptor.days:
            continue
        candidate = datetime.combine(day, descriptor.at, tzinfo=after.tzinfo)
        if candidate > after:
            return candidate
    return None


def _window_days(schedule: NotificationSchedule) -> frozenset[int]:
    if schedule.mode == "business-hours":
        return BUSINESS_DAYS
    return frozenset(schedule.days)


def _in_range(t: time, start: time, end: time) -> bool:
    if start == end:
        return True
    if start < end:
        return start <= t < end
    return t >= start or t < end


def schedule_allows(schedule: NotificationSchedule, now: datetime) -> bool:
    """Whether a notification may be dispatched at ``now``."""
    if schedule.mode == "always":
        return True
    start = parse_hhmm(schedule.start_time)
    end = parse_hhmm(schedule.end_time)
    current = now.time().replace(tzinfo=None)
    if not _in_range(current, start, end):
        return False
    weekday = now.weekday()
    # After midnight in a window that wraps, the window belongs to the previous day
    if start > end and current < end:
        weekday = (weekday - 1) % 7
    return weekday in _window_days(schedule)


def next_window_opening(schedule: NotificationSchedule, now: datetime) -> datetime | None:
    if schedule_allows(schedule, now):
        return now
    descriptor = ScheduleDescriptor(
        days=_window_days(schedule), at=parse_hhmm(schedule.start_time)
    )
    return next_fire_time(descriptor, now)
