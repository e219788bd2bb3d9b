"""Time slot classifier — pure functions over the clock's calendar.

morning [06, 12), afternoon [12, 17), evening [17, 22), night [22, 06).
Night wraps midnight: 03:00 belongs to the night that started at 22:00 the
previous day.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from lumio.core.clock import Clock
from lumio.data.models import Interval, TimeSlot

# (start hour, end hour) on the slot's own day; night ends at 06:00 next day
SLOT_HOURS: dict[TimeSlot, tuple[int, int]] = {
    TimeSlot.MORNING: (6, 12),
    TimeSlot.AFTERNOON: (12, 17),
    TimeSlot.EVENING: (17, 22),
    TimeSlot.NIGHT: (22, 30),
}

# Slots that receive proactively generated tasks, in day order
ACTIVE_SLOTS: tuple[TimeSlot, ...] = (TimeSlot.MORNING, TimeSlot.AFTERNOON, TimeSlot.EVENING)

_BOUNDARY_HOURS = (6, 12, 17, 22)


def classify_hour(hour: int) -> TimeSlot:
    if 6 <= hour < 12:
        return TimeSlot.MORNING
    if 12 <= hour < 17:
        return TimeSlot.AFTERNOON
    if 17 <= hour < 22:
        return TimeSlot.EVENING
    return TimeSlot.NIGHT


def classify(moment: datetime, clock: Clock) -> TimeSlot:
    return classify_hour(clock.localize(moment).hour)


def slot_interval(slot: TimeSlot, day: date, clock: Clock) -> Interval:
    start_hour, end_hour = SLOT_HOURS[slot]
    return Interval(clock.at(day, start_hour), clock.at(day, end_hour))


def slot_day(moment: datetime, clock: Clock) -> date:
    """The calendar day a moment's slot belongs to (early night -> previous day)."""
    local = clock.localize(moment)
    if local.hour < 6:
        return local.date() - timedelta(days=1)
    return local.date()


def current_interval(moment: datetime, clock: Clock) -> tuple[TimeSlot, Interval]:
    slot = classify(moment, clock)
    return slot, slot_interval(slot, slot_day(moment, clock), clock)


def next_slot_boundary(moment: datetime, clock: Clock) -> datetime:
    """First slot start strictly after `moment`."""
    local = clock.localize(moment)
    for hour in _BOUNDARY_HOURS:
        boundary = clock.at(local.date(), hour)
        if boundary > local:
            return boundary
    return clock.at(local.date() + timedelta(days=1), _BOUNDARY_HOURS[0])
