# wheelbot/services/schedule.py
"""
Weekly operating schedules and meal periods.

Merchants store their hours in several historical encodings. All of them go
through `parse_weekly_schedule` exactly once; the matcher only ever sees the
canonical `WeeklySchedule`:

    {"monday": {"closed": false, "shifts": [{"start": "10:00", "end": "14:00"},
                                            {"start": "17:00", "end": "21:00"}]},
     "tuesday": "10:00-22:00",                  # bare string
     "wednesday": "10:00-14:00,17:00-02:00",    # comma-joined, second shift overnight
     "thursday": {"start": "00:00", "end": "23:59"},  # single-shift object
     "friday": "closed",
     ...}

Times are minute-of-day offsets (0..1439). A shift with end < start runs past
midnight into the next civil day; start == end is empty and never matches.

Unreadable data is treated as open (fail-open) so a typo in the back office
does not silently hide a merchant from the wheel.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping
from zoneinfo import ZoneInfo

from wheelbot.database.models import MealPeriod
from wheelbot.services.errors import ValidationError

log = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

# index == datetime.weekday()
WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_DAY_ALIASES: dict[str, int] = {name: i for i, name in enumerate(WEEKDAYS)}
_DAY_ALIASES.update({name[:3]: i for i, name in enumerate(WEEKDAYS)})

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


class ScheduleFormatError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class Shift:
    start: int
    end: int

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    @property
    def is_overnight(self) -> bool:
        return self.end < self.start

    def covers_same_day(self, minute: int) -> bool:
        """Part of the shift on the civil day it is defined for."""
        if self.is_empty:
            return False
        if self.is_overnight:
            return minute >= self.start
        return self.start <= minute < self.end

    def covers_next_day(self, minute: int) -> bool:
        """Part of an overnight shift that spills into the following civil day."""
        return self.is_overnight and minute < self.end


@dataclass(frozen=True, slots=True)
class DaySchedule:
    closed: bool = False
    shifts: tuple[Shift, ...] = ()
    # hours unknown for this day (object without hours, unreadable times): fail-open
    unrestricted: bool = False


CLOSED_DAY = DaySchedule(closed=True)
OPEN_DAY = DaySchedule(unrestricted=True)


@dataclass(frozen=True, slots=True)
class WeeklySchedule:
    days: tuple[DaySchedule, ...] = field(default=(CLOSED_DAY,) * 7)

    def day(self, weekday: int) -> DaySchedule:
        return self.days[weekday % 7]


# -------------------------------------------------
# Normalization (the only place that looks at raw encodings)
# -------------------------------------------------

def parse_minutes(value: Any) -> int:
    """'HH:MM' -> minute of day. '24:00' is accepted as midnight (0)."""
    if not isinstance(value, str):
        raise ScheduleFormatError(f"time must be 'HH:MM', got {value!r}")
    m = _TIME_RE.match(value)
    if not m:
        raise ScheduleFormatError(f"time must be 'HH:MM', got {value!r}")
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours == 24 and minutes == 0:
        return 0
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ScheduleFormatError(f"time out of range: {value!r}")
    return hours * 60 + minutes


def format_minutes(minute: int) -> str:
    return f"{minute // 60:02d}:{minute % 60:02d}"


def _shift_from_pair(start: Any, end: Any) -> Shift:
    return Shift(start=parse_minutes(start), end=parse_minutes(end))


def _parse_shift_string(raw: str) -> DaySchedule:
    shifts: list[Shift] = []
    for slot in raw.split(","):
        slot = slot.strip()
        if not slot:
            continue
        start, _, end = slot.partition("-")
        if not start.strip() or not end.strip():
            # half-written slot ("10:00-"), skipped like the legacy reader did
            continue
        shifts.append(_shift_from_pair(start, end))
    if not shifts:
        return CLOSED_DAY
    return DaySchedule(shifts=tuple(shifts))


def _parse_shift_object(raw: Any) -> Shift:
    if isinstance(raw, str):
        start, _, end = raw.partition("-")
        return _shift_from_pair(start, end)
    if isinstance(raw, Mapping):
        return _shift_from_pair(raw.get("start"), raw.get("end"))
    raise ScheduleFormatError(f"unrecognized shift: {raw!r}")


def parse_day(raw: Any) -> DaySchedule:
    """
    One weekday's value in any supported encoding -> DaySchedule.
    Raises ScheduleFormatError for values it recognizes but cannot read.
    """
    if raw is None:
        return CLOSED_DAY

    if isinstance(raw, str):
        text = raw.strip()
        if not text or text.lower() == "closed":
            return CLOSED_DAY
        return _parse_shift_string(text)

    if isinstance(raw, Mapping):
        if raw.get("closed") is True:
            return CLOSED_DAY
        shifts = raw.get("shifts")
        if isinstance(shifts, list):
            if not shifts:
                return CLOSED_DAY
            return DaySchedule(shifts=tuple(_parse_shift_object(s) for s in shifts))
        if raw.get("start") and raw.get("end"):
            return DaySchedule(shifts=(_shift_from_pair(raw["start"], raw["end"]),))
        # an object with no hours in it: open
        return OPEN_DAY

    raise ScheduleFormatError(f"unrecognized day encoding: {type(raw).__name__}")


def parse_weekly_schedule(raw: str | Mapping[str, Any] | None) -> WeeklySchedule | None:
    """
    Normalize a stored schedule. Returns None when the value as a whole is
    unusable; callers treat None as "always open".
    """
    data: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            log.warning("Unparseable schedule, treating as open: %.80r", raw)
            return None

    if not isinstance(data, Mapping):
        log.warning("Schedule is not a weekday map, treating as open: %.80r", raw)
        return None

    days: list[DaySchedule] = [CLOSED_DAY] * 7
    for key, value in data.items():
        idx = _DAY_ALIASES.get(str(key).strip().lower())
        if idx is None:
            continue
        try:
            days[idx] = parse_day(value)
        except ScheduleFormatError as e:
            log.warning("Unreadable hours for %s (%s), treating day as open", WEEKDAYS[idx], e)
            days[idx] = OPEN_DAY

    return WeeklySchedule(days=tuple(days))


# -------------------------------------------------
# Matching
# -------------------------------------------------

def _localize(at: datetime, tz: ZoneInfo) -> datetime:
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    return at.astimezone(tz)


def minute_of_day(at: datetime) -> int:
    return at.hour * 60 + at.minute


def is_open(schedule: WeeklySchedule | None, at: datetime, tz: ZoneInfo) -> bool:
    """
    Is a merchant with `schedule` open at instant `at`, judged in civil time `tz`?

    Today's shifts match from their start up to their end (or midnight for an
    overnight shift). After midnight, the tail of an overnight shift is matched
    against the previous day's definition, so Sunday 20:00-05:00 covers
    Monday 02:00 even if Monday itself is closed.
    """
    if schedule is None:
        return True

    local = _localize(at, tz)
    m = minute_of_day(local)
    weekday = local.weekday()

    today = schedule.day(weekday)
    if not today.closed:
        if today.unrestricted:
            return True
        if any(s.covers_same_day(m) for s in today.shifts):
            return True

    yesterday = schedule.day(weekday - 1)
    if not yesterday.closed:
        if any(s.covers_next_day(m) for s in yesterday.shifts):
            return True

    return False


def describe_day(day: DaySchedule) -> str:
    if day.closed:
        return "closed"
    if day.unrestricted:
        return "open"
    return ", ".join(f"{format_minutes(s.start)}-{format_minutes(s.end)}" for s in day.shifts)


def describe_hours_at(schedule: WeeklySchedule | None, at: datetime, tz: ZoneInfo) -> str:
    """
    Hours to show for a merchant at `at`: today's, unless the merchant is only
    open through the tail of yesterday's overnight shift, then that shift.
    """
    if schedule is None:
        return "open"

    local = _localize(at, tz)
    m = minute_of_day(local)
    today = schedule.day(local.weekday())
    if today.unrestricted or any(s.covers_same_day(m) for s in today.shifts):
        return describe_day(today)

    yesterday = schedule.day(local.weekday() - 1)
    tails = [s for s in yesterday.shifts if s.covers_next_day(m)]
    if tails:
        return describe_day(DaySchedule(shifts=tuple(tails)))
    return describe_day(today)


# -------------------------------------------------
# Meal periods
# -------------------------------------------------

PERIOD_WINDOWS: dict[MealPeriod, Shift] = {
    MealPeriod.BREAKFAST: Shift(5 * 60, 10 * 60),
    MealPeriod.LUNCH: Shift(11 * 60, 14 * 60),
    MealPeriod.AFTERNOON_TEA: Shift(14 * 60, 16 * 60),
    MealPeriod.DINNER: Shift(16 * 60, 21 * 60),
    MealPeriod.LATE_NIGHT: Shift(20 * 60, 5 * 60),
}

PERIOD_LABELS: dict[MealPeriod, str] = {
    MealPeriod.BREAKFAST: "🌅 Breakfast",
    MealPeriod.LUNCH: "🍱 Lunch",
    MealPeriod.AFTERNOON_TEA: "☕ Afternoon tea",
    MealPeriod.DINNER: "🍽 Dinner",
    MealPeriod.LATE_NIGHT: "🌙 Late night",
}


def _window_covers(window: Shift, minute: int) -> bool:
    return window.covers_same_day(minute) or window.covers_next_day(minute)


def current_periods(at: datetime, tz: ZoneInfo) -> list[MealPeriod]:
    """All periods whose display window contains `at` (windows may overlap)."""
    m = minute_of_day(_localize(at, tz))
    return [p for p, w in PERIOD_WINDOWS.items() if _window_covers(w, m)]


def primary_period(at: datetime, tz: ZoneInfo) -> MealPeriod | None:
    periods = current_periods(at, tz)
    return periods[0] if periods else None


def parse_period(value: str | MealPeriod | None) -> MealPeriod:
    if isinstance(value, MealPeriod):
        return value
    text = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return MealPeriod(text)
    except ValueError:
        allowed = ", ".join(p.value for p in MealPeriod)
        raise ValidationError(f"unknown period {value!r}; expected one of: {allowed}") from None
