# carebook/modules/scheduling/generator.py
"""
Slot generation: turns one day's working-hours configuration into
candidate slots.

Everything here is pure. A SlotPlan is lazy and can be iterated any
number of times; each pass re-derives the same candidates.

Clock arithmetic works in minutes since midnight. When the closing time
is not after the opening time the range crosses midnight, so 24h is added
to the closing bound (22:00 -> 02:00 yields 22:00 ... 01:30). Start times
past midnight are written modulo 24h on the same calendar date.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, FrozenSet, Iterable, Iterator, Mapping, Optional

MINUTES_PER_DAY = 24 * 60
TEMPLATE_STEP_MINUTES = 30
OVERRIDE_DURATIONS = (15, 30)

HHMM_RE = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")


class Period(str, Enum):
    MORNING = "Morning"
    AFTERNOON = "Afternoon"
    EVENING = "Evening"
    NIGHT = "Night"


def period_for_hour(hour: int) -> Period:
    # Morning 7-12 | Afternoon 12-16 | Evening 16-19 | Night 19-24 and 0-7
    if 7 <= hour < 12:
        return Period.MORNING
    if 12 <= hour < 16:
        return Period.AFTERNOON
    if 16 <= hour < 19:
        return Period.EVENING
    return Period.NIGHT


def is_hhmm(value: str) -> bool:
    return bool(value) and HHMM_RE.match(value) is not None


def to_minutes(value: str) -> int:
    if not is_hhmm(value):
        raise ValueError(f"expected HH:MM (24h), got {value!r}")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def from_minutes(total: int) -> str:
    hour = (total // 60) % 24
    return f"{hour:02d}:{total % 60:02d}"


def slot_label(total: int) -> str:
    """12-hour display label, e.g. 540 -> "9:00 AM", 0 -> "12:00 AM"."""
    hour = (total // 60) % 24
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:{total % 60:02d} {suffix}"


def label_for_time(value: str) -> str:
    return slot_label(to_minutes(value))


def minute_range(opening: str, closing: str, step: int) -> range:
    start = to_minutes(opening)
    end = to_minutes(closing)
    if end <= start:
        end += MINUTES_PER_DAY
    return range(start, end, step)


@dataclass(frozen=True)
class SlotCandidate:
    start_time: str
    end_time: str
    period: Period
    label: str
    booking_type: Optional[str] = None


@dataclass(frozen=True)
class TemplateDay:
    is_available: bool
    start_time: Optional[str]
    end_time: Optional[str]
    periods: FrozenSet[Period] = frozenset()
    break_start_time: Optional[str] = None
    break_end_time: Optional[str] = None

    @classmethod
    def from_model(cls, template) -> "TemplateDay":
        return cls(
            is_available=template.is_available,
            start_time=template.start_time,
            end_time=template.end_time,
            periods=frozenset(Period(p) for p in template.periods or ()),
            break_start_time=template.break_start_time,
            break_end_time=template.break_end_time,
        )

    def in_break(self, minute: int) -> bool:
        if not self.break_start_time or not self.break_end_time:
            return False
        return to_minutes(self.break_start_time) <= minute < to_minutes(self.break_end_time)


@dataclass(frozen=True)
class OverrideDay:
    is_day_available: bool
    opening_time: str
    closing_time: str
    slot_duration: int = 15
    slot_availability: Mapping[str, bool] = field(default_factory=dict)

    @classmethod
    def from_model(cls, override) -> "OverrideDay":
        return cls(
            is_day_available=override.is_day_available,
            opening_time=override.opening_time,
            closing_time=override.closing_time,
            slot_duration=override.slot_duration,
            slot_availability=dict(override.slot_availability or {}),
        )

    def is_label_available(self, label: str) -> bool:
        # only an explicit False disables a slot
        return self.slot_availability.get(label, True) is not False


class SlotPlan(Iterable[SlotCandidate]):
    """Lazy, finite, restartable sequence of candidates."""

    def __init__(self, factory: Callable[[], Iterator[SlotCandidate]]):
        self._factory = factory

    def __iter__(self) -> Iterator[SlotCandidate]:
        return self._factory()


EMPTY_PLAN = SlotPlan(lambda: iter(()))


def _candidate(minute: int, step: int) -> SlotCandidate:
    return SlotCandidate(
        start_time=from_minutes(minute),
        end_time=from_minutes(minute + step),
        period=period_for_hour((minute // 60) % 24),
        label=slot_label(minute),
    )


def generate_from_template(day: TemplateDay) -> SlotPlan:
    if not day.is_available or not day.start_time or not day.end_time:
        return EMPTY_PLAN

    def _iter() -> Iterator[SlotCandidate]:
        for minute in minute_range(day.start_time, day.end_time, TEMPLATE_STEP_MINUTES):
            candidate = _candidate(minute, TEMPLATE_STEP_MINUTES)
            if candidate.period not in day.periods:
                continue
            if day.in_break(minute):
                continue
            yield candidate

    return SlotPlan(_iter)


def generate_from_override(day: OverrideDay) -> SlotPlan:
    if not day.is_day_available:
        return EMPTY_PLAN
    if day.slot_duration not in OVERRIDE_DURATIONS:
        raise ValueError(f"slot_duration must be one of {OVERRIDE_DURATIONS}")

    def _iter() -> Iterator[SlotCandidate]:
        for minute in minute_range(day.opening_time, day.closing_time, day.slot_duration):
            candidate = _candidate(minute, day.slot_duration)
            if not day.is_label_available(candidate.label):
                continue
            yield candidate

    return SlotPlan(_iter)
