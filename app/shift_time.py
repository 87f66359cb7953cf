"""Minute-granularity time arithmetic for shifts and PTO windows.

Shift times are wall-clock ``datetime.time`` values. A shift whose end is
earlier than its start crosses midnight; a shift whose end equals its start
lasts a full day. Durations are carried as whole minutes and converted to
fractional hours (minutes / 60) without rounding; rounding only happens when
a value is displayed.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Optional, Tuple

from errors import ValidationError

MINUTES_PER_DAY = 24 * 60


def parse_time(value) -> datetime.time:
    if isinstance(value, datetime.time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, datetime.datetime):
        return value.time().replace(second=0, microsecond=0)
    text = str(value or "").strip()
    if not text:
        raise ValidationError("A time value is required.")
    parts = text.split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
        return datetime.time(hour, minute)
    except (ValueError, IndexError):
        raise ValidationError(f"'{value}' is not a valid HH:MM time.") from None


def to_minutes(value: datetime.time) -> int:
    return value.hour * 60 + value.minute


def span_minutes(start: datetime.time, end: datetime.time) -> int:
    """Minutes from start to end, adding a day when the span crosses midnight."""
    start_minutes = to_minutes(start)
    end_minutes = to_minutes(end)
    if end_minutes <= start_minutes:
        end_minutes += MINUTES_PER_DAY
    return end_minutes - start_minutes


def minutes_to_hours(minutes: int) -> float:
    return minutes / 60


def format_hours(hours: float) -> str:
    return f"{round(hours, 1):.1f}"


def format_time(value: Optional[datetime.time]) -> str:
    return value.strftime("%H:%M") if value else ""


@dataclass(frozen=True)
class TimeRange:
    start: datetime.time
    end: datetime.time

    @classmethod
    def of(cls, start, end) -> "TimeRange":
        return cls(parse_time(start), parse_time(end))

    @property
    def minutes(self) -> int:
        return span_minutes(self.start, self.end)

    @property
    def hours(self) -> float:
        return minutes_to_hours(self.minutes)

    def label(self) -> str:
        return f"{format_time(self.start)}-{format_time(self.end)}"


@dataclass(frozen=True)
class PTOWindow:
    """Where a PTO range sits inside its shift."""

    shift: TimeRange
    pto: TimeRange
    remainder: Optional[TimeRange]

    @property
    def is_full_shift(self) -> bool:
        return self.pto.minutes == self.shift.minutes

    @property
    def pto_minutes(self) -> int:
        return self.pto.minutes

    @property
    def hours_used(self) -> float:
        return minutes_to_hours(self.pto_minutes)

    @property
    def remainder_hours(self) -> float:
        return minutes_to_hours(self.remainder.minutes) if self.remainder else 0.0


def _offsets(shift: TimeRange, start: datetime.time, end: datetime.time) -> Tuple[int, int]:
    base = to_minutes(shift.start)
    start_offset = (to_minutes(start) - base) % MINUTES_PER_DAY
    end_offset = (to_minutes(end) - base) % MINUTES_PER_DAY
    if end_offset == 0:
        end_offset = MINUTES_PER_DAY
    return start_offset, end_offset


def place_pto(shift: TimeRange, pto: Optional[TimeRange]) -> PTOWindow:
    """Validate a PTO range against its shift and work out the working remainder.

    ``pto=None`` means the whole shift. The remainder is the part of the shift
    after the PTO ends; when the PTO runs to the end of the shift, it is the
    part before the PTO starts. A remainder of zero minutes is dropped.
    """
    if pto is None:
        return PTOWindow(shift=shift, pto=shift, remainder=None)
    if to_minutes(pto.start) == to_minutes(pto.end):
        raise ValidationError(
            f"PTO range {pto.label()} has zero length."
        )
    shift_length = shift.minutes
    start_offset, end_offset = _offsets(shift, pto.start, pto.end)
    if start_offset >= end_offset or end_offset > shift_length:
        raise ValidationError(
            f"PTO range {pto.label()} does not fit inside shift {shift.label()}."
        )
    remainder: Optional[TimeRange] = None
    if end_offset < shift_length:
        remainder = TimeRange(pto.end, shift.end)
    elif start_offset > 0:
        remainder = TimeRange(shift.start, pto.start)
    return PTOWindow(shift=shift, pto=pto, remainder=remainder)
