"""Clock-time parsing and minute-based interval arithmetic for a single day."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .errors import InvalidInterval, ParseError

MINUTES_PER_DAY = 24 * 60
LAST_MINUTE = MINUTES_PER_DAY - 1


def to_minutes(clock_time: str) -> int:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into minutes since midnight.

    Seconds are not kept; 30 seconds or more round up to the next minute.
    """
    if not isinstance(clock_time, str):
        raise ParseError(f"Clock time must be a string, got {clock_time!r}")
    parts = clock_time.strip().split(":")
    if len(parts) not in (2, 3):
        raise ParseError(f"Invalid clock time {clock_time!r}; expected HH:MM")
    try:
        numbers = [int(part) for part in parts]
    except ValueError as exc:
        raise ParseError(f"Invalid clock time {clock_time!r}") from exc

    hours, minutes = numbers[0], numbers[1]
    seconds = numbers[2] if len(numbers) == 3 else 0
    if not 0 <= hours <= 23:
        raise ParseError(f"Hour out of range in {clock_time!r}")
    if not 0 <= minutes <= 59:
        raise ParseError(f"Minute out of range in {clock_time!r}")
    if not 0 <= seconds <= 59:
        raise ParseError(f"Second out of range in {clock_time!r}")
    return hours * 60 + minutes + (1 if seconds >= 30 else 0)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up."""
    return math.floor(value + 0.5)


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    return f"{hours:02d}:{mins:02d}"


def end_time(start_time: str, duration_seconds: float, *, allow_wrap: bool = False) -> str:
    """Return the clock time ``duration_seconds`` after ``start_time``.

    Results past midnight are clamped to 23:59 unless ``allow_wrap`` is set,
    in which case they wrap around to the next day's clock.
    """
    end = to_minutes(start_time) + round_half_up(duration_seconds / 60)
    if allow_wrap:
        end %= MINUTES_PER_DAY
    else:
        end = max(0, min(end, LAST_MINUTE))
    return format_minutes(end)


def duration_minutes(start_time: str, end_time_: str) -> int:
    """Minutes between two clock times; non-positive results are invalid input."""
    return to_minutes(end_time_) - to_minutes(start_time)


def round_to_minutes(seconds: float) -> int:
    """Round ``seconds`` up to whole minutes (work logs accept minutes only)."""
    if not seconds or seconds <= 0 or math.isnan(seconds):
        return 0
    return math.ceil(seconds / 60) * 60


@dataclass(frozen=True, slots=True)
class TimeInterval:
    """Half-open ``[start_minute, end_minute)`` range within one calendar day."""

    start_minute: int
    end_minute: int

    @classmethod
    def from_clock(cls, start_time: str, end_time_: str) -> "TimeInterval":
        return cls(to_minutes(start_time), to_minutes(end_time_))

    @classmethod
    def from_start(cls, start_time: str, duration_seconds: float) -> "TimeInterval":
        start = to_minutes(start_time)
        return cls(start, start + round_half_up(duration_seconds / 60))

    @property
    def duration(self) -> int:
        return self.end_minute - self.start_minute

    def require_positive(self) -> "TimeInterval":
        if self.duration <= 0:
            raise InvalidInterval(
                f"Interval {self.label()} has no loggable time ({self.duration} min)"
            )
        return self

    def intersection_minutes(self, other: "TimeInterval") -> int:
        return max(
            0,
            min(self.end_minute, other.end_minute)
            - max(self.start_minute, other.start_minute),
        )

    def label(self) -> str:
        return f"{format_minutes(self.start_minute)}-{format_minutes(self.end_minute)}"


def overlaps(first: TimeInterval, second: TimeInterval) -> bool:
    """Half-open overlap test; touching endpoints do not overlap."""
    return (
        first.start_minute < second.end_minute
        and first.end_minute > second.start_minute
    )
