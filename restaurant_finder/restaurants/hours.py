"""
Weekly opening-hours evaluation.

Each day of an opening-hours record is either absent, the closed marker or a
list of ``HH:MM-HH:MM`` intervals separated by spaces or commas, e.g.
``"11:00-15:00 18:00-22:00"``. Both ends of an interval are inclusive. An
interval whose close time is earlier than its open time runs past midnight
into the next day.

The evaluation instant is always passed in by the caller; nothing here reads
the system clock.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

DAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")
CLOSED_MARKER = "Closed"

_DASH_RE = re.compile(r"\s*-\s*")
_SEPARATOR_RE = re.compile(r"[\s,;]+")
_INTERVAL_RE = re.compile(r"(\d{1,2}):(\d{2})-(\d{1,2}):(\d{2})")


class OpeningHoursError(ValueError):
    """Raised when a day's hours string is not a list of HH:MM-HH:MM intervals."""


def day_of_week(instant: datetime) -> str:
    """Return the day key for ``instant`` (Sunday=0 .. Saturday=6)."""
    return DAYS[instant.isoweekday() % 7]


def _to_minutes(hour: int, minute: int, raw: str) -> int:
    if minute > 59 or hour > 24 or (hour == 24 and minute != 0):
        raise OpeningHoursError(f"Invalid time of day in opening hours {raw!r}")
    return hour * 60 + minute


def parse_hours(hours: str) -> list[tuple[int, int]]:
    """Parse a day's hours string into ``(open, close)`` minute pairs."""
    text = _DASH_RE.sub("-", hours.strip())
    intervals: list[tuple[int, int]] = []
    for segment in _SEPARATOR_RE.split(text):
        if not segment:
            continue
        match = _INTERVAL_RE.fullmatch(segment)
        if match is None:
            raise OpeningHoursError(f"Unparseable opening hours {hours!r}")
        open_h, open_m, close_h, close_m = (int(g) for g in match.groups())
        intervals.append((_to_minutes(open_h, open_m, hours), _to_minutes(close_h, close_m, hours)))
    if not intervals:
        raise OpeningHoursError(f"Unparseable opening hours {hours!r}")
    return intervals


def _hours_for(opening_hours: Any, day: str) -> str | None:
    if opening_hours is None:
        return None
    if isinstance(opening_hours, Mapping):
        return opening_hours.get(day)
    return getattr(opening_hours, day, None)


def _is_closed(hours: str | None) -> bool:
    return hours is None or not hours.strip() or hours.strip().lower() == CLOSED_MARKER.lower()


def _open_from_previous_day(opening_hours: Any, day: str, current: int) -> bool:
    previous = DAYS[(DAYS.index(day) - 1) % len(DAYS)]
    hours = _hours_for(opening_hours, previous)
    if _is_closed(hours):
        return False
    try:
        intervals = parse_hours(hours)
    except OpeningHoursError:
        return False
    return any(start > end and current <= end for start, end in intervals)


def is_open_at(opening_hours: Any, instant: datetime) -> bool:
    """
    Decide whether a restaurant is open at ``instant``.

    ``opening_hours`` may be an ``OpeningHours`` model or a plain mapping of
    day keys. Raises ``OpeningHoursError`` when the hours for the instant's
    day cannot be parsed.
    """
    day = day_of_week(instant)
    current = instant.hour * 60 + instant.minute

    hours = _hours_for(opening_hours, day)
    if not _is_closed(hours):
        for start, end in parse_hours(hours):
            if start <= end:
                if start <= current <= end:
                    return True
            elif current >= start:
                # Overnight interval, today's part runs until midnight
                return True

    return _open_from_previous_day(opening_hours, day, current)
