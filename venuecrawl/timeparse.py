"""Time and weekday token normalization.

Pure helpers that turn the loose tokens found on venue pages ("10am",
"14.30", "noon", "Mon–Fri") into canonical values: 24-hour ``HH:MM``
strings and the weekday labels used by :class:`~venuecrawl.document.WeeklySchedule`.
"""

from __future__ import annotations

import re
from datetime import date
from typing import List, Optional, Tuple

DAY_LABELS: Tuple[str, ...] = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

_DAY_PREFIXES = {
    "mon": "Mon",
    "tue": "Tue",
    "wed": "Wed",
    "thu": "Thu",
    "fri": "Fri",
    "sat": "Sat",
    "sun": "Sun",
}

# Matches a single weekday token, singular or plural ("Mon", "Tues", "Sundays").
DAY_PATTERN = (
    r"(?:mon(?:day)?|tue(?:s|sday)?|wed(?:s|nesday)?|thu(?:r|rs|rsday)?"
    r"|fri(?:day)?|sat(?:urday)?|sun(?:day)?)s?"
)

_DAY_TOKEN = re.compile(rf"^{DAY_PATTERN}$", re.IGNORECASE)
_TIME_TOKEN = re.compile(
    r"^(?P<hour>\d{1,2})(?:[:.](?P<minute>\d{2}))?\s*(?P<suffix>a\.?m\.?|p\.?m\.?)?$",
    re.IGNORECASE,
)
_DAY_RANGE_SPLIT = re.compile(r"\s*(?:-|–|—|to|through|thru|until)\s*", re.IGNORECASE)

_NAMED_TIMES = {
    "noon": "12:00",
    "midday": "12:00",
    "midnight": "00:00",
}


def normalize_time(token: Optional[str]) -> Optional[str]:
    """Convert a time token to ``HH:MM`` (24-hour), or ``None`` if unparseable.

    >>> normalize_time("10am")
    '10:00'
    >>> normalize_time("2.30 p.m.")
    '14:30'
    """
    parsed = _parse_time(token)
    if parsed is None:
        return None
    hour, minute, suffix = parsed
    return _format(_apply_suffix(hour, suffix), minute)


def normalize_time_range(
    open_token: Optional[str], close_token: Optional[str]
) -> Optional[Tuple[str, str]]:
    """Normalize an opening/closing pair, sharing am/pm hints between ends.

    Pages often write "10-5pm" or "1 - 4pm"; a suffix on the closing time
    decides the meaning of a bare opening hour and vice versa.
    """
    opening = _parse_time(open_token)
    closing = _parse_time(close_token)
    if opening is None or closing is None:
        return None

    open_hour, open_minute, open_suffix = opening
    close_hour, close_minute, close_suffix = closing

    close_24 = _apply_suffix(close_hour, close_suffix)
    if open_suffix is None and close_suffix == "pm" and open_hour < 12:
        if open_hour + 12 < close_24:
            open_suffix = "pm"
    open_24 = _apply_suffix(open_hour, open_suffix)

    if close_suffix is None and close_hour < 12 and close_24 <= open_24 < close_hour + 12:
        close_24 = close_hour + 12

    return _format(open_24, open_minute), _format(close_24, close_minute)


def to_minutes(value: str) -> int:
    """Minutes since midnight for an ``HH:MM`` string (0 when malformed)."""
    hour, _, minute = (value or "").partition(":")
    try:
        return int(hour) * 60 + (int(minute) if minute else 0)
    except ValueError:
        return 0


def parse_day(token: Optional[str]) -> Optional[str]:
    """Map a weekday token to its canonical label ("wednesdays" -> "Wed")."""
    if not token:
        return None
    cleaned = token.strip().strip(".,:").lower()
    if not _DAY_TOKEN.match(cleaned):
        return None
    return _DAY_PREFIXES.get(cleaned[:3])


def expand_day_range(start: str, end: str) -> List[str]:
    """Expand a weekday range, wrapping around the week ("Sat".."Mon")."""
    if start not in DAY_LABELS:
        return []
    if end not in DAY_LABELS:
        return [start]
    days: List[str] = []
    index = DAY_LABELS.index(start)
    while True:
        days.append(DAY_LABELS[index])
        if DAY_LABELS[index] == end or len(days) == len(DAY_LABELS):
            break
        index = (index + 1) % len(DAY_LABELS)
    return days


def parse_day_spec(text: Optional[str]) -> List[str]:
    """Turn "Mon–Fri", "Sat, Sun" or "Daily" into a list of weekday labels."""
    if not text:
        return []
    lowered = text.strip().lower()
    if lowered in ("daily", "every day", "everyday", "7 days", "all week"):
        return list(DAY_LABELS)

    days: List[str] = []
    for chunk in re.split(r"\s*(?:,|&|\band\b|/)\s*", lowered):
        if not chunk:
            continue
        bounds = _DAY_RANGE_SPLIT.split(chunk, maxsplit=1)
        if len(bounds) == 2:
            start, end = parse_day(bounds[0]), parse_day(bounds[1])
            if start and end:
                expanded = expand_day_range(start, end)
            else:
                expanded = []
        else:
            single = parse_day(chunk)
            expanded = [single] if single else []
        for day in expanded:
            if day not in days:
                days.append(day)
    return days


def weekday_label(value: date) -> str:
    """Weekday label for a calendar date."""
    return DAY_LABELS[value.weekday()]


def _parse_time(token: Optional[str]) -> Optional[Tuple[int, int, Optional[str]]]:
    if not token:
        return None
    cleaned = token.strip().lower()
    if cleaned in _NAMED_TIMES:
        hour, minute = _NAMED_TIMES[cleaned].split(":")
        return int(hour), int(minute), "fixed"
    match = _TIME_TOKEN.match(cleaned)
    if not match:
        return None
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    if hour > 24 or minute > 59:
        return None
    suffix = match.group("suffix")
    if suffix:
        suffix = "pm" if suffix.startswith("p") else "am"
    return hour, minute, suffix


def _apply_suffix(hour: int, suffix: Optional[str]) -> int:
    if suffix == "pm" and hour < 12:
        hour += 12
    elif suffix == "am" and hour == 12:
        hour = 0
    return hour % 24


def _format(hour: int, minute: int) -> str:
    return f"{hour % 24:02d}:{minute:02d}"
