"""JSON-LD parsing for opening hours and event occurrences."""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .document import DayHours, RawTimeInstance, ScheduleException, WeeklySchedule
from .schedule import EXCEPTION_HORIZON_DAYS, MIN_POPULATED_DAYS, finalize_exceptions
from .timeparse import DAY_LABELS, expand_day_range, parse_day, weekday_label

LOGGER = logging.getLogger(__name__)

_SHORT_DAYS = {
    "mo": "Mon",
    "tu": "Tue",
    "we": "Wed",
    "th": "Thu",
    "fr": "Fri",
    "sa": "Sat",
    "su": "Sun",
}
# "Mo-Fr 10:00-17:00", "Sa,Su 09:30-18:00", "Mo-Su 10:00-16:00"
_OPENING_HOURS_STRING = re.compile(
    r"(?P<days>[A-Za-z]{2}(?:\s*[-,]\s*[A-Za-z]{2})*)\s+"
    r"(?P<open>\d{1,2}:\d{2})\s*-\s*(?P<close>\d{1,2}:\d{2})"
)
_EVENT_TYPES = ("event", "screeningevent", "theaterevent", "musicevent", "childrensevent",
                "exhibitionevent", "festival", "comedyevent", "danceevent")


def parse_json_ld(scripts: Iterable[str]) -> List[Dict[str, Any]]:
    """Decode JSON-LD script bodies into a flat list of nodes.

    Malformed scripts are skipped; ``@graph`` containers are unpacked.
    """
    nodes: List[Dict[str, Any]] = []
    for raw in scripts:
        if not raw or not raw.strip():
            continue
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            LOGGER.debug("Skipping malformed JSON-LD block: %s", exc)
            continue
        nodes.extend(iter_json_ld_nodes(payload))
    return nodes


def iter_json_ld_nodes(payload: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(payload, list):
        for item in payload:
            yield from iter_json_ld_nodes(item)
        return
    if not isinstance(payload, dict):
        return
    yield payload
    graph = payload.get("@graph")
    if graph is not None:
        yield from iter_json_ld_nodes(graph)


def parse_opening_hours(
    entries: Iterable[Dict[str, Any]], reference: Optional[date] = None
) -> Optional[WeeklySchedule]:
    """Weekly schedule from ``openingHoursSpecification``/``openingHours``.

    Seasonal specifications (``validFrom``/``validThrough``) become dated
    exceptions. The result is accepted only when at least four weekdays
    carry hours.
    """
    today = reference or date.today()
    for node in entries:
        days: Dict[str, DayHours] = {}
        exceptions: List[ScheduleException] = []

        for spec in _as_list(node.get("openingHoursSpecification")):
            if not isinstance(spec, dict):
                continue
            try:
                _apply_specification(spec, days, exceptions, today)
            except (TypeError, ValueError) as exc:
                LOGGER.debug("Skipping malformed openingHoursSpecification: %s", exc)

        for text in _as_list(node.get("openingHours")):
            if isinstance(text, str):
                for label, hours in parse_opening_hours_string(text).items():
                    days.setdefault(label, hours)

        if len(days) < MIN_POPULATED_DAYS:
            continue
        schedule = WeeklySchedule(days=dict(days), exceptions=exceptions, source="json-ld")
        return finalize_exceptions(schedule, reference=today)
    return None


def parse_opening_hours_string(text: str) -> Dict[str, DayHours]:
    """Parse schema.org ``openingHours`` shorthand ("Mo-Fr 10:00-17:00")."""
    hours: Dict[str, DayHours] = {}
    for match in _OPENING_HOURS_STRING.finditer(text or ""):
        value = DayHours(open=_hhmm(match.group("open")), close=_hhmm(match.group("close")))
        for label in _short_day_spec(match.group("days")):
            hours.setdefault(label, value)
    return hours


def parse_event_instances(entries: Iterable[Dict[str, Any]]) -> List[RawTimeInstance]:
    """Raw instances from Event nodes with a ``startDate``."""
    instances: List[RawTimeInstance] = []
    for node in entries:
        if not _is_event(node):
            continue
        start = _parse_datetime(node.get("startDate"))
        if start is None:
            continue
        end = _parse_datetime(node.get("endDate"))
        start_time = start.strftime("%H:%M") if _has_time(node.get("startDate")) else None
        end_time = None
        if end is not None and end.date() == start.date() and _has_time(node.get("endDate")):
            end_time = end.strftime("%H:%M")
        instances.append(
            RawTimeInstance(
                date=start.date().isoformat(),
                start_time=start_time,
                end_time=end_time,
                location=_location_name(node.get("location")),
            )
        )
    return instances


def _apply_specification(
    spec: Dict[str, Any],
    days: Dict[str, DayHours],
    exceptions: List[ScheduleException],
    today: date,
) -> None:
    labels = _spec_days(spec.get("dayOfWeek"))
    opens = _hhmm(spec.get("opens"))
    closes = _hhmm(spec.get("closes"))
    valid_from = _parse_date(spec.get("validFrom"))
    valid_through = _parse_date(spec.get("validThrough"))

    if valid_from is None and valid_through is None:
        if not opens or not closes:
            return
        for label in labels:
            days[label] = DayHours(open=opens, close=closes)
        return

    start = max(valid_from or today, today)
    end = valid_through or valid_from or today
    horizon = today + timedelta(days=EXCEPTION_HORIZON_DAYS)
    end = min(end, horizon)
    closed = not opens or not closes or opens == closes
    allowed = set(labels) if labels else set(DAY_LABELS)

    current = start
    while current <= end:
        if weekday_label(current) in allowed:
            if closed:
                exceptions.append(ScheduleException(date=current.isoformat(), status="closed"))
            else:
                exceptions.append(
                    ScheduleException(
                        date=current.isoformat(), status="open", open=opens, close=closes
                    )
                )
        current += timedelta(days=1)


def _spec_days(value: Any) -> List[str]:
    labels: List[str] = []
    for item in _as_list(value):
        if isinstance(item, dict):
            item = item.get("@id") or item.get("name")
        if not isinstance(item, str):
            continue
        token = item.rstrip("/").rsplit("/", 1)[-1]
        label = parse_day(token) or _SHORT_DAYS.get(token[:2].lower())
        if label and label not in labels:
            labels.append(label)
    return labels


def _short_day_spec(text: str) -> List[str]:
    labels: List[str] = []
    for chunk in re.split(r"\s*,\s*", text.strip()):
        bounds = [part.strip() for part in chunk.split("-", 1)]
        start = _SHORT_DAYS.get(bounds[0][:2].lower())
        if not start:
            continue
        if len(bounds) == 2:
            end = _SHORT_DAYS.get(bounds[1][:2].lower())
            expanded = expand_day_range(start, end) if end else [start]
        else:
            expanded = [start]
        for label in expanded:
            if label not in labels:
                labels.append(label)
    return labels


def _hhmm(value: Any) -> Optional[str]:
    if not value:
        return None
    text = str(value).strip()[:5]
    hour, _, minute = text.partition(":")
    if not hour.isdigit():
        return None
    minute = minute if minute.isdigit() else "00"
    return f"{int(hour) % 24:02d}:{int(minute):02d}"


def _parse_date(value: Any) -> Optional[date]:
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def _has_time(value: Any) -> bool:
    return isinstance(value, str) and "T" in value


def _is_event(node: Dict[str, Any]) -> bool:
    types = [str(item).lower() for item in _as_list(node.get("@type"))]
    return "startDate" in node and (not types or any(t in _EVENT_TYPES for t in types))


def _location_name(value: Any) -> Optional[str]:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        name = value.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return None


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
