"""Reduce raw time observations into a weekly schedule or an event list.

Every extraction path yields :class:`RawTimeInstance` values. This module
deduplicates them, finds the modal time range per weekday, turns
disagreeing observations into dated exceptions, and decides whether the
observations describe a place (weekly hours) or a run of events.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date, timedelta
from typing import DefaultDict, Dict, Iterable, List, Optional, Tuple

from .document import (
    Dates,
    DayHours,
    EventInstance,
    EventInstanceSet,
    RawTimeInstance,
    ScheduleException,
    WeeklySchedule,
)
from .timeparse import DAY_LABELS, to_minutes, weekday_label

LOGGER = logging.getLogger(__name__)

NOISY_EXCEPTION_LIMIT = 40
CLOSED_EXCEPTION_RATIO = 0.5
MIN_WEEKLY_INSTANCES = 20
MIN_POPULATED_DAYS = 4
EXCEPTION_HORIZON_DAYS = 183


def dedupe_instances(instances: Iterable[RawTimeInstance]) -> List[RawTimeInstance]:
    """Drop repeated ``(date, start, end, note)`` keys; first occurrence wins."""
    seen = set()
    unique: List[RawTimeInstance] = []
    for instance in instances:
        if instance.key in seen:
            continue
        seen.add(instance.key)
        unique.append(instance)
    return unique


def modal_hours(instances: Iterable[RawTimeInstance]) -> Dict[str, DayHours]:
    """Most frequent ``open-close`` range per weekday.

    Ties go to the range that closes later.
    """
    buckets: DefaultDict[str, Counter] = defaultdict(Counter)
    for instance in instances:
        if not instance.start_time or not instance.end_time:
            continue
        label = _weekday_of(instance.date)
        if label is None:
            continue
        buckets[label][(instance.start_time, instance.end_time)] += 1

    hours: Dict[str, DayHours] = {}
    for label in DAY_LABELS:
        bucket = buckets.get(label)
        if not bucket:
            continue
        (open_time, close_time), _ = max(
            bucket.items(), key=lambda item: (item[1], to_minutes(item[0][1]))
        )
        hours[label] = DayHours(open=open_time, close=close_time)
    return hours


def build_modal_schedule(
    instances: Iterable[RawTimeInstance],
    *,
    location: Optional[str] = None,
    source: str = "modal",
    reference: Optional[date] = None,
) -> WeeklySchedule:
    """Weekly schedule from observations, with disagreeing dates as exceptions."""
    unique = dedupe_instances(instances)
    hours = modal_hours(unique)

    exceptions: List[ScheduleException] = []
    for instance in unique:
        label = _weekday_of(instance.date)
        if label is None:
            continue
        if instance.is_closed:
            exceptions.append(ScheduleException(date=instance.date, status="closed"))
            continue
        if not instance.start_time or not instance.end_time:
            continue
        modal = hours.get(label)
        if modal and (modal.open, modal.close) == (instance.start_time, instance.end_time):
            continue
        exceptions.append(
            ScheduleException(
                date=instance.date,
                status="open",
                open=instance.start_time,
                close=instance.end_time,
            )
        )

    schedule = WeeklySchedule(
        days=dict(hours), exceptions=exceptions, location=location, source=source
    )
    return finalize_exceptions(schedule, reference=reference)


def finalize_exceptions(
    schedule: WeeklySchedule, *, reference: Optional[date] = None
) -> WeeklySchedule:
    """Clean, prune, and sanity-gate the exception list in place."""
    schedule.exceptions = clean_exceptions(schedule.exceptions, reference=reference)
    prune_exceptions(schedule)
    apply_exception_gate(schedule)
    return schedule


def clean_exceptions(
    exceptions: Iterable[ScheduleException], *, reference: Optional[date] = None
) -> List[ScheduleException]:
    """Collapse exceptions to one per date within the look-ahead horizon.

    Per date an open exception beats a closed one, and between two open
    exceptions the longer span wins (later close on equal spans).
    """
    horizon = (reference or date.today()) + timedelta(days=EXCEPTION_HORIZON_DAYS)
    by_date: Dict[str, ScheduleException] = {}
    for exception in exceptions:
        parsed = _parse_iso(exception.date)
        if parsed is None or parsed > horizon:
            continue
        if exception.status == "open" and (
            not exception.open or not exception.close or exception.open == exception.close
        ):
            continue
        current = by_date.get(exception.date)
        if current is None or _prefer(exception, current):
            by_date[exception.date] = exception
    return [by_date[key] for key in sorted(by_date)]


def prune_exceptions(schedule: WeeklySchedule) -> WeeklySchedule:
    """Remove exceptions that restate the weekly pattern for their weekday."""
    kept: List[ScheduleException] = []
    for exception in schedule.exceptions:
        label = _weekday_of(exception.date)
        if label is None:
            continue
        regular = schedule.days.get(label)
        if exception.status == "closed" and regular is None:
            continue
        if (
            exception.status == "open"
            and regular is not None
            and (regular.open, regular.close) == (exception.open, exception.close)
        ):
            continue
        kept.append(exception)
    schedule.exceptions = kept
    return schedule


def apply_exception_gate(schedule: WeeklySchedule) -> WeeklySchedule:
    """Discard the whole exception list when it looks like scraping noise."""
    total = len(schedule.exceptions)
    if not total:
        return schedule
    closed = sum(1 for ex in schedule.exceptions if ex.status == "closed")
    if total > NOISY_EXCEPTION_LIMIT or closed / total > CLOSED_EXCEPTION_RATIO:
        LOGGER.warning(
            "Discarding %d noisy exceptions (%d closed) from %s schedule",
            total,
            closed,
            schedule.source or "extracted",
        )
        schedule.exceptions = []
    return schedule


def classify_instances(
    instances: Iterable[RawTimeInstance],
    *,
    source: str = "instances",
    reference: Optional[date] = None,
) -> Optional[Dates]:
    """Weekly schedule for dense single-location data, events otherwise."""
    unique = dedupe_instances(instances)
    if not unique:
        return None

    locations = {item.location for item in unique if item.location}
    if len(unique) >= MIN_WEEKLY_INSTANCES and len(locations) <= 1:
        location = next(iter(locations), None)
        schedule = build_modal_schedule(
            unique, location=location, source=source, reference=reference
        )
        if len(schedule.populated_days()) >= MIN_POPULATED_DAYS:
            return schedule

    events = events_from_instances(unique)
    if not events:
        return None
    return EventInstanceSet(instances=events, source=source)


def events_from_instances(instances: Iterable[RawTimeInstance]) -> List[EventInstance]:
    events: Dict[Tuple[str, str, str, Optional[str]], EventInstance] = {}
    for item in instances:
        if not item.start_time:
            continue
        event = EventInstance(
            date=item.date,
            start_time=item.start_time,
            end_time=item.end_time or item.start_time,
            location=item.location,
        )
        events.setdefault((event.date, event.start_time, event.end_time, event.location), event)
    return sorted(events.values(), key=lambda ev: (ev.date, ev.start_time))


def _prefer(candidate: ScheduleException, current: ScheduleException) -> bool:
    if candidate.status != current.status:
        return candidate.status == "open"
    if candidate.status == "closed":
        return False
    candidate_span = to_minutes(candidate.close or "") - to_minutes(candidate.open or "")
    current_span = to_minutes(current.close or "") - to_minutes(current.open or "")
    if candidate_span != current_span:
        return candidate_span > current_span
    return to_minutes(candidate.close or "") > to_minutes(current.close or "")


def _parse_iso(value: str) -> Optional[date]:
    try:
        return date.fromisoformat((value or "")[:10])
    except ValueError:
        return None


def _weekday_of(value: str) -> Optional[str]:
    parsed = _parse_iso(value)
    return weekday_label(parsed) if parsed else None
