"""Opening-hours and event extraction from scraped pages.

Extraction is an ordered chain of strategies that share one
:class:`ExtractionContext`. Each strategy either returns a finished
:class:`~venuecrawl.document.WeeklySchedule` / event set, ending the chain,
or contributes raw instances to the shared pool. When no strategy
succeeds, the pool is classified as a whole.

    extractor = DateExtractor()
    dates = extractor.extract(page)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from .document import (
    Dates,
    DayHours,
    EventInstanceSet,
    RawTimeInstance,
    ScrapedPage,
    WeeklySchedule,
)
from .nlparse import EXCLUDE_PATTERN, DateParser, parse_segments, span_times
from .schedule import (
    MIN_POPULATED_DAYS,
    build_modal_schedule,
    classify_instances,
    dedupe_instances,
)
from .timeparse import (
    DAY_LABELS,
    DAY_PATTERN,
    expand_day_range,
    normalize_time_range,
    parse_day,
    weekday_label,
)

LOGGER = logging.getLogger(__name__)

MIN_NL_INSTANCES = 3

_RELEVANT_LINE = re.compile(
    r"open|opening|hours|times|daily|every day|closed|last entry|admission"
    rf"|\b{DAY_PATTERN}\b|\d{{1,2}}(?:[:.]\d{{2}})?\s*(?:am|pm)\b",
    re.IGNORECASE,
)

_TIME = r"(?<![\d:.])\d{1,2}(?:[:.]\d{2})?(?:[ \t]*(?:am|pm))?(?![\d])"
_DASH = r"[ \t]*(?:-|–|—|to|until|till)[ \t]*"
_ORDINAL = r"(?:[ \t]*\d{1,2}(?:st|nd|rd|th)?)?"

# "Wed 10th: 10am - 3pm", "Thu 11th - Sun 14th: 10am - 5pm", "Mon-Fri 9:30-17:30"
_DAY_FIRST = re.compile(
    rf"\b(?P<start>{DAY_PATTERN}){_ORDINAL}"
    rf"(?:{_DASH}(?:\d{{1,2}}(?:st|nd|rd|th)?[ \t]*)?(?P<end>{DAY_PATTERN}){_ORDINAL})?"
    rf"[ \t]*[:,]?[ \t]*(?P<open>{_TIME}){_DASH}(?P<close>{_TIME})",
    re.IGNORECASE,
)
# "10am - 5pm Mon to Fri", "9:30-16:00, Saturdays"
_TIME_FIRST = re.compile(
    rf"(?P<open>{_TIME}){_DASH}(?P<close>{_TIME})[ \t]*[:,]?[ \t]*(?:on[ \t]+|every[ \t]+)?"
    rf"\b(?P<start>{DAY_PATTERN})\b(?:{_DASH}(?P<end>{DAY_PATTERN})\b)?",
    re.IGNORECASE,
)
_CLOSED_DAYS = re.compile(
    rf"\bclosed[ \t]+(?:on[ \t]+|every[ \t]+|all[ \t]+day[ \t]+)?(?P<start>{DAY_PATTERN})\b"
    rf"(?:{_DASH}(?P<end>{DAY_PATTERN})\b)?"
    rf"|\b(?P<start2>{DAY_PATTERN})\b(?:{_DASH}(?P<end2>{DAY_PATTERN})\b)?[ \t]*[:,\-–]?[ \t]*closed\b",
    re.IGNORECASE,
)
_DAILY = re.compile(
    rf"\b(?:open[ \t]+)?(?:daily|every[ \t]*day|7[ \t]+days[ \t]+a[ \t]+week)[ \t]*[:,\-–]?[ \t]*"
    rf"(?:from[ \t]+)?(?P<open>{_TIME}){_DASH}(?P<close>{_TIME})",
    re.IGNORECASE,
)

_MONTHS = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)
_MONTH_PATTERN = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)
_MONTH_HEADER = re.compile(
    rf"^\s*(?P<month>{_MONTH_PATTERN})(?:[ \t]+(?P<year>\d{{4}}))?\s*$", re.IGNORECASE
)
# "12th Monday", "Monday 12", "Mon 12th - 10am - 5pm"
_GRID_ROW = re.compile(
    rf"^\s*(?:(?P<num1>\d{{1,2}})(?:st|nd|rd|th)?[ \t]+(?P<day1>{DAY_PATTERN})"
    rf"|(?P<day2>{DAY_PATTERN})[ \t]+(?P<num2>\d{{1,2}})(?:st|nd|rd|th)?)\b(?P<rest>.*)$",
    re.IGNORECASE,
)
_TIME_RANGE = re.compile(rf"(?P<open>{_TIME}){_DASH}(?P<close>{_TIME})", re.IGNORECASE)
_CLOSED_WORD = re.compile(r"\bclosed\b", re.IGNORECASE)


@dataclass
class ExtractionContext:
    """Inputs and the shared raw-instance pool for one page."""

    text: str
    reference: datetime
    parser: Optional[DateParser] = None
    location: Optional[str] = None
    json_ld_hours: Optional[WeeklySchedule] = None
    json_ld_events: List[RawTimeInstance] = field(default_factory=list)
    pool: List[RawTimeInstance] = field(default_factory=list)
    source: str = ""


class ExtractionStrategy(Protocol):
    name: str

    def extract(self, context: ExtractionContext) -> Optional[Dates]: ...


class JsonLdStrategy:
    """Structured data first: hours specification, then Event nodes."""

    name = "json-ld"

    def extract(self, context: ExtractionContext) -> Optional[Dates]:
        if context.json_ld_hours is not None:
            return context.json_ld_hours
        if not context.json_ld_events:
            return None
        events = [_with_location(item, context.location) for item in context.json_ld_events]
        context.pool.extend(events)
        return classify_instances(
            events, source=self.name, reference=context.reference.date()
        )


class NaturalLanguageStrategy:
    """Parsed date/time mentions from relevant lines, full text as fallback.

    Only a dense weekly pattern ends the chain here; sparse results stay in
    the pool for the final classification.
    """

    name = "natural-language"

    def extract(self, context: ExtractionContext) -> Optional[Dates]:
        instances = natural_language_instances(
            relevant_text(context.text), context.reference, context.parser, context.location
        )
        if len(instances) < MIN_NL_INSTANCES:
            instances = dedupe_instances(
                instances
                + natural_language_instances(
                    context.text, context.reference, context.parser, context.location
                )
            )
        context.pool.extend(instances)
        result = classify_instances(
            context.pool, source=self.name, reference=context.reference.date()
        )
        return result if isinstance(result, WeeklySchedule) else None


class RegexHoursStrategy:
    name = "regex"

    def extract(self, context: ExtractionContext) -> Optional[Dates]:
        hours = parse_hours_text(context.text)
        populated = {label: value for label, value in hours.items() if value is not None}
        if len(populated) < MIN_POPULATED_DAYS:
            return None
        return WeeklySchedule(days=populated, location=context.location, source=self.name)


class CalendarGridStrategy:
    name = "calendar-grid"

    def extract(self, context: ExtractionContext) -> Optional[Dates]:
        instances = [
            _with_location(item, context.location)
            for item in parse_calendar_grid(context.text, context.reference.date())
        ]
        if not instances:
            return None
        context.pool.extend(instances)
        schedule = build_modal_schedule(
            instances,
            location=context.location,
            source=self.name,
            reference=context.reference.date(),
        )
        if len(schedule.populated_days()) >= MIN_POPULATED_DAYS:
            return schedule
        return None


def default_strategies() -> List[ExtractionStrategy]:
    return [
        JsonLdStrategy(),
        NaturalLanguageStrategy(),
        RegexHoursStrategy(),
        CalendarGridStrategy(),
    ]


class DateExtractor:
    """Runs the strategy chain against pages or raw text."""

    def __init__(
        self,
        parser: Optional[DateParser] = None,
        reference_date: Optional[datetime] = None,
        strategies: Optional[Sequence[ExtractionStrategy]] = None,
    ) -> None:
        self.parser = parser
        self.reference_date = reference_date
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    @property
    def reference(self) -> datetime:
        return self.reference_date or datetime.now()

    def extract(self, page: ScrapedPage, location: Optional[str] = None) -> Optional[Dates]:
        context = ExtractionContext(
            text=page_text(page),
            reference=self.reference,
            parser=self.parser,
            location=location,
            json_ld_hours=page.structured.json_ld_hours,
            json_ld_events=list(page.structured.json_ld_events),
            pool=[_with_location(item, location) for item in page.raw_date_time_instances],
            source=page.url,
        )
        return self.extract_context(context)

    def extract_text(self, text: str, location: Optional[str] = None) -> Optional[Dates]:
        context = ExtractionContext(
            text=text, reference=self.reference, parser=self.parser, location=location
        )
        return self.extract_context(context)

    def extract_context(self, context: ExtractionContext) -> Optional[Dates]:
        for strategy in self.strategies:
            result = strategy.extract(context)
            if result is not None:
                LOGGER.debug(
                    "%s strategy produced %s dates for %s",
                    strategy.name,
                    result.kind,
                    context.source or "text",
                )
                return result
        return classify_instances(
            context.pool, source="pool", reference=context.reference.date()
        )

    def raw_instances(self, text: str, location: Optional[str] = None) -> List[RawTimeInstance]:
        """Every raw instance the text-based paths can see, deduplicated."""
        reference = self.reference
        instances = natural_language_instances(text, reference, self.parser, location)
        instances.extend(
            _with_location(item, location)
            for item in parse_calendar_grid(text, reference.date())
        )
        return dedupe_instances(instances)


def extract_dates(
    pages: Iterable[ScrapedPage],
    extractor: Optional[DateExtractor] = None,
    location: Optional[str] = None,
) -> Tuple[Optional[ScrapedPage], Optional[Dates]]:
    """First page yielding a weekly schedule wins; else the first event set."""
    engine = extractor or DateExtractor()
    fallback: Tuple[Optional[ScrapedPage], Optional[Dates]] = (None, None)
    for page in pages:
        result = engine.extract(page, location=location)
        if isinstance(result, WeeklySchedule):
            return page, result
        if isinstance(result, EventInstanceSet) and fallback[1] is None:
            fallback = (page, result)
    return fallback


def page_text(page: ScrapedPage) -> str:
    parts = [
        page.structured.opening_hours_text,
        page.structured.extracted_hours,
        page.raw_text,
    ]
    return "\n".join(part for part in parts if part)


def relevant_text(text: str) -> str:
    """Lines that look schedule-related and not like policy prose."""
    lines = [
        line
        for line in (text or "").splitlines()
        if _RELEVANT_LINE.search(line) and not EXCLUDE_PATTERN.search(line)
    ]
    return "\n".join(lines)


def natural_language_instances(
    text: str,
    reference: datetime,
    parser: Optional[DateParser] = None,
    location: Optional[str] = None,
) -> List[RawTimeInstance]:
    if not text or not text.strip():
        return []
    instances: List[RawTimeInstance] = []
    for span in parse_segments(text, reference, parser):
        day, start, end = span_times(span)
        instances.append(
            RawTimeInstance(date=day, start_time=start, end_time=end, location=location)
        )
    return dedupe_instances(instances)


def parse_hours_text(text: str) -> Dict[str, Optional[DayHours]]:
    """Weekday hours from free text; ``None`` marks an explicitly closed day.

    Both token orders are recognised ("Mon-Fri 10am-5pm" and "10am-5pm
    Mon-Fri"). The first statement for a day wins. A "daily" range fills
    the remaining days unless they were stated closed.
    """
    normalized = _normalize_hours_text(text)
    result: Dict[str, Optional[DayHours]] = {}

    for pattern in (_DAY_FIRST, _TIME_FIRST):
        for match in pattern.finditer(normalized):
            hours = _hours_from_match(match)
            if hours is None:
                continue
            for label in _days_from_match(match, "start", "end"):
                result.setdefault(label, hours)

    for match in _CLOSED_DAYS.finditer(normalized):
        if match.group("start"):
            labels = _days_from_match(match, "start", "end")
        else:
            labels = _days_from_match(match, "start2", "end2")
        for label in labels:
            result.setdefault(label, None)

    daily = _DAILY.search(normalized)
    if daily:
        hours = _hours_from_match(daily)
        if hours is not None:
            for label in DAY_LABELS:
                result.setdefault(label, hours)
    return result


def parse_calendar_grid(text: str, reference: date) -> List[RawTimeInstance]:
    """Dated instances from month-grid text.

    Recognises month headers ("June 2025") followed by day rows
    ("12th Monday" / "Monday 12") whose hours sit on the same line or the
    next non-empty one ("10am - 5pm" or "Closed"). Rows met before any
    header are dated in the reference month, or the month after when the
    weekday does not fit.
    """
    lines = [line.strip() for line in _normalize_hours_text(text).splitlines()]
    lines = [line for line in lines if line]
    instances: List[RawTimeInstance] = []
    month: Optional[int] = None
    year: Optional[int] = None

    for index, line in enumerate(lines):
        header = _MONTH_HEADER.match(line)
        if header:
            month = _month_number(header.group("month"))
            year = int(header.group("year")) if header.group("year") else None
            continue
        row = _GRID_ROW.match(line)
        if not row:
            continue
        number = int(row.group("num1") or row.group("num2"))
        label = parse_day(row.group("day1") or row.group("day2"))
        if month is None:
            day = _headerless_date(number, label, reference)
        else:
            day = _grid_date(number, month, year, label, reference)
        if day is None:
            continue

        rest = row.group("rest") or ""
        if not _TIME_RANGE.search(rest) and not _CLOSED_WORD.search(rest):
            following = lines[index + 1] if index + 1 < len(lines) else ""
            if not _GRID_ROW.match(following) and not _MONTH_HEADER.match(following):
                rest = following

        if _CLOSED_WORD.search(rest):
            instances.append(RawTimeInstance(date=day.isoformat(), note="closed"))
            continue
        match = _TIME_RANGE.search(rest)
        if not match:
            continue
        hours = _hours_from_match(match)
        if hours is None:
            continue
        instances.append(
            RawTimeInstance(date=day.isoformat(), start_time=hours.open, end_time=hours.close)
        )
    return dedupe_instances(instances)


def _normalize_hours_text(text: str) -> str:
    normalized = (text or "").lower()
    normalized = normalized.replace("a.m.", "am").replace("p.m.", "pm")
    normalized = re.sub(r"\bnoon\b|\bmidday\b", "12pm", normalized)
    normalized = re.sub(r"\bmidnight\b", "12am", normalized)
    return normalized


def _hours_from_match(match: re.Match) -> Optional[DayHours]:
    pair = normalize_time_range(match.group("open"), match.group("close"))
    if pair is None:
        return None
    return DayHours(open=pair[0], close=pair[1])


def _days_from_match(match: re.Match, start_group: str, end_group: str) -> List[str]:
    start = parse_day(match.group(start_group))
    if start is None:
        return []
    end = parse_day(match.group(end_group)) if match.group(end_group) else None
    return expand_day_range(start, end) if end else [start]


def _month_number(token: str) -> int:
    prefix = token.lower()[:3]
    for index, name in enumerate(_MONTHS, start=1):
        if name.startswith(prefix):
            return index
    return 1


def _grid_date(
    number: int, month: int, year: Optional[int], label: Optional[str], reference: date
) -> Optional[date]:
    candidates = [year] if year else [reference.year, reference.year + 1]
    for candidate_year in candidates:
        try:
            value = date(candidate_year, month, number)
        except ValueError:
            continue
        if year is None and value < reference - timedelta(days=31):
            continue
        if label is None or weekday_label(value) == label:
            return value
    return None


def _headerless_date(number: int, label: Optional[str], reference: date) -> Optional[date]:
    # Rows before any header belong to the current month, or the next one.
    for offset in (0, 1):
        index = reference.month - 1 + offset
        try:
            value = date(reference.year + index // 12, index % 12 + 1, number)
        except ValueError:
            continue
        if label is None or weekday_label(value) == label:
            return value
    return None


def _with_location(instance: RawTimeInstance, location: Optional[str]) -> RawTimeInstance:
    if location is None or instance.location:
        return instance
    return RawTimeInstance(
        date=instance.date,
        start_time=instance.start_time,
        end_time=instance.end_time,
        note=instance.note,
        location=location,
    )
