"""Data structures shared by the crawl, resolution, and extraction layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .timeparse import DAY_LABELS


@dataclass(frozen=True, slots=True)
class RawTimeInstance:
    """One observed opening or occurrence: a date with optional times."""

    date: str  # ISO YYYY-MM-DD
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    note: Optional[str] = None
    location: Optional[str] = None

    @property
    def key(self) -> Tuple[str, Optional[str], Optional[str], Optional[str]]:
        return (self.date, self.start_time, self.end_time, self.note)

    @property
    def is_closed(self) -> bool:
        return self.start_time is None and (self.note or "").lower() == "closed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "note": self.note,
        }


@dataclass(frozen=True, slots=True)
class DayHours:
    open: str
    close: str

    def to_dict(self) -> Dict[str, str]:
        return {"open": self.open, "close": self.close}


@dataclass(frozen=True, slots=True)
class ScheduleException:
    """A dated deviation from the weekly pattern."""

    date: str
    status: str  # open, closed
    open: Optional[str] = None
    close: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"date": self.date, "status": self.status}
        if self.status == "open":
            payload["open"] = self.open
            payload["close"] = self.close
        return payload


@dataclass(slots=True)
class WeeklySchedule:
    """Seven weekday labels mapped to hours; ``None`` means closed."""

    days: Dict[str, Optional[DayHours]] = field(default_factory=dict)
    exceptions: List[ScheduleException] = field(default_factory=list)
    location: Optional[str] = None
    source: str = ""

    def __post_init__(self) -> None:
        for label in DAY_LABELS:
            self.days.setdefault(label, None)

    @property
    def kind(self) -> str:
        return "place"

    def populated_days(self) -> List[str]:
        return [label for label in DAY_LABELS if self.days.get(label) is not None]

    def hours_for(self, label: str) -> Optional[DayHours]:
        return self.days.get(label)

    def to_dict(self) -> Dict[str, Any]:
        opening_hours: Dict[str, Any] = {}
        for label in DAY_LABELS:
            hours = self.days.get(label)
            opening_hours[label] = hours.to_dict() if hours else "closed"
        return {
            "kind": "place",
            "openingHours": opening_hours,
            "exceptions": [ex.to_dict() for ex in self.exceptions],
            "location": self.location,
        }


@dataclass(frozen=True, slots=True)
class EventInstance:
    date: str
    start_time: str
    end_time: str
    location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "location": self.location,
        }


@dataclass(slots=True)
class EventInstanceSet:
    instances: List[EventInstance] = field(default_factory=list)
    source: str = ""

    @property
    def kind(self) -> str:
        return "event"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": "event",
            "instances": [item.to_dict() for item in self.instances],
        }


Dates = Union[WeeklySchedule, EventInstanceSet]


@dataclass(frozen=True, slots=True)
class Link:
    """Outbound anchor collected from a rendered page."""

    href: str
    text: str = ""


@dataclass(slots=True)
class PageFetch:
    """What the browser capability returns for one navigation."""

    final_url: str
    status_code: Optional[int]
    rendered_html: str
    visible_text: str
    title: str = ""
    outbound_links: List[Link] = field(default_factory=list)
    json_ld_scripts: List[str] = field(default_factory=list)


@dataclass(slots=True)
class StructuredFields:
    """Best-effort field snippets pulled from a page."""

    description: str = ""
    price_text: str = ""
    age_text: str = ""
    opening_hours_text: str = ""
    address_text: str = ""
    extracted_hours: str = ""
    extracted_age: str = ""
    extracted_price: str = ""
    extracted_description: str = ""
    json_ld_hours: Optional[WeeklySchedule] = None
    json_ld_events: List[RawTimeInstance] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ScrapedPage:
    """Immutable record of one successful page fetch."""

    url: str
    title: str
    raw_text: str
    html: str
    structured: StructuredFields = field(default_factory=StructuredFields)
    links: Tuple[Link, ...] = ()
    raw_date_time_instances: Tuple[RawTimeInstance, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "rawText": self.raw_text,
            "html": self.html,
            "structuredFields": {
                "description": self.structured.description,
                "priceText": self.structured.price_text,
                "ageText": self.structured.age_text,
                "openingHoursText": self.structured.opening_hours_text,
                "extractedHours": self.structured.extracted_hours,
                "extractedAge": self.structured.extracted_age,
                "extractedPrice": self.structured.extracted_price,
                "extractedDescription": self.structured.extracted_description,
                "jsonLd": {
                    "openingHours": (
                        self.structured.json_ld_hours.to_dict()
                        if self.structured.json_ld_hours is not None
                        else None
                    ),
                    "events": [item.to_dict() for item in self.structured.json_ld_events],
                },
            },
            "rawDateTimeInstances": [item.to_dict() for item in self.raw_date_time_instances],
        }


@dataclass(frozen=True, slots=True)
class ScoredCandidate:
    url: str
    score: int

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "score": self.score}
