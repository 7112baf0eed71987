"""Natural-language date/time parsing with a false-positive filter.

The heavy lifting is delegated to ``dateparser``; this module adapts it to
a span-oriented interface (matched text, certainty of the hour, start and
optional end) and applies the filter that keeps policy prose ("refunds
within 14 days", "delivery by 5pm") out of schedule extraction.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple

from dateparser.search import search_dates

LOGGER = logging.getLogger(__name__)

MIN_MATCH_LENGTH = 6

EXCLUDE_PATTERN = re.compile(
    r"expire|refund|policy|delivery|post|mail|discount|open day|working day",
    re.IGNORECASE,
)

# A clock time somewhere in the matched text; without one the hour is a guess.
_CERTAIN_HOUR = re.compile(
    r"\b\d{1,2}[:.]\d{2}\b|\b\d{1,2}\s*(?:a\.?m\.?|p\.?m\.?)(?![a-z])|\bnoon\b|\bmidnight\b",
    re.IGNORECASE,
)
_TIME_ONLY = re.compile(
    r"^\s*(?:\d{1,2}(?:[:.]\d{2})?\s*(?:a\.?m\.?|p\.?m\.?)?|noon|midnight)\s*$",
    re.IGNORECASE,
)
_RANGE_GAP = re.compile(r"^\s*(?:-|–|—|to|until|till)\s*$", re.IGNORECASE)


@dataclass(slots=True)
class ParsedSpan:
    """One date/time mention found in free text."""

    matched_text: str
    start_certain_hour: bool
    start: datetime
    end: Optional[datetime] = None


class DateParser(Protocol):
    def parse(
        self, text: str, reference_date: datetime, forward_bias: bool = True
    ) -> List[ParsedSpan]: ...


class DateparserBackend:
    """:class:`DateParser` backed by :func:`dateparser.search.search_dates`.

    Text is parsed line by line. A time-only match that directly follows
    another match across a range separator ("7:30pm to 9:30pm") becomes the
    end of the preceding span.
    """

    def __init__(self, languages: Sequence[str] = ("en",)) -> None:
        self.languages = list(languages)

    def parse(
        self, text: str, reference_date: datetime, forward_bias: bool = True
    ) -> List[ParsedSpan]:
        spans: List[ParsedSpan] = []
        for line in (text or "").splitlines():
            if not line.strip():
                continue
            spans.extend(self._parse_line(line, reference_date, forward_bias))
        return spans

    def _parse_line(
        self, line: str, reference_date: datetime, forward_bias: bool
    ) -> List[ParsedSpan]:
        settings = {
            "RELATIVE_BASE": reference_date,
            "PREFER_DATES_FROM": "future" if forward_bias else "current_period",
            "RETURN_AS_TIMEZONE_AWARE": False,
        }
        try:
            found = search_dates(line, languages=self.languages, settings=settings)
        except Exception as exc:
            LOGGER.debug("dateparser failed on %r: %s", line[:80], exc)
            return []
        if not found:
            return []

        spans: List[ParsedSpan] = []
        starts: List[int] = []
        cursor = 0
        previous_end = 0
        for matched, value in found:
            position = line.find(matched, cursor)
            if position < 0:
                position = cursor
            gap = line[previous_end:position]
            if spans and _TIME_ONLY.match(matched) and _RANGE_GAP.match(gap):
                last = spans[-1]
                if last.end is None:
                    last.end = last.start.replace(
                        hour=value.hour, minute=value.minute, second=0, microsecond=0
                    )
                    last.matched_text = line[starts[-1]:position + len(matched)]
                    cursor = previous_end = position + len(matched)
                    continue
            spans.append(
                ParsedSpan(
                    matched_text=matched,
                    start_certain_hour=bool(_CERTAIN_HOUR.search(matched)),
                    start=value,
                )
            )
            starts.append(position)
            cursor = previous_end = position + len(matched)
        return spans


_DEFAULT_PARSER: Optional[DateParser] = None


def default_parser() -> DateParser:
    global _DEFAULT_PARSER
    if _DEFAULT_PARSER is None:
        _DEFAULT_PARSER = DateparserBackend()
    return _DEFAULT_PARSER


def keep_span(span: ParsedSpan) -> bool:
    """Filter applied to every parser result."""
    text = (span.matched_text or "").strip()
    if len(text) < MIN_MATCH_LENGTH:
        return False
    if not span.start_certain_hour:
        return False
    if EXCLUDE_PATTERN.search(text):
        return False
    return True


def parse_segments(
    text: str,
    reference_date: datetime,
    parser: Optional[DateParser] = None,
) -> List[ParsedSpan]:
    """Parse ``text`` and return only spans that pass :func:`keep_span`."""
    backend = parser or default_parser()
    return [span for span in backend.parse(text, reference_date, True) if keep_span(span)]


def span_times(span: ParsedSpan) -> Tuple[str, str, Optional[str]]:
    """``(date, start, end)`` strings for a parsed span."""
    start = span.start
    end = span.end.strftime("%H:%M") if span.end else None
    return start.date().isoformat(), start.strftime("%H:%M"), end
