"""Driver for JavaScript-rendered calendar widgets.

The driver pages a calendar forward month by month through a
:class:`~venuecrawl.browser.BrowserSession`, re-extracting raw instances
from every snapshot and from intercepted calendar API responses.

    driver = CalendarDriver(lambda: PlaywrightSession(headless=True))
    dates = await driver.collect("https://www.example-venue.co.uk/calendar")
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Iterator, List, Optional, Set

from playwright.async_api import Error as PlaywrightError

from .browser import BrowserSession
from .builder import build_scraped_page
from .document import Dates, PageFetch, RawTimeInstance, ScrapedPage
from .extraction import DateExtractor, page_text
from .retry import retry_async
from .schedule import classify_instances, dedupe_instances
from .timeparse import normalize_time

LOGGER = logging.getLogger(__name__)

MAX_MONTHS = 12
MAX_ATTEMPTS = 30
MIN_ATTEMPTS = 10
MIN_MONTHS = 3
STAGNATION_ROUNDS = 3

CALENDAR_MARKERS = re.compile(
    r"fc-(?:daygrid|next-button|view-harness)|ui-datepicker|flatpickr|datepicker"
    r"|calendar-(?:grid|month|widget)|class=\"[^\"]*\bcalendar\b"
    r"|next[ -]month|aria-label=\"next",
    re.IGNORECASE,
)

NEXT_SELECTORS = (
    ".fc-next-button",
    "button.next-month",
    ".next-month",
    ".ui-datepicker-next",
    ".flatpickr-next-month",
    ".calendar-next",
    "[aria-label='Next month']",
    "[aria-label='Next']",
    "button:has-text('Next month')",
    "button:has-text('Next')",
)

_MONTH_KEY = re.compile(r"^(\d{4})-(\d{2})")
_START_KEYS = ("start", "startDate", "start_date", "date", "day")
_END_KEYS = ("end", "endDate", "end_date")
_OPEN_KEYS = ("startTime", "open", "opens", "openingTime", "from")
_CLOSE_KEYS = ("endTime", "close", "closes", "closingTime", "to")


class CalendarDriverError(Exception):
    """Raised when one attempt at driving a calendar fails."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


def is_dynamic_calendar(page: ScrapedPage) -> bool:
    """True when the page markup carries a calendar widget or month pager."""
    return bool(CALENDAR_MARKERS.search(page.html or ""))


def instances_from_api_payload(
    payload: Any, location: Optional[str] = None
) -> List[RawTimeInstance]:
    """Raw instances from an intercepted calendar API body.

    Any object carrying a start date is an instance; times come from the
    same ISO value or from sibling open/close keys. Entries that do not
    parse are skipped.
    """
    instances: List[RawTimeInstance] = []
    for node in _iter_objects(payload):
        instance = _instance_from_node(node, location)
        if instance is not None:
            instances.append(instance)
    return dedupe_instances(instances)


class CalendarDriver:
    """Pages a dynamic calendar forward and gathers every raw instance."""

    def __init__(
        self,
        session_factory: Callable[[], BrowserSession],
        extractor: Optional[DateExtractor] = None,
        *,
        attempts: int = 3,
        base_delay: float = 1.0,
        render_wait_ms: int = 800,
        location: Optional[str] = None,
    ) -> None:
        self.session_factory = session_factory
        self.extractor = extractor or DateExtractor()
        self.attempts = attempts
        self.base_delay = base_delay
        self.render_wait_ms = render_wait_ms
        self.location = location

    async def run(self, url: str) -> List[RawTimeInstance]:
        """Raw instances across all months; ``[]`` when every attempt fails."""
        try:
            return await retry_async(
                lambda: self._drive(url),
                attempts=self.attempts,
                base_delay=self.base_delay,
                retry_on=(CalendarDriverError,),
            )
        except CalendarDriverError as exc:
            LOGGER.warning("Calendar driver gave up on %s: %s", url, exc)
            return []

    async def collect(self, url: str) -> Optional[Dates]:
        instances = await self.run(url)
        return classify_instances(
            instances, source="calendar", reference=self.extractor.reference.date()
        )

    async def _drive(self, url: str) -> List[RawTimeInstance]:
        session = self.session_factory()
        collected: List[RawTimeInstance] = []
        try:
            await session.open(url)
            collected.extend(self._snapshot_instances(await session.snapshot()))
            collected.extend(await self._drain(session))

            months = _months_of(collected)
            attempts = 0
            stagnant = 0
            while attempts < MAX_ATTEMPTS and len(months) < MAX_MONTHS:
                attempts += 1
                if not await self._advance(session):
                    await session.press("PageDown")
                await session.wait(self.render_wait_ms)

                before = len(collected)
                collected = dedupe_instances(
                    collected
                    + self._snapshot_instances(await session.snapshot())
                    + await self._drain(session)
                )
                months = _months_of(collected)

                stagnant = stagnant + 1 if len(collected) == before else 0
                if stagnant >= STAGNATION_ROUNDS and (
                    attempts >= MIN_ATTEMPTS or len(months) >= MIN_MONTHS
                ):
                    LOGGER.debug("Calendar at %s stopped changing after %d steps", url, attempts)
                    break

            LOGGER.info(
                "Calendar driver on %s: %d instances over %d months in %d steps",
                url,
                len(collected),
                len(months),
                attempts,
            )
            return dedupe_instances(collected)
        except CalendarDriverError:
            raise
        except Exception as exc:
            raise CalendarDriverError(f"Driving calendar failed: {exc}", url=url) from exc
        finally:
            await session.close()

    async def _advance(self, session: BrowserSession) -> bool:
        for selector in NEXT_SELECTORS:
            if await session.interact(selector):
                return True
        return False

    def _snapshot_instances(self, fetch: PageFetch) -> List[RawTimeInstance]:
        page = build_scraped_page(fetch, reference=self.extractor.reference.date())
        instances = self.extractor.raw_instances(page_text(page), location=self.location)
        instances.extend(page.structured.json_ld_events)
        return instances

    async def _drain(self, session: BrowserSession) -> List[RawTimeInstance]:
        instances: List[RawTimeInstance] = []
        while not session.responses.empty():
            response = session.responses.get_nowait()
            try:
                payload = await _response_json(response)
            except (ValueError, asyncio.TimeoutError, PlaywrightError) as exc:
                LOGGER.debug("Skipping unreadable calendar response: %s", exc)
                continue
            instances.extend(instances_from_api_payload(payload, self.location))
        return instances


async def _response_json(response: Any) -> Any:
    if isinstance(response, (dict, list)):
        return response
    if isinstance(response, (str, bytes)):
        return json.loads(response)
    return await response.json()


def _months_of(instances: List[RawTimeInstance]) -> Set[str]:
    months = set()
    for item in instances:
        match = _MONTH_KEY.match(item.date)
        if match:
            months.add(match.group(0))
    return months


def _iter_objects(payload: Any) -> Iterator[dict]:
    if isinstance(payload, dict):
        yield payload
        for value in payload.values():
            if isinstance(value, (dict, list)):
                yield from _iter_objects(value)
    elif isinstance(payload, list):
        for item in payload:
            yield from _iter_objects(item)


def _instance_from_node(node: dict, location: Optional[str]) -> Optional[RawTimeInstance]:
    start_raw = _first(node, _START_KEYS)
    start = _parse_moment(start_raw)
    if start is None:
        return None
    day, start_time = start

    end = _parse_moment(_first(node, _END_KEYS))
    end_time = end[1] if end else None
    open_time = normalize_time(_as_text(_first(node, _OPEN_KEYS)))
    close_time = normalize_time(_as_text(_first(node, _CLOSE_KEYS)))
    start_time = start_time or open_time
    end_time = end_time or close_time

    place = node.get("location") if isinstance(node.get("location"), str) else location
    if _is_closed(node):
        return RawTimeInstance(date=day.isoformat(), note="closed", location=place)
    if start_time is None:
        return None
    return RawTimeInstance(
        date=day.isoformat(), start_time=start_time, end_time=end_time, location=place
    )


def _parse_moment(value: Any) -> Optional[tuple]:
    text = _as_text(value)
    if not text:
        return None
    try:
        moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            return date.fromisoformat(text[:10]), None
        except ValueError:
            return None
    if "T" not in text and " " not in text.strip():
        return moment.date(), None
    return moment.date(), moment.strftime("%H:%M")


def _is_closed(node: dict) -> bool:
    if node.get("closed") is True or node.get("isClosed") is True:
        return True
    status = node.get("status")
    return isinstance(status, str) and status.strip().lower() == "closed"


def _first(node: dict, keys: tuple) -> Any:
    for key in keys:
        if node.get(key) not in (None, ""):
            return node[key]
    return None


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip()
    return None
