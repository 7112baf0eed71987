"""End-to-end resolution of one entity: official URL, crawl, dates.

    from venuecrawl import Entity, resolve_entity

    result = resolve_entity(Entity(entity_id="42", name="The Old Vic", tags=["theatre"]))
    print(result.to_dict()["classification"])
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from .browser import (
    BrowserSession,
    Crawl4aiFetcher,
    PageFetcher,
    PlaywrightSession,
    random_user_agent,
)
from .calendar import CalendarDriver, is_dynamic_calendar
from .config import Settings
from .document import Dates, ScoredCandidate, ScrapedPage, WeeklySchedule
from .extraction import DateExtractor
from .resolver import Entity, SearchFunction, UrlResolution, resolve_official_url
from .site import CrawlExhaustedError, SiteCrawler, SiteCrawlResult

LOGGER = logging.getLogger(__name__)


@dataclass
class ResolutionResult:
    """Output handed to the rest of the enrichment pipeline."""

    entity_id: str
    resolved_official_url: Optional[str] = None
    pages: List[ScrapedPage] = field(default_factory=list)
    primary_dates_page: Optional[ScrapedPage] = None
    dates: Optional[Dates] = None
    scored_urls: List[ScoredCandidate] = field(default_factory=list)
    resolution: Optional[UrlResolution] = None
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def classification(self) -> Optional[str]:
        return self.dates.kind if self.dates is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolvedOfficialUrl": self.resolved_official_url,
            "pages": [page.to_dict() for page in self.pages],
            "primaryDatesPage": (
                self.primary_dates_page.to_dict() if self.primary_dates_page else None
            ),
            "dates": self.dates.to_dict() if self.dates is not None else None,
            "classification": self.classification,
            "scoredUrls": [item.to_dict() for item in self.scored_urls],
        }


async def resolve_entity_async(
    entity: Entity,
    *,
    settings: Optional[Settings] = None,
    fetcher: Optional[PageFetcher] = None,
    client: Optional[httpx.AsyncClient] = None,
    extractor: Optional[DateExtractor] = None,
    session_factory: Optional[Callable[[], BrowserSession]] = None,
    search_fn: Optional[SearchFunction] = None,
) -> ResolutionResult:
    """
    Resolve one entity to its official site, crawl it, and extract dates.

    Args:
        entity: The venue or event to resolve.
        settings: Limits and timeouts (defaults read from the environment).
        fetcher: Page fetch capability (defaults to Crawl4AI).
        client: HTTP client for verification and sitemaps.
        extractor: Date extraction chain.
        session_factory: Creates interactive sessions for dynamic calendars.
        search_fn: Replaces the SearXNG search for official-URL candidates.

    Returns:
        ResolutionResult; ``resolved_official_url`` is ``None`` when no
        official page exists or none of its pages could be fetched.
    """
    active = settings or Settings.from_env()
    engine = extractor or DateExtractor()
    owns_client = client is None
    http = client or httpx.AsyncClient(
        headers={"User-Agent": random_user_agent()}, follow_redirects=True
    )
    try:
        resolution = await resolve_official_url(
            entity, client=http, settings=active, search_fn=search_fn
        )
        if resolution.url is None:
            LOGGER.info("[%s] unresolved (%s)", entity.entity_id, resolution.source)
            return ResolutionResult(entity_id=entity.entity_id, resolution=resolution)

        crawler = SiteCrawler(
            entity.name,
            fetcher or Crawl4aiFetcher(active),
            settings=active,
            client=http,
            extractor=engine,
            location=entity.location,
            entity_id=entity.entity_id,
        )
        try:
            crawl = await crawler.run(resolution.url)
        except CrawlExhaustedError as exc:
            LOGGER.warning("[%s] could not resolve entity: %s", entity.entity_id, exc)
            return ResolutionResult(entity_id=entity.entity_id, resolution=resolution)
    finally:
        if owns_client:
            await http.aclose()

    primary_page, dates = crawl.primary_dates_page, crawl.dates
    if not isinstance(dates, WeeklySchedule):
        calendar_page = _dynamic_calendar_page(crawl)
        if calendar_page is not None:
            factory = session_factory or (
                lambda: PlaywrightSession(headless=active.headless, timeout=active.page_timeout)
            )
            driven = await _drive_calendar(entity, calendar_page, factory, engine)
            if driven is not None and (dates is None or isinstance(driven, WeeklySchedule)):
                primary_page, dates = calendar_page, driven

    LOGGER.info(
        "[%s] resolved %s with %s dates",
        entity.entity_id,
        resolution.url,
        dates.kind if dates is not None else "no",
    )
    return ResolutionResult(
        entity_id=entity.entity_id,
        resolved_official_url=resolution.url,
        pages=crawl.pages,
        primary_dates_page=primary_page,
        dates=dates,
        scored_urls=crawl.scored,
        resolution=resolution,
        errors=crawl.errors,
    )


def resolve_entity(entity: Entity, **kwargs: Any) -> ResolutionResult:
    """Synchronous wrapper for :func:`resolve_entity_async`."""
    return asyncio.run(resolve_entity_async(entity, **kwargs))


def _dynamic_calendar_page(crawl: SiteCrawlResult) -> Optional[ScrapedPage]:
    ordered = [crawl.primary_dates_page] + crawl.selected_pages + crawl.pages
    for page in ordered:
        if page is not None and is_dynamic_calendar(page):
            return page
    return None


async def _drive_calendar(
    entity: Entity,
    page: ScrapedPage,
    factory: Callable[[], BrowserSession],
    extractor: DateExtractor,
) -> Optional[Dates]:
    LOGGER.info("[%s] driving dynamic calendar on %s", entity.entity_id, page.url)
    driver = CalendarDriver(factory, extractor, location=entity.location)
    return await driver.collect(page.url)
