"""Official-site resolution and opening-hours extraction for venues and events.

This package finds the authoritative web presence for a named venue or
event, crawls it under a page budget, and extracts either a weekly
opening-hours table or a list of dated event occurrences. It supports:

- Official URL resolution (trusted website, SearXNG search, verification)
- Budgeted site crawling with golden-link injection and hours sub-crawls
- Date extraction from JSON-LD, natural language, hour tables and grids
- Driving JavaScript calendars month by month

Example usage:

    from venuecrawl import Entity, resolve_entity, crawl_site

    # Full resolution
    result = resolve_entity(
        Entity(entity_id="42", name="Sky Garden", tags=["viewpoint"])
    )
    print(result.resolved_official_url)
    print(result.to_dict()["dates"])

    # Crawl a known site
    crawl = crawl_site("https://skygarden.london/", "Sky Garden")
    for candidate in crawl.scored[:5]:
        print(candidate.score, candidate.url)

    # Extract from text
    from venuecrawl import DateExtractor
    dates = DateExtractor().extract_text("Mon-Fri 10am-6pm\\nSat-Sun 11am-4pm")
"""

from __future__ import annotations

from .budget import CrawlBudget
from .calendar import CalendarDriver, CalendarDriverError, is_dynamic_calendar
from .config import Settings, load_settings
from .document import (
    DayHours,
    EventInstance,
    EventInstanceSet,
    RawTimeInstance,
    ScheduleException,
    ScoredCandidate,
    ScrapedPage,
    WeeklySchedule,
)
from .extraction import DateExtractor, extract_dates
from .pipeline import ResolutionResult, resolve_entity, resolve_entity_async
from .resolver import Entity, UrlResolution, resolve_official_url
from .search import SearchError, SearchResult, SearchResultItem, search, search_async
from .site import CrawlExhaustedError, SiteCrawlResult, crawl_site, crawl_site_async

__all__ = [
    # Data types
    "DayHours",
    "EventInstance",
    "EventInstanceSet",
    "RawTimeInstance",
    "ScheduleException",
    "ScoredCandidate",
    "ScrapedPage",
    "WeeklySchedule",
    # Configuration
    "Settings",
    "load_settings",
    # Search
    "SearchResult",
    "SearchResultItem",
    "SearchError",
    "search",
    "search_async",
    # Resolution
    "Entity",
    "UrlResolution",
    "resolve_official_url",
    "ResolutionResult",
    "resolve_entity",
    "resolve_entity_async",
    # Crawl
    "CrawlBudget",
    "CrawlExhaustedError",
    "SiteCrawlResult",
    "crawl_site",
    "crawl_site_async",
    # Extraction
    "DateExtractor",
    "extract_dates",
    # Dynamic calendars
    "CalendarDriver",
    "CalendarDriverError",
    "is_dynamic_calendar",
]
