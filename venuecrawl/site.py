"""Budgeted, priority-ordered site crawler.

One :class:`SiteCrawler` explores a single origin for a single entity. Pages
are fetched strictly one at a time; a :class:`~venuecrawl.budget.CrawlBudget`
gates both queue admission and fetching.

Example usage:

    result = await crawl_site_async(
        "https://www.example-venue.co.uk/",
        "Example Venue",
    )
    print(result.dates.to_dict() if result.dates else "no dates")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx

from .browser import Crawl4aiFetcher, PageFetcher, random_user_agent
from .budget import CrawlBudget
from .builder import build_scraped_page
from .config import Settings
from .document import Dates, ScoredCandidate, ScrapedPage, WeeklySchedule
from .extraction import DateExtractor, extract_dates
from .links import find_golden_links, is_relevant_link
from .scoring import (
    HIGH_PRIORITY_SCORE,
    RELEVANT_PATH_KEYWORDS,
    SEMANTIC_PRIORITY,
    TASKS,
    is_hours_candidate,
    score_page,
    score_page_for_task,
    score_url,
    score_url_for_task,
)
from .sitemap import sitemap_candidates
from .urls import normalize_url, origin_of, same_origin, slugify_name

LOGGER = logging.getLogger(__name__)

GENERAL_TRACK_SIZE = 2


class CrawlExhaustedError(Exception):
    """Raised when a crawl ends without a single successfully fetched page."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


@dataclass
class SiteCrawlResult:
    """Result of a site crawl operation."""

    pages: List[ScrapedPage] = field(default_factory=list)
    scored: List[ScoredCandidate] = field(default_factory=list)
    hours_page: Optional[ScrapedPage] = None
    general_pages: List[ScrapedPage] = field(default_factory=list)
    primary_dates_page: Optional[ScrapedPage] = None
    dates: Optional[Dates] = None
    errors: List[Dict[str, str]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def selected_pages(self) -> List[ScrapedPage]:
        selected = [self.hours_page] if self.hours_page else []
        return selected + list(self.general_pages)


@dataclass
class _QueueEntry:
    url: str
    depth: int
    priority: int
    semantic: bool = False

    @property
    def high_priority(self) -> bool:
        return self.semantic or self.priority >= HIGH_PRIORITY_SCORE


class SiteCrawler:
    """Crawl state for one entity on one origin."""

    def __init__(
        self,
        entity_name: str,
        fetcher: PageFetcher,
        *,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        extractor: Optional[DateExtractor] = None,
        budget: Optional[CrawlBudget] = None,
        location: Optional[str] = None,
        entity_id: str = "",
    ) -> None:
        self.entity_name = entity_name
        self.fetcher = fetcher
        self.settings = settings or Settings()
        self.client = client
        self.extractor = extractor or DateExtractor()
        self.budget = budget or CrawlBudget(
            soft_limit=self.settings.soft_limit, hard_limit=self.settings.hard_limit
        )
        self.location = location
        self.tag = f"[{entity_id or entity_name}]"

        slug = slugify_name(entity_name)
        self.name_tokens: Tuple[str, ...] = (slug,) if slug else ()
        self.keywords: Tuple[str, ...] = RELEVANT_PATH_KEYWORDS + self.name_tokens

        self.origin: Optional[str] = None
        self.visited: Set[str] = set()
        self.queue: List[_QueueEntry] = []
        self.semantic: Set[str] = set()
        self.scored: Dict[str, Tuple[ScrapedPage, int]] = {}
        self.all_pages: Dict[str, ScrapedPage] = {}
        self.candidate_links: Dict[str, int] = {}
        self.errors: List[Dict[str, str]] = []

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self, url: str) -> SiteCrawlResult:
        start = normalize_url(url)
        origin = origin_of(url) if start else None
        if not start or not origin:
            raise CrawlExhaustedError(f"Not a crawlable URL: {url}", url=url)
        self.origin = origin

        await self.seed(start)
        await self.crawl_queue()

        primary_page, dates = self._extract()
        if not isinstance(dates, WeeklySchedule):
            LOGGER.info("%s no weekly schedule in crawled pages; launching targeted hours crawl", self.tag)
            found = await self.hours_subcrawl()
            if found is not None and (dates is None or isinstance(found[1], WeeklySchedule)):
                primary_page, dates = found

        if not self.all_pages:
            raise CrawlExhaustedError(
                f"No page could be fetched from {origin}", url=url
            )

        hours_page, general_pages = self.select_tracks()
        scored = sorted(
            (ScoredCandidate(url=key, score=score) for key, (_, score) in self.scored.items()),
            key=lambda item: -item.score,
        )
        LOGGER.info(
            "%s crawl finished: %d pages, dates=%s",
            self.tag,
            len(self.all_pages),
            dates.kind if dates else None,
        )
        return SiteCrawlResult(
            pages=list(self.all_pages.values()),
            scored=scored,
            hours_page=hours_page,
            general_pages=general_pages,
            primary_dates_page=primary_page,
            dates=dates,
            errors=list(self.errors),
            stats={
                "pages_crawled": self.budget.pages_crawled,
                "visited": len(self.visited),
                "queued": len(self.queue),
                "error_count": len(self.errors),
            },
        )

    # ------------------------------------------------------------------
    # Queue management
    # ------------------------------------------------------------------

    async def seed(self, start: str) -> None:
        root = normalize_url(f"{self.origin}/")
        if root:
            self.admit(root, 0)
        self.admit(start, 0)
        if self.client is None or self.origin is None:
            return
        for url in await sitemap_candidates(
            self.origin,
            self.client,
            name_tokens=self.name_tokens,
            max_urls=self.settings.sitemap_max_urls,
            max_depth=self.settings.sitemap_max_depth,
            threshold=self.settings.sitemap_prescore_threshold,
            timeout=self.settings.sitemap_timeout,
        ):
            self.admit(url, 1)

    def admit(self, url: str, depth: int, *, semantic: bool = False) -> bool:
        """Queue ``url`` if unseen and the budget allows it.

        Semantic (golden) links go to the front with top priority; an
        already-queued URL is promoted instead of duplicated.
        """
        if url in self.visited:
            return False
        existing = next((entry for entry in self.queue if entry.url == url), None)
        if existing is not None and not semantic:
            return False

        priority = SEMANTIC_PRIORITY if semantic else score_url(url)
        high_priority = semantic or priority >= HIGH_PRIORITY_SCORE
        if not self.budget.admits(high_priority):
            LOGGER.debug("%s budget refused %s (priority %d)", self.tag, url, priority)
            return False

        if existing is not None:
            self.queue.remove(existing)
        entry = _QueueEntry(url=url, depth=depth, priority=priority, semantic=semantic)
        if semantic:
            self.semantic.add(url)
            self.queue.insert(0, entry)
        else:
            self.queue.append(entry)
        self.queue.sort(key=lambda item: -item.priority)
        LOGGER.debug("%s queued %s (depth %d, priority %d)", self.tag, url, depth, priority)
        return True

    async def crawl_queue(self) -> None:
        while self.queue:
            if self.budget.hard:
                LOGGER.info("%s hard budget of %d pages reached", self.tag, self.budget.hard_limit)
                break
            if self.budget.pages_crawled >= self.settings.page_cap:
                LOGGER.info("%s reached page limit of %d", self.tag, self.settings.page_cap)
                break
            entry = self.queue.pop(0)
            if entry.url in self.visited:
                continue
            if not self.budget.admits(entry.high_priority):
                LOGGER.debug("%s soft budget skips %s", self.tag, entry.url)
                continue
            page = await self.visit(entry.url, entry.depth)
            if page is None or entry.depth >= self.settings.max_depth:
                continue
            self._enqueue_links(page, entry.depth)

    async def visit(self, url: str, depth: int) -> Optional[ScrapedPage]:
        """Fetch one URL, record the page, and inject its golden links."""
        self.visited.add(url)
        self.candidate_links.pop(url, None)
        try:
            fetch = await self.fetcher.fetch(url)
            if fetch is None:
                self.errors.append({"url": url, "error": "fetch failed", "stage": "crawl"})
                return None
            self.budget.record_fetch()
            page = build_scraped_page(fetch, reference=self._reference().date())
        except Exception as exc:
            LOGGER.warning("%s failed to process %s: %s", self.tag, url, exc)
            self.errors.append({"url": url, "error": str(exc), "stage": "build"})
            return None

        self.visited.add(page.url)
        self.all_pages.setdefault(page.url, page)
        self._record(page, score_page(page, self.entity_name))
        LOGGER.debug(
            "%s crawled %s (%d/%d)",
            self.tag,
            page.url,
            self.budget.pages_crawled,
            self.budget.hard_limit,
        )

        local_links = [link for link in page.links if self._is_local(link.href)]
        for href in reversed(find_golden_links(page.raw_text, local_links)):
            if href not in self.visited:
                LOGGER.info("%s golden link %s", self.tag, href)
                self.admit(href, depth + 1, semantic=True)
        return page

    def _enqueue_links(self, page: ScrapedPage, depth: int) -> None:
        for link in page.links:
            href = link.href
            if href in self.visited or not self._is_local(href):
                continue
            self.candidate_links.setdefault(href, depth + 1)
            if depth >= 1 and not is_relevant_link(href, self.keywords):
                continue
            self.admit(href, depth + 1)

    # ------------------------------------------------------------------
    # Targeted sub-crawls
    # ------------------------------------------------------------------

    async def hours_subcrawl(self) -> Optional[Tuple[ScrapedPage, Dates]]:
        """Visit unvisited links ranked for the hours task until a weekly schedule appears.

        The first event set met on the way is returned when no schedule turns up.
        """
        task = TASKS["hours"]
        ranked = sorted(
            (url for url in self.candidate_links if url not in self.visited),
            key=lambda url: score_url_for_task(url, task),
            reverse=True,
        )[: self.settings.hours_subcrawl_limit]

        fallback: Optional[Tuple[ScrapedPage, Dates]] = None
        for url in ranked:
            if self.budget.hard:
                break
            task_score = score_url_for_task(url, task)
            if not self.budget.admits(task_score >= HIGH_PRIORITY_SCORE):
                continue
            page = await self.visit(url, self.candidate_links.get(url, 1))
            if page is None:
                continue
            found = self._found(page)
            if not _is_weekly(found) and is_hours_candidate(url):
                deeper = await self.mini_crawl(page)
                if deeper is not None and (found is None or _is_weekly(deeper)):
                    found = deeper
            if found is None:
                continue
            if isinstance(found[1], WeeklySchedule):
                LOGGER.info("%s hours crawl found a weekly schedule on %s", self.tag, found[0].url)
                return found
            fallback = fallback or found
        return fallback

    async def mini_crawl(self, page: ScrapedPage) -> Optional[Tuple[ScrapedPage, Dates]]:
        """One hop deeper from an hours candidate, hours-keyword links first."""
        task = TASKS["hours"]
        links = [
            link.href
            for link in page.links
            if self._is_local(link.href) and link.href not in self.visited
        ]
        links.sort(key=lambda url: score_url_for_task(url, task), reverse=True)
        links = links[: self.settings.mini_crawl_limit]
        LOGGER.info("%s mini-crawl from %s over %d links", self.tag, page.url, len(links))

        fallback: Optional[Tuple[ScrapedPage, Dates]] = None
        for url in links:
            if self.budget.hard:
                break
            if not self.budget.admits(score_url_for_task(url, task) >= HIGH_PRIORITY_SCORE):
                continue
            child = await self.visit(url, 2)
            if child is None:
                continue
            found = self._found(child)
            if found is None:
                continue
            if isinstance(found[1], WeeklySchedule):
                return found
            fallback = fallback or found
        return fallback

    def _found(self, page: ScrapedPage) -> Optional[Tuple[ScrapedPage, Dates]]:
        dates = self.extractor.extract(page, location=self.location)
        if dates is None:
            return None
        return page, dates

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_tracks(self) -> Tuple[Optional[ScrapedPage], List[ScrapedPage]]:
        """Best hours-task page, plus the next best general pages."""
        if not self.scored:
            return None, []
        task = TASKS["hours"]
        hours_page = max(
            (page for page, _ in self.scored.values()),
            key=lambda page: score_page_for_task(page, task, self.entity_name),
        )
        general = [
            page
            for page, _ in sorted(self.scored.values(), key=lambda item: -item[1])
            if page.url != hours_page.url
        ][:GENERAL_TRACK_SIZE]
        return hours_page, general

    def ranked_pages(self) -> List[ScrapedPage]:
        hours_page, general = self.select_tracks()
        ordered = ([hours_page] if hours_page else []) + general
        seen = {page.url for page in ordered}
        for page, _ in sorted(self.scored.values(), key=lambda item: -item[1]):
            if page.url not in seen:
                ordered.append(page)
                seen.add(page.url)
        return ordered

    def _extract(self) -> Tuple[Optional[ScrapedPage], Optional[Dates]]:
        page, dates = extract_dates(self.ranked_pages(), self.extractor, location=self.location)
        if isinstance(dates, WeeklySchedule):
            LOGGER.info("%s weekly schedule found on %s", self.tag, page.url if page else "?")
        return page, dates

    def _record(self, page: ScrapedPage, score: int) -> None:
        existing = self.scored.get(page.url)
        if existing is None or score > existing[1]:
            self.scored[page.url] = (page, score)

    def _is_local(self, url: str) -> bool:
        return self.origin is not None and same_origin(url, self.origin)

    def _reference(self) -> datetime:
        return self.extractor.reference


def _is_weekly(found: Optional[Tuple[ScrapedPage, Dates]]) -> bool:
    return found is not None and isinstance(found[1], WeeklySchedule)


async def crawl_site_async(
    url: str,
    entity_name: str,
    *,
    fetcher: Optional[PageFetcher] = None,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
    extractor: Optional[DateExtractor] = None,
    location: Optional[str] = None,
    entity_id: str = "",
) -> SiteCrawlResult:
    """
    Crawl a venue site under a fresh page budget.

    Args:
        url: The official URL to start from.
        entity_name: Name used for page scoring.
        fetcher: Page fetch capability (defaults to Crawl4AI).
        settings: Limits and timeouts.
        client: HTTP client for sitemap discovery.

    Returns:
        SiteCrawlResult with pages, scores, tracks, and extracted dates.

    Raises:
        CrawlExhaustedError: If no page could be fetched at all.
    """
    active = settings or Settings()
    owns_client = client is None
    http = client or httpx.AsyncClient(
        headers={"User-Agent": random_user_agent()}, follow_redirects=True
    )
    crawler = SiteCrawler(
        entity_name,
        fetcher or Crawl4aiFetcher(active),
        settings=active,
        client=http,
        extractor=extractor,
        location=location,
        entity_id=entity_id,
    )
    try:
        return await crawler.run(url)
    finally:
        if owns_client:
            await http.aclose()


def crawl_site(
    url: str,
    entity_name: str,
    *,
    fetcher: Optional[PageFetcher] = None,
    settings: Optional[Settings] = None,
    location: Optional[str] = None,
    entity_id: str = "",
) -> SiteCrawlResult:
    """Synchronous wrapper for crawl_site_async."""
    return asyncio.run(
        crawl_site_async(
            url,
            entity_name,
            fetcher=fetcher,
            settings=settings,
            location=location,
            entity_id=entity_id,
        )
    )
