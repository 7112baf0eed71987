"""Browser capabilities: one-shot page fetches and interactive sessions.

The crawl engine only sees :class:`PageFetcher`; the calendar driver only
sees :class:`BrowserSession`. Crawl4AI backs the fetcher, Playwright backs
the session.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from typing import Any, List, Optional, Pattern, Protocol, Tuple

from crawl4ai import AsyncWebCrawler, BrowserConfig, CrawlerRunConfig
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .builder import build_fetch_from_result, derive_failure_reason, fetch_from_html
from .config import BLOCKED_RESOURCE_TYPES, Settings, build_page_run_config
from .document import PageFetch
from .retry import retry_async

LOGGER = logging.getLogger(__name__)

USER_AGENTS: List[str] = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_6) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.0 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.6045.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/118.0.5993.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/117.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:115.0) Gecko/20100101 Firefox/115.0",
]

VIEWPORT_WIDTH = (1280, 1920)
VIEWPORT_HEIGHT = (720, 1080)


class FetchError(Exception):
    """Raised when a single page fetch fails."""

    def __init__(self, message: str, url: str = ""):
        self.url = url
        super().__init__(message)


def random_viewport() -> Tuple[int, int]:
    return random.randint(*VIEWPORT_WIDTH), random.randint(*VIEWPORT_HEIGHT)


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


class PageFetcher(Protocol):
    async def fetch(self, url: str) -> Optional[PageFetch]: ...


class Crawl4aiFetcher:
    """Fetch each page in a fresh browser with its own viewport and user agent.

    Transient failures are retried; a URL that keeps failing yields ``None``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        run_config: Optional[CrawlerRunConfig] = None,
        retry_delay: float = 2.0,
    ) -> None:
        self.settings = settings or Settings()
        self.run_config = run_config or build_page_run_config(self.settings)
        self.retry_delay = retry_delay

    async def fetch(self, url: str) -> Optional[PageFetch]:
        try:
            return await retry_async(
                lambda: self._fetch_once(url),
                attempts=self.settings.fetch_attempts,
                base_delay=self.retry_delay,
                retry_on=(FetchError,),
            )
        except FetchError as exc:
            LOGGER.warning("Giving up on %s: %s", url, exc)
            return None

    async def _fetch_once(self, url: str) -> Optional[PageFetch]:
        width, height = random_viewport()
        browser_cfg = BrowserConfig(
            headless=self.settings.headless,
            viewport_width=width,
            viewport_height=height,
            user_agent=random_user_agent(),
            text_mode=True,
        )
        try:
            async with AsyncWebCrawler(config=browser_cfg) as crawler:
                container = await asyncio.wait_for(
                    crawler.arun(url=url, config=self.run_config),
                    timeout=self.settings.page_timeout + 5,
                )
        except asyncio.TimeoutError as exc:
            raise FetchError(f"Timed out fetching {url}", url=url) from exc
        except Exception as exc:
            raise FetchError(f"Navigation failed for {url}: {exc}", url=url) from exc

        try:
            result = container[0]
        except (IndexError, TypeError):
            result = container
        if result is None:
            raise FetchError(f"Crawler returned no results for {url}", url=url)

        status = result.status_code
        if status is not None and 400 <= status < 500:
            LOGGER.debug("Skipping %s: HTTP %s", url, status)
            return None
        if not result.success:
            raise FetchError(derive_failure_reason(result), url=url)
        return build_fetch_from_result(result)


class BrowserSession(Protocol):
    """Interactive page used by the calendar driver.

    ``responses`` is the interception channel: the session pushes matching
    network responses, the consumer drains it between interactions.
    """

    responses: "asyncio.Queue[Any]"

    async def open(self, url: str) -> None: ...

    async def snapshot(self) -> PageFetch: ...

    async def interact(self, selector: str) -> bool: ...

    async def press(self, key: str) -> None: ...

    async def wait(self, milliseconds: int) -> None: ...

    async def close(self) -> None: ...


class PlaywrightSession:
    """:class:`BrowserSession` backed by a Playwright Chromium page."""

    def __init__(
        self,
        *,
        headless: bool = True,
        response_pattern: str = r"/api/.*(?:calendar|events?|availability|slots|dates)",
        timeout: float = 15.0,
    ) -> None:
        self.headless = headless
        self.response_pattern: Pattern[str] = re.compile(response_pattern, re.IGNORECASE)
        self.timeout_ms = int(timeout * 1000)
        self.responses: "asyncio.Queue[Any]" = asyncio.Queue()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._status: Optional[int] = None

    async def open(self, url: str) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        width, height = random_viewport()
        self._context = await self._browser.new_context(
            viewport={"width": width, "height": height},
            user_agent=random_user_agent(),
        )
        page = await self._context.new_page()
        await page.route("**/*", self._route)
        page.on("response", self._on_response)
        self._page = page
        response = await page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
        self._status = response.status if response is not None else None

    async def snapshot(self) -> PageFetch:
        page = self._require_page()
        html = await page.content()
        text = await page.inner_text("body")
        return fetch_from_html(page.url, html, status_code=self._status, visible_text=text)

    async def interact(self, selector: str) -> bool:
        page = self._require_page()
        try:
            locator = page.locator(selector).first
            if await locator.count() == 0 or not await locator.is_visible():
                return False
            await locator.click(timeout=3000)
        except PlaywrightError as exc:
            LOGGER.debug("Interaction with %s failed: %s", selector, exc)
            return False
        return True

    async def press(self, key: str) -> None:
        await self._require_page().keyboard.press(key)

    async def wait(self, milliseconds: int) -> None:
        await self._require_page().wait_for_timeout(milliseconds)

    async def close(self) -> None:
        for resource in (self._context, self._browser):
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as exc:
                LOGGER.debug("Error closing browser resource: %s", exc)
        if self._playwright is not None:
            await self._playwright.stop()
        self._page = self._context = self._browser = self._playwright = None

    def _on_response(self, response: Any) -> None:
        content_type = (response.headers or {}).get("content-type", "")
        if "json" in content_type and self.response_pattern.search(response.url):
            self.responses.put_nowait(response)

    async def _route(self, route: Any) -> None:
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    def _require_page(self) -> Any:
        if self._page is None:
            raise RuntimeError("Session is not open")
        return self._page
