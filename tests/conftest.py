"""Global pytest hooks for strict test-accounting guardrails, plus shared fakes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest

from venuecrawl.builder import build_scraped_page, fetch_from_html
from venuecrawl.cache import OFFICIAL_URL_CACHE, URL_VALIDITY_CACHE
from venuecrawl.calendar import NEXT_SELECTORS
from venuecrawl.document import PageFetch, ScrapedPage
from venuecrawl.extraction import DateExtractor
from venuecrawl.nlparse import ParsedSpan

REFERENCE = datetime(2026, 5, 20, 9, 0)


@dataclass
class _TestAccounting:
    deselected: int = 0
    skipped: int = 0
    xfailed: int = 0
    xpassed: int = 0


_ACCOUNTING = _TestAccounting()


def pytest_deselected(items):  # pragma: no cover - pytest hook
    _ACCOUNTING.deselected += len(items)


def pytest_runtest_logreport(report):  # pragma: no cover - pytest hook
    if report.when not in {"setup", "call"}:
        return

    is_xfail = bool(getattr(report, "wasxfail", False))
    if is_xfail:
        if report.outcome == "skipped":
            _ACCOUNTING.xfailed += 1
        elif report.outcome == "passed":
            _ACCOUNTING.xpassed += 1
        return

    if report.outcome == "skipped":
        _ACCOUNTING.skipped += 1


def pytest_sessionfinish(session, exitstatus):  # pragma: no cover - pytest hook
    violations = []
    if _ACCOUNTING.deselected:
        violations.append(f"deselected={_ACCOUNTING.deselected}")
    if _ACCOUNTING.skipped:
        violations.append(f"skipped={_ACCOUNTING.skipped}")
    if _ACCOUNTING.xfailed:
        violations.append(f"xfailed={_ACCOUNTING.xfailed}")
    if _ACCOUNTING.xpassed:
        violations.append(f"xpassed={_ACCOUNTING.xpassed}")

    if not violations:
        return

    reporter = session.config.pluginmanager.get_plugin("terminalreporter")
    if reporter:
        reporter.write_sep(
            "=",
            "Strict guard failed: test accounting violations detected "
            f"({', '.join(violations)})",
        )
        reporter.write_line(
            "Hard guard requires zero skipped/deselected/xfail/xpass tests."
        )

    session.exitstatus = 1


# ---------------------------------------------------------------------------
# Shared fakes
# ---------------------------------------------------------------------------


class FakeParser:
    """Natural-language parser returning canned spans."""

    def __init__(self, spans: Optional[List[ParsedSpan]] = None) -> None:
        self.spans = list(spans or [])
        self.calls: List[str] = []

    def parse(self, text, reference_date, forward_bias=True):
        self.calls.append(text)
        return list(self.spans)


class FakeFetcher:
    """Page fetcher serving prepared HTML by URL; unknown URLs fail."""

    def __init__(self, pages: Dict[str, str]) -> None:
        self.pages = pages
        self.calls: List[str] = []

    async def fetch(self, url: str) -> Optional[PageFetch]:
        self.calls.append(url)
        html = self.pages.get(url)
        if html is None:
            return None
        return fetch_from_html(url, html, status_code=200)


class FakeSession:
    """Browser session whose next-month button serves queued API payloads."""

    def __init__(self, payloads: List[Any], *, fail_open: bool = False) -> None:
        self.responses: asyncio.Queue = asyncio.Queue()
        self.payloads = list(payloads)
        self.fail_open = fail_open
        self.opened: List[str] = []
        self.presses: List[str] = []
        self.clicks: List[str] = []
        self.closed = False

    async def open(self, url: str) -> None:
        if self.fail_open:
            raise RuntimeError("browser crashed")
        self.opened.append(url)
        self._serve_next()

    async def snapshot(self) -> PageFetch:
        return PageFetch(
            final_url=self.opened[-1],
            status_code=200,
            rendered_html="<html></html>",
            visible_text="",
        )

    async def interact(self, selector: str) -> bool:
        if selector != NEXT_SELECTORS[0] or not self.payloads:
            return False
        self.clicks.append(selector)
        self._serve_next()
        return True

    async def press(self, key: str) -> None:
        self.presses.append(key)

    async def wait(self, milliseconds: int) -> None:
        return None

    async def close(self) -> None:
        self.closed = True

    def _serve_next(self) -> None:
        if self.payloads:
            self.responses.put_nowait(self.payloads.pop(0))


def month_payload(month: int) -> dict:
    """Calendar API body with 10:00-17:00 for the first week of ``month`` 2026."""
    return {
        "data": {
            "days": [
                {"date": f"2026-{month:02d}-{day:02d}", "startTime": "10:00", "endTime": "17:00"}
                for day in range(1, 8)
            ]
        }
    }


def html_page(title: str, body: str) -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


def make_page(url: str, body: str, title: str = "Page") -> ScrapedPage:
    fetch = fetch_from_html(url, html_page(title, body), status_code=200)
    return build_scraped_page(fetch, reference=REFERENCE.date())


@pytest.fixture(autouse=True)
def _clear_caches():
    OFFICIAL_URL_CACHE.clear()
    URL_VALIDITY_CACHE.clear()
    yield
    OFFICIAL_URL_CACHE.clear()
    URL_VALIDITY_CACHE.clear()


@pytest.fixture
def reference():
    return REFERENCE


@pytest.fixture
def extractor():
    """Extractor with a silent natural-language parser and a fixed clock."""
    return DateExtractor(parser=FakeParser(), reference_date=REFERENCE)


@pytest.fixture
def page_factory():
    return make_page
