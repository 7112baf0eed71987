"""Tests for venuecrawl.site module."""

from __future__ import annotations

import httpx
import pytest

from conftest import FakeFetcher, html_page

from venuecrawl.budget import CrawlBudget
from venuecrawl.config import Settings
from venuecrawl.document import DayHours, EventInstanceSet, WeeklySchedule
from venuecrawl.site import CrawlExhaustedError, SiteCrawler, crawl_site_async

ROOT = "https://venue.test/"
VISIT = "https://venue.test/plan-your-visit"
SHOP = "https://venue.test/shop"

HOME_HTML = html_page(
    "Sky Garden",
    "<p>Welcome to Sky Garden.</p>"
    "<p>For opening hours see the plan your visit page here.</p>"
    '<a href="/shop">Shop</a>'
    '<a href="/plan-your-visit">Plan your visit</a>',
)
VISIT_HTML = html_page("Plan your visit", "<h2>Opening times</h2><p>Mon-Sun 10am - 5pm</p>")
EVENT_HOME_HTML = html_page(
    "Sky Garden",
    '<script type="application/ld+json">'
    '{"@type": "Event", "startDate": "2026-06-05T19:30:00"}</script>'
    '<p>Gig night</p><a href="/opening-times">Opening times</a>',
)


def _empty_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))


class TestSiteCrawler:
    @pytest.mark.asyncio
    async def test_golden_link_visited_next(self, extractor):
        fetcher = FakeFetcher({ROOT: HOME_HTML, VISIT: VISIT_HTML})
        crawler = SiteCrawler("Sky Garden", fetcher, extractor=extractor)
        result = await crawler.run(ROOT)

        assert fetcher.calls[:2] == [ROOT, VISIT]
        assert VISIT in crawler.semantic
        assert isinstance(result.dates, WeeklySchedule)
        assert result.dates.days["Wed"] == DayHours("10:00", "17:00")
        assert result.primary_dates_page.url == VISIT
        assert {"url": SHOP, "error": "fetch failed", "stage": "crawl"} in result.errors

    @pytest.mark.asyncio
    async def test_soft_limit_keeps_only_golden_links(self, extractor):
        fetcher = FakeFetcher({ROOT: HOME_HTML, VISIT: VISIT_HTML, SHOP: html_page("Shop", "<p>Gifts</p>")})
        crawler = SiteCrawler(
            "Sky Garden",
            fetcher,
            extractor=extractor,
            budget=CrawlBudget(soft_limit=1, hard_limit=5),
        )
        result = await crawler.run(ROOT)
        assert fetcher.calls == [ROOT, VISIT]
        assert result.stats["pages_crawled"] == 2

    @pytest.mark.asyncio
    async def test_hard_limit_stops_fetching(self, extractor):
        home = html_page(
            "Home",
            '<p>Welcome</p><a href="/plan-your-visit">Visit</a><a href="/opening-times">Opening times</a>',
        )
        fetcher = FakeFetcher(
            {
                ROOT: home,
                VISIT: html_page("Visit", "<p>Getting here</p>"),
                "https://venue.test/opening-times": html_page("Times", "<p>Seasonal</p>"),
            }
        )
        crawler = SiteCrawler(
            "Sky Garden",
            fetcher,
            extractor=extractor,
            budget=CrawlBudget(soft_limit=1, hard_limit=2),
        )
        await crawler.run(ROOT)
        assert crawler.budget.pages_crawled == 2
        assert crawler.budget.hard

    @pytest.mark.asyncio
    async def test_links_deeper_than_root_need_relevant_paths(self, extractor):
        home = html_page("Home", '<p>Hello</p><a href="/visit">Visit</a>')
        visit = html_page(
            "Visit",
            '<p>Getting here</p><a href="/careers">Careers</a><a href="/visit/hours">Hours</a>',
        )
        fetcher = FakeFetcher(
            {
                ROOT: home,
                "https://venue.test/visit": visit,
                "https://venue.test/visit/hours": html_page("Hours", "<p>Mon-Sun 10am - 5pm</p>"),
            }
        )
        crawler = SiteCrawler("Sky Garden", fetcher, extractor=extractor)
        await crawler.run(ROOT)
        assert "https://venue.test/visit/hours" in fetcher.calls
        assert "https://venue.test/careers" not in fetcher.calls

    @pytest.mark.asyncio
    async def test_hours_subcrawl_after_page_cap(self, extractor):
        hours = "https://venue.test/opening-times"
        home = html_page("Home", '<p>Hello</p><a href="/opening-times">Opening times</a>')
        fetcher = FakeFetcher({ROOT: home, hours: html_page("Times", "<p>Mon-Sun 9am - 6pm</p>")})
        crawler = SiteCrawler("Sky Garden", fetcher, extractor=extractor, settings=Settings(page_cap=1))
        result = await crawler.run(ROOT)
        assert fetcher.calls == [ROOT, hours]
        assert result.primary_dates_page.url == hours
        assert result.dates.days["Mon"] == DayHours("09:00", "18:00")

    @pytest.mark.asyncio
    async def test_events_on_home_still_trigger_hours_crawl(self, extractor):
        hours = "https://venue.test/opening-times"
        fetcher = FakeFetcher({ROOT: EVENT_HOME_HTML, hours: html_page("Times", "<p>Mon-Sun 9am - 6pm</p>")})
        crawler = SiteCrawler("Sky Garden", fetcher, extractor=extractor, settings=Settings(page_cap=1))
        result = await crawler.run(ROOT)
        assert fetcher.calls == [ROOT, hours]
        assert isinstance(result.dates, WeeklySchedule)
        assert result.primary_dates_page.url == hours

    @pytest.mark.asyncio
    async def test_events_kept_when_hours_crawl_finds_nothing(self, extractor):
        hours = "https://venue.test/opening-times"
        fetcher = FakeFetcher({ROOT: EVENT_HOME_HTML, hours: html_page("Times", "<p>Seasonal</p>")})
        crawler = SiteCrawler("Sky Garden", fetcher, extractor=extractor, settings=Settings(page_cap=1))
        result = await crawler.run(ROOT)
        assert fetcher.calls == [ROOT, hours]
        assert isinstance(result.dates, EventInstanceSet)
        assert result.primary_dates_page.url == ROOT

    @pytest.mark.asyncio
    async def test_mini_crawl_goes_one_hop_deeper(self, extractor):
        visit = "https://venue.test/visit"
        deeper = "https://venue.test/visit/opening-hours"
        visit_html = html_page(
            "Visit",
            "<p>Getting here</p>"
            + "".join(f'<a href="/news-{index}">News {index}</a>' for index in range(3))
            + '<a href="/visit/opening-hours">Opening hours</a>',
        )
        fetcher = FakeFetcher(
            {
                ROOT: html_page("Home", '<p>Hello</p><a href="/visit">Visit</a>'),
                visit: visit_html,
                deeper: html_page("Hours", "<p>Mon-Sun 10am - 5pm</p>"),
            }
        )
        crawler = SiteCrawler("Sky Garden", fetcher, extractor=extractor, settings=Settings(page_cap=1))
        result = await crawler.run(ROOT)
        assert fetcher.calls == [ROOT, visit, deeper]
        assert result.primary_dates_page.url == deeper
        assert result.dates.days["Sun"] == DayHours("10:00", "17:00")

    @pytest.mark.asyncio
    async def test_mini_crawl_bounded(self, extractor):
        visit = "https://venue.test/visit"
        visit_html = html_page(
            "Visit",
            "<p>Getting here</p>"
            + "".join(f'<a href="/news-{index}">News {index}</a>' for index in range(12))
            + '<a href="/visit/times">Times</a>',
        )
        fetcher = FakeFetcher(
            {ROOT: html_page("Home", '<p>Hello</p><a href="/visit">Visit</a>'), visit: visit_html}
        )
        crawler = SiteCrawler("Sky Garden", fetcher, extractor=extractor, settings=Settings(page_cap=1))
        result = await crawler.run(ROOT)
        assert fetcher.calls[:3] == [ROOT, visit, "https://venue.test/visit/times"]
        assert len(fetcher.calls) == 2 + 8
        assert result.dates is None

    @pytest.mark.asyncio
    async def test_nothing_fetched_raises(self, extractor):
        crawler = SiteCrawler("Sky Garden", FakeFetcher({}), extractor=extractor)
        with pytest.raises(CrawlExhaustedError) as excinfo:
            await crawler.run(ROOT)
        assert excinfo.value.url == ROOT
        assert crawler.errors[0]["url"] == ROOT

    @pytest.mark.asyncio
    async def test_non_http_url_raises(self, extractor):
        crawler = SiteCrawler("Sky Garden", FakeFetcher({}), extractor=extractor)
        with pytest.raises(CrawlExhaustedError):
            await crawler.run("mailto:hello@venue.test")

    def test_admit_skips_duplicates_and_promotes_semantic(self, extractor):
        crawler = SiteCrawler("Sky Garden", FakeFetcher({}), extractor=extractor)
        assert crawler.admit("https://venue.test/shop", 1)
        assert crawler.admit("https://venue.test/opening-hours", 1)
        assert not crawler.admit("https://venue.test/shop", 1)
        assert [entry.url for entry in crawler.queue] == [
            "https://venue.test/opening-hours",
            "https://venue.test/shop",
        ]
        assert crawler.admit("https://venue.test/shop", 1, semantic=True)
        assert crawler.queue[0].url == "https://venue.test/shop"
        assert len(crawler.queue) == 2


class TestCrawlSiteAsync:
    @pytest.mark.asyncio
    async def test_sitemap_candidates_seeded(self, extractor):
        hours = "https://venue.test/opening-hours"

        def handler(request):
            url = str(request.url)
            if url == "https://venue.test/robots.txt":
                return httpx.Response(200, text="Sitemap: https://venue.test/pages.xml\n")
            if url == "https://venue.test/pages.xml":
                return httpx.Response(200, text=f"<urlset><url><loc>{hours}</loc></url></urlset>")
            if url == hours and request.method == "HEAD":
                return httpx.Response(200, headers={"content-type": "text/html"})
            return httpx.Response(404)

        fetcher = FakeFetcher({ROOT: html_page("Home", "<p>Hello</p>"), hours: VISIT_HTML})
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await crawl_site_async(
                ROOT, "Sky Garden", fetcher=fetcher, client=client, extractor=extractor
            )
        assert hours in fetcher.calls
        assert isinstance(result.dates, WeeklySchedule)
        assert [item.url for item in result.scored][0] in {ROOT, hours}

    @pytest.mark.asyncio
    async def test_selected_pages(self, extractor):
        fetcher = FakeFetcher({ROOT: HOME_HTML, VISIT: VISIT_HTML})
        async with _empty_client() as client:
            result = await crawl_site_async(
                ROOT, "Sky Garden", fetcher=fetcher, client=client, extractor=extractor
            )
        assert {page.url for page in result.selected_pages} == {ROOT, VISIT}
        assert result.hours_page in result.selected_pages
