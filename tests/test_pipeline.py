"""Tests for venuecrawl.pipeline module."""

from __future__ import annotations

import httpx
import pytest

from conftest import FakeFetcher, FakeSession, html_page, month_payload

from venuecrawl.config import Settings
from venuecrawl.document import WeeklySchedule
from venuecrawl.pipeline import ResolutionResult, resolve_entity_async
from venuecrawl.resolver import Entity

ROOT = "https://skygarden.london/"


def _offline_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))


def _no_browser():
    raise AssertionError("calendar driver should not run")


class TestResolveEntity:
    @pytest.mark.asyncio
    async def test_trusted_website_to_weekly_schedule(self, extractor):
        entity = Entity(entity_id="sg", name="Sky Garden", website=ROOT)
        fetcher = FakeFetcher({ROOT: html_page("Sky Garden", "<p>Opening hours</p><p>Mon-Sun 10am - 6pm</p>")})
        async with _offline_client() as client:
            result = await resolve_entity_async(
                entity,
                settings=Settings(),
                fetcher=fetcher,
                client=client,
                extractor=extractor,
                session_factory=_no_browser,
            )

        assert result.resolved_official_url == ROOT
        assert result.resolution.source == "trusted"
        assert result.classification == "place"
        assert result.primary_dates_page.url == ROOT

        payload = result.to_dict()
        assert set(payload) == {
            "resolvedOfficialUrl",
            "pages",
            "primaryDatesPage",
            "dates",
            "classification",
            "scoredUrls",
        }
        assert payload["dates"]["openingHours"]["Sat"] == {"open": "10:00", "close": "18:00"}
        assert payload["scoredUrls"][0]["url"] == ROOT

    @pytest.mark.asyncio
    async def test_unfetchable_site_is_unresolved(self, extractor):
        entity = Entity(entity_id="sg", name="Sky Garden", website=ROOT)
        async with _offline_client() as client:
            result = await resolve_entity_async(
                entity,
                settings=Settings(),
                fetcher=FakeFetcher({}),
                client=client,
                extractor=extractor,
            )
        assert result.resolved_official_url is None
        assert result.dates is None
        assert result.classification is None
        assert result.resolution.source == "trusted"

    @pytest.mark.asyncio
    async def test_no_candidates_is_unresolved(self, extractor):
        async def search_fn(query):
            return []

        fetcher = FakeFetcher({})
        async with _offline_client() as client:
            result = await resolve_entity_async(
                Entity(entity_id="x", name="Nowhere Hall"),
                settings=Settings(),
                fetcher=fetcher,
                client=client,
                extractor=extractor,
                search_fn=search_fn,
            )
        assert result.resolved_official_url is None
        assert result.resolution.source == "none"
        assert fetcher.calls == []
        assert result.to_dict()["pages"] == []

    @pytest.mark.asyncio
    async def test_dynamic_calendar_driven_when_crawl_finds_nothing(self, extractor):
        calendar_html = html_page(
            "What's on",
            '<div class="fc-view-harness"></div><button class="fc-next-button">Next</button>',
        )
        session = FakeSession([month_payload(month) for month in (6, 7, 8, 9)])
        async with _offline_client() as client:
            result = await resolve_entity_async(
                Entity(entity_id="sg", name="Sky Garden", website=ROOT),
                settings=Settings(),
                fetcher=FakeFetcher({ROOT: calendar_html}),
                client=client,
                extractor=extractor,
                session_factory=lambda: session,
            )
        assert session.opened == [ROOT]
        assert isinstance(result.dates, WeeklySchedule)
        assert result.dates.source == "calendar"
        assert result.primary_dates_page.url == ROOT


class TestResolutionResult:
    def test_empty_to_dict(self):
        payload = ResolutionResult(entity_id="x").to_dict()
        assert payload["resolvedOfficialUrl"] is None
        assert payload["dates"] is None
        assert payload["classification"] is None
        assert payload["scoredUrls"] == []
