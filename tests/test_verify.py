"""Tests for venuecrawl.verify and venuecrawl.sitemap modules."""

from __future__ import annotations

import httpx
import pytest

from venuecrawl.cache import BoundedCache
from venuecrawl.sitemap import (
    discover_sitemap_urls,
    is_valid_page,
    parse_sitemap,
    sitemap_candidates,
)
from venuecrawl.verify import (
    description_tokens,
    is_dispersed,
    name_tokens,
    verify_candidate,
    verify_candidates,
)

PADDING = "<!-- " + "layout " * 1200 + "-->"
OFFICIAL_HTML = (
    "<html><head><title>Sky Garden | Official Site</title></head><body>"
    "<h1>Sky Garden</h1><p>A free public garden with panoramic views over the city.</p>"
    "<p>Plan your visit and check our opening hours.</p>"
    f"{PADDING}</body></html>"
)
AGGREGATOR_HTML = (
    "<html><body><h1>Things to do</h1><p>Buy with ticketmaster and eventbrite.</p>"
    f"{PADDING}</body></html>"
)


def _site_transport(routes):
    """MockTransport serving ``routes[(method, url)] -> (status, content_type, body)``."""

    def handler(request: httpx.Request) -> httpx.Response:
        key = (request.method, str(request.url))
        status, content_type, body = routes.get(key, (404, "text/plain", "missing"))
        return httpx.Response(status, headers={"content-type": content_type}, text=body)

    return httpx.MockTransport(handler)


def _page_routes(url, body, content_type="text/html; charset=utf-8"):
    return {
        ("HEAD", url): (200, content_type, ""),
        ("GET", url): (200, content_type, body),
    }


class TestTokens:
    def test_name_tokens(self):
        assert name_tokens("The Old Vic, London") == ["the", "old", "vic"]

    def test_description_tokens(self):
        tokens = description_tokens("A free public garden with panoramic views, free entry")
        assert tokens == ["free", "public", "garden", "panoramic", "views", "entry"]


class TestVerifyCandidate:
    @pytest.mark.asyncio
    async def test_official_page_accepted(self):
        url = "https://skygarden.london/"
        transport = _site_transport(_page_routes(url, OFFICIAL_HTML))
        async with httpx.AsyncClient(transport=transport) as client:
            accepted = await verify_candidate(
                url, "Sky Garden", description_tokens("public garden views"), client
            )
        assert accepted

    @pytest.mark.asyncio
    async def test_small_body_rejected_regardless_of_keywords(self):
        url = "https://skygarden.london/"
        small = "Sky Garden official opening hours public garden views. " * 50
        assert len(small.encode()) < 5000
        transport = _site_transport(_page_routes(url, small, content_type="text/html"))
        async with httpx.AsyncClient(transport=transport) as client:
            accepted = await verify_candidate(
                url, "Sky Garden", description_tokens("public garden views"), client
            )
        assert not accepted

    @pytest.mark.asyncio
    async def test_non_html_rejected(self):
        url = "https://skygarden.london/menu.pdf"
        transport = _site_transport(_page_routes(url, OFFICIAL_HTML, content_type="application/pdf"))
        async with httpx.AsyncClient(transport=transport) as client:
            assert not await verify_candidate(url, "Sky Garden", ["garden"], client)

    @pytest.mark.asyncio
    async def test_http_error_rejected(self):
        transport = _site_transport({})
        async with httpx.AsyncClient(transport=transport) as client:
            assert not await verify_candidate("https://gone.test/", "Sky Garden", [], client)

    @pytest.mark.asyncio
    async def test_aggregator_page_rejected(self):
        url = "https://listings.test/sky-garden"
        transport = _site_transport(_page_routes(url, AGGREGATOR_HTML))
        async with httpx.AsyncClient(transport=transport) as client:
            assert not await verify_candidate(url, "Sky Garden", ["panoramic"], client)

    @pytest.mark.asyncio
    async def test_hostname_mismatch_not_rejected(self):
        url = "https://www.cityoflondon.gov.uk/attractions/rooftop"
        transport = _site_transport(_page_routes(url, OFFICIAL_HTML))
        async with httpx.AsyncClient(transport=transport) as client:
            assert await verify_candidate(url, "Sky Garden", ["panoramic"], client)

    @pytest.mark.asyncio
    async def test_network_error_rejected(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert not await verify_candidate("https://down.test/", "Sky Garden", [], client)


class TestVerifyCandidates:
    @pytest.mark.asyncio
    async def test_keeps_input_order(self):
        urls = ["https://b.test/", "https://missing.test/", "https://a.test/"]
        routes = {}
        routes.update(_page_routes(urls[0], OFFICIAL_HTML))
        routes.update(_page_routes(urls[2], OFFICIAL_HTML))
        async with httpx.AsyncClient(transport=_site_transport(routes)) as client:
            verified = await verify_candidates(urls, "Sky Garden", ["panoramic"], client, concurrency=2)
        assert verified == ["https://b.test/", "https://a.test/"]


class TestDispersion:
    def test_two_chains_for_screening(self):
        urls = ["https://www.odeon.co.uk/films/x", "https://www.cineworld.co.uk/films/x"]
        assert is_dispersed(urls, ["Film screening"])

    def test_single_chain(self):
        urls = ["https://www.odeon.co.uk/films/x", "https://www.odeon.co.uk/cinemas/y"]
        assert not is_dispersed(urls, ["film"])

    def test_not_a_screening(self):
        urls = ["https://www.odeon.co.uk/films/x", "https://www.cineworld.co.uk/films/x"]
        assert not is_dispersed(urls, ["theatre"])


class TestSitemap:
    def _routes(self):
        return {
            ("GET", "https://venue.test/robots.txt"): (
                200,
                "text/plain",
                "User-agent: *\nSitemap: https://venue.test/sitemap_index.xml\n",
            ),
            ("GET", "https://venue.test/sitemap_index.xml"): (
                200,
                "application/xml",
                "<sitemapindex><sitemap><loc>https://venue.test/pages.xml</loc></sitemap></sitemapindex>",
            ),
            ("GET", "https://venue.test/pages.xml"): (
                200,
                "application/xml",
                "<urlset>"
                "<url><loc>https://venue.test/opening-hours/</loc></url>"
                "<url><loc>https://venue.test/shop</loc></url>"
                "<url><loc>https://elsewhere.test/opening-hours</loc></url>"
                "<url><loc>https://venue.test/opening-hours#today</loc></url>"
                "</urlset>",
            ),
            ("HEAD", "https://venue.test/opening-hours"): (200, "text/html", ""),
        }

    @pytest.mark.asyncio
    async def test_discover_follows_index_and_keeps_same_origin(self):
        async with httpx.AsyncClient(transport=_site_transport(self._routes())) as client:
            urls = await discover_sitemap_urls("https://venue.test", client)
        assert urls == ["https://venue.test/opening-hours", "https://venue.test/shop"]

    @pytest.mark.asyncio
    async def test_cdata_locations_read(self):
        routes = {
            ("GET", "https://venue.test/sitemap.xml"): (
                200,
                "application/xml",
                '<?xml version="1.0" encoding="UTF-8"?>'
                '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
                "<url><loc><![CDATA[https://venue.test/opening-hours]]></loc></url>"
                "<url><loc>https://venue.test/whats-on</loc></url>"
                "</urlset>",
            ),
        }
        async with httpx.AsyncClient(transport=_site_transport(routes)) as client:
            urls = await discover_sitemap_urls("https://venue.test", client)
        assert urls == ["https://venue.test/opening-hours", "https://venue.test/whats-on"]

    def test_parse_sitemap_root_decides_kind(self):
        index = b"<sitemapindex><sitemap><loc> https://venue.test/a.xml </loc></sitemap></sitemapindex>"
        assert parse_sitemap(index) == (True, ["https://venue.test/a.xml"])
        assert parse_sitemap(b"<urlset><url><loc></loc></url></urlset>") == (False, [])

    @pytest.mark.asyncio
    async def test_index_depth_limit(self):
        async with httpx.AsyncClient(transport=_site_transport(self._routes())) as client:
            urls = await discover_sitemap_urls("https://venue.test", client, max_depth=0)
        assert urls == []

    @pytest.mark.asyncio
    async def test_candidates_prescored_and_validated(self):
        cache = BoundedCache(max_size=10)
        async with httpx.AsyncClient(transport=_site_transport(self._routes())) as client:
            urls = await sitemap_candidates("https://venue.test", client, cache=cache)
        assert urls == ["https://venue.test/opening-hours"]
        assert cache.get("https://venue.test/opening-hours") is True

    @pytest.mark.asyncio
    async def test_validity_cached(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            return httpx.Response(200, headers={"content-type": "text/html"})

        cache = BoundedCache(max_size=10)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await is_valid_page("https://venue.test/a", client, cache=cache)
            assert await is_valid_page("https://venue.test/a", client, cache=cache)
        assert calls == ["HEAD"]

    @pytest.mark.asyncio
    async def test_head_not_allowed_counts_as_valid(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(405))
        async with httpx.AsyncClient(transport=transport) as client:
            assert await is_valid_page("https://venue.test/b", client, cache=BoundedCache(max_size=4))
