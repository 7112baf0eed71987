"""Sitemap discovery and cheap URL validity checks."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import List, Optional, Sequence, Tuple

import httpx
from bs4 import BeautifulSoup

from .cache import URL_VALIDITY_CACHE, BoundedCache
from .scoring import PRESCORE_THRESHOLD, prescore_url
from .urls import normalize_url, same_origin

LOGGER = logging.getLogger(__name__)

_ROBOTS_SITEMAP = re.compile(r"^\s*sitemap:\s*(\S+)", re.IGNORECASE | re.MULTILINE)


async def _get(
    client: httpx.AsyncClient, url: str, *, timeout: float
) -> Optional[httpx.Response]:
    try:
        response = await client.get(url, timeout=timeout, follow_redirects=True)
    except (httpx.HTTPError, asyncio.TimeoutError) as exc:
        LOGGER.debug("Fetch of %s failed: %s", url, exc)
        return None
    if response.status_code >= 400:
        LOGGER.debug("Fetch of %s returned HTTP %d", url, response.status_code)
        return None
    return response


async def fetch_text(
    client: httpx.AsyncClient, url: str, *, timeout: float = 8.0
) -> Optional[str]:
    """GET ``url`` and return the body, or ``None`` on any failure."""
    response = await _get(client, url, timeout=timeout)
    return response.text if response is not None else None


def parse_sitemap(body: bytes) -> Tuple[bool, List[str]]:
    """Return ``(is_index, locations)`` for a sitemap or sitemap index document.

    ``<loc>`` values are read as text, so CDATA-wrapped and entity-escaped
    URLs come out plain.
    """
    soup = BeautifulSoup(body, "xml")
    root = soup.find()
    if root is None:
        return False, []
    is_index = root.name == "sitemapindex"
    selector = "sitemap > loc" if is_index else "url > loc"
    locations = []
    for loc in soup.select(selector):
        text = loc.get_text(strip=True)
        if text:
            locations.append(text)
    return is_index, locations


async def sitemap_seeds(
    origin: str, client: httpx.AsyncClient, *, timeout: float = 8.0
) -> List[str]:
    """Sitemaps declared in robots.txt, plus the conventional /sitemap.xml."""
    robots = await fetch_text(client, f"{origin}/robots.txt", timeout=timeout)
    seeds = [url.strip() for url in _ROBOTS_SITEMAP.findall(robots or "")]
    default = f"{origin}/sitemap.xml"
    if default not in seeds:
        seeds.append(default)
    return seeds


async def discover_sitemap_urls(
    origin: str,
    client: httpx.AsyncClient,
    *,
    max_urls: int = 200,
    max_depth: int = 3,
    timeout: float = 8.0,
) -> List[str]:
    """Page URLs listed in the site's sitemaps, following sitemap indexes.

    Only same-origin URLs are kept. Nested sitemaps are followed at most
    ``max_depth`` levels below the seeds.
    """
    pending: List[Tuple[str, int]] = [
        (seed, 0) for seed in await sitemap_seeds(origin, client, timeout=timeout)
    ]
    seen_sitemaps = set()
    urls: List[str] = []

    while pending and len(urls) < max_urls:
        sitemap_url, depth = pending.pop(0)
        if sitemap_url in seen_sitemaps:
            continue
        seen_sitemaps.add(sitemap_url)

        response = await _get(client, sitemap_url, timeout=timeout)
        if response is None or not response.content:
            continue
        is_index, locations = parse_sitemap(response.content)
        for loc in locations:
            if is_index or loc.lower().endswith(".xml"):
                if depth < max_depth:
                    pending.append((loc, depth + 1))
                continue
            normalized = normalize_url(loc)
            if not normalized or not same_origin(normalized, origin):
                continue
            if normalized not in urls:
                urls.append(normalized)
            if len(urls) >= max_urls:
                break

    LOGGER.debug("Sitemaps for %s listed %d URLs", origin, len(urls))
    return urls


async def is_valid_page(
    url: str,
    client: httpx.AsyncClient,
    *,
    cache: Optional[BoundedCache[str, bool]] = None,
    timeout: float = 8.0,
) -> bool:
    """HEAD check that the URL answers with an HTML page; results are cached."""
    store = URL_VALIDITY_CACHE if cache is None else cache
    cached = store.get(url)
    if cached is not None:
        return cached

    valid = False
    try:
        response = await client.head(url, timeout=timeout, follow_redirects=True)
    except (httpx.HTTPError, asyncio.TimeoutError) as exc:
        LOGGER.debug("HEAD %s failed: %s", url, exc)
    else:
        content_type = response.headers.get("content-type", "")
        if response.status_code in (405, 501):
            valid = True
        elif response.status_code < 400:
            valid = not content_type or "html" in content_type.lower()
    store.put(url, valid)
    return valid


async def sitemap_candidates(
    origin: str,
    client: httpx.AsyncClient,
    *,
    name_tokens: Sequence[str] = (),
    max_urls: int = 200,
    max_depth: int = 3,
    threshold: int = PRESCORE_THRESHOLD,
    timeout: float = 8.0,
    cache: Optional[BoundedCache[str, bool]] = None,
) -> List[str]:
    """Sitemap URLs that pass the pre-score and the validity check, best first."""
    urls = await discover_sitemap_urls(
        origin, client, max_urls=max_urls, max_depth=max_depth, timeout=timeout
    )
    scored = [(prescore_url(url, name_tokens), url) for url in urls]
    promising = [url for score, url in sorted(scored, key=lambda item: -item[0]) if score >= threshold]
    accepted: List[str] = []
    for url in promising:
        if await is_valid_page(url, client, cache=cache, timeout=timeout):
            accepted.append(url)
    if promising:
        LOGGER.info(
            "Sitemap for %s: %d URLs, %d promising, %d valid",
            origin,
            len(urls),
            len(promising),
            len(accepted),
        )
    return accepted
