"""SearXNG search used to find official-site candidates.

Environment variables are read at call time (inside ``search_async``) so
that tests can monkeypatch them freely and late ``.env`` loading works.

    from venuecrawl.search import build_search_query, search_candidate_urls

    query = build_search_query("The Old Vic", ["theatre"])
    urls = await search_candidate_urls(query)
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

LOGGER = logging.getLogger(__name__)

NEGATIVE_TERMS = ("-ticketmaster", "-eventbrite", "-seetickets", "-timeout")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class SearchResultItem:
    """A single search result from SearXNG."""

    title: str
    url: str
    content: str = ""
    engine: str = ""
    score: float = 0.0


@dataclass(slots=True)
class SearchResult:
    """Structured response from a SearXNG search query."""

    query: str
    number_of_results: int
    results: List[SearchResultItem] = field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        return [item.url for item in self.results if item.url]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class SearchError(Exception):
    """Raised when the SearXNG search fails."""

    def __init__(self, message: str, query: str = ""):
        self.query = query
        super().__init__(message)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

_KNOWN_ITEM_FIELDS = frozenset({"title", "url", "content", "engine", "score"})


def _get_searxng_client(
    base_url: str,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> httpx.AsyncClient:
    """Create an httpx async client for SearXNG with optional basic auth."""
    user = username or os.getenv("SEARXNG_USERNAME")
    pw = password or os.getenv("SEARXNG_PASSWORD")

    auth = None
    if user and pw:
        auth = httpx.BasicAuth(user, pw)

    return httpx.AsyncClient(
        base_url=base_url,
        auth=auth,
        headers={"Accept": "application/json"},
        timeout=30.0,
    )


def _raw_to_item(raw: Dict[str, Any]) -> SearchResultItem:
    """Convert a raw SearXNG result dict into a ``SearchResultItem``."""
    known = {k: raw[k] for k in _KNOWN_ITEM_FIELDS if k in raw}
    known.setdefault("title", "")
    known.setdefault("url", "")
    return SearchResultItem(**known)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_search_query(name: str, tags: Sequence[str] = ()) -> str:
    """Quoted name, up to three tags, and exclusions for the big resellers."""
    parts = [f'"{name.strip()}"']
    tag_segment = " ".join(tag for tag in list(tags)[:3] if tag)
    if tag_segment:
        parts.append(tag_segment)
    parts.append("official website")
    parts.append(" ".join(NEGATIVE_TERMS))
    return " ".join(parts)


async def search_async(
    query: str,
    *,
    language: str = "en",
    max_results: int = 10,
    searxng_url: Optional[str] = None,
    searxng_username: Optional[str] = None,
    searxng_password: Optional[str] = None,
) -> SearchResult:
    """Search the web using the SearXNG metasearch engine.

    Raises:
        SearchError: When no instance is configured, on authentication
            failure, HTTP error, or network error.
    """
    base_url = searxng_url or os.getenv("SEARXNG_URL")
    if not base_url:
        raise SearchError("SEARXNG_URL is not configured.", query=query)

    params: Dict[str, Any] = {
        "q": query,
        "format": "json",
        "language": language,
        "safesearch": 1,
        "pageno": 1,
    }

    try:
        async with _get_searxng_client(
            base_url,
            username=searxng_username,
            password=searxng_password,
        ) as client:
            response = await client.get("/search", params=params)
            response.raise_for_status()
            data = response.json()

    except httpx.HTTPStatusError as exc:
        if exc.response.status_code == 401:
            raise SearchError(
                "Authentication failed. Check SEARXNG_USERNAME and SEARXNG_PASSWORD.",
                query=query,
            ) from exc
        raise SearchError(
            f"SearXNG API error: {exc.response.status_code} - {exc.response.text}",
            query=query,
        ) from exc

    except httpx.RequestError as exc:
        raise SearchError(
            f"Request failed: {exc}",
            query=query,
        ) from exc

    except ValueError as exc:
        raise SearchError(f"Invalid JSON from SearXNG: {exc}", query=query) from exc

    max_results = min(max(1, max_results), 50)
    raw_results = data.get("results", [])[:max_results]
    items = [_raw_to_item(r) for r in raw_results if isinstance(r, dict)]

    return SearchResult(
        query=data.get("query", query),
        number_of_results=len(items),
        results=items,
    )


def search(query: str, **kwargs: Any) -> SearchResult:
    """Synchronous wrapper for :func:`search_async`."""
    return asyncio.run(search_async(query, **kwargs))


async def search_candidate_urls(
    query: str,
    *,
    searxng_url: Optional[str] = None,
    searxng_username: Optional[str] = None,
    searxng_password: Optional[str] = None,
) -> List[str]:
    """Result URLs for ``query``; an unavailable search yields ``[]``."""
    if not (searxng_url or os.getenv("SEARXNG_URL")):
        LOGGER.warning("SEARXNG_URL missing; skipping search for official URL.")
        return []
    try:
        result = await search_async(
            query,
            searxng_url=searxng_url,
            searxng_username=searxng_username,
            searxng_password=searxng_password,
        )
    except SearchError as exc:
        LOGGER.warning("Search failed for %r: %s", exc.query, exc)
        return []
    return result.urls
