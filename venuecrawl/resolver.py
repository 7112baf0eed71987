"""Official URL resolution for an entity."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

import httpx

from .browser import random_user_agent
from .cache import OFFICIAL_URL_CACHE, BoundedCache, is_missing
from .config import Settings
from .search import build_search_query, search_candidate_urls
from .urls import is_blacklisted, is_booking_domain, normalize_url
from .verify import description_tokens, is_dispersed, verify_candidates

LOGGER = logging.getLogger(__name__)

MAX_VERIFIED_CANDIDATES = 10

SearchFunction = Callable[[str], Awaitable[List[str]]]


@dataclass(slots=True)
class Entity:
    """A venue or event to resolve, as handed over by the upstream pipeline."""

    entity_id: str
    name: str
    website: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    description: str = ""
    known_links: List[str] = field(default_factory=list)
    location: Optional[str] = None


@dataclass(slots=True)
class UrlResolution:
    url: Optional[str]
    source: str  # cache, trusted, search, known-links, dispersed, none
    candidates: List[str] = field(default_factory=list)
    verified: List[str] = field(default_factory=list)


async def resolve_official_url(
    entity: Entity,
    *,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
    search_fn: Optional[SearchFunction] = None,
    cache: Optional[BoundedCache[str, Optional[str]]] = None,
) -> UrlResolution:
    """Pick the single most credible official page for ``entity``.

    Order: cached answer, trusted entity website, verified search results,
    verified known links. Returns ``url=None`` when nothing verifies or a
    screening spreads over several cinema chains.
    """
    active = settings or Settings()
    store = OFFICIAL_URL_CACHE if cache is None else cache

    cached = store.lookup(entity.entity_id)
    if not is_missing(cached):
        return UrlResolution(url=cached, source="cache")  # type: ignore[arg-type]

    website = normalize_url(entity.website) if entity.website else None
    if website:
        if is_booking_domain(website):
            LOGGER.info(
                "[%s] rejected website %s because it points to a booking domain",
                entity.entity_id,
                website,
            )
        else:
            LOGGER.info("[%s] using trusted website %s", entity.entity_id, website)
            store.put(entity.entity_id, website)
            return UrlResolution(url=website, source="trusted", candidates=[website])

    query = build_search_query(entity.name, entity.tags)
    if search_fn is None:
        raw_candidates = await search_candidate_urls(
            query,
            searxng_url=active.searxng_url,
            searxng_username=active.searxng_username,
            searxng_password=active.searxng_password,
        )
    else:
        raw_candidates = await search_fn(query)
    source = "search"
    if not raw_candidates:
        LOGGER.info("[%s] no search candidates; using known links", entity.entity_id)
        raw_candidates = list(entity.known_links)
        source = "known-links"

    candidates = filter_candidates(raw_candidates)
    for candidate in candidates:
        LOGGER.debug("[%s] candidate %s", entity.entity_id, candidate)

    owns_client = client is None
    http = client or httpx.AsyncClient(
        headers={"User-Agent": random_user_agent()}, follow_redirects=True
    )
    try:
        verified = await verify_candidates(
            candidates,
            entity.name,
            description_tokens(entity.description),
            http,
            concurrency=active.verify_concurrency,
            head_timeout=active.verify_head_timeout,
            get_timeout=active.verify_get_timeout,
            entity_id=entity.entity_id,
        )
    finally:
        if owns_client:
            await http.aclose()

    if is_dispersed(verified, entity.tags):
        LOGGER.info(
            "[%s] verified pages span several cinema chains; no single official venue",
            entity.entity_id,
        )
        store.put(entity.entity_id, None)
        return UrlResolution(
            url=None, source="dispersed", candidates=candidates, verified=verified
        )

    url = verified[0] if verified else None
    if url:
        LOGGER.info("[%s] official URL %s", entity.entity_id, url)
    else:
        LOGGER.info("[%s] no candidate verified", entity.entity_id)
        source = "none"
    store.put(entity.entity_id, url)
    return UrlResolution(url=url, source=source, candidates=candidates, verified=verified)


def filter_candidates(urls: List[str], limit: int = MAX_VERIFIED_CANDIDATES) -> List[str]:
    """Normalized, de-duplicated candidates without aggregators or resellers."""
    filtered: List[str] = []
    for raw in urls:
        normalized = normalize_url(raw)
        if not normalized or normalized in filtered:
            continue
        if is_blacklisted(normalized) or is_booking_domain(normalized):
            continue
        filtered.append(normalized)
        if len(filtered) >= limit:
            break
    return filtered
