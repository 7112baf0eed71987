"""Official-page verification for candidate URLs."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Iterable, List, Optional, Sequence

import httpx

from .urls import (
    AGGREGATOR_REGEX,
    OFFICIAL_SIGNAL_REGEX,
    cinema_chain_of,
    hostname_of,
    hostname_slug,
    slugify_name,
)

LOGGER = logging.getLogger(__name__)

MIN_BODY_BYTES = 5_000
MAX_BODY_BYTES = 200_000
REQUIRED_CHECKS = 3

_SCREENING_TAGS = re.compile(r"film|screening|cinema|movie", re.IGNORECASE)
_WORD = re.compile(r"[a-z0-9]+")
_STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "from", "this", "that", "your", "you", "our",
        "are", "will", "into", "about", "have", "has", "all", "its", "london",
    }
)


def name_tokens(name: str) -> List[str]:
    cleaned = re.sub(r"[’'‘`]", "", (name or "").lower())
    cleaned = re.sub(r"\blondon\b", "", cleaned)
    return [token for token in _WORD.findall(cleaned) if len(token) >= 3]


def description_tokens(text: Optional[str], limit: int = 30) -> List[str]:
    tokens: List[str] = []
    for token in _WORD.findall((text or "").lower()):
        if len(token) < 4 or token in _STOP_WORDS or token in tokens:
            continue
        tokens.append(token)
        if len(tokens) >= limit:
            break
    return tokens


async def verify_candidate(
    url: str,
    entity_name: str,
    description_words: Sequence[str],
    client: httpx.AsyncClient,
    *,
    head_timeout: float = 8.0,
    get_timeout: float = 12.0,
    entity_id: str = "",
) -> bool:
    """Decide whether ``url`` looks like the entity's own page.

    Requires an HTML response of at least ``MIN_BODY_BYTES`` and then three
    of four signals: entity name present, description overlap, an
    "official" marker, and no aggregator marker. Never raises.
    """
    tag = f"[{entity_id}] " if entity_id else ""
    try:
        head = await client.head(url, timeout=head_timeout, follow_redirects=True)
        if head.status_code not in (405, 501):
            if head.status_code >= 400:
                LOGGER.info("%s%s failed HEAD with HTTP %d", tag, url, head.status_code)
                return False
            if not _is_html(head.headers.get("content-type")):
                LOGGER.info("%s%s failed HEAD content-type check", tag, url)
                return False

        async with client.stream(
            "GET", url, timeout=get_timeout, follow_redirects=True
        ) as response:
            if response.status_code >= 400:
                LOGGER.info("%s%s failed fetch status %d", tag, url, response.status_code)
                return False
            if not _is_html(response.headers.get("content-type")):
                LOGGER.info("%s%s is not HTML", tag, url)
                return False
            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) >= MAX_BODY_BYTES:
                    break
            encoding = response.charset_encoding or "utf-8"
    except (httpx.HTTPError, asyncio.TimeoutError) as exc:
        LOGGER.info("%sverification for %s failed: %s", tag, url, exc)
        return False

    if len(body) < MIN_BODY_BYTES:
        LOGGER.info(
            "%s%s rejected because the HTML was too small (%d bytes)", tag, url, len(body)
        )
        return False

    html = bytes(body).decode(encoding, errors="replace").lower()
    normalized_name = re.sub(r"[’'‘`]", "", (entity_name or "").lower()).strip()
    has_name = (len(normalized_name) >= 3 and normalized_name in html) or any(
        token in html for token in name_tokens(entity_name)
    )
    page_words = set(_WORD.findall(html))
    has_description = any(word in page_words for word in description_words)
    has_signal = bool(OFFICIAL_SIGNAL_REGEX.search(html))
    no_aggregator = not AGGREGATOR_REGEX.search(html)

    slug = slugify_name(entity_name)
    if slug and slug not in hostname_slug(url):
        # Logged only, never a rejection on its own.
        LOGGER.info(
            "%shostname %s lacks normalized name %r; judging on content",
            tag,
            hostname_of(url),
            slug,
        )

    passed = sum((has_name, has_description, has_signal, no_aggregator))
    accepted = passed >= REQUIRED_CHECKS
    LOGGER.info(
        "%sverify %s -> name=%s description=%s signal=%s noAggregator=%s -> %s",
        tag,
        url,
        has_name,
        has_description,
        has_signal,
        no_aggregator,
        "ACCEPTED" if accepted else "REJECTED",
    )
    return accepted


async def verify_candidates(
    urls: Iterable[str],
    entity_name: str,
    description_words: Sequence[str],
    client: httpx.AsyncClient,
    *,
    concurrency: int = 10,
    head_timeout: float = 8.0,
    get_timeout: float = 12.0,
    entity_id: str = "",
) -> List[str]:
    """Verify candidates concurrently; accepted URLs keep their input order."""
    candidates = list(urls)
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _check(url: str) -> bool:
        async with semaphore:
            return await verify_candidate(
                url,
                entity_name,
                description_words,
                client,
                head_timeout=head_timeout,
                get_timeout=get_timeout,
                entity_id=entity_id,
            )

    results = await asyncio.gather(*(_check(url) for url in candidates))
    return [url for url, accepted in zip(candidates, results) if accepted]


def is_screening(tags: Iterable[str]) -> bool:
    return any(_SCREENING_TAGS.search(tag or "") for tag in tags)


def is_dispersed(urls: Iterable[str], tags: Iterable[str]) -> bool:
    """True when a screening spreads over several cinema chains."""
    if not is_screening(tags):
        return False
    chains = {chain for chain in (cinema_chain_of(url) for url in urls) if chain}
    return len(chains) >= 2


def _is_html(content_type: Optional[str]) -> bool:
    return "html" in (content_type or "").lower()
