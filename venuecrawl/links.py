"""Outbound link handling and golden-link detection."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Sequence

from .document import Link
from .urls import normalize_url

LOGGER = logging.getLogger(__name__)

# Prose that points at an hours page: "opening hours ... see ... here",
# "check our opening times", "hours ... click here".
GOLDEN_PATTERNS = (
    re.compile(
        r"(?:opening|visiting)\s+(?:hours|times)[^.\n]{0,80}?\b(?:see|find|check|view|click)\b[^.\n]{0,40}?\bhere\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bhours\b[^.\n]{0,60}?\bhere\b", re.IGNORECASE),
    re.compile(
        r"\b(?:see|check|view|find)\s+(?:our|the)\s+(?:opening|visiting)\s+(?:hours|times)",
        re.IGNORECASE,
    ),
)
_SNIPPET_WORDS = re.compile(r"[a-z0-9]{3,}")
_STOP_WORDS = frozenset({"see", "our", "the", "here", "find", "check", "view", "click", "for", "and"})
_HOURS_ANCHOR = re.compile(r"opening|hours|times|plan[- ]your[- ]visit", re.IGNORECASE)


def outbound_links(links: Iterable[Link], base_url: str) -> List[Link]:
    """Absolute, normalized, de-duplicated links in page order."""
    seen = set()
    resolved: List[Link] = []
    for link in links:
        href = normalize_url(link.href, base=base_url)
        if not href or href in seen:
            continue
        seen.add(href)
        resolved.append(Link(href=href, text=(link.text or "").strip()))
    return resolved


def is_relevant_link(url: str, keywords: Sequence[str]) -> bool:
    lowered = url.lower()
    return any(keyword in lowered for keyword in keywords if keyword)


def find_golden_links(text: str, links: Sequence[Link]) -> List[str]:
    """Links that the page's own prose points to as holding opening hours.

    A link qualifies when its anchor text appears inside a matched snippet,
    or when it shares a word with the snippet and its text or href looks like
    an hours page.
    """
    snippets: List[str] = []
    for pattern in GOLDEN_PATTERNS:
        snippets.extend(match.group(0).lower() for match in pattern.finditer(text or ""))
    if not snippets:
        return []

    golden: List[str] = []
    for link in links:
        anchor = (link.text or "").strip().lower()
        href = link.href.lower()
        for snippet in snippets:
            words = set(_SNIPPET_WORDS.findall(snippet)) - _STOP_WORDS
            if anchor and len(anchor) >= 3 and anchor in snippet:
                matched = True
            else:
                anchor_words = set(_SNIPPET_WORDS.findall(anchor)) | set(
                    _SNIPPET_WORDS.findall(href)
                )
                matched = bool(words & anchor_words) and bool(
                    _HOURS_ANCHOR.search(anchor) or _HOURS_ANCHOR.search(href)
                )
            if matched:
                if link.href not in golden:
                    LOGGER.debug("Golden link %s from snippet %r", link.href, snippet[:60])
                    golden.append(link.href)
                break
    return golden
