"""URL normalization and domain classification helpers."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import tldextract

TRACKING_PARAM_PREFIXES = ("utm_",)
TRACKING_PARAMS = frozenset(
    {"gclid", "fbclid", "msclkid", "mc_cid", "mc_eid", "_ga", "_gl", "yclid", "igshid"}
)

OFFICIAL_SIGNAL_REGEX = re.compile(
    r"official|book tickets|opening times|opening hours|visit us|plan your visit"
    r"|family|kids|age \d|merlin|©",
    re.IGNORECASE,
)
AGGREGATOR_REGEX = re.compile(
    r"ticketmaster|eventbrite|timeout\.com|visitlondon\.?com|datathistle|seetickets"
    r"|\baxs\b|ticketweb|skiddle|londonboxoffice|musicalsontour|lovetheatre"
    r"|westendtheatre|londontheatredirect|atgtickets|todaytix|seatplan|twickets"
    r"|ticketstosee|secondarymarket",
    re.IGNORECASE,
)
SEARCH_BLACKLIST = (
    "ticketmaster",
    "eventbrite",
    "seetickets",
    "timeout",
    "datathistle",
    "axs.com",
    "ticketweb",
    "skiddle",
    "todaytix",
    "seatplan",
    "twickets",
    "dayoutwiththekids.co.uk",
    "visitlondon.com",
    "tripadvisor",
    "wikipedia",
    "youtube",
    "facebook",
    "instagram",
    "yelp",
    "londonboxoffice.co.uk",
    "musicalsontour.co.uk",
    "lovetheatre.com",
)
BOOKING_PATTERNS = (
    re.compile(r"datathistle\.com", re.IGNORECASE),
    re.compile(r"ticketmaster\.(?:co\.uk|com)", re.IGNORECASE),
    re.compile(r"seetickets\.com", re.IGNORECASE),
    re.compile(r"eventbrite\.(?:co\.uk|com)/e", re.IGNORECASE),
    re.compile(r"ticketweb\.(?:co\.uk|com)", re.IGNORECASE),
    re.compile(r"skiddle\.com", re.IGNORECASE),
    re.compile(r"getmein\.com", re.IGNORECASE),
    re.compile(r"tiqets\.com", re.IGNORECASE),
)
# Registrable-domain stems of cinema chains. Several of these resolving for
# one screening means the listing has no single venue.
CINEMA_CHAINS = (
    "odeon",
    "myvue",
    "cineworld",
    "picturehouses",
    "everymancinema",
    "curzon",
    "showcasecinemas",
    "empirecinemas",
    "thelight",
    "reelcinemas",
)


def normalize_url(url: Optional[str], base: Optional[str] = None) -> Optional[str]:
    """Canonical form used as the identity key for visited/candidate sets.

    Fragments and tracking parameters are dropped, scheme and host are
    lowercased, default ports removed, and the trailing slash stripped from
    every path except the root.
    """
    if not url:
        return None
    raw = url.strip()
    if base:
        raw = urljoin(base, raw)
    try:
        parts = urlsplit(raw)
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    if scheme not in ("http", "https") or not parts.hostname:
        return None

    host = parts.hostname.lower()
    try:
        port = parts.port
    except ValueError:
        return None
    if port and not (
        (scheme == "http" and port == 80) or (scheme == "https" and port == 443)
    ):
        host = f"{host}:{port}"

    path = re.sub(r"/{2,}", "/", parts.path or "/")
    if len(path) > 1:
        path = path.rstrip("/") or "/"

    query_pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(key)
    ]
    query = urlencode(query_pairs, doseq=True)
    return urlunsplit((scheme, host, path, query, ""))


def origin_of(url: str) -> Optional[str]:
    """``scheme://host`` of a URL, or ``None`` for non-http URLs."""
    normalized = normalize_url(url)
    if not normalized:
        return None
    parts = urlsplit(normalized)
    return f"{parts.scheme}://{parts.netloc}"


def same_origin(left: str, right: str) -> bool:
    left_origin = origin_of(left)
    return left_origin is not None and left_origin == origin_of(right)


def normalize_host(host: Optional[str]) -> str:
    """Normalize hostname by removing port and lowercasing."""
    if not host:
        return ""
    return host.split(":")[0].lower()


@lru_cache(maxsize=256)
def registrable_domain(host: str) -> Optional[str]:
    """Extract the registrable domain from a hostname."""
    if not host:
        return None
    extracted = tldextract.extract(host)
    if not extracted.domain or not extracted.suffix:
        return host
    return f"{extracted.domain}.{extracted.suffix}"


def hostname_of(url: str) -> str:
    try:
        return normalize_host(urlsplit(url).netloc)
    except ValueError:
        return ""


def slugify_name(name: str) -> Optional[str]:
    """Collapse an entity name into the form it takes inside hostnames.

    "The Old Vic, London" -> "theoldvic". Names shorter than three
    characters after cleaning are not useful for matching.
    """
    cleaned = re.sub(r"[’'‘`]", "", (name or "").lower())
    cleaned = re.sub(r"\blondon\b", "", cleaned)
    cleaned = re.sub(r"[^a-z0-9]+", "", cleaned)
    return cleaned if len(cleaned) >= 3 else None


def hostname_slug(url: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", hostname_of(url))


def is_booking_domain(url: str) -> bool:
    host = hostname_of(url)
    return any(pattern.search(host) or pattern.search(url) for pattern in BOOKING_PATTERNS)


def is_blacklisted(url: str) -> bool:
    lowered = url.lower()
    return any(term in lowered for term in SEARCH_BLACKLIST)


def cinema_chain_of(url: str) -> Optional[str]:
    """Name of the cinema chain a URL belongs to, if any."""
    domain = registrable_domain(hostname_of(url)) or ""
    stem = domain.split(".")[0]
    for chain in CINEMA_CHAINS:
        if stem == chain or stem.startswith(chain):
            return chain
    return None


def _is_tracking_param(key: str) -> bool:
    lowered = key.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES)
