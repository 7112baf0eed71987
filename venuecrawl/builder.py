"""Translate Crawl4AI results and rendered HTML into page records."""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup
from crawl4ai.models import CrawlResult

from .document import Link, PageFetch, ScrapedPage, StructuredFields, WeeklySchedule
from .jsonld import parse_event_instances, parse_json_ld, parse_opening_hours
from .links import outbound_links
from .timeparse import DAY_LABELS
from .urls import normalize_url, same_origin

LOGGER = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 20_000

_INVISIBLE_TAGS = ("script", "style", "noscript", "template", "svg", "iframe")

_SELECTORS: Dict[str, List[str]] = {
    "description": [".description", "[class*='intro']", "main p"],
    "price": [".price", "[class*='price']", "[class*='ticket-price']"],
    "age": ["[class*='age-']", "[class*='suitab']"],
    "hours": ["[class*='opening']", "[class*='hours']", "[class*='times']"],
    "address": ["address", "[class*='address']"],
}

_EXTRACTED_HOURS = re.compile(r"opening\s*(?:hours?|times?)[\s\S]{0,600}?(?=\n\n|$)", re.IGNORECASE)
_EXTRACTED_AGE = re.compile(
    r"(?:\bage\b|recommended|suitable|years?.old|minimum|under\s*\d|from\s*\d\s*years)[\s\S]{0,400}",
    re.IGNORECASE,
)
_EXTRACTED_PRICE = re.compile(
    r"(?:price|ticket|cost|from\s*£|adult|child|family.*ticket)[\s\S]{0,500}", re.IGNORECASE
)
_EXTRACTED_DESCRIPTION = re.compile(
    r"(?:welcome|step into|experience|journey|discover)[\s\S]{0,1200}", re.IGNORECASE
)


def build_fetch_from_result(result: CrawlResult) -> PageFetch:
    """Convert a Crawl4AI CrawlResult into a :class:`PageFetch`."""
    html = result.html or result.cleaned_html or ""
    final_url = str(getattr(result, "redirected_url", None) or result.url or "")
    fetch = fetch_from_html(final_url, html, status_code=result.status_code)

    # Crawl4AI also reports the links it saw; keep any the HTML parse missed.
    known = {link.href for link in fetch.outbound_links}
    for bucket in ("internal", "external"):
        for item in (result.links or {}).get(bucket, []) or []:
            href = item.get("href") if isinstance(item, dict) else None
            if href and href not in known:
                known.add(href)
                fetch.outbound_links.append(Link(href=href, text=str(item.get("text") or "")))
    return fetch


def fetch_from_html(
    url: str,
    html: str,
    *,
    status_code: Optional[int] = None,
    visible_text: Optional[str] = None,
) -> PageFetch:
    """Parse rendered HTML into links, JSON-LD blocks, title and visible text."""
    soup = BeautifulSoup(html or "", "html.parser")

    json_ld = [
        script.string or script.get_text()
        for script in soup.find_all("script", attrs={"type": "application/ld+json"})
    ]

    final_url = url
    canonical = soup.find("link", rel="canonical")
    if canonical is not None and canonical.get("href"):
        candidate = normalize_url(canonical["href"], base=url)
        if candidate and same_origin(candidate, url):
            final_url = candidate

    links = [
        Link(href=anchor["href"], text=anchor.get_text(" ", strip=True))
        for anchor in soup.find_all("a", href=True)
    ]
    title = soup.title.get_text(strip=True) if soup.title else ""

    for tag in soup(list(_INVISIBLE_TAGS)):
        tag.decompose()
    text = visible_text if visible_text is not None else soup.get_text("\n", strip=True)

    return PageFetch(
        final_url=final_url,
        status_code=status_code,
        rendered_html=html or "",
        visible_text=clean_text(text),
        title=title,
        outbound_links=links,
        json_ld_scripts=[block for block in json_ld if block],
    )


def build_scraped_page(fetch: PageFetch, *, reference: Optional[date] = None) -> ScrapedPage:
    """Derive structured fields from a fetch and freeze it into a page record."""
    nodes = parse_json_ld(fetch.json_ld_scripts)
    soup = BeautifulSoup(fetch.rendered_html or "", "html.parser")
    meta = _meta_fields(soup)
    selectors = _selector_fields(soup)

    structured = StructuredFields()
    _apply_json_ld_fields(structured, nodes)
    _assign_if_empty(structured, "description", selectors.get("description") or meta.get("description"))
    _assign_if_empty(structured, "price_text", selectors.get("price") or meta.get("price"))
    _assign_if_empty(structured, "age_text", selectors.get("age"))
    _assign_if_empty(structured, "opening_hours_text", selectors.get("hours"))
    _assign_if_empty(structured, "address_text", selectors.get("address"))

    combined = clean_text(
        "\n\n".join(
            part
            for part in (structured.description, meta.get("description"), fetch.visible_text)
            if part
        )
    )[:MAX_TEXT_LENGTH]

    structured.json_ld_hours = parse_opening_hours(nodes, reference=reference)
    structured.json_ld_events = parse_event_instances(nodes)
    if structured.json_ld_hours is not None:
        structured.extracted_hours = format_schedule(structured.json_ld_hours)
    else:
        structured.extracted_hours = _cleaned_match(_EXTRACTED_HOURS.search(combined))
    structured.extracted_age = _cleaned_match(_EXTRACTED_AGE.search(combined))
    structured.extracted_price = _cleaned_match(_EXTRACTED_PRICE.search(combined))
    structured.extracted_description = _cleaned_match(_EXTRACTED_DESCRIPTION.search(combined))

    if not combined:
        LOGGER.warning("Scrape returned empty text for %s", fetch.final_url)

    return ScrapedPage(
        url=normalize_url(fetch.final_url) or fetch.final_url,
        title=clean_text(fetch.title),
        raw_text=combined,
        html=fetch.rendered_html,
        structured=structured,
        links=tuple(outbound_links(fetch.outbound_links, fetch.final_url)),
    )


def derive_failure_reason(result: CrawlResult) -> str:
    if result.error_message:
        return result.error_message
    metadata = result.metadata or {}
    status_code = result.status_code or metadata.get("status_code")
    if status_code:
        return f"HTTP {status_code}"
    return f"Crawler returned no content for {result.url}"


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace while keeping paragraph breaks."""
    if not text:
        return ""
    collapsed = re.sub(r"[\t\r]", " ", text)
    collapsed = re.sub(r"[ ]*\n[ ]*", "\n", collapsed)
    collapsed = re.sub(r"\n{3,}", "\n\n", collapsed)
    collapsed = re.sub(r" {2,}", " ", collapsed)
    return collapsed.strip()


def format_schedule(schedule: WeeklySchedule) -> str:
    parts = []
    for label in DAY_LABELS:
        hours = schedule.days.get(label)
        if hours is not None:
            parts.append(f"{label}: {hours.open}–{hours.close}")
    return ", ".join(parts)


def _apply_json_ld_fields(structured: StructuredFields, nodes: Iterable[Dict[str, Any]]) -> None:
    for node in nodes:
        _assign_if_empty(structured, "description", node.get("description"))
        _assign_if_empty(structured, "price_text", _offer_price(node))
        _assign_if_empty(
            structured, "age_text", node.get("typicalAgeRange") or node.get("suitableFor")
        )
        hours = node.get("openingHours")
        if isinstance(hours, list):
            hours = ", ".join(str(item) for item in hours)
        _assign_if_empty(structured, "opening_hours_text", hours)
        address = node.get("address")
        if isinstance(address, dict):
            address = address.get("streetAddress") or address.get("addressLocality")
        _assign_if_empty(structured, "address_text", address)


def _offer_price(node: Dict[str, Any]) -> Optional[str]:
    if node.get("price") is not None:
        return str(node["price"])
    offers = node.get("offers")
    if isinstance(offers, dict):
        offers = [offers]
    if isinstance(offers, list):
        for offer in offers:
            if isinstance(offer, dict) and offer.get("price") is not None:
                return str(offer["price"])
    return None


def _meta_fields(soup: BeautifulSoup) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    lookups = {
        "description": ("description", "og:description", "twitter:description"),
        "price": ("product:price:amount", "og:price:amount"),
    }
    for key, names in lookups.items():
        for name in names:
            tag = soup.find("meta", attrs={"name": name}) or soup.find(
                "meta", attrs={"property": name}
            )
            if tag is not None and tag.get("content"):
                fields[key] = str(tag["content"]).strip()
                break
    return fields


def _selector_fields(soup: BeautifulSoup) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for key, selectors in _SELECTORS.items():
        for selector in selectors:
            element = soup.select_one(selector)
            if element is None:
                continue
            text = clean_text(element.get_text("\n", strip=True))
            if text:
                fields[key] = text
                break
    return fields


def _assign_if_empty(structured: StructuredFields, attr: str, value: Any) -> None:
    if getattr(structured, attr):
        return
    if value is None:
        return
    text = clean_text(str(value))
    if text:
        setattr(structured, attr, text)


def _cleaned_match(match: Optional[re.Match]) -> str:
    return clean_text(match.group(0)) if match else ""
