"""URL and page relevance scoring for the crawl queue."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple
from urllib.parse import urlsplit

from .document import ScrapedPage
from .timeparse import DAY_PATTERN

RELEVANT_PATH_KEYWORDS: Tuple[str, ...] = (
    "visit",
    "plan-your-visit",
    "opening-hours",
    "opening-times",
    "hours",
    "tickets",
    "ticket-information",
    "prices",
    "plan-visit",
    "visit-us",
    "getting-here",
    "info",
    "practical-information",
    "whats-on",
    "events",
    "calendar",
)

SEMANTIC_PRIORITY = 9999
HIGH_PRIORITY_SCORE = 50
PRESCORE_THRESHOLD = 180
MAX_PATH_DEPTH = 3

_OPENING_PATH = re.compile(r"opening[-_ ]?(?:hours?|times?)")
_HOURS_PATH = re.compile(r"hours|times")
_VISIT_PATH = re.compile(r"visit|plan|info|faq|practical|before|getting-here")
_EVENTS_PATH = re.compile(r"whats-on|what-s-on|events?|calendar|dates")
_COMMERCE_PATH = re.compile(r"book|ticket|checkout|buy|basket|cart")

_HOURS_TEXT = re.compile(
    r"opening\s*(?:hours?|times?)|daily\s*hours|open\s*daily|mon.*sun|operating\s*hours",
    re.IGNORECASE,
)
_PRICE_TEXT = re.compile(r"price|ticket|from £|adult|child|family ticket", re.IGNORECASE)
_AGE_TEXT = re.compile(
    r"\bage\b|recommended age|suitable for|years old|minimum age", re.IGNORECASE
)
_CHECKOUT_TEXT = re.compile(r"\bbook\b|buy tickets|checkout|basket", re.IGNORECASE)
_DAY_TEXT = re.compile(rf"\b{DAY_PATTERN}\b", re.IGNORECASE)
_TIME_TEXT = re.compile(r"\b\d{1,2}(?:[:.]\d{2})?\s*(?:am|pm)\b|\b\d{1,2}:\d{2}\b", re.IGNORECASE)


def score_url(url: str) -> int:
    """Crawl priority from path keywords alone."""
    path = _path_of(url)
    score = 0
    if _OPENING_PATH.search(path):
        score += 50
    if _HOURS_PATH.search(path):
        score += 20
    if _VISIT_PATH.search(path):
        score += 15
    for keyword in RELEVANT_PATH_KEYWORDS:
        if keyword in path:
            score += 5
    if _COMMERCE_PATH.search(path):
        score -= 10
    depth = len([segment for segment in path.split("/") if segment])
    if depth > MAX_PATH_DEPTH:
        score -= 10 * (depth - MAX_PATH_DEPTH)
    return score


def prescore_url(url: str, name_tokens: Sequence[str] = ()) -> int:
    """Cheap sitemap pre-filter score; compare against :data:`PRESCORE_THRESHOLD`."""
    path = _path_of(url)
    score = 0
    if _OPENING_PATH.search(path):
        score += 200
    if _HOURS_PATH.search(path):
        score += 120
    if _VISIT_PATH.search(path):
        score += 90
    if _EVENTS_PATH.search(path):
        score += 90
    for token in name_tokens:
        if token and token in path:
            score += 60
    if _COMMERCE_PATH.search(path):
        score -= 100
    depth = len([segment for segment in path.split("/") if segment])
    if depth > MAX_PATH_DEPTH:
        score -= 30 * (depth - MAX_PATH_DEPTH)
    return score


def score_page(page: ScrapedPage, entity_name: str) -> int:
    """Content relevance of a fetched page for the entity."""
    text = f"{page.title}\n{page.raw_text}".lower()
    name = (entity_name or "").strip().lower()
    score = text.count(name) * 100 if name else 0
    if _HOURS_TEXT.search(text):
        score += 120
    if _PRICE_TEXT.search(text):
        score += 50
    if _AGE_TEXT.search(text):
        score += 60
    if _CHECKOUT_TEXT.search(text) and score < 100:
        score -= 70
    if has_schedule_literals(text) or "monday" in text or "sunday" in text:
        score += 30
    return score


def has_schedule_literals(text: str) -> bool:
    """True when the text names weekdays and clock times."""
    return bool(_DAY_TEXT.search(text or "")) and bool(_TIME_TEXT.search(text or ""))


@dataclass(frozen=True, slots=True)
class CrawlTask:
    """Keyword profile for a targeted sub-crawl."""

    name: str
    url_keywords: Tuple[str, ...]
    text_pattern: re.Pattern
    boost: int


TASKS: Dict[str, CrawlTask] = {
    "hours": CrawlTask(
        name="hours",
        url_keywords=("opening", "hours", "times", "visit", "plan", "whats-on", "calendar"),
        text_pattern=_HOURS_TEXT,
        boost=80,
    ),
    "age": CrawlTask(
        name="age",
        url_keywords=("age", "faq", "family", "kids", "accessibility"),
        text_pattern=_AGE_TEXT,
        boost=60,
    ),
    "price": CrawlTask(
        name="price",
        url_keywords=("price", "ticket", "admission", "fees"),
        text_pattern=_PRICE_TEXT,
        boost=50,
    ),
    "description": CrawlTask(
        name="description",
        url_keywords=("about", "story", "experience", "attraction"),
        text_pattern=re.compile(r"welcome|step into|experience|journey|discover", re.IGNORECASE),
        boost=40,
    ),
}


def score_url_for_task(url: str, task: CrawlTask) -> int:
    path = _path_of(url)
    hits = sum(1 for keyword in task.url_keywords if keyword in path)
    return score_url(url) + task.boost * min(hits, 2)


def is_hours_candidate(url: str) -> bool:
    """True when the path carries one of the hours task's URL keywords."""
    path = _path_of(url)
    return any(keyword in path for keyword in TASKS["hours"].url_keywords)


def score_page_for_task(page: ScrapedPage, task: CrawlTask, entity_name: str) -> int:
    score = score_page(page, entity_name)
    if task.text_pattern.search(page.raw_text or ""):
        score += task.boost
    if task.name == "hours" and has_schedule_literals(page.raw_text):
        score += 40
    return score


def _path_of(url: str) -> str:
    try:
        return urlsplit(url).path.lower()
    except ValueError:
        return ""
