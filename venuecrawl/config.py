"""Settings and factory functions for Crawl4AI run configurations."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from crawl4ai import CrawlerRunConfig
from crawl4ai.async_configs import CacheMode
from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "venuecrawl"
CONFIG_ENV_FILE = CONFIG_DIR / ".env"
ENV_PREFIX = "VENUECRAWL_"

# Resource types the page fetcher never needs for text extraction.
BLOCKED_RESOURCE_TYPES: List[str] = ["image", "stylesheet", "font", "media"]

# Selectors for consent banners that hide page text from extraction.
EXCLUDED_SELECTORS: List[str] = [
    "#onetrust-banner-sdk",
    ".cky-consent-container",
    ".cky-overlay",
    ".cky-modal",
    "[id*='cookie-banner']",
]


@dataclass
class Settings:
    """Crawl limits and timeouts for one resolution run."""

    soft_limit: int = 20
    hard_limit: int = 40
    max_depth: int = 2
    page_cap: int = 40
    sitemap_max_urls: int = 200
    sitemap_max_depth: int = 3
    sitemap_prescore_threshold: int = 180
    page_timeout: float = 15.0
    sitemap_timeout: float = 8.0
    verify_head_timeout: float = 8.0
    verify_get_timeout: float = 12.0
    verify_concurrency: int = 10
    hours_subcrawl_limit: int = 8
    mini_crawl_limit: int = 8
    fetch_attempts: int = 2
    headless: bool = True
    searxng_url: Optional[str] = None
    searxng_username: Optional[str] = None
    searxng_password: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Build settings from ``VENUECRAWL_*`` and ``SEARXNG_*`` variables.

        Variables are read at call time; unparseable values keep the default.
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for item in fields(cls):
            if item.name.startswith("searxng_"):
                raw = env.get(item.name.upper())
            else:
                raw = env.get(f"{ENV_PREFIX}{item.name.upper()}")
            if raw is None or raw == "":
                continue
            converted = _convert(raw, item.default)
            if converted is None and item.default is not None:
                LOGGER.warning(
                    "Ignoring invalid value %r for %s", raw, item.name
                )
                continue
            values[item.name] = converted
        return cls(**values)


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Load .env configuration, then read settings from the environment.

    Search order when ``env_file`` is not given:
    1. .env in current working directory
    2. ~/.config/venuecrawl/.env
    """
    if env_file is not None:
        if Path(env_file).is_file():
            load_dotenv(env_file)
        else:
            LOGGER.warning("Env file %s not found", env_file)
        return Settings.from_env()

    local_env = Path.cwd() / ".env"
    if local_env.is_file():
        load_dotenv(local_env)
    elif CONFIG_ENV_FILE.is_file():
        load_dotenv(CONFIG_ENV_FILE)
    return Settings.from_env()


def build_page_run_config(settings: Optional[Settings] = None) -> CrawlerRunConfig:
    """RunConfig for a single page fetch: fresh content, bounded navigation."""
    active = settings or Settings()
    return CrawlerRunConfig(
        verbose=False,
        cache_mode=CacheMode.BYPASS,
        wait_until="domcontentloaded",
        page_timeout=int(active.page_timeout * 1000),
        delay_before_return_html=1.2,
        excluded_selector=", ".join(EXCLUDED_SELECTORS),
        remove_overlay_elements=True,
    )


def _convert(raw: str, default: Any) -> Any:
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        return None
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            return None
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError:
            return None
    return raw
