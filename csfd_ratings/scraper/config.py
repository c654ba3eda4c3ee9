"""Configuration constants for the CSFD ratings harvester."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DATA_DIR: Path = Path(os.getenv("CSFD_DATA_DIR", "data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
# Timestamped run logs kept in LOG_DIR; older ones are pruned at startup.
LOG_FILES_KEPT: int = int(os.getenv("CSFD_LOG_FILES_KEPT", "20"))
DEBUG_DIR: Path = Path(os.getenv("CSFD_DEBUG_DIR", "debug"))
RUNS_DIR: Path = DATA_DIR / "runs"
EXPORTS_DIR: Path = DATA_DIR / "exports"

DATASET_CSV: Path = DATA_DIR / "csfd_ratings.csv"
DATASET_JSON: Path = DATA_DIR / "csfd_ratings.json"
DATASET_XLSX: Path = EXPORTS_DIR / "csfd_ratings.xlsx"
NEW_ITEMS_JSON: Path = DATA_DIR / "new_items.json"
CACHE_FILE: Path = DATA_DIR / "scraper_cache.json"
RUN_STATE_FILE: Path = DATA_DIR / "scraper_state.json"
SUMMARY_FILE: Path = DATA_DIR / "last_summary.json"

PROFILE_URL: str = os.getenv(
    "CSFD_PROFILE_URL", "https://www.csfd.cz/uzivatel/2544-ludivitto/hodnoceni/"
)
IMDB_BASE_URL: str = "https://www.imdb.com"
IMDB_TITLE_URL: str = IMDB_BASE_URL + "/title/{external_id}/"
IMDB_FIND_URL: str = IMDB_BASE_URL + "/find/?q={query}&s=tt&ref_=nv_sr_sm"

FETCH_BACKEND_DEFAULT: str = (
    os.getenv("CSFD_FETCH_BACKEND", "playwright").strip().lower() or "playwright"
)
HEADLESS: bool = os.getenv("CSFD_HEADLESS", "true").strip().lower() != "false"
BROWSER_LOCALE: str = os.getenv("CSFD_BROWSER_LOCALE", "cs-CZ")

MAX_PAGES: int = int(os.getenv("CSFD_MAX_PAGES", "2000"))
TEST_MAX_PAGES: int = int(os.getenv("CSFD_TEST_MAX_PAGES", "2"))
DETAIL_CONCURRENCY: int = int(os.getenv("CSFD_DETAIL_CONCURRENCY", "4"))
MAX_CONCURRENCY: int = int(os.getenv("CSFD_MAX_CONCURRENCY", "8"))

# Listing page: bounded re-attempts of a page that parsed to zero rows.
LISTING_PAGE_ATTEMPTS: int = int(os.getenv("CSFD_LISTING_PAGE_ATTEMPTS", "2"))
LISTING_RETRY_DELAY_SECONDS: float = float(os.getenv("CSFD_LISTING_RETRY_DELAY", "1.2"))
CHECKPOINT_EVERY_PAGES: int = int(os.getenv("CSFD_CHECKPOINT_EVERY_PAGES", "10"))

CACHE_FLUSH_EVERY: int = int(os.getenv("CSFD_CACHE_FLUSH_EVERY", "25"))
RETRY_MAX_ATTEMPTS: int = int(os.getenv("CSFD_RETRY_MAX_ATTEMPTS", "3"))
RETRY_BASE_DELAY_SECONDS: float = float(os.getenv("CSFD_RETRY_BASE_DELAY", "1.0"))

# Production vs fast/test pacing (seconds).
PAGE_DELAY_SECONDS: float = float(os.getenv("CSFD_PAGE_DELAY", "0.35"))
ITEM_DELAY_SECONDS: float = float(os.getenv("CSFD_ITEM_DELAY", "0.5"))
FAST_PAGE_DELAY_SECONDS: float = float(os.getenv("CSFD_FAST_PAGE_DELAY", "0.1"))
FAST_ITEM_DELAY_SECONDS: float = float(os.getenv("CSFD_FAST_ITEM_DELAY", "0.1"))
SETTLE_SECONDS: float = float(os.getenv("CSFD_SETTLE_SECONDS", "2.0"))

DESCRIPTION_MAX_CHARS: int = int(os.getenv("CSFD_DESCRIPTION_MAX_CHARS", "250"))
MAX_GENRES: int = 3
MAX_CAST: int = 8
SEARCH_TOP_N: int = 10
MIN_SEARCH_TITLE_LENGTH: int = 2


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


# Navigation timeout for page.goto / HTTP GET.
NAV_TIMEOUT_SECONDS: int = _parse_timeout_seconds("CSFD_NAV_TIMEOUT_SECONDS", 30)
# Selector waits (listing table readiness).
SELECTOR_TIMEOUT_SECONDS: int = _parse_timeout_seconds("CSFD_SELECTOR_TIMEOUT_SECONDS", 20)
# Cookie banner click, milliseconds to match the Playwright API.
CONSENT_CLICK_TIMEOUT_MS: int = int(os.getenv("CSFD_CONSENT_CLICK_TIMEOUT_MS", "2000"))

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/125.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "cs-CZ,cs;q=0.9,en;q=0.8",
    "Connection": "keep-alive",
}


@dataclass
class ScrapeOptions:
    """Per-run options accepted by :func:`run.run_scrape`.

    Values left as ``None`` fall back to the module-level defaults when the
    options are resolved through :meth:`build`.
    """

    max_pages: int = MAX_PAGES
    max_items: Optional[int] = None
    start_page: int = 1
    skip_details: bool = False
    concurrency: int = DETAIL_CONCURRENCY
    page_delay: float = PAGE_DELAY_SECONDS
    item_delay: float = ITEM_DELAY_SECONDS
    resume: bool = False
    cache_enabled: bool = True
    fast_mode: bool = False
    incremental: bool = False
    repair_missing: bool = False
    repair_min_year: Optional[int] = None
    export_xlsx: bool = False
    backend: str = FETCH_BACKEND_DEFAULT
    verbose: bool = False

    @classmethod
    def build(
        cls,
        *,
        max_pages: Optional[int] = None,
        max_items: Optional[int] = None,
        fast_mode: bool = False,
        concurrency: Optional[int] = None,
        backend: Optional[str] = None,
        **overrides,
    ) -> "ScrapeOptions":
        """Return options with fast-mode pacing applied where not overridden."""

        if max_pages is None:
            max_pages = TEST_MAX_PAGES if fast_mode else MAX_PAGES
        options = cls(
            max_pages=max_pages,
            max_items=max_items,
            fast_mode=fast_mode,
            concurrency=DETAIL_CONCURRENCY if concurrency is None else concurrency,
            page_delay=FAST_PAGE_DELAY_SECONDS if fast_mode else PAGE_DELAY_SECONDS,
            item_delay=FAST_ITEM_DELAY_SECONDS if fast_mode else ITEM_DELAY_SECONDS,
            backend=(backend or FETCH_BACKEND_DEFAULT).strip().lower(),
        )
        for key, value in overrides.items():
            if not hasattr(options, key):
                raise TypeError(f"Unknown scrape option: {key}")
            setattr(options, key, value)
        return options


def listing_page_url(page_number: int, base_url: str = PROFILE_URL) -> str:
    """Return the listing URL for 1-based ``page_number``."""

    if page_number <= 1:
        return base_url
    return f"{base_url}?page={page_number}"


def imdb_title_url(external_id: str) -> str:
    return IMDB_TITLE_URL.format(external_id=external_id)
