"""Page rendering collaborators.

Both fetchers return the page HTML for a URL and raise :class:`FetchError`
with an :class:`ErrorCode` when the page cannot be obtained. Playwright's
sync API is bound to the thread that started it, so every worker thread owns
its own browser context; the consent cookies captured once are shared through
:class:`BrowserSession` and seeded into contexts created afterwards.
"""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

import requests
from playwright.sync_api import Error as PWError
from playwright.sync_api import TimeoutError as PWTimeout
from playwright.sync_api import sync_playwright

from . import config
from .error_codes import ErrorCode, classify_http_status
from .logging_utils import _scraper_event
from .selectors import CONSENT_BUTTON_SELECTORS, CONSENT_IFRAME_SELECTOR
from .utils import log_line


class FetchError(Exception):
    def __init__(self, error_code: str, message: str, *, http_status: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.http_status = http_status


class BrowserSession:
    """Session state shared by all workers of a run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cookies_accepted = False
        self._cookies: List[Dict[str, Any]] = []

    @property
    def cookies_accepted(self) -> bool:
        with self._lock:
            return self._cookies_accepted

    def mark_consent(self, cookies: List[Dict[str, Any]]) -> bool:
        """Record accepted consent; returns ``False`` if already recorded."""

        with self._lock:
            if self._cookies_accepted:
                return False
            self._cookies_accepted = True
            self._cookies = list(cookies)
            return True

    def snapshot_cookies(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._cookies)


class PageFetcher:
    """Base class: ``fetch(url) -> html``."""

    name = "base"
    supports_settle = False

    def fetch(self, url: str, *, wait_for: Optional[str] = None, settle: bool = False) -> str:
        raise NotImplementedError

    def warm_up(self) -> None:
        """Prepare the calling thread's resources; failures are fatal."""

    def release_thread(self) -> None:
        """Free resources owned by the calling thread."""

    def close(self) -> None:
        self.release_thread()


class HttpFetcher(PageFetcher):
    """Plain HTTP fetches through one ``requests.Session`` per thread."""

    name = "http"

    def __init__(self, session: Optional[BrowserSession] = None) -> None:
        self.browser_session = session or BrowserSession()
        self._local = threading.local()

    def _session(self) -> requests.Session:
        http = getattr(self._local, "http", None)
        if http is None:
            http = requests.Session()
            http.headers.update(config.COMMON_HEADERS)
            self._local.http = http
        return http

    def fetch(self, url: str, *, wait_for: Optional[str] = None, settle: bool = False) -> str:
        try:
            response = self._session().get(url, timeout=config.NAV_TIMEOUT_SECONDS)
        except requests.Timeout as exc:
            raise FetchError(ErrorCode.TIMEOUT, f"GET {url} timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise FetchError(ErrorCode.NETWORK, f"GET {url} failed: {exc}") from exc

        status = response.status_code
        if status >= 400:
            raise FetchError(classify_http_status(status), f"HTTP {status} for {url}", http_status=status)
        if not response.encoding:
            response.encoding = response.apparent_encoding
        return response.text

    def release_thread(self) -> None:
        http = getattr(self._local, "http", None)
        if http is not None:
            http.close()
            self._local.http = None


class PlaywrightFetcher(PageFetcher):
    """Chromium rendering through Playwright's sync API."""

    name = "playwright"
    supports_settle = True

    def __init__(self, session: Optional[BrowserSession] = None, *, headless: bool = config.HEADLESS) -> None:
        self.browser_session = session or BrowserSession()
        self.headless = headless
        self._local = threading.local()

    def _page(self):
        page = getattr(self._local, "page", None)
        if page is not None and not page.is_closed():
            return page

        if getattr(self._local, "playwright", None) is None:
            self._local.playwright = sync_playwright().start()
            self._local.browser = self._local.playwright.chromium.launch(
                headless=self.headless,
                args=[
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                    "--disable-blink-features=AutomationControlled",
                ],
            )
            context = self._local.browser.new_context(
                user_agent=config.COMMON_HEADERS["User-Agent"],
                locale=config.BROWSER_LOCALE,
            )
            cookies = self.browser_session.snapshot_cookies()
            if cookies:
                context.add_cookies(cookies)
            self._local.context = context
            self._local.consented = bool(cookies)
            _scraper_event(
                "browser",
                phase="launch",
                thread=threading.current_thread().name,
                seeded_cookies=len(cookies),
            )

        self._local.page = self._local.context.new_page()
        return self._local.page

    def _accept_consent(self, page) -> None:
        """Best-effort click-through of the Didomi consent banner."""

        if getattr(self._local, "consented", False):
            return
        for selector in CONSENT_BUTTON_SELECTORS:
            try:
                button = page.query_selector(selector)
                if button is None:
                    frame_el = page.query_selector(CONSENT_IFRAME_SELECTOR)
                    frame = frame_el.content_frame() if frame_el else None
                    button = frame.query_selector(selector) if frame else None
                if button is None:
                    continue
                button.click(timeout=config.CONSENT_CLICK_TIMEOUT_MS)
            except PWError as exc:
                log_line(f"[FETCH] Consent click via {selector} failed: {exc}")
                continue
            self._local.consented = True
            if self.browser_session.mark_consent(self._local.context.cookies()):
                log_line("[FETCH] Cookie consent accepted")
            return

    def warm_up(self) -> None:
        self._page()

    def fetch(self, url: str, *, wait_for: Optional[str] = None, settle: bool = False) -> str:
        try:
            page = self._page()
            response = page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=config.NAV_TIMEOUT_SECONDS * 1000,
            )
        except PWTimeout as exc:
            raise FetchError(ErrorCode.TIMEOUT, f"goto({url!r}) timed out: {exc}") from exc
        except PWError as exc:
            raise FetchError(ErrorCode.RENDER, f"goto({url!r}) failed: {exc}") from exc

        status = response.status if response is not None else None
        if status is not None and status >= 400:
            raise FetchError(classify_http_status(status), f"HTTP {status} for {url}", http_status=status)

        self._accept_consent(page)

        if wait_for:
            try:
                page.wait_for_selector(wait_for, timeout=config.SELECTOR_TIMEOUT_SECONDS * 1000)
            except PWTimeout:
                # Missing rows are judged by the caller, not treated as an error here.
                _scraper_event("nav", step="selector_timeout", url=url, selector=wait_for)

        if settle:
            page.wait_for_timeout(int(config.SETTLE_SECONDS * 1000))
            try:
                page.wait_for_load_state("networkidle", timeout=config.NAV_TIMEOUT_SECONDS * 1000)
            except PWTimeout:
                _scraper_event("nav", step="settle_timeout", url=url)

        try:
            return page.content()
        except PWError as exc:
            raise FetchError(ErrorCode.RENDER, f"content() failed for {url}: {exc}") from exc

    def release_thread(self) -> None:
        for attr in ("page", "context", "browser"):
            handle = getattr(self._local, attr, None)
            if handle is None:
                continue
            try:
                handle.close()
            except PWError as exc:
                log_line(f"[FETCH][WARN] Error closing {attr}: {exc}")
            setattr(self._local, attr, None)
        playwright = getattr(self._local, "playwright", None)
        if playwright is not None:
            playwright.stop()
            self._local.playwright = None


def create_fetcher(backend: str, session: Optional[BrowserSession] = None) -> PageFetcher:
    normalized = (backend or "").strip().lower()
    if normalized in {"http", "requests"}:
        return HttpFetcher(session)
    if normalized in {"playwright", "browser", "chromium", ""}:
        return PlaywrightFetcher(session)
    raise ValueError(f"Unknown fetch backend: {backend!r}")


__all__ = [
    "FetchError",
    "BrowserSession",
    "PageFetcher",
    "HttpFetcher",
    "PlaywrightFetcher",
    "create_fetcher",
]
