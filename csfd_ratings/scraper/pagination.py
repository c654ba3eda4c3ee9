from __future__ import annotations

import time
from typing import Callable, Iterable, Iterator, List, Optional, Set, Tuple

from . import config
from .fetcher import PageFetcher
from .listing import parse_listing_html
from .logging_utils import _scraper_event
from .models import RatingItem
from .retry_policy import RetryExhausted, with_retry
from .selectors import LISTING_SELECTORS
from .utils import dump_debug_html, log_line

CheckpointCallback = Callable[[int, List[RatingItem]], None]


class PaginationWalker:
    """
    Walks the ratings listing page by page.

    - ``walk`` yields the *new* items of each page as one batch; the consumer
      may enrich a batch before the next page is requested.
    - The walk ends on a page with no parseable rows, on a page that adds no
      new items, once ``max_items`` is reached, or after ``max_pages``.
    - Every ``checkpoint_every`` pages ``on_checkpoint(last_page, collected)``
      is called after the consumer has handled the page's batch.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        base_url: str = config.PROFILE_URL,
        page_delay: float = config.PAGE_DELAY_SECONDS,
        page_attempts: int = config.LISTING_PAGE_ATTEMPTS,
        empty_retry_delay: float = config.LISTING_RETRY_DELAY_SECONDS,
        checkpoint_every: int = config.CHECKPOINT_EVERY_PAGES,
        on_checkpoint: Optional[CheckpointCallback] = None,
        initial_items: Iterable[RatingItem] = (),
        known_keys: Iterable[Tuple[str, str]] = (),
        max_attempts: int = config.RETRY_MAX_ATTEMPTS,
        base_delay: float = config.RETRY_BASE_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.base_url = base_url
        self.page_delay = page_delay
        self.page_attempts = max(1, page_attempts)
        self.empty_retry_delay = empty_retry_delay
        self.checkpoint_every = max(1, checkpoint_every)
        self.on_checkpoint = on_checkpoint
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

        self.collected: List[RatingItem] = list(initial_items)
        self.seen: Set[Tuple[str, str]] = set(known_keys)
        self.seen.update(item.dedup_key for item in self.collected)
        self.last_page = 0
        self.stop_reason = ""

    def fetch_page(self, page_number: int) -> List[RatingItem]:
        """Rows of one listing page; ``[]`` once every attempt parsed nothing.

        Raises :class:`RetryExhausted` when navigation itself keeps failing.
        """

        url = config.listing_page_url(page_number, self.base_url)
        for attempt in range(1, self.page_attempts + 1):
            html = with_retry(
                lambda: self.fetcher.fetch(url, wait_for=LISTING_SELECTORS.row_selector),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                label=f"listing:p{page_number}",
                sleep=self._sleep,
            )
            items = parse_listing_html(html, self.base_url)
            if items:
                return items
            dump_debug_html(f"p{page_number}_a{attempt}", html)
            _scraper_event("page", step="empty", page=page_number, attempt=attempt, url=url)
            if attempt < self.page_attempts:
                self._sleep(self.empty_retry_delay)
        return []

    def _stop(self, reason: str, page_number: int) -> None:
        self.stop_reason = reason
        _scraper_event("page", step="stop", reason=reason, page=page_number, collected=len(self.collected))

    def walk(
        self,
        start_page: int = 1,
        max_pages: int = config.MAX_PAGES,
        max_items: Optional[int] = None,
    ) -> Iterator[List[RatingItem]]:
        """Yield batches of new items; ``max_pages`` is the last page number visited."""

        page_number = max(1, start_page)
        pages_walked = 0
        while page_number <= max_pages:
            if max_items is not None and len(self.collected) >= max_items:
                self._stop("max_items", page_number)
                return

            log_line(f"[PAGE] {config.listing_page_url(page_number, self.base_url)}")
            try:
                rows = self.fetch_page(page_number)
            except RetryExhausted as exc:
                log_line(f"[PAGE][WARN] Page {page_number} unavailable: {exc}")
                self._stop("fetch_failed", page_number)
                return
            if not rows:
                self._stop("empty_page", page_number)
                return

            batch: List[RatingItem] = []
            for item in rows:
                if max_items is not None and len(self.collected) >= max_items:
                    break
                if item.dedup_key in self.seen:
                    continue
                self.seen.add(item.dedup_key)
                self.collected.append(item)
                batch.append(item)

            log_line(f"[PAGE] Page {page_number}: added {len(batch)}, total {len(self.collected)}")
            if not batch:
                self._stop("no_new_items", page_number)
                return

            self.last_page = page_number
            pages_walked += 1
            yield batch

            if self.on_checkpoint is not None and pages_walked % self.checkpoint_every == 0:
                self.on_checkpoint(self.last_page, self.collected)

            page_number += 1
            if page_number <= max_pages and self.page_delay > 0:
                self._sleep(self.page_delay)

        self._stop("max_pages", page_number - 1)


__all__ = ["PaginationWalker"]
