from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from queue import Queue
from threading import Lock
from typing import Callable, List, Optional, Sequence

from . import config
from .cache import CacheStore
from .enrichment import Enricher, EnrichmentResult
from .logging_utils import _scraper_event
from .models import RatingItem
from .retry_policy import RetryExhausted, with_retry
from .utils import log_line

ItemCallback = Callable[[int, RatingItem, Optional[EnrichmentResult], Optional[RetryExhausted]], None]

_STOP = object()


@dataclass
class PoolStats:
    processed: int = 0
    enriched: int = 0
    cached: int = 0
    failed: int = 0
    peak_in_flight: int = 0
    failures: List[str] = field(default_factory=list)


class EnrichmentPool:
    """
    Bounded worker pool over batches of items.

    - Worker threads start on the first concurrent :meth:`run` and stay up
      until :meth:`close`, so per-thread fetcher resources (a browser per
      thread) survive from one listing batch to the next.
    - Items are queued in listing order and enriched in place; results are
      never reordered.
    - Each item runs under the retry governor; an exhausted item keeps its
      previous fields and the pool moves on.
    - Concurrency 1 runs inline in the calling thread.
    """

    def __init__(
        self,
        enricher: Enricher,
        cache: CacheStore,
        *,
        item_delay: float = config.ITEM_DELAY_SECONDS,
        max_attempts: int = config.RETRY_MAX_ATTEMPTS,
        base_delay: float = config.RETRY_BASE_DELAY_SECONDS,
        flush_every: int = config.CACHE_FLUSH_EVERY,
        on_item: Optional[ItemCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.enricher = enricher
        self.cache = cache
        self.item_delay = item_delay
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.flush_every = max(1, flush_every)
        self.on_item = on_item
        self._sleep = sleep
        self._lock = Lock()
        self._in_flight = 0
        self._stats = PoolStats()
        self._jobs: "Queue[object]" = Queue()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._workers = 0
        self._crash: Optional[BaseException] = None

    @property
    def workers(self) -> int:
        """Number of live worker threads; 0 until a concurrent run starts them."""
        return self._workers

    def _begin(self) -> None:
        with self._lock:
            self._in_flight += 1
            self._stats.peak_in_flight = max(self._stats.peak_in_flight, self._in_flight)

    def _record(self, item: RatingItem, result: Optional[EnrichmentResult], error: Optional[RetryExhausted]) -> bool:
        """Update counters; returns ``True`` when the cache is due a flush."""

        with self._lock:
            self._in_flight -= 1
            self._stats.processed += 1
            if error is not None:
                self._stats.failed += 1
                self._stats.failures.append(f"{item.source_url}: {error.error_code}")
            elif result is not None and result.from_cache:
                self._stats.cached += 1
            elif result is not None and item.has_external_id:
                self._stats.enriched += 1
            return self._stats.processed % self.flush_every == 0

    def _process(self, index: int, item: RatingItem) -> None:
        result: Optional[EnrichmentResult] = None
        error: Optional[RetryExhausted] = None
        try:
            result = with_retry(
                lambda: self.enricher.enrich(item),
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                label=f"enrich:{item.source_url}",
                sleep=self._sleep,
            )
        except RetryExhausted as exc:
            error = exc
            log_line(f"[POOL][WARN] Giving up on {item.title!r} ({item.source_url}): {exc.error_code} {exc.last_error}")

        if self._record(item, result, error):
            self.cache.flush()
        if self.on_item is not None:
            self.on_item(index, item, result, error)

        if result is None or not result.from_cache:
            if self.item_delay > 0:
                self._sleep(self.item_delay)

    def _worker(self) -> None:
        try:
            while True:
                job = self._jobs.get()
                try:
                    if job is _STOP:
                        return
                    index, item = job
                    self._begin()
                    self._process(index, item)
                except Exception as exc:  # noqa: BLE001
                    # Re-raised by run() once the batch drains.
                    with self._lock:
                        if self._crash is None:
                            self._crash = exc
                finally:
                    self._jobs.task_done()
        finally:
            self.enricher.fetcher.release_thread()

    def _start(self, workers: int) -> None:
        self._workers = workers
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="enrich")
        for _ in range(workers):
            self._executor.submit(self._worker)
        _scraper_event("state", phase="worker_pool", kind="workers_started", workers=workers)

    def run(self, items: Sequence[RatingItem], concurrency: int = 1) -> PoolStats:
        with self._lock:
            self._in_flight = 0
            self._stats = PoolStats()
            self._crash = None
        concurrent = self._executor is not None or int(concurrency) > 1
        if concurrent and self._executor is None:
            self._start(int(concurrency))
        _scraper_event(
            "state", phase="worker_pool", kind="start", items=len(items), workers=self._workers if concurrent else 1
        )

        if concurrent:
            for index, item in enumerate(items):
                self._jobs.put((index, item))
            self._jobs.join()
            with self._lock:
                crash, self._crash = self._crash, None
            if crash is not None:
                raise crash
        else:
            for index, item in enumerate(items):
                self._begin()
                self._process(index, item)

        self.cache.flush()
        stats = self.stats
        _scraper_event(
            "state",
            phase="worker_pool",
            kind="done",
            processed=stats.processed,
            enriched=stats.enriched,
            cached=stats.cached,
            failed=stats.failed,
            peak_in_flight=stats.peak_in_flight,
        )
        return stats

    def close(self) -> None:
        """Stop the worker threads; each releases its fetcher resources on exit."""

        if self._executor is None:
            return
        for _ in range(self._workers):
            self._jobs.put(_STOP)
        self._executor.shutdown(wait=True)
        self._executor = None
        _scraper_event("state", phase="worker_pool", kind="workers_stopped", workers=self._workers)
        self._workers = 0

    def __enter__(self) -> "EnrichmentPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def stats(self) -> PoolStats:
        with self._lock:
            return PoolStats(
                processed=self._stats.processed,
                enriched=self._stats.enriched,
                cached=self._stats.cached,
                failed=self._stats.failed,
                peak_in_flight=self._stats.peak_in_flight,
                failures=list(self._stats.failures),
            )


__all__ = ["EnrichmentPool", "PoolStats"]
