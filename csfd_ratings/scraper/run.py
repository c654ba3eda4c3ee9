"""CSFD ratings harvester.

Workflow:

- Walk the user's ``hodnoceni`` listing page by page (page 1 is the bare
  profile URL, page ``n`` is ``?page=n``) and collect rated works.
- Enrich each new batch with a bounded worker pool: cache lookup, detail
  page cascades, parent page for episodes, IMDb search as the last resort.
- Checkpoint every few pages, flush the cache periodically, and write the
  dataset (CSV + JSON, optionally XLSX) at the end.

Three modes share the pipeline:

- ``full``: the whole listing (optionally resumed from a checkpoint).
- ``incremental``: only items not yet in the dataset, prepended to it.
- ``repair``: re-enrich dataset items that still lack an IMDb identifier.
"""

from __future__ import annotations

import argparse
from threading import Lock
from typing import Any, Dict, List, Optional

from . import config
from .cache import CacheStore
from .config_validation import Entrypoint, validate_runtime_config
from .dataset import backup_dataset, load_dataset, merge_new_first, write_dataset, write_new_items
from .enrichment import Enricher, EnrichmentResult
from .export_excel import export_dataset_to_excel
from .fetcher import BrowserSession, PageFetcher, create_fetcher
from .logging_utils import _scraper_event
from .models import RatingItem
from .pagination import PaginationWalker
from .retry_policy import RetryExhausted
from .search import CrossReferenceSearch
from .state import RunStateStore
from .telemetry import RunTelemetry, dataset_stats
from .utils import ensure_dirs, log_line, save_json_file, setup_run_logger, write_fatal_error
from .worker_pool import EnrichmentPool

MODE_FULL = "full"
MODE_INCREMENTAL = "incremental"
MODE_REPAIR = "repair"


def _mode_for(options: config.ScrapeOptions) -> str:
    if options.repair_missing:
        return MODE_REPAIR
    if options.incremental:
        return MODE_INCREMENTAL
    return MODE_FULL


def _short_error_message(exc: Exception, max_length: int = 200) -> str:
    message = f"{type(exc).__name__}: {exc}"
    if len(message) > max_length:
        return message[: max_length - 3] + "..."
    return message


class _Harvest:
    """Shared collaborators of one run."""

    def __init__(
        self,
        options: config.ScrapeOptions,
        fetcher: PageFetcher,
        cache: CacheStore,
        telemetry: RunTelemetry,
        mode: str,
    ) -> None:
        self.options = options
        self.fetcher = fetcher
        self.cache = cache
        self.telemetry = telemetry
        self.mode = mode
        self.stop_reason = ""
        self._telemetry_lock = Lock()
        self._pools: Dict[bool, EnrichmentPool] = {}

    def _on_item(
        self,
        index: int,
        item: RatingItem,
        result: Optional[EnrichmentResult],
        error: Optional[RetryExhausted],
    ) -> None:
        with self._telemetry_lock:
            if error is not None:
                self.telemetry.add_item(item, "failed", error.error_code)
            elif result is not None:
                self.telemetry.add_item(item, result.outcome, result.matched_by)

    def pool(self, *, retry_absent: bool = False) -> EnrichmentPool:
        """One pool per run and mode, so worker threads outlive each batch."""

        if retry_absent in self._pools:
            return self._pools[retry_absent]
        enricher = Enricher(
            self.fetcher,
            self.cache,
            CrossReferenceSearch(self.fetcher),
            retry_absent=retry_absent,
        )
        pool = EnrichmentPool(
            enricher,
            self.cache,
            item_delay=self.options.item_delay,
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            base_delay=config.RETRY_BASE_DELAY_SECONDS,
            flush_every=config.CACHE_FLUSH_EVERY,
            on_item=self._on_item,
        )
        self._pools[retry_absent] = pool
        return pool

    def close(self) -> None:
        pools, self._pools = list(self._pools.values()), {}
        for pool in pools:
            pool.close()

    def walker(self, **kwargs: Any) -> PaginationWalker:
        return PaginationWalker(
            self.fetcher,
            base_url=config.PROFILE_URL,
            page_delay=self.options.page_delay,
            page_attempts=config.LISTING_PAGE_ATTEMPTS,
            empty_retry_delay=config.LISTING_RETRY_DELAY_SECONDS,
            checkpoint_every=config.CHECKPOINT_EVERY_PAGES,
            max_attempts=config.RETRY_MAX_ATTEMPTS,
            base_delay=config.RETRY_BASE_DELAY_SECONDS,
            **kwargs,
        )

    def enrich(self, items: List[RatingItem], *, retry_absent: bool = False) -> None:
        if not items:
            return
        if self.options.skip_details:
            with self._telemetry_lock:
                for item in items:
                    self.telemetry.add_item(item, "skipped", "skip_details")
            return
        self.pool(retry_absent=retry_absent).run(items, self.options.concurrency)

    def walk(self, walker: PaginationWalker, *, start_page: int = 1) -> List[RatingItem]:
        for batch in walker.walk(start_page, self.options.max_pages, self.options.max_items):
            self.enrich(batch)
        self.stop_reason = walker.stop_reason
        return walker.collected


def _run_full(harvest: _Harvest, state_store: RunStateStore) -> Dict[str, Any]:
    options = harvest.options
    start_page = max(1, options.start_page)
    initial: List[RatingItem] = []
    if options.resume:
        state = state_store.load()
        if state is not None:
            start_page = state.last_page + 1
            initial = list(state.items)
            _scraper_event(
                "state",
                source="checkpoint_file",
                last_page=state.last_page,
                items=len(initial),
                saved_mode=state.mode or None,
            )
            log_line(f"[RUN] Resuming after page {state.last_page} with {len(initial)} items")
        else:
            log_line("[RUN] No usable checkpoint; starting from page 1")

    walker = harvest.walker(
        on_checkpoint=lambda last_page, items: state_store.save(last_page, items, harvest.mode),
        initial_items=initial,
    )
    items = harvest.walk(walker, start_page=start_page)
    if not items:
        log_line("[RUN][WARN] No items collected; writing an empty dataset")
    write_dataset(items, csv_path=config.DATASET_CSV, json_path=config.DATASET_JSON)
    state_store.clear()
    return {"items": items, "new_items": len(items) - len(initial)}


def _run_incremental(harvest: _Harvest, state_store: RunStateStore) -> Dict[str, Any]:
    existing = load_dataset(config.DATASET_JSON, config.DATASET_CSV)
    if not existing:
        log_line("[RUN] No existing dataset; running a full scrape instead")
        harvest.mode = MODE_FULL
        return _run_full(harvest, state_store)

    walker = harvest.walker(
        known_keys=[item.dedup_key for item in existing],
    )
    new_items = harvest.walk(walker)
    write_new_items(new_items, config.NEW_ITEMS_JSON)
    if not new_items:
        log_line("[RUN] No new items; dataset is up to date")
        return {"items": existing, "new_items": 0}

    backup_dataset(config.DATASET_JSON)
    merged = merge_new_first(new_items, existing)
    write_dataset(merged, csv_path=config.DATASET_CSV, json_path=config.DATASET_JSON)
    log_line(f"[RUN] Added {len(new_items)} new items; total {len(merged)}")
    return {"items": merged, "new_items": len(new_items)}


def _repair_targets(items: List[RatingItem], options: config.ScrapeOptions) -> List[RatingItem]:
    targets = []
    for item in items:
        if item.external_id:
            continue
        if options.repair_min_year is not None:
            if not item.year.isdigit() or int(item.year) < options.repair_min_year:
                continue
        targets.append(item)
    if options.max_items is not None:
        targets = targets[: options.max_items]
    return targets


def _run_repair(harvest: _Harvest, state_store: RunStateStore) -> Dict[str, Any]:
    existing = load_dataset(config.DATASET_JSON, config.DATASET_CSV)
    targets = _repair_targets(existing, harvest.options)
    log_line(f"[RUN] Repair: {len(targets)} of {len(existing)} items lack an IMDb identifier")
    harvest.enrich(targets, retry_absent=True)
    repaired = sum(1 for item in targets if item.external_id)
    if existing:
        backup_dataset(config.DATASET_JSON)
        write_dataset(existing, csv_path=config.DATASET_CSV, json_path=config.DATASET_JSON)
    log_line(f"[RUN] Repair: resolved {repaired} of {len(targets)}")
    return {"items": existing, "new_items": 0, "repair_targets": len(targets), "repaired": repaired}


_MODE_RUNNERS = {
    MODE_FULL: _run_full,
    MODE_INCREMENTAL: _run_incremental,
    MODE_REPAIR: _run_repair,
}


def run_scrape(
    options: Optional[config.ScrapeOptions] = None,
    *,
    fetcher: Optional[PageFetcher] = None,
    entrypoint: Entrypoint = "cli",
) -> Dict[str, Any]:
    """Run one harvest and return its summary counts.

    Per-item and per-page failures are tolerated and counted. Fatal errors
    (renderer launch, unwritable dataset) are written to ``debug/error.txt``
    and re-raised.
    """

    options = options or config.ScrapeOptions.build()
    ensure_dirs()
    log_path = setup_run_logger(verbose=options.verbose)
    mode = _mode_for(options)
    validate_runtime_config(entrypoint, options, mode=mode)

    _scraper_event(
        "plan",
        mode=mode,
        max_pages=options.max_pages,
        max_items=options.max_items,
        concurrency=options.concurrency,
        skip_details=options.skip_details,
        cache_enabled=options.cache_enabled,
        resume=options.resume,
        backend=options.backend,
    )

    telemetry = RunTelemetry(mode)
    cache = CacheStore(config.CACHE_FILE, enabled=options.cache_enabled)
    state_store = RunStateStore(config.RUN_STATE_FILE)
    owns_fetcher = fetcher is None
    harvest: Optional[_Harvest] = None

    try:
        cache.load()
        if fetcher is None:
            fetcher = create_fetcher(options.backend, BrowserSession())
            fetcher.warm_up()

        harvest = _Harvest(options, fetcher, cache, telemetry, mode)
        outcome = _MODE_RUNNERS[mode](harvest, state_store)
        cache.flush()

        items: List[RatingItem] = outcome.pop("items")
        stats = dataset_stats(items)
        summary: Dict[str, Any] = {
            "mode": harvest.mode,
            "items": stats["total"],
            "with_external_id": stats["with_external_id"],
            "with_original_title": stats["with_original_title"],
            "enriched": telemetry.count("enriched"),
            "cached": telemetry.count("cached"),
            "absent": telemetry.count("absent"),
            "unresolved": telemetry.count("unresolved"),
            "failed": telemetry.count("failed"),
            "skipped": telemetry.count("skipped"),
            "stop_reason": harvest.stop_reason or None,
            "log_path": str(log_path),
            "dataset_csv": str(config.DATASET_CSV),
            "dataset_json": str(config.DATASET_JSON),
            **outcome,
        }
        if options.export_xlsx:
            summary["dataset_xlsx"] = str(export_dataset_to_excel(items, config.DATASET_XLSX))

        summary["telemetry_path"] = str(telemetry.finalize(extra={"counts": summary}))
        save_json_file(config.SUMMARY_FILE, summary)
        log_line(
            f"[RUN] Done: {summary['items']} items, {summary['with_external_id']} with IMDb id, "
            f"{summary['with_original_title']} with original title, {summary['failed']} failed"
        )
        return summary
    except Exception as exc:  # noqa: BLE001
        _scraper_event("error", mode=mode, error=_short_error_message(exc))
        path = write_fatal_error(exc)
        if path is not None:
            log_line(f"[RUN] Fatal error; traceback written to {path}")
        raise
    finally:
        if harvest is not None:
            harvest.close()
        if owns_fetcher and fetcher is not None:
            fetcher.close()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Harvest a CSFD ratings listing into CSV/JSON")
    parser.add_argument("--max-pages", type=int, default=None, help="Last listing page to visit.")
    parser.add_argument("--max-items", type=int, default=None, help="Stop after this many items.")
    parser.add_argument("--start-page", type=int, default=1)
    parser.add_argument("--test", action="store_true", help="Fast mode: short delays, few pages.")
    parser.add_argument("--skip-details", action="store_true", help="Listing only, no enrichment.")
    parser.add_argument("--resume", action="store_true", help="Continue from the last checkpoint.")
    parser.add_argument("--no-cache", action="store_true", help="Ignore and do not write the cache.")
    parser.add_argument("--concurrency", type=int, default=None)
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--incremental", action="store_true", help="Only add items missing from the dataset.")
    mode.add_argument(
        "--repair-missing",
        action="store_true",
        help="Re-enrich dataset items without an IMDb identifier.",
    )
    parser.add_argument("--min-year", type=int, default=None, help="Repair only items from this year on.")
    parser.add_argument("--xlsx", action="store_true", help="Also export an Excel workbook.")
    parser.add_argument(
        "--backend",
        choices=["playwright", "http"],
        default=config.FETCH_BACKEND_DEFAULT,
    )
    parser.add_argument("--verbose", action="store_true")
    return parser


def options_from_args(args: argparse.Namespace) -> config.ScrapeOptions:
    return config.ScrapeOptions.build(
        max_pages=args.max_pages,
        max_items=args.max_items,
        fast_mode=args.test,
        concurrency=args.concurrency,
        backend=args.backend,
        start_page=args.start_page,
        skip_details=args.skip_details,
        resume=args.resume,
        cache_enabled=not args.no_cache,
        incremental=args.incremental,
        repair_missing=args.repair_missing,
        repair_min_year=args.min_year,
        export_xlsx=args.xlsx,
        verbose=args.verbose,
    )


def _cli_entrypoint(argv: Optional[List[str]] = None) -> None:  # pragma: no cover
    args = _build_parser().parse_args(argv)
    run_scrape(options_from_args(args))


if __name__ == "__main__":  # pragma: no cover
    _cli_entrypoint()

__all__ = ["run_scrape", "options_from_args", "_cli_entrypoint"]
