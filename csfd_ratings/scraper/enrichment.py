"""Per-item enrichment: cache lookup followed by named fallback stages.

Stages run in order and each one only fills fields that are still empty:

``direct``
    Detail page as first rendered; every field cascade.
``settled``
    The same page after the renderer settles (late-loading links); only
    when the identifier is still missing and the fetcher can wait.
``parent``
    Show-level page for episodes, seasons and series when the identifier
    or the original title is missing.
``search_title`` / ``search_original_title``
    IMDb title search by display title, then by original title.

The ``direct`` fetch propagates its error so the caller's retry wrapper can
retry the whole item; failures of later stages are recorded and tolerated.
A later stage that failed for a transient reason (timeout, network, 5xx)
leaves the item unresolved: nothing is cached, so the next run asks again.
Terminal answers such as a 404 still count as a completed lookup.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from . import config
from .cache import CacheStore
from .error_codes import classify_exception
from .extraction import DetailExtractor, DetailPage, parent_url
from .fetcher import PageFetcher
from .logging_utils import _scraper_event
from .models import CacheEntry, Enrichment, ItemKind, LookupStatus, RatingItem
from .retry_policy import NON_RETRYABLE_ERROR_CODES, RetryExhausted, with_retry
from .search import CrossReferenceSearch

PARENT_KINDS = {ItemKind.EPISODE, ItemKind.SEASON, ItemKind.SERIES}

OUTCOME_CACHED = "cached"
OUTCOME_ENRICHED = "enriched"
OUTCOME_ABSENT = "absent"
OUTCOME_UNRESOLVED = "unresolved"


@dataclass
class EnrichmentResult:
    outcome: str
    stages: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    matched_by: str = ""
    unresolved_stages: List[str] = field(default_factory=list)

    @property
    def from_cache(self) -> bool:
        return self.outcome == OUTCOME_CACHED

    @property
    def complete(self) -> bool:
        return not self.unresolved_stages

    def stage_failed(self, stage: str, error: object, error_code: str) -> None:
        self.errors.append(f"{stage}: {error}")
        if error_code not in NON_RETRYABLE_ERROR_CODES:
            self.unresolved_stages.append(stage)


class Enricher:
    def __init__(
        self,
        fetcher: PageFetcher,
        cache: CacheStore,
        search: Optional[CrossReferenceSearch] = None,
        extractor: Optional[DetailExtractor] = None,
        *,
        retry_absent: bool = False,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.search = search if search is not None else CrossReferenceSearch(fetcher)
        self.extractor = extractor or DetailExtractor()
        self.retry_absent = retry_absent
        self._sleep = sleep
        self.stages: Tuple[Tuple[str, Callable[[RatingItem, Enrichment, EnrichmentResult], None]], ...] = (
            ("direct", self._direct),
            ("settled", self._settled),
            ("parent", self._parent),
            ("search_title", self._search_title),
            ("search_original_title", self._search_original_title),
        )

    def cached(self, item: RatingItem) -> Optional[CacheEntry]:
        entry = self.cache.get(item.cache_key)
        if entry is None:
            return None
        if entry.is_absent and self.retry_absent:
            return None
        return entry

    def enrich(self, item: RatingItem) -> EnrichmentResult:
        entry = self.cached(item)
        if entry is not None:
            item.apply(entry.enrichment)
            return EnrichmentResult(OUTCOME_CACHED, matched_by=entry.status.value)

        result = EnrichmentResult(OUTCOME_ABSENT)
        acc = Enrichment()
        for name, stage in self.stages:
            before = acc.external_id
            stage(item, acc, result)
            if acc.external_id and not before:
                result.matched_by = name

        item.apply(acc)
        if acc.external_id:
            result.outcome = OUTCOME_ENRICHED
            self.cache.set(item.cache_key, CacheEntry(enrichment=acc, status=LookupStatus.FOUND))
        elif result.complete:
            self.cache.set(item.cache_key, CacheEntry(enrichment=acc, status=LookupStatus.ABSENT))
        else:
            result.outcome = OUTCOME_UNRESOLVED
        _scraper_event(
            "enrich",
            title=item.title,
            outcome=result.outcome,
            matched_by=result.matched_by or None,
            stages=",".join(result.stages),
            errors=len(result.errors),
            unresolved=",".join(result.unresolved_stages) or None,
        )
        return result

    # -- stages -----------------------------------------------------------

    def _extract(self, url: str, html: str, acc: Enrichment, result: EnrichmentResult, *, identity_only: bool = False) -> None:
        page = DetailPage.parse(url, html)
        extraction = self.extractor.extract_identity(page) if identity_only else self.extractor.extract(page)
        acc.merge_missing(extraction.enrichment)
        result.errors.extend(extraction.errors)

    def _direct(self, item: RatingItem, acc: Enrichment, result: EnrichmentResult) -> None:
        result.stages.append("direct")
        html = self.fetcher.fetch(item.source_url)
        self._extract(item.source_url, html, acc, result)

    def _settled(self, item: RatingItem, acc: Enrichment, result: EnrichmentResult) -> None:
        if acc.external_id or not self.fetcher.supports_settle:
            return
        result.stages.append("settled")
        try:
            html = self.fetcher.fetch(item.source_url, settle=True)
        except Exception as exc:  # noqa: BLE001
            result.stage_failed("settled", exc, classify_exception(exc))
            return
        self._extract(item.source_url, html, acc, result, identity_only=True)

    def _parent(self, item: RatingItem, acc: Enrichment, result: EnrichmentResult) -> None:
        if item.kind not in PARENT_KINDS or (acc.external_id and acc.original_title):
            return
        url = parent_url(item.source_url)
        if not url:
            return
        result.stages.append("parent")
        retry_kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        try:
            html = with_retry(
                lambda: self.fetcher.fetch(url),
                max_attempts=2,
                base_delay=config.RETRY_BASE_DELAY_SECONDS,
                label=f"parent:{url}",
                **retry_kwargs,
            )
        except RetryExhausted as exc:
            result.stage_failed("parent", exc, exc.error_code)
            return
        self._extract(url, html, acc, result, identity_only=True)

    def _apply_search(self, query: str, item: RatingItem, acc: Enrichment, result: EnrichmentResult, stage: str) -> None:
        result.stages.append(stage)
        lookup = self.search.lookup(query, item.year or None)
        if lookup.failed:
            result.stage_failed(stage, lookup.error, lookup.error_code)
        elif lookup.result is not None:
            acc.external_id = lookup.result.external_id
            acc.external_url = lookup.result.external_url

    def _search_title(self, item: RatingItem, acc: Enrichment, result: EnrichmentResult) -> None:
        if acc.external_id:
            return
        self._apply_search(item.title, item, acc, result, "search_title")

    def _search_original_title(self, item: RatingItem, acc: Enrichment, result: EnrichmentResult) -> None:
        original = acc.original_title or item.original_title
        if acc.external_id or not original or original == item.title:
            return
        self._apply_search(original, item, acc, result, "search_original_title")


__all__ = [
    "Enricher",
    "EnrichmentResult",
    "PARENT_KINDS",
    "OUTCOME_CACHED",
    "OUTCOME_ENRICHED",
    "OUTCOME_ABSENT",
    "OUTCOME_UNRESOLVED",
]
