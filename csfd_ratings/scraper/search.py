"""IMDb title search used when a detail page carries no identifier.

Candidates come from the ``__NEXT_DATA__`` payload embedded in the ``find``
page, or from the rendered result list when the payload is missing. Only the
first ``top_n`` raw results are read; each usable one is scored against the
query title and year, the best positive score wins and ties keep the earlier
candidate. A failed request is reported apart from a clean miss.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional
from urllib.parse import quote_plus

from bs4 import BeautifulSoup

from . import config
from .error_codes import classify_exception
from .fetcher import PageFetcher
from .logging_utils import _scraper_event
from .models import ScoredCandidate, SearchResult
from .selectors import SEARCH_SELECTORS, SearchSelectors
from .titles import extract_year, normalize_title, split_words
from .utils import log_line

_TITLE_ID = re.compile(r"/title/(tt\d+)", re.IGNORECASE)

YEAR_SCORE = 100
EXACT_TITLE_SCORE = 200
CANDIDATE_CONTAINS_QUERY_SCORE = 150
QUERY_CONTAINS_CANDIDATE_SCORE = 100
WORD_OVERLAP_SCORE = 20


def _text(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("text") or value.get("year") or ""
    if value is None:
        return ""
    return str(value).strip()


def _first_text(*values: Any) -> str:
    for value in values:
        text = _text(value)
        if text:
            return text
    return ""


def _candidate(external_id: str, title: str, year: str) -> Optional[ScoredCandidate]:
    external_id = (external_id or "").strip()
    title = normalize_title(title)
    if not external_id.startswith("tt") or not title:
        return None
    return ScoredCandidate(
        external_id=external_id,
        external_url=config.imdb_title_url(external_id),
        title=title,
        year=extract_year(year) or year,
    )


def parse_next_data_candidates(
    html: str, selectors: SearchSelectors = SEARCH_SELECTORS, *, limit: Optional[int] = None
) -> List[ScoredCandidate]:
    """Candidates from ``props.pageProps.titleResults.results``.

    Only the first ``limit`` raw results are considered, before unusable
    entries (non-title ids, blank titles) are dropped. Raises ``ValueError``
    when the payload is present but not valid JSON.
    """

    soup = BeautifulSoup(html or "", "html5lib")
    script = soup.select_one(selectors.next_data)
    if script is None:
        return []
    data = json.loads(script.string or script.get_text() or "{}")
    results = (((data.get("props") or {}).get("pageProps") or {}).get("titleResults") or {}).get("results") or []
    if not isinstance(results, list):
        results = []

    candidates: List[ScoredCandidate] = []
    for item in results[:limit]:
        if not isinstance(item, dict):
            continue
        list_item = item.get("listItem") or {}
        if not isinstance(list_item, dict):
            list_item = {}
        title = _first_text(
            list_item.get("originalTitleText"),
            item.get("titleNameText"),
            item.get("titleText"),
        )
        year = _first_text(
            list_item.get("releaseYear"),
            item.get("titleReleaseText"),
            item.get("releaseYear"),
        )
        external_id = _first_text(item.get("index"), item.get("id"))
        candidate = _candidate(external_id, title, year)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def parse_dom_candidates(
    html: str, selectors: SearchSelectors = SEARCH_SELECTORS, *, limit: Optional[int] = None
) -> List[ScoredCandidate]:
    """Candidates scraped from the first ``limit`` rendered result list items."""

    soup = BeautifulSoup(html or "", "html5lib")
    for item_selector in selectors.result_items:
        nodes = soup.select(item_selector)
        if not nodes:
            continue
        candidates: List[ScoredCandidate] = []
        for node in nodes[:limit]:
            link = node.select_one(selectors.result_link)
            if link is None:
                continue
            match = _TITLE_ID.search(link.get("href") or "")
            if not match:
                continue
            candidate = _candidate(
                match.group(1),
                link.get_text(" ", strip=True),
                extract_year(node.get_text(" ", strip=True)),
            )
            if candidate is not None:
                candidates.append(candidate)
        if candidates:
            return candidates
    return []


def score_candidate(query: str, year: Optional[str], candidate: ScoredCandidate) -> int:
    score = 0
    if not year or not candidate.year or str(candidate.year) == str(year):
        score += YEAR_SCORE

    query_lower = (query or "").lower()
    title_lower = (candidate.title or "").lower()
    if query_lower == title_lower:
        score += EXACT_TITLE_SCORE
    elif query_lower in title_lower:
        score += CANDIDATE_CONTAINS_QUERY_SCORE
    elif title_lower in query_lower:
        score += QUERY_CONTAINS_CANDIDATE_SCORE
    else:
        candidate_words = split_words(title_lower)
        overlapping = [
            word
            for word in split_words(query_lower)
            if any(word in other or other in word for other in candidate_words)
        ]
        score += WORD_OVERLAP_SCORE * len(overlapping)
    return score


def pick_best(
    query: str,
    year: Optional[str],
    candidates: Iterable[ScoredCandidate],
    *,
    top_n: int = config.SEARCH_TOP_N,
) -> Optional[ScoredCandidate]:
    """Return the highest scoring candidate; the first one wins ties."""

    best: Optional[ScoredCandidate] = None
    for index, candidate in enumerate(candidates):
        if index >= top_n:
            break
        candidate.score = score_candidate(query, year, candidate)
        if candidate.score <= 0:
            continue
        if best is None or candidate.score > best.score:
            best = candidate
    return best


@dataclass(frozen=True)
class SearchLookup:
    """One search attempt: a match, a clean miss, or a failed request.

    ``error_code`` is set only when the lookup could not be completed, so
    callers can tell "IMDb has no such title" from "IMDb did not answer".
    """

    result: Optional[SearchResult] = None
    error: str = ""
    error_code: str = ""

    @property
    def failed(self) -> bool:
        return bool(self.error_code)


class CrossReferenceSearch:
    """Looks up an IMDb identifier by title and optional year."""

    def __init__(
        self,
        fetcher: PageFetcher,
        *,
        top_n: int = config.SEARCH_TOP_N,
        selectors: SearchSelectors = SEARCH_SELECTORS,
    ) -> None:
        self.fetcher = fetcher
        self.top_n = top_n
        self.selectors = selectors

    def search_url(self, title: str) -> str:
        return config.IMDB_FIND_URL.format(query=quote_plus(title))

    def candidates(self, html: str) -> List[ScoredCandidate]:
        try:
            found = parse_next_data_candidates(html, self.selectors, limit=self.top_n)
        except ValueError as exc:
            log_line(f"[SEARCH][WARN] Unreadable __NEXT_DATA__ payload: {exc}")
            found = []
        return found or parse_dom_candidates(html, self.selectors, limit=self.top_n)

    def lookup(self, title: str, year: Optional[str] = None) -> SearchLookup:
        """Search IMDb for ``title``. Never raises; failures come back as data."""

        query = normalize_title(title)
        if len(query) < config.MIN_SEARCH_TITLE_LENGTH:
            return SearchLookup()

        url = self.search_url(query)
        try:
            html = self.fetcher.fetch(url, settle=self.fetcher.supports_settle)
            best = pick_best(query, year, self.candidates(html), top_n=self.top_n)
        except Exception as exc:  # noqa: BLE001
            code = classify_exception(exc)
            _scraper_event("search", step="failed", query=query, year=year, error_code=code, error=exc)
            return SearchLookup(error=str(exc) or type(exc).__name__, error_code=code)

        if best is None:
            _scraper_event("search", step="no_match", query=query, year=year)
            return SearchLookup()

        _scraper_event(
            "search",
            step="match",
            query=query,
            year=year,
            external_id=best.external_id,
            matched_title=best.title,
            score=best.score,
        )
        return SearchLookup(
            result=SearchResult(
                external_id=best.external_id,
                external_url=best.external_url,
                matched_title=best.title,
                score=best.score,
            )
        )

    def search(self, title: str, year: Optional[str] = None) -> Optional[SearchResult]:
        """Return the best match, or ``None``. Never raises."""

        return self.lookup(title, year).result


__all__ = [
    "CrossReferenceSearch",
    "SearchLookup",
    "parse_next_data_candidates",
    "parse_dom_candidates",
    "score_candidate",
    "pick_best",
]
