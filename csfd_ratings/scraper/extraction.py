"""Extraction cascades for CSFD detail pages.

Each enrichment field has an ordered list of independent tactics. A tactic
looks at the parsed page and either returns a value or nothing; the cascade
returns the first non-empty value, so earlier tactics are implicitly more
trusted. Tactics come in three flavours:

- DOM selector based (``SelectorTextTactic``, ``HrefPatternTactic``, ...)
- structured metadata based (``JsonLdFieldTactic``, ``JsonLdPatternTactic``)
- raw text based (``RawPatternTactic``, ``LabelledTextTactic``)
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from . import config
from .models import Enrichment
from .selectors import DETAIL_SELECTORS, DetailSelectors
from .titles import clean_description, normalize_title
from .utils import log_debug

EXTERNAL_ID_PATTERN = re.compile(r"\b(tt\d+)\b", re.IGNORECASE)
IMDB_URL_PATTERN = re.compile(r"https?://(?:www\.|m\.)?imdb\.com/title/(tt\d+)", re.IGNORECASE)
BARE_ID_PATTERN = re.compile(r"\b(tt\d{6,})\b")

_LIST_SPLIT = re.compile(r"\s*(?:/|,|\n|\|)\s*")
_LABEL_PREFIX = re.compile(r"^\s*[^:]{1,20}:\s*")


@dataclass
class DetailPage:
    """A rendered detail page, parsed once and shared by all tactics."""

    url: str
    html: str
    soup: BeautifulSoup
    json_ld_raw: List[str] = field(default_factory=list)
    json_ld: List[Any] = field(default_factory=list)
    _text: Optional[str] = None

    @classmethod
    def parse(cls, url: str, html: str) -> "DetailPage":
        soup = BeautifulSoup(html or "", "html5lib")
        raw_blocks: List[str] = []
        decoded: List[Any] = []
        for script in soup.select(DETAIL_SELECTORS.json_ld):
            raw = script.string or script.get_text() or ""
            if not raw.strip():
                continue
            raw_blocks.append(raw)
            try:
                decoded.append(json.loads(raw, strict=False))
            except ValueError as exc:
                log_debug(f"[EXTRACT] Undecodable JSON-LD block on {url}: {exc}")
        return cls(url=url, html=html or "", soup=soup, json_ld_raw=raw_blocks, json_ld=decoded)

    @property
    def text(self) -> str:
        if self._text is None:
            self._text = self.soup.get_text("\n")
        return self._text

    def json_objects(self) -> Iterator[dict]:
        for block in self.json_ld:
            yield from _iter_json_objects(block)


def _iter_json_objects(data: Any) -> Iterator[dict]:
    if isinstance(data, dict):
        yield data
        for value in data.values():
            if isinstance(value, (dict, list)):
                yield from _iter_json_objects(value)
    elif isinstance(data, list):
        for value in data:
            yield from _iter_json_objects(value)


def _json_value_to_text(value: Any, *, limit: Optional[int] = None) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return str(value.get("name") or "").strip()
    if isinstance(value, list):
        names = [_json_value_to_text(v) for v in value]
        names = [n for n in names if n]
        if limit is not None:
            names = names[:limit]
        return ", ".join(names)
    return ""


def _join_limited(values: Iterable[str], limit: int) -> str:
    cleaned: List[str] = []
    for value in values:
        value = normalize_title(value)
        if value and value not in cleaned:
            cleaned.append(value)
        if len(cleaned) >= limit:
            break
    return ", ".join(cleaned)


# ---------------------------------------------------------------------------
# Tactics
# ---------------------------------------------------------------------------


class Tactic:
    """One way of extracting a value from a :class:`DetailPage`."""

    name: str = "tactic"

    def attempt(self, page: DetailPage) -> Optional[str]:
        raise NotImplementedError


class SelectorTextTactic(Tactic):
    """Text of the first element matching ``selector``."""

    def __init__(self, selector: str, *, name: Optional[str] = None) -> None:
        self.selector = selector
        self.name = name or f"selector:{selector}"

    def attempt(self, page: DetailPage) -> Optional[str]:
        for element in page.soup.select(self.selector):
            text = element.get_text(" ", strip=True)
            if text:
                return text
        return None


class HrefPatternTactic(Tactic):
    """First ``href`` among ``selector`` matches that contains ``pattern``."""

    def __init__(self, selector: str, pattern: re.Pattern, *, name: str) -> None:
        self.selector = selector
        self.pattern = pattern
        self.name = name

    def attempt(self, page: DetailPage) -> Optional[str]:
        for anchor in page.soup.select(self.selector):
            href = anchor.get("href")
            if not href:
                continue
            match = self.pattern.search(urljoin(page.url, str(href)))
            if match:
                return match.group(1)
        return None


class JsonLdPatternTactic(Tactic):
    """Regex scan of the raw JSON-LD blocks, patterns tried in order per block."""

    def __init__(self, patterns: Sequence[re.Pattern], *, name: str = "json_ld") -> None:
        self.patterns = tuple(patterns)
        self.name = name

    def attempt(self, page: DetailPage) -> Optional[str]:
        for raw in page.json_ld_raw:
            for pattern in self.patterns:
                match = pattern.search(raw)
                if match:
                    return match.group(1)
        return None


class JsonLdFieldTactic(Tactic):
    """First non-empty value of ``keys`` across the decoded JSON-LD objects."""

    def __init__(
        self, keys: Sequence[str], *, limit: Optional[int] = None, name: Optional[str] = None
    ) -> None:
        self.keys = tuple(keys)
        self.limit = limit
        self.name = name or "json_ld:" + "|".join(self.keys)

    def attempt(self, page: DetailPage) -> Optional[str]:
        for obj in page.json_objects():
            for key in self.keys:
                if key not in obj:
                    continue
                value = _json_value_to_text(obj[key], limit=self.limit)
                if value:
                    return value
        return None


class RawPatternTactic(Tactic):
    """Regex scan of the full HTML source, patterns tried in order."""

    def __init__(self, patterns: Sequence[re.Pattern], *, name: str = "raw_text") -> None:
        self.patterns = tuple(patterns)
        self.name = name

    def attempt(self, page: DetailPage) -> Optional[str]:
        for pattern in self.patterns:
            match = pattern.search(page.html)
            if match:
                return match.group(1)
        return None


class LabelledTextTactic(Tactic):
    """Value following a label such as ``Režie:`` in the visible text."""

    def __init__(self, labels: Sequence[str], *, name: Optional[str] = None) -> None:
        alternation = "|".join(re.escape(label) for label in labels)
        self.pattern = re.compile(rf"(?:{alternation})\s*:\s*([^\n]+)", re.IGNORECASE)
        self.name = name or f"label:{labels[0]}"

    def attempt(self, page: DetailPage) -> Optional[str]:
        match = self.pattern.search(page.text)
        if match:
            return match.group(1).strip() or None
        return None


class MetaContentTactic(Tactic):
    def __init__(self, selector: str, *, name: Optional[str] = None) -> None:
        self.selector = selector
        self.name = name or f"meta:{selector}"

    def attempt(self, page: DetailPage) -> Optional[str]:
        element = page.soup.select_one(self.selector)
        if element is None:
            return None
        return str(element.get("content") or "").strip() or None


class CastBlockTactic(Tactic):
    """Actor links from the creators block.

    The cast is the last class-less ``div`` before ``div.other-professions``
    inside ``#creators``.
    """

    name = "creators_block"

    def __init__(self, selectors: DetailSelectors = DETAIL_SELECTORS, *, limit: int) -> None:
        self.selectors = selectors
        self.limit = limit

    def attempt(self, page: DetailPage) -> Optional[str]:
        block = page.soup.select_one(self.selectors.creators_block)
        if block is None:
            return None
        other = block.select_one(self.selectors.creators_other)
        if other is None:
            return None
        for sibling in other.find_previous_siblings("div"):
            if sibling.get("class"):
                continue
            names = [a.get_text(" ", strip=True) for a in sibling.find_all("a")]
            return _join_limited(names, self.limit) or None
        return None


class CastHeadingTactic(Tactic):
    """Links of the creators section headed "Hrají"."""

    name = "cast_heading"

    def __init__(self, *, limit: int) -> None:
        self.limit = limit

    def attempt(self, page: DetailPage) -> Optional[str]:
        for heading in page.soup.select("#creators h4, .creators h4"):
            if "hraj" not in heading.get_text(strip=True).lower():
                continue
            container = heading.parent
            if container is None:
                continue
            names = [a.get_text(" ", strip=True) for a in container.find_all("a")]
            joined = _join_limited(names, self.limit)
            if joined:
                return joined
        return None


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


@dataclass
class ExtractionOutcome:
    """Result of a cascade run: ``success``, ``empty`` or ``error``."""

    status: str
    value: str = ""
    tactic: str = ""
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "success"


class Cascade:
    """Ordered tactics for one field; the first non-empty result wins."""

    def __init__(
        self,
        field_name: str,
        tactics: Sequence[Tactic],
        *,
        finalize: Callable[[str], str] = normalize_title,
    ) -> None:
        self.field_name = field_name
        self.tactics = list(tactics)
        self.finalize = finalize

    def run(self, page: DetailPage) -> ExtractionOutcome:
        errors: List[str] = []
        for tactic in self.tactics:
            try:
                raw = tactic.attempt(page)
            except Exception as exc:  # noqa: BLE001
                errors.append(f"{tactic.name}: {type(exc).__name__}: {exc}")
                log_debug(f"[EXTRACT] {self.field_name} tactic {tactic.name} raised on {page.url}: {exc}")
                continue
            value = self.finalize(raw) if raw else ""
            if value:
                return ExtractionOutcome("success", value=value, tactic=tactic.name, errors=errors)
        return ExtractionOutcome("error" if errors else "empty", errors=errors)


def _finalize_external_id(raw: str) -> str:
    match = EXTERNAL_ID_PATTERN.search(raw or "")
    return match.group(1).lower() if match else ""


def _finalize_genre(raw: str) -> str:
    return _join_limited(_LIST_SPLIT.split(raw or ""), config.MAX_GENRES)


def _finalize_person(raw: str) -> str:
    text = normalize_title(raw)
    if ":" in text[:20]:
        text = _LABEL_PREFIX.sub("", text)
    return text.split(",")[0].strip()


def _finalize_cast(raw: str) -> str:
    return _join_limited(re.split(r"\s*,\s*", raw or ""), config.MAX_CAST)


def build_external_id_cascade(selectors: DetailSelectors = DETAIL_SELECTORS) -> Cascade:
    return Cascade(
        "external_id",
        [
            HrefPatternTactic(selectors.imdb_button, EXTERNAL_ID_PATTERN, name="imdb_button"),
            HrefPatternTactic(selectors.imdb_anchor, IMDB_URL_PATTERN, name="imdb_anchor"),
            JsonLdPatternTactic((IMDB_URL_PATTERN, BARE_ID_PATTERN), name="json_ld"),
            RawPatternTactic((IMDB_URL_PATTERN, BARE_ID_PATTERN), name="raw_html"),
        ],
        finalize=_finalize_external_id,
    )


def build_original_title_cascade(selectors: DetailSelectors = DETAIL_SELECTORS) -> Cascade:
    tactics: List[Tactic] = [SelectorTextTactic(sel) for sel in selectors.original_title]
    tactics.append(JsonLdFieldTactic(("alternateName", "originalTitle"), name="json_ld"))
    tactics.append(
        LabelledTextTactic(("Originální název", "Original title"), name="labelled_text")
    )
    return Cascade("original_title", tactics)


def build_genre_cascade(selectors: DetailSelectors = DETAIL_SELECTORS) -> Cascade:
    tactics: List[Tactic] = [SelectorTextTactic(sel) for sel in selectors.genre]
    tactics.append(JsonLdFieldTactic(("genre",), limit=config.MAX_GENRES, name="json_ld"))
    return Cascade("genre", tactics, finalize=_finalize_genre)


def build_director_cascade(selectors: DetailSelectors = DETAIL_SELECTORS) -> Cascade:
    tactics: List[Tactic] = [SelectorTextTactic(sel) for sel in selectors.director]
    tactics.append(JsonLdFieldTactic(("director",), limit=1, name="json_ld"))
    tactics.append(LabelledTextTactic(("Režie", "Director"), name="labelled_text"))
    return Cascade("director", tactics, finalize=_finalize_person)


def build_cast_cascade(selectors: DetailSelectors = DETAIL_SELECTORS) -> Cascade:
    return Cascade(
        "cast",
        [
            CastBlockTactic(selectors, limit=config.MAX_CAST),
            CastHeadingTactic(limit=config.MAX_CAST),
            JsonLdFieldTactic(("actor", "actors"), limit=config.MAX_CAST, name="json_ld"),
            LabelledTextTactic(("Hrají", "Cast"), name="labelled_text"),
        ],
        finalize=_finalize_cast,
    )


def build_description_cascade(selectors: DetailSelectors = DETAIL_SELECTORS) -> Cascade:
    tactics: List[Tactic] = [SelectorTextTactic(sel) for sel in selectors.plot]
    tactics.append(JsonLdFieldTactic(("description",), name="json_ld"))
    tactics.append(MetaContentTactic('meta[property="og:description"]'))
    tactics.append(MetaContentTactic('meta[name="description"]'))
    return Cascade("description", tactics, finalize=clean_description)


@dataclass
class DetailExtraction:
    enrichment: Enrichment
    outcomes: dict

    @property
    def errors(self) -> List[str]:
        return [err for outcome in self.outcomes.values() for err in outcome.errors]


class DetailExtractor:
    """Runs every field cascade against one detail page."""

    def __init__(self, selectors: DetailSelectors = DETAIL_SELECTORS) -> None:
        self.external_id = build_external_id_cascade(selectors)
        self.original_title = build_original_title_cascade(selectors)
        self.secondary: Tuple[Cascade, ...] = (
            build_genre_cascade(selectors),
            build_director_cascade(selectors),
            build_cast_cascade(selectors),
            build_description_cascade(selectors),
        )

    def extract_identity(self, page: DetailPage) -> DetailExtraction:
        """Identifier and original title only (used for parent pages)."""

        enrichment = Enrichment()
        outcomes = {}
        id_outcome = self.external_id.run(page)
        outcomes["external_id"] = id_outcome
        if id_outcome.ok:
            enrichment.external_id = id_outcome.value
            enrichment.external_url = config.imdb_title_url(id_outcome.value)
        title_outcome = self.original_title.run(page)
        outcomes["original_title"] = title_outcome
        if title_outcome.ok:
            enrichment.original_title = title_outcome.value
        return DetailExtraction(enrichment, outcomes)

    def extract(self, page: DetailPage) -> DetailExtraction:
        result = self.extract_identity(page)
        for cascade in self.secondary:
            outcome = cascade.run(page)
            result.outcomes[cascade.field_name] = outcome
            if outcome.ok:
                setattr(result.enrichment, cascade.field_name, outcome.value)
        return result


def parent_url(url: str) -> str:
    """Return the show-level URL for an episode/season URL, or ``""``.

    ``/film/<show>/<season>/<episode>/`` becomes ``/film/<show>/``; a URL that
    already is show-level has no parent.
    """

    parsed = urlparse(url or "")
    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        return ""
    if "film" in segments:
        keep = segments[: segments.index("film") + 2]
    else:
        keep = segments[:-1]
    if not keep or len(keep) >= len(segments):
        return ""
    path = "/" + "/".join(keep) + "/"
    return urlunparse(parsed._replace(path=path, params="", query="", fragment=""))


__all__ = [
    "DetailPage",
    "Tactic",
    "SelectorTextTactic",
    "HrefPatternTactic",
    "JsonLdPatternTactic",
    "JsonLdFieldTactic",
    "RawPatternTactic",
    "LabelledTextTactic",
    "MetaContentTactic",
    "CastBlockTactic",
    "CastHeadingTactic",
    "ExtractionOutcome",
    "Cascade",
    "DetailExtraction",
    "DetailExtractor",
    "build_external_id_cascade",
    "build_original_title_cascade",
    "build_genre_cascade",
    "build_director_cascade",
    "build_cast_cascade",
    "build_description_cascade",
    "parent_url",
]
