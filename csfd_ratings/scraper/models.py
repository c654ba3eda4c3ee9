from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ItemKind(str, Enum):
    WORK = "work"
    SERIES = "series"
    EPISODE = "episode"
    SEASON = "season"


def _safe_kind(value: Any) -> ItemKind:
    try:
        return ItemKind(value)
    except ValueError:
        return ItemKind.WORK


# Persisted field order; CSV header and JSON records follow it.
FIELD_ORDER: Tuple[str, ...] = (
    "title",
    "year",
    "kind",
    "rating",
    "ratedOn",
    "sourceUrl",
    "externalId",
    "externalUrl",
    "originalTitle",
    "genre",
    "director",
    "cast",
    "description",
)

ENRICHMENT_FIELDS: Tuple[str, ...] = (
    "external_id",
    "external_url",
    "original_title",
    "genre",
    "director",
    "cast",
    "description",
)

_ATTR_TO_RECORD = {
    "title": "title",
    "year": "year",
    "kind": "kind",
    "rating": "rating",
    "rated_on": "ratedOn",
    "source_url": "sourceUrl",
    "external_id": "externalId",
    "external_url": "externalUrl",
    "original_title": "originalTitle",
    "genre": "genre",
    "director": "director",
    "cast": "cast",
    "description": "description",
}
_RECORD_TO_ATTR = {value: key for key, value in _ATTR_TO_RECORD.items()}


@dataclass
class RatingItem:
    """One rated work from the listing, plus its enrichment fields."""

    title: str
    source_url: str
    year: str = ""
    kind: ItemKind = ItemKind.WORK
    rating: str = ""
    rated_on: str = ""
    external_id: str = ""
    external_url: str = ""
    original_title: str = ""
    genre: str = ""
    director: str = ""
    cast: str = ""
    description: str = ""

    @property
    def dedup_key(self) -> Tuple[str, str]:
        return (self.source_url, self.title)

    @property
    def cache_key(self) -> str:
        return cache_key_for(self.source_url)

    def to_record(self) -> Dict[str, str]:
        record: Dict[str, str] = {}
        for attr, name in _ATTR_TO_RECORD.items():
            value = getattr(self, attr)
            if isinstance(value, ItemKind):
                value = value.value
            record[name] = "" if value is None else str(value)
        return {name: record[name] for name in FIELD_ORDER}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "RatingItem":
        values: Dict[str, Any] = {}
        for name, attr in _RECORD_TO_ATTR.items():
            raw = record.get(name)
            values[attr] = "" if raw is None else str(raw)
        values["kind"] = _safe_kind(values.get("kind") or ItemKind.WORK.value)
        return cls(**values)

    def enrichment(self) -> "Enrichment":
        return Enrichment(**{name: getattr(self, name) for name in ENRICHMENT_FIELDS})

    def apply(self, enrichment: "Enrichment") -> None:
        """Copy non-empty enrichment values onto this item."""

        for name in ENRICHMENT_FIELDS:
            value = getattr(enrichment, name)
            if value:
                setattr(self, name, value)

    @property
    def has_external_id(self) -> bool:
        return bool(self.external_id)


def cache_key_for(source_url: str) -> str:
    return f"{source_url}::details"


@dataclass
class Enrichment:
    """The enrichment subset of a :class:`RatingItem`."""

    external_id: str = ""
    external_url: str = ""
    original_title: str = ""
    genre: str = ""
    director: str = ""
    cast: str = ""
    description: str = ""

    def merge_missing(self, other: "Enrichment") -> None:
        """Fill empty fields from ``other``; existing values win."""

        for f in fields(self):
            if not getattr(self, f.name) and getattr(other, f.name):
                setattr(self, f.name, getattr(other, f.name))

    def to_dict(self) -> Dict[str, str]:
        return {_ATTR_TO_RECORD[f.name]: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Enrichment":
        values = {}
        for f in fields(cls):
            raw = payload.get(_ATTR_TO_RECORD[f.name])
            values[f.name] = "" if raw is None else str(raw)
        return cls(**values)


class LookupStatus(str, Enum):
    FOUND = "found"
    ABSENT = "absent"


@dataclass
class CacheEntry:
    """Cached enrichment for one source URL.

    ``status`` separates a confirmed absence of an external identifier
    (``absent``) from a resolved one (``found``); a missing cache key means
    the item was never looked up.
    """

    enrichment: Enrichment = field(default_factory=Enrichment)
    status: LookupStatus = LookupStatus.FOUND
    cached_at: str = ""

    def to_dict(self) -> Dict[str, str]:
        payload = self.enrichment.to_dict()
        payload["status"] = self.status.value
        payload["cachedAt"] = self.cached_at
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CacheEntry":
        enrichment = Enrichment.from_dict(payload)
        raw_status = payload.get("status")
        if raw_status is None:
            status = LookupStatus.FOUND if enrichment.external_id else LookupStatus.ABSENT
        else:
            try:
                status = LookupStatus(raw_status)
            except ValueError:
                status = LookupStatus.ABSENT
        return cls(
            enrichment=enrichment,
            status=status,
            cached_at=str(payload.get("cachedAt") or ""),
        )

    @property
    def is_absent(self) -> bool:
        return self.status is LookupStatus.ABSENT


@dataclass
class ScoredCandidate:
    external_id: str
    external_url: str
    title: str
    year: str
    score: int = 0


@dataclass(frozen=True)
class SearchResult:
    external_id: str
    external_url: str
    matched_title: str = ""
    score: int = 0


@dataclass
class RunState:
    last_page: int
    items: list
    timestamp: float
    mode: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastPage": self.last_page,
            "items": [item.to_record() for item in self.items],
            "timestamp": self.timestamp,
            "mode": self.mode,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> Optional["RunState"]:
        try:
            last_page = int(payload.get("lastPage", 0))
            timestamp = float(payload.get("timestamp") or 0.0)
        except (TypeError, ValueError):
            return None
        raw_items = payload.get("items") or []
        if not isinstance(raw_items, list):
            return None
        items = [RatingItem.from_record(raw) for raw in raw_items if isinstance(raw, dict)]
        return cls(
            last_page=max(0, last_page),
            items=items,
            timestamp=timestamp,
            mode=str(payload.get("mode") or ""),
        )


__all__ = [
    "ItemKind",
    "FIELD_ORDER",
    "ENRICHMENT_FIELDS",
    "RatingItem",
    "Enrichment",
    "LookupStatus",
    "CacheEntry",
    "ScoredCandidate",
    "SearchResult",
    "RunState",
    "cache_key_for",
]
